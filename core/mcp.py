"""
MCP server connection registry.

One process-wide ``MCPRegistry`` keeps live client connections keyed by
alias. Connections are created through a pluggable async factory; the
default one speaks MCP over SSE for ``http(s)://`` URLs and over stdio for
command lines.
"""

import logging
import shlex
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)

CLIENT_NAME = "agent"
CLIENT_VERSION = "1.0.0"


@dataclass
class MCPConnectionOptions:
    """Connection options parsed from a configured URL or command line."""

    url: str | None = None
    command: str | None = None
    args: list[str] = field(default_factory=list)
    name: str = CLIENT_NAME
    version: str = CLIENT_VERSION


class MCPConnection(Protocol):
    async def list_tools(self) -> list[dict[str, Any]]:
        """Raw tool descriptors ``{name, description, inputSchema}``."""
        ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        ...

    async def close(self) -> None:
        ...


ConnectionFactory = Callable[[MCPConnectionOptions], Awaitable[MCPConnection]]


def parse_connection_url(url: str) -> MCPConnectionOptions:
    """``http(s)://`` URLs connect remotely; anything else is a command line."""
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return MCPConnectionOptions(url=url)
    parts = shlex.split(url)
    if not parts:
        raise ValueError("MCP server URL or command is empty")
    return MCPConnectionOptions(command=parts[0], args=parts[1:])


def normalize_schema(schema: dict[str, Any] | None) -> dict[str, Any]:
    """Give an MCP input schema the object shape expected for function parameters."""
    schema = dict(schema or {})
    if not schema.get("type"):
        schema["type"] = "object"
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
    if not isinstance(schema.get("additionalProperties"), bool):
        schema["additionalProperties"] = False
    return schema


# =============================================================================
# Default connection (mcp SDK)
# =============================================================================


class SDKConnection:
    """MCP client session over SSE or stdio."""

    def __init__(self, options: MCPConnectionOptions):
        self.options = options
        self._transport = None
        self._session = None

    async def open(self) -> "SDKConnection":
        from mcp.client.session import ClientSession

        if self.options.url:
            from mcp.client.sse import sse_client

            self._transport = sse_client(self.options.url)
        else:
            from mcp.client.stdio import StdioServerParameters, stdio_client

            params = StdioServerParameters(command=self.options.command, args=self.options.args)
            self._transport = stdio_client(params)

        streams = await self._transport.__aenter__()
        try:
            self._session = ClientSession(streams[0], streams[1])
            await self._session.__aenter__()
            await self._session.initialize()
        except Exception:
            await self.close()
            raise
        return self

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self._session.list_tools()
        return [
            {"name": t.name, "description": t.description, "inputSchema": t.inputSchema}
            for t in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        result = await self._session.call_tool(name, arguments)
        return result.model_dump(mode="json")

    async def close(self) -> None:
        if self._session is not None:
            try:
                await self._session.__aexit__(None, None, None)
            except Exception as e:
                logger.warning("Error closing MCP session: %s", e)
            self._session = None
        if self._transport is not None:
            try:
                await self._transport.__aexit__(None, None, None)
            except Exception as e:
                logger.warning("Error closing MCP transport: %s", e)
            self._transport = None


async def sdk_connection_factory(options: MCPConnectionOptions) -> MCPConnection:
    return await SDKConnection(options).open()


# =============================================================================
# Registry
# =============================================================================


@dataclass
class _Entry:
    url: str
    options: MCPConnectionOptions
    connection: MCPConnection


class MCPRegistry:
    """Live MCP connections keyed by alias."""

    def __init__(self, connection_factory: ConnectionFactory = sdk_connection_factory):
        self.connection_factory = connection_factory
        self._entries: dict[str, _Entry] = {}

    async def add(self, alias: str, url: str) -> MCPConnection:
        """
        Connect a new alias.

        Raises:
            ValueError: If the alias already exists or the URL is empty
        """
        if alias in self._entries:
            raise ValueError(f"MCP client alias '{alias}' already exists")
        options = parse_connection_url(url)
        connection = await self.connection_factory(options)
        self._entries[alias] = _Entry(url=url, options=options, connection=connection)
        logger.info("Connected MCP server %s (%s)", alias, url)
        return connection

    async def edit(self, alias: str, url: str) -> MCPConnection:
        """Reconnect ``alias`` with a new URL."""
        await self.remove(alias)
        return await self.add(alias, url)

    async def remove(self, alias: str) -> bool:
        entry = self._entries.pop(alias, None)
        if entry is None:
            return False
        try:
            await entry.connection.close()
        except Exception as e:
            logger.warning("Error closing MCP connection %s: %s", alias, e)
        logger.info("Removed MCP server %s", alias)
        return True

    def get(self, alias: str) -> MCPConnection:
        entry = self._entries.get(alias)
        if entry is None:
            raise KeyError(f"No MCP client registered under alias '{alias}'")
        return entry.connection

    def aliases(self) -> list[str]:
        return list(self._entries)

    async def sync_with_config(self, servers: dict[str, str]) -> None:
        """
        Make the registry match ``servers`` (alias to URL).

        Aliases missing from ``servers`` are removed, changed URLs are
        reconnected and new aliases are added. A server that fails to
        connect is logged and skipped.
        """
        for alias in self.aliases():
            if alias not in servers:
                await self.remove(alias)
        for alias, url in servers.items():
            entry = self._entries.get(alias)
            if entry is not None and entry.url == url:
                continue
            try:
                if entry is not None:
                    await self.edit(alias, url)
                else:
                    await self.add(alias, url)
            except Exception:
                logger.exception("Failed to connect MCP server %s", alias)

    async def list_tools(self, alias: str) -> list[dict[str, Any]]:
        """Tools of ``alias`` as function schemas."""
        tools = await self.get(alias).list_tools()
        return [
            {
                "type": "function",
                "function": {
                    "name": t["name"],
                    "description": t.get("description") or "",
                    "parameters": normalize_schema(t.get("inputSchema")),
                },
            }
            for t in tools
        ]

    async def call_tool(self, alias: str, name: str, arguments: dict[str, Any]) -> Any:
        return await self.get(alias).call_tool(name, arguments)

    async def close(self) -> None:
        for alias in self.aliases():
            await self.remove(alias)


_registry: MCPRegistry | None = None


def get_mcp_registry() -> MCPRegistry:
    """Process-wide registry instance."""
    global _registry
    if _registry is None:
        _registry = MCPRegistry()
    return _registry
