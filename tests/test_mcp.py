"""
Tests for the MCP connection registry and MCP tool proxies.
"""

import json

import pytest

from agent.tools import MCPTool, load_mcp_tools
from core.mcp import MCPRegistry, normalize_schema, parse_connection_url
from core.models import ToolCall
from helpers import FakeConnectionFactory, FakeMCPConnection

DOCS_URL = "http://localhost:9000/sse"


@pytest.fixture
def factory() -> FakeConnectionFactory:
    return FakeConnectionFactory(fail_for={"http://down.example/sse"})


@pytest.fixture
def registry(factory) -> MCPRegistry:
    return MCPRegistry(factory)


class TestConnectionOptions:
    """Test parsing of configured server URLs."""

    def test_http_url(self):
        """http(s) URLs connect remotely."""
        options = parse_connection_url(f"  {DOCS_URL} ")
        assert options.url == DOCS_URL
        assert options.command is None

    def test_command_line(self):
        """Anything else is a command line split shell-style."""
        options = parse_connection_url('npx -y server-fs "/tmp/my dir"')
        assert options.url is None
        assert options.command == "npx"
        assert options.args == ["-y", "server-fs", "/tmp/my dir"]

    def test_empty(self):
        """An empty URL is rejected."""
        with pytest.raises(ValueError):
            parse_connection_url("   ")


class TestNormalizeSchema:
    """Test normalization of MCP input schemas."""

    def test_missing_schema(self):
        """A missing schema becomes an empty closed object."""
        assert normalize_schema(None) == {
            "type": "object", "properties": {}, "required": [], "additionalProperties": False,
        }

    def test_existing_schema_closed(self):
        """Existing schemas keep their shape and get additionalProperties."""
        schema = {"type": "object", "properties": {"q": {"type": "string"}}}
        assert normalize_schema(schema) == {**schema, "additionalProperties": False}
        assert "additionalProperties" not in schema

    def test_explicit_additional_properties_kept(self):
        """A boolean additionalProperties is left alone."""
        assert normalize_schema({"type": "object", "additionalProperties": True})["additionalProperties"] is True


class TestMCPRegistry:
    """Test MCPRegistry lifecycle."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, registry, factory):
        """Added aliases are connected and retrievable."""
        connection = await registry.add("docs", DOCS_URL)
        assert registry.get("docs") is connection
        assert registry.aliases() == ["docs"]
        assert factory.opened[0].url == DOCS_URL

    @pytest.mark.asyncio
    async def test_duplicate_alias(self, registry):
        """Adding an existing alias is an error."""
        await registry.add("docs", DOCS_URL)
        with pytest.raises(ValueError, match="already exists"):
            await registry.add("docs", DOCS_URL)

    @pytest.mark.asyncio
    async def test_get_unknown(self, registry):
        """Unknown aliases raise KeyError."""
        with pytest.raises(KeyError):
            registry.get("nope")

    @pytest.mark.asyncio
    async def test_edit_reconnects(self, registry, factory):
        """Editing closes the old connection and opens a new one."""
        old = await registry.add("docs", DOCS_URL)
        new = await registry.edit("docs", "http://localhost:9001/sse")
        assert old.closed is True
        assert new is not old
        assert registry.get("docs") is new

    @pytest.mark.asyncio
    async def test_remove_and_close(self, registry):
        """Removal closes connections; close removes everything."""
        docs = await registry.add("docs", DOCS_URL)
        fs = await registry.add("fs", "npx server-fs /tmp")
        assert await registry.remove("docs") is True
        assert await registry.remove("docs") is False
        assert docs.closed is True
        await registry.close()
        assert fs.closed is True
        assert registry.aliases() == []

    @pytest.mark.asyncio
    async def test_sync_with_config(self, registry, factory):
        """Syncing adds, reconnects, removes and skips failing servers."""
        kept = await registry.add("kept", DOCS_URL)
        stale = await registry.add("stale", "http://localhost:9002/sse")
        moved = await registry.add("moved", "http://localhost:9003/sse")

        await registry.sync_with_config({
            "kept": DOCS_URL,
            "moved": "http://localhost:9004/sse",
            "new": "npx server-new",
            "down": "http://down.example/sse",
        })

        assert sorted(registry.aliases()) == ["kept", "moved", "new"]
        assert registry.get("kept") is kept
        assert stale.closed is True
        assert moved.closed is True
        assert registry.get("new") is factory.connections[-1]

    @pytest.mark.asyncio
    async def test_list_and_call_tools(self, registry):
        """Tools are listed as function schemas and calls are forwarded."""
        connection = await registry.add("docs", DOCS_URL)
        schemas = await registry.list_tools("docs")
        assert schemas == [{
            "type": "function",
            "function": {
                "name": "search",
                "description": "Search the docs",
                "parameters": {
                    "type": "object",
                    "properties": {"q": {"type": "string"}},
                    "additionalProperties": False,
                },
            },
        }]
        result = await registry.call_tool("docs", "search", {"q": "x"})
        assert result["content"][0]["text"] == "search result"
        assert connection.calls == [("search", {"q": "x"})]


class TestMCPTools:
    """Test MCP tool proxies."""

    @pytest.mark.asyncio
    async def test_load_tools(self, registry):
        """Proxies are named after the alias and remote tool."""
        await registry.add("docs", DOCS_URL)
        tools = await load_mcp_tools(registry, "docs")
        assert [t.name for t in tools] == ["mcp__docs__search"]
        assert tools[0].schema()["function"]["name"] == "mcp__docs__search"
        assert tools[0].get_descriptive_text({}) == "Calling search on docs"

    @pytest.mark.asyncio
    async def test_load_tools_without_server(self, registry):
        """No alias or an unknown alias yields no tools."""
        assert await load_mcp_tools(registry, None) == []
        assert await load_mcp_tools(registry, "docs") == []

    @pytest.mark.asyncio
    async def test_listing_failure_yields_no_tools(self, registry):
        """A server that fails to list tools contributes nothing."""
        class BrokenConnection(FakeMCPConnection):
            async def list_tools(self):
                raise ConnectionError("gone")

        async def broken_factory(options):
            return BrokenConnection()

        broken = MCPRegistry(broken_factory)
        await broken.add("docs", DOCS_URL)
        assert await load_mcp_tools(broken, "docs") == []

    @pytest.mark.asyncio
    async def test_tool_runs_through_registry(self, registry, tool_context):
        """Calling the proxy forwards the arguments to the server."""
        connection = await registry.add("docs", DOCS_URL)
        for tool in await load_mcp_tools(registry, "docs"):
            tool_context.registry.add(tool)

        call = ToolCall(id="call_1", name="mcp__docs__search", argumentsText=json.dumps({"q": "install"}))
        result = await tool_context.registry.run(call, tool_context)

        assert result == {"content": [{"type": "text", "text": "search result"}], "isError": False}
        assert connection.calls == [("search", {"q": "install"})]
        assert isinstance(tool_context.registry.get("mcp__docs__search"), MCPTool)
