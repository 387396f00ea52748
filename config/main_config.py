"""Main Config model."""

from typing import Any

from pydantic import BaseModel, Field

from .agent_config import AgentConfig
from .mcp_server_config import MCPServerConfig
from .models_config import ModelsConfig
from .sandbox_config import SandboxConfig
from .sessions_config import SessionsConfig
from .tools_config import ToolsConfig


class Config(BaseModel):
    """Main configuration model."""

    models: ModelsConfig = Field(
        default_factory=ModelsConfig,
        description="Model roles (main, aux, expert)",
    )
    model_providers: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Provider overrides and additions by id",
    )
    sandbox: SandboxConfig = Field(
        default_factory=SandboxConfig,
        description="Shell execution limits",
    )
    sessions: SessionsConfig = Field(
        default_factory=SessionsConfig,
        description="Session cache and storage",
    )
    agent: AgentConfig = Field(
        default_factory=AgentConfig,
        description="Agent loop behaviour",
    )
    tools: ToolsConfig = Field(
        default_factory=ToolsConfig,
        description="Tool availability",
    )
    mcp: dict[str, MCPServerConfig] = Field(
        default_factory=dict,
        description="MCP server configurations by alias",
    )

    def mcp_servers(self) -> dict[str, str]:
        """Alias to URL mapping for the MCP registry."""
        return {alias: server.url for alias, server in self.mcp.items()}
