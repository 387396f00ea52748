"""MCPServerConfig model."""

from pydantic import BaseModel, Field


class MCPServerConfig(BaseModel):
    """MCP (Model Context Protocol) server configuration."""

    url: str = Field(description="http(s) URL of the server, or a command line that starts it")
