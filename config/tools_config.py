"""ToolsConfig model."""

from pydantic import BaseModel, Field


class ToolsConfig(BaseModel):
    """Tool availability."""

    enabled: list[str] | None = Field(
        default=None,
        description="Tool names offered to the model (if None, use all)",
    )
