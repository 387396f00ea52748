"""Model role configuration."""

from typing import Literal

from pydantic import BaseModel, Field

from .defaults import DEFAULT_AUX_MODEL, DEFAULT_EXPERT_MODEL, DEFAULT_MAIN_MODEL, DEFAULT_PROVIDER

ModelRoleName = Literal["main", "aux", "expert"]


class ModelRole(BaseModel):
    """Provider and model used for one role."""

    provider: str = Field(default=DEFAULT_PROVIDER, description="Driver/provider name")
    model: str = Field(description="Model identifier sent to the provider")


class ModelsConfig(BaseModel):
    """Models used for the main loop, auxiliary calls and expert advice."""

    main: ModelRole = Field(
        default_factory=lambda: ModelRole(model=DEFAULT_MAIN_MODEL),
        description="Model driving the agent loop",
    )
    aux: ModelRole = Field(
        default_factory=lambda: ModelRole(model=DEFAULT_AUX_MODEL),
        description="Cheap model for topic detection, gerunds, web page questions and safety checks",
    )
    expert: ModelRole = Field(
        default_factory=lambda: ModelRole(model=DEFAULT_EXPERT_MODEL),
        description="Reasoning model consulted by the expert advice tool",
    )

    def for_role(self, role: ModelRoleName) -> ModelRole:
        return getattr(self, role)
