"""AgentConfig model for configuration."""

from pydantic import BaseModel, Field

from core.constants import MAX_CONTEXT_TOKENS

from .defaults import DEFAULT_AGENT_NAME, DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_PERSONAS_DIR, DEFAULT_TEMPERATURE


class AgentConfig(BaseModel):
    """Agent loop behaviour."""

    name: str = Field(default=DEFAULT_AGENT_NAME, description="Name the agent introduces itself with")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, description="Sampling temperature for the main model")
    max_output_tokens: int = Field(
        default=DEFAULT_MAX_OUTPUT_TOKENS,
        description="Output token limit per model call",
    )
    topic_detection: bool = Field(
        default=True,
        description="Emit topic and gerund hints through the aux model",
    )
    personas_dir: str = Field(default=DEFAULT_PERSONAS_DIR, description="Directory of persona markdown files")
    max_context_tokens: int = Field(default=MAX_CONTEXT_TOKENS, description="Context size reported with token counts")
