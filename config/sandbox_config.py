"""SandboxConfig model."""

from pydantic import BaseModel, Field

from core.constants import (
    DEFAULT_BASH_TIMEOUT_MS,
    GRACE_KILL_MS,
    INTERRUPT_POLL_INTERVAL_SECONDS,
    MAX_BASH_OUTPUT_CHARS,
)


class SandboxConfig(BaseModel):
    """Shell execution limits and command safety checks."""

    bash_timeout_ms: int = Field(default=DEFAULT_BASH_TIMEOUT_MS, description="Default hard timeout for shell commands")
    grace_kill_ms: int = Field(default=GRACE_KILL_MS, description="Delay between SIGTERM and SIGKILL")
    max_output_chars: int = Field(default=MAX_BASH_OUTPUT_CHARS, description="Per-stream output cap")
    poll_interval_ms: int = Field(
        default=int(INTERRUPT_POLL_INTERVAL_SECONDS * 1000),
        description="Interval for polling the interruption flag",
    )
    block_dangerous_commands: bool = Field(default=True, description="Reject obviously destructive commands")
    llm_safety_check: bool = Field(default=False, description="Ask the aux model for a command prefix before running")
