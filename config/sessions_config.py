"""SessionsConfig model."""

from pydantic import BaseModel, Field

from core.constants import SESSION_TTL_SECONDS

from .defaults import DEFAULT_SESSIONS_DIR


class SessionsConfig(BaseModel):
    """Session cache and storage settings."""

    ttl_seconds: int = Field(default=SESSION_TTL_SECONDS, description="Idle time before a session leaves the cache")
    store_dir: str = Field(default=DEFAULT_SESSIONS_DIR, description="Directory for JSON session records")
