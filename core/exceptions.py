"""
Core domain exceptions.

These exceptions are transport-agnostic. Only ``Cancelled`` is allowed to cross
the agent loop boundary; every other failure is converted into data (a tool
result, a degraded assistant message) close to where it happens.
"""


class CoreError(Exception):
    """Base exception for all core errors."""

    pass


class NotFoundError(CoreError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class SessionNotFound(NotFoundError):
    """Raised when a session has no durable record and no cache entry."""

    def __init__(self, session_id: str):
        super().__init__("Session", session_id)
        self.session_id = session_id


class InvalidOperationError(CoreError):
    """Raised when an operation cannot be performed in the current state."""

    pass


class ProviderError(CoreError):
    """Transport, authentication or rate-limit failure talking to an LLM backend."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        prefix = f"{provider}: {status_code} " if status_code else f"{provider}: "
        super().__init__(prefix + message)


class ToolError(CoreError):
    """Raised by a tool implementation; converted into an ``{"error": ...}`` result."""

    pass


class SandboxDenied(ToolError):
    """Raised when a path resolves outside of the working-directory root."""

    def __init__(self, path: str, base: str):
        self.path = path
        self.base = base
        super().__init__(f"Access denied: {path} is outside of {base}")


class Cancelled(CoreError):
    """Standardized abort condition for a cancelled or interrupted turn."""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message)
