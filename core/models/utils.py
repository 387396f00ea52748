"""ID generation and time helpers."""

import secrets
import time
from datetime import datetime, timezone


def gen_id(prefix: str = "") -> str:
    """Generate short random IDs such as ``log_xxx`` or ``call_xxx``."""
    return f"{prefix}{secrets.token_urlsafe(9)}"


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()
