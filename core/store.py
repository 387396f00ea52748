"""
Durable session storage.

The Session State Manager only needs a key-value interface; project and
session CRUD live elsewhere. Two implementations are provided: an in-memory
store for tests and a JSON-file store for the command-line entry point.
"""

import asyncio
import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9_.-]")


class SessionStore(Protocol):
    """Abstract durable key-value store for session records."""

    async def load(self, session_id: str) -> dict[str, Any] | None:
        """Return the raw record, or None if the session does not exist."""
        ...

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        """Replace the record for ``session_id``."""
        ...

    async def delete(self, session_id: str) -> None:
        ...


class MemorySessionStore:
    """In-memory store. Keeps deep copies and counts writes."""

    def __init__(self, records: dict[str, dict[str, Any]] | None = None):
        self.records: dict[str, dict[str, Any]] = copy.deepcopy(records or {})
        self.write_count = 0
        self.writes: list[tuple[str, dict[str, Any]]] = []
        self.write_delay = 0.0

    async def load(self, session_id: str) -> dict[str, Any] | None:
        record = self.records.get(session_id)
        return copy.deepcopy(record) if record is not None else None

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        snapshot = copy.deepcopy(data)
        self.records[session_id] = snapshot
        self.writes.append((session_id, snapshot))
        self.write_count += 1

    async def delete(self, session_id: str) -> None:
        self.records.pop(session_id, None)


class JsonFileSessionStore:
    """One JSON file per session under ``root``; writes are atomic replaces."""

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser()

    def _path(self, session_id: str) -> Path:
        return self.root / f"{_SAFE_ID.sub('_', session_id)}.json"

    async def load(self, session_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._read, self._path(session_id))

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, self._path(session_id), data)

    async def delete(self, session_id: str) -> None:
        await asyncio.to_thread(self._path(session_id).unlink, True)

    @staticmethod
    def _read(path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as f:
            return json.load(f)

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
        logger.debug("Wrote session record %s", path)
