"""
Session state management.

The ``SessionStateManager`` owns every conversation's state: history, task
tree, accounting, tool logs and operational agent state. It keeps an
in-memory cache over a durable ``SessionStore``, coalesces writes so that at
most one durable write is in flight per session, normalizes older record
layouts on first load, and carries the sticky interruption flag used for
cooperative cancellation.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from .accounting import add_usage as add_accounting_usage
from .constants import INTERRUPTED_MESSAGE, MAX_CONTEXT_TOKENS, SESSION_TTL_SECONDS, SUB_SESSION_PREFIX
from .events import Event, EventBus, NullEventBus
from .exceptions import SessionNotFound
from .models import (
    AgentState,
    Message,
    SessionData,
    Task,
    TaskStatus,
    assistant_message,
    gen_id,
    now_ms,
)
from .store import SessionStore
from . import tasks as task_tree

logger = logging.getLogger(__name__)

_UNSET: Any = object()


# =============================================================================
# Normalization
# =============================================================================

LEGACY_FIELDS = ("directory", "conversation", "accountingData", "models", "totalUSD", "logs")


def is_sub_session(session_id: str) -> bool:
    """Sub-agent sessions live only in memory and skip history/state side effects."""
    return session_id.startswith(SUB_SESSION_PREFIX)


def normalize_session_data(raw: dict[str, Any] | None) -> tuple[SessionData, bool]:
    """
    Map a raw durable record onto the canonical session shape.

    Older records used ``directory``, ``conversation``, ``accountingData``,
    root-level ``models``/``totalUSD`` and ``logs``; tasks used to be a flat
    list. Missing collections default to empty.

    Args:
        raw: Record as returned by the store

    Returns:
        Tuple of (normalized data, whether any legacy field was migrated)
    """
    if not raw:
        return SessionData(), False

    history = raw.get("history") or raw.get("conversation")
    if raw.get("accounting"):
        accounting = raw["accounting"]
    elif raw.get("accountingData"):
        accounting = raw["accountingData"]
    elif raw.get("models") or raw.get("totalUSD") is not None:
        accounting = {"models": raw.get("models") or {}, "totalUSD": raw.get("totalUSD") or 0}
    else:
        accounting = {"models": {}, "totalUSD": 0}
    if isinstance(accounting, dict) and "input" not in accounting:
        models = accounting.get("models") or {}
        accounting = {
            **accounting,
            "input": sum(int(m.get("input", 0)) for m in models.values()),
            "output": sum(int(m.get("output", 0)) for m in models.values()),
        }
    tool_logs = raw.get("toolLogs") or raw.get("logs")

    canonical = {
        "workingDirectory": raw.get("workingDirectory") or raw.get("directory") or None,
        "agentId": raw.get("agentId") or None,
        "mcpAlias": raw.get("mcpAlias") or None,
        "mcpUrl": raw.get("mcpUrl") or None,
        "history": history if isinstance(history, list) else [],
        "accounting": accounting,
        "tasks": raw.get("tasks") if isinstance(raw.get("tasks"), list) else [],
        "tasksPinned": raw.get("tasksPinned") if isinstance(raw.get("tasksPinned"), bool) else False,
        "toolLogs": tool_logs if isinstance(tool_logs, list) else [],
        "agentState": raw.get("agentState") or AgentState().model_dump(),
        "updatedAt": raw.get("updatedAt") or now_ms(),
    }
    data = SessionData.model_validate(canonical)
    data.tasks = task_tree.rebuild_tree(data.tasks)

    migrated = any(
        raw.get(name) is not None for name in LEGACY_FIELDS if name not in ("models", "totalUSD")
    ) or "models" in raw or "totalUSD" in raw
    return data, migrated


# =============================================================================
# Cache entry
# =============================================================================


@dataclass
class SessionEntry:
    """In-memory cache entry for one session."""

    data: SessionData
    last_access: float
    interruption_requested: bool = False
    saving: asyncio.Task | None = field(default=None, repr=False)
    pending_save: asyncio.Task | None = field(default=None, repr=False)

    @property
    def save_outstanding(self) -> bool:
        return self.saving is not None or self.pending_save is not None


# =============================================================================
# Manager
# =============================================================================


class SessionStateManager:
    """Write-coalescing cache over durable per-conversation state."""

    def __init__(
        self,
        store: SessionStore,
        event_bus: EventBus | None = None,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the manager.

        Args:
            store: Durable key-value store for session records
            event_bus: EventBus for task, accounting, log and state events
            ttl_seconds: Idle time after which a cache entry may be evicted
            clock: Monotonic clock, replaceable in tests
        """
        self.store = store
        self.event_bus = event_bus or NullEventBus()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, SessionEntry] = {}
        self._loading: dict[str, asyncio.Task] = {}
        self._sweeper: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Cache lifecycle
    # -------------------------------------------------------------------------

    def is_active(self, session_id: str) -> bool:
        return session_id in self._entries

    async def _emit(self, event_type: str, **properties: Any) -> None:
        await self.event_bus.publish(Event(type=event_type, properties=properties))

    async def _load_from_store(self, session_id: str) -> SessionEntry:
        raw = await self.store.load(session_id)
        if raw is None:
            raise SessionNotFound(session_id)
        data, migrated = normalize_session_data(raw)
        if migrated:
            logger.info("[%s] Normalized session data, migrated legacy fields", session_id)
        entry = SessionEntry(data=data, last_access=self._clock())
        self._entries[session_id] = entry
        return entry

    async def _entry(self, session_id: str) -> SessionEntry:
        entry = self._entries.get(session_id)
        if entry is None:
            loading = self._loading.get(session_id)
            if loading is None:
                loading = asyncio.ensure_future(self._load_from_store(session_id))
                self._loading[session_id] = loading
                loading.add_done_callback(lambda _t: self._loading.pop(session_id, None))
            entry = await asyncio.shield(loading)
        entry.last_access = self._clock()
        return entry

    async def get_session(self, session_id: str) -> SessionData:
        """
        Return the cached session, loading and normalizing it on first access.

        If a durable write is in flight, waits for it so callers never observe
        a state older than what is being written.

        Raises:
            SessionNotFound: If the store has no record for the session
        """
        entry = await self._entry(session_id)
        if entry.saving is not None:
            await asyncio.shield(entry.saving)
        return entry.data

    async def reset_session(self, session_id: str, fresh_data: SessionData | dict[str, Any] | None = None) -> SessionData:
        """Replace (or create) the cache entry without touching durable storage."""
        if isinstance(fresh_data, SessionData):
            data = fresh_data.model_copy(deep=True)
        else:
            data = SessionData.model_validate(fresh_data or {})
        data.updatedAt = now_ms()
        self._entries[session_id] = SessionEntry(data=data, last_access=self._clock())
        await self._emit("session.tasks_reset", sessionId=session_id)
        await self._emit("session.tool_logs_reset", sessionId=session_id)
        await self._emit("session.accounting", sessionId=session_id, totalUSD="0.0000", breakdown={})
        return data

    async def create_session(self, session_id: str, working_directory: str | None = None) -> SessionData:
        """Create an empty session and write it to the store."""
        data = await self.reset_session(session_id, SessionData(workingDirectory=working_directory))
        await self.save_session(session_id)
        return data

    def delete_session(self, session_id: str) -> bool:
        """Drop a session from the cache (storage is untouched)."""
        return self._entries.pop(session_id, None) is not None

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    async def save_session(self, session_id: str) -> None:
        """
        Persist the session, coalescing concurrent requests.

        Callers arriving while a write is queued but not started join that
        write. Callers arriving while a write is running queue exactly one
        follow-up write, which starts after the running one and snapshots the
        state at that moment. Sub-agent sessions are never written.
        """
        entry = self._entries.get(session_id)
        if entry is None:
            logger.warning("Attempted to save non-active session: %s", session_id)
            return
        if is_sub_session(session_id):
            entry.data.updatedAt = now_ms()
            return

        task = entry.pending_save
        if task is None:
            task = asyncio.ensure_future(self._write(session_id, entry, entry.saving))
            entry.pending_save = task
        await asyncio.shield(task)

    async def _write(self, session_id: str, entry: SessionEntry, previous: asyncio.Task | None) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        current = asyncio.current_task()
        if entry.pending_save is current:
            entry.pending_save = None
        entry.saving = current
        try:
            entry.data.updatedAt = now_ms()
            snapshot = entry.data.to_record()
            await self.store.save(session_id, snapshot)
        except Exception:
            logger.exception("Failed to save session %s", session_id)
        finally:
            if entry.saving is current:
                entry.saving = None

    # -------------------------------------------------------------------------
    # Eviction
    # -------------------------------------------------------------------------

    def evict_inactive(self) -> list[str]:
        """Remove idle entries from the cache, skipping any with a save outstanding."""
        now = self._clock()
        evicted = []
        for session_id, entry in list(self._entries.items()):
            if now - entry.last_access > self.ttl_seconds and not entry.save_outstanding:
                logger.info("Unloading inactive session %s from cache", session_id)
                del self._entries[session_id]
                evicted.append(session_id)
        return evicted

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.ttl_seconds / 2)
            self.evict_inactive()

    def start_sweeper(self) -> None:
        """Start the periodic eviction sweep (interval TTL/2)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.ensure_future(self._sweep_forever())

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def get_tasks(self, session_id: str, flat: bool = False, root_only: bool = False) -> list[Task]:
        data = await self.get_session(session_id)
        return task_tree.list_tasks(data.tasks, flat=flat, root_only=root_only)

    async def get_subtree(self, session_id: str, task_id: str, flat: bool = False) -> list[Task] | None:
        data = await self.get_session(session_id)
        return task_tree.get_subtree(data.tasks, task_id, flat=flat)

    async def _task_diff(self, session_id: str, diff_type: str, **properties: Any) -> None:
        await self._emit("session.task_diff", sessionId=session_id, type=diff_type, **properties)

    async def add_task(
        self,
        session_id: str,
        title: str,
        description: str = "",
        parent_id: str | None = None,
        save: bool = True,
    ) -> Task:
        data = await self.get_session(session_id)
        task = task_tree.add_task(data.tasks, title, description, parent_id)
        await self._task_diff(session_id, "add", task=task.model_dump(mode="json"), parentId=parent_id)
        if save:
            await self.save_session(session_id)
        return task

    async def remove_task(self, session_id: str, task_id: str, save: bool = True) -> bool:
        data = await self.get_session(session_id)
        removed = task_tree.remove_task(data.tasks, task_id)
        if removed:
            await self._task_diff(session_id, "remove", taskId=task_id)
            if save:
                await self.save_session(session_id)
        return removed

    async def move_task(self, session_id: str, task_id: str, new_parent_id: str | None = None, save: bool = True) -> bool:
        """
        Move a task under ``new_parent_id`` (or to the root).

        Emits a ``remove`` diff for the old location and an ``add`` diff for
        the new one.

        Raises:
            InvalidOperationError: If the move would create a cycle
        """
        data = await self.get_session(session_id)
        moved = task_tree.move_task(data.tasks, task_id, new_parent_id)
        if moved:
            task = task_tree.find_task(data.tasks, task_id)
            await self._task_diff(session_id, "remove", taskId=task_id)
            await self._task_diff(
                session_id, "add", task=task.model_dump(mode="json"), parentId=new_parent_id
            )
            if save:
                await self.save_session(session_id)
        return moved

    async def edit_task(
        self,
        session_id: str,
        task_id: str,
        title: str | None = None,
        description: str | None = None,
        parent_id: str | None = _UNSET,
        save: bool = True,
    ) -> Task | None:
        """Edit title/description; passing ``parent_id`` also moves the task."""
        if parent_id is not _UNSET:
            await self.move_task(session_id, task_id, parent_id, save=False)
        data = await self.get_session(session_id)
        task = task_tree.edit_task(data.tasks, task_id, title=title, description=description)
        if task is not None:
            await self._task_diff(session_id, "update", task=task.model_dump(mode="json"))
            if save:
                await self.save_session(session_id)
        return task

    async def set_task_status(
        self, session_id: str, task_id: str, status: str | TaskStatus, save: bool = True
    ) -> Task | None:
        data = await self.get_session(session_id)
        task = task_tree.set_task_status(data.tasks, task_id, status)
        if task is not None:
            await self._task_diff(session_id, "update", task=task.model_dump(mode="json"))
            if save:
                await self.save_session(session_id)
        return task

    # -------------------------------------------------------------------------
    # Accounting
    # -------------------------------------------------------------------------

    async def add_usage(self, session_id: str, model: str, prompt_tokens: int, completion_tokens: int) -> None:
        data = await self.get_session(session_id)
        add_accounting_usage(data.accounting, model, prompt_tokens, completion_tokens)
        await self._emit(
            "session.accounting",
            sessionId=session_id,
            totalUSD=f"{data.accounting.totalUSD:.4f}",
            breakdown={name: usage.model_dump() for name, usage in data.accounting.models.items()},
        )
        await self._emit(
            "session.token_count",
            sessionId=session_id,
            current=data.accounting.input + data.accounting.output,
            max=MAX_CONTEXT_TOKENS,
        )
        await self.save_session(session_id)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def _append(self, session_id: str, message: Message | dict[str, Any]) -> Message:
        data = await self.get_session(session_id)
        msg = message if isinstance(message, Message) else Message.model_validate(message)
        data.history.append(msg)
        await self.save_session(session_id)
        return msg

    async def append_user_message_only(self, session_id: str, message: Message | dict[str, Any]) -> Message:
        """Append a user turn (or a tool result) to the durable history."""
        return await self._append(session_id, message)

    async def append_assistant_message(self, session_id: str, message: Message | dict[str, Any]) -> Message:
        return await self._append(session_id, message)

    async def update_last_user_message(self, session_id: str, content: str | list[dict[str, Any]]) -> bool:
        """Amend the most recent user message (deferred image descriptions)."""
        data = await self.get_session(session_id)
        for message in reversed(data.history):
            if message.role == "user":
                message.content = content
                await self.save_session(session_id)
                return True
        return False

    # -------------------------------------------------------------------------
    # Tool logs and agent state
    # -------------------------------------------------------------------------

    async def append_tool_log(self, session_id: str, log_entry: dict[str, Any]) -> dict[str, Any]:
        data = await self.get_session(session_id)
        entry = dict(log_entry)
        entry.setdefault("logId", gen_id("log_"))
        entry.setdefault("timestamp", now_ms())
        data.toolLogs.append(entry)
        await self._emit("session.tool_log", sessionId=session_id, logEntry=entry)
        await self.save_session(session_id)
        return entry

    async def get_tool_logs(self, session_id: str) -> list[dict[str, Any]]:
        data = await self.get_session(session_id)
        return list(data.toolLogs)

    async def set_agent_state(
        self,
        session_id: str,
        status: str = _UNSET,
        status_text: str | None = _UNSET,
        start_time: int | None = _UNSET,
        active_tool_call_id: str | None = _UNSET,
    ) -> AgentState:
        """
        Merge the given fields into the operational state.

        Entering ``idle`` blanks the other fields and clears the interruption
        flag.
        """
        data = await self.get_session(session_id)
        current = data.agentState
        updated = AgentState(
            status=current.status if status is _UNSET else status,
            statusText=current.statusText if status_text is _UNSET else status_text,
            startTime=current.startTime if start_time is _UNSET else start_time,
            activeToolCallId=current.activeToolCallId if active_tool_call_id is _UNSET else active_tool_call_id,
        )
        if updated.status == "idle":
            updated = AgentState(status="idle")
            self.clear_interruption(session_id)
        data.agentState = updated
        await self._emit("session.agent_state", sessionId=session_id, agentState=updated.model_dump())
        await self.save_session(session_id)
        return updated

    async def get_agent_state(self, session_id: str) -> AgentState:
        data = await self.get_session(session_id)
        return data.agentState.model_copy()

    # -------------------------------------------------------------------------
    # Simple fields
    # -------------------------------------------------------------------------

    async def set_working_directory(self, session_id: str, directory: str | None) -> None:
        data = await self.get_session(session_id)
        data.workingDirectory = directory
        await self.save_session(session_id)

    async def get_working_directory(self, session_id: str) -> str | None:
        return (await self.get_session(session_id)).workingDirectory

    async def set_agent_id(self, session_id: str, agent_id: str | None) -> None:
        data = await self.get_session(session_id)
        data.agentId = agent_id
        await self.save_session(session_id)

    async def get_agent_id(self, session_id: str) -> str | None:
        return (await self.get_session(session_id)).agentId

    async def set_mcp_data(self, session_id: str, mcp_alias: str | None, mcp_url: str | None) -> None:
        data = await self.get_session(session_id)
        data.mcpAlias = mcp_alias
        data.mcpUrl = mcp_url
        await self.save_session(session_id)

    async def get_mcp_data(self, session_id: str) -> dict[str, str | None]:
        data = await self.get_session(session_id)
        return {"mcpAlias": data.mcpAlias, "mcpUrl": data.mcpUrl}

    async def set_tasks_pinned(self, session_id: str, pinned: bool) -> None:
        data = await self.get_session(session_id)
        data.tasksPinned = bool(pinned)
        await self.save_session(session_id)

    async def get_tasks_pinned(self, session_id: str) -> bool:
        return (await self.get_session(session_id)).tasksPinned

    # -------------------------------------------------------------------------
    # Interruption
    # -------------------------------------------------------------------------

    async def request_interruption(self, session_id: str) -> bool:
        """
        Flag an active session for interruption.

        Returns:
            True if the session is in the cache and was flagged, False otherwise
        """
        entry = self._entries.get(session_id)
        if entry is None:
            logger.warning("[%s] Interruption requested for inactive/unknown session", session_id)
            return False
        logger.info("[%s] Interruption requested", session_id)
        entry.interruption_requested = True
        await self._emit("session.interrupt_requested", sessionId=session_id, timestamp=now_ms())
        return True

    def is_interruption_requested(self, session_id: str) -> bool:
        entry = self._entries.get(session_id)
        return entry.interruption_requested if entry is not None else False

    def clear_interruption(self, session_id: str) -> None:
        entry = self._entries.get(session_id)
        if entry is not None:
            if entry.interruption_requested:
                logger.info("[%s] Clearing interruption flag", session_id)
            entry.interruption_requested = False

    async def finalize_interruption(self, session_id: str) -> None:
        """Append the synthetic interrupted message and force the state to idle."""
        logger.info("[%s] Finalizing interruption", session_id)
        await self.append_assistant_message(session_id, assistant_message(INTERRUPTED_MESSAGE))
        await self.set_agent_state(session_id, status="idle")
