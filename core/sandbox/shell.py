"""
Shell command runner.

Commands run under ``bash -c`` in their own process group so the whole tree
can be signalled. A hard timeout, a fired cancel token or the session's
interruption flag all trigger the same escalation: SIGTERM to the group,
then SIGKILL after a grace period.
"""

import asyncio
import codecs
import contextlib
import logging
import os
import signal
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable

from ..cancellation import CancelToken
from ..constants import (
    DEFAULT_BASH_TIMEOUT_MS,
    GRACE_KILL_MS,
    INTERRUPT_POLL_INTERVAL_SECONDS,
    MAX_BASH_OUTPUT_CHARS,
    TRUNCATION_MARKER,
)
from ..exceptions import Cancelled

logger = logging.getLogger(__name__)

# Escalation tasks outlive the call that started them
_background: set[asyncio.Task] = set()


@dataclass
class ShellResult:
    stdout: str
    stderr: str
    error: str | None
    success: bool
    timedOut: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def truncate_output(text: str, limit: int = MAX_BASH_OUTPUT_CHARS) -> str:
    if len(text) > limit:
        return text[:limit] + TRUNCATION_MARKER
    return text


class _OutputBuffer:
    def __init__(self, limit: int):
        self.limit = limit
        self.text = ""
        # Multibyte characters may straddle read boundaries
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes, final: bool = False) -> None:
        if len(self.text) > self.limit:
            return
        self.text = truncate_output(self.text + self._decoder.decode(chunk, final), self.limit)

    def close(self) -> None:
        self.feed(b"", final=True)


async def _pump(stream: asyncio.StreamReader | None, buffer: _OutputBuffer) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            buffer.close()
            return
        buffer.feed(chunk)


async def _stop_readers(readers: asyncio.Future, finished: asyncio.Future) -> None:
    readers.cancel()
    finished.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await readers
    with contextlib.suppress(asyncio.CancelledError):
        await finished


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(process.pid, sig)
    except (ProcessLookupError, PermissionError):
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            pass


async def _escalate(process: asyncio.subprocess.Process, grace_seconds: float) -> None:
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        logger.warning("Process group %s ignored SIGTERM, sending SIGKILL", process.pid)
        _signal_group(process, signal.SIGKILL)
        await process.wait()


def terminate_process_group(process: asyncio.subprocess.Process, grace_kill_ms: int = GRACE_KILL_MS) -> asyncio.Task:
    """SIGTERM the group now and SIGKILL it if it is still alive after the grace period."""
    _signal_group(process, signal.SIGTERM)
    task = asyncio.ensure_future(_escalate(process, grace_kill_ms / 1000))
    _background.add(task)
    task.add_done_callback(_background.discard)
    return task


async def run_shell(
    command: str,
    timeout_ms: int | None = None,
    working_directory: str | None = None,
    cancel_token: CancelToken | None = None,
    interrupted: Callable[[], bool] | None = None,
    grace_kill_ms: int = GRACE_KILL_MS,
    poll_interval: float = INTERRUPT_POLL_INTERVAL_SECONDS,
    max_output_chars: int = MAX_BASH_OUTPUT_CHARS,
) -> ShellResult:
    """
    Run ``command`` with ``bash -c`` and collect its output.

    Args:
        command: Shell command line
        timeout_ms: Hard timeout; defaults to DEFAULT_BASH_TIMEOUT_MS
        working_directory: Directory the command runs in
        cancel_token: Token that aborts the command when fired
        interrupted: Sticky interruption flag, polled every ``poll_interval``
        grace_kill_ms: Delay between SIGTERM and SIGKILL
        poll_interval: Seconds between flag polls
        max_output_chars: Per-stream output cap

    Returns:
        ShellResult; a timeout is reported with ``timedOut=True``

    Raises:
        Cancelled: If the token fired or the flag was set while running
    """
    timeout_ms = timeout_ms or DEFAULT_BASH_TIMEOUT_MS
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    stdout = _OutputBuffer(max_output_chars)
    stderr = _OutputBuffer(max_output_chars)
    try:
        process = await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=working_directory or None,
            start_new_session=True,
        )
    except OSError as e:
        logger.error("Failed to spawn shell: %s", e)
        return ShellResult(stdout="", stderr=f"\nSpawn error: {e}", error=str(e), success=False)

    readers = asyncio.gather(_pump(process.stdout, stdout), _pump(process.stderr, stderr))
    finished = asyncio.ensure_future(process.wait())
    deadline = time.monotonic() + timeout_ms / 1000
    logger.debug("Started process group %s: %s", process.pid, command)

    try:
        while True:
            waiters: set[asyncio.Future] = {finished}
            token_waiter = None
            if cancel_token is not None:
                token_waiter = asyncio.ensure_future(cancel_token.wait())
                waiters.add(token_waiter)
            remaining = deadline - time.monotonic()
            await asyncio.wait(waiters, timeout=max(0.0, min(poll_interval, remaining)),
                               return_when=asyncio.FIRST_COMPLETED)
            if token_waiter is not None:
                token_waiter.cancel()

            if finished.done():
                break
            if (cancel_token is not None and cancel_token.cancelled) or (interrupted and interrupted()):
                logger.info("Cancelling process group %s", process.pid)
                terminate_process_group(process, grace_kill_ms)
                await _stop_readers(readers, finished)
                raise Cancelled("Command cancelled")
            if time.monotonic() >= deadline:
                logger.warning("Command timed out after %s ms: %s", timeout_ms, command)
                terminate_process_group(process, grace_kill_ms)
                await _stop_readers(readers, finished)
                stdout.close()
                stderr.close()
                return ShellResult(
                    stdout=stdout.text,
                    stderr=stderr.text,
                    error=f"Command timed out after {timeout_ms} ms",
                    success=False,
                    timedOut=True,
                )
    except asyncio.CancelledError:
        terminate_process_group(process, grace_kill_ms)
        await _stop_readers(readers, finished)
        raise

    await readers
    code = finished.result()
    return ShellResult(
        stdout=stdout.text,
        stderr=stderr.text,
        error=None if code == 0 else f"Command exited with code {code}",
        success=code == 0,
    )
