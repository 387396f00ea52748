"""
Cooperative cancellation.

A ``CancelToken`` is threaded from the request handler through the agent loop
into the gateway and the sandbox. Blocking work is wrapped with
``run_cancellable`` so that a fired token aborts it with ``Cancelled``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .exceptions import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation signal backed by an ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token. Calling it again has no further effect."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


def check_cancelled(
    token: CancelToken | None, flag: Callable[[], bool] | None = None
) -> None:
    """Raise ``Cancelled`` if the token fired or the sticky flag is set."""
    if token is not None and token.cancelled:
        raise Cancelled(token.reason or "cancelled")
    if flag is not None and flag():
        raise Cancelled("interruption requested")


async def run_cancellable(awaitable: Awaitable[T], token: CancelToken | None) -> T:
    """
    Await ``awaitable`` unless ``token`` fires first.

    Args:
        awaitable: Coroutine or future doing the blocking work
        token: Optional cancellation token

    Returns:
        The awaitable's result

    Raises:
        Cancelled: If the token fired before or during the call
    """
    if token is None:
        return await awaitable
    if token.cancelled:
        # Close the coroutine so it does not warn about never being awaited
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise Cancelled(token.reason or "cancelled")

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        waiter.cancel()
        raise

    if work in done:
        waiter.cancel()
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Cancelled work raised while unwinding", exc_info=True)
    raise Cancelled(token.reason or "cancelled")
