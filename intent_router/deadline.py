"""
Caller deadlines and cancel signals for Intent Router.

A :class:`Deadline` bundles an optional absolute time limit with an
optional :class:`asyncio.Event` the caller sets to abandon the work.
It is passed down from ``Router.route`` to the fallback gateway and from
``ToolOrchestrator.load`` to each provider call.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Iterable, Optional, Set, Tuple

from .errors import OperationCancelled


class Deadline:
    """Time limit plus cancel signal, shared by every step of one call."""

    def __init__(self, timeout: Optional[float] = None,
                 cancel_event: Optional[asyncio.Event] = None):
        """
        Args:
            timeout: Seconds from now after which the call is abandoned.
            cancel_event: Set by the caller to abandon the call early.
        """
        self._expires_at: Optional[float] = (
            time.monotonic() + timeout if timeout is not None else None
        )
        self.cancel_event = cancel_event

    @classmethod
    def none(cls) -> "Deadline":
        """A deadline that never expires and cannot be cancelled."""
        return cls()

    def remaining(self) -> Optional[float]:
        """Seconds left, 0.0 when expired, None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def bound(self, timeout: Optional[float]) -> Optional[float]:
        """The tighter of *timeout* and the time remaining."""
        remaining = self.remaining()
        if timeout is None:
            return remaining
        if remaining is None:
            return timeout
        return min(timeout, remaining)

    async def run(self, awaitable: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """Await *awaitable* within this deadline.

        Args:
            awaitable: Coroutine or future to await.
            timeout: Extra per-call limit, tightened by the deadline.

        Raises:
            asyncio.TimeoutError: The time limit passed first.
            OperationCancelled: The cancel signal was set first.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled("cancelled before start")

        task = asyncio.ensure_future(awaitable)
        waiters = {task}
        cancel_waiter = None
        if self.cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(self.cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.bound(timeout),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        if cancel_waiter is not None and cancel_waiter in done:
            raise OperationCancelled("cancelled by caller")
        raise asyncio.TimeoutError()

    async def wait_all(self, tasks: Iterable["asyncio.Future[Any]"]) -> Tuple[Set, Set]:
        """Wait for *tasks* until they finish or this deadline fires.

        Unlike :meth:`run`, partial progress is kept: tasks that finished
        in time are returned as done, the rest are cancelled and returned
        as pending.

        Returns:
            ``(done, pending)``
        """
        pending: Set = set(tasks)
        done: Set = set()
        cancel_waiter = None
        if self.cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(self.cancel_event.wait())

        try:
            while pending and not self.cancelled:
                waiters = set(pending)
                if cancel_waiter is not None:
                    waiters.add(cancel_waiter)
                finished, _ = await asyncio.wait(
                    waiters,
                    timeout=self.remaining(),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                finished.discard(cancel_waiter)
                if not finished and not self.cancelled:
                    break  # timed out
                done |= finished
                pending -= finished
        except asyncio.CancelledError:
            for task in pending:
                task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        finished = {task for task in pending if task.done()}
        done |= finished
        pending -= finished
        for task in pending:
            task.cancel()
        return done, pending
