"""
Deadline and cancellation context threaded through storage operations.

Every Storage operation accepts an optional ``ctx: OperationContext``. The
adapter calls ``ctx.check(operation)`` before each backend round trip
(and, on the object store, between candidate fetches of a scan). An
expired deadline raises ``OperationTimeoutError``; a cancelled context
raises ``OperationCancelledError``. Nothing is rolled back beyond what an
open backend transaction already guarantees.

Examples:
    >>> ctx = new_context(timeout=5.0)
    >>> storage.find_by_id("users", "u1", ctx=ctx)

    Cancelling from another thread:

    >>> ctx = new_context()
    >>> threading.Timer(1.0, ctx.cancel).start()
    >>> storage.find_by_key("users", "email", "a@b.com", ctx=ctx)

Tags:
    context, deadline, cancellation, timeout

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field

from omnistore.errors import OperationCancelledError, OperationTimeoutError


@dataclass
class OperationContext:
    """
    Caller-supplied deadline and cancellation flag.

    Attributes:
        context_id: Unique ID, included in log events and error context
        deadline: ``time.monotonic()`` value after which operations fail, or None
        parent: Context this one was derived from; its cancellation propagates
    """

    context_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    deadline: float | None = None
    parent: OperationContext | None = field(default=None, repr=False)
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.parent.cancelled if self.parent is not None else False

    def remaining(self) -> float | None:
        """Seconds left before the nearest deadline, or None when unbounded."""
        deadlines = [d for d in self._deadlines() if d is not None]
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def check(self, operation: str = "") -> None:
        """Raise if the context is cancelled or past its deadline."""
        if self.cancelled:
            raise OperationCancelledError(
                f"{operation or 'operation'} cancelled"
            ).with_context(operation=operation or None, context_id=self.context_id)
        if self.expired():
            raise OperationTimeoutError(
                f"{operation or 'operation'} deadline exceeded"
            ).with_context(operation=operation or None, context_id=self.context_id)

    def with_timeout(self, timeout: float) -> OperationContext:
        """Derive a child context whose deadline is at most ``timeout`` seconds away."""
        return OperationContext(deadline=time.monotonic() + timeout, parent=self)

    def _deadlines(self) -> list[float | None]:
        chain = [self.deadline]
        if self.parent is not None:
            chain.extend(self.parent._deadlines())
        return chain


def new_context(timeout: float | None = None) -> OperationContext:
    """Create a root context, optionally bounded by ``timeout`` seconds."""
    deadline = time.monotonic() + timeout if timeout is not None else None
    return OperationContext(deadline=deadline)


def context_from_settings() -> OperationContext:
    """Create a root context using ``default_timeout_seconds`` from settings."""
    from omnistore.settings import get_settings

    return new_context(get_settings().default_timeout_seconds)


def check(ctx: OperationContext | None, operation: str) -> None:
    """``ctx.check(operation)`` that tolerates a missing context."""
    if ctx is not None:
        ctx.check(operation)


__all__ = ["OperationContext", "new_context", "context_from_settings", "check"]
