"""Cancellation and deadlines for blocking provider calls.

Every blocking call in cloudkeeper takes an OperationContext. The
context carries a cancel flag shared with its children and an optional
absolute deadline on the monotonic clock. Poll loops sleep on the
cancel flag, so cancelling from another thread wakes them immediately.

Example:
    ctx = OperationContext.background().with_timeout(600)
    worker = threading.Thread(target=controller.provision, kwargs={"ctx": ctx})
    worker.start()
    ...
    ctx.cancel()  # provision() raises OperationCancelled at its next check
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from cloudkeeper.core.exceptions import OperationCancelled


@dataclass(frozen=True, slots=True)
class OperationContext:
    """Cancel flag plus optional deadline for one controller operation."""

    deadline: float | None = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @classmethod
    def background(cls) -> OperationContext:
        """A context that is never cancelled and has no deadline."""
        return cls()

    def with_timeout(self, seconds: float) -> OperationContext:
        """Derive a child that shares this cancel flag with a tighter deadline."""
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return OperationContext(deadline=deadline, _cancelled=self._cancelled)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self) -> None:
        """Raise OperationCancelled if cancelled or past the deadline."""
        if self.cancelled:
            raise OperationCancelled("Operation cancelled")
        if self.expired:
            raise OperationCancelled("Operation deadline exceeded")

    def remaining(self, default: float) -> float:
        """Seconds left before the deadline, capped at default."""
        if self.deadline is None:
            return default
        return max(0.0, min(default, self.deadline - time.monotonic()))

    def sleep(self, seconds: float) -> None:
        """Sleep up to seconds, returning early on cancel. Raises when cancelled."""
        self.check()
        if self._cancelled.wait(self.remaining(seconds)):
            raise OperationCancelled("Operation cancelled")
        self.check()
