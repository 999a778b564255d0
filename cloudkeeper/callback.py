"""Callback-based event dispatch for cloudkeeper.

Controllers announce what they do through emit(). Whoever drives the
controller (usually the workflow step) installs a callback for the
duration of the call and receives every lifecycle event, including the
non-fatal ones such as CleanupFailed. Callbacks may return derived
events, which are processed in a queue after the callback returns.

Example:
    from cloudkeeper.callback import emit, use_callback

    def on_event(event):
        match event:
            case CleanupFailed(snapshot_id=sid):
                print(f"snapshot {sid} left behind")

    with use_callback(on_event):
        controller.resize()
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cloudkeeper.events import LifecycleEvent

type CallbackResult = LifecycleEvent | Sequence[LifecycleEvent] | None
type Callback = Callable[[LifecycleEvent], CallbackResult]

_callback: ContextVar[Callback | None] = ContextVar("cloudkeeper_cb", default=None)


def _normalize(result: CallbackResult) -> list[LifecycleEvent]:
    """Convert callback result to list of events."""
    if result is None:
        return []
    if isinstance(result, Sequence) and not isinstance(result, str):
        return list(result)
    return [result]  # type: ignore[list-item]


def emit(event: LifecycleEvent) -> None:
    """Emit event to the current context's callback.

    Derived events are processed breadth-first, so a callback never
    runs while another callback's dispatch is still on the stack.

    Args:
        event: The event to emit.
    """
    cb = _callback.get()
    if cb is None:
        return

    queue: list[LifecycleEvent] = [event]
    while queue:
        current = queue.pop(0)
        derived = cb(current)
        queue.extend(_normalize(derived))


def compose(*callbacks: Callback) -> Callback:
    """Combine multiple callbacks into one.

    Each callback receives every event. Derived events from all
    callbacks are collected and returned together.

    Example:
        with use_callback(compose(audit_trail, alerting)):
            controller.reconcile()
    """
    match callbacks:
        case []:
            return lambda _: None
        case [single]:
            return single
        case _:

            def combined(event: LifecycleEvent) -> list[LifecycleEvent]:
                results: list[LifecycleEvent] = []
                for cb in callbacks:
                    results.extend(_normalize(cb(event)))
                return results

            return combined


@contextmanager
def use_callback(cb: Callback) -> Iterator[None]:
    """Context manager that sets the active callback.

    The callback is bound to the current context, so threads started
    through cloudkeeper.conc inherit it.
    """
    token = _callback.set(cb)
    try:
        yield
    finally:
        _callback.reset(token)


def only(*event_types: type[LifecycleEvent]) -> Callable[[Callback], Callback]:
    """Decorator that filters a callback to only receive specific event types.

    Example:
        @only(CleanupFailed, StaleSnapshotRetained)
        def page_operator(event):
            ...
    """

    def decorator(cb: Callback) -> Callback:
        def filtered(event: LifecycleEvent) -> CallbackResult:
            if isinstance(event, event_types):
                return cb(event)
            return None

        return filtered

    return decorator


__all__ = [
    "Callback",
    "CallbackResult",
    "emit",
    "compose",
    "use_callback",
    "only",
]
