from __future__ import annotations

from cloudkeeper.callback import compose, emit, only, use_callback
from cloudkeeper.events import (
    CleanupFailed,
    LifecycleEvent,
    ResourceDeleted,
    ResourceDiscovered,
    SnapshotDeleted,
)


class TestEmit:
    def test_without_callback_is_noop(self):
        emit(ResourceDiscovered("n-d", None))

    def test_delivers_to_active_callback(self):
        received: list[LifecycleEvent] = []
        with use_callback(received.append):
            emit(ResourceDiscovered("n-d", "vol-1", 10))
        assert received == [ResourceDiscovered("n-d", "vol-1", 10)]

    def test_callback_removed_after_block(self):
        received: list[LifecycleEvent] = []
        with use_callback(received.append):
            pass
        emit(ResourceDiscovered("n-d", None))
        assert received == []

    def test_nested_callbacks_restore_outer(self):
        outer: list[LifecycleEvent] = []
        inner: list[LifecycleEvent] = []
        with use_callback(outer.append):
            with use_callback(inner.append):
                emit(ResourceDeleted("n-d", "vol-1"))
            emit(ResourceDeleted("n-d", "vol-2"))
        assert inner == [ResourceDeleted("n-d", "vol-1")]
        assert outer == [ResourceDeleted("n-d", "vol-2")]

    def test_derived_events_are_dispatched(self):
        received: list[LifecycleEvent] = []

        def on_event(event):
            received.append(event)
            if isinstance(event, CleanupFailed):
                return SnapshotDeleted(event.identity, event.snapshot_id)
            return None

        with use_callback(on_event):
            emit(CleanupFailed("n-d", "snap-1", "denied"))

        assert received == [
            CleanupFailed("n-d", "snap-1", "denied"),
            SnapshotDeleted("n-d", "snap-1"),
        ]


class TestCompose:
    def test_every_callback_sees_every_event(self):
        a: list[LifecycleEvent] = []
        b: list[LifecycleEvent] = []
        with use_callback(compose(a.append, b.append)):
            emit(ResourceDeleted("n-d", "vol-1"))
        assert a == b == [ResourceDeleted("n-d", "vol-1")]

    def test_single_callback_is_returned_as_is(self):
        def cb(_):
            return None

        assert compose(cb) is cb

    def test_empty_compose_is_noop(self):
        assert compose()(ResourceDeleted("n-d", "vol-1")) is None


class TestOnly:
    def test_filters_event_types(self):
        received: list[LifecycleEvent] = []

        @only(CleanupFailed)
        def alerts(event):
            received.append(event)

        with use_callback(alerts):
            emit(ResourceDeleted("n-d", "vol-1"))
            emit(CleanupFailed("n-d", "snap-1", "denied"))

        assert received == [CleanupFailed("n-d", "snap-1", "denied")]
