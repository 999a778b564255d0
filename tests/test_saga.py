from __future__ import annotations

import pytest

from cloudkeeper.context import OperationContext
from cloudkeeper.controller import LifecycleController
from cloudkeeper.core.exceptions import (
    CleanupFailure,
    OperationCancelled,
    OrphanResourceRisk,
    ProviderError,
    ResourceIdentityUnavailable,
    ResourceNotFound,
    StaleSnapshotRisk,
)
from cloudkeeper.events import (
    CleanupFailed,
    ResizeCompleted,
    ResizeStarted,
    ResourceAvailable,
    ResourceCreating,
    ResourceDeleted,
    ResourceDeleting,
    ResourceTagged,
    SnapshotCreated,
    SnapshotDeleted,
    StaleSnapshotRetained,
)
from cloudkeeper.providers.memory import InMemoryProvider
from cloudkeeper.saga import ResizeStage, SnapshotTransaction


@pytest.fixture
def growing(provisioned: LifecycleController) -> LifecycleController:
    """A provisioned 10 GiB resource whose descriptor now asks for 20 GiB."""
    provisioned.update_descriptor(provisioned.descriptor.with_size(20))
    return provisioned


class TestResize:
    def test_journal(self, growing: LifecycleController, provider: InMemoryProvider):
        old_id = growing.handle.provider_id

        growing.resize()

        assert provider.call_names() == [
            "create_snapshot",
            "wait_until_snapshot_completed",
            "wait_until_available",
            "delete_resource",
            "create_resource",
            "tag_resource",
            "wait_until_available",
            "delete_snapshot",
        ]
        assert provider.calls_to("create_snapshot")[0]["resource_id"] == old_id
        assert provider.calls_to("delete_resource")[0]["resource_id"] == old_id

        create = provider.calls_to("create_resource")[0]
        assert create["size"] == 20
        assert create["source_snapshot_id"] == provider.calls_to("delete_snapshot")[0]["snapshot_id"]
        assert provider.calls_to("tag_resource")[0]["value"] == "node1-data"

    def test_outcome(self, growing: LifecycleController, provider: InMemoryProvider):
        old_id = growing.handle.provider_id

        outcome = growing.resize()

        assert outcome.stage is ResizeStage.CLEAN
        assert outcome.clean
        assert outcome.identity == "node1-data"
        assert outcome.old_resource_id == old_id
        assert outcome.new_resource_id != old_id
        assert outcome.size == 20
        assert growing.handle.provider_id == outcome.new_resource_id
        assert growing.handle.observed_size == 20
        assert growing.needs_resize() is False

    def test_provider_state_after_resize(self, growing: LifecycleController, provider: InMemoryProvider):
        outcome = growing.resize()

        [live] = provider.live_resources()
        assert live.resource_id == outcome.new_resource_id
        assert live.name_tag == "node1-data"
        assert live.source_snapshot_id == outcome.snapshot_id
        assert provider.snapshots() == []

    def test_snapshot_description_uses_release_timestamp(self, growing, provider: InMemoryProvider):
        growing.resize()
        assert provider.calls_to("create_snapshot")[0]["description"] == "node1-data-20240101T000000Z"

    def test_shrink_runs_the_same_saga(self, provisioned: LifecycleController, provider):
        provisioned.update_descriptor(provisioned.descriptor.with_size(5))
        outcome = provisioned.resize()
        assert outcome.size == 5
        assert len(provider.calls_to("create_snapshot")) == 1

    def test_rediscovery_finds_new_resource(self, growing: LifecycleController, provider):
        outcome = growing.resize()
        growing.invalidate()
        handle = growing.discover()
        assert handle is not None
        assert handle.provider_id == outcome.new_resource_id

    def test_without_resource_raises_typed_error(self, controller: LifecycleController, provider):
        with pytest.raises(ResourceIdentityUnavailable):
            controller.resize()
        assert provider.call_names() == ["describe_resources"]

    def test_events(self, growing: LifecycleController, events):
        events.clear()
        growing.resize()
        assert [type(e) for e in events] == [
            ResizeStarted,
            SnapshotCreated,
            ResourceAvailable,
            ResourceDeleting,
            ResourceDeleted,
            ResourceCreating,
            ResourceTagged,
            ResourceAvailable,
            ResizeCompleted,
            SnapshotDeleted,
        ]
        started = events[0]
        assert (started.from_size, started.to_size) == (10, 20)
        creating = events[5]
        assert creating.source_snapshot_id is not None


class TestAbortBeforeDelete:
    def test_snapshot_start_failure_leaves_nothing_behind(self, growing, provider: InMemoryProvider):
        old_id = growing.handle.provider_id
        provider.fail_on("create_snapshot", ProviderError("snapshot quota", code="SnapshotLimitExceeded"))

        txn = SnapshotTransaction(growing, OperationContext.background())
        with pytest.raises(ProviderError, match="snapshot quota"):
            txn.run()

        assert txn.stage is ResizeStage.ABORTED_BEFORE_DELETE
        assert provider.snapshots() == []
        assert provider.resource(old_id).name_tag == "node1-data"
        assert growing.handle.provider_id == old_id

    def test_snapshot_wait_failure_retains_snapshot(self, growing, provider: InMemoryProvider, events):
        old_id = growing.handle.provider_id
        provider.fail_on("wait_until_snapshot_completed")

        with pytest.raises(StaleSnapshotRisk) as exc_info:
            growing.resize()

        risk = exc_info.value
        [snapshot] = provider.snapshots()
        assert risk.snapshot_id == snapshot.snapshot_id
        assert risk.stage == ResizeStage.ABORTED_BEFORE_DELETE
        assert risk.original_deleted is False
        assert isinstance(risk.__cause__, ProviderError)
        assert [r.resource_id for r in provider.live_resources()] == [old_id]
        assert StaleSnapshotRetained(
            "node1-data", snapshot.snapshot_id, ResizeStage.ABORTED_BEFORE_DELETE, False,
        ) in events

    def test_delete_failure_keeps_original(self, growing, provider: InMemoryProvider):
        old_id = growing.handle.provider_id
        provider.fail_on("delete_resource", ProviderError("busy", code="VolumeInUse"))

        with pytest.raises(StaleSnapshotRisk) as exc_info:
            growing.resize()

        assert exc_info.value.stage == ResizeStage.ABORTED_BEFORE_DELETE
        assert not exc_info.value.original_deleted
        assert "create_resource" not in provider.call_names()
        assert growing.handle.provider_id == old_id
        assert len(provider.snapshots()) == 1

    def test_cancelled_before_start(self, growing, provider: InMemoryProvider):
        ctx = OperationContext.background()
        ctx.cancel()
        txn = SnapshotTransaction(growing, ctx)

        with pytest.raises(OperationCancelled):
            txn.run()
        assert txn.stage is ResizeStage.ABORTED_BEFORE_DELETE
        assert provider.calls == []


class TestAbortAfterDelete:
    def test_create_failure_leaves_snapshot_as_only_copy(self, growing, provider: InMemoryProvider, events):
        provider.fail_on("create_resource", ProviderError("capacity", code="InsufficientVolumeCapacity"))

        with pytest.raises(StaleSnapshotRisk) as exc_info:
            growing.resize()

        risk = exc_info.value
        assert risk.stage == ResizeStage.ABORTED_AFTER_DELETE
        assert risk.original_deleted is True
        assert provider.live_resources() == []
        assert [s.snapshot_id for s in provider.snapshots()] == [risk.snapshot_id]
        assert not growing.handle.exists
        assert any(isinstance(e, StaleSnapshotRetained) and e.original_deleted for e in events)

    def test_tag_failure_is_orphan_risk(self, growing, provider: InMemoryProvider, events):
        provider.fail_on("tag_resource")

        with pytest.raises(OrphanResourceRisk) as exc_info:
            growing.resize()

        [orphan] = provider.live_resources()
        assert exc_info.value.resource_id == orphan.resource_id
        assert orphan.name_tag is None
        assert len(provider.snapshots()) == 1
        retained = [e for e in events if isinstance(e, StaleSnapshotRetained)]
        assert len(retained) == 1
        assert retained[0].stage == ResizeStage.ABORTED_AFTER_DELETE

    def test_new_resource_wait_failure(self, growing, provider: InMemoryProvider, monkeypatch):
        delete_resource = provider.delete_resource

        def delete_then_break_waits(resource_id, ctx):
            delete_resource(resource_id, ctx)
            provider.fail_on("wait_until_available")

        monkeypatch.setattr(provider, "delete_resource", delete_then_break_waits)

        with pytest.raises(StaleSnapshotRisk) as exc_info:
            growing.resize()

        assert exc_info.value.original_deleted
        [new] = provider.live_resources()
        assert new.name_tag == "node1-data"
        # The tagged replacement stays cached so a later wait can pick it up.
        assert growing.handle.provider_id == new.resource_id


class TestCleanup:
    def test_snapshot_delete_failure_is_not_fatal(self, growing, provider: InMemoryProvider, events):
        provider.fail_on("delete_snapshot", ProviderError("denied", code="UnauthorizedOperation"))

        outcome = growing.resize()

        assert outcome.stage is ResizeStage.NEW_AVAILABLE
        assert not outcome.clean
        assert isinstance(outcome.cleanup_error, CleanupFailure)
        assert outcome.cleanup_error.snapshot_id == outcome.snapshot_id
        assert [s.snapshot_id for s in provider.snapshots()] == [outcome.snapshot_id]
        assert growing.handle.observed_size == 20
        assert CleanupFailed("node1-data", outcome.snapshot_id, "denied") in events
        assert not any(isinstance(e, SnapshotDeleted) for e in events)

    def test_snapshot_already_gone_is_clean(self, growing, provider: InMemoryProvider):
        provider.fail_on("delete_snapshot", ResourceNotFound("gone", code="InvalidSnapshot.NotFound"))

        outcome = growing.resize()

        assert outcome.stage is ResizeStage.CLEAN
        assert outcome.cleanup_error is None
