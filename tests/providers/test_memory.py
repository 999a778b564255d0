from __future__ import annotations

import pytest

from cloudkeeper.constants import NON_TERMINAL_STATES, ResourceState, SnapshotState
from cloudkeeper.context import OperationContext
from cloudkeeper.core.exceptions import (
    OperationCancelled,
    ProviderError,
    ResourceNotFound,
    WaitTimeoutError,
)
from cloudkeeper.providers.base import ProviderClient
from cloudkeeper.providers.memory import InMemoryProvider, Memory
from cloudkeeper.types import CreateSpec, ResourceFilter


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext.background()


def _by_name(name: str) -> ResourceFilter:
    return ResourceFilter(tag_key="Name", tag_value=name, states=NON_TERMINAL_STATES)


class TestMemoryConfig:
    def test_type(self):
        assert Memory().type == "memory"

    def test_create_client(self):
        client = Memory(settle_polls=0).create_client()
        assert isinstance(client, InMemoryProvider)
        assert client.config.settle_polls == 0

    def test_satisfies_provider_protocol(self):
        assert isinstance(InMemoryProvider(), ProviderClient)


class TestResources:
    def test_create_starts_creating_and_settles(self, provider: InMemoryProvider, ctx):
        record = provider.create_resource(CreateSpec(zone="z", type="gp2", size=4), ctx)
        assert record.state is ResourceState.CREATING
        assert record.resource_id.startswith("vol-")
        assert record.tags == {}

        available = provider.wait_until_available(record.resource_id, ctx)
        assert available.state is ResourceState.AVAILABLE
        assert provider.resource(record.resource_id).state is ResourceState.AVAILABLE

    def test_ids_are_unique(self, provider: InMemoryProvider, ctx):
        spec = CreateSpec(zone="z", type="gp2", size=4)
        ids = {provider.create_resource(spec, ctx).resource_id for _ in range(5)}
        assert len(ids) == 5

    def test_custom_id_prefix(self, ctx):
        provider = InMemoryProvider(Memory(id_prefix="disk"))
        assert provider.create_resource(CreateSpec(zone="z", type="t", size=1), ctx).resource_id.startswith("disk-")

    def test_tag_then_describe(self, provider: InMemoryProvider, ctx):
        record = provider.create_resource(CreateSpec(zone="z", type="gp2", size=4), ctx)
        assert provider.describe_resources(_by_name("n-d"), ctx) == []

        provider.tag_resource(record.resource_id, "Name", "n-d", ctx)

        [found] = provider.describe_resources(_by_name("n-d"), ctx)
        assert found.resource_id == record.resource_id
        assert found.name_tag == "n-d"

    def test_tag_missing_resource(self, provider: InMemoryProvider, ctx):
        with pytest.raises(ResourceNotFound):
            provider.tag_resource("vol-missing", "Name", "x", ctx)

    def test_delete_moves_to_deleting_then_settle_removes(self, provider: InMemoryProvider, ctx):
        record = provider.seed("n-d", size=1)
        provider.delete_resource(record.resource_id, ctx)
        assert provider.resource(record.resource_id).state is ResourceState.DELETING
        assert provider.describe_resources(_by_name("n-d"), ctx) == []

        provider.settle()
        assert provider.resource(record.resource_id) is None

    def test_delete_twice_is_not_found(self, provider: InMemoryProvider, ctx):
        record = provider.seed("n-d", size=1)
        provider.delete_resource(record.resource_id, ctx)
        with pytest.raises(ResourceNotFound):
            provider.delete_resource(record.resource_id, ctx)

    def test_delete_in_use_is_refused(self, provider: InMemoryProvider, ctx):
        record = provider.seed("n-d", size=1, state=ResourceState.IN_USE)
        with pytest.raises(ProviderError) as exc_info:
            provider.delete_resource(record.resource_id, ctx)
        assert exc_info.value.code == "VolumeInUse"
        assert not isinstance(exc_info.value, ResourceNotFound)

    def test_wait_on_deleting_is_terminal(self, provider: InMemoryProvider, ctx):
        record = provider.seed("n-d", size=1, state=ResourceState.DELETING)
        with pytest.raises(ProviderError, match="terminal state"):
            provider.wait_until_available(record.resource_id, ctx)

    def test_wait_on_missing_resource(self, provider: InMemoryProvider, ctx):
        with pytest.raises(ResourceNotFound):
            provider.wait_until_available("vol-missing", ctx)

    def test_wait_timeout(self, ctx):
        provider = InMemoryProvider(Memory(settle_polls=10**9, wait_timeout=0.02, wait_interval=0.005))
        record = provider.create_resource(CreateSpec(zone="z", type="gp2", size=1), ctx)
        with pytest.raises(WaitTimeoutError):
            provider.wait_until_available(record.resource_id, ctx)

    def test_create_from_unknown_snapshot(self, provider: InMemoryProvider, ctx):
        with pytest.raises(ResourceNotFound):
            provider.create_resource(
                CreateSpec(zone="z", type="gp2", size=1, source_snapshot_id="snap-missing"), ctx,
            )


class TestSnapshots:
    def test_create_wait_delete(self, provider: InMemoryProvider, ctx):
        volume = provider.seed("n-d", size=8)
        snapshot = provider.create_snapshot(volume.resource_id, "n-d-20240101T000000Z", ctx)
        assert snapshot.state is SnapshotState.PENDING
        assert snapshot.snapshot_id.startswith("snap-")
        assert snapshot.resource_id == volume.resource_id

        completed = provider.wait_until_snapshot_completed(snapshot.snapshot_id, ctx)
        assert completed.state is SnapshotState.COMPLETED
        assert completed.description == "n-d-20240101T000000Z"

        restored = provider.create_resource(
            CreateSpec(zone="z", type="gp2", size=16, source_snapshot_id=snapshot.snapshot_id), ctx,
        )
        assert restored.source_snapshot_id == snapshot.snapshot_id

        provider.delete_snapshot(snapshot.snapshot_id, ctx)
        assert provider.snapshots() == []

    def test_snapshot_of_missing_resource(self, provider: InMemoryProvider, ctx):
        with pytest.raises(ResourceNotFound):
            provider.create_snapshot("vol-missing", "desc", ctx)

    def test_delete_missing_snapshot(self, provider: InMemoryProvider, ctx):
        with pytest.raises(ResourceNotFound) as exc_info:
            provider.delete_snapshot("snap-missing", ctx)
        assert exc_info.value.code == "InvalidSnapshot.NotFound"


class TestJournalAndFailures:
    def test_calls_are_recorded_with_arguments(self, provider: InMemoryProvider, ctx):
        record = provider.seed("n-d", size=1)
        provider.tag_resource(record.resource_id, "env", "prod", ctx)
        [call] = provider.calls
        assert call.name == "tag_resource"
        assert call["resource_id"] == record.resource_id
        assert (call["key"], call["value"]) == ("env", "prod")

    def test_seed_is_not_journaled(self, provider: InMemoryProvider):
        provider.seed("n-d", size=1)
        assert provider.calls == []

    def test_injected_failure_is_recorded_then_raised(self, provider: InMemoryProvider, ctx):
        provider.fail_on("describe_resources")
        with pytest.raises(ProviderError, match="injected failure in describe_resources"):
            provider.describe_resources(_by_name("n-d"), ctx)
        assert provider.call_names() == ["describe_resources"]

    def test_failures_are_consumed(self, provider: InMemoryProvider, ctx):
        provider.fail_on("describe_resources", times=2)
        for _ in range(2):
            with pytest.raises(ProviderError):
                provider.describe_resources(_by_name("n-d"), ctx)
        assert provider.describe_resources(_by_name("n-d"), ctx) == []

    def test_failure_does_not_mutate_state(self, provider: InMemoryProvider, ctx):
        provider.fail_on("create_resource")
        with pytest.raises(ProviderError):
            provider.create_resource(CreateSpec(zone="z", type="gp2", size=1), ctx)
        assert provider.resources() == []

    def test_cancelled_context_is_not_journaled(self, provider: InMemoryProvider):
        ctx = OperationContext.background()
        ctx.cancel()
        with pytest.raises(OperationCancelled):
            provider.describe_resources(_by_name("n-d"), ctx)
        assert provider.calls == []

    def test_reset_calls(self, provider: InMemoryProvider, ctx):
        provider.describe_resources(_by_name("n-d"), ctx)
        provider.reset_calls()
        assert provider.call_names() == []
