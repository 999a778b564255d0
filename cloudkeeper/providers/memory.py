"""In-memory provider for tests and local development.

Behaves like a block-storage API: created resources start in the
creating state and only become available after a number of polls,
deleted resources linger in the deleting state, and every call is
recorded in a journal. Failures can be injected per operation.

Example:
    provider = InMemoryProvider()
    provider.fail_on("tag_resource", ProviderError("boom"))
    controller = LifecycleController(descriptor, provider, config)
    with pytest.raises(OrphanResourceRisk):
        controller.provision()
    assert provider.call_names() == ["describe_resources", "create_resource", "tag_resource"]
"""

from __future__ import annotations

import itertools
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from cloudkeeper.constants import ResourceState, SnapshotState
from cloudkeeper.context import OperationContext
from cloudkeeper.core.exceptions import ProviderError, ResourceNotFound
from cloudkeeper.types import (
    CreateSpec,
    ResourceFilter,
    ResourceRecord,
    SnapshotRecord,
    frozen_tags,
)
from cloudkeeper.wait import wait_for_state


@dataclass(frozen=True, slots=True)
class ProviderCall:
    """One journal entry: operation name plus its arguments."""

    name: str
    args: MappingProxyType[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __getitem__(self, key: str) -> Any:
        return self.args[key]


@dataclass(frozen=True, slots=True)
class Memory:
    """In-memory provider configuration.

    Args:
        settle_polls: Polls a new resource or snapshot spends pending before it is ready.
        wait_timeout: Timeout of wait_until_available, in seconds.
        wait_interval: Sleep between polls, in seconds.
        id_prefix: Prefix of generated resource ids.
    """

    settle_polls: int = 1
    wait_timeout: float = 5.0
    wait_interval: float = 0.0
    id_prefix: str = "vol"

    @property
    def type(self) -> str: return "memory"

    def create_client(self) -> InMemoryProvider:
        return InMemoryProvider(self)


class InMemoryProvider:
    """ProviderClient backed by dictionaries, guarded by a lock."""

    def __init__(self, config: Memory | None = None) -> None:
        self.config = config or Memory()
        self.calls: list[ProviderCall] = []
        self._lock = threading.Lock()
        self._resources: dict[str, ResourceRecord] = {}
        self._snapshots: dict[str, SnapshotRecord] = {}
        self._pending_polls: dict[str, int] = {}
        self._failures: defaultdict[str, deque[Exception]] = defaultdict(deque)
        self._ids = itertools.count(1)

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def fail_on(self, operation: str, error: Exception | None = None, *, times: int = 1) -> None:
        """Make the next `times` calls of operation raise error.

        The call is still recorded in the journal before it fails.
        """
        exc = error or ProviderError(f"injected failure in {operation}", operation=operation)
        with self._lock:
            self._failures[operation].extend([exc] * times)

    def seed(
        self,
        name_tag: str | None,
        *,
        size: int,
        type: str = "gp2",
        state: ResourceState = ResourceState.AVAILABLE,
        zone: str = "us-east-1a",
    ) -> ResourceRecord:
        """Add an existing resource, as if created out of band."""
        with self._lock:
            record = ResourceRecord(
                resource_id=self._next_id(self.config.id_prefix),
                size=size,
                state=state,
                type=type,
                zone=zone,
                tags=frozen_tags({"Name": name_tag} if name_tag else {}),
            )
            self._resources[record.resource_id] = record
            return record

    def resource(self, resource_id: str) -> ResourceRecord | None:
        with self._lock:
            return self._resources.get(resource_id)

    def resources(self) -> list[ResourceRecord]:
        with self._lock:
            return list(self._resources.values())

    def live_resources(self) -> list[ResourceRecord]:
        return [r for r in self.resources() if r.state is not ResourceState.DELETING]

    def snapshots(self) -> list[SnapshotRecord]:
        with self._lock:
            return list(self._snapshots.values())

    def call_names(self) -> list[str]:
        return [c.name for c in self.calls]

    def calls_to(self, name: str) -> list[ProviderCall]:
        return [c for c in self.calls if c.name == name]

    def reset_calls(self) -> None:
        self.calls.clear()

    def settle(self) -> None:
        """Finish every pending transition: deleting resources disappear."""
        with self._lock:
            self._resources = {
                rid: r for rid, r in self._resources.items()
                if r.state is not ResourceState.DELETING
            }

    # -------------------------------------------------------------------------
    # ProviderClient
    # -------------------------------------------------------------------------

    def describe_resources(
        self, flt: ResourceFilter, ctx: OperationContext,
    ) -> list[ResourceRecord]:
        self._record("describe_resources", ctx, tag=flt.tag_value, states=flt.states)
        with self._lock:
            return [r for r in self._resources.values() if flt.matches(r)]

    def create_resource(self, spec: CreateSpec, ctx: OperationContext) -> ResourceRecord:
        self._record(
            "create_resource",
            ctx,
            zone=spec.zone,
            type=spec.type,
            size=spec.size,
            source_snapshot_id=spec.source_snapshot_id,
        )
        with self._lock:
            if spec.source_snapshot_id is not None:
                snapshot = self._snapshots.get(spec.source_snapshot_id)
                if snapshot is None:
                    raise ResourceNotFound(
                        f"Snapshot {spec.source_snapshot_id} not found",
                        code="InvalidSnapshot.NotFound",
                        operation="create_resource",
                    )
            record = ResourceRecord(
                resource_id=self._next_id(self.config.id_prefix),
                size=spec.size,
                state=ResourceState.CREATING,
                type=spec.type,
                zone=spec.zone,
                source_snapshot_id=spec.source_snapshot_id,
            )
            self._resources[record.resource_id] = record
            self._pending_polls[record.resource_id] = self.config.settle_polls
            return record

    def tag_resource(
        self, resource_id: str, key: str, value: str, ctx: OperationContext,
    ) -> None:
        self._record("tag_resource", ctx, resource_id=resource_id, key=key, value=value)
        with self._lock:
            record = self._get_resource(resource_id, "tag_resource")
            tags = dict(record.tags)
            tags[key] = value
            self._resources[resource_id] = replace(record, tags=frozen_tags(tags))

    def wait_until_available(self, resource_id: str, ctx: OperationContext) -> ResourceRecord:
        self._record("wait_until_available", ctx, resource_id=resource_id)
        return wait_for_state(
            lambda: self._poll_resource(resource_id),
            lambda r: r.state is ResourceState.AVAILABLE,
            ctx=ctx,
            terminal_check=lambda r: r.state in (ResourceState.ERROR, ResourceState.DELETING),
            timeout=self.config.wait_timeout,
            interval=self.config.wait_interval,
            description=f"resource {resource_id}",
        )

    def delete_resource(self, resource_id: str, ctx: OperationContext) -> None:
        self._record("delete_resource", ctx, resource_id=resource_id)
        with self._lock:
            record = self._get_resource(resource_id, "delete_resource")
            if record.state is ResourceState.IN_USE:
                raise ProviderError(
                    f"Resource {resource_id} is in use",
                    code="VolumeInUse",
                    operation="delete_resource",
                )
            self._resources[resource_id] = replace(record, state=ResourceState.DELETING)

    def create_snapshot(
        self, resource_id: str, description: str, ctx: OperationContext,
    ) -> SnapshotRecord:
        self._record("create_snapshot", ctx, resource_id=resource_id, description=description)
        with self._lock:
            self._get_resource(resource_id, "create_snapshot")
            snapshot = SnapshotRecord(
                snapshot_id=self._next_id("snap"),
                description=description,
                resource_id=resource_id,
                state=SnapshotState.PENDING,
            )
            self._snapshots[snapshot.snapshot_id] = snapshot
            self._pending_polls[snapshot.snapshot_id] = self.config.settle_polls
            return snapshot

    def wait_until_snapshot_completed(
        self, snapshot_id: str, ctx: OperationContext,
    ) -> SnapshotRecord:
        self._record("wait_until_snapshot_completed", ctx, snapshot_id=snapshot_id)
        return wait_for_state(
            lambda: self._poll_snapshot(snapshot_id),
            lambda s: s.state is SnapshotState.COMPLETED,
            ctx=ctx,
            terminal_check=lambda s: s.state is SnapshotState.ERROR,
            timeout=self.config.wait_timeout,
            interval=self.config.wait_interval,
            description=f"snapshot {snapshot_id}",
        )

    def delete_snapshot(self, snapshot_id: str, ctx: OperationContext) -> None:
        self._record("delete_snapshot", ctx, snapshot_id=snapshot_id)
        with self._lock:
            if self._snapshots.pop(snapshot_id, None) is None:
                raise ResourceNotFound(
                    f"Snapshot {snapshot_id} not found",
                    code="InvalidSnapshot.NotFound",
                    operation="delete_snapshot",
                )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _record(self, name: str, ctx: OperationContext, **args: Any) -> None:
        ctx.check()
        with self._lock:
            self.calls.append(ProviderCall(name, MappingProxyType(args)))
            failures = self._failures.get(name)
            error = failures.popleft() if failures else None
        if error is not None:
            raise error

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):08x}"

    def _get_resource(self, resource_id: str, operation: str) -> ResourceRecord:
        record = self._resources.get(resource_id)
        if record is None or record.state is ResourceState.DELETING:
            raise ResourceNotFound(
                f"Resource {resource_id} not found",
                code="InvalidVolume.NotFound",
                operation=operation,
            )
        return record

    def _poll_resource(self, resource_id: str) -> ResourceRecord:
        with self._lock:
            record = self._resources.get(resource_id)
            if record is None:
                raise ResourceNotFound(
                    f"Resource {resource_id} not found",
                    code="InvalidVolume.NotFound",
                    operation="wait_until_available",
                )
            if record.state is ResourceState.CREATING and self._tick(resource_id):
                record = replace(record, state=ResourceState.AVAILABLE)
                self._resources[resource_id] = record
            return record

    def _poll_snapshot(self, snapshot_id: str) -> SnapshotRecord:
        with self._lock:
            snapshot = self._snapshots.get(snapshot_id)
            if snapshot is None:
                raise ResourceNotFound(
                    f"Snapshot {snapshot_id} not found",
                    code="InvalidSnapshot.NotFound",
                    operation="wait_until_snapshot_completed",
                )
            if snapshot.state is SnapshotState.PENDING and self._tick(snapshot_id):
                snapshot = replace(snapshot, state=SnapshotState.COMPLETED)
                self._snapshots[snapshot_id] = snapshot
            return snapshot

    def _tick(self, key: str) -> bool:
        """Count one poll against key. True once its pending polls are spent."""
        remaining = self._pending_polls.get(key, 0) - 1
        self._pending_polls[key] = remaining
        return remaining < 0
