"""Lifecycle controller for named, taggable, asynchronously provisioned resources.

The controller turns a ResourceDescriptor into provider state and keeps
it there: provision() ensures the resource exists, resize() replaces it
with a bigger one through a snapshot, delete() tears it down. All calls
block; the only suspension points are the provider waits.

Example:
    descriptor = ResourceDescriptor(
        name="data", size=10, type="gp2", instance=InstanceContext("node1"),
    )
    controller = LifecycleController(descriptor, AWS().create_client(), ControllerConfig(zone="us-east-1a"))
    controller.provision()

    controller.update_descriptor(descriptor.with_size(20))
    if controller.needs_resize():
        controller.resize()
"""

from __future__ import annotations

from dataclasses import replace
from enum import StrEnum

from loguru import logger

from cloudkeeper import naming
from cloudkeeper.callback import emit
from cloudkeeper.config import ControllerConfig
from cloudkeeper.constants import NON_TERMINAL_STATES
from cloudkeeper.context import OperationContext
from cloudkeeper.core.exceptions import (
    CloudkeeperError,
    ConfigurationError,
    OrphanResourceRisk,
    ResourceIdentityUnavailable,
    ResourceNotFound,
)
from cloudkeeper.events import (
    OrphanRiskDetected,
    ResourceAvailable,
    ResourceCreating,
    ResourceDeleted,
    ResourceDeleting,
    ResourceDiscovered,
    ResourceTagged,
    SnapshotCreated,
    SnapshotDeleted,
)
from cloudkeeper.logging import with_identity
from cloudkeeper.providers.base import ProviderClient
from cloudkeeper.retry import on_retryable, retry_call
from cloudkeeper.saga import ResizeOutcome, SnapshotTransaction
from cloudkeeper.types import (
    CreateSpec,
    ResourceDescriptor,
    ResourceFilter,
    ResourceHandle,
    ResourceRecord,
    SnapshotRecord,
    frozen_tags,
)


class ReconcileAction(StrEnum):
    """What reconcile() had to do."""

    CREATED = "created"
    RESIZED = "resized"
    UNCHANGED = "unchanged"


class LifecycleController:
    """Provision, resize and delete one resource identified by its identity tag.

    The identity is ``{instance.base_name}-{descriptor.name}`` and lives in
    the provider tag ``config.tag_key``. It is the only durable lookup key;
    provider ids are cached in the handle and can change on resize.

    Preconditions (not enforced):
        - Operations on one controller are invoked sequentially.
        - At most one controller exists per identity at a time.

    The provider client may be shared by controllers of different identities.
    """

    def __init__(
        self,
        descriptor: ResourceDescriptor,
        provider: ProviderClient,
        config: ControllerConfig,
    ) -> None:
        self._descriptor = descriptor
        self.provider = provider
        self.config = config
        self.handle = ResourceHandle()

    def __repr__(self) -> str:
        return f"LifecycleController({self._descriptor.name!r}, {self.handle!r})"

    @property
    def descriptor(self) -> ResourceDescriptor:
        return self._descriptor

    @property
    def identity(self) -> str:
        return self._descriptor.identity()

    def update_descriptor(self, descriptor: ResourceDescriptor) -> None:
        """Replace the desired state. The identity must not change."""
        if descriptor.identity() != self.identity:
            raise ConfigurationError(
                f"Descriptor identity changed from {self.identity!r} to {descriptor.identity()!r}"
            )
        self._descriptor = descriptor

    def invalidate(self) -> None:
        """Drop the cached handle so the next call re-discovers."""
        self.handle.invalidate()

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    @with_identity
    def discover(self, ctx: OperationContext | None = None) -> ResourceHandle | None:
        """Resolve the identity to a live resource, or None when absent.

        Memoized: the provider is asked once until invalidate() is called.
        Resources in a deleting state are never returned.
        """
        if self.handle.loaded:
            logger.debug(f"Discovery cache hit for {self.identity}: {self.handle!r}")
            return self.handle if self.handle.exists else None

        ctx = ctx if ctx is not None else OperationContext.background()
        identity = self.identity
        flt = ResourceFilter(
            tag_key=self.config.tag_key,
            tag_value=identity,
            states=NON_TERMINAL_STATES,
        )
        try:
            records = retry_call(
                lambda: self.provider.describe_resources(flt, ctx),
                policy=self.config.describe_retry,
                on=on_retryable,
                ctx=ctx,
            )
        except ResourceNotFound:
            records = []

        if len(records) > 1:
            logger.warning(
                f"{len(records)} live resources carry identity {identity}: "
                f"{', '.join(r.resource_id for r in records)}; using {records[0].resource_id}"
            )

        if records:
            self.handle.adopt(records[0])
            emit(ResourceDiscovered(identity, records[0].resource_id, records[0].size))
            return self.handle

        self.handle.clear()
        emit(ResourceDiscovered(identity, None))
        return None

    # -------------------------------------------------------------------------
    # Provision / Wait / Delete
    # -------------------------------------------------------------------------

    @with_identity
    def provision(self, ctx: OperationContext | None = None) -> None:
        """Ensure the resource exists. A second call is a no-op."""
        ctx = ctx if ctx is not None else OperationContext.background()
        if self.discover(ctx) is not None:
            return
        logger.info(f"Creating resource {self.identity}")
        self._create(None, ctx)

    @with_identity
    def wait_for_available(self, ctx: OperationContext | None = None) -> None:
        """Block until the provider reports the resource available."""
        ctx = ctx if ctx is not None else OperationContext.background()
        if not self.handle.loaded:
            self.discover(ctx)
        resource_id = self.handle.provider_id

        logger.info(f"Waiting for resource {self.identity} ({resource_id}) to be available")
        record = self.provider.wait_until_available(resource_id, ctx)
        self.handle.adopt(record)
        emit(ResourceAvailable(self.identity, record.resource_id, record.size))

    @with_identity
    def delete(self, ctx: OperationContext | None = None) -> None:
        """Delete the resource. Succeeds immediately when it does not exist.

        If the provider's delete call fails, the handle keeps the id so a
        retry targets the same resource.
        """
        ctx = ctx if ctx is not None else OperationContext.background()
        if self.discover(ctx) is None:
            return

        identity = self.identity
        resource_id = self.handle.provider_id
        try:
            # Most providers refuse to delete a resource that is still creating.
            self.wait_for_available(ctx)
            logger.info(f"Deleting resource {identity} ({resource_id})")
            emit(ResourceDeleting(identity, resource_id))
            self.provider.delete_resource(resource_id, ctx)
        except ResourceNotFound:
            logger.info(f"Resource {identity} ({resource_id}) disappeared before deletion")

        self.handle.clear()
        emit(ResourceDeleted(identity, resource_id))

    # -------------------------------------------------------------------------
    # Resize
    # -------------------------------------------------------------------------

    @with_identity
    def needs_resize(self, ctx: OperationContext | None = None) -> bool:
        """True when the resource exists and its size differs from the descriptor."""
        handle = self.discover(ctx)
        if handle is None:
            return False
        return self._descriptor.size != handle.observed_size

    @with_identity
    def resize(self, ctx: OperationContext | None = None) -> ResizeOutcome:
        """Replace the resource with one of the descriptor's size via a snapshot.

        Raises:
            ResourceIdentityUnavailable: There is no resource to resize.
            ProviderError: Snapshotting failed; the original is untouched.
            StaleSnapshotRisk: The saga aborted and left its snapshot behind.
            OrphanResourceRisk: The replacement was created but not tagged.
        """
        ctx = ctx if ctx is not None else OperationContext.background()
        if self.discover(ctx) is None:
            raise ResourceIdentityUnavailable(f"no resource to resize for {self.identity}")
        return SnapshotTransaction(self, ctx).run()

    @with_identity
    def reconcile(self, ctx: OperationContext | None = None) -> ReconcileAction:
        """Bring the provider in line with the descriptor: create, resize or nothing."""
        ctx = ctx if ctx is not None else OperationContext.background()
        if self.discover(ctx) is None:
            self.provision(ctx)
            return ReconcileAction.CREATED
        if self.needs_resize(ctx):
            self.resize(ctx)
            return ReconcileAction.RESIZED
        return ReconcileAction.UNCHANGED

    # -------------------------------------------------------------------------
    # Transactions used by provision and the resize saga
    # -------------------------------------------------------------------------

    def _create(self, source_snapshot_id: str | None, ctx: OperationContext) -> ResourceRecord:
        """Create, tag, record, then wait. Tagging failure leaves an orphan."""
        identity = self.identity
        spec = CreateSpec(
            zone=self.config.zone,
            type=self._descriptor.type,
            size=self._descriptor.size,
            source_snapshot_id=source_snapshot_id,
        )
        emit(ResourceCreating(identity, spec.size, spec.type, source_snapshot_id))
        record = self.provider.create_resource(spec, ctx)

        try:
            self.provider.tag_resource(record.resource_id, self.config.tag_key, identity, ctx)
        except CloudkeeperError as e:
            logger.error(
                f"Resource {record.resource_id} created but tagging as {identity} failed: {e}"
            )
            emit(OrphanRiskDetected(identity, record.resource_id, str(e)))
            raise OrphanResourceRisk(record.resource_id, identity) from e
        emit(ResourceTagged(identity, record.resource_id))

        tags = frozen_tags({**record.tags, self.config.tag_key: identity})
        self.handle.adopt(replace(record, tags=tags))
        self.wait_for_available(ctx)
        return self.handle.record or record

    def _snapshot_description(self) -> str:
        timestamp = self._descriptor.instance.release_timestamp or naming.release_timestamp()
        return naming.snapshot_description(self.identity, timestamp)

    def _start_snapshot(self, ctx: OperationContext) -> SnapshotRecord:
        return self.provider.create_snapshot(
            self.handle.provider_id, self._snapshot_description(), ctx,
        )

    def _await_snapshot(self, snapshot: SnapshotRecord, ctx: OperationContext) -> SnapshotRecord:
        logger.info(f"Waiting for snapshot {snapshot.snapshot_id} of {self.identity} to complete")
        completed = self.provider.wait_until_snapshot_completed(snapshot.snapshot_id, ctx)
        emit(SnapshotCreated(self.identity, completed.snapshot_id, completed.description))
        return completed

    def _create_snapshot(self, ctx: OperationContext) -> SnapshotRecord:
        """Snapshot the current resource and block until the snapshot completes."""
        return self._await_snapshot(self._start_snapshot(ctx), ctx)

    def _delete_snapshot(self, snapshot: SnapshotRecord, ctx: OperationContext) -> None:
        """Delete a snapshot. Errors go to the caller, which decides if they are fatal."""
        try:
            self.provider.delete_snapshot(snapshot.snapshot_id, ctx)
        except ResourceNotFound:
            logger.debug(f"Snapshot {snapshot.snapshot_id} already gone")
        emit(SnapshotDeleted(self.identity, snapshot.snapshot_id))
