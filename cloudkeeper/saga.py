"""Resize as a snapshot-and-replace saga.

Block storage on the modeled providers cannot grow in place, so a resize
snapshots the resource, deletes it, recreates it from the snapshot with
the new size under the same identity, then deletes the snapshot:

    ORIGINAL -> SNAPSHOT_PENDING -> SNAPSHOT_READY -> ORIGINAL_DELETED
             -> NEW_PENDING -> NEW_AVAILABLE -> CLEAN

Steps 1-3 are fatal. A failure before the delete leaves the original
intact (ABORTED_BEFORE_DELETE); a failure after it leaves the snapshot as
the only copy of the data (ABORTED_AFTER_DELETE). Either way the snapshot
is kept and reported. Step 4 is never fatal: a resize that produced the
resized resource succeeds even if the snapshot cannot be removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, NoReturn

from loguru import logger

from cloudkeeper.callback import emit
from cloudkeeper.core.exceptions import (
    CleanupFailure,
    CloudkeeperError,
    OrphanResourceRisk,
    StaleSnapshotRisk,
)
from cloudkeeper.events import (
    CleanupFailed,
    ResizeCompleted,
    ResizeStarted,
    StaleSnapshotRetained,
)

if TYPE_CHECKING:
    from cloudkeeper.context import OperationContext
    from cloudkeeper.controller import LifecycleController
    from cloudkeeper.types import SnapshotRecord


class ResizeStage(StrEnum):
    ORIGINAL = "original"
    SNAPSHOT_PENDING = "snapshot-pending"
    SNAPSHOT_READY = "snapshot-ready"
    ORIGINAL_DELETED = "original-deleted"
    NEW_PENDING = "new-pending"
    NEW_AVAILABLE = "new-available"
    CLEAN = "clean"
    ABORTED_BEFORE_DELETE = "aborted-before-delete"
    ABORTED_AFTER_DELETE = "aborted-after-delete"


@dataclass(frozen=True, slots=True)
class ResizeOutcome:
    """Result of a successful resize.

    stage is CLEAN, or NEW_AVAILABLE when the snapshot could not be deleted
    (cleanup_error then says why).
    """

    identity: str
    stage: ResizeStage
    old_resource_id: str
    new_resource_id: str
    snapshot_id: str
    size: int
    cleanup_error: CleanupFailure | None = None

    @property
    def clean(self) -> bool:
        return self.cleanup_error is None


class SnapshotTransaction:
    """One run of the resize saga for a controller's current resource."""

    def __init__(self, controller: LifecycleController, ctx: OperationContext) -> None:
        self.controller = controller
        self.ctx = ctx
        self.stage = ResizeStage.ORIGINAL
        self.snapshot: SnapshotRecord | None = None

    def run(self) -> ResizeOutcome:
        controller, ctx = self.controller, self.ctx
        identity = controller.identity
        old_id = controller.handle.provider_id
        old_size = controller.handle.observed_size
        new_size = controller.descriptor.size

        logger.info(f"Resizing resource {identity} ({old_id}) from {old_size} to {new_size}")
        emit(ResizeStarted(identity, old_id, old_size, new_size))

        # 1. Snapshot. Nothing has changed yet.
        self.stage = ResizeStage.SNAPSHOT_PENDING
        try:
            snapshot = controller._start_snapshot(ctx)
        except CloudkeeperError:
            self.stage = ResizeStage.ABORTED_BEFORE_DELETE
            raise
        self.snapshot = snapshot
        try:
            snapshot = self.snapshot = controller._await_snapshot(snapshot, ctx)
        except CloudkeeperError as e:
            self._abort(ResizeStage.ABORTED_BEFORE_DELETE, snapshot, e)
        self.stage = ResizeStage.SNAPSHOT_READY

        # 2. Delete the original. On failure the original still exists.
        try:
            controller.delete(ctx)
        except CloudkeeperError as e:
            self._abort(ResizeStage.ABORTED_BEFORE_DELETE, snapshot, e)
        self.stage = ResizeStage.ORIGINAL_DELETED

        # 3. Recreate from the snapshot with the new size, same identity.
        self.stage = ResizeStage.NEW_PENDING
        try:
            record = controller._create(snapshot.snapshot_id, ctx)
        except OrphanResourceRisk:
            self._retain(ResizeStage.ABORTED_AFTER_DELETE, snapshot)
            raise
        except CloudkeeperError as e:
            self._abort(ResizeStage.ABORTED_AFTER_DELETE, snapshot, e)
        self.stage = ResizeStage.NEW_AVAILABLE
        emit(ResizeCompleted(identity, old_id, record.resource_id, record.size))

        # 4. Drop the snapshot. Never fails the resize.
        cleanup_error: CleanupFailure | None = None
        try:
            controller._delete_snapshot(snapshot, ctx)
        except CloudkeeperError as e:
            cleanup_error = CleanupFailure(snapshot.snapshot_id, str(e))
            logger.warning(f"Error deleting snapshot {snapshot.snapshot_id}: {e}")
            emit(CleanupFailed(identity, snapshot.snapshot_id, str(e)))
        else:
            self.stage = ResizeStage.CLEAN

        return ResizeOutcome(
            identity=identity,
            stage=self.stage,
            old_resource_id=old_id,
            new_resource_id=record.resource_id,
            snapshot_id=snapshot.snapshot_id,
            size=record.size,
            cleanup_error=cleanup_error,
        )

    def _retain(self, stage: ResizeStage, snapshot: SnapshotRecord) -> StaleSnapshotRisk:
        """Record the terminal stage and report the kept snapshot."""
        self.stage = stage
        identity = self.controller.identity
        risk = StaleSnapshotRisk(snapshot.snapshot_id, identity, stage)
        if risk.original_deleted:
            logger.warning(
                f"Resize of {identity} failed after the original was deleted; "
                f"snapshot {snapshot.snapshot_id} is the only copy of the data"
            )
        else:
            logger.warning(
                f"Resize of {identity} aborted; original kept, snapshot {snapshot.snapshot_id} retained"
            )
        emit(StaleSnapshotRetained(identity, snapshot.snapshot_id, stage, risk.original_deleted))
        return risk

    def _abort(self, stage: ResizeStage, snapshot: SnapshotRecord, cause: CloudkeeperError) -> NoReturn:
        raise self._retain(stage, snapshot) from cause
