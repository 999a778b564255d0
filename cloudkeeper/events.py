"""Algebraic Data Type (ADT) for cloudkeeper lifecycle events.

Events are the reporting channel of the controller. Everything the
controller does to a provider is announced here, including the
non-fatal conditions that never surface as exceptions:

- Discovery: ResourceDiscovered
- Create: ResourceCreating, ResourceTagged, ResourceAvailable
- Delete: ResourceDeleting, ResourceDeleted
- Snapshots: SnapshotCreated, SnapshotDeleted
- Resize: ResizeStarted, ResizeCompleted
- Risks: OrphanRiskDetected, StaleSnapshotRetained, CleanupFailed

Use pattern matching to handle events in consumers:

    match event:
        case CleanupFailed(snapshot_id=sid, reason=reason):
            alert(f"stale snapshot {sid}: {reason}")
        case ResourceAvailable(identity=name, size=size):
            print(f"{name} ready ({size} GiB)")
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

# =============================================================================
# Discovery Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class ResourceDiscovered:
    """Discovery resolved an identity. resource_id is None when absent."""

    identity: str
    resource_id: str | None
    size: int | None = None


# =============================================================================
# Create Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class ResourceCreating:
    """Create call about to be issued."""

    identity: str
    size: int
    type: str
    source_snapshot_id: str | None = None


@dataclass(frozen=True, slots=True)
class ResourceTagged:
    """Identity tag applied to a freshly created resource."""

    identity: str
    resource_id: str


@dataclass(frozen=True, slots=True)
class ResourceAvailable:
    """Resource reached an available state."""

    identity: str
    resource_id: str
    size: int


# =============================================================================
# Delete Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class ResourceDeleting:
    identity: str
    resource_id: str


@dataclass(frozen=True, slots=True)
class ResourceDeleted:
    identity: str
    resource_id: str


# =============================================================================
# Snapshot Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class SnapshotCreated:
    """Snapshot completed and is usable as a create source."""

    identity: str
    snapshot_id: str
    description: str


@dataclass(frozen=True, slots=True)
class SnapshotDeleted:
    identity: str
    snapshot_id: str


# =============================================================================
# Resize Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class ResizeStarted:
    identity: str
    resource_id: str
    from_size: int
    to_size: int


@dataclass(frozen=True, slots=True)
class ResizeCompleted:
    identity: str
    old_resource_id: str
    new_resource_id: str
    size: int


# =============================================================================
# Risk Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class OrphanRiskDetected:
    """A resource was created but never tagged. It will leak unless reconciled."""

    identity: str
    resource_id: str
    reason: str


@dataclass(frozen=True, slots=True)
class StaleSnapshotRetained:
    """A resize aborted and left its snapshot behind.

    original_deleted is True when the snapshot is the only copy of the data.
    """

    identity: str
    snapshot_id: str
    stage: str
    original_deleted: bool


@dataclass(frozen=True, slots=True)
class CleanupFailed:
    """Post-success cleanup failed. The operation itself succeeded."""

    identity: str
    snapshot_id: str
    reason: str


# =============================================================================
# Union Type (ADT)
# =============================================================================

LifecycleEvent = (
    ResourceDiscovered
    | ResourceCreating
    | ResourceTagged
    | ResourceAvailable
    | ResourceDeleting
    | ResourceDeleted
    | SnapshotCreated
    | SnapshotDeleted
    | ResizeStarted
    | ResizeCompleted
    | OrphanRiskDetected
    | StaleSnapshotRetained
    | CleanupFailed
)

# Type alias for event callback
EventCallback = Callable[[LifecycleEvent], None] | None


__all__ = [
    # Discovery
    "ResourceDiscovered",
    # Create
    "ResourceCreating",
    "ResourceTagged",
    "ResourceAvailable",
    # Delete
    "ResourceDeleting",
    "ResourceDeleted",
    # Snapshots
    "SnapshotCreated",
    "SnapshotDeleted",
    # Resize
    "ResizeStarted",
    "ResizeCompleted",
    # Risks
    "OrphanRiskDetected",
    "StaleSnapshotRetained",
    "CleanupFailed",
    # Union type
    "LifecycleEvent",
    # Callback type
    "EventCallback",
]
