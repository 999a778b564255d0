"""Core data types for the resource lifecycle controller.

Descriptors say what the caller wants, records say what the provider
reports, and the handle is the controller's cached view of one resource.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from cloudkeeper import naming
from cloudkeeper.constants import ResourceState, SnapshotState, Tag
from cloudkeeper.core.exceptions import ResourceIdentityUnavailable

# =============================================================================
# Desired State
# =============================================================================


@dataclass(frozen=True, slots=True)
class InstanceContext:
    """Naming context of the cluster node that owns the resource.

    Args:
        base_name: Prefix of every identity derived for this node (e.g. "node1").
        release_timestamp: Timestamp of the node's current release, used in
            snapshot descriptions. Current UTC time when None.
    """

    base_name: str
    release_timestamp: str | None = None

    def __post_init__(self) -> None:
        if not self.base_name:
            raise ValueError("base_name must not be empty")


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """Immutable specification of a desired resource.

    A size change is a new descriptor (see with_size), never a mutation.

    Args:
        name: Blueprint name. May be None until assigned; identity() then raises.
        size: Provisioned size in GiB.
        type: Provider resource type (e.g. "gp2", "gp3", "io1").
        instance: Naming context supplying the identity prefix.
    """

    name: str | None
    size: int
    type: str
    instance: InstanceContext

    def __post_init__(self) -> None:
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size <= 0:
            raise ValueError(f"size must be a positive integer, got {self.size!r}")
        if not self.type:
            raise ValueError("type must not be empty")

    def identity(self) -> str:
        if not self.name:
            raise ResourceIdentityUnavailable("descriptor has no name")
        return naming.identity(self.instance.base_name, self.name)

    def with_size(self, size: int) -> ResourceDescriptor:
        return replace(self, size=size)


# =============================================================================
# Provider Records
# =============================================================================


@dataclass(frozen=True, slots=True)
class ResourceRecord:
    """A resource as reported by the provider."""

    resource_id: str
    size: int
    state: ResourceState
    type: str = ""
    zone: str = ""
    tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    source_snapshot_id: str | None = None

    @property
    def name_tag(self) -> str | None:
        return self.tags.get(Tag.NAME)


@dataclass(frozen=True, slots=True)
class SnapshotRecord:
    """Transient snapshot taken during a resize. Never persisted."""

    snapshot_id: str
    description: str
    resource_id: str = ""
    state: SnapshotState = SnapshotState.PENDING


@dataclass(frozen=True, slots=True)
class ResourceFilter:
    """Describe filter: one tag value plus a state allow-list."""

    tag_key: str
    tag_value: str
    states: frozenset[ResourceState]

    def matches(self, record: ResourceRecord) -> bool:
        return record.tags.get(self.tag_key) == self.tag_value and record.state in self.states


@dataclass(frozen=True, slots=True)
class CreateSpec:
    """Arguments of a create-resource call."""

    zone: str
    type: str
    size: int
    source_snapshot_id: str | None = None


def frozen_tags(tags: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> Mapping[str, str]:
    return MappingProxyType(dict(tags))


# =============================================================================
# Handle
# =============================================================================


@dataclass(slots=True)
class _CacheEntry:
    loaded: bool = False
    record: ResourceRecord | None = None


class ResourceHandle:
    """The controller's view of one provider resource.

    The handle owns an explicit cache entry:

    - unknown: nothing loaded yet, the next read triggers discovery
    - known absent: discovery ran and found nothing
    - known present: a record from discovery or a successful create

    ``invalidate()`` returns the entry to unknown. ``clear()`` marks the
    resource as known absent after the controller deleted it. The handle
    belongs to exactly one controller and is never shared.
    """

    __slots__ = ("_entry",)

    def __init__(self) -> None:
        self._entry = _CacheEntry()

    def __repr__(self) -> str:
        match self._entry:
            case _CacheEntry(loaded=False):
                return "ResourceHandle(<unknown>)"
            case _CacheEntry(record=None):
                return "ResourceHandle(<absent>)"
            case _CacheEntry(record=record):
                return f"ResourceHandle({record.resource_id}, size={record.size}, state={record.state})"
        return "ResourceHandle()"

    @property
    def loaded(self) -> bool:
        return self._entry.loaded

    @property
    def exists(self) -> bool:
        return self._entry.record is not None

    @property
    def record(self) -> ResourceRecord | None:
        return self._entry.record

    @property
    def provider_id(self) -> str:
        if self._entry.record is None:
            raise ResourceIdentityUnavailable("handle has no provider id")
        return self._entry.record.resource_id

    @property
    def observed_size(self) -> int:
        if self._entry.record is None:
            raise ResourceIdentityUnavailable("handle has no observed size")
        return self._entry.record.size

    @property
    def state(self) -> ResourceState:
        if self._entry.record is None:
            return ResourceState.ABSENT
        return self._entry.record.state

    def adopt(self, record: ResourceRecord) -> None:
        """Populate the handle with a provider record, replacing any previous one."""
        self._entry = _CacheEntry(loaded=True, record=record)

    def clear(self) -> None:
        """Mark the resource as known absent."""
        self._entry = _CacheEntry(loaded=True, record=None)

    def invalidate(self) -> None:
        """Forget everything; the next read re-discovers."""
        self._entry = _CacheEntry()
