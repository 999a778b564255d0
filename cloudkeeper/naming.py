"""Identity and description formats.

Client tooling reproduces these exactly, so they are kept in one place.
"""

from __future__ import annotations

from datetime import UTC, datetime

from cloudkeeper.constants import RELEASE_TIMESTAMP_FORMAT


def identity(base_name: str, name: str) -> str:
    """Durable lookup key of a resource: ``{instance base name}-{blueprint name}``."""
    return f"{base_name}-{name}"


def snapshot_description(resource_identity: str, release_timestamp: str) -> str:
    return f"{resource_identity}-{release_timestamp}"


def release_timestamp(now: datetime | None = None) -> str:
    """Timestamp used when the instance carries no release timestamp."""
    return (now or datetime.now(UTC)).strftime(RELEASE_TIMESTAMP_FORMAT)
