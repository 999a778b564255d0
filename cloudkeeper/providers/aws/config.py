"""AWS provider configuration.

Immutable configuration dataclass for the EC2 volume client.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass

from cloudkeeper.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SNAPSHOT_TIMEOUT,
    DEFAULT_WAIT_INTERVAL,
    DEFAULT_WAIT_TIMEOUT,
)

if typing.TYPE_CHECKING:
    from cloudkeeper.providers.aws.client import EC2VolumeClient


@dataclass(frozen=True, slots=True)
class AWS:
    """AWS provider configuration.

    Example:
        >>> from cloudkeeper.providers.aws import AWS
        >>> client = AWS(region="us-west-2").create_client()

    Args:
        region: AWS region of the EC2 API. Default: us-east-1
        profile: Named credentials profile. If None, the default chain is used.
        request_timeout: Connect/read timeout of each API call, in seconds.
        max_attempts: botocore retry attempts for throttled calls.
        wait_timeout: How long to wait for a volume to become available.
        wait_interval: Seconds between volume/snapshot state polls.
        snapshot_timeout: How long to wait for a snapshot to complete.
    """

    region: str = "us-east-1"
    profile: str | None = None
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    max_attempts: int = 3
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT
    wait_interval: float = DEFAULT_WAIT_INTERVAL
    snapshot_timeout: float = DEFAULT_SNAPSHOT_TIMEOUT

    @property
    def type(self) -> str: return "aws"

    def create_client(self) -> EC2VolumeClient:
        from cloudkeeper.providers.aws.client import EC2VolumeClient
        return EC2VolumeClient(self)
