"""AWS provider: EBS volumes and snapshots through the EC2 API."""

from cloudkeeper.providers.aws.client import EC2VolumeClient
from cloudkeeper.providers.aws.config import AWS

__all__ = [
    "AWS",
    "EC2VolumeClient",
]
