"""EC2 block-storage implementation of ProviderClient.

Volumes are the managed resource. The identity lives in the ``Name``
tag, discovery filters on ``tag:Name`` plus the ``status`` allow-list,
and waits poll describe calls through cloudkeeper.wait so the caller's
OperationContext can interrupt them (botocore waiters cannot be
cancelled).
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import cached_property
from typing import TYPE_CHECKING, Any, Final

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from cloudkeeper.constants import ResourceState, SnapshotState
from cloudkeeper.context import OperationContext
from cloudkeeper.core.exceptions import ProviderError, ResourceNotFound
from cloudkeeper.internal.rethrow import rethrow
from cloudkeeper.types import (
    CreateSpec,
    ResourceFilter,
    ResourceRecord,
    SnapshotRecord,
    frozen_tags,
)
from cloudkeeper.wait import wait_for_state

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client

    from cloudkeeper.providers.aws.config import AWS

NOT_FOUND_CODES: Final = frozenset({
    "InvalidVolume.NotFound",
    "InvalidSnapshot.NotFound",
})

# Snapshot states EC2 reports besides pending/completed/error.
_SNAPSHOT_STATES: Final[Mapping[str, SnapshotState]] = {
    "pending": SnapshotState.PENDING,
    "completed": SnapshotState.COMPLETED,
    "error": SnapshotState.ERROR,
    "recoverable": SnapshotState.PENDING,
    "recovering": SnapshotState.PENDING,
}


def _translate(operation: str):
    """Build a rethrow target mapping botocore errors onto ProviderError."""

    def into(exc: BotoCoreError | ClientError) -> ProviderError:
        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            code = error.get("Code", "")
            message = error.get("Message", str(exc))
            if code in NOT_FOUND_CODES:
                return ResourceNotFound(message, code=code, operation=operation)
            return ProviderError(f"{operation} failed: {code}: {message}", code=code, operation=operation)
        return ProviderError(f"{operation} failed: {exc}", operation=operation)

    return into


_API_ERRORS: Final = (ClientError, BotoCoreError)


def parse_volume(data: Mapping[str, Any]) -> ResourceRecord:
    """Convert a describe_volumes/create_volume entry into a ResourceRecord."""
    return ResourceRecord(
        resource_id=data["VolumeId"],
        size=int(data["Size"]),
        state=ResourceState(data["State"]),
        type=data.get("VolumeType", ""),
        zone=data.get("AvailabilityZone", ""),
        tags=frozen_tags((t["Key"], t["Value"]) for t in data.get("Tags", [])),
        source_snapshot_id=data.get("SnapshotId") or None,
    )


def parse_snapshot(data: Mapping[str, Any]) -> SnapshotRecord:
    return SnapshotRecord(
        snapshot_id=data["SnapshotId"],
        description=data.get("Description", ""),
        resource_id=data.get("VolumeId", ""),
        state=_SNAPSHOT_STATES.get(data.get("State", "pending"), SnapshotState.PENDING),
    )


class EC2VolumeClient:
    """ProviderClient over the EC2 volume and snapshot APIs.

    boto3 clients are thread-safe, so one EC2VolumeClient can be shared
    by every controller of a region.
    """

    def __init__(self, config: AWS, ec2: EC2Client | None = None) -> None:
        self.config = config
        if ec2 is not None:
            self.__dict__["_ec2"] = ec2

    @cached_property
    def _ec2(self) -> EC2Client:
        import boto3
        from botocore.config import Config

        session = boto3.Session(profile_name=self.config.profile)
        return session.client(
            "ec2",
            region_name=self.config.region,
            config=Config(
                connect_timeout=self.config.request_timeout,
                read_timeout=self.config.request_timeout,
                retries={"max_attempts": self.config.max_attempts, "mode": "standard"},
            ),
        )

    # -------------------------------------------------------------------------
    # Volumes
    # -------------------------------------------------------------------------

    @rethrow(_API_ERRORS, into=_translate("describe_resources"))
    def describe_resources(
        self, flt: ResourceFilter, ctx: OperationContext,
    ) -> list[ResourceRecord]:
        ctx.check()
        paginator = self._ec2.get_paginator("describe_volumes")
        pages = paginator.paginate(
            Filters=[
                {"Name": f"tag:{flt.tag_key}", "Values": [flt.tag_value]},
                # Keeps volumes in a deleting state out of discovery.
                {"Name": "status", "Values": [str(s) for s in sorted(flt.states)]},
            ],
        )
        return [parse_volume(v) for page in pages for v in page.get("Volumes", [])]

    @rethrow(_API_ERRORS, into=_translate("create_resource"))
    def create_resource(self, spec: CreateSpec, ctx: OperationContext) -> ResourceRecord:
        ctx.check()
        params: dict[str, Any] = {
            "AvailabilityZone": spec.zone,
            "VolumeType": spec.type,
            "Size": spec.size,
        }
        if spec.source_snapshot_id is not None:
            params["SnapshotId"] = spec.source_snapshot_id
        return parse_volume(self._ec2.create_volume(**params))

    @rethrow(_API_ERRORS, into=_translate("tag_resource"))
    def tag_resource(
        self, resource_id: str, key: str, value: str, ctx: OperationContext,
    ) -> None:
        ctx.check()
        self._ec2.create_tags(Resources=[resource_id], Tags=[{"Key": key, "Value": value}])

    def wait_until_available(self, resource_id: str, ctx: OperationContext) -> ResourceRecord:
        logger.debug(f"Polling EBS volume {resource_id} until available")
        return wait_for_state(
            lambda: self._describe_volume(resource_id),
            lambda v: v.state is ResourceState.AVAILABLE,
            ctx=ctx,
            terminal_check=lambda v: v.state in (ResourceState.ERROR, ResourceState.DELETING),
            timeout=self.config.wait_timeout,
            interval=self.config.wait_interval,
            description=f"EBS volume {resource_id}",
        )

    @rethrow(_API_ERRORS, into=_translate("delete_resource"))
    def delete_resource(self, resource_id: str, ctx: OperationContext) -> None:
        ctx.check()
        self._ec2.delete_volume(VolumeId=resource_id)

    @rethrow(_API_ERRORS, into=_translate("wait_until_available"))
    def _describe_volume(self, resource_id: str) -> ResourceRecord | None:
        volumes = self._ec2.describe_volumes(VolumeIds=[resource_id]).get("Volumes", [])
        if not volumes:
            return None
        record = parse_volume(volumes[0])
        # EC2 keeps reporting removed volumes for a while as "deleted".
        if record.state is ResourceState.ABSENT:
            raise ResourceNotFound(
                f"Volume {resource_id} was deleted",
                code="InvalidVolume.NotFound",
                operation="wait_until_available",
            )
        return record

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    @rethrow(_API_ERRORS, into=_translate("create_snapshot"))
    def create_snapshot(
        self, resource_id: str, description: str, ctx: OperationContext,
    ) -> SnapshotRecord:
        ctx.check()
        return parse_snapshot(
            self._ec2.create_snapshot(VolumeId=resource_id, Description=description)
        )

    def wait_until_snapshot_completed(
        self, snapshot_id: str, ctx: OperationContext,
    ) -> SnapshotRecord:
        return wait_for_state(
            lambda: self._describe_snapshot(snapshot_id),
            lambda s: s.state is SnapshotState.COMPLETED,
            ctx=ctx,
            terminal_check=lambda s: s.state is SnapshotState.ERROR,
            timeout=self.config.snapshot_timeout,
            interval=self.config.wait_interval,
            description=f"EBS snapshot {snapshot_id}",
        )

    @rethrow(_API_ERRORS, into=_translate("delete_snapshot"))
    def delete_snapshot(self, snapshot_id: str, ctx: OperationContext) -> None:
        ctx.check()
        self._ec2.delete_snapshot(SnapshotId=snapshot_id)

    @rethrow(_API_ERRORS, into=_translate("wait_until_snapshot_completed"))
    def _describe_snapshot(self, snapshot_id: str) -> SnapshotRecord | None:
        snapshots = self._ec2.describe_snapshots(SnapshotIds=[snapshot_id]).get("Snapshots", [])
        return parse_snapshot(snapshots[0]) if snapshots else None
