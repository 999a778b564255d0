"""Provider capability surface the lifecycle controller depends on."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from cloudkeeper.context import OperationContext
from cloudkeeper.types import CreateSpec, ResourceFilter, ResourceRecord, SnapshotRecord


@runtime_checkable
class ProviderClient(Protocol):
    """Blocking interface over a cloud provider's compute/storage API.

    Implementations must be safe for concurrent use by independent
    controllers. Every method takes the caller's OperationContext and
    raises ProviderError (or its ResourceNotFound subclass) on failure.
    Waits are bounded poll loops honouring the context.
    """

    def describe_resources(
        self, flt: ResourceFilter, ctx: OperationContext,
    ) -> list[ResourceRecord]:
        """List resources carrying flt's tag whose state is in flt.states.

        Parameters
        ----------
        flt
            Tag key/value and the state allow-list.
        ctx
            Operation context.

        Returns
        -------
        list[ResourceRecord]
            Matching resources, possibly empty. Never raises for "nothing found".
        """
        ...

    def create_resource(self, spec: CreateSpec, ctx: OperationContext) -> ResourceRecord:
        """Issue the create call. The returned record is usually still creating."""
        ...

    def tag_resource(
        self, resource_id: str, key: str, value: str, ctx: OperationContext,
    ) -> None:
        ...

    def wait_until_available(self, resource_id: str, ctx: OperationContext) -> ResourceRecord:
        """Block until the resource is available.

        Raises
        ------
        WaitTimeoutError
            The provider-side timeout elapsed first.
        ProviderError
            The resource reached a failure state or the API failed.
        OperationCancelled
            ctx was cancelled or its deadline passed.
        """
        ...

    def delete_resource(self, resource_id: str, ctx: OperationContext) -> None:
        ...

    def create_snapshot(
        self, resource_id: str, description: str, ctx: OperationContext,
    ) -> SnapshotRecord:
        ...

    def wait_until_snapshot_completed(
        self, snapshot_id: str, ctx: OperationContext,
    ) -> SnapshotRecord:
        ...

    def delete_snapshot(self, snapshot_id: str, ctx: OperationContext) -> None:
        ...
