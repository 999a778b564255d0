"""cloudkeeper: lifecycle controller for provider-managed cloud resources.

Creates, discovers, resizes and deletes named, taggable resources (EBS
volumes of cluster nodes, for instance) while tolerating asynchronous
provider state, partial failures and orphans.

Example:
    import cloudkeeper as ck
    from cloudkeeper.providers.aws import AWS

    descriptor = ck.ResourceDescriptor(
        name="data", size=10, type="gp2", instance=ck.InstanceContext("node1"),
    )
    controller = ck.LifecycleController(
        descriptor, AWS(region="us-east-1").create_client(), ck.ControllerConfig(zone="us-east-1a"),
    )
    controller.reconcile()
"""

from cloudkeeper.callback import compose, emit, only, use_callback
from cloudkeeper.config import ControllerConfig, load_config, resolve_controller
from cloudkeeper.constants import ResourceState, SnapshotState
from cloudkeeper.context import OperationContext
from cloudkeeper.controller import LifecycleController, ReconcileAction
from cloudkeeper.core.exceptions import (
    CleanupFailure,
    CloudkeeperError,
    ConfigurationError,
    OperationCancelled,
    OrphanResourceRisk,
    ProviderError,
    ResourceIdentityUnavailable,
    ResourceNotFound,
    StaleSnapshotRisk,
    WaitTimeoutError,
)
from cloudkeeper.logging import LogConfig, setup_logging, teardown_logging
from cloudkeeper.providers.base import ProviderClient
from cloudkeeper.retry import RetryPolicy
from cloudkeeper.saga import ResizeOutcome, ResizeStage, SnapshotTransaction
from cloudkeeper.types import (
    CreateSpec,
    InstanceContext,
    ResourceDescriptor,
    ResourceFilter,
    ResourceHandle,
    ResourceRecord,
    SnapshotRecord,
)

__version__ = "0.1.0"

__all__ = [
    # Controller
    "LifecycleController",
    "ReconcileAction",
    "SnapshotTransaction",
    "ResizeOutcome",
    "ResizeStage",
    # Types
    "InstanceContext",
    "ResourceDescriptor",
    "ResourceHandle",
    "ResourceRecord",
    "SnapshotRecord",
    "ResourceFilter",
    "CreateSpec",
    "ResourceState",
    "SnapshotState",
    # Provider
    "ProviderClient",
    # Config
    "ControllerConfig",
    "RetryPolicy",
    "load_config",
    "resolve_controller",
    "OperationContext",
    # Events
    "emit",
    "use_callback",
    "compose",
    "only",
    # Logging
    "LogConfig",
    "setup_logging",
    "teardown_logging",
    # Errors
    "CloudkeeperError",
    "ConfigurationError",
    "ProviderError",
    "ResourceNotFound",
    "ResourceIdentityUnavailable",
    "OrphanResourceRisk",
    "StaleSnapshotRisk",
    "CleanupFailure",
    "WaitTimeoutError",
    "OperationCancelled",
]
