"""Event Monitoring Example.

Controllers report what they do as events. Some conditions never
surface as exceptions (a snapshot that could not be deleted after a
successful resize, for instance), so the event stream is where an
operator hears about them.
"""

import cloudkeeper as ck
from cloudkeeper.events import (
    CleanupFailed,
    OrphanRiskDetected,
    ResizeCompleted,
    ResourceAvailable,
    StaleSnapshotRetained,
)
from cloudkeeper.providers import InMemoryProvider

# =============================================================================
# Event Handlers
# =============================================================================


def on_event(event):
    match event:
        case ResourceAvailable(identity=name, resource_id=rid, size=size):
            print(f"[READY] {name} ({rid}, {size} GiB)")
        case ResizeCompleted(identity=name, old_resource_id=old, new_resource_id=new):
            print(f"[RESIZE] {name}: {old} -> {new}")
        case _:
            pass


@ck.only(CleanupFailed, StaleSnapshotRetained, OrphanRiskDetected)
def page_operator(event):
    print(f"[ALERT] {event}")


if __name__ == "__main__":
    provider = InMemoryProvider()
    # The snapshot cannot be deleted: the resize still succeeds.
    provider.fail_on("delete_snapshot", ck.ProviderError("access denied", code="UnauthorizedOperation"))

    controller = ck.LifecycleController(
        ck.ResourceDescriptor(name="data", size=10, type="gp3", instance=ck.InstanceContext("node1")),
        provider,
        ck.ControllerConfig(zone="us-east-1a"),
    )

    handlers = ck.setup_logging(ck.LogConfig(level="INFO"))
    try:
        with ck.use_callback(ck.compose(on_event, page_operator)):
            controller.provision()
            controller.update_descriptor(controller.descriptor.with_size(50))
            outcome = controller.resize()
    finally:
        ck.teardown_logging(handlers)

    print(f"\nResize finished at {outcome.stage}, cleanup error: {outcome.cleanup_error}")
