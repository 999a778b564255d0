"""Volume Lifecycle Example.

Walks one resource through its whole life against the in-memory provider:
- Provision (create, tag, wait)
- Resize through a snapshot
- Delete

Swap InMemoryProvider for AWS().create_client() to run it against EC2.
"""

import cloudkeeper as ck
from cloudkeeper.providers import InMemoryProvider

provider = InMemoryProvider()
config = ck.ControllerConfig(zone="us-east-1a")

descriptor = ck.ResourceDescriptor(
    name="data",
    size=10,
    type="gp2",
    instance=ck.InstanceContext("node1"),
)
controller = ck.LifecycleController(descriptor, provider, config)

if __name__ == "__main__":
    controller.provision()
    print(f"Provisioned {controller.identity}: {controller.handle!r}")

    controller.update_descriptor(descriptor.with_size(20))
    if controller.needs_resize():
        outcome = controller.resize()
        print(f"Resized {outcome.old_resource_id} -> {outcome.new_resource_id} ({outcome.stage})")

    controller.delete()
    print(f"Deleted: {controller.handle!r}")

    print("\nProvider calls:")
    for call in provider.calls:
        print(f"  {call.name}({dict(call.args)})")
