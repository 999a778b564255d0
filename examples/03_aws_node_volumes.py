"""AWS Node Volumes Example.

Reconciles every volume of a cluster node against EC2, one controller per
volume on worker threads, with settings read from cloudkeeper.toml:

    [providers.east]
    type = "aws"
    region = "us-east-1"

    [controllers.node-volumes]
    provider = "east"
    zone = "us-east-1a"

Requires AWS credentials with ec2:*Volume*, ec2:*Snapshot* and ec2:CreateTags.
"""

import cloudkeeper as ck
from cloudkeeper.conc import settle_concurrently

VOLUMES = [
    ("data", 100, "gp3"),
    ("logs", 20, "gp3"),
    ("wal", 50, "io1"),
]

if __name__ == "__main__":
    config, provider_config = ck.resolve_controller("node-volumes")
    client = provider_config.create_client()
    node = ck.InstanceContext("node1")

    controllers = [
        ck.LifecycleController(
            ck.ResourceDescriptor(name=name, size=size, type=kind, instance=node),
            client,
            config,
        )
        for name, size, kind in VOLUMES
    ]

    ctx = ck.OperationContext.background().with_timeout(30 * 60)
    results = settle_concurrently(lambda c: c.reconcile(ctx), controllers)

    for result in results:
        if result.ok:
            print(f"{result.item.identity}: {result.value}")
        else:
            print(f"{result.item.identity}: FAILED ({type(result.error).__name__}: {result.error})")
