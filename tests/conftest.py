from __future__ import annotations

import pytest

from cloudkeeper.callback import use_callback
from cloudkeeper.config import ControllerConfig
from cloudkeeper.controller import LifecycleController
from cloudkeeper.events import LifecycleEvent
from cloudkeeper.providers.memory import InMemoryProvider, Memory
from cloudkeeper.retry import RetryPolicy
from cloudkeeper.types import InstanceContext, ResourceDescriptor

RELEASE = "20240101T000000Z"


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider(Memory(settle_polls=1, wait_timeout=5.0, wait_interval=0.0))


@pytest.fixture
def config() -> ControllerConfig:
    return ControllerConfig(
        zone="us-east-1a",
        describe_retry=RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False),
    )


@pytest.fixture
def node() -> InstanceContext:
    return InstanceContext(base_name="node1", release_timestamp=RELEASE)


@pytest.fixture
def descriptor(node: InstanceContext) -> ResourceDescriptor:
    return ResourceDescriptor(name="data", size=10, type="gp2", instance=node)


@pytest.fixture
def controller(
    descriptor: ResourceDescriptor,
    provider: InMemoryProvider,
    config: ControllerConfig,
) -> LifecycleController:
    return LifecycleController(descriptor, provider, config)


@pytest.fixture
def provisioned(controller: LifecycleController, provider: InMemoryProvider) -> LifecycleController:
    """A controller whose resource exists, with an empty call journal."""
    controller.provision()
    provider.reset_calls()
    return controller


@pytest.fixture
def events():
    received: list[LifecycleEvent] = []
    with use_callback(received.append):
        yield received
