"""
Shared pytest fixtures and configuration for siblingcast tests.

This module provides common fixtures used across all test suites including:
- In-memory cluster hubs and worker factories
- Process identities
- Isolated Prometheus registries
- Singleton reset between tests
"""
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from prometheus_client import CollectorRegistry, Counter, Gauge

from siblingcast.cluster.requester import Requester
from siblingcast.cluster.responder import Responder
from siblingcast.config.loader import ProcessIdentity
from siblingcast.transport.memory import MemoryHub, MemoryTransport


class Worker:
    """One simulated worker: identity, transport and responder."""

    def __init__(self, identity: ProcessIdentity, transport: MemoryTransport):
        self.identity = identity
        self.transport = transport
        self.responder = Responder(identity, transport)

    def requester(self, **kwargs) -> Requester:
        return Requester(self.identity, self.transport, responder=self.responder, **kwargs)


# Cluster Fixtures


@pytest.fixture
def hub() -> MemoryHub:
    """Provide an empty in-memory cluster."""
    return MemoryHub()


@pytest.fixture
def make_worker(hub) -> Callable[..., Worker]:
    """Factory connecting a started worker to the hub."""

    def _make_worker(
        process_id: str,
        instance_id: Optional[str] = None,
        clustered: bool = True,
        service_name: str = "siblingcast",
        start: bool = True
    ) -> Worker:
        instance_id = instance_id if instance_id is not None else process_id
        identity = ProcessIdentity(
            self_id=process_id,
            instance_id=instance_id,
            service_name=service_name,
            clustered=clustered,
        )
        transport = hub.connect(process_id, instance_id=instance_id, name=service_name)
        worker = Worker(identity, transport)
        if start:
            worker.responder.start()
        return worker

    return _make_worker


@pytest.fixture
def echo_cluster(make_worker) -> List[Worker]:
    """Three workers answering 'echo' with their own instance id."""
    workers = [make_worker(str(i), instance_id=f"worker-{i}") for i in range(3)]
    for worker in workers:
        instance_id = worker.identity.instance_id
        worker.responder.register("echo", lambda instance_id=instance_id: instance_id)
    return workers


# Identity Fixtures


@pytest.fixture
def clustered_identity() -> ProcessIdentity:
    return ProcessIdentity(self_id="0", instance_id="0", service_name="api", clustered=True)


@pytest.fixture
def standalone_identity() -> ProcessIdentity:
    return ProcessIdentity(self_id="0", instance_id="0", service_name="api", clustered=False)


# Metrics Fixtures


@pytest.fixture
def make_registry() -> Callable[[float, float], CollectorRegistry]:
    """Factory for isolated registries with one counter and one gauge."""

    def _make_registry(requests: float = 0, queue_depth: float = 0) -> CollectorRegistry:
        registry = CollectorRegistry()
        counter = Counter("app_requests", "Requests served", ["route"], registry=registry)
        counter.labels(route="/").inc(requests)
        gauge = Gauge("app_queue_depth", "Queued jobs", registry=registry)
        gauge.set(queue_depth)
        return registry

    return _make_registry


# Test Data Fixtures


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> Path:
    """Create a sample config YAML file."""
    config_file = tmp_path / "cluster.yaml"
    config_file.write_text("""
cluster:
  include_self: true
  default_timeout_seconds: 5
  siblings:
    - process_id: 0
      instance_id: a
      url: http://127.0.0.1:9100/
    - process_id: 1
      url: http://127.0.0.1:9101

metrics:
  aggregators:
    app_queue_depth: max
  worker_stats: false

logging:
  level: DEBUG
""")
    return config_file


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset singleton instances between tests."""
    import siblingcast.cluster.node as node_module
    import siblingcast.config.loader as loader_module
    import siblingcast.metrics.snapshot as snapshot_module

    node_module._cluster_node = None
    loader_module._process_identity = None
    snapshot_module.reset_aggregators()

    yield

    node_module._cluster_node = None
    loader_module._process_identity = None
    snapshot_module.reset_aggregators()
