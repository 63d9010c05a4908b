"""
Cluster node: the per-process composition of the broadcast protocol.

Wires together:
- process identity and the clustered/standalone mode gate
- the transport (membership, unicast, inbound stream)
- the requester and responder roles
- the metrics collaborator answering ``metrics-get``

``get_aggregate()`` is the entry point consumers use: in a cluster it
gathers the metrics of every worker and merges them, standalone it
returns the local registry without touching the transport.
"""
from typing import Any, Dict, Optional

from prometheus_client import REGISTRY, CollectorRegistry

from ..config.loader import Config, ProcessIdentity, get_process_identity
from ..metrics.aggregator import aggregate
from ..metrics.snapshot import (
    METRICS_CODEC,
    METRICS_TOPIC,
    configure_aggregators,
    get_local_snapshot,
)
from ..metrics.worker_stats import register_worker_stats
from ..transport.base import STATUS_ONLINE, Transport
from ..transport.http import HttpTransport
from ..utils.logging import logger
from .requester import Requester
from .responder import Responder


class ClusterNode:
    """
    One worker's participation in its sibling cluster.

    Features:
    - Broadcast a topic to all siblings and collect their answers
    - Answer siblings' requests for registered topics
    - Cluster-wide metrics aggregation
    """

    def __init__(
        self,
        identity: ProcessIdentity,
        transport: Transport,
        config: Optional[Config] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        """
        Initialize cluster node.

        Args:
            identity: Identity of this worker, fixed at process start
            transport: Transport to the sibling workers
            config: Loaded configuration (default: built-in defaults)
            registry: Local metrics registry (default: the global REGISTRY)
        """
        self.identity = identity
        self.transport = transport
        self.config = config or Config()
        self.registry = registry if registry is not None else REGISTRY
        self.logger = logger.getChild("node")

        self.responder = Responder(identity, transport)
        self.requester = Requester(
            identity,
            transport,
            responder=self.responder,
            include_self=self.config.cluster.include_self,
            default_timeout=self.config.cluster.default_timeout_seconds,
        )
        self.responder.register(METRICS_TOPIC, self.get_local_snapshot, codec=METRICS_CODEC)

        self._started = False
        self._worker_stats_registered = False

        mode = "clustered" if identity.clustered else "standalone"
        self.logger.info(
            f"Cluster node initialized: {identity.service_name}/{identity.self_id} ({mode})"
        )

    @property
    def is_clustered(self) -> bool:
        return self.identity.clustered

    def get_local_snapshot(self):
        """Snapshot of this worker's registry."""
        return get_local_snapshot(self.registry)

    async def start(self):
        """Start answering siblings (clustered mode only touches the transport)."""
        if self._started:
            return

        configure_aggregators(self.config.metrics.aggregators)
        if self.config.metrics.worker_stats and not self._worker_stats_registered:
            register_worker_stats(self.registry)
            self._worker_stats_registered = True

        if self.is_clustered:
            await self.transport.start()
            self.responder.start()

        self._started = True
        self.logger.info("Cluster node started")

    async def stop(self):
        """Stop answering siblings and release the transport."""
        if not self._started:
            return

        if self.is_clustered:
            await self.responder.stop()
            await self.transport.stop()

        self._started = False
        self.logger.info("Cluster node stopped")

    async def get_aggregate(self, timeout: Optional[float] = None) -> CollectorRegistry:
        """
        Get the metrics of the whole cluster.

        Args:
            timeout: Seconds to wait for all siblings (default: configured)

        Returns:
            Merged registry in clustered mode, the local registry otherwise

        Raises:
            BroadcastTimeoutError: If a sibling did not answer in time
            MembershipError: If the sibling list cannot be obtained
        """
        if not self.is_clustered:
            return self.registry

        snapshots = await self.requester.broadcast_and_collect(
            METRICS_TOPIC,
            timeout,
            codec=METRICS_CODEC,
        )
        self.logger.debug(f"Aggregating metrics of {len(snapshots)} workers")
        return aggregate(snapshots)

    def get_status(self) -> Dict[str, Any]:
        """Health and identity, as reported to sibling probes."""
        return {
            "status": STATUS_ONLINE,
            "process_id": self.identity.self_id,
            "instance_id": self.identity.instance_id,
            "service": self.identity.service_name,
            "clustered": self.is_clustered,
        }


def build_transport(identity: ProcessIdentity, config: Config) -> HttpTransport:
    """Create the HTTP transport described by the configuration."""
    return HttpTransport(
        identity.self_id,
        identity.service_name,
        config.cluster.siblings,
        probe_timeout=config.cluster.probe_timeout_seconds,
    )


# Global node instance
_cluster_node: Optional[ClusterNode] = None


def get_cluster_node() -> Optional[ClusterNode]:
    """Get global cluster node instance"""
    return _cluster_node


def init_cluster_node(
    identity: Optional[ProcessIdentity] = None,
    transport: Optional[Transport] = None,
    config: Optional[Config] = None,
    registry: Optional[CollectorRegistry] = None
) -> ClusterNode:
    """Initialize global cluster node"""
    global _cluster_node
    identity = identity or get_process_identity()
    config = config or Config()
    if transport is None:
        transport = build_transport(identity, config)
    _cluster_node = ClusterNode(identity, transport, config=config, registry=registry)
    return _cluster_node


def reset_cluster_node() -> None:
    global _cluster_node
    _cluster_node = None


async def get_aggregate(timeout: Optional[float] = None) -> CollectorRegistry:
    """
    Get cluster-wide metrics from the global node.

    The node is created from the environment on first use; in clustered
    mode it is started so this worker answers its siblings too.
    """
    node = get_cluster_node() or init_cluster_node()
    await node.start()
    return await node.get_aggregate(timeout)
