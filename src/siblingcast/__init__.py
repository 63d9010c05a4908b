"""
siblingcast - request/reply broadcast among the sibling workers of one service.

Typical use, from any worker of a clustered service::

    from siblingcast import get_aggregate

    registry = await get_aggregate(timeout=5.0)
"""
from .cluster.node import ClusterNode, get_aggregate, get_cluster_node, init_cluster_node
from .config.loader import ProcessIdentity, is_clustered_mode
from .utils.exceptions import BroadcastTimeoutError, MembershipError

__version__ = "0.1.0"

__all__ = [
    "BroadcastTimeoutError",
    "ClusterNode",
    "MembershipError",
    "ProcessIdentity",
    "get_aggregate",
    "get_cluster_node",
    "init_cluster_node",
    "is_clustered_mode",
]
