"""
Cluster Broadcast Module

Request/reply broadcast among the sibling workers of one service.
"""
from .node import (
    ClusterNode,
    build_transport,
    get_aggregate,
    get_cluster_node,
    init_cluster_node,
    reset_cluster_node,
)
from .requester import Requester
from .responder import Responder

__all__ = [
    "ClusterNode",
    "Requester",
    "Responder",
    "build_transport",
    "get_aggregate",
    "get_cluster_node",
    "init_cluster_node",
    "reset_cluster_node",
]
