"""
Configuration and process identity.
"""
from .loader import (
    AggregationStrategy,
    ClusterConfig,
    Config,
    ProcessIdentity,
    SiblingConfig,
    get_process_identity,
    is_clustered_mode,
    load_config,
    resolve_identity,
    set_process_identity,
)

__all__ = [
    "AggregationStrategy",
    "ClusterConfig",
    "Config",
    "ProcessIdentity",
    "SiblingConfig",
    "get_process_identity",
    "is_clustered_mode",
    "load_config",
    "resolve_identity",
    "set_process_identity",
]
