"""
Metrics collaborator: local snapshots and cross-worker aggregation.
"""
from .aggregator import aggregate
from .snapshot import (
    METRICS_CODEC,
    METRICS_TOPIC,
    MetricFamilySnapshot,
    SampleSnapshot,
    configure_aggregators,
    get_local_snapshot,
    set_aggregator,
)
from .worker_stats import WorkerStatsCollector, register_worker_stats

__all__ = [
    "METRICS_CODEC",
    "METRICS_TOPIC",
    "MetricFamilySnapshot",
    "SampleSnapshot",
    "WorkerStatsCollector",
    "aggregate",
    "configure_aggregators",
    "get_local_snapshot",
    "register_worker_stats",
    "set_aggregator",
]
