"""
Per-worker resource gauges.

Exposes this process's memory, CPU and file descriptor usage so the
aggregated view shows what the whole service consumes.
"""
from typing import Iterable, Optional

import psutil
from prometheus_client import REGISTRY, CollectorRegistry
from prometheus_client.core import GaugeMetricFamily

from ..config.loader import AggregationStrategy
from .snapshot import set_aggregator

RESIDENT_MEMORY = "siblingcast_worker_resident_memory_bytes"
CPU_PERCENT = "siblingcast_worker_cpu_percent"
OPEN_FDS = "siblingcast_worker_open_fds"


class WorkerStatsCollector:
    """Prometheus collector backed by psutil for the current process."""

    def __init__(self, process: Optional[psutil.Process] = None):
        self.process = process or psutil.Process()
        # First call primes psutil's CPU counters and always returns 0.0
        self.process.cpu_percent(interval=None)

        set_aggregator(RESIDENT_MEMORY, AggregationStrategy.SUM)
        set_aggregator(CPU_PERCENT, AggregationStrategy.AVERAGE)
        set_aggregator(OPEN_FDS, AggregationStrategy.SUM)

    def collect(self) -> Iterable[GaugeMetricFamily]:
        memory = GaugeMetricFamily(RESIDENT_MEMORY, "Resident memory of the worker in bytes")
        memory.add_metric([], self.process.memory_info().rss)
        yield memory

        cpu = GaugeMetricFamily(CPU_PERCENT, "CPU usage of the worker since the last scrape")
        cpu.add_metric([], self.process.cpu_percent(interval=None))
        yield cpu

        # num_fds() is POSIX only
        if hasattr(self.process, "num_fds"):
            fds = GaugeMetricFamily(OPEN_FDS, "Open file descriptors of the worker")
            fds.add_metric([], self.process.num_fds())
            yield fds


def register_worker_stats(registry: Optional[CollectorRegistry] = None) -> WorkerStatsCollector:
    """Register a WorkerStatsCollector on a registry (default: REGISTRY)."""
    collector = WorkerStatsCollector()
    (registry or REGISTRY).register(collector)
    return collector
