"""
Merge metric snapshots of several workers into one registry.
"""
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple, Union

from prometheus_client import CollectorRegistry
from prometheus_client.metrics_core import Metric

from ..config.loader import AggregationStrategy
from ..utils.logging import get_logger
from .snapshot import MetricFamilySnapshot, SampleSnapshot

logger = get_logger(__name__)

SampleKey = Tuple[str, Tuple[Tuple[str, str], ...]]

# Types whose family carries a ``<name>_created`` timestamp sample
_TYPES_WITH_CREATED = {"counter", "histogram", "summary"}

_STRATEGIES: Dict[AggregationStrategy, Callable[[List[float]], float]] = {
    AggregationStrategy.SUM: sum,
    AggregationStrategy.FIRST: lambda values: values[0],
    AggregationStrategy.MIN: min,
    AggregationStrategy.MAX: max,
    AggregationStrategy.AVERAGE: lambda values: sum(values) / len(values),
}


class AggregatedCollector:
    """Collector yielding pre-merged metric families."""

    def __init__(self, metrics: List[Metric]):
        self._metrics = metrics

    def collect(self) -> Iterable[Metric]:
        return list(self._metrics)


def _sample_key(sample: SampleSnapshot) -> SampleKey:
    return sample.name, tuple(sorted(sample.labels.items()))


def _is_created_sample(family: MetricFamilySnapshot, sample_name: str) -> bool:
    return family.type in _TYPES_WITH_CREATED and sample_name == f"{family.name}_created"


def _merge_family(name: str, families: List[MetricFamilySnapshot]) -> Metric:
    head = families[0]
    matching = [family for family in families if family.type == head.type]
    if len(matching) != len(families):
        conflicting = sorted({family.type for family in families} - {head.type})
        logger.warning(
            f"Metric '{name}' reported as {head.type} and {', '.join(conflicting)}; "
            f"merging the {head.type} values only"
        )

    grouped: Dict[SampleKey, List[float]] = {}
    labels: Dict[SampleKey, Dict[str, str]] = {}
    for family in matching:
        for sample in family.samples:
            key = _sample_key(sample)
            grouped.setdefault(key, []).append(sample.value)
            labels.setdefault(key, sample.labels)

    metric = Metric(head.name, head.help, head.type, head.unit)
    for key, values in grouped.items():
        sample_name = key[0]
        if _is_created_sample(head, sample_name):
            # Creation timestamps are not quantities; keep the earliest
            value = min(values)
        else:
            value = _STRATEGIES[head.aggregator](values)
        metric.add_sample(sample_name, dict(labels[key]), value)
    return metric


def aggregate(
    snapshots: Sequence[Sequence[Union[MetricFamilySnapshot, Dict[str, Any]]]]
) -> CollectorRegistry:
    """
    Merge per-worker snapshots into one registry.

    Families are matched by name and samples by name plus labels. The
    strategy and type of a family are taken from the first worker
    reporting it; reports of another type are left out. Families marked
    ``omit`` are left out entirely.

    Args:
        snapshots: One snapshot (list of families) per worker

    Returns:
        New CollectorRegistry holding the merged families
    """
    by_name: Dict[str, List[MetricFamilySnapshot]] = {}
    for snapshot in snapshots:
        for item in snapshot:
            family = (
                item if isinstance(item, MetricFamilySnapshot)
                else MetricFamilySnapshot.model_validate(item)
            )
            by_name.setdefault(family.name, []).append(family)

    merged = [
        _merge_family(name, families)
        for name, families in by_name.items()
        if families[0].aggregator != AggregationStrategy.OMIT
    ]

    registry = CollectorRegistry()
    registry.register(AggregatedCollector(merged))
    return registry
