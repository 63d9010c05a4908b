"""
Serializable snapshot of a local Prometheus registry.

The snapshot is what a worker sends back for the ``metrics-get`` topic.
Each metric family carries the aggregation strategy used when the
snapshots of all workers are merged.
"""
from typing import Any, Dict, List, Mapping, Optional

from prometheus_client import REGISTRY, CollectorRegistry
from pydantic import BaseModel, Field

from ..config.loader import AggregationStrategy
from ..protocol.codec import TopicCodec

METRICS_TOPIC = "metrics-get"

# Families whose samples are labels, not quantities
_NON_ADDITIVE_TYPES = {"info", "stateset", "enum"}

_aggregators: Dict[str, AggregationStrategy] = {}


class SampleSnapshot(BaseModel):
    """One sample of a metric family."""
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    value: float


class MetricFamilySnapshot(BaseModel):
    """One metric family as collected on a single worker."""
    name: str
    help: str = ""
    type: str
    unit: str = ""
    samples: List[SampleSnapshot] = Field(default_factory=list)
    aggregator: AggregationStrategy = AggregationStrategy.SUM


def set_aggregator(metric_name: str, strategy: AggregationStrategy) -> None:
    """Choose how a metric family is merged across workers."""
    _aggregators[metric_name] = AggregationStrategy(strategy)


def configure_aggregators(mapping: Mapping[str, AggregationStrategy]) -> None:
    """Apply the ``metrics.aggregators`` configuration mapping."""
    for metric_name, strategy in mapping.items():
        set_aggregator(metric_name, strategy)


def get_aggregator(metric_name: str, metric_type: str) -> AggregationStrategy:
    if metric_name in _aggregators:
        return _aggregators[metric_name]
    if metric_type in _NON_ADDITIVE_TYPES:
        return AggregationStrategy.FIRST
    return AggregationStrategy.SUM


def reset_aggregators() -> None:
    _aggregators.clear()


def get_local_snapshot(registry: Optional[CollectorRegistry] = None) -> List[MetricFamilySnapshot]:
    """
    Collect every metric family of a registry into a snapshot.

    Args:
        registry: Registry to collect (default: the global REGISTRY)

    Returns:
        One MetricFamilySnapshot per collected family
    """
    registry = registry or REGISTRY
    families = []
    for metric in registry.collect():
        families.append(MetricFamilySnapshot(
            name=metric.name,
            help=metric.documentation,
            type=metric.type,
            unit=getattr(metric, "unit", "") or "",
            samples=[
                SampleSnapshot(name=s.name, labels=dict(s.labels), value=s.value)
                for s in metric.samples
            ],
            aggregator=get_aggregator(metric.name, metric.type),
        ))
    return families


def encode_snapshot(families: List[MetricFamilySnapshot]) -> List[Dict[str, Any]]:
    # Python mode keeps inf and nan values as floats
    return [family.model_dump() for family in families]


def decode_snapshot(payload: Any) -> List[MetricFamilySnapshot]:
    return [MetricFamilySnapshot.model_validate(item) for item in payload or []]


METRICS_CODEC: TopicCodec[List[MetricFamilySnapshot]] = TopicCodec(
    encode=encode_snapshot,
    decode=decode_snapshot,
    name=METRICS_TOPIC,
)
