"""
LIFELINE Metric Registry

The fixed, ordered set of bounded daily metrics. Every engine indexes metric
arrays by the position of a metric in `METRIC_IDS`, so the order here is part
of the numeric contract (matrix rows/columns, hashing, tie-breaks).
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Mapping


class MetricId(str, Enum):
    ENERGY = "energy"
    FOCUS = "focus"
    MOOD = "mood"
    STRESS = "stress"
    SLEEP_HOURS = "sleepHours"
    SOCIAL = "social"
    PRODUCTIVITY = "productivity"
    HEALTH = "health"
    CASH_FLOW = "cashFlow"


@dataclass(frozen=True)
class MetricConfig:
    id: MetricId
    label: str
    min: float
    max: float
    step: float
    default: float
    unit: str = ""

    @property
    def span(self) -> float:
        return self.max - self.min


METRICS: List[MetricConfig] = [
    MetricConfig(MetricId.ENERGY, "Energy", 0, 10, 1, 5),
    MetricConfig(MetricId.FOCUS, "Focus", 0, 10, 1, 5),
    MetricConfig(MetricId.MOOD, "Mood", 0, 10, 1, 5),
    MetricConfig(MetricId.STRESS, "Stress", 0, 10, 1, 5),
    MetricConfig(MetricId.SLEEP_HOURS, "Sleep", 0, 12, 0.5, 8, unit="h"),
    MetricConfig(MetricId.SOCIAL, "Social", 0, 10, 1, 5),
    MetricConfig(MetricId.PRODUCTIVITY, "Productivity", 0, 10, 1, 5),
    MetricConfig(MetricId.HEALTH, "Health", 0, 10, 1, 5),
    MetricConfig(MetricId.CASH_FLOW, "Cash flow", -1_000_000, 1_000_000, 100, 0, unit="currency"),
]

METRIC_IDS: List[str] = [m.id.value for m in METRICS]
METRIC_POSITION: Dict[str, int] = {metric_id: i for i, metric_id in enumerate(METRIC_IDS)}
METRIC_BY_ID: Dict[str, MetricConfig] = {m.id.value: m for m in METRICS}

# cashFlow is tracked but excluded from the day index
INDEX_METRIC_IDS: List[str] = [m for m in METRIC_IDS if m != MetricId.CASH_FLOW.value]

DEFAULT_VALUES: Dict[str, float] = {m.id.value: float(m.default) for m in METRICS}


def metric_label(metric_id: str) -> str:
    config = METRIC_BY_ID.get(metric_id)
    return config.label if config else metric_id


def clamp_metric(metric_id: str, value: float) -> float:
    """Clamp a value into the metric's domain. Unknown ids pass through."""
    config = METRIC_BY_ID.get(metric_id)
    if config is None:
        return value
    return min(config.max, max(config.min, value))


def clamp_metric_rounded(metric_id: str, value: float) -> float:
    """
    Clamp and round to the metric's recording precision.

    Fractional-step metrics keep two decimals, integer-step metrics are
    rounded to whole units. Halves round away from zero. Used by the
    day-by-day simulator so that simulated days look like recorded check-ins.
    """
    config = METRIC_BY_ID.get(metric_id)
    if config is None:
        return value
    if math.isfinite(value):
        quantum = Decimal("0.01") if config.step < 1 else Decimal("1")
        value = float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP)) + 0.0
    return min(config.max, max(config.min, value))


def compute_index_day(values: Mapping[str, float]) -> float:
    """Day index: mean of the index metrics (cashFlow excluded)."""
    total = sum(float(values[metric_id]) for metric_id in INDEX_METRIC_IDS)
    return total / len(INDEX_METRIC_IDS)


def full_vector(values: Mapping[str, float]) -> Dict[str, float]:
    """Return a vector with every metric present, missing ones at their default."""
    return {metric_id: float(values.get(metric_id, DEFAULT_VALUES[metric_id])) for metric_id in METRIC_IDS}
