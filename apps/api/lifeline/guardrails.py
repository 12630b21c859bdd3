"""
Guardrails for LIFELINE Engines

Input sanitization shared by every engine. Guardrails never raise on bad
numeric input: they clamp or drop the offending values and report what they
did as warning codes, so downstream statistics always receive finite,
in-domain numbers.
"""

import math
from enum import Enum
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Dict, Optional, Tuple

from lifeline.metrics import METRIC_IDS, METRIC_BY_ID, DEFAULT_VALUES

DEFAULT_TAIL_ALPHA = 0.975
MIN_TAIL_ALPHA = 0.5
MAX_TAIL_ALPHA = 0.9999


class GuardrailWarning(str, Enum):
    DROPPED_NON_FINITE = "dropped-non-finite"
    METRIC_CLAMPED = "metric-clamped"
    METRIC_MISSING = "metric-missing"
    ALPHA_NOT_FINITE = "alpha-not-finite"
    ALPHA_CLAMPED_LOW = "alpha-clamped-low"
    ALPHA_CLAMPED_HIGH = "alpha-clamped-high"
    EMPTY_SAMPLE = "empty-sample"
    SINGLE_TAIL_POINT = "single-tail-point"
    HISTORY_EMPTY = "history-empty"


@dataclass
class GuardrailCheckResult:
    """Result of a sanitization pass"""
    warnings: List[GuardrailWarning] = field(default_factory=list)

    def add(self, warning: GuardrailWarning) -> None:
        if warning not in self.warnings:
            self.warnings.append(warning)

    @property
    def codes(self) -> List[str]:
        return [w.value for w in self.warnings]

    @property
    def is_clean(self) -> bool:
        return not self.warnings


def is_finite_number(value) -> bool:
    if isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def sanitize_samples(samples: Iterable, check: GuardrailCheckResult) -> List[float]:
    """Keep finite numbers only; flag `dropped-non-finite` when anything is removed."""
    kept: List[float] = []
    dropped = 0
    for value in samples:
        if is_finite_number(value):
            kept.append(float(value))
        else:
            dropped += 1
    if dropped:
        check.add(GuardrailWarning.DROPPED_NON_FINITE)
    return kept


def sanitize_impulses(impulses: Mapping[str, float], check: GuardrailCheckResult) -> Dict[str, float]:
    """
    Keep impulse deltas for known metrics with finite values.

    Non-finite deltas are dropped (`dropped-non-finite`); unknown metric ids
    are ignored silently, the same way propagation ignores them.
    """
    out: Dict[str, float] = {}
    for metric_id, delta in impulses.items():
        metric_id = str(metric_id)
        if metric_id not in METRIC_BY_ID:
            continue
        if not is_finite_number(delta):
            check.add(GuardrailWarning.DROPPED_NON_FINITE)
            continue
        out[metric_id] = out.get(metric_id, 0.0) + float(delta)
    return out


def sanitize_weights(weights: Optional[Mapping[str, float]], check: GuardrailCheckResult) -> Optional[Dict[str, float]]:
    """Goal weights with non-finite entries dropped; None stays None."""
    if weights is None:
        return None
    return sanitize_impulses(weights, check)


def sanitize_alpha(alpha, check: GuardrailCheckResult) -> float:
    """
    Bring a tail confidence level into [0.5, 0.9999].

    Non-finite input falls back to 0.975. Out-of-range values are clamped and
    the matching `alpha-clamped-*` warning is recorded.
    """
    if not is_finite_number(alpha):
        check.add(GuardrailWarning.ALPHA_NOT_FINITE)
        return DEFAULT_TAIL_ALPHA
    alpha = float(alpha)
    if alpha < MIN_TAIL_ALPHA:
        check.add(GuardrailWarning.ALPHA_CLAMPED_LOW)
        return MIN_TAIL_ALPHA
    if alpha > MAX_TAIL_ALPHA:
        check.add(GuardrailWarning.ALPHA_CLAMPED_HIGH)
        return MAX_TAIL_ALPHA
    return alpha


def sanitize_vector(values: Mapping[str, float], check: GuardrailCheckResult) -> Dict[str, float]:
    """
    Return a full metric vector clamped to each metric's domain.

    Missing or non-finite entries take the metric default (`metric-missing`);
    out-of-domain entries are clamped (`metric-clamped`). Unknown keys are ignored.
    """
    out: Dict[str, float] = {}
    for metric_id in METRIC_IDS:
        config = METRIC_BY_ID[metric_id]
        raw = values.get(metric_id)
        if not is_finite_number(raw):
            check.add(GuardrailWarning.METRIC_MISSING)
            out[metric_id] = DEFAULT_VALUES[metric_id]
            continue
        value = float(raw)
        if value < config.min or value > config.max:
            check.add(GuardrailWarning.METRIC_CLAMPED)
            value = min(config.max, max(config.min, value))
        out[metric_id] = value
    return out


def sanitize_history(
    history: Iterable[Mapping[str, float]],
) -> Tuple[List[Dict[str, float]], GuardrailCheckResult]:
    """Sanitize every day of a history; flags `history-empty` when nothing is left."""
    check = GuardrailCheckResult()
    days = [sanitize_vector(day, check) for day in history]
    if not days:
        check.add(GuardrailWarning.HISTORY_EMPTY)
    return days, check
