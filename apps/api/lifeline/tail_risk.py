"""
LIFELINE Tail-Risk Statistics

Value-at-Risk and Expected Shortfall over an arbitrary numeric sample where
larger values are worse (e.g. end-of-horizon collapse probability).

- Non-finite samples are dropped with a warning, never propagated.
- Quantiles use linear interpolation at position (n-1)·q.
- Degenerate samples return a valid, all-zero summary with warning codes.
"""

from typing import Dict, Iterable, List, Literal, Sequence

import numpy as np

from lifeline.guardrails import (
    GuardrailCheckResult,
    GuardrailWarning,
    sanitize_alpha,
    sanitize_samples,
)
from lifeline.models import TailRiskSummary

TAIL_METHOD = "linear-interpolated"


def deterministic_sorted(values: Sequence[float]) -> np.ndarray:
    """Ascending sort; equal values keep their original order."""
    return np.sort(np.asarray(values, dtype=float), kind="stable")


def linear_quantile(sorted_values: Sequence[float], q: float) -> float:
    """
    Linear-interpolated quantile of an already sorted sample.

    Returns 0.0 for an empty sample.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    position = (n - 1) * q
    lower = int(np.floor(position))
    upper = int(np.ceil(position))
    lower = min(max(lower, 0), n - 1)
    upper = min(max(upper, 0), n - 1)
    lower_value = float(sorted_values[lower])
    if lower == upper:
        return lower_value
    upper_value = float(sorted_values[upper])
    return lower_value + (upper_value - lower_value) * (position - lower)


def quantile(values: Iterable[float], q: float) -> float:
    """Linear quantile of an unsorted sample."""
    return linear_quantile(deterministic_sorted(list(values)), q)


def compute_tail_risk(samples: Iterable, alpha: float = 0.975) -> TailRiskSummary:
    """
    VaR and Expected Shortfall at confidence `alpha`.

    Args:
        samples: Numeric sample, larger = worse. Non-finite entries are dropped.
        alpha: Confidence level, sanitized into [0.5, 0.9999].

    Returns:
        TailRiskSummary; `es >= var` whenever `tail_mass > 0`.
    """
    check = GuardrailCheckResult()
    finite = sanitize_samples(samples, check)
    safe_alpha = sanitize_alpha(alpha, check)

    if not finite:
        check.add(GuardrailWarning.EMPTY_SAMPLE)
        return TailRiskSummary(alpha=safe_alpha, warnings=check.codes)

    ordered = deterministic_sorted(finite)
    var_value = linear_quantile(ordered, safe_alpha)
    tail = ordered[ordered >= var_value]
    if len(tail) == 1:
        check.add(GuardrailWarning.SINGLE_TAIL_POINT)

    tail_mean = float(tail.mean()) if len(tail) else var_value
    return TailRiskSummary(
        alpha=safe_alpha,
        var=var_value,
        es=tail_mean,
        tail_mean=tail_mean,
        tail_mass=len(tail) / len(ordered),
        sample_count=len(ordered),
        warnings=check.codes,
    )


def compact_tail_risk_summary(summary: TailRiskSummary) -> Dict:
    """Rounded, JSON-safe view of a summary (6 decimals)."""
    return {
        "alpha": round(summary.alpha, 6),
        "var": round(summary.var, 6),
        "es": round(summary.es, 6),
        "tail_mass": round(summary.tail_mass, 6),
        "n": summary.sample_count,
        "method": summary.method,
        "warnings": list(summary.warnings),
    }


# ---------------------------------------------------------------------------
# Loss helpers
# ---------------------------------------------------------------------------

def _loss_alpha(alpha: float) -> float:
    return max(0.0001, min(0.9999, alpha))


def value_at_risk(losses: Sequence[float], alpha: float) -> float:
    if not len(losses):
        return 0.0
    return quantile(losses, _loss_alpha(alpha))


def conditional_var(losses: Sequence[float], alpha: float) -> float:
    """Mean of losses at or above the VaR; the VaR itself if the tail is empty."""
    if not len(losses):
        return 0.0
    var_alpha = value_at_risk(losses, alpha)
    tail = [loss for loss in losses if loss >= var_alpha]
    if not tail:
        return var_alpha
    return sum(tail) / len(tail)


def worst_fraction_mean(
    samples: Sequence[float],
    fraction: float,
    worst: Literal["low", "high"] = "low",
) -> float:
    """
    Mean of the worst `fraction` of a sample, by count.

    `worst="low"` averages the smallest values (index-like samples),
    `worst="high"` the largest (collapse-like samples). At least one value is
    always used.
    """
    if not len(samples):
        return 0.0
    ordered = deterministic_sorted(samples)
    if worst == "high":
        ordered = ordered[::-1]
    count = max(1, int(np.floor(len(ordered) * fraction)))
    return float(np.mean(ordered[:count]))


def quantile_bands(columns: List[Sequence[float]], digits: int) -> Dict[str, List[float]]:
    """Per-column p10/p50/p90, rounded to `digits`."""
    bands: Dict[str, List[float]] = {"p10": [], "p50": [], "p90": []}
    for column in columns:
        ordered = deterministic_sorted(column)
        bands["p10"].append(round(linear_quantile(ordered, 0.1), digits))
        bands["p50"].append(round(linear_quantile(ordered, 0.5), digits))
        bands["p90"].append(round(linear_quantile(ordered, 0.9), digits))
    return bands
