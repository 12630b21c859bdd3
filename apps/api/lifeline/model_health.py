"""
LIFELINE Model Health

Calibration (Brier score, reliability bins) and drift (Page-Hinkley) checks
that grade a probabilistic model green / yellow / red. The policy engine uses
the grade as an honesty gate.
"""

from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

ModelHealthKind = Literal["learned", "forecast", "policy"]
ModelHealthGrade = Literal["green", "yellow", "red"]


class CalibrationPoint(BaseModel):
    probability: float
    outcome: Literal[0, 1]


class ReliabilityBin(BaseModel):
    index: int
    left: float
    right: float
    count: int
    mean_probability: float
    observed_rate: float
    gap: float


class DriftSummary(BaseModel):
    triggered: bool = False
    trigger_index: Optional[int] = None
    score: float = 0.0


class CalibrationSummary(BaseModel):
    brier: float
    worst_gap: float
    bins: List[ReliabilityBin] = Field(default_factory=list)


class ModelHealthSnapshot(BaseModel):
    kind: ModelHealthKind
    grade: ModelHealthGrade
    reasons: List[str] = Field(default_factory=list)
    samples: int = 0
    min_samples: int = 0
    sufficient: bool = False
    calibration: CalibrationSummary
    drift: DriftSummary = Field(default_factory=DriftSummary)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def compute_brier_score(points: Sequence[CalibrationPoint]) -> float:
    """Mean squared error of probabilities vs outcomes; 1.0 for no points."""
    if not points:
        return 1.0
    total = sum((_clamp01(p.probability) - p.outcome) ** 2 for p in points)
    return round(total / len(points), 6)


def compute_reliability_bins(points: Sequence[CalibrationPoint], bins: int = 5) -> List[ReliabilityBin]:
    n_bins = max(1, int(bins))
    counts = [0] * n_bins
    sum_prob = [0.0] * n_bins
    sum_outcome = [0.0] * n_bins
    for point in points:
        p = _clamp01(point.probability)
        i = min(n_bins - 1, int(p * n_bins))
        counts[i] += 1
        sum_prob[i] += p
        sum_outcome[i] += point.outcome

    out = []
    for i in range(n_bins):
        mean_p = sum_prob[i] / counts[i] if counts[i] else 0.0
        observed = sum_outcome[i] / counts[i] if counts[i] else 0.0
        out.append(ReliabilityBin(
            index=i,
            left=round(i / n_bins, 3),
            right=round((i + 1) / n_bins, 3),
            count=counts[i],
            mean_probability=round(mean_p, 4),
            observed_rate=round(observed, 4),
            gap=round(abs(mean_p - observed), 4),
        ))
    return out


def page_hinkley_detect(series: Sequence[float], delta: float = 0.01, threshold: float = 0.2) -> DriftSummary:
    """Page-Hinkley test for an upward mean shift; stops at the first trigger."""
    if not series:
        return DriftSummary()
    running_mean = float(series[0])
    cumulative = 0.0
    min_cumulative = 0.0
    score = 0.0
    for i, value in enumerate(series):
        running_mean += (value - running_mean) / (i + 1)
        cumulative += value - running_mean - delta
        min_cumulative = min(min_cumulative, cumulative)
        score = cumulative - min_cumulative
        if score > threshold:
            return DriftSummary(triggered=True, trigger_index=i, score=round(score, 4))
    return DriftSummary(score=round(max(0.0, score), 4))


def evaluate_model_health(
    kind: ModelHealthKind,
    calibration: Sequence[CalibrationPoint],
    drift_series: Sequence[float],
    min_samples: int,
) -> ModelHealthSnapshot:
    """
    Grade a model.

    - red: too few samples, Brier > 0.3, worst bin gap > 0.25, or drift triggered
    - yellow: Brier > 0.2, gap > 0.15, or early drift (score > 0.1)
    - green otherwise
    """
    bins = compute_reliability_bins(calibration, 5)
    brier = compute_brier_score(calibration)
    worst_gap = round(max([b.gap for b in bins] + [0.0]), 4)
    drift = page_hinkley_detect(drift_series)
    samples = len(calibration)
    sufficient = samples >= min_samples

    reasons: List[str] = []
    grade = "green"

    if not sufficient:
        reasons.append(f"Not enough data: {samples} of {min_samples}.")
        grade = "red"
    else:
        reasons.append(f"Enough data: {samples}.")

    if brier > 0.3 or worst_gap > 0.25:
        grade = "red"
        reasons.append(f"Weak calibration: Brier {brier:.3f}, gap {worst_gap:.3f}.")
    elif brier > 0.2 or worst_gap > 0.15:
        if grade != "red":
            grade = "yellow"
        reasons.append(f"Moderate calibration: Brier {brier:.3f}, gap {worst_gap:.3f}.")
    else:
        reasons.append(f"Stable calibration: Brier {brier:.3f}.")

    if drift.triggered:
        grade = "red"
        reasons.append(f"Distribution drift detected (index {drift.trigger_index}).")
    elif drift.score > 0.1:
        if grade == "green":
            grade = "yellow"
        reasons.append("Early signs of drift.")
    else:
        reasons.append("No drift detected.")

    return ModelHealthSnapshot(
        kind=kind,
        grade=grade,
        reasons=reasons,
        samples=samples,
        min_samples=min_samples,
        sufficient=sufficient,
        calibration=CalibrationSummary(brier=brier, worst_gap=worst_gap, bins=bins),
        drift=drift,
    )
