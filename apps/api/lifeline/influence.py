"""
LIFELINE Influence Propagation Engine

Directed, weighted influence graph over the metric registry.

Features:
- Dense N×N weight arena indexed by metric position (rows = source, cols = target)
- Bounded propagation of impulses with per-step clamping
- Driver explanations, top levers and a short playbook
- Manual / learned / mixed matrix resolution
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from lifeline.guardrails import GuardrailCheckResult, sanitize_impulses, sanitize_vector
from lifeline.metrics import (
    METRIC_BY_ID,
    METRIC_IDS,
    METRIC_POSITION,
    MetricId,
    compute_index_day,
    full_vector,
    metric_label,
)
from lifeline.models import WeightsSource

N_METRICS = len(METRIC_IDS)
_MINS = np.array([METRIC_BY_ID[m].min for m in METRIC_IDS], dtype=float)
_MAXS = np.array([METRIC_BY_ID[m].max for m in METRIC_IDS], dtype=float)

DEFAULT_EDGES: Dict[str, Dict[str, float]] = {
    "energy": {"focus": 0.4, "mood": 0.3, "productivity": 0.5},
    "focus": {"productivity": 0.6, "stress": -0.2},
    "mood": {"stress": -0.5, "social": 0.3},
    "stress": {"energy": -0.5, "sleepHours": -0.4, "mood": -0.4},
    "sleepHours": {"energy": 0.6, "focus": 0.3, "stress": -0.4},
    "social": {"mood": 0.4, "stress": -0.2},
    "productivity": {"mood": 0.2, "energy": -0.1},
    "health": {"energy": 0.4, "mood": 0.3, "stress": -0.3},
    "cashFlow": {"mood": 0.1, "stress": -0.1},
}


class InfluenceMatrix:
    """
    Dense influence weights. `weights[i, j]` is the edge from metric i to metric j.

    Weights are clipped to [-1, 1]; a zero weight means "no edge". Instances
    are treated as read-only by every engine.
    """

    __slots__ = ("weights",)

    def __init__(self, weights: Optional[np.ndarray] = None):
        if weights is None:
            weights = np.zeros((N_METRICS, N_METRICS), dtype=float)
        weights = np.asarray(weights, dtype=float)
        if weights.shape != (N_METRICS, N_METRICS):
            raise ValueError(f"influence matrix must be {N_METRICS}x{N_METRICS}, got {weights.shape}")
        self.weights = np.clip(np.nan_to_num(weights, nan=0.0, posinf=1.0, neginf=-1.0), -1.0, 1.0)

    @classmethod
    def from_mapping(cls, edges: Mapping[str, Mapping[str, float]]) -> "InfluenceMatrix":
        """Build from `{from: {to: weight}}`; unknown metric ids are ignored."""
        weights = np.zeros((N_METRICS, N_METRICS), dtype=float)
        for source, targets in edges.items():
            i = METRIC_POSITION.get(str(source))
            if i is None:
                continue
            for target, weight in targets.items():
                j = METRIC_POSITION.get(str(target))
                if j is not None:
                    weights[i, j] = float(weight)
        return cls(weights)

    def to_mapping(self) -> Dict[str, Dict[str, float]]:
        out: Dict[str, Dict[str, float]] = {}
        for source, target, weight in self.edges():
            out.setdefault(source, {})[target] = weight
        return out

    def edges(self) -> Iterator[Tuple[str, str, float]]:
        """Non-zero edges in metric-registry order."""
        rows, cols = np.nonzero(self.weights)
        for i, j in zip(rows, cols):
            yield METRIC_IDS[i], METRIC_IDS[j], float(self.weights[i, j])

    def weight(self, source: str, target: str) -> float:
        return float(self.weights[METRIC_POSITION[source], METRIC_POSITION[target]])

    def copy(self) -> "InfluenceMatrix":
        return InfluenceMatrix(self.weights.copy())

    def __eq__(self, other) -> bool:
        return isinstance(other, InfluenceMatrix) and np.array_equal(self.weights, other.weights)

    def __repr__(self) -> str:
        return f"InfluenceMatrix(edges={int(np.count_nonzero(self.weights))})"


def default_influence_matrix() -> InfluenceMatrix:
    return InfluenceMatrix.from_mapping(DEFAULT_EDGES)


def resolve_matrix(
    manual: InfluenceMatrix,
    learned: Optional[InfluenceMatrix],
    weights_source: WeightsSource = WeightsSource.MANUAL,
    mix: float = 0.5,
) -> InfluenceMatrix:
    """
    Pick the active matrix for a run.

    `mixed` blends element-wise as (1 - mix)·manual + mix·learned. Without a
    learned matrix every source falls back to the manual one.
    """
    source = WeightsSource(weights_source)
    if learned is None or source == WeightsSource.MANUAL:
        return manual
    if source == WeightsSource.LEARNED:
        return learned
    mix = min(1.0, max(0.0, float(mix)))
    return InfluenceMatrix((1.0 - mix) * manual.weights + mix * learned.weights)


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------

def to_array(values: Mapping[str, float]) -> np.ndarray:
    full = full_vector(values)
    return np.array([full[m] for m in METRIC_IDS], dtype=float)


def to_vector(array: np.ndarray) -> Dict[str, float]:
    return {metric_id: float(array[i]) for i, metric_id in enumerate(METRIC_IDS)}


def clamp_array(array: np.ndarray) -> np.ndarray:
    return np.minimum(_MAXS, np.maximum(_MINS, array))


# ---------------------------------------------------------------------------
# Propagation
# ---------------------------------------------------------------------------

def propagate(
    base: Mapping[str, float],
    impulses: Mapping[str, float],
    matrix: InfluenceMatrix,
    steps: int = 2,
    check: Optional[GuardrailCheckResult] = None,
) -> Dict[str, float]:
    """
    Apply impulses and let them spread through the graph.

    Args:
        base: Resting metric vector; deviations are measured against it.
        impulses: Additive per-metric changes applied (and clamped) first.
        matrix: Influence weights.
        steps: Propagation steps, 1..3.
        check: Collects guardrail warnings for non-finite or out-of-domain input.

    Returns:
        New metric vector, every value inside its metric's domain.
    """
    if steps not in (1, 2, 3):
        raise ValueError(f"steps must be 1, 2 or 3, got {steps}")
    check = check if check is not None else GuardrailCheckResult()
    base_arr = to_array(sanitize_vector(base, check))
    working = base_arr.copy()
    for metric_id, delta in sanitize_impulses(impulses, check).items():
        working[METRIC_POSITION[metric_id]] += delta
    working = clamp_array(working)

    for _ in range(steps):
        updates = matrix.weights.T @ ((working - base_arr) / 2.0)
        working = clamp_array(working + updates)

    return to_vector(working)


def propagate_by_steps(
    base: Mapping[str, float],
    impulses: Mapping[str, float],
    matrix: InfluenceMatrix,
    max_steps: int = 3,
) -> List[Dict[str, float]]:
    """The propagated vector after 1, 2, ... max_steps steps."""
    return [propagate(base, impulses, matrix, step) for step in range(1, max_steps + 1)]


@dataclass
class DriverInsight:
    source: str
    target: str
    weight: float
    change: float
    strength: float

    @property
    def text(self) -> str:
        up_source = "↑" if self.change >= 0 else "↓"
        up_target = "↑" if self.weight >= 0 else "↓"
        return f"{metric_label(self.source)} {up_source} → {metric_label(self.target)} {up_target}"


def explain_driver_insights(
    result: Mapping[str, float],
    base: Mapping[str, float],
    matrix: InfluenceMatrix,
    top_n: int = 3,
    min_strength: float = 0.1,
) -> List[DriverInsight]:
    """
    Edges ranked by |Δsource · weight|, strongest first.

    Ties are broken by (source, target) in lexical order; edges weaker than
    `min_strength` are left out.
    """
    result_full = full_vector(result)
    base_full = full_vector(base)
    insights = []
    for source, target, weight in matrix.edges():
        change = result_full[source] - base_full[source]
        strength = abs(change * weight)
        if strength > min_strength:
            insights.append(DriverInsight(source, target, weight, change, strength))
    insights.sort(key=lambda d: (-d.strength, d.source, d.target))
    return insights[:top_n]


def explain_drivers(
    result: Mapping[str, float],
    base: Mapping[str, float],
    matrix: InfluenceMatrix,
    top_n: int = 3,
) -> List[str]:
    return [d.text for d in explain_driver_insights(result, base, matrix, top_n)]


@dataclass
class Lever:
    source: str
    target: str
    weight: float
    suggested_delta: float
    expected_index_delta: float


def compute_top_levers(
    base: Mapping[str, float],
    matrix: InfluenceMatrix,
    count: int = 3,
) -> List[Lever]:
    """
    Rank edges by the index gain of a one-unit push on their source.

    Stress is pushed down, everything else up. The push is limited by the
    source's remaining headroom; the target moves by weight × push.
    """
    full = full_vector(base)
    base_index = compute_index_day(full)
    levers = []
    for source, target, weight in matrix.edges():
        if source == MetricId.CASH_FLOW.value:
            continue
        direction = -1.0 if source == MetricId.STRESS.value else 1.0
        config = METRIC_BY_ID[source]
        push = min(config.max, max(config.min, full[source] + direction)) - full[source]
        if push == 0:
            continue
        moved = dict(full)
        moved[source] = full[source] + push
        moved[target] = min(METRIC_BY_ID[target].max, max(METRIC_BY_ID[target].min, moved[target] + weight * push))
        levers.append(Lever(
            source=source,
            target=target,
            weight=weight,
            suggested_delta=push,
            expected_index_delta=compute_index_day(moved) - base_index,
        ))
    levers.sort(key=lambda lever: (-lever.expected_index_delta, lever.source, lever.target))
    return levers[:count]


def build_playbook(
    base: Mapping[str, float],
    scenario: Mapping[str, float],
    matrix: InfluenceMatrix,
) -> List[str]:
    """Up to three deduplicated suggestions derived from the strongest drivers."""
    actions: List[str] = []
    for insight in explain_driver_insights(scenario, base, matrix, 5):
        source = metric_label(insight.source)
        target = metric_label(insight.target)
        if insight.weight > 0 and insight.change > 0:
            actions.append(f"Lock in the rise in {source}: it further lifts {target}.")
        elif insight.weight < 0 and insight.change > 0:
            actions.append(f"Put a check on {target}: rising {source} can weaken it.")
        elif insight.weight < 0 and insight.change < 0:
            actions.append(f"Ease the pressure on {source}: it helps {target} recover.")
        else:
            actions.append(f"Support {source} with a short ritual to steady {target}.")

    if len(actions) < 3:
        actions.append("Record the scenario and check the trend again in 24 hours.")

    return list(dict.fromkeys(actions))[:3]
