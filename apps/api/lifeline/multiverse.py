"""
LIFELINE Multiverse Simulator — plan-driven futures

Rolls a planned sequence of metric impulses forward through many perturbed
worlds: optional weight noise, residual forecast noise and stochastic regime
transitions. One Mulberry32 stream drives the whole run set, so results are
reproducible for a given seed.
"""

import logging
from typing import Dict, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from lifeline.collapse import assess_collapse_risk, clamp01, siren_for
from lifeline.guardrails import (
    GuardrailCheckResult,
    GuardrailWarning,
    is_finite_number,
    sanitize_impulses,
    sanitize_samples,
    sanitize_vector,
    sanitize_weights,
)
from lifeline.influence import InfluenceMatrix, default_influence_matrix, propagate
from lifeline.metrics import METRIC_IDS, METRICS, clamp_metric, compute_index_day, full_vector, metric_label
from lifeline.models import CoreStats, QuantileSeries, RunStatus, SirenLevel, WeightsSource
from lifeline.regime import N_REGIMES, get_transition_matrix, predict_next
from lifeline.rng import Mulberry32
from lifeline.simulator import SimulationHooks
from lifeline.tail_risk import conditional_var, deterministic_sorted, linear_quantile, quantile_bands, value_at_risk

logger = logging.getLogger(__name__)

REGIME_COLLAPSE_SHIFT = {4: 0.06, 3: 0.03, 1: -0.02}
HEDGE_DELTA = 0.5


# ─────────────────────────────────────────────
# Schema
# ─────────────────────────────────────────────

class PlannedImpulse(BaseModel):
    day: int = Field(..., ge=0, description="Day 0 impulses are applied together with day 1")
    metric_id: str = Field(...)
    delta: float = Field(...)


class MultiversePlan(BaseModel):
    name: str = Field(default="Plan")
    impulses: List[PlannedImpulse] = Field(default_factory=list)


class MultiverseToggles(BaseModel):
    forecast_noise: bool = Field(default=False)
    weights_noise: bool = Field(default=False)
    stochastic_regime: bool = Field(default=False)


class MultiverseConfig(BaseModel):
    horizon_days: Literal[7, 14, 30, 60] = Field(default=14)
    runs: Literal[1000, 5000, 10000, 25000] = Field(default=1000)
    seed: int = Field(default=42)
    index_floor: float = Field(default=4.0, description="Index floor on the 0-10 day-index scale")
    base_vector: Dict[str, float] = Field(default_factory=dict)
    base_index: Optional[float] = Field(default=None, description="Defaults to the index of base_vector")
    base_p_collapse: float = Field(default=0.2, ge=0.0, le=1.0)
    base_regime: int = Field(default=0, ge=0, le=4)
    goal_weights: Optional[Dict[str, float]] = Field(default=None)
    matrix: Optional[Dict[str, Dict[str, float]]] = Field(default=None, description="Defaults to the built-in graph")
    learned_stability: Optional[Dict[str, Dict[str, float]]] = Field(default=None)
    weights_source: WeightsSource = Field(default=WeightsSource.MANUAL)
    mix: float = Field(default=0.0, ge=0.0, le=1.0)
    forecast_residuals: List[float] = Field(default_factory=list)
    transition_matrix: Optional[List[List[float]]] = Field(default=None)
    toggles: MultiverseToggles = Field(default_factory=MultiverseToggles)
    plan: MultiversePlan = Field(default_factory=MultiversePlan)


class PathPoint(BaseModel):
    day: int
    index: float
    p_collapse: float
    siren: SirenLevel
    goal_score: Optional[float] = None
    regime_id: int


class MultiverseTail(BaseModel):
    red_siren_any: float = 0.0
    index_floor_breach_any: float = 0.0
    prob_index_below_floor_at_horizon: float = 0.0
    expected_delta_index: float = 0.0
    expected_delta_goal_score: float = 0.0
    expected_delta_p_collapse: float = 0.0
    var5_index_loss: float = 0.0
    cvar5_index_loss: float = 0.0
    cvar5_index: float = 0.0
    var5_collapse: float = 0.0
    cvar5_collapse: float = 0.0


class HedgeSuggestion(BaseModel):
    metric_id: str
    delta: float
    tail_risk_improvement: float
    note: str = ""


class RegimeMap(BaseModel):
    horizon: Dict[int, float] = Field(default_factory=dict)
    next1: Dict[int, float] = Field(default_factory=dict)
    next3: Dict[int, float] = Field(default_factory=dict)


class MultiverseResult(BaseModel):
    status: RunStatus = RunStatus.COMPLETED
    completed_runs: int = 0
    days: List[int] = Field(default_factory=list)
    index: QuantileSeries = Field(default_factory=QuantileSeries)
    p_collapse: QuantileSeries = Field(default_factory=QuantileSeries)
    goal_score: Optional[QuantileSeries] = None
    horizon_index: List[float] = Field(default_factory=list)
    horizon_goal_score: Optional[List[float]] = None
    tail: MultiverseTail = Field(default_factory=MultiverseTail)
    representative_worst_path: List[PathPoint] = Field(default_factory=list)
    sample_paths: List[List[PathPoint]] = Field(default_factory=list)
    hedges: List[HedgeSuggestion] = Field(default_factory=list)
    regime_map: RegimeMap = Field(default_factory=RegimeMap)
    weights_source: WeightsSource = WeightsSource.MANUAL
    mix: float = 0.0
    warnings: List[str] = Field(default_factory=list)


# ─────────────────────────────────────────────
# Scoring helpers
# ─────────────────────────────────────────────

def goal_score_of(vector: Mapping[str, float], weights: Optional[Mapping[str, float]]) -> Optional[float]:
    """Weighted mean of normalized metric values, 0-100; None without positive weights."""
    if not weights:
        return None
    weighted = 0.0
    total = 0.0
    for metric in METRICS:
        w = max(0.0, float(weights.get(metric.id.value, 0.0)))
        if not w:
            continue
        span = metric.span or 1.0
        weighted += clamp01((vector[metric.id.value] - metric.min) / span) * w
        total += w
    if not total:
        return None
    return round(weighted / total * 100.0, 3)


def apply_bounded_propagation(
    vector: Mapping[str, float],
    impulses: Mapping[str, float],
    matrix: InfluenceMatrix,
) -> Dict[str, float]:
    return propagate(vector, impulses, matrix, 2)


def perturb_matrix(
    base: InfluenceMatrix,
    stability: Optional[InfluenceMatrix],
    rand: Mulberry32,
) -> InfluenceMatrix:
    """
    Sample a noisy copy of every weight.

    Less stable edges get wider noise: sigma = max(0.01, (1 - stability)·0.2),
    with stability 0.5 where unknown. Draw order is row-major over the registry.
    """
    n = len(METRIC_IDS)
    sampled = base.weights.copy()
    for i in range(n):
        for j in range(n):
            st = float(stability.weights[i, j]) if stability is not None else 0.5
            sigma = max(0.01, (1.0 - st) * 0.2)
            noise = (rand() - 0.5) * 2.0 * sigma
            sampled[i, j] = max(-1.0, min(1.0, round(base.weights[i, j] + noise, 4)))
    return InfluenceMatrix(sampled)


def sample_transition(rand: Mulberry32, current: int, matrix: Sequence[Sequence[float]]) -> int:
    row = matrix[current] if current < len(matrix) else []
    r = rand()
    cumulative = 0.0
    for i, p in enumerate(row):
        cumulative += p
        if r <= cumulative:
            return i
    return current


def _quantile(values: Sequence[float], q: float) -> float:
    return linear_quantile(deterministic_sorted(values), q)


def summarize_tail(
    paths: List[List[PathPoint]],
    index_floor: float,
    base_index: float,
    base_p_collapse: float,
    base_goal: Optional[float],
) -> MultiverseTail:
    if not paths:
        return MultiverseTail()
    last = [path[-1] for path in paths]
    horizon_index = [p.index for p in last]
    horizon_goal = [p.goal_score for p in last if p.goal_score is not None]
    horizon_collapse = [p.p_collapse for p in last]
    n = len(paths)

    red_any = sum(1 for path in paths if any(p.siren == SirenLevel.RED for p in path)) / n
    floor_any = sum(1 for path in paths if any(p.index < index_floor for p in path)) / n
    below = sum(1 for v in horizon_index if v < index_floor) / n
    cut = _quantile(horizon_index, 0.05)
    bucket = [v for v in horizon_index if v <= cut]
    cvar_index = sum(bucket) / len(bucket) if bucket else cut

    goal_base = base_goal or 0.0
    goal_mean = sum(horizon_goal) / len(horizon_goal) if horizon_goal else goal_base
    losses = [base_index - v for v in horizon_index]

    return MultiverseTail(
        red_siren_any=round(red_any, 4),
        index_floor_breach_any=round(floor_any, 4),
        prob_index_below_floor_at_horizon=round(below, 4),
        expected_delta_index=round(sum(horizon_index) / n - base_index, 4),
        expected_delta_goal_score=round(goal_mean - goal_base, 4),
        expected_delta_p_collapse=round(sum(horizon_collapse) / n - base_p_collapse, 4),
        var5_index_loss=round(value_at_risk(losses, 0.95), 4),
        cvar5_index_loss=round(conditional_var(losses, 0.95), 4),
        cvar5_index=round(cvar_index, 4),
        var5_collapse=round(value_at_risk(horizon_collapse, 0.95), 4),
        cvar5_collapse=round(conditional_var(horizon_collapse, 0.95), 4),
    )


def rank_hedges(base: Mapping[str, float], matrix: InfluenceMatrix, index_floor: float, count: int = 3) -> List[HedgeSuggestion]:
    """Index metrics whose +0.5 push most improves the index net of floor breaches."""
    base_vec = full_vector(base)
    base_index = compute_index_day(base_vec)
    candidates = []
    for metric_id in METRIC_IDS:
        if metric_id == "cashFlow":
            continue
        improved = propagate(base_vec, {metric_id: HEDGE_DELTA}, matrix, 2)
        new_index = compute_index_day(improved)
        floor_penalty = max(0.0, index_floor - new_index) - max(0.0, index_floor - base_index)
        gain = (new_index - base_index) - floor_penalty
        candidates.append(HedgeSuggestion(
            metric_id=metric_id,
            delta=HEDGE_DELTA,
            tail_risk_improvement=round(gain, 4),
            note=f"Shifting {metric_label(metric_id)} by +{HEDGE_DELTA} steadies the tail through the influence loop.",
        ))
    candidates.sort(key=lambda h: -h.tail_risk_improvement)
    return candidates[:count]


# ─────────────────────────────────────────────
# Simulation
# ─────────────────────────────────────────────

def _impulses_by_day(plan: MultiversePlan, check: GuardrailCheckResult) -> Dict[int, Dict[str, float]]:
    by_day: Dict[int, Dict[str, float]] = {}
    for impulse in plan.impulses:
        kept = sanitize_impulses({impulse.metric_id: impulse.delta}, check)
        if not kept:
            continue
        row = by_day.setdefault(impulse.day, {})
        row[impulse.metric_id] = row.get(impulse.metric_id, 0.0) + kept[impulse.metric_id]
    return by_day


def _transitions_of(matrix: Optional[List[List[float]]], check: GuardrailCheckResult) -> List[List[float]]:
    """The supplied transition matrix, or the uniform default when absent or non-finite."""
    if matrix and all(is_finite_number(p) for row in matrix for p in row):
        return matrix
    if matrix:
        check.add(GuardrailWarning.DROPPED_NON_FINITE)
    return get_transition_matrix([]).tolist()


def _day_impulses(by_day: Mapping[int, Mapping[str, float]], day: int) -> Dict[str, float]:
    impulses = dict(by_day.get(day, {}))
    if day == 1:
        for metric_id, delta in by_day.get(0, {}).items():
            impulses[metric_id] = impulses.get(metric_id, 0.0) + delta
    return impulses


def run_multiverse(config: MultiverseConfig, hooks: Optional[SimulationHooks] = None) -> MultiverseResult:
    """
    Simulate `config.runs` futures of the plan.

    Progress is reported every 100 runs and once at the end; cancellation is
    checked once per run.
    """
    hooks = hooks or SimulationHooks()
    rand = Mulberry32(config.seed)
    manual = InfluenceMatrix.from_mapping(config.matrix) if config.matrix else default_influence_matrix()
    stability = InfluenceMatrix.from_mapping(config.learned_stability) if config.learned_stability else None
    check = GuardrailCheckResult()
    transitions = _transitions_of(config.transition_matrix, check)
    by_day = _impulses_by_day(config.plan, check)
    base_vector = sanitize_vector(config.base_vector, check)
    goal_weights = sanitize_weights(config.goal_weights, check)
    residuals = sanitize_samples(config.forecast_residuals, check)
    base_index = config.base_index if is_finite_number(config.base_index) else compute_index_day(base_vector)
    index_floor = config.index_floor if is_finite_number(config.index_floor) else 4.0

    paths: List[List[PathPoint]] = []
    status = RunStatus.COMPLETED
    for run in range(config.runs):
        if hooks.cancelled():
            status = RunStatus.CANCELLED
            break
        if run % 100 == 0:
            hooks.progress(run, config.runs)

        vector = dict(base_vector)
        regime = config.base_regime
        matrix = perturb_matrix(manual, stability, rand) if config.toggles.weights_noise else manual
        path: List[PathPoint] = []

        for day in range(1, config.horizon_days + 1):
            forecast_noise = 0.0
            if config.toggles.forecast_noise and residuals:
                forecast_noise = residuals[int(rand() * len(residuals))]
            vector = apply_bounded_propagation(vector, _day_impulses(by_day, day), matrix)
            vector["energy"] = clamp_metric("energy", vector["energy"] + forecast_noise * 0.06)
            vector["mood"] = clamp_metric("mood", vector["mood"] + forecast_noise * 0.04)
            vector["stress"] = clamp_metric("stress", vector["stress"] - forecast_noise * 0.05)

            if config.toggles.stochastic_regime:
                regime = sample_transition(rand, regime, transitions)

            index = compute_index_day(vector)
            stats = CoreStats.model_construct(
                strength=vector["health"] * 10,
                intelligence=vector["focus"] * 10,
                wisdom=vector["mood"] * 10,
                dexterity=vector["energy"] * 10,
            )
            assessment = assess_collapse_risk(index, stats, vector)
            p_collapse = clamp01(assessment.p_collapse + REGIME_COLLAPSE_SHIFT.get(regime, 0.0))
            path.append(PathPoint(
                day=day,
                index=round(index, 4),
                p_collapse=round(p_collapse, 4),
                siren=siren_for(p_collapse),
                goal_score=goal_score_of(vector, goal_weights),
                regime_id=regime,
            ))
        paths.append(path)

    hooks.progress(len(paths), config.runs)
    logger.debug("multiverse seed=%s runs=%d/%d", config.seed, len(paths), config.runs)

    days = list(range(1, config.horizon_days + 1))
    index_columns = [[path[step].index for path in paths] for step in range(config.horizon_days)]
    collapse_columns = [[path[step].p_collapse for path in paths] for step in range(config.horizon_days)]
    goal_series = None
    horizon_goal = None
    if goal_weights:
        goal_columns = [[path[step].goal_score or 0.0 for path in paths] for step in range(config.horizon_days)]
        goal_series = QuantileSeries(**quantile_bands(goal_columns, 4))
        horizon_goal = [round(path[-1].goal_score or 0.0, 4) for path in paths]

    base_goal = goal_score_of(base_vector, goal_weights)
    by_worst = sorted(paths, key=lambda path: path[-1].index)
    worst_path = by_worst[int(len(by_worst) * 0.05)] if by_worst else []

    regime_counts = [0] * N_REGIMES
    for path in paths:
        regime_counts[path[-1].regime_id] += 1
    n_paths = max(1, len(paths))
    next1 = predict_next(config.base_regime, transitions, 1)
    next3 = predict_next(config.base_regime, transitions, 3)

    return MultiverseResult(
        status=status,
        completed_runs=len(paths),
        days=days,
        index=QuantileSeries(**quantile_bands(index_columns, 4)),
        p_collapse=QuantileSeries(**quantile_bands(collapse_columns, 4)),
        goal_score=goal_series,
        horizon_index=[round(path[-1].index, 4) for path in paths],
        horizon_goal_score=horizon_goal,
        tail=summarize_tail(paths, index_floor, base_index, config.base_p_collapse, base_goal),
        representative_worst_path=worst_path,
        sample_paths=[paths[0], paths[len(paths) // 2], worst_path] if paths else [],
        hedges=rank_hedges(base_vector, manual, index_floor),
        regime_map=RegimeMap(
            horizon={i: round(c / n_paths, 4) for i, c in enumerate(regime_counts)},
            next1={i: round(p, 4) for i, p in enumerate(next1)},
            next3={i: round(p, 4) for i, p in enumerate(next3)},
        ),
        weights_source=config.weights_source,
        mix=config.mix,
        warnings=check.codes,
    )
