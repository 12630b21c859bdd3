"""
LIFELINE Scenario Simulator — Monte Carlo future trajectories

Generates many day-by-day futures S₀ → S₁ → ... → Sₙ of the metric vector
under the influence graph, Gaussian noise and optional shock scenarios, and
summarizes the distribution of the day index and collapse probability.

Core Capabilities:
- Lagged influence propagation with per-metric noise
- Step / daily shock windows
- Per-day quantile bands and Expected Shortfall of the bad tail
- Drivers of red runs and lever recommendations

All simulations are reproducible given the same inputs and seed: every run
draws from its own Mulberry32 stream seeded with `seed + 17·run`.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from lifeline.collapse import assess_collapse_risk
from lifeline.guardrails import is_finite_number
from lifeline.influence import InfluenceMatrix
from lifeline.metrics import (
    METRIC_BY_ID,
    METRIC_IDS,
    MetricId,
    clamp_metric_rounded,
    compute_index_day,
    full_vector,
    metric_label,
)
from lifeline.models import (
    CoreStats,
    DriverDelta,
    EffectBand,
    HistogramBucket,
    LeverRecommendation,
    QuantileSeries,
    RunStatus,
    ScenarioSpec,
    ShockMode,
    SimulationResult,
    SimulationSettings,
    SimulationSummary,
    SimulationTail,
    SirenLevel,
)
from lifeline.regime import DaySignals, RegimeId, regime_from_day
from lifeline.rng import Mulberry32, run_seed
from lifeline.tail_risk import compute_tail_risk, quantile_bands, worst_fraction_mean

logger = logging.getLogger(__name__)

HISTOGRAM_BINS = 12

CONTROLLABLE_METRICS = [
    "sleepHours", "stress", "focus", "energy", "mood", "social", "productivity", "health",
]

_DEFAULTS = np.array([METRIC_BY_ID[m].default for m in METRIC_IDS], dtype=float)
_SPANS = np.array([METRIC_BY_ID[m].span for m in METRIC_IDS], dtype=float)


@dataclass
class NoiseParams:
    """Per-metric daily noise sigma before the noise multiplier."""
    metric_sigma: float = 0.4
    cash_flow_sigma: float = 2500.0
    regime_volatility_scale: float = 40.0  # noise multiplier → regime volatility

    def sigma(self, metric_id: str) -> float:
        return self.cash_flow_sigma if metric_id == MetricId.CASH_FLOW.value else self.metric_sigma


@dataclass
class SimulationHooks:
    """Optional progress and cooperative-cancellation callbacks."""
    on_progress: Optional[Callable[[int, int], None]] = None
    should_cancel: Optional[Callable[[], bool]] = None

    def cancelled(self) -> bool:
        return bool(self.should_cancel and self.should_cancel())

    def progress(self, done: int, total: int) -> None:
        if self.on_progress:
            self.on_progress(done, total)


def shock_contribution(day: int, metric_id: str, scenario: Optional[ScenarioSpec]) -> float:
    """Sum of shock deltas hitting `metric_id` on `day` (0-based)."""
    if scenario is None:
        return 0.0
    total = 0.0
    for shock in scenario.shocks:
        if shock.metric_id.value != metric_id or not is_finite_number(shock.delta):
            continue
        lag = shock.start_lag_days
        if not (lag <= day < lag + shock.duration_days):
            continue
        if shock.mode == ShockMode.STEP:
            total += shock.delta if day == lag else 0.0
        else:
            total += shock.delta
    return total


def classify_simulated_day(values: Mapping[str, float], noise_multiplier: float, noise: Optional[NoiseParams] = None):
    """
    Index, collapse probability, siren and regime of one simulated day.

    Simulated days carry no history, so the composite stats are proxied by the
    day index and regime volatility by the noise level.
    """
    noise = noise or NoiseParams()
    index = compute_index_day(values)
    proxy = index * 10.0
    stats = CoreStats.model_construct(strength=proxy, intelligence=proxy, wisdom=proxy, dexterity=proxy)
    assessment = assess_collapse_risk(index, stats, values)
    regime = regime_from_day(DaySignals(
        day_index=proxy,
        volatility=noise_multiplier * noise.regime_volatility_scale,
        stress=values["stress"],
        sleep_hours=values["sleepHours"],
        energy=values["energy"],
        mood=values["mood"],
    ))
    return index, assessment.p_collapse, assessment.siren_level, regime


class ScenarioSimulator:
    """
    Monte Carlo simulator over the metric vector.

    Stateless between calls; the matrix and settings are passed per call.
    """

    def __init__(self, noise: Optional[NoiseParams] = None):
        self.noise = noise or NoiseParams()

    def simulate(
        self,
        base: Mapping[str, float],
        history: Sequence[Mapping[str, float]],
        matrix: InfluenceMatrix,
        settings: SimulationSettings,
        scenario: Optional[ScenarioSpec] = None,
        hooks: Optional[SimulationHooks] = None,
    ) -> SimulationResult:
        """
        Run `settings.simulation_count` independent futures.

        Args:
            base: Starting metric vector (day 0).
            history: Dense ascending daily history (used for the note only).
            matrix: Active influence matrix.
            settings: Horizon, run count, noise, thresholds, seed and lag.
            scenario: Optional shock scenario.
            hooks: Progress / cancellation callbacks, checked once per run.

        Returns:
            SimulationResult; `status` is `cancelled` if the run set stopped early.
        """
        hooks = hooks or SimulationHooks()
        base_vec = full_vector(base)
        horizon = int(settings.horizon_days)
        sims = int(settings.simulation_count)
        lag = int(settings.learned_lag)
        threshold = settings.collapse_threshold
        noise_multiplier = settings.noise_multiplier
        sigmas = [self.noise.sigma(m) * noise_multiplier for m in METRIC_IDS]

        shocks = np.array(
            [[shock_contribution(day, m, scenario) for m in METRIC_IDS] for day in range(horizon)],
            dtype=float,
        ).reshape(horizon, len(METRIC_IDS))
        weights_t = matrix.weights.T

        day_index: List[List[float]] = [[] for _ in range(horizon)]
        day_collapse: List[List[float]] = [[] for _ in range(horizon)]
        end_index: List[float] = []
        end_collapse: List[float] = []
        ever_red = 0
        threshold_end = 0
        threshold_ever = 0
        red_cohort: Dict[str, List[float]] = {m: [] for m in METRIC_IDS}
        calm_cohort: Dict[str, List[float]] = {m: [] for m in METRIC_IDS}

        status = RunStatus.COMPLETED
        completed = 0
        for sim in range(sims):
            if hooks.cancelled():
                status = RunStatus.CANCELLED
                break

            rand = Mulberry32(run_seed(settings.seed, sim))
            current = [base_vec[m] for m in METRIC_IDS]
            lagged = deque([list(current) for _ in range(lag)], maxlen=lag)
            had_red = False
            had_threshold = False
            values: Dict[str, float] = dict(base_vec)
            p_collapse = 0.0

            for day in range(horizon):
                source = np.asarray(lagged[0], dtype=float)
                influence = weights_t @ ((source - _DEFAULTS) / _SPANS)
                nxt = []
                for i, metric_id in enumerate(METRIC_IDS):
                    noise = rand.normal() * sigmas[i]
                    raw = current[i] + shocks[day, i] + influence[i] + noise
                    nxt.append(clamp_metric_rounded(metric_id, raw))
                lagged.append(nxt)
                current = nxt

                values = dict(zip(METRIC_IDS, current))
                index, p_collapse, siren, regime = classify_simulated_day(values, noise_multiplier, self.noise)
                if siren == SirenLevel.RED or regime == RegimeId.STORM:
                    had_red = True
                if p_collapse >= threshold:
                    had_threshold = True
                day_index[day].append(index)
                day_collapse[day].append(p_collapse)

            end_index.append(day_index[-1][-1])
            end_collapse.append(p_collapse)
            cohort = red_cohort if had_red else calm_cohort
            for metric_id in METRIC_IDS:
                cohort[metric_id].append(values[metric_id])
            ever_red += int(had_red)
            threshold_ever += int(had_threshold)
            threshold_end += int(p_collapse >= threshold)

            completed = sim + 1
            hooks.progress(completed, sims)

        logger.debug("simulation seed=%s runs=%d/%d status=%s", settings.seed, completed, sims, status.value)

        alpha = settings.tail_alpha
        es_core_index = round(worst_fraction_mean(end_index, alpha, worst="low"), 4)
        es_collapse = round(worst_fraction_mean(end_collapse, alpha, worst="high"), 4)
        runs = max(1, completed)
        prob_ever_red = round(ever_red / runs, 4)

        return SimulationResult(
            status=status,
            completed_runs=completed,
            horizon_days=horizon,
            simulations=sims,
            seed=settings.seed,
            days=list(range(1, horizon + 1)),
            core_index=QuantileSeries(**quantile_bands(day_index, 3)),
            p_collapse=QuantileSeries(**quantile_bands(day_collapse, 4)),
            histogram=collapse_histogram(end_collapse),
            tail=SimulationTail(
                prob_ever_red=prob_ever_red,
                prob_threshold_end=round(threshold_end / runs, 4),
                prob_threshold_ever=round(threshold_ever / runs, 4),
                es_core_index=es_core_index,
                es_collapse=es_collapse,
            ),
            tail_risk=compute_tail_risk(end_collapse, 1.0 - alpha),
            top_drivers=top_drivers(red_cohort, calm_cohort),
            recommendations=lever_recommendations(matrix),
            summary=SimulationSummary(
                p_red=prob_ever_red,
                es_collapse=es_collapse,
                siren_level=siren_badge(es_collapse),
            ),
            note=(
                "This is a probabilistic model, not proof of causation. "
                f"Dense history: {len(history)} days."
            ),
        )


def siren_badge(es_collapse: float) -> SirenLevel:
    if es_collapse >= 0.35:
        return SirenLevel.RED
    if es_collapse >= 0.2:
        return SirenLevel.AMBER
    return SirenLevel.GREEN


def collapse_histogram(values: Sequence[float], bins: int = HISTOGRAM_BINS) -> List[HistogramBucket]:
    counts = [0] * bins
    for value in values:
        counts[min(bins - 1, max(0, int(np.floor(value * bins))))] += 1
    return [
        HistogramBucket(bucket=f"{i / bins:.2f}-{(i + 1) / bins:.2f}", value=counts[i])
        for i in range(bins)
    ]


def top_drivers(
    red_cohort: Mapping[str, List[float]],
    calm_cohort: Mapping[str, List[float]],
    count: int = 3,
) -> List[DriverDelta]:
    """Metrics whose end-state mean differs most between red and calm runs."""
    drivers = []
    for metric_id in METRIC_IDS:
        red = red_cohort[metric_id]
        calm = calm_cohort[metric_id]
        red_mean = sum(red) / max(1, len(red))
        calm_mean = sum(calm) / max(1, len(calm))
        drivers.append(DriverDelta(
            metric_id=metric_id,
            label=metric_label(metric_id),
            delta=round(red_mean - calm_mean, 3),
        ))
    drivers.sort(key=lambda d: -abs(d.delta))
    return drivers[:count]


def lever_recommendations(matrix: InfluenceMatrix, count: int = 3) -> List[LeverRecommendation]:
    """
    Top controllable sources by total outgoing |weight|, with effect bands.

    Band widths are fixed multiples (0.6 / 1 / 1.35) of the central estimate.
    """
    power = {m: float(np.abs(matrix.weights[METRIC_IDS.index(m)]).sum()) for m in CONTROLLABLE_METRICS}
    ranked = sorted(
        CONTROLLABLE_METRICS,
        key=lambda m: (-power[m], METRIC_IDS.index(m)),
    )[:count]

    recommendations = []
    for idx, metric_id in enumerate(ranked):
        delta = -0.6 - idx * 0.1 if metric_id == MetricId.STRESS.value else 0.6 + idx * 0.1
        index_shift = delta * power[metric_id] * 0.9
        collapse_shift = -float(np.sign(delta)) * power[metric_id] * 0.015
        verb = "Raise" if delta > 0 else "Lower"
        recommendations.append(LeverRecommendation(
            metric_id=metric_id,
            action=f"{verb} {metric_label(metric_id)} by {abs(delta):.1f} per day",
            delta=round(delta, 2),
            effect_index=EffectBand(
                p10=round(index_shift * 0.6, 2),
                p50=round(index_shift, 2),
                p90=round(index_shift * 1.35, 2),
            ),
            effect_collapse=EffectBand(
                p10=round(collapse_shift * 0.6, 3),
                p50=round(collapse_shift, 3),
                p90=round(collapse_shift * 1.35, 3),
            ),
        ))
    return recommendations


# Global instance for use in the service and the policy engine
SCENARIO_SIMULATOR = ScenarioSimulator()


def simulate(
    base: Mapping[str, float],
    history: Sequence[Mapping[str, float]],
    matrix: InfluenceMatrix,
    settings: SimulationSettings,
    scenario: Optional[ScenarioSpec] = None,
    hooks: Optional[SimulationHooks] = None,
) -> SimulationResult:
    return SCENARIO_SIMULATOR.simulate(base, history, matrix, settings, scenario, hooks)
