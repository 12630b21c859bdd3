"""
Tests for the Monte Carlo scenario simulator and the multiverse engine
"""

import math

import pytest

from lifeline.influence import default_influence_matrix
from lifeline.metrics import DEFAULT_VALUES, clamp_metric_rounded
from lifeline.models import RunStatus, ScenarioShock, ScenarioSpec, SimulationSettings
from lifeline.multiverse import (
    MultiverseConfig,
    MultiversePlan,
    PlannedImpulse,
    run_multiverse,
)
from lifeline.presets import SCENARIO_PRESETS, get_preset
from lifeline.simulator import SimulationHooks, collapse_histogram, shock_contribution, simulate


def _settings(**overrides):
    values = dict(horizon_days=7, simulation_count=500, seed=42)
    values.update(overrides)
    return SimulationSettings(**values)


# ----------------------------
# Scenario simulator
# ----------------------------
def test_same_seed_same_result():
    matrix = default_influence_matrix()
    first = simulate(DEFAULT_VALUES, [DEFAULT_VALUES], matrix, _settings())
    second = simulate(DEFAULT_VALUES, [DEFAULT_VALUES], matrix, _settings())
    assert first == second
    assert first.status == RunStatus.COMPLETED
    assert first.completed_runs == 500


def test_different_seed_changes_paths():
    matrix = default_influence_matrix()
    a = simulate(DEFAULT_VALUES, [], matrix, _settings(seed=1))
    b = simulate(DEFAULT_VALUES, [], matrix, _settings(seed=2))
    assert a.core_index != b.core_index


def test_quantile_bands_are_ordered():
    result = simulate(DEFAULT_VALUES, [], default_influence_matrix(), _settings())
    assert result.days == list(range(1, 8))
    for series in (result.core_index, result.p_collapse):
        assert len(series.p10) == len(series.p50) == len(series.p90) == 7
        for lo, mid, hi in zip(series.p10, series.p50, series.p90):
            assert lo <= mid <= hi
    assert sum(bucket.value for bucket in result.histogram) == 500
    assert len(result.top_drivers) == 3
    assert len(result.recommendations) == 3


def test_more_noise_does_not_shrink_the_tail():
    matrix = default_influence_matrix()
    calm = simulate(DEFAULT_VALUES, [], matrix, _settings(noise_multiplier=0.0))
    noisy = simulate(DEFAULT_VALUES, [], matrix, _settings(noise_multiplier=3.0))
    assert noisy.tail.es_collapse >= calm.tail.es_collapse
    assert noisy.tail.es_core_index <= calm.tail.es_core_index


def test_sleep_shock_does_not_improve_the_tail():
    matrix = default_influence_matrix()
    shock = ScenarioSpec(
        name="sleep debt",
        shocks=[ScenarioShock(metric_id="sleepHours", delta=-1.0, duration_days=7)],
    )
    base = simulate(DEFAULT_VALUES, [], matrix, _settings())
    shocked = simulate(DEFAULT_VALUES, [], matrix, _settings(), shock)
    assert shocked.tail.es_collapse >= base.tail.es_collapse


def test_step_shock_hits_only_the_first_day():
    scenario = ScenarioSpec(
        name="step",
        shocks=[ScenarioShock(metric_id="stress", delta=2.0, duration_days=5, start_lag_days=1, mode="step")],
    )
    assert shock_contribution(0, "stress", scenario) == 0
    assert shock_contribution(1, "stress", scenario) == 2.0
    assert shock_contribution(2, "stress", scenario) == 0
    assert shock_contribution(1, "energy", scenario) == 0
    assert shock_contribution(1, "stress", None) == 0


def test_cancel_before_first_run():
    hooks = SimulationHooks(should_cancel=lambda: True)
    result = simulate(DEFAULT_VALUES, [], default_influence_matrix(), _settings(), hooks=hooks)
    assert result.status == RunStatus.CANCELLED
    assert result.completed_runs == 0
    assert result.tail.es_collapse == 0


def test_progress_reported_per_run():
    seen = []
    hooks = SimulationHooks(on_progress=lambda done, total: seen.append((done, total)))
    simulate(DEFAULT_VALUES, [], default_influence_matrix(), _settings(), hooks=hooks)
    assert len(seen) == 500
    assert seen[-1] == (500, 500)


def test_histogram_clamps_edges():
    buckets = collapse_histogram([0.0, 1.0, 0.5])
    assert buckets[0].value == 1
    assert buckets[-1].value == 1
    assert buckets[0].bucket == "0.00-0.08"


def test_presets_are_valid_scenarios():
    assert len(SCENARIO_PRESETS) == 10
    for preset in SCENARIO_PRESETS:
        assert preset.shocks
    assert get_preset("  isolation ").name == "Isolation"
    assert get_preset("nope") is None


# ----------------------------
# Multiverse
# ----------------------------
def test_multiverse_is_deterministic():
    config = MultiverseConfig(
        horizon_days=7,
        runs=1000,
        seed=9,
        plan=MultiversePlan(impulses=[PlannedImpulse(day=1, metric_id="sleepHours", delta=1.0)]),
        goal_weights={"energy": 1.0, "focus": 0.5},
    )
    a = run_multiverse(config)
    b = run_multiverse(config)
    assert a == b
    assert a.completed_runs == 1000
    assert len(a.horizon_index) == 1000
    assert a.goal_score is not None


def test_without_toggles_every_path_is_identical():
    result = run_multiverse(MultiverseConfig(horizon_days=7, runs=1000))
    assert len(set(result.horizon_index)) == 1
    assert result.index.p10 == result.index.p90
    assert result.regime_map.horizon[0] == 1.0


def test_multiverse_progress_and_cancel():
    calls = []
    hooks = SimulationHooks(on_progress=lambda done, total: calls.append(done))
    run_multiverse(MultiverseConfig(horizon_days=7, runs=1000), hooks)
    assert calls[:2] == [0, 100]
    assert calls[-1] == 1000

    cancelled = run_multiverse(
        MultiverseConfig(horizon_days=7, runs=1000),
        SimulationHooks(should_cancel=lambda: True),
    )
    assert cancelled.status == RunStatus.CANCELLED
    assert cancelled.completed_runs == 0


def test_stochastic_regimes_spread_outcomes():
    config = MultiverseConfig(
        horizon_days=14,
        runs=1000,
        seed=3,
        toggles={"stochastic_regime": True, "weights_noise": True},
    )
    result = run_multiverse(config)
    assert len(set(result.horizon_index)) > 1
    assert abs(sum(result.regime_map.horizon.values()) - 1.0) < 1e-3
    assert result.tail.cvar5_index <= result.index.p50[-1]


def test_multiverse_sanitizes_non_finite_input():
    nan = float("nan")
    config = MultiverseConfig(
        horizon_days=7,
        runs=1000,
        base_vector=dict(DEFAULT_VALUES, energy=nan, sleepHours=40),
        plan=MultiversePlan(impulses=[
            PlannedImpulse(day=1, metric_id="mood", delta=nan),
            PlannedImpulse(day=2, metric_id="focus", delta=1.0),
        ]),
        goal_weights={"energy": float("inf"), "focus": 1.0},
        forecast_residuals=[0.5, nan],
        toggles={"forecast_noise": True},
    )
    result = run_multiverse(config)

    assert all(math.isfinite(v) for v in result.index.p50)
    assert all(math.isfinite(v) for v in result.horizon_index)
    assert math.isfinite(result.tail.expected_delta_index)
    assert all(math.isfinite(v) for v in result.goal_score.p50)
    assert "dropped-non-finite" in result.warnings
    assert "metric-clamped" in result.warnings


def test_regime_shifts_collapse_probability():
    def first_day(regime):
        result = run_multiverse(MultiverseConfig(horizon_days=7, runs=1000, base_regime=regime))
        return result.sample_paths[0][0]

    calm = first_day(0)
    storm = first_day(4)
    drawdown = first_day(3)
    accelerating = first_day(1)

    assert storm.regime_id == 4
    assert storm.p_collapse == pytest.approx(min(1.0, calm.p_collapse + 0.06), abs=2e-4)
    assert drawdown.p_collapse == pytest.approx(min(1.0, calm.p_collapse + 0.03), abs=2e-4)
    assert accelerating.p_collapse == pytest.approx(max(0.0, calm.p_collapse - 0.02), abs=2e-4)
    assert storm.index == calm.index


def test_non_finite_shock_is_ignored():
    scenario = ScenarioSpec(name="Broken", shocks=[
        ScenarioShock(metric_id="energy", delta=float("nan"), duration_days=3),
        ScenarioShock(metric_id="energy", delta=-1.0, duration_days=3),
    ])
    assert shock_contribution(0, "energy", scenario) == -1.0


def test_simulated_values_round_half_away_from_zero():
    assert clamp_metric_rounded("energy", 2.5) == 3.0
    assert clamp_metric_rounded("energy", 3.5) == 4.0
    assert clamp_metric_rounded("sleepHours", 7.125) == 7.13
    assert clamp_metric_rounded("cashFlow", -250.5) == -251.0
    assert clamp_metric_rounded("energy", 12.5) == 10
