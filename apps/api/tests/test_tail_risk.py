"""
Tests for VaR / Expected Shortfall and the sample guardrails
"""

import math

import pytest

from lifeline.guardrails import GuardrailCheckResult, GuardrailWarning, sanitize_history, sanitize_vector
from lifeline.rng import Mulberry32
from lifeline.tail_risk import (
    compact_tail_risk_summary,
    compute_tail_risk,
    conditional_var,
    quantile,
    value_at_risk,
    worst_fraction_mean,
)


def test_worst_ten_percent_of_one_to_ten():
    assert worst_fraction_mean(list(range(1, 11)), 0.1, worst="low") == 1
    assert worst_fraction_mean(list(range(1, 11)), 0.1, worst="high") == 10


def test_linear_quantile():
    assert quantile([1, 2, 3, 4], 0.5) == pytest.approx(2.5)
    assert quantile([3, 1, 2], 0.0) == 1
    assert quantile([], 0.5) == 0.0


def test_es_at_least_var():
    rand = Mulberry32(11)
    samples = [rand.normal() for _ in range(500)]
    for alpha in (0.5, 0.9, 0.975, 0.99):
        summary = compute_tail_risk(samples, alpha)
        assert summary.es >= summary.var
        assert 0 < summary.tail_mass <= 1
        assert summary.sample_count == 500


def test_single_tail_point_flagged():
    summary = compute_tail_risk(list(range(1, 11)), 0.9)
    assert summary.var == pytest.approx(9.1)
    assert summary.es == pytest.approx(10.0)
    assert GuardrailWarning.SINGLE_TAIL_POINT.value in summary.warnings


def test_empty_sample_is_valid():
    summary = compute_tail_risk([], 0.975)
    assert summary.var == 0 and summary.es == 0 and summary.sample_count == 0
    assert summary.warnings == ["empty-sample"]


def test_non_finite_samples_dropped():
    summary = compute_tail_risk([1.0, float("nan"), float("inf"), 2.0, "x"], 0.975)
    assert summary.sample_count == 2
    assert "dropped-non-finite" in summary.warnings
    assert math.isfinite(summary.es)


def test_alpha_is_sanitized():
    low = compute_tail_risk([1, 2, 3], 0.2)
    assert low.alpha == 0.5 and "alpha-clamped-low" in low.warnings

    high = compute_tail_risk([1, 2, 3], 1.5)
    assert high.alpha == 0.9999 and "alpha-clamped-high" in high.warnings

    bad = compute_tail_risk([1, 2, 3], float("nan"))
    assert bad.alpha == 0.975 and "alpha-not-finite" in bad.warnings


def test_compact_summary_keys():
    compact = compact_tail_risk_summary(compute_tail_risk([0.1, 0.2, 0.3, 0.9], 0.75))
    assert set(compact) == {"alpha", "var", "es", "tail_mass", "n", "method", "warnings"}
    assert compact["method"] == "linear-interpolated"


def test_loss_helpers():
    losses = [0.0, 1.0, 2.0, 3.0, 4.0]
    assert value_at_risk([], 0.95) == 0.0
    assert conditional_var(losses, 0.95) >= value_at_risk(losses, 0.95)


def test_sanitize_vector_fills_and_clamps():
    check = GuardrailCheckResult()
    vector = sanitize_vector({"energy": 14, "stress": float("nan")}, check)
    assert vector["energy"] == 10
    assert vector["stress"] == 5
    assert set(check.codes) == {"metric-clamped", "metric-missing"}


def test_sanitize_history_empty():
    days, check = sanitize_history([])
    assert days == []
    assert check.codes == ["history-empty"]
