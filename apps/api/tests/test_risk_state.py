"""
Tests for history condensation, the collapse model and the risk-state classifier
"""

from datetime import datetime, timedelta

import numpy as np
import pytest

from lifeline.collapse import assess_collapse_risk, siren_for
from lifeline.history import (
    build_daily_series,
    compute_core_state,
    compute_volatility,
    frame_to_vectors,
    synthetic_history,
)
from lifeline.models import CheckinRecord, CoreStats, SirenLevel
from lifeline.regime import (
    REGIME_DETECTOR,
    DaySignals,
    RegimeId,
    build_regime_series,
    get_transition_matrix,
    predict_next,
)
from lifeline.risk_state import HistoryContext, classify

STRESSED = {"stress": 10, "sleepHours": 3, "mood": 1, "energy": 1, "focus": 2, "productivity": 2, "cashFlow": -15000}
THRIVING = {"stress": 1, "sleepHours": 8, "mood": 9, "energy": 9, "focus": 9, "productivity": 9, "cashFlow": 20000}


# ----------------------------
# History
# ----------------------------
def test_daily_series_fills_gaps_and_keeps_last_checkin():
    day0 = datetime(2024, 3, 1, 8, 0)
    checkins = [
        CheckinRecord(ts=day0, values={"energy": 3}),
        CheckinRecord(ts=day0 + timedelta(hours=10), values={"energy": 6}),
        CheckinRecord(ts=day0 + timedelta(days=3), values={"energy": 8}),
    ]
    frame = build_daily_series(checkins)
    assert len(frame) == 4
    assert list(frame["energy"]) == [6, 6, 6, 8]
    vectors = frame_to_vectors(frame)
    assert vectors[1]["energy"] == 6.0
    assert "cashFlow" in vectors[0]


def test_daily_series_empty():
    frame = build_daily_series([])
    assert frame.empty
    assert "energy" in frame.columns


def test_synthetic_history_is_reproducible():
    a = synthetic_history(20, seed=5)
    b = synthetic_history(20, seed=5)
    assert [c.values for c in a] == [c.values for c in b]
    assert len(a) == 20
    assert a[1].ts - a[0].ts == timedelta(days=1)


def test_core_state_of_empty_history_is_neutral():
    core = compute_core_state([])
    assert core.index == 5.0
    assert core.risk == 0.0


def test_core_state_ranges():
    history = [c.values for c in synthetic_history(30, seed=7)]
    core = compute_core_state(history)
    assert 0 <= core.index <= 10
    assert 0 <= core.risk <= 100
    assert 0 <= core.entropy <= 100
    for value in core.stats.model_dump().values():
        assert 0 <= value <= 100


def test_volatility_of_day_over_day_changes():
    history = [{"energy": v} for v in (5, 7, 5)]
    assert compute_volatility(history) == pytest.approx(2.0)
    assert compute_volatility(history[:1]) == 0.0


# ----------------------------
# Collapse model
# ----------------------------
def test_siren_thresholds():
    assert siren_for(0.1) == SirenLevel.GREEN
    assert siren_for(0.2) == SirenLevel.AMBER
    assert siren_for(0.35) == SirenLevel.AMBER
    assert siren_for(0.36) == SirenLevel.RED


def test_collapse_is_one_minus_series_reliability():
    stats = CoreStats(strength=80, intelligence=80, wisdom=80, dexterity=80)
    assessment = assess_collapse_risk(8.0, stats, THRIVING)
    product = 1.0
    for value in assessment.domain_reliability.values():
        product *= value
    assert assessment.p_collapse == pytest.approx(1 - product)
    assert assessment.weakest_domains[0]["reliability"] == min(assessment.domain_reliability.values())


def test_stressed_state_collapses_more():
    low = CoreStats(strength=10, intelligence=10, wisdom=10, dexterity=10)
    high = CoreStats(strength=90, intelligence=90, wisdom=90, dexterity=90)
    bad = assess_collapse_risk(2.0, low, STRESSED)
    good = assess_collapse_risk(8.5, high, THRIVING)
    assert bad.p_collapse > good.p_collapse
    assert bad.siren_level == SirenLevel.RED


# ----------------------------
# Classifier
# ----------------------------
def test_classify_snapshot_alone():
    state = classify({})
    assert 0.0 <= state.p_collapse <= 1.0
    assert len(state.next1) == 5 and len(state.next3) == 5
    assert sum(state.next1) == pytest.approx(1.0, abs=1e-3)
    assert state.regime_label
    assert len(state.disarm_protocol) <= 3


def test_classify_stressed_history():
    history = [dict(STRESSED) for _ in range(10)]
    state = classify(STRESSED, HistoryContext(history=history, active_quest="Evening walk"))
    assert state.siren_level == SirenLevel.RED
    assert state.disarm_protocol[0].what == 'Finish the mission "Evening walk".'
    assert state.weakest_domains[0] in {"fin", "phys", "ment", "exec"}
    assert 1 <= len(state.explain_top3) <= 3
    assert state.regime_id in {int(r) for r in RegimeId}


# ----------------------------
# Regimes
# ----------------------------
def _signals(**overrides):
    values = dict(day_index=50.0, volatility=0.0, stress=5.0, sleep_hours=8.0, energy=5.0, mood=5.0)
    values.update(overrides)
    return DaySignals(**values)


@pytest.mark.parametrize("signals,expected", [
    (_signals(volatility=80.0), RegimeId.STORM),
    (_signals(stress=9.0, energy=1.0, mood=3.0), RegimeId.STORM),
    (_signals(stress=8.0, energy=4.0, sleep_hours=6.0, mood=6.0), RegimeId.OVERHEATING),
    (_signals(day_index=35.0), RegimeId.DRAWDOWN),
    (_signals(stress=5.0, energy=3.0, sleep_hours=3.0), RegimeId.DRAWDOWN),
    (_signals(day_index=70.0, prev_day_index=68.0, stress=3.0, energy=7.0, mood=7.0), RegimeId.ACCELERATION),
    (_signals(day_index=70.0, stress=3.0, energy=7.0, mood=7.0), RegimeId.STABILIZATION),
    (_signals(), RegimeId.STABILIZATION),
])
def test_classify_day_rules(signals, expected):
    assert REGIME_DETECTOR.classify_day(signals) == expected
    assert len(REGIME_DETECTOR.explain(signals, expected)) == 3


def test_transition_matrix_is_smoothed_and_row_stochastic():
    empty = get_transition_matrix([])
    assert empty.shape == (5, 5)
    assert np.allclose(empty, 0.2)

    matrix = get_transition_matrix([0, 0, 1, 4, 4])
    assert np.allclose(matrix.sum(axis=1), 1.0)
    # row 0: two observed transitions on top of 5 × 0.5 pseudo-counts
    assert matrix[0, 0] == pytest.approx(1.5 / 4.5)
    assert matrix[0, 1] == pytest.approx(1.5 / 4.5)
    assert matrix[2, 3] == pytest.approx(0.2)


@pytest.mark.parametrize("steps", [1, 3])
def test_predict_next_is_a_distribution(steps):
    matrix = get_transition_matrix([0, 1, 1, 2, 3, 4, 4, 0])
    for regime in RegimeId:
        probabilities = predict_next(regime, matrix, steps)
        assert len(probabilities) == 5
        assert all(0.0 <= p <= 1.0 for p in probabilities)
        assert sum(probabilities) == pytest.approx(1.0)


def test_regime_series_labels_every_day():
    history = [dict(STRESSED) for _ in range(5)]
    series = build_regime_series(history, volatility=0.0)
    assert series == [RegimeId.STORM] * 5
