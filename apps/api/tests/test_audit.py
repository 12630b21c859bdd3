"""
Tests for audit hashing, the seeded generator and model-health grading
"""

import re

from lifeline.actions import build_action_catalog
from lifeline.audit import (
    build_catalog_hash,
    build_state_hash,
    build_why_top,
    deterministic_hash,
    stable_stringify,
)
from lifeline.model_health import (
    CalibrationPoint,
    compute_brier_score,
    compute_reliability_bins,
    evaluate_model_health,
    page_hinkley_detect,
)
from lifeline.models import ActionState
from lifeline.rng import Mulberry32, run_seed

HASH_PATTERN = re.compile(r"^h[0-9a-f]{8}$")


# ----------------------------
# Hashing
# ----------------------------
def test_hash_ignores_key_order():
    a = {"index": 5.0, "nested": {"x": 1, "y": [1, 2]}, "p": 0.2}
    b = {"p": 0.2, "nested": {"y": [1, 2], "x": 1}, "index": 5.0}
    assert stable_stringify(a) == stable_stringify(b)
    assert deterministic_hash(a) == deterministic_hash(b)
    assert HASH_PATTERN.match(deterministic_hash(a))


def test_hash_changes_with_content():
    assert deterministic_hash({"a": 1}) != deterministic_hash({"a": 2})
    assert deterministic_hash([1, 2]) != deterministic_hash([2, 1])


def test_state_hash_tracks_state():
    base = ActionState(index=5.0, p_collapse=0.2)
    assert build_state_hash(base) == build_state_hash(ActionState(p_collapse=0.2, index=5.0))
    assert build_state_hash(base) != build_state_hash(ActionState(index=5.1, p_collapse=0.2))


def test_catalog_hash_depends_on_order():
    catalog = build_action_catalog()
    assert build_catalog_hash(catalog) == build_catalog_hash(build_action_catalog())
    assert build_catalog_hash(catalog) != build_catalog_hash(list(reversed(catalog)))


def test_why_top_bullets():
    lines = build_why_top(["• already bulleted", "plain", "•no space", "4", "5", "6"])
    assert len(lines) == 5
    assert lines[0] == "• already bulleted"
    assert lines[2] == "• no space"
    assert all(line.startswith("• ") for line in lines)


# ----------------------------
# Generator
# ----------------------------
def test_mulberry_is_deterministic():
    a = Mulberry32(42)
    b = Mulberry32(42)
    draws = [a() for _ in range(100)]
    assert draws == [b.random() for _ in range(100)]
    assert all(0.0 <= d < 1.0 for d in draws)
    assert draws != [Mulberry32(43)() for _ in range(100)]


def test_run_seeds_are_spaced():
    assert run_seed(42, 0) == 42
    assert run_seed(42, 3) == 42 + 51
    assert run_seed(0xFFFFFFFF, 1) == 16


# ----------------------------
# Model health
# ----------------------------
def _points(pairs):
    return [CalibrationPoint(probability=p, outcome=o) for p, o in pairs]


def test_brier_score():
    assert compute_brier_score([]) == 1.0
    assert compute_brier_score(_points([(1.0, 1), (0.0, 0)])) == 0.0
    assert compute_brier_score(_points([(0.5, 1), (0.5, 0)])) == 0.25


def test_reliability_bins():
    bins = compute_reliability_bins(_points([(1.0, 1), (0.1, 0), (0.3, 1)]), 5)
    assert len(bins) == 5
    assert (bins[0].left, bins[0].right) == (0.0, 0.2)
    assert bins[4].count == 1
    assert bins[1].gap == 0.7


def test_page_hinkley():
    flat = page_hinkley_detect([0.5] * 12)
    assert not flat.triggered and flat.score == 0.0

    shifted = page_hinkley_detect([0.0] * 10 + [1.0] * 10)
    assert shifted.triggered
    assert shifted.trigger_index == 10


def test_grade_red_when_data_is_short():
    health = evaluate_model_health("policy", _points([(1.0, 1)] * 3), [0.1] * 3, 6)
    assert health.grade == "red"
    assert not health.sufficient
    assert health.reasons[0].startswith("Not enough data")


def test_grade_green_when_calibrated():
    health = evaluate_model_health("forecast", _points([(1.0, 1)] * 8), [0.2] * 8, 6)
    assert health.grade == "green"
    assert health.calibration.brier == 0.0


def test_grade_yellow_on_moderate_calibration():
    pairs = [(0.5, i % 2) for i in range(10)]
    health = evaluate_model_health("learned", _points(pairs), [0.2] * 10, 6)
    assert health.calibration.brier == 0.25
    assert health.grade == "yellow"


def test_grade_red_on_drift():
    health = evaluate_model_health("policy", _points([(1.0, 1)] * 20), [0.0] * 10 + [1.0] * 10, 6)
    assert health.drift.triggered
    assert health.grade == "red"
