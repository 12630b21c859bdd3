"""
Tests for the action catalog, cost model and policy engine
"""

import pytest

from lifeline.actions import (
    ActionContext,
    ActionTag,
    build_action_catalog,
    catalog_by_id,
    penalty_score,
)
from lifeline.history import synthetic_history
from lifeline.models import (
    ActionCost,
    ActionState,
    BudgetEnvelope,
    CostWeights,
    PolicyConstraints,
    PolicyMode,
    PolicyTuning,
)
from lifeline.policy import (
    budget_for,
    build_policy_state,
    evaluate_honesty_gates,
    evaluate_policies,
    evaluate_policy_horizons,
    evaluate_with_audit,
    mode_budget_risk,
    run_action_rollout,
    synthetic_checkin,
    tuned_cost_weights,
    verify_audit_record,
)

SHOCK_ID = "recovery:micro-shock-focus"


def green_state(**overrides):
    values = dict(index=6.0, p_collapse=0.1, siren_level=0.2, debt_total=0.0, goal_gap=5.0,
                  recovery_score=60.0, shock_budget=1.0, entropy=0.1)
    values.update(overrides)
    return ActionState(**values)


# ----------------------------
# Catalog & costs
# ----------------------------
def test_catalog_is_versioned_and_unique():
    catalog = build_action_catalog()
    assert len(catalog) == 33
    assert len(catalog_by_id(catalog)) == 33


def test_budget_overrun_is_a_discontinuity():
    weights = CostWeights(time_min=0.01)
    budget = BudgetEnvelope()
    inside = penalty_score(ActionCost(time_min=90), weights, budget)
    outside = penalty_score(ActionCost(time_min=91), weights, budget)
    assert inside == pytest.approx(0.9)
    assert outside - inside >= 10000


def test_growth_shock_gate():
    shock = catalog_by_id(build_action_catalog())[SHOCK_ID]
    state = green_state()
    assert shock.is_available(state, ActionContext(seed=1, mode=PolicyMode.GROWTH))
    assert not shock.is_available(state, ActionContext(seed=1, mode=PolicyMode.BALANCED))
    assert not shock.is_available(green_state(shock_budget=0.0), ActionContext(seed=1, mode=PolicyMode.GROWTH))
    assert not shock.is_available(green_state(recovery_score=10.0), ActionContext(seed=1, mode=PolicyMode.GROWTH))


def test_tuning_scales_weights_and_budget():
    tuned = tuned_cost_weights(PolicyMode.BALANCED, PolicyTuning(load=1.0, cautious=1.0))
    assert tuned.time_min == pytest.approx(0.03)
    assert tuned.risk == pytest.approx(7.14)
    assert tuned.money == pytest.approx(0.0012)

    state = green_state()
    assert budget_for(state, PolicyTuning(load=1.0)).max_time_min == pytest.approx(72.0)
    assert budget_for(state, PolicyTuning(), safe_mode=True).max_entropy == pytest.approx(0.144)
    assert mode_budget_risk(1.0) == 0.03
    assert mode_budget_risk(0.6) == 0.05
    assert mode_budget_risk(0.2) == 0.12


# ----------------------------
# Single-step ranking
# ----------------------------
def test_every_mode_has_a_best_candidate():
    results = evaluate_policies(green_state(), build_action_catalog(), PolicyConstraints(), seed=7)
    assert [r.mode for r in results] == [PolicyMode.RISK, PolicyMode.BALANCED, PolicyMode.GROWTH]
    for result in results:
        assert 1 <= len(result.ranked) <= 5
        assert result.best == result.ranked[0]
        keys = [(-c.score, c.action_id) for c in result.ranked]
        assert keys == sorted(keys)


def test_fallback_when_nothing_survives():
    impossible = PolicyConstraints(max_p_collapse=-1, siren_cap=-1, max_debt_growth=-1)
    results = evaluate_policies(green_state(), build_action_catalog(), impossible)
    for result in results:
        assert len(result.ranked) == 1
        hold = result.ranked[0]
        assert hold.is_fallback
        assert hold.action_id == f"{result.mode.value}:hold"
        assert hold.score == 0
        assert len(hold.reasons) == 3


def test_shock_actions_follow_the_mode():
    catalog = build_action_catalog()
    results = {r.mode: r for r in evaluate_policies(green_state(), catalog, PolicyConstraints(), top_k=40)}
    assert SHOCK_ID not in [c.action_id for c in results[PolicyMode.RISK].ranked]
    assert SHOCK_ID not in [c.action_id for c in results[PolicyMode.BALANCED].ranked]
    assert SHOCK_ID in [c.action_id for c in results[PolicyMode.GROWTH].ranked]


def test_safe_mode_restricts_paths():
    catalog = catalog_by_id(build_action_catalog())
    results = evaluate_policies(green_state(), list(catalog.values()), PolicyConstraints(), safe_mode=True, top_k=40)
    for result in results:
        for candidate in result.ranked:
            if candidate.is_fallback:
                continue
            action = catalog[candidate.action_id]
            assert not action.has_tag(ActionTag.SHOCK)
            if result.mode != PolicyMode.RISK:
                assert not action.has_tag(ActionTag.RISK)


def test_honesty_gates():
    calm = evaluate_honesty_gates("green", False, PolicyMode.GROWTH)
    assert not calm.safe_mode and calm.fallback_policy == PolicyMode.GROWTH and calm.gates_applied == []

    gated = evaluate_honesty_gates("red", True, PolicyMode.GROWTH)
    assert gated.safe_mode
    assert gated.fallback_policy == PolicyMode.RISK
    assert gated.gates_applied[:2] == ["model-health-red", "drift-detected"]
    assert "tight-budget" in gated.gates_applied


# ----------------------------
# Rollouts & audit
# ----------------------------
def test_rollout_summary():
    action = catalog_by_id(build_action_catalog())["focus:deep-25"]
    rollout = run_action_rollout(green_state(), PolicyMode.BALANCED, action, seed=5, horizon=3,
                                 constraints=PolicyConstraints())
    assert rollout is not None
    assert rollout.horizon == 3
    assert rollout.summary.p10 <= rollout.summary.p50 <= rollout.summary.p90
    assert 0.0 <= rollout.summary.fail_rate <= 1.0
    assert rollout.summary.tail >= 0.0
    # debt +0.03 per step stays under the 0.05 cap
    assert rollout.summary.fail_rate == 0.0


def test_rollout_skips_unavailable_actions():
    shock = catalog_by_id(build_action_catalog())[SHOCK_ID]
    assert run_action_rollout(green_state(), PolicyMode.RISK, shock, 1, 3, PolicyConstraints()) is None


def test_horizons_are_deterministic():
    catalog = build_action_catalog()[:6]
    a = evaluate_policy_horizons(green_state(), catalog, PolicyConstraints(), seed=3, top_k=2)
    b = evaluate_policy_horizons(green_state(), catalog, PolicyConstraints(), seed=3, top_k=2)
    assert a == b
    assert set(a) == {3, 7}
    assert all(len(candidates) <= 2 for modes in a.values() for candidates in modes.values())


def test_synthetic_checkin_is_in_domain():
    vector = synthetic_checkin(green_state(index=9.5, p_collapse=0.9, siren_level=1.0))
    assert 0 <= vector["stress"] <= 10
    assert set(vector) >= {"energy", "cashFlow"}


def test_build_policy_state_from_history():
    history = [c.values for c in synthetic_history(14, seed=3)]
    state = build_policy_state(history[-1], history, debt_total=0.3, shock_budget=1.0)
    assert 0.0 <= state.p_collapse <= 1.0
    assert state.siren_level in (0.2, 0.6, 1.0)
    assert 0.0 <= state.entropy <= 1.0
    assert state.debt_total == 0.3


def test_audit_record_is_reproducible():
    state = green_state()
    constraints = PolicyConstraints()
    first = evaluate_with_audit(state, constraints, PolicyMode.BALANCED, seed=11, build_id="test", policy_version="v-test")
    second = evaluate_with_audit(state, constraints, PolicyMode.BALANCED, seed=11, build_id="test", policy_version="v-test")
    audit = first.audit

    assert audit == second.audit
    assert audit.repro_token.seed == 11
    assert audit.repro_token.build_id == "test"
    assert len(audit.why_top) <= 5
    assert all(line.startswith("• ") for line in audit.why_top)
    assert audit.model_health_grade == first.model_health.grade
    assert 0 < len(audit.horizon_summary) <= 18

    selected = next(r for r in first.results if r.mode == audit.selected_mode)
    assert audit.chosen_action_id == selected.best.action_id
    if audit.safe_mode:
        assert audit.selected_mode == PolicyMode.RISK
    else:
        assert audit.selected_mode == PolicyMode.BALANCED

    assert verify_audit_record(audit, state, constraints).valid


def test_verification_detects_state_tampering():
    state = green_state()
    report = evaluate_with_audit(state, PolicyConstraints(), PolicyMode.RISK, seed=2)
    check = verify_audit_record(report.audit, green_state(index=2.0), PolicyConstraints())
    assert not check.valid
    assert check.mismatches == ["state_hash"]


def test_audit_explains_a_hold_fallback():
    state = green_state()
    impossible = PolicyConstraints(max_p_collapse=-1, siren_cap=-1, max_debt_growth=-1)
    report = evaluate_with_audit(state, impossible, PolicyMode.BALANCED, seed=4)
    audit = report.audit

    assert audit.chosen_action_id == f"{audit.selected_mode.value}:hold"
    assert audit.fallback_policy == audit.selected_mode
    assert audit.gate_reasons == report.gate_reasons

    verification = verify_audit_record(audit, state, impossible)
    assert verification.valid
    assert verification.explanation[-1] == f"No {audit.selected_mode.value} action passed the constraints: holding position."
    if audit.safe_mode:
        assert verification.explanation[0].startswith("Safe mode forced the risk policy")


def test_verification_detects_edited_fallback():
    state = green_state()
    audit = evaluate_with_audit(state, PolicyConstraints(), PolicyMode.GROWTH, seed=6).audit
    edited = audit.model_copy(update={"fallback_policy": PolicyMode.BALANCED, "gates_applied": ["drift-detected"]})
    check = verify_audit_record(edited, state, PolicyConstraints())
    assert not check.valid
    assert check.mismatches == ["gates_applied", "fallback_policy"]
