"""
LIFELINE Policy Engine — ranked next actions under three risk postures

Scores every catalog action for the `risk`, `balanced` and `growth` modes,
rolls candidates forward over 3 and 7 day horizons, and wraps the result in
an auditable, reproducible record.

Pipeline:
1. Build the compact ActionState from the latest check-in and history
2. Roll each action forward per (horizon, mode) → discounted score, fail rate, tail
3. Grade the rollout model (calibration + drift) → honesty gates / safe mode
4. Single-step ranking per mode under the gates, with a guaranteed fallback
5. AuditRecord: repro token, top candidates, horizon summary, justification
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from lifeline import config
from lifeline.actions import ActionContext, ActionDefinition, ActionTag, build_action_catalog, penalty_score
from lifeline.audit import build_catalog_hash, build_state_hash, build_why_top
from lifeline.collapse import assess_collapse_risk
from lifeline.history import compute_core_state
from lifeline.influence import default_influence_matrix
from lifeline.metrics import full_vector
from lifeline.model_health import CalibrationPoint, ModelHealthSnapshot, evaluate_model_health
from lifeline.models import (
    POLICY_MODES,
    SIREN_NUMERIC,
    ActionDelta,
    ActionEvaluation,
    ActionState,
    AuditRecord,
    BudgetEnvelope,
    CandidateSummary,
    CostWeights,
    HorizonAuditEntry,
    HorizonSummary,
    PolicyConstraints,
    PolicyMode,
    PolicyResult,
    PolicyTuning,
    ReproToken,
    RolloutResult,
    SimulationSettings,
    SirenLevel,
)
from lifeline.multiverse import PathPoint, summarize_tail
from lifeline.risk_state import RiskState
from lifeline.simulator import simulate
from lifeline.tail_risk import quantile

logger = logging.getLogger(__name__)

HORIZONS = (3, 7)
GAMMA = 0.92
DEFAULT_TOP_K = 5
AUDIT_PER_MODE = 3
POLICY_HEALTH_MIN_SAMPLES = 6
SAFE_BUDGET_MULTIPLIER = 0.72

MODE_NAMES: Dict[PolicyMode, str] = {
    PolicyMode.RISK: "Cautious",
    PolicyMode.BALANCED: "Balanced",
    PolicyMode.GROWTH: "Acceleration",
}


@dataclass(frozen=True)
class ModeWeights:
    goal: float
    index: float
    risk: float
    debt: float
    tail: float
    siren: float


MODE_WEIGHTS: Dict[PolicyMode, ModeWeights] = {
    PolicyMode.RISK: ModeWeights(goal=0.6, index=0.8, risk=3.2, debt=1.2, tail=2.4, siren=3.4),
    PolicyMode.BALANCED: ModeWeights(goal=1.3, index=1.4, risk=2.2, debt=0.8, tail=1.7, siren=2.2),
    PolicyMode.GROWTH: ModeWeights(goal=2.1, index=2.2, risk=1.4, debt=0.6, tail=1.2, siren=1.7),
}

COST_WEIGHTS: Dict[PolicyMode, CostWeights] = {
    PolicyMode.RISK: CostWeights(time_min=0.01, energy=0.04, money=0.001, time_debt=2.5, risk=6.5, entropy=1.8),
    PolicyMode.BALANCED: CostWeights(time_min=0.02, energy=0.05, money=0.0012, time_debt=1.8, risk=4.2, entropy=1.4),
    PolicyMode.GROWTH: CostWeights(time_min=0.015, energy=0.03, money=0.0008, time_debt=1.2, risk=2.4, entropy=0.8),
}


class PolicyReport(BaseModel):
    """Everything one audited evaluation produces."""
    results: List[PolicyResult] = Field(default_factory=list)
    audit: AuditRecord = Field(...)
    model_health: ModelHealthSnapshot = Field(...)
    gate_reasons: List[str] = Field(default_factory=list)


class AuditVerification(BaseModel):
    valid: bool = Field(default=False)
    mismatches: List[str] = Field(default_factory=list)
    explanation: List[str] = Field(default_factory=list)


@dataclass
class HonestyGateDecision:
    safe_mode: bool
    drift_detected: bool
    gates_applied: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    fallback_policy: PolicyMode = PolicyMode.BALANCED


# ─────────────────────────────────────────────
# State
# ─────────────────────────────────────────────

def build_policy_state(
    latest: Mapping[str, float],
    history: Sequence[Mapping[str, float]] = (),
    risk_state: Optional[RiskState] = None,
    debt_total: float = 0.0,
    goal_gap: float = 0.0,
    recovery_score: float = 0.0,
    shock_budget: float = 0.0,
) -> ActionState:
    """
    Compact decision state from the latest check-in and its history.

    A classified `risk_state` takes precedence over the collapse model for
    p_collapse and siren. Core entropy (0-100) is rescaled to [0, 1].
    """
    vector = full_vector(latest)
    core = compute_core_state(list(history) or [vector])
    if risk_state is not None:
        p_collapse = risk_state.p_collapse
        siren = risk_state.siren_level
    else:
        assessment = assess_collapse_risk(core.index, core.stats, vector)
        p_collapse = assessment.p_collapse
        siren = assessment.siren_level

    return ActionState(
        index=round(core.index, 4),
        p_collapse=round(p_collapse, 4),
        siren_level=SIREN_NUMERIC[SirenLevel(siren)],
        debt_total=max(0.0, debt_total),
        goal_gap=goal_gap,
        recovery_score=recovery_score,
        shock_budget=max(0.0, shock_budget),
        entropy=round(min(1.0, core.entropy / 100.0), 4),
    )


# ─────────────────────────────────────────────
# Scoring primitives
# ─────────────────────────────────────────────

def mode_budget_risk(siren_level: float) -> float:
    if siren_level >= 1:
        return 0.03
    if siren_level >= 0.6:
        return 0.05
    return 0.12


def tuned_cost_weights(mode: PolicyMode, tuning: PolicyTuning) -> CostWeights:
    base = COST_WEIGHTS[mode]
    load = 1 + tuning.load * 0.5
    cautious = 1 + tuning.cautious * 0.7
    return base.model_copy(update={
        "time_min": round(base.time_min * load, 4),
        "energy": round(base.energy * load, 4),
        "risk": round(base.risk * cautious, 4),
        "time_debt": round(base.time_debt * cautious, 4),
    })


def budget_for(state: ActionState, tuning: PolicyTuning, safe_mode: bool = False) -> BudgetEnvelope:
    safe = SAFE_BUDGET_MULTIPLIER if safe_mode else 1.0
    return BudgetEnvelope(
        max_time_min=round(90 * (1 - tuning.load * 0.2) * safe, 2),
        max_energy=round(35 * (1 - tuning.load * 0.2) * safe, 2),
        max_money=5000.0,
        max_time_debt=round(0.25 * safe, 4),
        max_risk=round(mode_budget_risk(state.siren_level) * (1 - tuning.cautious * 0.25) * safe, 4),
        max_entropy=round(0.2 * safe, 4),
    )


def _loss(value: float) -> float:
    return value * 1.75 if value > 0 else value


def score_deltas(mode: PolicyMode, deltas: ActionDelta, state: ActionState) -> float:
    """Mode-weighted reward minus risk penalties; positive losses weigh 1.75x."""
    w = MODE_WEIGHTS[mode]
    reward = deltas.goal_score * w.goal + deltas.index * w.index
    penalties = (
        _loss(deltas.p_collapse) * w.risk * 100
        + _loss(deltas.siren_risk) * w.siren * 80
        + _loss(deltas.tail_risk) * w.tail * 100
        + deltas.debt * w.debt
    )
    stress = max(0.0, deltas.p_collapse) * 90 if state.p_collapse > 0.35 else 0.0
    return reward - penalties - stress


def score_with_guardrails(mode: PolicyMode, deltas: ActionDelta, state: ActionState, safe_mode: bool) -> float:
    if safe_mode:
        deltas = deltas.model_copy(update={
            "tail_risk": round(deltas.tail_risk * 1.8, 6),
            "siren_risk": round(deltas.siren_risk * 1.6, 6),
        })
    return round(score_deltas(mode, deltas, state), 3)


def within_constraints(deltas: ActionDelta, constraints: PolicyConstraints) -> bool:
    return (
        deltas.p_collapse <= constraints.max_p_collapse
        and deltas.siren_risk <= constraints.siren_cap
        and deltas.debt <= constraints.max_debt_growth
    )


def _shock_window_open(state: ActionState, constraints: PolicyConstraints) -> bool:
    return state.siren_level <= 0.2 and state.shock_budget > 0 and state.recovery_score >= constraints.min_recovery_score


def _mode_allows(action: ActionDefinition, mode: PolicyMode, state: ActionState, constraints: PolicyConstraints) -> bool:
    if not action.has_tag(ActionTag.SHOCK):
        return True
    if mode == PolicyMode.RISK:
        return False
    if mode == PolicyMode.GROWTH:
        return _shock_window_open(state, constraints)
    return True


def _reasons(action: ActionDefinition, deltas: ActionDelta, mode: PolicyMode) -> List[str]:
    reasons = [
        f"Index impact: {deltas.index:+.2f}.",
        f"Effect on P(collapse): {deltas.p_collapse * 100:+.2f} pp.",
        f"Balances goal and debt in {MODE_NAMES[mode]} mode.",
    ]
    if action.has_tag(ActionTag.SHOCK):
        reasons[2] = "A controlled stressor is only acceptable in a green state."
    elif action.has_tag(ActionTag.RISK):
        reasons[2] = "Priority: bring the Siren load down to a safe level."
    return reasons


def hold_fallback(mode: PolicyMode) -> ActionEvaluation:
    """Zero-delta `<mode>:hold` candidate used when nothing survives the filters."""
    return ActionEvaluation(
        action_id=f"{mode.value}:hold",
        title="Hold the current mode and observe for a day",
        score=0.0,
        penalty=0.0,
        deltas=ActionDelta(),
        reasons=[
            "No action passed the constraints.",
            "Loosen the limits to widen the choice.",
            "Re-evaluate after the state is updated.",
        ],
        is_fallback=True,
    )


# ─────────────────────────────────────────────
# Single-step ranking
# ─────────────────────────────────────────────

def evaluate_policies(
    state: ActionState,
    catalog: Sequence[ActionDefinition],
    constraints: PolicyConstraints,
    seed: int = 0,
    tuning: Optional[PolicyTuning] = None,
    safe_mode: bool = False,
    top_k: int = DEFAULT_TOP_K,
) -> List[PolicyResult]:
    """
    Rank catalog actions for every mode.

    Each mode always returns a non-empty `ranked` list; when no action
    survives, it holds exactly one `<mode>:hold` fallback.
    """
    tuning = tuning or PolicyTuning()
    budget = budget_for(state, tuning, safe_mode)
    results = []

    for mode in POLICY_MODES:
        ctx = ActionContext(seed=seed, mode=mode)
        weights = tuned_cost_weights(mode, tuning)
        evaluated = []
        for action in catalog:
            if not action.is_available(state, ctx):
                continue
            deltas = action.effects(state, ctx)
            if not within_constraints(deltas, constraints):
                continue
            if not _mode_allows(action, mode, state, constraints):
                continue
            if safe_mode and action.has_tag(ActionTag.SHOCK):
                continue
            if safe_mode and mode != PolicyMode.RISK and action.has_tag(ActionTag.RISK):
                continue
            penalty = penalty_score(action.default_cost, weights, budget)
            base = score_with_guardrails(mode, deltas, state, safe_mode)
            evaluated.append(ActionEvaluation(
                action_id=action.id,
                title=action.title,
                score=round(base - penalty, 3),
                penalty=penalty,
                deltas=deltas,
                reasons=_reasons(action, deltas, mode),
            ))

        evaluated.sort(key=lambda item: (-item.score, item.action_id))
        ranked = evaluated[:top_k] or [hold_fallback(mode)]
        results.append(PolicyResult(mode=mode, name=MODE_NAMES[mode], ranked=ranked, best=ranked[0]))

    return results


# ─────────────────────────────────────────────
# Horizon rollouts
# ─────────────────────────────────────────────

def synthetic_checkin(state: ActionState) -> Dict[str, float]:
    """Plausible metric vector consistent with a decision state."""
    stability = max(0.0, min(1.0, 1 - state.p_collapse))
    return full_vector({
        "energy": round(3 + state.index * 0.5 * stability, 2),
        "focus": round(3 + state.index * 0.5, 2),
        "mood": round(3 + state.index * 0.45 - state.siren_level, 2),
        "stress": round(2 + state.siren_level * 6 + state.p_collapse * 2, 2),
        "sleepHours": round(5 + stability * 3, 2),
        "social": round(3 + stability * 3, 2),
        "productivity": round(3 + state.index * 0.55, 2),
        "health": round(3 + state.index * 0.4 - state.entropy * 2, 2),
        "cashFlow": round(state.index * 180 + (1 - state.p_collapse) * 300, 2),
    })


def _quick_paths(state: ActionState, horizon: int) -> List[List[PathPoint]]:
    worst = [
        PathPoint(
            day=i + 1,
            index=round(state.index - i * 0.03, 4),
            p_collapse=round(min(1.0, state.p_collapse + i * 0.01), 4),
            siren=SirenLevel.RED if state.p_collapse > 0.35 else SirenLevel.AMBER,
            regime_id=0,
        )
        for i in range(horizon)
    ]
    best = [
        PathPoint(
            day=i + 1,
            index=round(state.index + i * 0.02, 4),
            p_collapse=round(max(0.0, state.p_collapse - i * 0.005), 4),
            siren=SirenLevel.AMBER if state.p_collapse > 0.2 else SirenLevel.GREEN,
            regime_id=0,
        )
        for i in range(horizon)
    ]
    return [worst, best]


def evaluate_tail_signal(state: ActionState, horizon: int, seed: int) -> float:
    """Blend of a tiny Monte Carlo collapse ES and a worst/best two-path CVaR."""
    synthetic = synthetic_checkin(state)
    # Short horizons and the 6-run count sit outside the validated public settings
    settings = SimulationSettings.model_construct(
        horizon_days=horizon,
        simulation_count=6,
        noise_multiplier=0.6,
        collapse_threshold=0.35,
        tail_alpha=0.1,
        seed=seed,
    )
    simulated = simulate(synthetic, [synthetic], default_influence_matrix(), settings)
    heuristic = summarize_tail(_quick_paths(state, horizon), 40, state.index, state.p_collapse, None)
    return round((simulated.tail.es_collapse + heuristic.cvar5_collapse) / 2, 4)


def _step(state: ActionState, action: ActionDefinition, deltas: ActionDelta) -> ActionState:
    shock_spend = 0.1 if action.has_tag(ActionTag.SHOCK) else 0.0
    return ActionState(
        index=round(state.index + deltas.index, 4),
        p_collapse=round(max(0.0, min(1.0, state.p_collapse + deltas.p_collapse)), 4),
        siren_level=round(max(0.0, min(1.0, state.siren_level + deltas.siren_risk)), 4),
        debt_total=round(max(0.0, state.debt_total + deltas.debt), 4),
        goal_gap=round(max(0.0, state.goal_gap - deltas.goal_score), 4),
        entropy=round(max(0.0, state.entropy + action.default_cost.entropy * 0.1), 4),
        recovery_score=round(state.recovery_score + deltas.goal_score * 0.5, 4),
        shock_budget=round(max(0.0, state.shock_budget - shock_spend), 4),
    )


def run_action_rollout(
    state: ActionState,
    mode: PolicyMode,
    action: ActionDefinition,
    seed: int,
    horizon: int,
    constraints: PolicyConstraints,
    tuning: Optional[PolicyTuning] = None,
) -> Optional[RolloutResult]:
    """
    Apply one action every day for `horizon` days.

    Constraint violations are counted into `fail_rate` instead of aborting.
    Returns None when the action is not available in this mode.
    """
    tuning = tuning or PolicyTuning()
    ctx = ActionContext(seed=seed, mode=mode)
    if not action.is_available(state, ctx) or not _mode_allows(action, mode, state, constraints):
        return None

    penalty = penalty_score(action.default_cost, tuned_cost_weights(mode, tuning), budget_for(state, tuning))
    current = state
    discounted: List[float] = []
    fails = 0
    for day in range(horizon):
        deltas = action.effects(current, ctx)
        if not within_constraints(deltas, constraints):
            fails += 1
        current = _step(current, action, deltas)
        discounted.append(round(score_deltas(mode, deltas, current) * GAMMA ** day - penalty, 4))

    tail = evaluate_tail_signal(current, horizon, seed + horizon)
    mean = sum(discounted) / max(1, len(discounted))
    return RolloutResult(
        action_id=action.id,
        mode=mode,
        horizon=horizon,
        score=round(mean - tail * 100, 4),
        penalty=round(penalty, 4),
        summary=HorizonSummary(
            mean=round(mean, 4),
            p10=round(quantile(discounted, 0.1), 4),
            p50=round(quantile(discounted, 0.5), 4),
            p90=round(quantile(discounted, 0.9), 4),
            tail=tail,
            fail_rate=round(fails / horizon, 4),
        ),
    )


def evaluate_policy_horizons(
    state: ActionState,
    catalog: Sequence[ActionDefinition],
    constraints: PolicyConstraints,
    seed: int,
    horizons: Sequence[int] = HORIZONS,
    top_k: int = DEFAULT_TOP_K,
    tuning: Optional[PolicyTuning] = None,
) -> Dict[int, Dict[PolicyMode, List[RolloutResult]]]:
    """Top-k rollouts per horizon and mode; each action gets its own seed stream."""
    by_horizon: Dict[int, Dict[PolicyMode, List[RolloutResult]]] = {}
    for horizon in horizons:
        by_horizon[horizon] = {}
        for mode in POLICY_MODES:
            rollouts = []
            for idx, action in enumerate(catalog):
                result = run_action_rollout(
                    state, mode, action, seed + idx * 97 + horizon * 31, horizon, constraints, tuning,
                )
                if result is not None:
                    rollouts.append(result)
            rollouts.sort(key=lambda r: (-r.score, r.action_id))
            by_horizon[horizon][mode] = rollouts[:top_k]
    logger.debug("policy horizons seed=%s horizons=%s actions=%d", seed, list(horizons), len(catalog))
    return by_horizon


def best_by_policy(
    by_horizon: Dict[int, Dict[PolicyMode, List[RolloutResult]]],
) -> Dict[PolicyMode, Dict[int, Optional[RolloutResult]]]:
    return {
        mode: {h: (modes[mode][0] if modes[mode] else None) for h, modes in by_horizon.items()}
        for mode in POLICY_MODES
    }


# ─────────────────────────────────────────────
# Honesty gates & audit
# ─────────────────────────────────────────────

def evaluate_honesty_gates(grade: str, drift_detected: bool, requested_mode: PolicyMode) -> HonestyGateDecision:
    gates: List[str] = []
    reasons: List[str] = []
    if grade == "red":
        gates.append("model-health-red")
        reasons.append("Model health is red: safe mode enabled.")
    if drift_detected:
        gates.append("drift-detected")
        reasons.append("Drift detected: safe mode enabled until it stabilizes.")

    safe_mode = bool(gates)
    if safe_mode:
        gates.extend(["tight-budget", "tail-fail-penalty-up", "restrict-risky-paths"])

    return HonestyGateDecision(
        safe_mode=safe_mode,
        drift_detected=drift_detected,
        gates_applied=gates,
        reasons=reasons,
        fallback_policy=PolicyMode.RISK if safe_mode else requested_mode,
    )


def horizon_audit_entries(
    by_horizon: Dict[int, Dict[PolicyMode, List[RolloutResult]]],
    per_mode: int = AUDIT_PER_MODE,
) -> List[HorizonAuditEntry]:
    return [
        HorizonAuditEntry(horizon_days=horizon, policy_mode=mode, action_id=r.action_id, stats=r.summary)
        for horizon, modes in by_horizon.items()
        for mode in POLICY_MODES
        for r in modes[mode][:per_mode]
    ]


def policy_model_health(entries: Sequence[HorizonAuditEntry], constraints: PolicyConstraints) -> ModelHealthSnapshot:
    """Grade the rollout model: predicted success (1 - fail rate) vs staying under the siren cap."""
    calibration = [
        CalibrationPoint(
            probability=max(0.0, min(1.0, 1 - e.stats.fail_rate)),
            outcome=1 if e.stats.fail_rate <= constraints.siren_cap else 0,
        )
        for e in entries
    ]
    drift_series = [round(abs(e.stats.p90 - e.stats.p10), 4) for e in entries]
    return evaluate_model_health("policy", calibration, drift_series, POLICY_HEALTH_MIN_SAMPLES)


def evaluate_with_audit(
    state: ActionState,
    constraints: PolicyConstraints,
    mode: PolicyMode,
    seed: int = config.DEFAULT_SEED,
    tuning: Optional[PolicyTuning] = None,
    catalog: Optional[Sequence[ActionDefinition]] = None,
    build_id: str = config.BUILD_ID,
    policy_version: str = config.POLICY_VERSION,
    top_k: int = DEFAULT_TOP_K,
) -> PolicyReport:
    """
    Full audited evaluation.

    Horizon rollouts feed the policy model-health grade; a red grade or drift
    switches on safe mode before the final per-mode ranking. The selected
    mode's best candidate becomes the chosen action.
    """
    catalog = list(catalog) if catalog is not None else build_action_catalog()
    tuning = tuning or PolicyTuning()

    by_horizon = evaluate_policy_horizons(state, catalog, constraints, seed, HORIZONS, top_k, tuning)
    entries = horizon_audit_entries(by_horizon)
    health = policy_model_health(entries, constraints)
    gates = evaluate_honesty_gates(health.grade, health.drift.triggered, mode)

    results = evaluate_policies(state, catalog, constraints, seed, tuning, gates.safe_mode, top_k)
    selected = next((r for r in results if r.mode == gates.fallback_policy), results[0])

    state_hash = build_state_hash(state)
    audit = AuditRecord(
        chosen_action_id=selected.best.action_id,
        selected_mode=selected.mode,
        repro_token=ReproToken(
            build_id=build_id,
            seed=seed,
            state_hash=state_hash,
            catalog_hash=build_catalog_hash(catalog),
            policy_version=policy_version,
        ),
        top_candidates=[
            CandidateSummary(action_id=c.action_id, score=c.score, penalty=c.penalty)
            for c in selected.ranked[:top_k]
        ],
        horizon_summary=entries,
        why_top=build_why_top(gates.reasons + selected.best.reasons),
        safe_mode=gates.safe_mode,
        gates_applied=gates.gates_applied,
        fallback_policy=gates.fallback_policy,
        gate_reasons=gates.reasons,
        model_health_grade=health.grade,
    )
    logger.info(
        "policy evaluated mode=%s chosen=%s safe_mode=%s grade=%s",
        selected.mode.value, audit.chosen_action_id, gates.safe_mode, health.grade,
    )
    return PolicyReport(results=results, audit=audit, model_health=health, gate_reasons=gates.reasons)


def explain_audit_record(record: AuditRecord) -> List[str]:
    """Why the recorded action was chosen, rebuilt from the record alone."""
    lines: List[str] = []
    if record.safe_mode:
        policy = (record.fallback_policy or record.selected_mode).value
        lines.append(f"Safe mode forced the {policy} policy ({', '.join(record.gates_applied)}).")
    lines.extend(record.gate_reasons)
    if record.chosen_action_id.endswith(":hold"):
        lines.append(f"No {record.selected_mode.value} action passed the constraints: holding position.")
    return lines


def verify_audit_record(
    record: AuditRecord,
    state: ActionState,
    constraints: PolicyConstraints,
    tuning: Optional[PolicyTuning] = None,
    catalog: Optional[Sequence[ActionDefinition]] = None,
) -> AuditVerification:
    """
    Re-run an evaluation from its repro token and compare.

    The requested mode is not stored, but outside safe mode it equals the
    selected mode, and inside safe mode the selection is forced to `risk`.
    """
    catalog = list(catalog) if catalog is not None else build_action_catalog()
    token = record.repro_token
    mismatches = []

    if build_state_hash(state) != token.state_hash:
        mismatches.append("state_hash")
    if build_catalog_hash(catalog) != token.catalog_hash:
        mismatches.append("catalog_hash")

    if not mismatches:
        replay = evaluate_with_audit(
            state, constraints, record.selected_mode, token.seed, tuning, catalog,
            token.build_id, token.policy_version,
        ).audit
        if replay.chosen_action_id != record.chosen_action_id:
            mismatches.append("chosen_action_id")
        if replay.top_candidates != record.top_candidates:
            mismatches.append("top_candidates")
        if replay.horizon_summary != record.horizon_summary:
            mismatches.append("horizon_summary")
        if replay.safe_mode != record.safe_mode:
            mismatches.append("safe_mode")
        if replay.gates_applied != record.gates_applied:
            mismatches.append("gates_applied")
        if replay.fallback_policy != record.fallback_policy:
            mismatches.append("fallback_policy")

    if mismatches:
        logger.warning("audit verification failed: %s", ", ".join(mismatches))
    return AuditVerification(valid=not mismatches, mismatches=mismatches, explanation=explain_audit_record(record))
