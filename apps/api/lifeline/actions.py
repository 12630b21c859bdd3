"""
LIFELINE Action Catalog & Cost Model

Candidate interventions as pure data. Each action carries a tagged
precondition gate and a tagged effect shape instead of callables, so the
catalog is serializable, hashable and can participate in the audit hash.

Features:
- Versioned, ordered catalog of 33 actions across six domains
- Gate dispatch on (kind, params) against the action state and context
- Weighted cost sum with a hard discontinuity above the budget envelope
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from lifeline.models import (
    ActionCost,
    ActionDelta,
    ActionState,
    BudgetEnvelope,
    CostWeights,
    PolicyMode,
)

COST_DIMENSIONS = ("time_min", "energy", "money", "time_debt", "risk", "entropy")
BUDGET_OVERRUN_BASE = 10000.0
BUDGET_OVERRUN_SLOPE = 1000.0


class ActionDomain(str, Enum):
    HEALTH = "health"
    FOCUS = "focus"
    CAREER = "career"
    FINANCE = "finance"
    SOCIAL = "social"
    RECOVERY = "recovery"


class ActionTag(str, Enum):
    RECOVERY = "recovery"
    GOAL = "goal"
    RISK = "risk"
    SHOCK = "shock"


class GateKind(str, Enum):
    ALWAYS = "always"
    SIREN_AT_LEAST = "siren_at_least"
    SIREN_OR_COLLAPSE_AT_LEAST = "siren_or_collapse_at_least"
    DEBT_ABOVE = "debt_above"
    GOAL_GAP_ABOVE = "goal_gap_above"
    GROWTH_SHOCK_WINDOW = "growth_shock_window"


class EffectKind(str, Enum):
    CONSTANT = "constant"


@dataclass(frozen=True)
class ActionContext:
    seed: int
    mode: PolicyMode


class ActionGate(BaseModel):
    """Precondition as data: a gate kind plus its thresholds."""
    model_config = ConfigDict(frozen=True)

    kind: GateKind = Field(default=GateKind.ALWAYS)
    threshold: float = Field(default=0.0)
    max_siren: float = Field(default=0.2, description="Growth shock window only")
    min_recovery: float = Field(default=55.0, description="Growth shock window only")

    def allows(self, state: ActionState, ctx: ActionContext) -> bool:
        if self.kind == GateKind.ALWAYS:
            return True
        if self.kind == GateKind.SIREN_AT_LEAST:
            return state.siren_level >= self.threshold
        if self.kind == GateKind.SIREN_OR_COLLAPSE_AT_LEAST:
            return state.siren_level >= self.threshold or state.p_collapse >= self.threshold
        if self.kind == GateKind.DEBT_ABOVE:
            return state.debt_total > self.threshold
        if self.kind == GateKind.GOAL_GAP_ABOVE:
            return state.goal_gap > self.threshold
        if self.kind == GateKind.GROWTH_SHOCK_WINDOW:
            return (
                ctx.mode == PolicyMode.GROWTH
                and state.siren_level <= self.max_siren
                and state.shock_budget > 0
                and state.recovery_score >= self.min_recovery
            )
        raise ValueError(f"Unknown gate kind: {self.kind}")


class ActionEffect(BaseModel):
    """Effect shape as data; `constant` returns the same delta every step."""
    model_config = ConfigDict(frozen=True)

    kind: EffectKind = Field(default=EffectKind.CONSTANT)
    delta: ActionDelta = Field(default_factory=ActionDelta)

    def apply(self, state: ActionState, ctx: ActionContext) -> ActionDelta:
        if self.kind == EffectKind.CONSTANT:
            return self.delta
        raise ValueError(f"Unknown effect kind: {self.kind}")


class ActionDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(...)
    title: str = Field(...)
    domain: ActionDomain = Field(...)
    tags: Tuple[ActionTag, ...] = Field(default=())
    default_cost: ActionCost = Field(default_factory=ActionCost)
    precondition: ActionGate = Field(default_factory=ActionGate)
    effect: ActionEffect = Field(default_factory=ActionEffect)

    def is_available(self, state: ActionState, ctx: ActionContext) -> bool:
        return self.precondition.allows(state, ctx)

    def effects(self, state: ActionState, ctx: ActionContext) -> ActionDelta:
        return self.effect.apply(state, ctx)

    def has_tag(self, tag: ActionTag) -> bool:
        return tag in self.tags


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

_ALWAYS = ActionGate()
_SIREN_ELEVATED = ActionGate(kind=GateKind.SIREN_AT_LEAST, threshold=0.2)


def _action(
    action_id: str,
    title: str,
    domain: ActionDomain,
    tags: Tuple[ActionTag, ...],
    cost: Tuple[float, float, float, float, float, float],
    delta: Tuple[float, float, float, float, float, float],
    gate: ActionGate = _ALWAYS,
) -> ActionDefinition:
    """cost = (time, energy, money, time_debt, risk, entropy); delta = (goal, index, pC, tail, debt, siren)."""
    return ActionDefinition(
        id=action_id,
        title=title,
        domain=domain,
        tags=tags,
        default_cost=ActionCost(**dict(zip(COST_DIMENSIONS, cost))),
        precondition=gate,
        effect=ActionEffect(delta=ActionDelta(
            goal_score=delta[0], index=delta[1], p_collapse=delta[2],
            tail_risk=delta[3], debt=delta[4], siren_risk=delta[5],
        )),
    )


D = ActionDomain
T = ActionTag

ACTION_CATALOG: List[ActionDefinition] = [
    _action("focus:deep-25", "Deep focus for 25 minutes", D.FOCUS, (T.GOAL,),
            (25, 12, 0, 0.05, 0.02, -0.08), (2.1, 0.32, -0.006, -0.004, 0.03, -0.006)),
    _action("focus:no-notify-60", "Mute notifications for 60 minutes", D.FOCUS, (T.GOAL, T.RISK),
            (5, 2, 0, -0.02, -0.03, -0.1), (1.4, 0.21, -0.005, -0.003, -0.02, -0.005)),
    _action("focus:plan-3", "Plan three key steps", D.FOCUS, (T.GOAL, T.RECOVERY),
            (15, 4, 0, -0.06, -0.02, -0.15), (1.2, 0.18, -0.004, -0.003, -0.04, -0.004)),
    _action("focus:email-batch", "Batch-process email", D.CAREER, (T.GOAL,),
            (20, 8, 0, -0.03, -0.01, -0.05), (1.0, 0.14, -0.002, -0.002, -0.03, -0.002)),
    _action("focus:clean-desktop", "Clear the desktop", D.FOCUS, (T.RECOVERY,),
            (10, 3, 0, -0.08, -0.02, -0.2), (0.8, 0.1, -0.003, -0.002, -0.05, -0.003)),
    _action("health:walk-20", "Walk for 20 minutes", D.HEALTH, (T.RECOVERY, T.RISK),
            (20, 6, 0, 0, -0.08, -0.06), (1.1, 0.16, -0.01, -0.009, -0.02, -0.012), _SIREN_ELEVATED),
    _action("health:water-500", "Drink 500 ml of water", D.HEALTH, (T.RECOVERY,),
            (3, 1, 0, -0.01, -0.01, -0.02), (0.5, 0.07, -0.001, -0.001, -0.01, -0.001)),
    _action("health:stretch-10", "Stretch for 10 minutes", D.HEALTH, (T.RECOVERY,),
            (10, 3, 0, 0, -0.03, -0.04), (0.7, 0.1, -0.004, -0.003, -0.01, -0.005)),
    _action("health:sleep-early", "Go to bed 45 minutes earlier", D.RECOVERY, (T.RISK, T.RECOVERY),
            (15, 2, 0, -0.2, -0.12, -0.1), (1.6, 0.2, -0.016, -0.012, -0.1, -0.02),
            ActionGate(kind=GateKind.SIREN_OR_COLLAPSE_AT_LEAST, threshold=0.2)),
    _action("health:breath-5", "Breathing for 5 minutes", D.RECOVERY, (T.RISK, T.RECOVERY),
            (5, 1, 0, -0.01, -0.05, -0.08), (0.8, 0.08, -0.007, -0.006, -0.01, -0.009), _SIREN_ELEVATED),
    _action("career:doc-30", "Close one work document", D.CAREER, (T.GOAL,),
            (30, 14, 0, 0.08, 0.01, -0.04), (2.0, 0.29, -0.002, -0.001, 0.04, -0.001),
            ActionGate(kind=GateKind.GOAL_GAP_ABOVE, threshold=-10)),
    _action("career:call-15", "15-minute call on one block", D.CAREER, (T.GOAL,),
            (15, 9, 0, 0.03, 0.02, -0.02), (1.3, 0.19, -0.001, 0.001, 0.03, 0.001)),
    _action("career:backlog-1", "Clear one backlog item", D.CAREER, (T.GOAL, T.RECOVERY),
            (20, 8, 0, -0.04, -0.01, -0.07), (1.1, 0.15, -0.003, -0.002, -0.04, -0.002)),
    _action("career:status-update", "Short status update", D.CAREER, (T.GOAL,),
            (8, 4, 0, -0.02, -0.01, -0.03), (0.7, 0.1, -0.002, -0.001, -0.02, -0.002)),
    _action("career:review-10", "Review for 10 minutes", D.CAREER, (T.GOAL,),
            (10, 6, 0, 0.01, 0, -0.02), (0.9, 0.12, -0.001, -0.001, 0.01, -0.001)),
    _action("finance:budget-15", "Check the weekly budget", D.FINANCE, (T.RISK, T.RECOVERY),
            (15, 5, 0, -0.05, -0.06, -0.06), (0.9, 0.11, -0.006, -0.005, -0.04, -0.006)),
    _action("finance:pay-bill", "Pay a mandatory bill", D.FINANCE, (T.RISK,),
            (10, 3, 1200, -0.12, -0.1, -0.03), (1.0, 0.1, -0.01, -0.009, -0.08, -0.01),
            ActionGate(kind=GateKind.DEBT_ABOVE, threshold=0.5)),
    _action("finance:cancel-sub", "Cancel an unneeded subscription", D.FINANCE, (T.RISK, T.RECOVERY),
            (12, 4, -300, -0.04, -0.04, -0.04), (0.8, 0.09, -0.004, -0.003, -0.03, -0.004)),
    _action("finance:reserve-10", "Put 10% into reserve", D.FINANCE, (T.RISK,),
            (6, 2, 500, -0.01, -0.05, -0.02), (0.7, 0.08, -0.005, -0.004, -0.01, -0.004)),
    _action("finance:invoice-1", "Send one invoice", D.FINANCE, (T.GOAL,),
            (14, 7, -2000, 0.02, 0, -0.03), (1.4, 0.2, -0.001, -0.001, 0.02, -0.001)),
    _action("social:message-1", "Send a supportive message", D.SOCIAL, (T.RECOVERY,),
            (5, 2, 0, -0.01, -0.02, -0.02), (0.6, 0.07, -0.003, -0.002, -0.01, -0.003)),
    _action("social:sync-20", "20-minute sync with a partner", D.SOCIAL, (T.RECOVERY, T.GOAL),
            (20, 7, 0, 0.02, -0.03, -0.05), (1.0, 0.13, -0.004, -0.003, 0.01, -0.004)),
    _action("social:boundary-yes-no", "Clarify boundaries: what is yes and no", D.SOCIAL, (T.RISK, T.RECOVERY),
            (12, 6, 0, -0.03, -0.04, -0.09), (0.9, 0.1, -0.005, -0.004, -0.02, -0.005), _SIREN_ELEVATED),
    _action("social:mentor-note", "Short note to a mentor", D.SOCIAL, (T.GOAL,),
            (8, 3, 0, -0.02, -0.01, -0.03), (0.8, 0.11, -0.002, -0.002, -0.02, -0.002)),
    _action("social:family-15", "15 screen-free minutes with family", D.SOCIAL, (T.RECOVERY, T.RISK),
            (15, 4, 0, -0.03, -0.05, -0.05), (0.9, 0.1, -0.006, -0.005, -0.02, -0.007)),
    _action("recovery:debt-triage", "Triage the task debt", D.RECOVERY, (T.RISK, T.RECOVERY),
            (18, 6, 0, -0.18, -0.06, -0.14), (1.3, 0.14, -0.009, -0.007, -0.12, -0.011),
            ActionGate(kind=GateKind.DEBT_ABOVE, threshold=0.2)),
    _action("recovery:desk-reset", "Reset the workspace", D.RECOVERY, (T.RECOVERY,),
            (12, 4, 0, -0.06, -0.02, -0.16), (0.8, 0.09, -0.003, -0.003, -0.05, -0.004)),
    _action("recovery:journal-10", "Reflect for 10 minutes", D.RECOVERY, (T.RECOVERY, T.RISK),
            (10, 3, 0, -0.02, -0.04, -0.09), (0.9, 0.1, -0.005, -0.004, -0.02, -0.006)),
    _action("recovery:micro-shock-focus", "20-minute focus micro-stressor", D.FOCUS, (T.GOAL, T.SHOCK),
            (20, 10, 0, 0.06, 0.08, 0.02), (1.5, 0.24, 0.004, 0.005, 0.04, 0.004),
            ActionGate(kind=GateKind.GROWTH_SHOCK_WINDOW)),
    _action("recovery:pause-2", "Pause 2 minutes before deciding", D.RECOVERY, (T.RISK,),
            (2, 1, 0, -0.01, -0.03, -0.05), (0.4, 0.04, -0.003, -0.002, -0.01, -0.004)),
    _action("recovery:single-task", "One task without switching", D.FOCUS, (T.GOAL, T.RISK),
            (25, 10, 0, -0.04, -0.02, -0.1), (1.6, 0.23, -0.004, -0.003, -0.02, -0.004)),
    _action("recovery:no-meeting-block", "90-minute meeting-free block", D.CAREER, (T.GOAL, T.RECOVERY),
            (10, 5, 0, -0.05, -0.02, -0.12), (1.2, 0.17, -0.004, -0.003, -0.03, -0.004)),
    _action("recovery:weekly-retro", "Weekly retrospective", D.RECOVERY, (T.GOAL, T.RECOVERY),
            (30, 8, 0, -0.09, -0.03, -0.18), (1.5, 0.2, -0.006, -0.005, -0.07, -0.007)),
]


def build_action_catalog() -> List[ActionDefinition]:
    """A fresh copy of the catalog list (definitions themselves are immutable)."""
    return list(ACTION_CATALOG)


def catalog_by_id(catalog: List[ActionDefinition]) -> Dict[str, ActionDefinition]:
    return {action.id: action for action in catalog}


# ---------------------------------------------------------------------------
# Cost model
# ---------------------------------------------------------------------------

def _violation_penalty(excess: float) -> float:
    if excess <= 0:
        return 0.0
    return BUDGET_OVERRUN_BASE + round(excess * BUDGET_OVERRUN_SLOPE, 6)


def penalty_score(cost: ActionCost, weights: CostWeights, budget: BudgetEnvelope) -> float:
    """
    Weighted cost plus a hard penalty per dimension over budget.

    Any overrun adds at least 10 000, so an over-budget action always ranks
    below every in-budget one.
    """
    weighted = sum(getattr(cost, dim) * getattr(weights, dim) for dim in COST_DIMENSIONS)
    hard = sum(
        _violation_penalty(getattr(cost, dim) - getattr(budget, f"max_{dim}"))
        for dim in COST_DIMENSIONS
    )
    return round(weighted + hard, 6)
