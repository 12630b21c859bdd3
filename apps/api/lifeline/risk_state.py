"""
LIFELINE Risk-State Classifier

Combines the collapse model and the regime detector into one risk state for
the latest day, with the regime outlook and a short de-escalation protocol.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from lifeline.collapse import assess_collapse_risk, build_disarm_protocol
from lifeline.history import compute_core_state, compute_index_series
from lifeline.influence import InfluenceMatrix
from lifeline.metrics import full_vector
from lifeline.models import CoreStateSnapshot, SirenLevel
from lifeline.regime import (
    REGIME_LABELS,
    DaySignals,
    RegimeId,
    build_regime_series,
    explain_regime,
    get_transition_matrix,
    predict_next,
    regime_volatility,
)


class DisarmStep(BaseModel):
    what: str
    why: str
    effect: str


class RiskState(BaseModel):
    """Classified risk state of the latest day."""
    p_collapse: float = Field(..., ge=0.0, le=1.0)
    siren_level: SirenLevel = Field(...)
    regime_id: int = Field(..., ge=0, le=4)
    regime_label: str = Field(default="")
    system_reliability: float = Field(default=1.0)
    domain_reliability: Dict[str, float] = Field(default_factory=dict)
    weakest_domains: List[str] = Field(default_factory=list, description="Domain ids, weakest first")
    explain_top3: List[str] = Field(default_factory=list)
    next1: List[float] = Field(default_factory=list, description="Regime distribution one day ahead")
    next3: List[float] = Field(default_factory=list, description="Regime distribution three days ahead")
    next_likely_regime: int = Field(default=0)
    disarm_protocol: List[DisarmStep] = Field(default_factory=list)


@dataclass
class HistoryContext:
    """Ascending daily history plus optional extras for the classifier."""
    history: Sequence[Mapping[str, float]] = field(default_factory=list)
    core: Optional[CoreStateSnapshot] = None
    active_quest: Optional[str] = None
    matrix: Optional[InfluenceMatrix] = None


def classify(snapshot: Mapping[str, float], context: Optional[HistoryContext] = None) -> RiskState:
    """
    Classify the latest day.

    Args:
        snapshot: Latest metric values (missing metrics take their defaults).
        context: History the regime and core state are derived from. When the
            history is empty, the snapshot alone is treated as a one-day history.

    Returns:
        RiskState with collapse probability, siren, regime and outlook.
    """
    context = context or HistoryContext()
    latest = full_vector(snapshot)
    history = list(context.history) or [latest]
    core = context.core or compute_core_state(history)

    assessment = assess_collapse_risk(core.index, core.stats, latest)

    volatility = regime_volatility(history)
    series = build_regime_series(history, volatility)
    day_indexes = [value * 10.0 for value in compute_index_series(history)]
    regime_id = series[-1] if series else RegimeId.STABILIZATION

    reasons = explain_regime(DaySignals(
        day_index=day_indexes[-1] if day_indexes else core.index * 10.0,
        prev_day_index=day_indexes[-2] if len(day_indexes) > 1 else None,
        volatility=volatility,
        stress=latest["stress"],
        sleep_hours=latest["sleepHours"],
        energy=latest["energy"],
        mood=latest["mood"],
    ), regime_id)

    matrix = get_transition_matrix(series)
    next1 = predict_next(regime_id, matrix, 1)
    next3 = predict_next(regime_id, matrix, 3)
    next_likely = max(range(len(next1)), key=lambda i: (next1[i], -i))

    protocol = build_disarm_protocol(latest, assessment, context.active_quest, context.matrix)

    return RiskState(
        p_collapse=round(assessment.p_collapse, 4),
        siren_level=assessment.siren_level,
        regime_id=int(regime_id),
        regime_label=REGIME_LABELS[RegimeId(regime_id)],
        system_reliability=round(assessment.system_reliability, 4),
        domain_reliability={k: round(v, 4) for k, v in assessment.domain_reliability.items()},
        weakest_domains=[d["id"] for d in assessment.weakest_domains],
        explain_top3=reasons,
        next1=[round(p, 4) for p in next1],
        next3=[round(p, 4) for p in next3],
        next_likely_regime=next_likely,
        disarm_protocol=[DisarmStep(what=a.what, why=a.why, effect=a.effect) for a in protocol],
    )
