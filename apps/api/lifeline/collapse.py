"""
LIFELINE Collapse Model

Series-system reliability over four life domains. Each domain reliability is
a weighted blend of normalized scores in [0, 1]; the system only holds when
every domain holds, so system reliability is their product.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from lifeline.influence import InfluenceMatrix, Lever, compute_top_levers, default_influence_matrix
from lifeline.metrics import metric_label
from lifeline.models import CoreStats, SirenLevel

RED_THRESHOLD = 0.35
AMBER_THRESHOLD = 0.20

DOMAIN_NAMES = {
    "fin": "financial",
    "phys": "physical",
    "ment": "mental",
    "exec": "executive",
}


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def score10(value: float) -> float:
    return clamp01(value / 10.0)


def score_sleep(value: float) -> float:
    return clamp01(value / 8.0)


def score_cash(value: float) -> float:
    return clamp01((value + 20000.0) / 40000.0)


def siren_for(p_collapse: float) -> SirenLevel:
    if p_collapse > RED_THRESHOLD:
        return SirenLevel.RED
    if p_collapse >= AMBER_THRESHOLD:
        return SirenLevel.AMBER
    return SirenLevel.GREEN


@dataclass
class CollapseAssessment:
    domain_reliability: Dict[str, float]
    system_reliability: float
    p_collapse: float
    siren_level: SirenLevel
    weakest_domains: List[dict] = field(default_factory=list)  # [{"id", "reliability"}], weakest first


@dataclass
class CollapseAction:
    what: str
    why: str
    effect: str


def assess_collapse_risk(
    index: float,
    stats: CoreStats,
    latest: Optional[Mapping[str, float]] = None,
) -> CollapseAssessment:
    """
    Collapse probability of the current state.

    Args:
        index: Day index on the 0-10 scale.
        stats: Core composite stats (strength, intelligence, wisdom on 0-100).
        latest: Latest metric values; missing metrics use neutral defaults.
    """
    latest = latest or {}
    stress_penalty = 1.0 - score10(latest.get("stress", 5.0))
    mood = score10(latest.get("mood", 5.0))
    energy = score10(latest.get("energy", 5.0))
    focus = score10(latest.get("focus", 5.0))
    productivity = score10(latest.get("productivity", 5.0))
    sleep = score_sleep(latest.get("sleepHours", 7.0))
    cash = score_cash(latest.get("cashFlow", 0.0))

    reliability = {
        "fin": clamp01(0.65 * cash + 0.35 * clamp01(index / 10.0)),
        "phys": clamp01(0.45 * sleep + 0.35 * energy + 0.2 * clamp01(stats.strength / 100.0)),
        "ment": clamp01(0.45 * stress_penalty + 0.35 * mood + 0.2 * clamp01(stats.wisdom / 100.0)),
        "exec": clamp01(0.4 * focus + 0.35 * productivity + 0.25 * clamp01(stats.intelligence / 100.0)),
    }
    system = reliability["fin"] * reliability["phys"] * reliability["ment"] * reliability["exec"]
    p_collapse = clamp01(1.0 - system)

    weakest = sorted(
        ({"id": domain, "reliability": value} for domain, value in reliability.items()),
        key=lambda item: item["reliability"],
    )
    return CollapseAssessment(
        domain_reliability=reliability,
        system_reliability=system,
        p_collapse=p_collapse,
        siren_level=siren_for(p_collapse),
        weakest_domains=weakest,
    )


def _lever_action(lever: Lever) -> CollapseAction:
    direction = "Raise" if lever.suggested_delta > 0 else "Lower"
    return CollapseAction(
        what=f"{direction} {metric_label(lever.source)} by {abs(lever.suggested_delta):.1f} pt.",
        why=f"The {metric_label(lever.source)} → {metric_label(lever.target)} link gives the fastest shift right now.",
        effect="Expected effect: less systemic fragility and a steadier regime.",
    )


def build_disarm_protocol(
    latest: Optional[Mapping[str, float]],
    assessment: CollapseAssessment,
    active_quest: Optional[str] = None,
    matrix: Optional[InfluenceMatrix] = None,
) -> List[CollapseAction]:
    """At most three de-escalation steps: active quest, top levers, weakest domain."""
    if not latest:
        return []

    levers = compute_top_levers(latest, matrix or default_influence_matrix(), 3)
    actions = [_lever_action(lever) for lever in levers]

    if active_quest:
        actions.insert(0, CollapseAction(
            what=f"Finish the mission \"{active_quest}\".",
            why="The active mission is already part of the current recovery loop.",
            effect="Expected effect: a quick local drop of the siren and more resilience.",
        ))

    if assessment.weakest_domains:
        weakest = assessment.weakest_domains[0]
        actions.append(CollapseAction(
            what=f"Schedule a 20-minute step for the {DOMAIN_NAMES[weakest['id']]} domain today.",
            why=f"It is the weakest domain ({weakest['reliability'] * 100:.0f}% reliability).",
            effect="Expected effect: lifting the minimum and lowering the chance of a breakdown.",
        ))

    return actions[:3]
