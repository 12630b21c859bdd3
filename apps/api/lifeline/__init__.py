"""
LIFELINE — Personal-State Forecasting & Decision Engine

Architecture:
- Influence graph: propagation of metric changes, drivers and levers
- Risk state: collapse probability, siren and regime classification
- Scenario / multiverse simulators: seeded Monte Carlo futures with tail risk
- Policy engine: ranked actions per risk posture with audit records
- Lanes: background runs with progress and cancellation
"""

from lifeline.influence import InfluenceMatrix, default_influence_matrix, propagate
from lifeline.models import (
    ActionState,
    AuditRecord,
    PolicyConstraints,
    PolicyMode,
    PolicyTuning,
    ScenarioSpec,
    SimulationResult,
    SimulationSettings,
    SirenLevel,
)
from lifeline.risk_state import RiskState, classify
from lifeline.simulator import simulate
from lifeline.multiverse import MultiverseConfig, run_multiverse
from lifeline.policy import build_policy_state, evaluate_policies, evaluate_with_audit, verify_audit_record
from lifeline.lanes import Lane, simulation_lane, multiverse_lane

__all__ = [
    "InfluenceMatrix",
    "default_influence_matrix",
    "propagate",
    "ActionState",
    "AuditRecord",
    "PolicyConstraints",
    "PolicyMode",
    "PolicyTuning",
    "ScenarioSpec",
    "SimulationResult",
    "SimulationSettings",
    "SirenLevel",
    "RiskState",
    "classify",
    "simulate",
    "MultiverseConfig",
    "run_multiverse",
    "build_policy_state",
    "evaluate_policies",
    "evaluate_with_audit",
    "verify_audit_record",
    "Lane",
    "simulation_lane",
    "multiverse_lane",
]
