import os
import json
import logging
import dataclasses
from typing import Dict, List, Literal, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from lifeline import config
from lifeline.actions import build_action_catalog
from lifeline.guardrails import GuardrailCheckResult, sanitize_history, sanitize_vector
from lifeline.history import build_daily_series, frame_to_vectors
from lifeline.influence import (
    InfluenceMatrix,
    build_playbook,
    compute_top_levers,
    default_influence_matrix,
    explain_drivers,
    propagate,
    resolve_matrix,
)
from lifeline.lanes import simulation_lane
from lifeline.metrics import METRICS
from lifeline.models import (
    ActionState,
    AuditRecord,
    CheckinRecord,
    PolicyConstraints,
    PolicyMode,
    PolicyTuning,
    ScenarioSpec,
    SimulationSettings,
)
from lifeline.multiverse import MultiverseConfig, run_multiverse
from lifeline.policy import build_policy_state, evaluate_with_audit, verify_audit_record
from lifeline.presets import SCENARIO_PRESETS, get_preset
from lifeline.risk_state import HistoryContext, classify
from lifeline.run_cache import get_cache_stats, get_cached_result, set_cached_result
from lifeline.simulator import simulate
from lifeline.tail_risk import compact_tail_risk_summary, compute_tail_risk

config.configure_logging()
logger = logging.getLogger("lifeline.api")

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

app = FastAPI(title="LIFELINE API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------
# Request models
# ----------------------------
EdgeMapping = Dict[str, Dict[str, float]]


class HistoryIn(BaseModel):
    history: List[Dict[str, float]] = Field(default_factory=list, description="Ascending daily metric vectors")
    checkins: List[CheckinRecord] = Field(default_factory=list, description="Raw check-ins; densified per day")

    def dense_history(self, check: GuardrailCheckResult) -> List[Dict[str, float]]:
        raw = self.history or frame_to_vectors(build_daily_series(self.checkins))
        days, history_check = sanitize_history(raw)
        for warning in history_check.warnings:
            check.add(warning)
        return days


class PropagateIn(BaseModel):
    base: Dict[str, float] = Field(default_factory=dict)
    impulses: Dict[str, float] = Field(default_factory=dict)
    matrix: Optional[EdgeMapping] = None
    steps: Literal[1, 2, 3] = 2


class ClassifyIn(HistoryIn):
    snapshot: Dict[str, float] = Field(default_factory=dict)
    active_quest: Optional[str] = None
    matrix: Optional[EdgeMapping] = None


class TailIn(BaseModel):
    samples: List[float] = Field(default_factory=list)
    alpha: float = 0.975


class SimulationIn(HistoryIn):
    base: Dict[str, float] = Field(default_factory=dict)
    matrix: Optional[EdgeMapping] = None
    learned_matrix: Optional[EdgeMapping] = None
    settings: SimulationSettings = Field(default_factory=SimulationSettings)
    scenario: Optional[ScenarioSpec] = None
    preset: Optional[str] = Field(default=None, description="Preset name; ignored when scenario is given")


class PolicyIn(HistoryIn):
    state: Optional[ActionState] = Field(default=None, description="Explicit state; built from `latest` otherwise")
    latest: Dict[str, float] = Field(default_factory=dict)
    debt_total: float = 0.0
    goal_gap: float = 0.0
    recovery_score: float = 0.0
    shock_budget: float = 0.0
    constraints: PolicyConstraints = Field(default_factory=PolicyConstraints)
    tuning: PolicyTuning = Field(default_factory=PolicyTuning)
    mode: PolicyMode = PolicyMode.BALANCED
    seed: int = config.DEFAULT_SEED


class VerifyIn(BaseModel):
    record: AuditRecord
    state: ActionState
    constraints: PolicyConstraints = Field(default_factory=PolicyConstraints)
    tuning: PolicyTuning = Field(default_factory=PolicyTuning)


def _matrix_from(edges: Optional[EdgeMapping]) -> InfluenceMatrix:
    return InfluenceMatrix.from_mapping(edges) if edges else default_influence_matrix()


def _resolve_simulation(body: SimulationIn, check: GuardrailCheckResult):
    history = body.dense_history(check)
    base = sanitize_vector(body.base or (history[-1] if history else {}), check)
    manual = _matrix_from(body.matrix)
    learned = InfluenceMatrix.from_mapping(body.learned_matrix) if body.learned_matrix else None
    matrix = resolve_matrix(manual, learned, body.settings.weights_source, body.settings.mix)
    scenario = body.scenario
    if scenario is None and body.preset:
        scenario = get_preset(body.preset)
        if scenario is None:
            raise HTTPException(status_code=404, detail=f"Unknown scenario preset: {body.preset}")
    return base, history, matrix, scenario


# ----------------------------
# Meta routes
# ----------------------------
@app.get("/api/v1/health")
def health():
    return {
        "ok": True,
        "build_id": config.BUILD_ID,
        "policy_version": config.POLICY_VERSION,
        "cache": get_cache_stats(),
    }


@app.get("/api/v1/metrics")
def metrics():
    return {"ok": True, "metrics": [dataclasses.asdict(m) for m in METRICS]}


# ----------------------------
# Influence routes
# ----------------------------
@app.get("/api/v1/influence/default")
def influence_default():
    return {"ok": True, "edges": default_influence_matrix().to_mapping()}


@app.post("/api/v1/influence/propagate")
def influence_propagate(body: PropagateIn):
    check = GuardrailCheckResult()
    base = sanitize_vector(body.base, check)
    matrix = _matrix_from(body.matrix)
    result = propagate(base, body.impulses, matrix, body.steps, check)
    return {
        "ok": True,
        "result": result,
        "drivers": explain_drivers(result, base, matrix),
        "levers": [dataclasses.asdict(lever) for lever in compute_top_levers(base, matrix)],
        "playbook": build_playbook(base, result, matrix),
        "warnings": check.codes,
    }


# ----------------------------
# Risk routes
# ----------------------------
@app.post("/api/v1/risk/classify")
def risk_classify(body: ClassifyIn):
    check = GuardrailCheckResult()
    history = body.dense_history(check)
    snapshot = body.snapshot or (history[-1] if history else {})
    snapshot = sanitize_vector(snapshot, check)
    context = HistoryContext(history=history, active_quest=body.active_quest, matrix=_matrix_from(body.matrix))
    try:
        state = classify(snapshot, context)
    except Exception as e:
        logger.exception("risk classification failed")
        raise HTTPException(status_code=500, detail=f"Classification failed: {e}")
    return {"ok": True, "risk_state": state.model_dump(mode="json"), "warnings": check.codes}


@app.post("/api/v1/risk/tail")
def risk_tail(body: TailIn):
    summary = compute_tail_risk(body.samples, body.alpha)
    return {"ok": True, "summary": summary.model_dump(mode="json"), "compact": compact_tail_risk_summary(summary)}


# ----------------------------
# Simulation routes
# ----------------------------
@app.get("/api/v1/scenarios/presets")
def scenario_presets():
    return {"ok": True, "presets": [p.model_dump(mode="json") for p in SCENARIO_PRESETS]}


@app.post("/api/v1/simulations/run")
def simulations_run(body: SimulationIn):
    cached = get_cached_result("simulation", body)
    if cached is not None:
        return {"ok": True, "cached": True, "result": cached}

    check = GuardrailCheckResult()
    base, history, matrix, scenario = _resolve_simulation(body, check)
    try:
        result = simulate(base, history, matrix, body.settings, scenario)
    except Exception as e:
        logger.exception("simulation failed")
        raise HTTPException(status_code=500, detail=f"Simulation failed: {e}")

    payload = result.model_dump(mode="json")
    set_cached_result("simulation", body, payload)
    return {"ok": True, "cached": False, "result": payload, "warnings": check.codes}


@app.post("/api/v1/simulations/stream")
async def simulations_stream(request: Request, body: SimulationIn):
    check = GuardrailCheckResult()
    base, history, matrix, scenario = _resolve_simulation(body, check)
    lane = simulation_lane(base, history, matrix, body.settings, scenario)

    async def ndjson():
        async for msg in lane.messages():
            if not msg.is_terminal and await request.is_disconnected():
                lane.cancel()
            yield json.dumps(msg.to_wire()) + "\n"

    return StreamingResponse(ndjson(), media_type="application/x-ndjson")


@app.post("/api/v1/multiverse/run")
def multiverse_run(body: MultiverseConfig):
    cached = get_cached_result("multiverse", body)
    if cached is not None:
        return {"ok": True, "cached": True, "result": cached}
    try:
        result = run_multiverse(body)
    except Exception as e:
        logger.exception("multiverse run failed")
        raise HTTPException(status_code=500, detail=f"Multiverse run failed: {e}")
    payload = result.model_dump(mode="json")
    set_cached_result("multiverse", body, payload)
    return {"ok": True, "cached": False, "result": payload}


# ----------------------------
# Policy routes
# ----------------------------
@app.get("/api/v1/actions/catalog")
def actions_catalog():
    return {"ok": True, "actions": [a.model_dump(mode="json") for a in build_action_catalog()]}


@app.post("/api/v1/policy/evaluate")
def policy_evaluate(body: PolicyIn):
    check = GuardrailCheckResult()
    state = body.state
    if state is None:
        history = body.dense_history(check)
        latest = body.latest or (history[-1] if history else {})
        if not latest:
            raise HTTPException(status_code=400, detail="Provide a state, a latest check-in or a history")
        state = build_policy_state(
            sanitize_vector(latest, check),
            history,
            debt_total=body.debt_total,
            goal_gap=body.goal_gap,
            recovery_score=body.recovery_score,
            shock_budget=body.shock_budget,
        )
    try:
        report = evaluate_with_audit(state, body.constraints, body.mode, body.seed, body.tuning)
    except Exception as e:
        logger.exception("policy evaluation failed")
        raise HTTPException(status_code=500, detail=f"Policy evaluation failed: {e}")
    return {"ok": True, "state": state.model_dump(mode="json"), "report": report.model_dump(mode="json"), "warnings": check.codes}


@app.post("/api/v1/policy/verify")
def policy_verify(body: VerifyIn):
    try:
        verification = verify_audit_record(body.record, body.state, body.constraints, body.tuning)
    except Exception as e:
        logger.exception("audit verification failed")
        raise HTTPException(status_code=500, detail=f"Verification failed: {e}")
    return {"ok": True, **verification.model_dump(mode="json")}
