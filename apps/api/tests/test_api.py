import sys
import os
import json

import pytest
from fastapi.testclient import TestClient

# ensure local app package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from main import app
from lifeline import config


@pytest.fixture
def client(tmp_path, monkeypatch):
    # isolate the run cache
    monkeypatch.setattr(config, "CACHE_DIR", str(tmp_path / "cache"))
    return TestClient(app)


def small_simulation(**overrides):
    body = {
        "base": {"energy": 6, "stress": 4},
        "settings": {"horizon_days": 7, "simulation_count": 500, "seed": 5},
    }
    body.update(overrides)
    return body


def test_health_and_metrics(client):
    r = client.get("/api/v1/health")
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["cache"]["total_entries"] == 0

    r = client.get("/api/v1/metrics")
    ids = [m["id"] for m in r.json()["metrics"]]
    assert ids[0] == "energy" and ids[-1] == "cashFlow"


def test_propagate_endpoint(client):
    r = client.post("/api/v1/influence/propagate", json={"impulses": {"sleepHours": 1}, "steps": 2})
    assert r.status_code == 200
    data = r.json()
    assert data["result"]["energy"] > 5
    assert data["drivers"][0] == "Sleep ↑ → Energy ↑"
    assert len(data["levers"]) == 3


def test_propagate_rejects_bad_steps(client):
    r = client.post("/api/v1/influence/propagate", json={"steps": 4})
    assert r.status_code == 422


def test_default_edges(client):
    edges = client.get("/api/v1/influence/default").json()["edges"]
    assert edges["sleepHours"]["energy"] > 0


def test_classify_from_checkins(client):
    checkins = [
        {"ts": "2024-05-01T09:00:00", "values": {"stress": 8, "sleepHours": 5}},
        {"ts": "2024-05-03T21:00:00", "values": {"stress": 9, "sleepHours": 4}},
    ]
    r = client.post("/api/v1/risk/classify", json={"checkins": checkins})
    assert r.status_code == 200
    state = r.json()["risk_state"]
    assert state["siren_level"] in ("green", "amber", "red")
    assert len(state["next1"]) == 5


def test_tail_endpoint_reports_warnings(client):
    r = client.post("/api/v1/risk/tail", json={"samples": list(range(1, 11)), "alpha": 0.9})
    data = r.json()
    assert data["summary"]["es"] == pytest.approx(10.0)
    assert "single-tail-point" in data["compact"]["warnings"]


def test_presets_listed(client):
    presets = client.get("/api/v1/scenarios/presets").json()["presets"]
    assert len(presets) == 10


def test_simulation_is_cached(client):
    first = client.post("/api/v1/simulations/run", json=small_simulation())
    assert first.status_code == 200
    assert first.json()["cached"] is False

    second = client.post("/api/v1/simulations/run", json=small_simulation())
    assert second.json()["cached"] is True
    assert second.json()["result"] == first.json()["result"]


def test_unknown_preset_is_404(client):
    r = client.post("/api/v1/simulations/run", json=small_simulation(preset="No such preset"))
    assert r.status_code == 404


def test_invalid_simulation_count_is_422(client):
    body = small_simulation(settings={"horizon_days": 7, "simulation_count": 123})
    r = client.post("/api/v1/simulations/run", json=body)
    assert r.status_code == 422


def test_simulation_stream_is_ndjson(client):
    with client.stream("POST", "/api/v1/simulations/stream", json=small_simulation(preset="Isolation")) as r:
        assert r.status_code == 200
        messages = [json.loads(line) for line in r.iter_lines() if line]

    assert messages[-1]["type"] == "done"
    progress = [m["done"] for m in messages if m["type"] == "progress"]
    assert progress[-1] == 500
    assert messages[-1]["result"]["completed_runs"] == 500


def test_multiverse_run(client):
    r = client.post("/api/v1/multiverse/run", json={"horizon_days": 7, "runs": 1000, "seed": 2})
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["completed_runs"] == 1000
    assert result["weights_source"] == "manual"


def test_catalog_endpoint(client):
    actions = client.get("/api/v1/actions/catalog").json()["actions"]
    assert len(actions) == 33
    assert actions[0]["id"] == "focus:deep-25"


def test_policy_evaluate_and_verify(client):
    state = {"index": 6.0, "p_collapse": 0.1, "siren_level": 0.2, "recovery_score": 60, "shock_budget": 1}
    r = client.post("/api/v1/policy/evaluate", json={"state": state, "mode": "growth", "seed": 7})
    assert r.status_code == 200
    report = r.json()["report"]
    audit = report["audit"]
    assert len(report["results"]) == 3
    assert audit["repro_token"]["seed"] == 7
    assert len(audit["why_top"]) <= 5

    r = client.post("/api/v1/policy/verify", json={"record": audit, "state": r.json()["state"]})
    assert r.status_code == 200
    assert r.json()["valid"] is True

    tampered = dict(state, index=3.0)
    r = client.post("/api/v1/policy/verify", json={"record": audit, "state": tampered})
    assert r.json()["valid"] is False
    assert "state_hash" in r.json()["mismatches"]


def test_policy_needs_some_state(client):
    r = client.post("/api/v1/policy/evaluate", json={})
    assert r.status_code == 400


def test_policy_from_latest_checkin(client):
    r = client.post("/api/v1/policy/evaluate", json={"latest": {"energy": 7, "stress": 3}, "mode": "risk"})
    assert r.status_code == 200
    assert r.json()["report"]["audit"]["selected_mode"] == "risk"


def test_propagate_drops_non_finite_impulses(client):
    # NaN is not valid strict JSON, so the body is sent raw
    body = '{"impulses": {"energy": NaN, "sleepHours": 1}, "steps": 2}'
    r = client.post("/api/v1/influence/propagate", content=body, headers={"content-type": "application/json"})
    assert r.status_code == 200
    data = r.json()
    assert "dropped-non-finite" in data["warnings"]
    expected = client.post("/api/v1/influence/propagate", json={"impulses": {"sleepHours": 1}, "steps": 2}).json()
    assert data["result"] == expected["result"]


def test_multiverse_clamps_out_of_domain_base(client):
    body = {"horizon_days": 7, "runs": 1000, "base_vector": {"sleepHours": 40}}
    r = client.post("/api/v1/multiverse/run", json=body)
    assert r.status_code == 200
    result = r.json()["result"]
    assert "metric-clamped" in result["warnings"]
    assert all(v is not None for v in result["index"]["p50"])
