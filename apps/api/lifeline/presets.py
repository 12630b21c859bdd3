"""
LIFELINE Scenario Presets

Ready-made adverse scenarios for the scenario simulator.
"""

from typing import List, Optional

from lifeline.models import ScenarioShock, ScenarioSpec, ShockMode


def _shock(metric_id: str, delta: float, days: int, mode: ShockMode = ShockMode.DAILY, lag: int = 0) -> ScenarioShock:
    return ScenarioShock(metric_id=metric_id, delta=delta, duration_days=days, start_lag_days=lag, mode=mode)


SCENARIO_PRESETS: List[ScenarioSpec] = [
    ScenarioSpec(
        name="Week of broken sleep", horizon_days=14, simulations=2000, noise=1.1, correlation_tag="health",
        shocks=[_shock("sleepHours", -1.5, 7)],
    ),
    ScenarioSpec(
        name="Rising stress", horizon_days=14, simulations=2000, noise=1.2, correlation_tag="health",
        shocks=[_shock("stress", 1.2, 10)],
    ),
    ScenarioSpec(
        name="Social conflict", horizon_days=7, simulations=2000, noise=1.15, correlation_tag="social",
        shocks=[_shock("social", -2, 3, ShockMode.STEP), _shock("mood", -1.2, 5)],
    ),
    ScenarioSpec(
        name="Productivity drop", horizon_days=14, simulations=2000, noise=1.0, correlation_tag="work",
        shocks=[_shock("productivity", -1.8, 7)],
    ),
    ScenarioSpec(
        name="Financial gap", horizon_days=30, simulations=2000, noise=1.05, correlation_tag="money",
        shocks=[_shock("cashFlow", -12000, 10), _shock("stress", 0.6, 8, lag=1)],
    ),
    ScenarioSpec(
        name="Combo: sleep down + stress up", horizon_days=14, simulations=10000, noise=1.3, correlation_tag="combo",
        shocks=[_shock("sleepHours", -1.2, 7), _shock("stress", 1.0, 7)],
    ),
    ScenarioSpec(
        name="Prolonged fatigue", horizon_days=30, simulations=2000, noise=1.2, correlation_tag="health",
        shocks=[_shock("energy", -0.7, 18)],
    ),
    ScenarioSpec(
        name="Focus deficit", horizon_days=7, simulations=2000, noise=1.1, correlation_tag="work",
        shocks=[_shock("focus", -1.5, 5)],
    ),
    ScenarioSpec(
        name="Isolation", horizon_days=14, simulations=2000, noise=1.0, correlation_tag="social",
        shocks=[_shock("social", -1.8, 10)],
    ),
    ScenarioSpec(
        name="Overwork", horizon_days=14, simulations=10000, noise=1.35, correlation_tag="work",
        shocks=[_shock("sleepHours", -1, 8), _shock("energy", -0.8, 8), _shock("stress", 0.9, 8)],
    ),
]


def get_preset(name: str) -> Optional[ScenarioSpec]:
    """Case-insensitive lookup by preset name."""
    wanted = name.strip().lower()
    for preset in SCENARIO_PRESETS:
        if preset.name.lower() == wanted:
            return preset
    return None
