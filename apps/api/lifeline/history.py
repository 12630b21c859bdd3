"""
LIFELINE History — daily series and derived state

Check-ins arrive as timestamped records. They are condensed into a dense,
ascending daily frame (last check-in of a day wins, gaps forward-filled) and
summarized into the aggregate core state used by the classifiers.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from lifeline.metrics import (
    INDEX_METRIC_IDS,
    METRIC_BY_ID,
    METRIC_IDS,
    compute_index_day,
    full_vector,
)
from lifeline.models import CheckinRecord, CoreStateSnapshot, CoreStats


def build_daily_series(checkins: Sequence[CheckinRecord]) -> pd.DataFrame:
    """
    Dense daily frame (one row per calendar day, columns = metric ids).

    Days without a check-in repeat the previous day. Returns an empty frame
    with the metric columns when there are no check-ins.
    """
    if not checkins:
        return pd.DataFrame(columns=METRIC_IDS, dtype=float)

    frame = pd.DataFrame(
        [c.values for c in checkins],
        index=pd.DatetimeIndex([pd.Timestamp(c.ts) for c in checkins]),
    )
    frame = frame.sort_index(kind="stable")
    frame.index = frame.index.normalize()
    daily = frame.groupby(level=0).last()
    dense_index = pd.date_range(daily.index.min(), daily.index.max(), freq="D")
    return daily.reindex(dense_index).ffill()[METRIC_IDS]


def frame_to_vectors(frame: pd.DataFrame) -> List[Dict[str, float]]:
    return [full_vector(row) for row in frame.to_dict(orient="records")]


def compute_index_series(history: Sequence[Mapping[str, float]]) -> List[float]:
    """Day index (0-10) of every day, oldest first."""
    return [compute_index_day(full_vector(day)) for day in history]


def compute_volatility(history: Sequence[Mapping[str, float]], metric_id: str = "energy", days: int = 14) -> float:
    """Population std of day-over-day changes of one metric over the last `days` days."""
    window = [float(full_vector(day)[metric_id]) for day in history[-days:]]
    if len(window) < 2:
        return 0.0
    return float(np.std(np.diff(window)))


def compute_averages(history: Sequence[Mapping[str, float]], days: int = 7) -> Dict[str, float]:
    window = [full_vector(day) for day in history[-days:]]
    if not window:
        return {metric_id: 0.0 for metric_id in METRIC_IDS}
    return {metric_id: float(np.mean([day[metric_id] for day in window])) for metric_id in METRIC_IDS}


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _score10(value: float) -> float:
    return _clamp(value / 10.0, 0.0, 1.0)


def compute_core_state(history: Sequence[Mapping[str, float]]) -> CoreStateSnapshot:
    """
    Aggregate core state from an ascending history.

    - index: latest day index (1 decimal)
    - risk: 0-100 strain from 7-day stress/sleep/mood averages
    - volatility: 14-day energy volatility
    - entropy: blend of volatility and risk
    - stats: 0-100 composite scores of the latest day
    """
    if not history:
        return CoreStateSnapshot()

    latest = full_vector(history[-1])
    index_series = compute_index_series(history)
    index = round(index_series[-1], 1)
    drift = round(index - index_series[-2], 1) if len(index_series) > 1 else 0.0
    volatility = round(compute_volatility(history, "energy", 14), 1)

    energy = _score10(latest["energy"])
    focus = _score10(latest["focus"])
    mood = _score10(latest["mood"])
    stress_inverse = 1.0 - _score10(latest["stress"])
    sleep = _clamp(latest["sleepHours"] / 8.0, 0.0, 1.0)
    social = _score10(latest["social"])
    productivity = _score10(latest["productivity"])
    health = _score10(latest["health"])
    cash = _clamp((latest["cashFlow"] + 10000.0) / 20000.0, 0.0, 1.0)

    stats = CoreStats(
        strength=round(_clamp((energy * 0.34 + health * 0.3 + sleep * 0.22 + stress_inverse * 0.14) * 100, 0, 100), 1),
        intelligence=round(_clamp((focus * 0.4 + productivity * 0.3 + sleep * 0.2 + cash * 0.1) * 100, 0, 100), 1),
        wisdom=round(_clamp((mood * 0.33 + social * 0.22 + stress_inverse * 0.25 + sleep * 0.2) * 100, 0, 100), 1),
        dexterity=round(_clamp((productivity * 0.34 + energy * 0.26 + focus * 0.22 + social * 0.18) * 100, 0, 100), 1),
    )

    avg7 = compute_averages(history, 7)
    risk = round(_clamp(avg7["stress"] * 10 - avg7["sleepHours"] * 4 + (10 - avg7["mood"]) * 3, 0, 100), 1)
    entropy = round(_clamp(volatility * 22 + risk * 0.45, 0, 100), 1)

    return CoreStateSnapshot(
        index=index,
        risk=risk,
        volatility=volatility,
        entropy=entropy,
        drift=drift,
        stats=stats,
    )


def synthetic_history(days: int = 30, seed: int = 7, start: Optional[datetime] = None) -> List[CheckinRecord]:
    """
    Plausible random check-ins for demos and tests.

    Uses numpy's generator, independent of the simulation generator.
    Each metric follows a bounded random walk around its default.
    """
    rng = np.random.default_rng(seed)
    start = start or datetime(2024, 1, 1, 9, 0)
    current = {metric_id: float(METRIC_BY_ID[metric_id].default) for metric_id in METRIC_IDS}
    records = []
    for day in range(days):
        for metric_id in INDEX_METRIC_IDS:
            config = METRIC_BY_ID[metric_id]
            step = rng.normal(0.0, 1.0) * config.step
            value = current[metric_id] + step + (config.default - current[metric_id]) * 0.2
            current[metric_id] = _clamp(round(value / config.step) * config.step, config.min, config.max)
        current["cashFlow"] = float(round(rng.normal(0.0, 1500.0) / 100.0) * 100.0)
        records.append(CheckinRecord(ts=start + timedelta(days=day), values=dict(current)))
    return records
