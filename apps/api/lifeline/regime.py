"""
Regime Detection and Classification for LIFELINE

This module implements regime awareness: it labels each day with one of five
operating regimes from its load, recovery, momentum and volatility, and
estimates regime transitions from the labelled history.
"""

from enum import IntEnum
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from lifeline.history import compute_index_series, compute_volatility
from lifeline.metrics import full_vector


class RegimeId(IntEnum):
    STABILIZATION = 0
    ACCELERATION = 1
    OVERHEATING = 2
    DRAWDOWN = 3
    STORM = 4   # Worst


REGIME_LABELS: Dict[RegimeId, str] = {
    RegimeId.STABILIZATION: "Stabilization",
    RegimeId.ACCELERATION: "Acceleration",
    RegimeId.OVERHEATING: "Overheating",
    RegimeId.DRAWDOWN: "Drawdown",
    RegimeId.STORM: "Storm",
}

REGIME_DESCRIPTIONS: Dict[RegimeId, str] = {
    RegimeId.STABILIZATION: "Even pace with recovery after load.",
    RegimeId.ACCELERATION: "Positive momentum and steady improvement.",
    RegimeId.OVERHEATING: "Strong forward drive with a risk of exhaustion.",
    RegimeId.DRAWDOWN: "Reduced capacity and a resource deficit.",
    RegimeId.STORM: "Instability and elevated systemic risk.",
}

N_REGIMES = len(RegimeId)


@dataclass
class DaySignals:
    """Inputs of the regime rules for one day (day index on the 0-100 scale)."""
    day_index: float
    volatility: float
    stress: float
    sleep_hours: float
    energy: float
    mood: float
    prev_day_index: Optional[float] = None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class RegimeDetector:
    """Classifies days into regimes and models regime transitions"""

    def __init__(self):
        # Rule thresholds, checked in order storm → overheating → drawdown → acceleration
        self.storm_thresholds = {
            'volatility': 70.0,
            'load': 72.0,
            'mood': 3.5,
        }

        self.overheating_thresholds = {
            'load': 68.0,
            'recovery': 45.0,
        }

        self.drawdown_thresholds = {
            'day_index': 40.0,
            'recovery': 30.0,
            'energy': 3.5,
            'mood': 4.5,
        }

        self.acceleration_thresholds = {
            'day_index': 60.0,
            'momentum': 0.6,
            'recovery': 54.0,
            'load': 56.0,
        }

        self.smoothing = 0.5  # Laplace add-k for transition counts

    @staticmethod
    def load(signals: DaySignals) -> float:
        return _clamp((signals.stress - signals.energy + 10.0) * 5.0, 0.0, 100.0)

    @staticmethod
    def recovery(signals: DaySignals) -> float:
        return _clamp((signals.sleep_hours + signals.energy - signals.stress + 2.0) * 8.0, 0.0, 100.0)

    @staticmethod
    def momentum(signals: DaySignals) -> float:
        if signals.prev_day_index is None:
            return 0.0
        return _clamp(signals.day_index - signals.prev_day_index, -3.0, 3.0)

    def classify_day(self, signals: DaySignals) -> RegimeId:
        """
        Regime of a single day

        Args:
            signals: Day index, volatility and the latest metric values

        Returns:
            RegimeId of the first rule that matches
        """
        load = self.load(signals)
        recovery = self.recovery(signals)
        momentum = self.momentum(signals)

        storm = self.storm_thresholds
        if signals.volatility >= storm['volatility'] or (load >= storm['load'] and signals.mood <= storm['mood']):
            return RegimeId.STORM

        hot = self.overheating_thresholds
        if load >= hot['load'] and recovery <= hot['recovery']:
            return RegimeId.OVERHEATING

        down = self.drawdown_thresholds
        if (
            signals.day_index <= down['day_index']
            or recovery <= down['recovery']
            or (signals.energy <= down['energy'] and signals.mood <= down['mood'])
        ):
            return RegimeId.DRAWDOWN

        up = self.acceleration_thresholds
        if (
            signals.day_index >= up['day_index']
            and momentum >= up['momentum']
            and recovery >= up['recovery']
            and load <= up['load']
        ):
            return RegimeId.ACCELERATION

        return RegimeId.STABILIZATION

    def explain(self, signals: DaySignals, regime_id: RegimeId) -> List[str]:
        """Three short reasons for a regime label"""
        load = self.load(signals)
        recovery = self.recovery(signals)
        momentum = self.momentum(signals)

        reasons = {
            RegimeId.STABILIZATION: [
                f"Load is moderate ({load:.0f}/100) with no critical spikes.",
                f"Recovery stays in the stable corridor ({recovery:.0f}/100).",
                f"Day momentum is even ({momentum:+.1f} to the index).",
            ],
            RegimeId.ACCELERATION: [
                f"Index is high ({signals.day_index:.1f}) and still rising.",
                f"Positive momentum ({momentum:+.1f}).",
                f"Recovery outpaces load ({recovery:.0f} vs {load:.0f}).",
            ],
            RegimeId.OVERHEATING: [
                f"Load is elevated ({load:.0f}/100).",
                f"Recovery is not keeping up ({recovery:.0f}/100).",
                "Drive stays high, but fatigue risk is growing.",
            ],
            RegimeId.DRAWDOWN: [
                f"Day index is in the decline zone ({signals.day_index:.1f}).",
                f"Recovery capacity has dropped ({recovery:.0f}/100).",
                "Energy and mood are limiting the pace of recovery.",
            ],
            RegimeId.STORM: [
                f"Volatility is critical ({signals.volatility:.1f}).",
                f"Load far exceeds resources ({load:.0f} with recovery {recovery:.0f}).",
                "Stress combined with low mood raises the risk of a breakdown.",
            ],
        }
        return reasons[RegimeId(regime_id)][:3]

    def transition_matrix(self, series: Sequence[int]) -> np.ndarray:
        """Row-stochastic 5×5 matrix of observed transitions, add-k smoothed"""
        counts = np.full((N_REGIMES, N_REGIMES), self.smoothing, dtype=float)
        for current, following in zip(series[:-1], series[1:]):
            counts[int(current), int(following)] += 1.0
        return counts / counts.sum(axis=1, keepdims=True)

    def predict_next(self, regime_id: int, matrix: np.ndarray, steps: int = 1) -> List[float]:
        """
        Probability of each regime `steps` days ahead

        Args:
            regime_id: Current regime
            matrix: One-step transition matrix
            steps: 1, 2 or 3

        Returns:
            Distribution over regime ids 0..4
        """
        vector = np.zeros(N_REGIMES, dtype=float)
        vector[int(regime_id)] = 1.0
        distribution = vector @ np.linalg.matrix_power(np.asarray(matrix, dtype=float), int(steps))
        return [float(p) for p in distribution]

    def build_series(
        self,
        history: Sequence[Mapping[str, float]],
        volatility: Optional[float] = None,
    ) -> List[RegimeId]:
        """Regime label of every day of an ascending history"""
        day_indexes = [value * 10.0 for value in compute_index_series(history)]
        if volatility is None:
            volatility = regime_volatility(history)
        labels = []
        for i, day in enumerate(history):
            values = full_vector(day)
            labels.append(self.classify_day(DaySignals(
                day_index=day_indexes[i],
                prev_day_index=day_indexes[i - 1] if i > 0 else None,
                volatility=volatility,
                stress=values["stress"],
                sleep_hours=values["sleepHours"],
                energy=values["energy"],
                mood=values["mood"],
            )))
        return labels


def regime_volatility(history: Sequence[Mapping[str, float]]) -> float:
    """Energy volatility over 14 days, rescaled to the regime volatility scale."""
    return compute_volatility(history, "energy", 14) * 50.0


def regime_from_day(signals: DaySignals) -> RegimeId:
    return REGIME_DETECTOR.classify_day(signals)


def explain_regime(signals: DaySignals, regime_id: int) -> List[str]:
    return REGIME_DETECTOR.explain(signals, RegimeId(regime_id))


def get_transition_matrix(series: Sequence[int]) -> np.ndarray:
    return REGIME_DETECTOR.transition_matrix(series)


def predict_next(regime_id: int, matrix: np.ndarray, steps: int = 1) -> List[float]:
    return REGIME_DETECTOR.predict_next(regime_id, matrix, steps)


def build_regime_series(history: Sequence[Mapping[str, float]], volatility: Optional[float] = None) -> List[RegimeId]:
    return REGIME_DETECTOR.build_series(history, volatility)


# Global instance for use in the engines
REGIME_DETECTOR = RegimeDetector()
