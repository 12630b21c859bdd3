"""
LIFELINE Seeded Generators

`Mulberry32` is the canonical generator for every simulation path, and
simulation outputs are reproducible only against its exact bit sequence.
It is never interchanged with the numpy generator used for synthetic
history (see `lifeline.history.synthetic_history`).
"""

import math

_MASK32 = 0xFFFFFFFF
_TWO_POW_32 = 4294967296.0
# Smallest u1 for Box-Muller; keeps log() finite
_MIN_UNIFORM = 2.220446049250313e-16


def _imul(a: int, b: int) -> int:
    """Low 32 bits of a 32x32 multiplication (unsigned view)."""
    return (a * b) & _MASK32


class Mulberry32:
    """
    Mulberry32 32-bit PRNG.

    State advances by the Weyl constant 0x6D2B79F5 per draw; each draw is
    mixed with two xorshift-multiply rounds and returned as a float in
    [0, 1) with 32 bits of resolution.
    """

    __slots__ = ("_state",)

    def __init__(self, seed: int):
        self._state = int(seed) & _MASK32

    def random(self) -> float:
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), 1 | t)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32

    __call__ = random

    def normal(self) -> float:
        """Standard normal draw via Box-Muller (consumes two uniforms)."""
        u1 = max(self.random(), _MIN_UNIFORM)
        u2 = self.random()
        return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def run_seed(seed: int, run_index: int) -> int:
    """Seed of the independent generator for simulation run `run_index`."""
    return (int(seed) + run_index * 17) & _MASK32
