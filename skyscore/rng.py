"""Deterministic pseudo-random streams keyed by string seeds.

Every stochastic choice in the pipeline draws from a :class:`SeededGenerator`
built from the control hash. Components derive their own stream with
:func:`derive` so that adding or reordering draws in one component never moves
the outcomes of another.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

_MASK = 0xFFFFFFFF
_ZERO_STATE = 0x9E3779B9
_SCALE = float(1 << 32)


def _mix_seed(seed: str) -> int:
    state = 0
    for char in seed:
        state = (state ^ ord(char)) & _MASK
        state = ((state ^ (state >> 15)) * 2246822507) & _MASK
        state = ((state ^ (state >> 13)) * 3266489909) & _MASK
    return state or _ZERO_STATE


class SeededGenerator:
    """xorshift32 stream producing floats in ``[0, 1)``."""

    __slots__ = ("seed", "_state")

    def __init__(self, seed: str) -> None:
        self.seed = seed
        self._state = _mix_seed(seed)

    def next(self) -> float:
        state = self._state
        state ^= (state << 13) & _MASK
        state ^= state >> 17
        state ^= (state << 5) & _MASK
        self._state = state
        return state / _SCALE

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.next()

    def randint(self, low: int, high: int) -> int:
        """Inclusive integer draw."""
        if high < low:
            raise ValueError(f"randint bounds inverted: {low} > {high}")
        return low + int(self.next() * (high - low + 1))

    def chance(self, probability: float) -> bool:
        return self.next() < probability

    def choice(self, options: Sequence[T]) -> T:
        if not options:
            raise ValueError("choice() requires a non-empty sequence")
        return options[int(self.next() * len(options))]


def create(seed: str) -> SeededGenerator:
    return SeededGenerator(seed)


def derive(seed: str, purpose: str) -> SeededGenerator:
    return SeededGenerator(f"{seed}|{purpose}")
