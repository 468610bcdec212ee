"""Deterministic phrase selection.

Phrases are picked with a linear congruential generator seeded by a 32-bit
FNV-1a hash of the FEN, so the same position always reads the same way.
"""

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

FNV_OFFSET = 0x811C9DC5
FNV_PRIME = 0x01000193
LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
_MASK32 = 0xFFFFFFFF


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash over the code points of ``text``."""
    h = FNV_OFFSET
    for char in text:
        h = ((h ^ ord(char)) * FNV_PRIME) & _MASK32
    return h


class PhrasePicker:
    """Picks items from phrase banks with a seeded LCG."""

    def __init__(self, seed: int) -> None:
        self._state = seed & _MASK32

    @classmethod
    def for_fen(cls, fen: str) -> "PhrasePicker":
        return cls(fnv1a_32(fen))

    def random(self) -> float:
        """Next value in [0, 1)."""
        self._state = (self._state * LCG_MULTIPLIER + LCG_INCREMENT) & _MASK32
        return self._state / 0x100000000

    def pick(self, options: Sequence[T]) -> T:
        return options[int(self.random() * len(options))]
