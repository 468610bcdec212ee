"""Deterministic natural-language position descriptions."""

from maiakit.describer.describe import (
    BLUNDER_GAP,
    BLUNDER_PROB,
    EPS,
    TREACHERY_MASS,
    DescriptionSegment,
    MoveSegment,
    TextSegment,
    describe_evaluation,
    describe_position,
    segments_to_text,
)
from maiakit.describer.rng import PhrasePicker, fnv1a_32

__all__ = [
    "BLUNDER_GAP",
    "BLUNDER_PROB",
    "EPS",
    "TREACHERY_MASS",
    "DescriptionSegment",
    "MoveSegment",
    "PhrasePicker",
    "TextSegment",
    "describe_evaluation",
    "describe_position",
    "fnv1a_32",
    "segments_to_text",
]
