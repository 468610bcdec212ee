"""Board/policy codec and shared utilities."""

from maiakit.core.utils.logging import setup_logging
from maiakit.core.utils.policy import (
    POLICY_SIZE,
    EncodedPosition,
    decode_move,
    encode_move,
    index_to_move,
    legal_mask,
    mirror_move,
    preprocess,
)
from maiakit.core.utils.squares import index_to_square, mirror_square, parse_square
from maiakit.core.utils.tokenizer import TokenizerConfig, mirror_fen, orient_fen, tokenize

__all__ = [
    "POLICY_SIZE",
    "EncodedPosition",
    "TokenizerConfig",
    "decode_move",
    "encode_move",
    "index_to_move",
    "index_to_square",
    "legal_mask",
    "mirror_fen",
    "mirror_move",
    "mirror_square",
    "orient_fen",
    "parse_square",
    "preprocess",
    "setup_logging",
    "tokenize",
]
