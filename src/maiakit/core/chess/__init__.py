"""Chess rules adapter and FEN validation."""

from maiakit.core.chess.rules import (
    AppliedMove,
    IllegalMoveError,
    LegalMove,
    apply_move,
    forced_mover_result,
    is_checkmate,
    legal_moves,
    legal_uci_moves,
    san,
    side_to_move,
    validate_fen,
)
from maiakit.core.chess.validation import (
    FENValidationError,
    FischerRandomCastlingError,
    InvalidEnPassantError,
    MalformedFENError,
    TerminalPositionError,
    validate_fen_for_network,
)

__all__ = [
    "AppliedMove",
    "FENValidationError",
    "FischerRandomCastlingError",
    "IllegalMoveError",
    "InvalidEnPassantError",
    "LegalMove",
    "MalformedFENError",
    "TerminalPositionError",
    "apply_move",
    "forced_mover_result",
    "is_checkmate",
    "legal_moves",
    "legal_uci_moves",
    "san",
    "side_to_move",
    "validate_fen",
    "validate_fen_for_network",
]
