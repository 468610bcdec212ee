"""FEN validation for neural network inference.

This module provides validation utilities to ensure FEN strings are suitable
for the move/value network. It enforces stricter rules than standard FEN
validation so that the encoder never sees positions outside the trained
input distribution.
"""

import chess


class FENValidationError(ValueError):
    """Base exception for FEN validation errors."""

    pass


class MalformedFENError(FENValidationError):
    """Raised when the FEN cannot be parsed into a valid position."""

    pass


class TerminalPositionError(FENValidationError):
    """Raised when position is terminal (checkmate, stalemate, or 50-move rule)."""

    pass


class InvalidEnPassantError(FENValidationError):
    """Raised when FEN contains an en passant square but no legal en passant capture."""

    pass


class FischerRandomCastlingError(FENValidationError):
    """Raised when castling rights exist but rooks are not in standard positions."""

    pass


# (color, kingside) -> (rook square, label used in error messages)
_CASTLING_ROOKS = {
    (chess.WHITE, True): (chess.H1, "White has kingside castling rights but no white rook on h1"),
    (chess.WHITE, False): (chess.A1, "White has queenside castling rights but no white rook on a1"),
    (chess.BLACK, True): (chess.H8, "Black has kingside castling rights but no black rook on h8"),
    (chess.BLACK, False): (chess.A8, "Black has queenside castling rights but no black rook on a8"),
}


def validate_fen_for_network(
    fen: str,
    *,
    allow_terminal: bool = True,
    strict_en_passant: bool = False,
) -> None:
    """Validate a FEN string for use with the move/value network.

    Args:
        fen: The FEN string to validate.
        allow_terminal: Accept checkmate/stalemate/50-move positions. Inference
            on a terminal position is meaningful (the value is decided), so this
            defaults to True.
        strict_en_passant: Reject FENs whose en passant square has no legal
            capture instead of tolerating them.

    Raises:
        MalformedFENError: If the FEN is malformed or describes an invalid position.
        FischerRandomCastlingError: If castling rights are specified but
            rooks are not in their standard starting positions.
        TerminalPositionError: If ``allow_terminal`` is False and the position
            is checkmate, stalemate, or the halfmove clock is >= 100.
        InvalidEnPassantError: If ``strict_en_passant`` is True and the FEN
            specifies an en passant square without a legal en passant capture.
    """
    if len(fen.split()) != 6:
        raise MalformedFENError(f"FEN must have 6 fields: {fen!r}")

    # Check castling before parsing in standard mode, which strips invalid rights
    _validate_standard_castling_from_fen(fen)

    try:
        board = chess.Board(fen)
    except ValueError as e:
        raise MalformedFENError(str(e)) from e

    if not board.is_valid():
        raise MalformedFENError(f"Invalid position: {board.status()!r}")

    if not allow_terminal:
        _validate_not_terminal(board)

    if strict_en_passant:
        _validate_en_passant(board, fen)


def _validate_not_terminal(board: chess.Board) -> None:
    if board.is_checkmate():
        raise TerminalPositionError("Position is checkmate")

    if board.is_stalemate():
        raise TerminalPositionError("Position is stalemate")

    if board.halfmove_clock >= 100:
        raise TerminalPositionError(
            f"Halfmove clock is {board.halfmove_clock} (>= 100) - "
            "position is a draw by 50-move rule"
        )


def _validate_en_passant(board: chess.Board, fen: str) -> None:
    ep_field = fen.split()[3]
    if ep_field == "-":
        return

    # python-chess drops en passant squares without a legal capture
    if board.ep_square is None or not any(board.is_en_passant(m) for m in board.legal_moves):
        raise InvalidEnPassantError(
            f"FEN specifies en passant square '{ep_field}' but no legal "
            "en passant capture is available"
        )


def _validate_standard_castling_from_fen(fen: str) -> None:
    """Validate that castling rights in FEN correspond to standard rook positions.

    The FEN is parsed in Chess960 mode to preserve the original castling
    rights, then each right is checked against its standard rook square.
    """
    try:
        board = chess.Board(fen, chess960=True)
    except ValueError as e:
        raise MalformedFENError(str(e)) from e

    for (color, kingside), (square, message) in _CASTLING_ROOKS.items():
        if kingside:
            has_right = board.has_kingside_castling_rights(color)
        else:
            has_right = board.has_queenside_castling_rights(color)
        if not has_right:
            continue

        rook = board.piece_at(square)
        if rook is None or rook.piece_type != chess.ROOK or rook.color != color:
            raise FischerRandomCastlingError(
                f"{message} - this appears to be a Fischer Random (Chess960) position"
            )
