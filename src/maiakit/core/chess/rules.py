"""Rules engine adapter over python-chess.

The evaluation pipeline never implements chess rules itself. Everything it
needs (legal move generation, move application, SAN rendering, checkmate
detection and FEN validation) goes through the functions below, all of which
take a FEN and return plain values.
"""

from dataclasses import dataclass

import chess


class IllegalMoveError(ValueError):
    """Raised when a move is malformed or not legal in the given position."""

    pass


@dataclass(frozen=True)
class LegalMove:
    """A legal move as produced by the rules engine."""

    from_square: str
    to_square: str
    promotion: str | None = None

    @property
    def uci(self) -> str:
        return self.from_square + self.to_square + (self.promotion or "")


@dataclass(frozen=True)
class AppliedMove:
    """Result of applying a move: the new position and the move's SAN."""

    fen: str
    san: str


def _board(fen: str) -> chess.Board:
    return chess.Board(fen)


def side_to_move(fen: str) -> str:
    """Return "w" or "b" from the FEN's second field."""
    fields = fen.split()
    return "b" if len(fields) > 1 and fields[1] == "b" else "w"


def legal_moves(fen: str) -> list[LegalMove]:
    """List the legal moves of a position."""
    board = _board(fen)
    return [
        LegalMove(
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
        )
        for move in board.legal_moves
    ]


def legal_uci_moves(fen: str) -> list[str]:
    """List the legal moves of a position as UCI strings."""
    return [move.uci() for move in _board(fen).legal_moves]


def _parse_legal(board: chess.Board, uci: str) -> chess.Move:
    try:
        move = chess.Move.from_uci(uci)
    except ValueError as e:
        raise IllegalMoveError(f"Malformed UCI move: {uci!r}") from e

    if move not in board.legal_moves:
        raise IllegalMoveError(f"Illegal move {uci} in position {board.fen()}")
    return move


def apply_move(fen: str, uci: str) -> AppliedMove:
    """Apply a UCI move and return the resulting FEN and the move's SAN.

    Raises:
        IllegalMoveError: If the move is malformed or illegal.
    """
    board = _board(fen)
    move = _parse_legal(board, uci)
    san = board.san(move)
    board.push(move)
    return AppliedMove(fen=board.fen(), san=san)


def san(fen: str, uci: str) -> str:
    """Render a legal UCI move in SAN, falling back to the UCI string."""
    board = _board(fen)
    try:
        return board.san(_parse_legal(board, uci))
    except IllegalMoveError:
        return uci


def is_checkmate(fen: str) -> bool:
    """Return True when the side to move is checkmated."""
    return _board(fen).is_checkmate()


def validate_fen(fen: str) -> bool:
    """Return True when python-chess accepts the FEN as a valid position."""
    try:
        board = chess.Board(fen)
    except ValueError:
        return False
    return board.is_valid()


def forced_mover_result(fen: str) -> float | None:
    """Score of a position whose outcome is already decided for the mover.

    Returns 0.0 when the side to move is checkmated, 1.0 when its only legal
    move delivers checkmate, and None otherwise.
    """
    board = _board(fen)
    if board.is_checkmate():
        return 0.0

    moves = list(board.legal_moves)
    if len(moves) == 1:
        board.push(moves[0])
        if board.is_checkmate():
            return 1.0
    return None
