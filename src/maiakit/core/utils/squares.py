"""Chess square utilities for board indexing.

This module provides utilities for converting between algebraic notation (e.g., "e4")
and the square indices used by the board tensor and the policy index space.

Board indexing convention (rank-major from a1):
    a1=0,  b1=1,  c1=2,  ..., h1=7
    a2=8,  b2=9,  ...
    ...
    a8=56, b8=57, ..., h8=63

i.e. ``index = rank * 8 + file``. Rank 0 is always the first rank of the side
the position is encoded for (the board is mirrored when black is to move).
"""

# File letters and rank numbers for square parsing
FILES = "abcdefgh"
RANKS = "12345678"


def _split_square(square: str) -> tuple[int, int]:
    """Return (file_idx, rank_idx) for a square, raising on malformed input."""
    if len(square) != 2:
        msg = f"Invalid square notation: {square!r}"
        raise ValueError(msg)

    file_char, rank_char = square[0].lower(), square[1]

    if file_char not in FILES or rank_char not in RANKS:
        msg = f"Invalid square notation: {square!r}"
        raise ValueError(msg)

    return FILES.index(file_char), RANKS.index(rank_char)


def parse_square(square: str) -> int:
    """Convert algebraic notation to board index (0-63, a1=0 to h8=63).

    Args:
        square: Algebraic notation for a square (e.g., 'a1', 'h8').

    Returns:
        ``rank * 8 + file`` for the square.

    Raises:
        ValueError: If the square notation is invalid.
    """
    file_idx, rank_idx = _split_square(square)
    return rank_idx * 8 + file_idx


def index_to_square(index: int) -> str:
    """Convert board index to algebraic notation.

    Raises:
        ValueError: If the index is out of range.
    """
    if not 0 <= index < 64:
        msg = f"Invalid board index: {index}"
        raise ValueError(msg)

    return FILES[index % 8] + RANKS[index // 8]


def mirror_square(square: str) -> str:
    """Flip a square vertically (swap ranks 1↔8, 2↔7, etc.).

    Args:
        square: Algebraic notation for a square (e.g., 'e2').

    Returns:
        The flipped square (e.g., 'e7').
    """
    file_idx, rank_idx = _split_square(square)
    return FILES[file_idx] + RANKS[7 - rank_idx]
