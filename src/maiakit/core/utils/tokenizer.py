"""Tokenization of FEN (Forsyth-Edwards Notation) strings into board tensors.

This module converts chess positions into the fixed-size tensor fed to the
move/value network:

- Each of the 64 squares gets 12 one-hot piece planes in the fixed order
  P, N, B, R, Q, K, p, n, b, r, q, k.
- Square index is ``rank * 8 + file`` (a1=0), rank 0 being the first rank of
  the side the position is encoded for.
- Board orientation: the network only ever sees "white to move". When black is
  to move the FEN is mirrored (ranks flipped, colors swapped, castling rights
  and en passant square mirrored) before tokenizing.
- History: with ``history > 1`` and no temporal history available, the same
  snapshot is tiled into every history slot.
"""

from dataclasses import dataclass

import numpy as np

from maiakit.core.utils.squares import mirror_square

# Piece planes, white pieces first
PIECE_PLANES = "PNBRQKpnbrqk"
_PLANE_INDEX = {piece: index for index, piece in enumerate(PIECE_PLANES)}
_SPACE_DIGITS = frozenset("12345678")

NUM_SQUARES = 64
NUM_PLANES = len(PIECE_PLANES)


@dataclass(frozen=True)
class TokenizerConfig:
    """Configuration for FEN tokenization.

    Attributes:
        history: Number of board snapshots per square. The network input has
            ``12 * history`` channels per square.
    """

    history: int = 1

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.history < 1:
            msg = f"history must be at least 1 (got {self.history})"
            raise ValueError(msg)

    @property
    def token_dim(self) -> int:
        """Number of channels per square."""
        return NUM_PLANES * self.history


def is_black_to_move(fen: str) -> bool:
    """Return True when the FEN's side-to-move field is black."""
    fields = fen.split()
    return len(fields) > 1 and fields[1] == "b"


def _swap_castling(castling: str) -> str:
    if castling == "-":
        return "-"

    swapped = {right.swapcase() for right in castling}
    output = "".join(right for right in "KQkq" if right in swapped)
    return output or "-"


def mirror_fen(fen: str) -> str:
    """Mirror a FEN vertically while swapping colors.

    Ranks are reversed, piece colors swapped, the side to move flipped,
    castling rights exchanged between colors and the en passant square
    mirrored. Move counters are preserved. Applying it twice yields the
    original position.

    Args:
        fen: Board position in Forsyth-Edwards Notation (all 6 fields required).

    Returns:
        The mirrored FEN.
    """
    placement, side, castling, en_passant, halfmove, fullmove = fen.split(" ")

    ranks = placement.split("/")
    mirrored_placement = "/".join(rank.swapcase() for rank in reversed(ranks))
    mirrored_side = "b" if side == "w" else "w"
    mirrored_en_passant = mirror_square(en_passant) if en_passant != "-" else "-"

    return (
        f"{mirrored_placement} {mirrored_side} {_swap_castling(castling)} "
        f"{mirrored_en_passant} {halfmove} {fullmove}"
    )


def orient_fen(fen: str) -> str:
    """Return the FEN from the encoding side's point of view (white to move)."""
    return mirror_fen(fen) if is_black_to_move(fen) else fen


def _snapshot(placement: str) -> np.ndarray:
    """One-hot (64, 12) planes for a FEN piece placement field."""
    planes = np.zeros((NUM_SQUARES, NUM_PLANES), dtype=np.float32)

    # FEN ranks go 8 -> 1
    for rank_from_top, row in enumerate(placement.split("/")):
        rank = 7 - rank_from_top
        file = 0
        for char in row:
            if char in _SPACE_DIGITS:
                file += int(char)
                continue
            planes[rank * 8 + file, _PLANE_INDEX[char]] = 1.0
            file += 1

    return planes


def tokenize(fen: str, config: TokenizerConfig | None = None) -> np.ndarray:
    """Convert a FEN string to a board tensor. The side to move is always white.

    Args:
        fen: Board position in Forsyth-Edwards Notation.
        config: Tokenization configuration. Uses default TokenizerConfig if None.

    Returns:
        float32 array of shape ``(64, 12 * history)``.

    Raises:
        KeyError: If the FEN contains invalid piece characters.
    """
    if config is None:
        config = TokenizerConfig()

    placement = orient_fen(fen).split(" ")[0]
    snapshot = _snapshot(placement)

    if config.history == 1:
        return snapshot

    # Tile the snapshot into every history slot (not zero-filled)
    return np.tile(snapshot, (1, config.history))

