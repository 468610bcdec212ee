"""Policy encoding utilities for chess move distributions.

This module provides utilities for encoding/decoding moves to/from the flat
policy index space used by the model's move head.

Policy space size: 4352
- 0-4095: ``from * 64 + to`` with squares indexed ``rank * 8 + file`` (a1=0).
  Queen-less, non-promotion moves, castling (king two squares) included.
- 4096-4351: Promotions, addressed by
  ``4096 + (from_file * 8 + to_file) * 4 + piece`` with piece order
  q=0, r=1, b=2, n=3. Only 7th -> 8th rank promotions are representable,
  since positions are always encoded with white to move.

Note: The tokenizer mirrors positions when black is to move, so moves must be
mirrored into and out of the policy space accordingly.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np
from loguru import logger

from maiakit.core.chess.rules import legal_uci_moves
from maiakit.core.utils.squares import FILES, index_to_square, mirror_square, parse_square
from maiakit.core.utils.tokenizer import TokenizerConfig, is_black_to_move, orient_fen, tokenize

NUM_SQUARE_MOVES = 64 * 64
PROMOTION_PIECES = "qrbn"
POLICY_SIZE = NUM_SQUARE_MOVES + 8 * 8 * len(PROMOTION_PIECES)


def parse_uci_move(uci: str) -> tuple[str, str, str | None]:
    """Parse a UCI move string into (from_square, to_square, promotion).

    Args:
        uci: UCI move string (e.g., "e2e4", "e7e8q", "a7a8n").

    Returns:
        Tuple of (from_square, to_square, promotion_piece or None).
        promotion_piece is lowercase: 'q', 'r', 'b', 'n'.
    """
    from_sq = uci[:2]
    to_sq = uci[2:4]
    promo = uci[4:].lower() or None
    return from_sq, to_sq, promo


def encode_move(uci: str) -> int | None:
    """Convert a UCI move (already in encoding orientation) to a policy index.

    Returns None for anything the policy space cannot represent: malformed
    UCI, promotions not going from the 7th to the 8th rank, or an unknown
    promotion piece. Callers exclude such moves from the legal mask.
    """
    if len(uci) not in (4, 5):
        return None

    from_sq, to_sq, promo = parse_uci_move(uci)
    try:
        from_idx = parse_square(from_sq)
        to_idx = parse_square(to_sq)
    except ValueError:
        return None

    if promo is None:
        return from_idx * 64 + to_idx

    if from_sq[1] != "7" or to_sq[1] != "8" or promo not in PROMOTION_PIECES:
        return None

    from_file = from_idx % 8
    to_file = to_idx % 8
    return NUM_SQUARE_MOVES + (from_file * 8 + to_file) * 4 + PROMOTION_PIECES.index(promo)


def decode_move(index: int) -> str:
    """Convert a policy index back to a UCI move in encoding orientation.

    Raises:
        ValueError: If the index is outside the policy space.
    """
    if not 0 <= index < POLICY_SIZE:
        msg = f"Invalid policy index: {index}"
        raise ValueError(msg)

    if index < NUM_SQUARE_MOVES:
        return index_to_square(index // 64) + index_to_square(index % 64)

    offset = index - NUM_SQUARE_MOVES
    from_file, rem = divmod(offset, 8 * 4)
    to_file, promo_idx = divmod(rem, 4)
    return f"{FILES[from_file]}7{FILES[to_file]}8{PROMOTION_PIECES[promo_idx]}"


def mirror_move(uci: str) -> str:
    """Mirror a UCI move top-to-bottom (rank flip), keeping any promotion piece."""
    from_sq, to_sq, promo = parse_uci_move(uci)
    return mirror_square(from_sq) + mirror_square(to_sq) + (promo or "")


def legal_mask(fen: str, legal_moves: Iterable[str] | None = None) -> np.ndarray:
    """Build the 0/1 legal-move mask over the policy space for a position.

    The mask is always derived fresh from the position's legal moves and is
    expressed in encoding orientation (mirrored when black is to move).

    Args:
        fen: Position in true orientation.
        legal_moves: Legal UCI moves in true orientation. Queried from the
            rules engine when None.

    Returns:
        uint8 array of length POLICY_SIZE.
    """
    if legal_moves is None:
        legal_moves = legal_uci_moves(fen)

    flip = is_black_to_move(fen)
    mask = np.zeros(POLICY_SIZE, dtype=np.uint8)

    for uci in legal_moves:
        idx = encode_move(mirror_move(uci) if flip else uci)
        if idx is None:
            logger.debug(f"Move {uci} is not representable in the policy space; excluded")
            continue
        mask[idx] = 1

    return mask


@dataclass(frozen=True)
class EncodedPosition:
    """Network-ready encoding of one position."""

    tokens: np.ndarray
    legal_mask: np.ndarray
    black_to_move: bool

    @property
    def token_dim(self) -> int:
        return int(self.tokens.shape[-1])


def preprocess(fen: str, history: int = 1) -> EncodedPosition:
    """Encode a position into board tokens plus its legal mask.

    Args:
        fen: Position in true orientation.
        history: Number of history slots the model expects.

    Returns:
        EncodedPosition with tokens of shape ``(64, 12 * history)``.
    """
    black_to_move = is_black_to_move(fen)
    tokens = tokenize(fen, TokenizerConfig(history=history))
    mask = legal_mask(orient_fen(fen))
    return EncodedPosition(tokens=tokens, legal_mask=mask, black_to_move=black_to_move)


def index_to_move(index: int, *, black_to_move: bool) -> str:
    """Decode a policy index into a UCI move in true orientation."""
    uci = decode_move(index)
    return mirror_move(uci) if black_to_move else uci
