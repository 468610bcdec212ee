"""Tests for board tokenization and square utilities.

The board tensor is (64, 12 * history) with square index rank * 8 + file
(a1=0) and planes P, N, B, R, Q, K, p, n, b, r, q, k. Positions with black
to move are mirrored so the network always sees white to move.
"""

import numpy as np
import pytest

from conftest import AFTER_E4_FEN, ITALIAN_FEN, START_FEN
from maiakit.core.utils.squares import index_to_square, mirror_square, parse_square
from maiakit.core.utils.tokenizer import (
    PIECE_PLANES,
    TokenizerConfig,
    is_black_to_move,
    mirror_fen,
    orient_fen,
    tokenize,
)


def _plane(piece: str) -> int:
    return PIECE_PLANES.index(piece)


class TestSquares:
    """Square index conversions."""

    @pytest.mark.parametrize(
        ("square", "index"),
        [("a1", 0), ("h1", 7), ("a2", 8), ("e4", 28), ("a8", 56), ("h8", 63)],
    )
    def test_parse_square(self, square: str, index: int) -> None:
        assert parse_square(square) == index
        assert index_to_square(index) == square

    def test_parse_square_rejects_garbage(self) -> None:
        for bad in ("", "e", "i1", "a9", "e44"):
            with pytest.raises(ValueError):
                parse_square(bad)

    def test_index_to_square_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            index_to_square(64)

    def test_mirror_square(self) -> None:
        assert mirror_square("e2") == "e7"
        assert mirror_square("a1") == "a8"
        assert mirror_square(mirror_square("c6")) == "c6"


class TestMirrorFen:
    """FEN mirroring used for black-to-move positions."""

    def test_mirror_after_e4(self) -> None:
        """Ranks flip, colors swap, castling swaps, en passant mirrors."""
        mirrored = mirror_fen(AFTER_E4_FEN)
        assert mirrored == "rnbqkbnr/pppp1ppp/8/4p3/8/8/PPPPPPPP/RNBQKBNR w KQkq e6 0 1"

    def test_partial_castling_rights_swap(self) -> None:
        fen = "r3k2r/8/8/8/8/8/8/R3K2R b Kq - 3 20"
        mirrored = mirror_fen(fen)
        assert mirrored.split()[2] == "Qk"
        assert mirrored.split()[4:] == ["3", "20"]

    @pytest.mark.parametrize("fen", [START_FEN, AFTER_E4_FEN, ITALIAN_FEN])
    def test_mirror_is_involution(self, fen: str) -> None:
        assert mirror_fen(mirror_fen(fen)) == fen

    def test_orient_only_mirrors_black(self) -> None:
        assert orient_fen(START_FEN) == START_FEN
        assert not is_black_to_move(orient_fen(AFTER_E4_FEN))


class TestTokenize:
    """Board tensor layout."""

    def test_starting_position_planes(self) -> None:
        tokens = tokenize(START_FEN)

        assert tokens.shape == (64, 12)
        assert tokens.dtype == np.float32
        assert tokens[parse_square("e1"), _plane("K")] == 1.0
        assert tokens[parse_square("d8"), _plane("q")] == 1.0
        assert tokens[parse_square("a2"), _plane("P")] == 1.0
        assert tokens.sum() == 32

    def test_at_most_one_piece_per_square(self) -> None:
        tokens = tokenize(ITALIAN_FEN)
        assert set(np.unique(tokens.sum(axis=1))) <= {0.0, 1.0}

    def test_black_to_move_is_mirrored(self) -> None:
        """After 1.e4 with black to move, black's pawns appear as white's on rank 2."""
        tokens = tokenize(AFTER_E4_FEN)

        # The white e-pawn on e4 becomes a black pawn on e5 in the mirrored board
        assert tokens[parse_square("e5"), _plane("p")] == 1.0
        assert tokens[parse_square("e7"), _plane("P")] == 0.0
        assert tokens[parse_square("e2"), _plane("P")] == 1.0
        assert tokens[parse_square("e1"), _plane("K")] == 1.0

    def test_history_tiles_snapshot(self) -> None:
        single = tokenize(ITALIAN_FEN)
        tiled = tokenize(ITALIAN_FEN, TokenizerConfig(history=3))

        assert tiled.shape == (64, 36)
        for slot in range(3):
            np.testing.assert_array_equal(tiled[:, slot * 12 : (slot + 1) * 12], single)

    def test_config_rejects_zero_history(self) -> None:
        with pytest.raises(ValueError, match="history"):
            TokenizerConfig(history=0)

    def test_token_dim(self) -> None:
        assert TokenizerConfig(history=2).token_dim == 24
