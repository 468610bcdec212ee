"""Parsing of engine ``info`` lines and per-depth accumulation.

A search reports every legal move of the position at each depth through
``multipv`` lines. ``DepthAccumulator`` gathers those lines into one record
per depth and hands a record out exactly once, when every legal move has been
scored at that depth. A fresh accumulator is built for every stream, so no
state leaks from one position to the next.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from maiakit.engine.winrate import MATE_CP, cp_to_winrate

_INFO_RE = re.compile(
    r"info depth (\d+) seldepth (\d+) multipv (\d+) "
    r"score (?:cp (-?\d+)|mate (-?\d+))\b.*? pv (\S+)"
)


@dataclass(frozen=True)
class InfoLine:
    """The fields of one multipv ``info`` line the accumulator needs."""

    depth: int
    seldepth: int
    multipv: int
    move: str
    cp: int | None = None
    mate: int | None = None


def parse_info_line(line: str) -> InfoLine | None:
    """Parse an ``info depth ... multipv ... score ... pv ...`` line.

    Returns None for any other line (``bestmove``, ``info string``, lines
    without a score or pv, ...).
    """
    match = _INFO_RE.search(line)
    if match is None:
        return None

    depth, seldepth, multipv, cp, mate, move = match.groups()
    return InfoLine(
        depth=int(depth),
        seldepth=int(seldepth),
        multipv=int(multipv),
        move=move,
        cp=int(cp) if cp is not None else None,
        mate=int(mate) if mate is not None else None,
    )


@dataclass(frozen=True)
class EvaluationRecord:
    """Complete evaluation of a position at one search depth.

    All scores are from the perspective of the side to move: positive is good
    for the mover.

    Attributes:
        depth: Search depth.
        model_move: The engine's best move (multipv 1).
        model_optimal_cp: Score of ``model_move``.
        cp_vec: Score of every legal move.
        cp_relative_vec: ``model_optimal_cp - cp`` per move (0 for the best move).
        winrate_vec: Win probability per move, sorted descending.
        winrate_loss_vec: ``winrate - max(winrate)`` per move, sorted descending.
        mate_vec: Mate distance per move for moves currently scored as mate,
            or None when no move is.
        is_checkmate: Whether the evaluated position itself is checkmate.
        complete: Always True for emitted records.
    """

    depth: int
    model_move: str
    model_optimal_cp: int
    cp_vec: dict[str, int]
    cp_relative_vec: dict[str, int]
    winrate_vec: dict[str, float]
    winrate_loss_vec: dict[str, float]
    mate_vec: dict[str, int] | None = None
    is_checkmate: bool = False
    complete: bool = True

    def white_cp_vec(self, black_to_move: bool) -> dict[str, int]:
        """Scores from White's perspective."""
        sign = -1 if black_to_move else 1
        return {move: sign * cp for move, cp in self.cp_vec.items()}


@dataclass
class _PendingDepth:
    depth: int
    model_move: str
    model_optimal_cp: int
    cp_vec: dict[str, int] = field(default_factory=dict)
    mate_vec: dict[str, int] = field(default_factory=dict)
    sent: bool = False


def _sorted_desc(values: dict[str, float]) -> dict[str, float]:
    return dict(sorted(values.items(), key=lambda item: item[1], reverse=True))


class DepthAccumulator:
    """Accumulates multipv lines for one position into per-depth records.

    Args:
        legal_moves: Legal UCI moves of the position. Lines whose principal
            move is not among them are discarded.
        legal_move_count: Number of moves that must be scored before a depth
            is complete. Defaults to ``len(legal_moves)``.
        black_to_move: Whether the position has black to move.
        white_relative: Whether raw scores are from White's perspective (negated
            into the mover's view on black's turn) rather than already
            relative to the side to move.
        is_checkmate: Copied into every record.
    """

    def __init__(
        self,
        legal_moves: Iterable[str],
        *,
        legal_move_count: int | None = None,
        black_to_move: bool = False,
        is_checkmate: bool = False,
        white_relative: bool = True,
    ) -> None:
        self.legal_moves = frozenset(legal_moves)
        self.legal_move_count = (
            len(self.legal_moves) if legal_move_count is None else legal_move_count
        )
        self.black_to_move = black_to_move
        self.is_checkmate = is_checkmate
        self.white_relative = white_relative
        self._depths: dict[int, _PendingDepth] = {}

    def _normalize(self, info: InfoLine) -> tuple[int, int | None]:
        """Return (cp, mate) from the mover's perspective."""
        if info.cp is not None:
            cp, mate = info.cp, None
        else:
            mate = info.mate
            cp = MATE_CP if mate > 0 else -MATE_CP

        if self.black_to_move and self.white_relative:
            cp = -cp
            mate = -mate if mate is not None else None
        return cp, mate

    def ingest(self, info: InfoLine) -> EvaluationRecord | None:
        """Add one info line; return the depth's record if it just completed."""
        if info.move not in self.legal_moves:
            return None

        pending = self._depths.get(info.depth)
        if pending is None:
            # A depth starts with its principal line
            if info.multipv != 1:
                return None
            cp, _ = self._normalize(info)
            pending = _PendingDepth(depth=info.depth, model_move=info.move, model_optimal_cp=cp)
            self._depths[info.depth] = pending
        elif pending.sent:
            return None

        cp, mate = self._normalize(info)
        if info.multipv == 1:
            pending.model_move = info.move
            pending.model_optimal_cp = cp
        pending.cp_vec[info.move] = cp
        if mate is not None:
            pending.mate_vec[info.move] = mate
        else:
            pending.mate_vec.pop(info.move, None)

        if info.multipv == self.legal_move_count and len(pending.cp_vec) == self.legal_move_count:
            pending.sent = True
            return self._finalize(pending)
        return None

    def _finalize(self, pending: _PendingDepth) -> EvaluationRecord:
        model_move, model_cp = pending.model_move, pending.model_optimal_cp
        # Out-of-order multipv output: the best-scored move wins
        for move, cp in pending.cp_vec.items():
            if cp > model_cp:
                model_move, model_cp = move, cp

        winrate_vec = {move: cp_to_winrate(cp) for move, cp in pending.cp_vec.items()}
        best_winrate = winrate_vec[model_move]
        winrate_loss_vec = {move: wr - best_winrate for move, wr in winrate_vec.items()}

        return EvaluationRecord(
            depth=pending.depth,
            model_move=model_move,
            model_optimal_cp=model_cp,
            cp_vec=dict(pending.cp_vec),
            cp_relative_vec={move: model_cp - cp for move, cp in pending.cp_vec.items()},
            winrate_vec=_sorted_desc(winrate_vec),
            winrate_loss_vec=_sorted_desc(winrate_loss_vec),
            mate_vec=dict(pending.mate_vec) or None,
            is_checkmate=self.is_checkmate,
        )
