"""Natural-language description of a position.

Combines the search engine's scores with the predictor's per-skill-level move
distributions into a short, deterministic description:

1. Engine scores become pawns from the mover's perspective.
2. The "good" moves are those whose (win, draw) pair is within ``EPS`` of the
   best move's.
3. The outcome band comes from the good moves' average pawn value.
4. For each skill level, the predictor's top move tells whether humans find a
   good move ("set-findability") or the best move ("optimal-findability"),
   and whether a non-good move sits probability-close to the top
   ("temptation").
5. Blunders (win-rate gap of at least ``BLUNDER_GAP`` against the best move)
   popular enough across levels get a cautionary clause, framed as
   "treacherous" when blunders hold more than ``TREACHERY_MASS`` of the
   aggregated probability.
"""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from maiakit.core.chess.rules import legal_uci_moves, san
from maiakit.describer.phrases import (
    CAREFUL,
    FINDABILITY,
    NO_LEGAL_MOVES,
    OUTCOME,
    TEMPT_ADJ,
    TEMPT_NOUN,
    TEMPTING_INTRO,
)
from maiakit.describer.rng import PhrasePicker
from maiakit.engine.records import EvaluationRecord
from maiakit.engine.winrate import cp_to_winrate

EPS = 0.08
BLUNDER_GAP = 0.1
BLUNDER_PROB = 0.5  # aggregate probability a blunder needs to be called out
TREACHERY_MASS = 0.4
TEMPTATION_PROB = 0.1
TOP_MOVES_PER_LEVEL = 4


@dataclass(frozen=True)
class TextSegment:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True)
class MoveSegment:
    san: str
    uci: str

    def to_dict(self) -> dict[str, Any]:
        return {"move": {"san": self.san, "uci": self.uci}}


DescriptionSegment = Union[TextSegment, MoveSegment]


def segments_to_text(segments: Sequence[DescriptionSegment]) -> str:
    """Render segments as plain text, moves in SAN."""
    return "".join(s.text if isinstance(s, TextSegment) else s.san for s in segments)


def win_rate(pawns: float) -> float:
    return 1.0 / (1.0 + math.exp(-(pawns - 1.0) / 0.8))


def wdl(pawns: float) -> tuple[float, float]:
    """(win, draw) probabilities for a pawn score."""
    w = win_rate(pawns)
    loss = win_rate(-pawns)
    return w, 1.0 - w - loss


def _close(a: tuple[float, float], b: tuple[float, float], eps: float) -> bool:
    return abs(a[0] - b[0]) <= eps and abs(a[1] - b[1]) <= eps


def outcome_band(avg_pawns: float) -> str:
    if avg_pawns > 3:
        return "overwhelming"
    if avg_pawns > 1.5:
        return "win"
    if avg_pawns > 0.35:
        return "advantage"
    if avg_pawns >= -0.35:
        return "balance"
    if avg_pawns >= -1.5:
        return "hold"
    return "stay"


def findability_tier(count: int) -> int:
    """0 = hard, 1 = medium, 2 = easy, from the number of levels that find the move."""
    if count <= 2:
        return 0
    if count <= 6:
        return 1
    return 2


def _ranked(probs: Mapping[str, float]) -> list[tuple[str, float]]:
    return sorted(probs.items(), key=lambda item: item[1], reverse=True)


def best_move(scores: Mapping[str, float]) -> str:
    """Highest-scored move; among equal scores the one listed first wins."""
    return max(scores, key=scores.__getitem__)


def describe_position(
    fen: str,
    engine_scores: Mapping[str, float],
    predictor_policies: Sequence[Mapping[str, float]],
    white_to_move: bool,
) -> list[DescriptionSegment]:
    """Describe a position in a few sentences.

    Args:
        fen: The position.
        engine_scores: Centipawn score per move from White's perspective.
            Moves that are not legal in ``fen`` are ignored.
        predictor_policies: One move distribution per skill level, weakest
            first.
        white_to_move: Side to move.

    Returns:
        Ordered text and move segments. Identical inputs always give the
        same segments.
    """
    picker = PhrasePicker.for_fen(fen)
    pick = picker.pick

    legal = set(legal_uci_moves(fen))
    moves = [m for m in engine_scores if m in legal]
    if not moves:
        return [TextSegment(NO_LEGAL_MOVES)]

    sign = 1 if white_to_move else -1
    pawns = {m: sign * engine_scores[m] * 0.01 for m in moves}

    def move_seg(uci: str) -> MoveSegment:
        return MoveSegment(san=san(fen, uci), uci=uci)

    # Good moves
    opt = best_move(pawns)
    opt_wdl = wdl(pawns[opt])
    good = [m for m in moves if _close(wdl(pawns[m]), opt_wdl, EPS)]
    good_set = set(good)
    sorted_good = sorted(good, key=pawns.__getitem__, reverse=True)

    opt_close_second = len(sorted_good) >= 2 and _close(
        wdl(pawns[sorted_good[1]]), opt_wdl, EPS / 2
    )

    avg_good = sum(pawns[m] for m in sorted_good) / len(sorted_good)
    band = outcome_band(avg_good)

    # Predictor statistics across skill levels
    set_lv = opt_lv = tempt_lv = 0
    max_top_prob_non_opt = 0.0
    agg_prob: dict[str, float] = {}
    tempt_count: dict[str, int] = {}

    for policy in predictor_policies:
        probs = sorted(((policy.get(m, 0.0), m) for m in moves), key=lambda x: x[0], reverse=True)
        p1, m1 = probs[0]

        if m1 != opt:
            max_top_prob_non_opt = max(max_top_prob_non_opt, p1)
        if m1 in good_set:
            set_lv += 1
        if m1 == opt:
            opt_lv += 1

        for p, m in probs[:TOP_MOVES_PER_LEVEL]:
            agg_prob[m] = agg_prob.get(m, 0.0) + p

        # The first non-good runner-up close to the top move is a temptation
        for p, m in probs[1:3]:
            if m not in good_set and p1 - p <= EPS:
                tempt_count[m] = tempt_count.get(m, 0) + 1
                tempt_lv += 1
                break

    set_tier = findability_tier(set_lv)
    opt_tier = findability_tier(opt_lv)
    best_harder = opt_tier < set_tier and not opt_close_second

    phrase_set = pick(FINDABILITY[set_tier])
    phrase_best = pick(FINDABILITY[opt_tier])
    if opt_tier == 1 and best_harder:
        phrase_best = f"only {phrase_best}"

    # Blunders
    opt_wr = cp_to_winrate(pawns[opt] * 100)

    def is_blunder(m: str) -> bool:
        return opt_wr - cp_to_winrate(pawns[m] * 100) >= BLUNDER_GAP

    ranked = _ranked(agg_prob)
    overall_top_is_blunder = bool(ranked) and is_blunder(ranked[0][0])

    non_good = [(m, p) for m, p in ranked if m not in good_set]
    blunder_move = None
    if non_good and is_blunder(non_good[0][0]) and non_good[0][1] > BLUNDER_PROB:
        blunder_move = non_good[0][0]
    else:
        for m, p in ranked[:TOP_MOVES_PER_LEVEL]:
            if p > BLUNDER_PROB and is_blunder(m):
                blunder_move = m
                break

    total_prob = sum(agg_prob.values())
    blunder_mass = sum(p for m, p in agg_prob.items() if is_blunder(m))
    treacherous = total_prob > 0 and blunder_mass / total_prob > TREACHERY_MASS

    # Cautionary tail
    tail: list[DescriptionSegment] = []
    prefix = ", however" if set_tier == 2 and not best_harder else ""
    tempt_adj = pick(TEMPT_ADJ)
    tempt_noun = pick(TEMPT_NOUN)

    if blunder_move and treacherous:
        tail += [
            TextSegment(
                f" {pick(CAREFUL)}{prefix}, this position is highly treacherous! "
                f"It is easy to go astray with {tempt_adj} blunders like "
            ),
            move_seg(blunder_move),
            TextSegment("."),
        ]
    elif blunder_move:
        tail += [
            TextSegment(
                f" {pick(CAREFUL)}{prefix}! There is a {tempt_adj} blunder in this position: "
            ),
            move_seg(blunder_move),
            TextSegment("."),
        ]

    always_warn = set_tier < 2 and max_top_prob_non_opt > TEMPTATION_PROB
    show_tempt = not blunder_move and (always_warn or (set_tier == 2 and tempt_lv > 4))

    if show_tempt:
        tempt_uci = _ranked(tempt_count)[0][0] if tempt_count else None
        if tempt_uci is None and non_good:
            tempt_uci = non_good[0][0]

        intro = pick(TEMPTING_INTRO)
        if tempt_uci:
            tail += [
                TextSegment(f" {intro}{prefix} are also {tempt_adj} {tempt_noun}, such as "),
                move_seg(tempt_uci),
                TextSegment("."),
            ]
        else:
            tail.append(TextSegment(f" {intro}{prefix} are also {tempt_adj} {tempt_noun}."))

    # Main sentence
    listed = [m for m in sorted_good if m != opt] if best_harder else sorted_good
    listed_segs = [move_seg(m) for m in listed[:3]]
    pronoun = "it is" if len(good) == 1 else "they are"
    form = "sing" if len(listed_segs) == 1 else "plur"
    outcome_phrase = pick(OUTCOME[band][form])

    main: list[DescriptionSegment] = []
    if len(listed_segs) == 1:
        main += [TextSegment("Only "), listed_segs[0]]
    elif len(listed_segs) == 2:
        main += [TextSegment("Both "), listed_segs[0], TextSegment(" and "), listed_segs[1]]
    else:
        main += [
            listed_segs[0],
            TextSegment(", "),
            listed_segs[1],
            TextSegment(", and "),
            listed_segs[2],
        ]

    if best_harder:
        main += [
            TextSegment(f" {outcome_phrase}, and {pronoun} {phrase_set}, but the best move ("),
            move_seg(opt),
            TextSegment(f") is {phrase_best}."),
        ]
    else:
        main.append(TextSegment(f" {outcome_phrase}, and {pronoun} {phrase_set}."))

    return tail + main if overall_top_is_blunder else main + tail


def describe_evaluation(
    fen: str,
    record: EvaluationRecord,
    predictor_policies: Sequence[Mapping[str, float]],
) -> list[DescriptionSegment]:
    """Describe a position from a streamed engine record (mover-perspective scores)."""
    black_to_move = fen.split()[1] == "b"
    return describe_position(
        fen,
        record.white_cp_vec(black_to_move),
        predictor_policies,
        white_to_move=not black_to_move,
    )
