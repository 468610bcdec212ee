"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pytest

from maiakit.core.storage import InMemoryModelStore
from maiakit.core.utils.policy import POLICY_SIZE

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
AFTER_E4_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"
ITALIAN_FEN = "r1bqk1nr/pppp1ppp/2n5/2b1p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"
FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
# White's only legal move, Rxe8, is checkmate
ONLY_MOVE_MATES_FEN = "R3r2k/6pp/8/8/8/8/1n1P1P1n/4K3 w - - 0 1"


@dataclass
class FakeNodeArg:
    """Stand-in for onnxruntime's NodeArg."""

    name: str
    shape: list[Any]
    type: str = "tensor(float)"


class FakeSession:
    """Deterministic inference session.

    Each batch row is computed from that row's inputs only, so batched and
    single-position calls give identical results.
    """

    def __init__(
        self,
        *,
        policy_name: str = "logits_maia",
        value_name: str = "logits_value",
        history: int = 1,
        move_size: int = POLICY_SIZE,
        trailing_garbage: int = 0,
    ) -> None:
        self.policy_name = policy_name
        self.trailing_garbage = trailing_garbage
        self.value_name = value_name
        self.move_size = move_size
        self.inputs = [
            FakeNodeArg("tokens", ["batch", 64, 12 * history]),
            FakeNodeArg("self_elos", ["batch"], "tensor(int64)"),
            FakeNodeArg("oppo_elos", ["batch"], "tensor(int64)"),
        ]
        self.outputs = [
            FakeNodeArg(policy_name, ["batch", move_size]),
            FakeNodeArg(value_name, ["batch", 3]),
        ]
        self.calls: list[dict[str, np.ndarray]] = []
        self._base = np.random.default_rng(0).normal(size=move_size).astype(np.float32)

    def get_inputs(self) -> list[FakeNodeArg]:
        return self.inputs

    def get_outputs(self) -> list[FakeNodeArg]:
        return self.outputs

    def run(self, output_names: list[str] | None, input_feed: dict[str, np.ndarray]) -> list[Any]:
        self.calls.append(input_feed)
        tokens = input_feed["tokens"]
        elos = input_feed["self_elos"].astype(np.float32)

        moves, values = [], []
        for row, elo in zip(tokens, elos):
            flat = row.reshape(-1)
            moves.append(self._base + np.resize(flat, self.move_size) * (elo / 1000.0))
            values.append(np.array([0.1 * flat[:96].sum(), 0.2, 0.3 + elo / 5000.0], dtype=np.float32))

        move_out = np.stack(moves)
        if self.trailing_garbage:
            move_out = np.concatenate([move_out.reshape(-1), np.zeros(self.trailing_garbage, np.float32)])

        results = {
            self.policy_name: move_out,
            self.value_name: np.stack(values),
        }
        return [results[name] for name in output_names]


@dataclass
class FakeTransport:
    """Scripted UCI engine.

    ``searches`` maps a FEN to the lines printed after ``go``; ``on_stop``
    lines are printed when ``stop`` is received.
    """

    searches: dict[str, list[str]] = field(default_factory=dict)
    on_stop: list[str] = field(default_factory=list)
    answer_handshake: bool = True
    bestmove_after_search: bool = True
    fail_on_go: bool = False
    sent: list[str] = field(default_factory=list)
    closed: bool = False

    def __post_init__(self) -> None:
        self._on_message: Callable[[str], None] | None = None
        self._on_error: Callable[[str], None] | None = None
        self._fen: str | None = None

    def listen(self, on_message: Callable[[str], None], on_error: Callable[[str], None]) -> None:
        self._on_message = on_message
        self._on_error = on_error

    def emit(self, line: str) -> None:
        self._on_message(line)

    def send(self, line: str) -> None:
        self.sent.append(line)
        if line == "uci" and self.answer_handshake:
            self.emit("id name FakeFish")
            self.emit("uciok")
        elif line == "isready" and self.answer_handshake:
            self.emit("readyok")
        elif line.startswith("position fen "):
            self._fen = line.removeprefix("position fen ")
        elif line.startswith("go"):
            if self.fail_on_go:
                self._on_error("Engine process terminated unexpectedly")
                return
            lines = self.searches.get(self._fen, [])
            for out in lines:
                self.emit(out)
            if self.bestmove_after_search:
                self.emit(f"bestmove {_first_pv(lines)}")
        elif line == "stop":
            for out in self.on_stop:
                self.emit(out)

    def close(self) -> None:
        self.closed = True


def _first_pv(lines: list[str]) -> str:
    for line in lines:
        if " pv " in line:
            return line.split(" pv ")[1].split()[0]
    return "0000"


def info_lines(depth: int, scores: list[tuple[str, int]], *, mate: dict[str, int] | None = None) -> list[str]:
    """Build multipv ``info`` lines for one depth, in the given order."""
    mate = mate or {}
    lines = []
    for multipv, (move, cp) in enumerate(scores, start=1):
        score = f"mate {mate[move]}" if move in mate else f"cp {cp}"
        lines.append(
            f"info depth {depth} seldepth {depth + 2} multipv {multipv} "
            f"score {score} nodes 1000 nps 50000 time 20 pv {move}"
        )
    return lines


@pytest.fixture
def store() -> InMemoryModelStore:
    """Empty in-memory weight store."""
    return InMemoryModelStore()


@pytest.fixture
def fake_session() -> FakeSession:
    """Deterministic inference session with declared output names."""
    return FakeSession()
