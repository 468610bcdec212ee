"""Tests for the move/value predictor.

Inference runs against the deterministic FakeSession from conftest, so no
model file or onnxruntime session is needed.
"""

import asyncio

import numpy as np
import pytest

from conftest import (
    AFTER_E4_FEN,
    FOOLS_MATE_FEN,
    ITALIAN_FEN,
    ONLY_MOVE_MATES_FEN,
    START_FEN,
    FakeNodeArg,
    FakeSession,
)
from maiakit.core.chess.rules import legal_uci_moves
from maiakit.core.chess.validation import MalformedFENError
from maiakit.core.storage import InMemoryModelStore, WeightFetchError
from maiakit.core.utils.policy import POLICY_SIZE, mirror_move
from maiakit.core.utils.tokenizer import mirror_fen
from maiakit.predictor import (
    MaiaPredictor,
    ModelOutputError,
    PredictorNotReadyError,
    PredictorStatus,
    UnsupportedModelSchemaError,
    resolve_output_binding,
)
from maiakit.predictor.outputs import elo_array, infer_history
from maiakit.predictor.predictor import softmax

MODEL_URL = "https://example.com/maia_rapid.onnx"


def _make_predictor(
    store: InMemoryModelStore,
    session: FakeSession,
    fetch=None,
    **kwargs,
) -> MaiaPredictor:
    def default_fetch(url, on_progress):
        if on_progress is not None:
            on_progress(50)
            on_progress(100)
        return b"fake-model"

    return MaiaPredictor(
        MODEL_URL,
        store=store,
        fetch=fetch or default_fetch,
        session_factory=lambda data: session,
        **kwargs,
    )


def _ready_predictor(session: FakeSession | None = None) -> MaiaPredictor:
    store = InMemoryModelStore()
    store.put(MODEL_URL, b"fake-model")
    predictor = _make_predictor(store, session or FakeSession())
    status = asyncio.run(predictor.initialize())
    assert status is PredictorStatus.READY
    return predictor


class TestLifecycle:
    """Status transitions while acquiring weights."""

    def test_download_flow(self, store: InMemoryModelStore, fake_session: FakeSession) -> None:
        """Empty store: loading -> no-cache -> downloading -> ready."""
        statuses: list[PredictorStatus] = []
        progress: list[int] = []
        predictor = _make_predictor(
            store, fake_session, on_status=statuses.append, on_progress=progress.append
        )

        async def run() -> None:
            assert await predictor.initialize() is PredictorStatus.NO_CACHE
            assert await predictor.download_model() is PredictorStatus.READY

        asyncio.run(run())

        assert statuses == [
            PredictorStatus.LOADING,
            PredictorStatus.NO_CACHE,
            PredictorStatus.DOWNLOADING,
            PredictorStatus.READY,
        ]
        assert progress == [50, 100]
        assert store.get(MODEL_URL) == b"fake-model"
        assert predictor.ready

    def test_cached_weights_skip_download(self, store: InMemoryModelStore, fake_session: FakeSession) -> None:
        """A second initialization loads straight from the store."""
        store.put(MODEL_URL, b"fake-model")

        def fetch(url, on_progress):
            raise AssertionError("must not download")

        predictor = _make_predictor(store, fake_session, fetch=fetch)
        assert asyncio.run(predictor.initialize()) is PredictorStatus.READY

    def test_download_failure_sets_error(self, store: InMemoryModelStore, fake_session: FakeSession) -> None:
        """Fetch errors end in the error status with a message."""

        def fetch(url, on_progress):
            raise WeightFetchError("connection refused")

        predictor = _make_predictor(store, fake_session, fetch=fetch)
        assert asyncio.run(predictor.download_model()) is PredictorStatus.ERROR
        assert "connection refused" in predictor.error
        assert not predictor.ready

    def test_unsupported_schema_sets_error(self, store: InMemoryModelStore) -> None:
        """A model without a recognizable value head fails to load."""
        session = FakeSession()
        session.outputs = [FakeNodeArg("only_output", ["batch", 3])]
        store.put(MODEL_URL, b"fake-model")

        predictor = _make_predictor(store, session)
        assert asyncio.run(predictor.initialize()) is PredictorStatus.ERROR
        assert "Unsupported model schema" in predictor.error

    def test_evaluate_before_ready_rejects(self, store: InMemoryModelStore, fake_session: FakeSession) -> None:
        """Calls before the model is loaded raise from the coroutine."""
        predictor = _make_predictor(store, fake_session)
        pending = predictor.evaluate(START_FEN, 1500, 1500)

        with pytest.raises(PredictorNotReadyError):
            asyncio.run(pending)

    def test_history_comes_from_model_inputs(self) -> None:
        """A (B, 64, 24) tokens input means two history slots."""
        session = FakeSession(history=2)
        predictor = _ready_predictor(session)

        asyncio.run(predictor.evaluate(START_FEN, 1500, 1500))

        assert predictor.history == 2
        assert session.calls[-1]["tokens"].shape == (1, 64, 24)

    def test_storage_passthrough(self) -> None:
        """Storage info and clearing go to the store."""
        predictor = _ready_predictor()
        assert predictor.storage_info().entries == 1

        predictor.clear_storage()
        assert predictor.storage_info().entries == 0


class TestEvaluate:
    """Single-position predictions."""

    @pytest.mark.parametrize("fen", [START_FEN, AFTER_E4_FEN, ITALIAN_FEN])
    def test_policy_is_a_distribution_over_legal_moves(self, fen: str) -> None:
        """Probabilities sum to 1 over exactly the legal moves."""
        predictor = _ready_predictor()
        result = asyncio.run(predictor.evaluate(fen, 1500, 1500))

        assert set(result.policy) == set(legal_uci_moves(fen))
        assert sum(result.policy.values()) == pytest.approx(1.0, abs=1e-4)
        assert all(p > 0 for p in result.policy.values())
        assert 0.0 <= result.value <= 1.0

    def test_policy_is_sorted(self) -> None:
        predictor = _ready_predictor()
        result = asyncio.run(predictor.evaluate(ITALIAN_FEN, 1500, 1500))

        probs = list(result.policy.values())
        assert probs == sorted(probs, reverse=True)

    def test_black_to_move_mirrors(self) -> None:
        """A black position and its white mirror give mirrored predictions."""
        predictor = _ready_predictor()
        mirrored = mirror_fen(AFTER_E4_FEN)

        black = asyncio.run(predictor.evaluate(AFTER_E4_FEN, 1500, 1500))
        white = asyncio.run(predictor.evaluate(mirrored, 1500, 1500))

        for move, prob in black.policy.items():
            assert white.policy[mirror_move(move)] == pytest.approx(prob)
        assert black.value == pytest.approx(1.0 - white.value, abs=1e-4)

    def test_rating_inputs(self, fake_session: FakeSession) -> None:
        """Ratings are fed as int64 arrays, one per position."""
        predictor = _ready_predictor(fake_session)
        asyncio.run(predictor.evaluate(START_FEN, 1234.7, 1800))

        feeds = fake_session.calls[-1]
        assert feeds["self_elos"].dtype == np.int64
        assert feeds["self_elos"].tolist() == [1234]
        assert feeds["oppo_elos"].tolist() == [1800]

    def test_only_move_mates_is_a_certain_win(self) -> None:
        """The value head is overridden when the mover's only move mates."""
        predictor = _ready_predictor()

        white = asyncio.run(predictor.evaluate(ONLY_MOVE_MATES_FEN, 1500, 1500))
        black = asyncio.run(predictor.evaluate(mirror_fen(ONLY_MOVE_MATES_FEN), 1500, 1500))

        assert white.value == 1.0
        assert black.value == 0.0
        assert white.policy == {"a8e8": pytest.approx(1.0)}

    def test_checkmated_position(self) -> None:
        """A mated side has no moves and zero winning chances."""
        predictor = _ready_predictor()
        result = asyncio.run(predictor.evaluate(FOOLS_MATE_FEN, 1500, 1500))

        assert result.policy == {}
        assert result.value == 0.0

    def test_invalid_fen_is_rejected(self) -> None:
        predictor = _ready_predictor()
        with pytest.raises(MalformedFENError):
            asyncio.run(predictor.evaluate("8/8/8/8/8/8/8/8 w - - 0 1", 1500, 1500))


class TestBatchEvaluate:
    """Batched inference."""

    def test_batch_matches_sequential(self) -> None:
        """Three positions in one call equal three single calls."""
        predictor = _ready_predictor()
        fens = [START_FEN, AFTER_E4_FEN, ITALIAN_FEN]
        elos = [1100, 1500, 1900]

        async def run():
            batch = await predictor.batch_evaluate(fens, elos, elos)
            singles = [await predictor.evaluate(f, e, e) for f, e in zip(fens, elos)]
            return batch, singles

        batch, singles = asyncio.run(run())

        assert len(batch.results) == 3
        assert batch.elapsed >= 0
        for got, expected in zip(batch.results, singles):
            assert got.value == pytest.approx(expected.value)
            assert got.policy.keys() == expected.policy.keys()
            for move, prob in expected.policy.items():
                assert got.policy[move] == pytest.approx(prob)

    def test_single_inference_call(self, fake_session: FakeSession) -> None:
        predictor = _ready_predictor(fake_session)
        asyncio.run(predictor.batch_evaluate([START_FEN, ITALIAN_FEN], [1500, 1500], [1500, 1500]))

        assert len(fake_session.calls) == 1
        assert fake_session.calls[0]["tokens"].shape == (2, 64, 12)

    def test_length_mismatch(self) -> None:
        predictor = _ready_predictor()
        with pytest.raises(ValueError, match="Length mismatch"):
            asyncio.run(predictor.batch_evaluate([START_FEN], [1500, 1600], [1500]))

    def test_empty_batch(self) -> None:
        predictor = _ready_predictor()
        assert asyncio.run(predictor.batch_evaluate([], [], [])).results == []

    def test_output_not_divisible_by_batch(self) -> None:
        """Output sizes that do not split evenly fail the call."""
        predictor = _ready_predictor(FakeSession(trailing_garbage=1))
        with pytest.raises(ModelOutputError, match="not divisible"):
            asyncio.run(predictor.batch_evaluate([START_FEN, ITALIAN_FEN], [1500, 1500], [1500, 1500]))

    def test_wrong_policy_size(self) -> None:
        """A policy head of the wrong width fails even for one position."""
        predictor = _ready_predictor(FakeSession(move_size=1858))
        with pytest.raises(ModelOutputError, match="move logits"):
            asyncio.run(predictor.evaluate(START_FEN, 1500, 1500))

    def test_evaluate_levels(self, fake_session: FakeSession) -> None:
        """One call covers every rating level."""
        predictor = _ready_predictor(fake_session)
        levels = asyncio.run(predictor.evaluate_levels(START_FEN))

        assert list(levels) == [1100, 1200, 1300, 1400, 1500, 1600, 1700, 1800, 1900]
        assert len(fake_session.calls) == 1
        assert levels[1100].policy != levels[1900].policy


class TestOutputs:
    """Binding of model outputs and inputs."""

    def test_declared_names_win(self) -> None:
        outputs = [
            FakeNodeArg("aux", ["batch", 5000]),
            FakeNodeArg("logits_value", ["batch", 3]),
            FakeNodeArg("logits_move", ["batch", POLICY_SIZE]),
        ]
        binding = resolve_output_binding(outputs)
        assert (binding.policy, binding.value) == ("logits_move", "logits_value")

    def test_heuristics(self) -> None:
        """Trailing dim 3 is the value head; the largest other output is the policy."""
        outputs = [
            FakeNodeArg("output_0", ["batch", 3]),
            FakeNodeArg("output_1", ["batch", 64]),
            FakeNodeArg("output_2", ["batch", POLICY_SIZE]),
        ]
        binding = resolve_output_binding(outputs)
        assert binding.names == ["output_2", "output_0"]

    def test_unsupported_schema(self) -> None:
        with pytest.raises(UnsupportedModelSchemaError):
            resolve_output_binding([])
        with pytest.raises(UnsupportedModelSchemaError):
            resolve_output_binding([FakeNodeArg("output_0", ["batch", POLICY_SIZE])])

    def test_infer_history(self) -> None:
        assert infer_history([FakeNodeArg("tokens", ["batch", 64, 36])]) == 3
        assert infer_history([FakeNodeArg("tokens", ["batch", 64, "channels"])], default=2) == 2
        assert infer_history([], default=1) == 1

    def test_float_rating_inputs(self) -> None:
        inputs = [FakeNodeArg("self_elos", ["batch"], "tensor(float)")]
        assert elo_array(inputs, "self_elos", [1500.5]).dtype == np.float32

    def test_softmax_is_stable(self) -> None:
        probs = softmax(np.array([1000.0, 1000.0, -1000.0]))
        np.testing.assert_allclose(probs, [0.5, 0.5, 0.0], atol=1e-12)
