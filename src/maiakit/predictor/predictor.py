"""Human-move predictor backed by an ONNX move/value network.

The predictor owns one inference session and walks through a small state
machine while acquiring its weights::

    loading -> no-cache -> downloading -> ready
    loading -> ready                      (weights already in the store)
    loading | downloading -> error

Weights are kept in a ``ModelStore`` keyed by the model URL, so a second
initialization does not touch the network.

Every position goes through the board/policy codec: the network sees the
position with white to move, its move logits are restricted to the legal
mask and softmaxed over exactly that subset, and moves are mirrored back to
the true orientation before being returned.
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import numpy as np
from loguru import logger

from maiakit.core.chess.rules import forced_mover_result
from maiakit.core.chess.validation import validate_fen_for_network
from maiakit.core.configs.schema import DEFAULT_RATINGS
from maiakit.core.storage import Fetcher, ModelStore, StorageInfo, fetch_bytes
from maiakit.core.utils.policy import POLICY_SIZE, EncodedPosition, index_to_move, preprocess
from maiakit.predictor.errors import ModelOutputError, PredictorNotReadyError
from maiakit.predictor.outputs import (
    ELO_OPPO_INPUT,
    ELO_SELF_INPUT,
    TOKENS_INPUT,
    OutputBinding,
    elo_array,
    infer_history,
    resolve_output_binding,
)


class PredictorStatus(str, Enum):
    """Lifecycle of a predictor instance."""

    LOADING = "loading"
    NO_CACHE = "no-cache"
    DOWNLOADING = "downloading"
    READY = "ready"
    ERROR = "error"


class InferenceSession(Protocol):
    """The subset of ``onnxruntime.InferenceSession`` the predictor uses."""

    def get_inputs(self) -> Sequence[Any]: ...

    def get_outputs(self) -> Sequence[Any]: ...

    def run(self, output_names: list[str] | None, input_feed: dict[str, np.ndarray]) -> list[Any]: ...


SessionFactory = Callable[[bytes], InferenceSession]


def onnx_session_factory(data: bytes) -> InferenceSession:
    """Create a CPU onnxruntime session from serialized model bytes."""
    import onnxruntime as ort

    return ort.InferenceSession(data, providers=["CPUExecutionProvider"])


@dataclass(frozen=True)
class MaiaEvaluation:
    """Prediction for one position.

    Attributes:
        policy: Legal UCI moves (true orientation) to probability, sorted by
            descending probability. Sums to 1 over legal moves.
        value: White's win probability, ``P(win) + 0.5 * P(draw)``.
    """

    policy: dict[str, float]
    value: float


@dataclass(frozen=True)
class BatchEvaluation:
    """Predictions for a batch of positions plus the inference wall time."""

    results: list[MaiaEvaluation]
    elapsed: float


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over a 1-D array."""
    if logits.size == 0:
        return logits.astype(np.float64)
    shifted = logits.astype(np.float64) - np.max(logits)
    exp = np.exp(shifted)
    return exp / np.sum(exp)


def _stride(size: int, batch_size: int, label: str) -> int:
    if size % batch_size != 0:
        raise ModelOutputError(
            f"{label} output has {size} elements, not divisible by batch size {batch_size}"
        )
    return size // batch_size


def process_outputs(
    move_logits: np.ndarray,
    value_logits: np.ndarray,
    encoded: EncodedPosition,
    fen: str,
) -> MaiaEvaluation:
    """Turn one position's raw logits into a MaiaEvaluation.

    Args:
        move_logits: Flat move logits of length POLICY_SIZE.
        value_logits: (loss, draw, win) logits for the encoding side.
        encoded: The codec output the logits were produced from.
        fen: Position in true orientation.

    Raises:
        ModelOutputError: If either slice has an unexpected length.
    """
    if move_logits.size != POLICY_SIZE:
        raise ModelOutputError(f"Expected {POLICY_SIZE} move logits, got {move_logits.size}")
    if value_logits.size < 3:
        raise ModelOutputError(f"Expected 3 value logits, got {value_logits.size}")

    legal_idx = np.flatnonzero(encoded.legal_mask)
    probs = softmax(move_logits[legal_idx])

    moves = [index_to_move(int(i), black_to_move=encoded.black_to_move) for i in legal_idx]
    policy = dict(
        sorted(
            ((move, float(p)) for move, p in zip(moves, probs)),
            key=lambda item: item[1],
            reverse=True,
        )
    )

    loss, draw, win = softmax(value_logits[:3])
    mover_win = float(win + 0.5 * draw)

    forced = forced_mover_result(fen)
    if forced is not None:
        mover_win = forced

    white_win = 1.0 - mover_win if encoded.black_to_move else mover_win
    return MaiaEvaluation(policy=policy, value=round(white_win, 4))


class MaiaPredictor:
    """Rating-conditioned move/value predictor.

    Example:
        predictor = MaiaPredictor(url, store=DirectoryModelStore("~/.cache/maiakit"))
        await predictor.initialize()
        if predictor.status is PredictorStatus.NO_CACHE:
            await predictor.download_model()
        result = await predictor.evaluate(fen, 1500, 1500)
    """

    def __init__(
        self,
        model_url: str,
        *,
        store: ModelStore,
        fetch: Fetcher = fetch_bytes,
        session_factory: SessionFactory = onnx_session_factory,
        history: int = 1,
        on_status: Callable[[PredictorStatus], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        """Initialize the predictor. No I/O happens until ``initialize()``.

        Args:
            model_url: URL of the ONNX model; also its key in the store.
            store: Weight store consulted before downloading.
            fetch: Downloader used by ``download_model()``.
            session_factory: Builds an inference session from model bytes.
            history: History depth used when the model does not declare one.
            on_status: Called on every status change.
            on_progress: Called with download progress percentages.
        """
        self.model_url = model_url
        self.history = history
        self.error: str | None = None
        self._store = store
        self._fetch = fetch
        self._session_factory = session_factory
        self._on_status = on_status
        self._on_progress = on_progress
        self._session: InferenceSession | None = None
        self._binding: OutputBinding | None = None
        self._inputs: Sequence[Any] = ()
        self._status = PredictorStatus.LOADING

    @property
    def status(self) -> PredictorStatus:
        return self._status

    @property
    def ready(self) -> bool:
        return self._status is PredictorStatus.READY and self._session is not None

    @property
    def binding(self) -> OutputBinding | None:
        return self._binding

    def _set_status(self, status: PredictorStatus) -> None:
        self._status = status
        logger.debug(f"Predictor status: {status.value}")
        if self._on_status is not None:
            self._on_status(status)

    def _fail(self, message: str) -> None:
        self.error = message
        self._session = None
        self._binding = None
        self._set_status(PredictorStatus.ERROR)

    async def initialize(self) -> PredictorStatus:
        """Load the model from the store, or report that it must be downloaded."""
        self.error = None
        self._set_status(PredictorStatus.LOADING)

        data = await asyncio.to_thread(self._store.get, self.model_url)
        if data is None:
            info = await asyncio.to_thread(self._store.storage_info)
            logger.info(
                f"Model not cached (url={self.model_url}, usage={info.usage}, quota={info.quota})"
            )
            self._set_status(PredictorStatus.NO_CACHE)
            return self._status

        try:
            await self._load_session(data)
        except Exception as e:
            logger.error(f"Failed to initialize model: {e}")
            self._fail(str(e))
        return self._status

    async def download_model(self) -> PredictorStatus:
        """Download the model, store it and load it.

        Failures leave the predictor in the ``error`` status with ``error``
        set; call again to retry.
        """
        self.error = None
        self._set_status(PredictorStatus.DOWNLOADING)
        loop = asyncio.get_running_loop()

        def report(progress: int) -> None:
            if self._on_progress is not None:
                loop.call_soon_threadsafe(self._on_progress, progress)

        try:
            data = await asyncio.to_thread(self._fetch, self.model_url, report)
            await asyncio.to_thread(self._store.put, self.model_url, data)
            await self._load_session(data)
        except Exception as e:
            logger.error(f"Failed to download model from {self.model_url}: {e}")
            self._fail(str(e))
        return self._status

    async def _load_session(self, data: bytes) -> None:
        session = await asyncio.to_thread(self._session_factory, data)
        self._binding = resolve_output_binding(session.get_outputs())
        self._inputs = session.get_inputs()
        self.history = infer_history(self._inputs, default=self.history)
        self._session = session

        logger.info(
            f"Model loaded: inputs={[i.name for i in self._inputs]}, "
            f"policy={self._binding.policy}, value={self._binding.value}, history={self.history}"
        )
        self._set_status(PredictorStatus.READY)

    def storage_info(self) -> StorageInfo:
        return self._store.storage_info()

    def clear_storage(self) -> None:
        self._store.clear()

    def _require_ready(self) -> tuple[InferenceSession, OutputBinding]:
        if not self.ready or self._binding is None:
            raise PredictorNotReadyError(f"Predictor is not ready (status={self._status.value})")
        return self._session, self._binding

    async def evaluate(self, fen: str, elo_self: float, elo_oppo: float) -> MaiaEvaluation:
        """Predict the move distribution and win probability for one position."""
        batch = await self.batch_evaluate([fen], [elo_self], [elo_oppo])
        return batch.results[0]

    async def batch_evaluate(
        self,
        fens: Sequence[str],
        elo_selfs: Sequence[float],
        elo_oppos: Sequence[float],
    ) -> BatchEvaluation:
        """Evaluate several positions with a single inference call.

        Raises:
            PredictorNotReadyError: If the model is not loaded.
            ValueError: If the argument lengths differ.
            FENValidationError: If a FEN is unusable by the network.
            ModelOutputError: If the outputs cannot be split per position.
        """
        session, binding = self._require_ready()

        if not len(fens) == len(elo_selfs) == len(elo_oppos):
            msg = (
                f"Length mismatch: {len(fens)} fens, {len(elo_selfs)} self ratings, "
                f"{len(elo_oppos)} opponent ratings"
            )
            raise ValueError(msg)

        batch_size = len(fens)
        if batch_size == 0:
            return BatchEvaluation(results=[], elapsed=0.0)

        for fen in fens:
            validate_fen_for_network(fen)

        encoded = [preprocess(fen, self.history) for fen in fens]
        feeds = {
            TOKENS_INPUT: np.stack([e.tokens for e in encoded]).astype(np.float32),
            ELO_SELF_INPUT: elo_array(self._inputs, ELO_SELF_INPUT, elo_selfs),
            ELO_OPPO_INPUT: elo_array(self._inputs, ELO_OPPO_INPUT, elo_oppos),
        }

        start = time.perf_counter()
        move_out, value_out = await asyncio.to_thread(session.run, binding.names, feeds)
        elapsed = time.perf_counter() - start

        move_flat = np.asarray(move_out, dtype=np.float32).reshape(-1)
        value_flat = np.asarray(value_out, dtype=np.float32).reshape(-1)

        # Strides come from the actual output sizes
        move_stride = _stride(move_flat.size, batch_size, binding.policy)
        value_stride = _stride(value_flat.size, batch_size, binding.value)

        results = [
            process_outputs(
                move_flat[i * move_stride : (i + 1) * move_stride],
                value_flat[i * value_stride : (i + 1) * value_stride],
                encoded[i],
                fens[i],
            )
            for i in range(batch_size)
        ]

        logger.debug(f"Evaluated {batch_size} positions in {elapsed * 1000:.1f} ms")
        return BatchEvaluation(results=results, elapsed=elapsed)

    async def evaluate_levels(
        self,
        fen: str,
        ratings: Sequence[int] = DEFAULT_RATINGS,
    ) -> dict[int, MaiaEvaluation]:
        """Evaluate one position at several skill levels in one batched call.

        Both sides are given the same rating.
        """
        batch = await self.batch_evaluate([fen] * len(ratings), list(ratings), list(ratings))
        return dict(zip(ratings, batch.results))
