"""Streaming evaluation on top of a UCI search engine.

``SearchStreamer`` turns the engine's line output into an async sequence of
complete per-depth ``EvaluationRecord`` objects:

- One evaluation is in flight per streamer. Starting a stream stops the
  previous one and builds a fresh ``DepthAccumulator``.
- Cancellation is cooperative: after ``stop`` the engine may still print a
  few lines of the old search. Lines are dropped while the streamer is not
  evaluating, while an older search has not yet reported ``bestmove``, and
  when their move is not legal in the current position.
- Lines arrive on the transport's thread and are handed to the event loop
  before any state is touched.
"""

import asyncio
import urllib.parse
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from loguru import logger

from maiakit.core.chess.rules import is_checkmate, legal_uci_moves, side_to_move
from maiakit.core.storage import Fetcher, ModelStore, WeightFetchError, fetch_bytes, load_weights
from maiakit.engine.records import DepthAccumulator, EvaluationRecord, parse_info_line
from maiakit.engine.transport import EngineTransport, UCIEngineError

# UCI option names for the big and small NNUE networks, in load order
EVAL_FILE_OPTIONS = ("EvalFile", "EvalFileSmall")
DEFAULT_TARGET_DEPTH = 18


class StreamerPhase(str, Enum):
    """Initialization phases of a streamer."""

    IDLE = "idle"
    LOADING_MODULE = "loading-module"
    CHECKING_CACHE = "checking-cache"
    DOWNLOADING_NNUE = "downloading-nnue"
    LOADING_NNUE = "loading-nnue"
    READY = "ready"
    ERROR = "error"


@dataclass
class _Stream:
    fen: str
    accumulator: DepthAccumulator
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)


def _is_url(source: str) -> bool:
    return urllib.parse.urlparse(source).scheme in ("http", "https")


class SearchStreamer:
    """Cancellable per-depth evaluation stream over a UCI engine.

    Example:
        streamer = await SearchStreamer.create(lambda: PexpectTransport("stockfish"))
        async for record in streamer.stream_evaluations(fen, target_depth=16):
            print(record.depth, record.model_move, record.model_optimal_cp)
        streamer.close()
    """

    def __init__(
        self,
        transport_factory: Callable[[], EngineTransport],
        *,
        multipv: int = 100,
        eval_files: Sequence[str] = (),
        store: ModelStore | None = None,
        fetch: Fetcher = fetch_bytes,
        cache_dir: str | Path | None = None,
        handshake_timeout: float = 30.0,
        white_relative_scores: bool = True,
        on_phase: Callable[[StreamerPhase], None] | None = None,
    ) -> None:
        """Configure the streamer. No process is started until ``initialize()``.

        Args:
            transport_factory: Creates the engine transport (may block).
            multipv: Number of lines the engine reports per depth. Raised per
                stream when a position has more legal moves.
            eval_files: Up to two NNUE networks (URLs or local paths) loaded
                as ``EvalFile`` and ``EvalFileSmall``.
            store: Weight store for downloaded networks. Required for URLs.
            fetch: Downloader for networks missing from the store.
            cache_dir: Directory the downloaded networks are written to for
                the engine to read. Required for URLs.
            handshake_timeout: Seconds to wait for ``uciok``/``readyok``.
            white_relative_scores: Whether the engine reports scores from
                White's perspective. Native Stockfish builds report them
                relative to the side to move; pass False for those.
            on_phase: Called on every phase change.
        """
        if len(eval_files) > len(EVAL_FILE_OPTIONS):
            msg = f"At most {len(EVAL_FILE_OPTIONS)} eval files are supported, got {len(eval_files)}"
            raise ValueError(msg)
        if any(_is_url(f) for f in eval_files) and (store is None or cache_dir is None):
            raise ValueError("Downloading eval files requires both a store and a cache_dir")

        self._transport_factory = transport_factory
        self._multipv = multipv
        self._active_multipv = multipv
        self._eval_files = list(eval_files)
        self._store = store
        self._fetch = fetch
        self._cache_dir = Path(cache_dir) if cache_dir is not None else None
        self._handshake_timeout = handshake_timeout
        self._white_relative_scores = white_relative_scores
        self._on_phase = on_phase

        self._transport: EngineTransport | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._waiters: dict[str, asyncio.Future] = {}
        self._phase = StreamerPhase.IDLE
        self._initializing = False
        self._module_loaded = False
        self._eval_loaded = False
        self.initialization_error: str | None = None

        self._evaluating = False
        self._stream: _Stream | None = None
        self._searches_in_flight = 0

    @classmethod
    async def create(
        cls,
        transport_factory: Callable[[], EngineTransport],
        **kwargs,
    ) -> "SearchStreamer":
        """Construct and initialize a streamer in one step."""
        streamer = cls(transport_factory, **kwargs)
        await streamer.initialize()
        return streamer

    @property
    def ready(self) -> bool:
        return (
            self._phase is StreamerPhase.READY
            and self._module_loaded
            and self._eval_loaded
            and self._transport is not None
        )

    @property
    def phase(self) -> StreamerPhase:
        return self._phase

    @property
    def initializing(self) -> bool:
        return self._initializing

    @property
    def evaluating(self) -> bool:
        return self._evaluating

    def _set_phase(self, phase: StreamerPhase) -> None:
        self._phase = phase
        logger.debug(f"Streamer phase: {phase.value}")
        if self._on_phase is not None:
            self._on_phase(phase)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Start the engine, load its networks and wait until it is ready.

        Failures leave the streamer in the ``error`` phase with
        ``initialization_error`` set.

        Returns:
            Whether the streamer is ready.
        """
        if self._initializing or self.ready:
            return self.ready

        self._loop = asyncio.get_running_loop()
        self._initializing = True
        self.initialization_error = None
        self._searches_in_flight = 0
        self._active_multipv = self._multipv
        try:
            self._set_phase(StreamerPhase.LOADING_MODULE)
            self._transport = await asyncio.to_thread(self._transport_factory)
            self._transport.listen(self._on_transport_message, self._on_transport_error)
            await self._expect("uciok", "uci")
            self._module_loaded = True

            await self._load_eval_files()
            self._eval_loaded = True

            self._send(f"setoption name MultiPV value {self._multipv}")
            await self._expect("readyok", "isready")
            self._set_phase(StreamerPhase.READY)
        except (UCIEngineError, WeightFetchError, OSError, asyncio.TimeoutError) as e:
            message = str(e) or type(e).__name__
            logger.error(f"Failed to initialize search engine: {message}")
            self.initialization_error = message
            self._module_loaded = False
            self._eval_loaded = False
            self._set_phase(StreamerPhase.ERROR)
            self._close_transport()
        finally:
            self._initializing = False

        return self.ready

    async def _expect(self, token: str, command: str) -> None:
        future = self._loop.create_future()
        self._waiters[token] = future
        try:
            self._send(command)
            await asyncio.wait_for(future, timeout=self._handshake_timeout)
        except asyncio.TimeoutError as e:
            raise UCIEngineError(f"Timeout waiting for '{token}'") from e
        finally:
            self._waiters.pop(token, None)

    async def _load_eval_files(self) -> None:
        if not self._eval_files:
            return

        self._set_phase(StreamerPhase.CHECKING_CACHE)
        paths: list[Path] = []
        for source in self._eval_files:
            if _is_url(source):
                paths.append(await self._materialize(source))
            else:
                path = Path(source).expanduser()
                if not path.exists():
                    raise UCIEngineError(f"Eval file not found: {path}")
                paths.append(path)

        self._set_phase(StreamerPhase.LOADING_NNUE)
        for option, path in zip(EVAL_FILE_OPTIONS, paths):
            self._send(f"setoption name {option} value {path}")

    async def _materialize(self, url: str) -> Path:
        """Fetch a network through the store and write it where the engine can read it."""

        def on_download_start() -> None:
            if self._phase is not StreamerPhase.DOWNLOADING_NNUE:
                self._loop.call_soon_threadsafe(self._set_phase, StreamerPhase.DOWNLOADING_NNUE)

        data = await asyncio.to_thread(
            load_weights, url, self._store, self._fetch, on_download_start=on_download_start
        )
        name = Path(urllib.parse.urlparse(url).path).name or "network.nnue"
        path = self._cache_dir / name
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, data)
        return path

    # ------------------------------------------------------------------
    # Transport plumbing
    # ------------------------------------------------------------------

    def _send(self, line: str) -> None:
        if self._transport is None:
            raise UCIEngineError("Engine not running")
        self._transport.send(line)

    def _dispatch(self, callback: Callable[[str], None], text: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, text)
        except RuntimeError:
            # Loop shut down between the check and the call
            logger.trace(f"Dropped engine output after loop shutdown: {text}")

    def _on_transport_message(self, line: str) -> None:
        self._dispatch(self._handle_line, line)

    def _on_transport_error(self, message: str) -> None:
        self._dispatch(self._handle_error, message)

    def _handle_line(self, line: str) -> None:
        logger.trace(f"UCI recv: {line}")

        for token, future in list(self._waiters.items()):
            if line.startswith(token) and not future.done():
                future.set_result(line)

        if line.startswith("bestmove"):
            self._searches_in_flight = max(0, self._searches_in_flight - 1)
            if self._searches_in_flight == 0 and self._evaluating:
                logger.debug(f"Search finished: {line}")
                self._finish_stream()
            return

        # Only process evaluation messages for the current search
        if not self._evaluating or self._searches_in_flight != 1 or self._stream is None:
            return

        info = parse_info_line(line)
        if info is None:
            return

        record = self._stream.accumulator.ingest(info)
        if record is not None:
            self._stream.queue.put_nowait(record)

    def _handle_error(self, message: str) -> None:
        for future in self._waiters.values():
            if not future.done():
                future.set_exception(UCIEngineError(message))
        self._evaluating = False
        self._searches_in_flight = 0
        self._finish_stream()

    def _finish_stream(self) -> None:
        self._evaluating = False
        if self._stream is not None:
            self._stream.queue.put_nowait(None)
            self._stream = None

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def stop_evaluation(self) -> None:
        """Stop the current search, if any, and end its stream."""
        if self._evaluating:
            self._evaluating = False
            self._send("stop")
        self._finish_stream()

    async def stream_evaluations(
        self,
        fen: str,
        legal_move_count: int | None = None,
        target_depth: int = DEFAULT_TARGET_DEPTH,
    ) -> AsyncIterator[EvaluationRecord]:
        """Search a position and yield one complete record per depth.

        If the streamer is not ready, or the position has no legal moves, the
        stream is empty. The stream ends when the engine reports ``bestmove``,
        when ``stop_evaluation()`` is called, when another stream starts, or on
        a transport error. Leaving the ``async for`` early stops the search.

        Args:
            fen: Position to evaluate.
            legal_move_count: Number of moves a depth needs before it is
                emitted. Defaults to the number of legal moves.
            target_depth: Depth passed to ``go depth``.
        """
        if not self.ready:
            logger.warning(f"Search engine not ready (phase={self._phase.value}); skipping {fen}")
            return

        self.stop_evaluation()

        moves = legal_uci_moves(fen)
        if not moves:
            logger.debug(f"No legal moves in {fen}; nothing to search")
            return

        accumulator = DepthAccumulator(
            moves,
            legal_move_count=legal_move_count,
            black_to_move=side_to_move(fen) == "b",
            is_checkmate=is_checkmate(fen),
            white_relative=self._white_relative_scores,
        )
        stream = _Stream(fen=fen, accumulator=accumulator)
        self._stream = stream
        self._evaluating = True

        if accumulator.legal_move_count > self._active_multipv:
            self._active_multipv = accumulator.legal_move_count
            self._send(f"setoption name MultiPV value {self._active_multipv}")

        self._send("ucinewgame")
        self._send(f"position fen {fen}")
        self._send(f"go depth {target_depth}")
        self._searches_in_flight += 1

        try:
            while True:
                record = await stream.queue.get()
                if record is None:
                    break
                yield record
        finally:
            if self._stream is stream:
                self.stop_evaluation()

    def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()

    def close(self) -> None:
        """Stop any search and shut the engine down."""
        if self._transport is not None and self._evaluating:
            self.stop_evaluation()
        else:
            self._finish_stream()
        self._close_transport()
        self._searches_in_flight = 0
        self._module_loaded = False
        self._eval_loaded = False
        self._set_phase(StreamerPhase.IDLE)
