"""Command-line interface for maiakit."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from maiakit import __version__
from maiakit.core.chess import FENValidationError
from maiakit.core.configs import AppConfig, load_app_config
from maiakit.core.storage import DirectoryModelStore
from maiakit.core.utils import encode_move, index_to_square, setup_logging, tokenize
from maiakit.core.utils.tokenizer import PIECE_PLANES, TokenizerConfig
from maiakit.describer import describe_evaluation, segments_to_text
from maiakit.engine import EvaluationRecord, PexpectTransport, SearchStreamer
from maiakit.predictor import MaiaPredictor, PredictorStatus, onnx_session_factory

app = typer.Typer(
    name="maiakit",
    help="maiakit: position evaluation toolkit",
    add_completion=False,
)
console = Console()


@app.command()
def version() -> None:
    """Print version information."""
    console.print(f"[bold blue]maiakit[/bold blue] v{__version__}")


@app.command("tokenize")
def tokenize_fen(
    fen: str = typer.Argument(..., help="Position in FEN"),
    history: int = typer.Option(1, "--history", help="History slots"),
) -> None:
    """Show which planes are set on each occupied square."""
    tokens = tokenize(fen, TokenizerConfig(history=history))
    console.print(f"shape={tokens.shape}")
    for sq in range(64):
        planes = [PIECE_PLANES[c] for c in range(12) if tokens[sq, c] > 0]
        if planes:
            console.print(f"{index_to_square(sq)}: {''.join(planes)}")


@app.command("encode-move")
def encode_move_cmd(uci: str = typer.Argument(..., help="Move in UCI, white-to-move orientation")) -> None:
    """Print the policy index of a move."""
    index = encode_move(uci)
    if index is None:
        console.print(f"[yellow]{uci} is not representable[/yellow]")
        raise typer.Exit(code=1)
    console.print(index)


def _record_table(records: list[EvaluationRecord]) -> Table:
    table = Table(title="Search")
    table.add_column("Depth", justify="right")
    table.add_column("Best")
    table.add_column("cp", justify="right")
    table.add_column("Win%", justify="right")
    table.add_column("Mate")
    for record in records:
        best = record.model_move
        mate = (record.mate_vec or {}).get(best)
        table.add_row(
            str(record.depth),
            best,
            str(record.model_optimal_cp),
            f"{record.winrate_vec[best] * 100:.1f}",
            "" if mate is None else f"#{mate}",
        )
    return table


async def _ready_predictor(cfg: AppConfig, model_url: str) -> MaiaPredictor:
    predictor = MaiaPredictor(
        model_url,
        store=DirectoryModelStore(cfg.storage.dir),
        session_factory=onnx_session_factory,
        history=cfg.predictor.history,
        on_progress=lambda p: console.print(f"[dim]download {p}%[/dim]"),
    )
    status = await predictor.initialize()
    if status is PredictorStatus.NO_CACHE:
        status = await predictor.download_model()
    if status is not PredictorStatus.READY:
        console.print(f"[red]Model unavailable:[/red] {predictor.error}")
        raise typer.Exit(code=1)
    return predictor


async def _analyse(fen: str, cfg: AppConfig, engine: str, model: str | None, depth: int) -> None:
    streamer = await SearchStreamer.create(
        lambda: PexpectTransport(engine),
        multipv=cfg.streamer.multipv,
        eval_files=cfg.streamer.eval_files,
        store=DirectoryModelStore(cfg.storage.dir),
        cache_dir=cfg.storage.dir / "nnue",
        handshake_timeout=cfg.streamer.handshake_timeout,
        white_relative_scores=cfg.streamer.white_relative_scores,
    )
    if not streamer.ready:
        console.print(f"[red]Engine failed to start:[/red] {streamer.initialization_error}")
        raise typer.Exit(code=1)

    records: list[EvaluationRecord] = []
    try:
        async for record in streamer.stream_evaluations(fen, target_depth=depth):
            records.append(record)
    finally:
        streamer.close()

    console.print(_record_table(records))
    if not records or not model:
        return

    predictor = await _ready_predictor(cfg, model)
    levels = await predictor.evaluate_levels(fen, cfg.predictor.ratings)
    for rating, evaluation in levels.items():
        top = next(iter(evaluation.policy.items()), ("-", 0.0))
        console.print(f"{rating}: {top[0]} ({top[1]:.2f}), white wins {evaluation.value:.2%}")

    segments = describe_evaluation(fen, records[-1], [e.policy for e in levels.values()])
    console.print(f"[bold]{segments_to_text(segments)}[/bold]")


async def _predict(fen: str, cfg: AppConfig, model: str, elo_self: int, elo_oppo: int, top: int) -> None:
    predictor = await _ready_predictor(cfg, model)
    try:
        evaluation = await predictor.evaluate(fen, elo_self, elo_oppo)
    except FENValidationError as e:
        console.print(f"[red]Unusable position:[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Moves at {elo_self} vs {elo_oppo}")
    table.add_column("Move")
    table.add_column("Prob", justify="right")
    for uci, prob in list(evaluation.policy.items())[:top]:
        table.add_row(uci, f"{prob:.3f}")
    console.print(table)
    console.print(f"white wins {evaluation.value:.2%}")


def _config_or_exit(config: Path | None, override: list[str] | None) -> AppConfig:
    try:
        cfg = load_app_config(config, override)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Bad configuration:[/red] {e}")
        raise typer.Exit(code=2) from e
    setup_logging(cfg.logging.level, cfg.logging.file)
    return cfg


@app.command()
def analyse(
    fen: str = typer.Argument(..., help="Position in FEN"),
    engine: str = typer.Option(None, "--engine", "-e", help="UCI engine binary"),
    model: str = typer.Option(None, "--model", "-m", help="ONNX model URL"),
    engine_only: bool = typer.Option(False, "--engine-only", help="Skip the move predictor"),
    depth: int = typer.Option(None, "--depth", "-d", help="Target search depth"),
    config: Path = typer.Option(None, "--config", "-c", help="YAML config file"),
    override: list[str] = typer.Option(None, "--set", help="Config override, e.g. streamer.multipv=50"),
) -> None:
    """Stream engine evaluations for a position and describe it."""
    cfg = _config_or_exit(config, override)
    asyncio.run(
        _analyse(
            fen,
            cfg,
            engine or cfg.streamer.binary_path,
            None if engine_only else (model or cfg.predictor.model_url),
            depth or cfg.streamer.target_depth,
        )
    )


@app.command()
def predict(
    fen: str = typer.Argument(..., help="Position in FEN"),
    model: str = typer.Option(None, "--model", "-m", help="ONNX model URL"),
    elo_self: int = typer.Option(None, "--elo-self", help="Rating of the side to move"),
    elo_oppo: int = typer.Option(None, "--elo-oppo", help="Rating of the opponent"),
    top: int = typer.Option(5, "--top", "-n", help="Number of moves to show"),
    config: Path = typer.Option(None, "--config", "-c", help="YAML config file"),
    override: list[str] = typer.Option(None, "--set", help="Config override, e.g. predictor.history=2"),
) -> None:
    """Show the predicted move distribution for one pair of ratings."""
    cfg = _config_or_exit(config, override)
    asyncio.run(
        _predict(
            fen,
            cfg,
            model or cfg.predictor.model_url,
            cfg.predictor.default_elo_self if elo_self is None else elo_self,
            cfg.predictor.default_elo_oppo if elo_oppo is None else elo_oppo,
            top,
        )
    )


if __name__ == "__main__":
    app()
