"""Loguru sinks for the CLI and library users."""

import sys
from pathlib import Path

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    rotation: str = "10 MB",
    retention: str = "1 week",
) -> None:
    """Replace all loguru sinks with a stderr sink and an optional file sink.

    Every line exchanged with the search engine is logged at TRACE, so
    ``level="TRACE"`` gives a full protocol transcript.

    Args:
        level: Minimum level for both sinks.
        log_file: Log file path. Parent directories are created.
        rotation: Size or age at which the file is rotated.
        retention: How long rotated files are kept.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=True)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            level=level,
            format=_FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            compression="gz",
        )

    logger.debug(f"Logging at {level}" + (f", file {log_file}" if log_file else ""))
