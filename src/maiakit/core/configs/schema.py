"""Strongly-typed configuration schemas for the evaluation pipeline.

These dataclasses provide validation, IDE support, and serve as the
single source of truth for all configuration options.
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from omegaconf import DictConfig, OmegaConf

DEFAULT_MODEL_URL = (
    "https://raw.githubusercontent.com/CSSLab/maia-platform-frontend/e23a50e/"
    "public/maia2/maia_rapid.onnx"
)
DEFAULT_RATINGS = (1100, 1200, 1300, 1400, 1500, 1600, 1700, 1800, 1900)


@dataclass
class PredictorConfig:
    """Configuration for the move/value network."""

    model_url: str = DEFAULT_MODEL_URL
    history: int = 1  # Overridden by the model's input metadata when present
    default_elo_self: int = 1500
    default_elo_oppo: int = 1500
    ratings: list[int] = field(default_factory=lambda: list(DEFAULT_RATINGS))

    def __post_init__(self) -> None:
        """Validate."""
        if self.history < 1:
            msg = f"history must be at least 1 (got {self.history})"
            raise ValueError(msg)
        if not self.ratings:
            raise ValueError("ratings must not be empty")


@dataclass
class StreamerConfig:
    """Configuration for the search engine streamer."""

    binary_path: str = "stockfish"
    multipv: int = 100
    target_depth: int = 18
    eval_files: list[str] = field(default_factory=list)  # URLs or local paths
    handshake_timeout: float = 30.0
    white_relative_scores: bool = False  # Native binaries report mover-relative scores

    def __post_init__(self) -> None:
        """Validate."""
        if self.multipv < 1:
            msg = f"multipv must be at least 1 (got {self.multipv})"
            raise ValueError(msg)
        if self.target_depth < 1:
            msg = f"target_depth must be at least 1 (got {self.target_depth})"
            raise ValueError(msg)


@dataclass
class StorageConfig:
    """Configuration for the weight store."""

    dir: Path = field(default_factory=lambda: Path.home() / ".cache" / "maiakit")

    def __post_init__(self) -> None:
        """Convert string to Path if needed."""
        if isinstance(self.dir, str):
            self.dir = Path(self.dir).expanduser()


@dataclass
class LoggingConfig:
    """Configuration for loguru sinks."""

    level: str = "INFO"
    file: str | None = None


@dataclass
class AppConfig:
    """Top-level configuration combining all sub-configs."""

    predictor: PredictorConfig = field(default_factory=PredictorConfig)
    streamer: StreamerConfig = field(default_factory=StreamerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = {
    "predictor": PredictorConfig,
    "streamer": StreamerConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
}


def _check_scalar(section: str, name: str, expected: Any, value: Any) -> None:
    if expected is bool:
        ok = isinstance(value, bool)
    elif expected in (int, float):
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        ok = ok and (expected is float or isinstance(value, int))
    else:
        return
    if not ok:
        msg = f"{section}.{name} must be {expected.__name__} (got {value!r})"
        raise ValueError(msg)


def _build_section(name: str, values: dict[str, Any] | None) -> Any:
    cls = _SECTIONS[name]
    values = values or {}
    types = {f.name: f.type for f in fields(cls)}
    unknown = sorted(set(values) - set(types))
    if unknown:
        msg = f"Unknown {name} option(s): {', '.join(unknown)}"
        raise ValueError(msg)
    for key, value in values.items():
        _check_scalar(name, key, types[key], value)
    try:
        return cls(**values)
    except TypeError as e:
        msg = f"Invalid {name} option: {e}"
        raise ValueError(msg) from e


def config_from_dict(data: dict[str, Any] | DictConfig) -> AppConfig:
    """Create AppConfig from a dictionary (e.g., from OmegaConf).

    Args:
        data: Dictionary with configuration values.

    Returns:
        AppConfig instance.

    Raises:
        ValueError: On unknown sections or options, or values of the wrong type.
    """
    if isinstance(data, DictConfig):
        data = OmegaConf.to_container(data, resolve=True)

    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        msg = f"Unknown config section(s): {', '.join(unknown)}"
        raise ValueError(msg)

    return AppConfig(**{name: _build_section(name, data.get(name)) for name in _SECTIONS})


def config_to_dict(config: AppConfig) -> dict[str, Any]:
    """Convert AppConfig to a dictionary for serialization.

    Args:
        config: AppConfig instance.

    Returns:
        Dictionary representation.
    """
    result = asdict(config)
    # Convert Path objects to strings for YAML serialization
    result["storage"]["dir"] = str(result["storage"]["dir"])
    return result
