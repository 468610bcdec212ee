"""Reading and writing YAML configuration files."""

from pathlib import Path
from typing import Any

from omegaconf import DictConfig, OmegaConf

from maiakit.core.configs.schema import AppConfig, config_from_dict, config_to_dict


def _parse_overrides(overrides: list[str]) -> DictConfig:
    for item in overrides:
        if "=" not in item:
            msg = f"Override must look like section.key=value (got {item!r})"
            raise ValueError(msg)
    return OmegaConf.from_dotlist(overrides)


def load_config(config_path: str | Path | None, overrides: list[str] | None = None) -> DictConfig:
    """Read a YAML file and apply ``section.key=value`` overrides on top.

    With ``config_path=None`` only the overrides are returned, so callers
    can rely on the dataclass defaults for everything else.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If an override is not of the form ``key=value``.
    """
    config = OmegaConf.create()
    if config_path is not None:
        config_path = Path(config_path).expanduser()
        if not config_path.exists():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
        config = OmegaConf.load(config_path)

    if overrides:
        config = OmegaConf.merge(config, _parse_overrides(overrides))
    return config


def load_app_config(
    config_path: str | Path | None = None, overrides: list[str] | None = None
) -> AppConfig:
    """Like :func:`load_config`, but validated into an :class:`AppConfig`."""
    return config_from_dict(load_config(config_path, overrides))


def save_config(config: AppConfig | DictConfig | dict[str, Any], path: str | Path) -> None:
    """Write ``config`` as YAML, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(config, AppConfig):
        config = config_to_dict(config)
    if isinstance(config, dict):
        config = OmegaConf.create(config)
    OmegaConf.save(config, path)
