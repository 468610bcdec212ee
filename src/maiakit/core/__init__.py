"""Core utilities shared by the predictor, the streamer and the describer."""

from maiakit.core.configs import load_app_config, load_config, save_config
from maiakit.core.utils.logging import setup_logging

__all__ = ["load_app_config", "load_config", "save_config", "setup_logging"]
