"""maiakit: position evaluation for human-centric chess analysis.

Three pieces make up the pipeline:
- `from maiakit.predictor import MaiaPredictor` for rating-conditioned move
  probabilities and win probability from an ONNX network.
- `from maiakit.engine import SearchStreamer` for per-depth evaluations
  streamed from a UCI search engine.
- `from maiakit.describer import describe_position` for a deterministic
  prose summary combining both.

The board/policy codec lives in `maiakit.core.utils`.
"""

__version__ = "0.1.0"

from maiakit.core import load_config, save_config, setup_logging
from maiakit.describer import describe_position
from maiakit.engine import SearchStreamer
from maiakit.predictor import MaiaPredictor

__all__ = [
    "MaiaPredictor",
    "SearchStreamer",
    "__version__",
    "describe_position",
    "load_config",
    "save_config",
    "setup_logging",
]
