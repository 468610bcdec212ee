"""Rating-conditioned move/value predictor."""

from maiakit.predictor.errors import (
    ModelOutputError,
    PredictorError,
    PredictorNotReadyError,
    UnsupportedModelSchemaError,
)
from maiakit.predictor.outputs import OutputBinding, resolve_output_binding
from maiakit.predictor.predictor import (
    BatchEvaluation,
    MaiaEvaluation,
    MaiaPredictor,
    PredictorStatus,
    onnx_session_factory,
)

__all__ = [
    "BatchEvaluation",
    "MaiaEvaluation",
    "MaiaPredictor",
    "ModelOutputError",
    "OutputBinding",
    "PredictorError",
    "PredictorNotReadyError",
    "PredictorStatus",
    "UnsupportedModelSchemaError",
    "onnx_session_factory",
    "resolve_output_binding",
]
