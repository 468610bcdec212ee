"""Exceptions raised by the move/value predictor."""


class PredictorError(Exception):
    """Base class for predictor failures."""

    pass


class PredictorNotReadyError(PredictorError):
    """Raised when inference is requested before the model is loaded."""

    pass


class UnsupportedModelSchemaError(PredictorError):
    """Raised when the model's outputs cannot be mapped to a policy and a value head."""

    pass


class ModelOutputError(PredictorError):
    """Raised when an inference call returns tensors of an unexpected shape."""

    pass
