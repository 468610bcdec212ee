"""Resolution of model inputs and outputs.

Exported models do not always use the same tensor names, so the policy and
value outputs are bound once when the model is loaded:

1. Declared names are preferred (``logits_move``/``logits_maia``/``policy``
   for the move head, ``logits_value``/``value`` for the value head).
2. Otherwise the value head is the output whose trailing dimension is 3
   (loss, draw, win) and the move head is the largest remaining output.
3. Otherwise the model is rejected with ``UnsupportedModelSchemaError``.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np

from maiakit.core.utils.tokenizer import NUM_PLANES
from maiakit.predictor.errors import UnsupportedModelSchemaError

POLICY_OUTPUT_NAMES = ("logits_move", "logits_maia", "policy")
VALUE_OUTPUT_NAMES = ("logits_value", "value")

TOKENS_INPUT = "tokens"
ELO_SELF_INPUT = "self_elos"
ELO_OPPO_INPUT = "oppo_elos"


class TensorInfo(Protocol):
    """Input/output metadata as exposed by onnxruntime's ``NodeArg``."""

    name: str
    type: str
    shape: Sequence[Any]


@dataclass(frozen=True)
class OutputBinding:
    """Names of the policy and value outputs of a loaded model."""

    policy: str
    value: str

    @property
    def names(self) -> list[str]:
        return [self.policy, self.value]


def _static_size(shape: Sequence[Any]) -> int:
    """Element count with dynamic (symbolic or None) dims counted as 1."""
    return math.prod(d if isinstance(d, int) and d > 0 else 1 for d in shape)


def resolve_output_binding(outputs: Sequence[TensorInfo]) -> OutputBinding:
    """Bind the policy and value outputs of a model.

    Args:
        outputs: Output metadata of the inference session.

    Returns:
        The resolved OutputBinding.

    Raises:
        UnsupportedModelSchemaError: If no policy/value pair can be identified.
    """
    by_name = {o.name: o for o in outputs}

    policy = next((name for name in POLICY_OUTPUT_NAMES if name in by_name), None)
    value = next((name for name in VALUE_OUTPUT_NAMES if name in by_name), None)

    if value is None:
        value = next(
            (
                o.name
                for o in outputs
                if o.name != policy and len(o.shape) >= 1 and o.shape[-1] == 3
            ),
            None,
        )

    if policy is None:
        candidates = sorted(
            (o for o in outputs if o.name != value),
            key=lambda o: _static_size(o.shape),
            reverse=True,
        )
        policy = candidates[0].name if candidates else None

    if policy is None or value is None:
        names = ", ".join(by_name) or "<none>"
        raise UnsupportedModelSchemaError(f"Unsupported model schema; outputs: {names}")

    return OutputBinding(policy=policy, value=value)


def infer_history(inputs: Sequence[TensorInfo], default: int = 1) -> int:
    """Infer the history depth from a ``tokens`` input shaped ``(B, 64, 12 * history)``."""
    tokens = next((i for i in inputs if i.name == TOKENS_INPUT), None)
    if tokens is None or len(tokens.shape) != 3:
        return default

    dim = tokens.shape[2]
    if isinstance(dim, int) and dim > 0 and dim % NUM_PLANES == 0:
        return dim // NUM_PLANES
    return default


def elo_array(inputs: Sequence[TensorInfo], name: str, values: Sequence[float]) -> np.ndarray:
    """Build a rating input with the dtype the model declares (int64 by default)."""
    info = next((i for i in inputs if i.name == name), None)
    declared = info.type.lower() if info is not None else "tensor(int64)"
    if "float" in declared:
        return np.asarray(values, dtype=np.float32)
    return np.asarray([math.trunc(v) for v in values], dtype=np.int64)
