"""Finite-difference checks for recorded gradients."""

from __future__ import annotations
import logging
from typing import Callable, Sequence

import numpy as np

from .autograd.tape import Tape
from .core.storage import TensorCore
from .errors import GradientCheckError

logger = logging.getLogger(__name__)


def _evaluate(func: Callable[..., TensorCore], inputs: Sequence[TensorCore]) -> float:
    # a throwaway tape keeps probes off any tape the caller has open
    with Tape():
        out = func(*inputs)
    value = float(out.numpy().sum())
    out.dispose()
    return value


def check_gradients(
    func: Callable[..., TensorCore],
    inputs: Sequence[TensorCore],
    eps: float = 1e-6,
    atol: float = 1e-5,
    rtol: float = 1e-3,
) -> bool:
    """
    Compare tape gradients against central finite differences.

    `func` maps the input tensors to a scalar tensor using tapegrad ops.
    Inputs should be float64 for the default tolerances to hold.

    Raises
    ------
    GradientCheckError
        If any analytical gradient differs from its numerical estimate.
    """
    with Tape() as tape:
        output = func(*inputs)
    if output.numel != 1:
        raise ValueError(f"check_gradients needs a scalar output, got shape {output.shape}")

    analytical = tape.gradient_wrt(output, list(inputs))

    for i, (inp, grad) in enumerate(zip(inputs, analytical)):
        if grad is None:
            logger.debug("check_gradients: input %d is disconnected, skipped", i)
            continue

        buf = inp.storage.numpy()
        numerical = np.zeros(inp.shape, dtype=np.float64)
        for j in range(buf.size):
            original = buf[j]

            buf[j] = original + eps
            f_plus = _evaluate(func, inputs)
            buf[j] = original - eps
            f_minus = _evaluate(func, inputs)
            buf[j] = original

            numerical.flat[j] = (f_plus - f_minus) / (2 * eps)

        got = grad.numpy()
        if not np.allclose(got, numerical, atol=atol, rtol=rtol):
            raise GradientCheckError(
                f"Gradient check failed for input {i}:\n"
                f"  Analytical: {got}\n"
                f"  Numerical:  {numerical}\n"
                f"  Diff:       {got - numerical}"
            )

    for grad in analytical:
        if grad is not None:
            grad.dispose()
    return True
