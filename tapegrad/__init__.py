"""
tapegrad: Tape-Based Reverse-Mode Autodiff
==========================================

A small tensor library whose core is the operation tape. Every operation
executed while a Tape is active is recorded; `Tape.gradient_wrt` walks the
part of the record that connects the requested inputs to the target and
returns one gradient per input.

Example:
    >>> import tapegrad as tg
    >>> a = tg.tensor([1.0, 2.0])
    >>> b = tg.tensor([3.0, 4.0])
    >>> with tg.Tape() as tape:
    ...     y = tg.mul(a, b)
    ...     z = tg.add(y, a)
    >>> da, db = tape.gradient_wrt(z, [a, b])
    >>> da.numpy()   # b + 1
    array([4., 5.], dtype=float32)
"""

__version__ = "0.1.0"

# Core types
from .core import (
    TensorId,
    Device,
    DType,
    Storage,
    TensorCore,
    Backend,
    NumpyBackend,
    get_backend,
    set_backend,
    float32,
    float64,
    int32,
    int64,
    zeros,
    ones,
    full,
    fill_like,
    scalar,
    randn,
    rand,
    tensor,
    from_numpy,
)

# Autograd
from .autograd import (
    RecordedOperationNode,
    Tape,
    GradientAccumulationMap,
    filter_nodes_x_to_y,
    GradFn,
)

# Operations
from .ops import (
    record,
    add,
    sub,
    mul,
    div,
    neg,
    exp,
    log,
    sqrt,
    pow,
    relu,
    matmul,
    transpose,
    sum,
    mean,
    step,
    argmax,
)

from .errors import (
    TapeError,
    NotOnTapeError,
    MissingGradientFunctionError,
    DuplicateOutputError,
    GradientInvariantError,
    DisposedError,
    GradientCheckError,
)
from .config import Config, get_config, set_config
from .logger import get_logger
from .gradcheck import check_gradients

get_logger()
