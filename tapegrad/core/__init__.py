"""Core storage, tensor handles and numeric backends for tapegrad."""

from .storage import (
    TensorId,
    Device,
    DType,
    Storage,
    TensorCore,
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
from .backend import Backend, NumpyBackend, get_backend, set_backend

__all__ = [
    'TensorId',
    'Device',
    'DType',
    'Storage',
    'TensorCore',
    'float32',
    'float64',
    'int32',
    'int64',
    'zeros',
    'ones',
    'full',
    'fill_like',
    'scalar',
    'randn',
    'rand',
    'tensor',
    'from_numpy',
    'Backend',
    'NumpyBackend',
    'get_backend',
    'set_backend',
]
