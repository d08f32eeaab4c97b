"""
tapegrad Numeric Backend
========================

Kernels that compute on TensorCore values directly. Nothing here touches
the tape: the forward layer in `tapegrad.ops` records what it runs, and the
backward pass calls these kernels straight, so gradient arithmetic never
grows the tape.

Usage:
    from tapegrad.core.backend import get_backend

    backend = get_backend()
    z = backend.add(x, y)
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional, Tuple, Union

import numpy as np

from .storage import TensorCore, DType, _create_tensor, fill_like as _fill_like


Axis = Optional[Union[int, Tuple[int, ...]]]


class Backend(ABC):
    """Numeric capabilities the autograd core depends on."""

    name = "abstract"

    @abstractmethod
    def add(self, a: TensorCore, b: TensorCore) -> TensorCore:
        ...

    @abstractmethod
    def fill_like(self, x: TensorCore, value) -> TensorCore:
        ...

    def ones_like(self, x: TensorCore) -> TensorCore:
        return self.fill_like(x, 1)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class NumpyBackend(Backend):
    """CPU backend on top of NumPy."""

    name = "numpy"

    @staticmethod
    def _wrap(arr, like: Optional[TensorCore] = None) -> TensorCore:
        arr = np.asarray(arr)
        dtype = DType.from_numpy(arr.dtype)
        if like is not None and like.dtype.is_floating and dtype.is_floating:
            dtype = like.dtype
        return _create_tensor(arr, dtype=dtype)

    def fill_like(self, x: TensorCore, value) -> TensorCore:
        return _fill_like(x, value)

    # elementwise binary

    def add(self, a: TensorCore, b: TensorCore) -> TensorCore:
        return self._wrap(a.numpy() + b.numpy(), a)

    def sub(self, a: TensorCore, b: TensorCore) -> TensorCore:
        return self._wrap(a.numpy() - b.numpy(), a)

    def mul(self, a: TensorCore, b: TensorCore) -> TensorCore:
        return self._wrap(a.numpy() * b.numpy(), a)

    def div(self, a: TensorCore, b: TensorCore) -> TensorCore:
        return self._wrap(a.numpy() / b.numpy(), a)

    def pow(self, a: TensorCore, exponent: float) -> TensorCore:
        return self._wrap(np.power(a.numpy(), exponent), a)

    # elementwise unary

    def neg(self, a: TensorCore) -> TensorCore:
        return self._wrap(-a.numpy(), a)

    def exp(self, a: TensorCore) -> TensorCore:
        return self._wrap(np.exp(a.numpy()), a)

    def log(self, a: TensorCore) -> TensorCore:
        return self._wrap(np.log(a.numpy()), a)

    def sqrt(self, a: TensorCore) -> TensorCore:
        return self._wrap(np.sqrt(a.numpy()), a)

    def relu(self, a: TensorCore) -> TensorCore:
        x = a.numpy()
        return self._wrap(np.maximum(x, 0).astype(x.dtype), a)

    def step(self, a: TensorCore) -> TensorCore:
        x = a.numpy()
        return self._wrap((x > 0).astype(x.dtype), a)

    # linear algebra and reductions

    def matmul(self, a: TensorCore, b: TensorCore) -> TensorCore:
        return self._wrap(a.numpy() @ b.numpy(), a)

    def transpose(self, a: TensorCore) -> TensorCore:
        return self._wrap(np.swapaxes(a.numpy(), -2, -1).copy(), a)

    def sum(self, a: TensorCore, axis: Axis = None, keepdims: bool = False) -> TensorCore:
        return self._wrap(np.sum(a.numpy(), axis=axis, keepdims=keepdims), a)

    def mean(self, a: TensorCore, axis: Axis = None, keepdims: bool = False) -> TensorCore:
        return self._wrap(np.mean(a.numpy(), axis=axis, keepdims=keepdims), a)

    def argmax(self, a: TensorCore, axis: Optional[int] = None) -> TensorCore:
        return self._wrap(np.argmax(a.numpy(), axis=axis))

    def broadcast_to(self, a: TensorCore, shape: Tuple[int, ...]) -> TensorCore:
        return self._wrap(np.broadcast_to(a.numpy(), shape).copy(), a)

    def unbroadcast(self, grad: TensorCore, shape: Tuple[int, ...]) -> TensorCore:
        """Sum `grad` down to `shape`, undoing numpy broadcasting."""
        g = grad.numpy()
        if g.shape == tuple(shape):
            return grad
        while g.ndim > len(shape):
            g = g.sum(axis=0)
        for i, dim in enumerate(shape):
            if dim == 1 and g.shape[i] != 1:
                g = g.sum(axis=i, keepdims=True)
        return self._wrap(g.reshape(shape), grad)


_backend: Backend = NumpyBackend()


def get_backend() -> Backend:
    return _backend


def set_backend(backend: Backend) -> Backend:
    """Install `backend` as the default; returns the previous one."""
    global _backend
    if not isinstance(backend, Backend):
        raise TypeError(f"Expected a Backend, got {type(backend)}")
    previous = _backend
    _backend = backend
    return previous
