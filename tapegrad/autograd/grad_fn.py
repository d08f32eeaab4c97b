"""
tapegrad Autograd - Gradient Functions
======================================

Local gradient functions for the built-in operations.

Each GradFn is callable as ``fn(dy, y)`` and returns a dict mapping input
role to the gradient for that input. All arithmetic goes through the
backend so nothing here is recorded on a tape.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..core.backend import Backend, get_backend
from ..core.storage import TensorCore


@dataclass
class SavedContext:
    """
    Tensors and metadata saved during the forward pass for the backward pass.
    """
    tensors: Dict[str, TensorCore] = field(default_factory=dict)
    scalars: Dict[str, Any] = field(default_factory=dict)

    def save_for_backward(self, **kwargs):
        for k, v in kwargs.items():
            if isinstance(v, TensorCore):
                self.tensors[k] = v
            else:
                self.scalars[k] = v


class GradFn(ABC):
    """
    Base class for local gradient functions.

    Subclasses implement `apply`; the constructor keyword arguments are
    saved on `ctx` for the backward pass.
    """

    def __init__(self, backend: Optional[Backend] = None, **saved):
        self.backend = backend if backend is not None else get_backend()
        self.ctx = SavedContext()
        self.ctx.save_for_backward(**saved)

    @abstractmethod
    def apply(self, dy: TensorCore, y: TensorCore) -> Dict[str, TensorCore]:
        """
        Compute gradients w.r.t. inputs given the gradient of the output.

        Parameters
        ----------
        dy : gradient flowing into this operation's output
        y : the output value of the operation

        Returns
        -------
        Dict of role -> gradient, each shaped like the matching input
        """
        ...

    def __call__(self, dy: TensorCore, y: TensorCore) -> Dict[str, TensorCore]:
        return self.apply(dy, y)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class AddBackward(GradFn):
    """Backward for addition: y = a + b"""

    def __init__(self, a: TensorCore, b: TensorCore, backend: Optional[Backend] = None):
        super().__init__(backend, a_shape=a.shape, b_shape=b.shape)

    def apply(self, dy, y):
        s = self.ctx.scalars
        return {
            'a': self.backend.unbroadcast(dy, s['a_shape']),
            'b': self.backend.unbroadcast(dy, s['b_shape']),
        }


class SubBackward(GradFn):
    """Backward for subtraction: y = a - b"""

    def __init__(self, a: TensorCore, b: TensorCore, backend: Optional[Backend] = None):
        super().__init__(backend, a_shape=a.shape, b_shape=b.shape)

    def apply(self, dy, y):
        s = self.ctx.scalars
        neg = self.backend.neg(dy)
        grad_b = self.backend.unbroadcast(neg, s['b_shape'])
        if grad_b is not neg:
            neg.dispose()
        return {
            'a': self.backend.unbroadcast(dy, s['a_shape']),
            'b': grad_b,
        }


class MulBackward(GradFn):
    """Backward for multiplication: y = a * b"""

    def __init__(self, a: TensorCore, b: TensorCore, backend: Optional[Backend] = None):
        super().__init__(backend, a=a, b=b)

    def apply(self, dy, y):
        a = self.ctx.tensors['a']
        b = self.ctx.tensors['b']
        # ∂L/∂a = ∂L/∂y * b, ∂L/∂b = ∂L/∂y * a
        return {
            'a': _reduced(self.backend, self.backend.mul(dy, b), a.shape),
            'b': _reduced(self.backend, self.backend.mul(dy, a), b.shape),
        }


class DivBackward(GradFn):
    """Backward for division: y = a / b"""

    def __init__(self, a: TensorCore, b: TensorCore, backend: Optional[Backend] = None):
        super().__init__(backend, a=a, b=b)

    def apply(self, dy, y):
        be = self.backend
        a = self.ctx.tensors['a']
        b = self.ctx.tensors['b']
        # ∂L/∂a = ∂L/∂y / b, ∂L/∂b = -∂L/∂y * y / b
        grad_a = _reduced(be, be.div(dy, b), a.shape)
        scaled = be.div(y, b)
        prod = be.mul(dy, scaled)
        scaled.dispose()
        grad_b = be.neg(prod)
        prod.dispose()
        return {'a': grad_a, 'b': _reduced(be, grad_b, b.shape)}


class NegBackward(GradFn):
    """Backward for negation: y = -x"""

    def apply(self, dy, y):
        return {'x': self.backend.neg(dy)}


class ExpBackward(GradFn):
    """Backward for exp: y = exp(x)"""

    def apply(self, dy, y):
        # ∂exp(x)/∂x = exp(x) = y
        return {'x': self.backend.mul(dy, y)}


class LogBackward(GradFn):
    """Backward for log: y = log(x)"""

    def __init__(self, x: TensorCore, backend: Optional[Backend] = None):
        super().__init__(backend, x=x)

    def apply(self, dy, y):
        return {'x': self.backend.div(dy, self.ctx.tensors['x'])}


class SqrtBackward(GradFn):
    """Backward for sqrt: y = sqrt(x)"""

    def apply(self, dy, y):
        # ∂sqrt(x)/∂x = 1 / (2 sqrt(x))
        be = self.backend
        two = be.fill_like(y, 2)
        denom = be.mul(two, y)
        two.dispose()
        grad = be.div(dy, denom)
        denom.dispose()
        return {'x': grad}


class PowBackward(GradFn):
    """Backward for power: y = x ** n"""

    def __init__(self, x: TensorCore, exponent: float, backend: Optional[Backend] = None):
        super().__init__(backend, x=x, exponent=exponent)

    def apply(self, dy, y):
        be = self.backend
        x = self.ctx.tensors['x']
        n = self.ctx.scalars['exponent']
        # ∂(x^n)/∂x = n * x^(n-1)
        lowered = be.pow(x, n - 1)
        factor = be.fill_like(x, n)
        local = be.mul(factor, lowered)
        factor.dispose()
        lowered.dispose()
        grad = be.mul(dy, local)
        local.dispose()
        return {'x': grad}


class ReluBackward(GradFn):
    """Backward for relu: y = max(x, 0)"""

    def __init__(self, x: TensorCore, backend: Optional[Backend] = None):
        super().__init__(backend, x=x)

    def apply(self, dy, y):
        mask = self.backend.step(self.ctx.tensors['x'])
        grad = self.backend.mul(dy, mask)
        mask.dispose()
        return {'x': grad}


class MatMulBackward(GradFn):
    """Backward for matrix multiplication: y = a @ b"""

    def __init__(self, a: TensorCore, b: TensorCore, backend: Optional[Backend] = None):
        super().__init__(backend, a=a, b=b)

    def apply(self, dy, y):
        be = self.backend
        a = self.ctx.tensors['a']
        b = self.ctx.tensors['b']
        # ∂L/∂a = ∂L/∂y @ b^T
        # ∂L/∂b = a^T @ ∂L/∂y
        b_t = be.transpose(b)
        a_t = be.transpose(a)
        grads = {'a': be.matmul(dy, b_t), 'b': be.matmul(a_t, dy)}
        b_t.dispose()
        a_t.dispose()
        return grads


class TransposeBackward(GradFn):
    """Backward for transpose of the last two axes."""

    def apply(self, dy, y):
        return {'x': self.backend.transpose(dy)}


class SumBackward(GradFn):
    """Backward for sum: y = sum(x, axis)"""

    def __init__(self, x: TensorCore, axis=None, keepdims: bool = False,
                 backend: Optional[Backend] = None):
        super().__init__(backend, shape=x.shape, axis=axis, keepdims=keepdims)

    def apply(self, dy, y):
        s = self.ctx.scalars
        # Gradient broadcasts back to input shape
        expanded = _expand_reduced(dy, s['shape'], s['axis'], s['keepdims'])
        grad = self.backend.broadcast_to(expanded, s['shape'])
        if expanded is not dy:
            expanded.dispose()
        return {'x': grad}


class MeanBackward(GradFn):
    """Backward for mean: y = mean(x, axis)"""

    def __init__(self, x: TensorCore, axis=None, keepdims: bool = False,
                 backend: Optional[Backend] = None):
        super().__init__(backend, shape=x.shape, axis=axis, keepdims=keepdims)

    def apply(self, dy, y):
        be = self.backend
        s = self.ctx.scalars
        shape, axis = s['shape'], s['axis']
        n = 1
        for ax in _axes(axis, len(shape)):
            n *= shape[ax]

        expanded = _expand_reduced(dy, shape, axis, s['keepdims'])
        spread = be.broadcast_to(expanded, shape)
        if expanded is not dy:
            expanded.dispose()
        scale = be.fill_like(spread, 1.0 / n)
        grad = be.mul(spread, scale)
        spread.dispose()
        scale.dispose()
        return {'x': grad}


def _axes(axis, ndim: int) -> Tuple[int, ...]:
    if axis is None:
        return tuple(range(ndim))
    if isinstance(axis, int):
        axis = (axis,)
    return tuple(a % ndim for a in axis)


def _expand_reduced(dy: TensorCore, shape, axis, keepdims: bool) -> TensorCore:
    """Reinsert reduced axes as size 1 so `dy` broadcasts against `shape`."""
    if keepdims or axis is None:
        return dy
    kept = list(dy.shape)
    for ax in sorted(_axes(axis, len(shape))):
        kept.insert(ax, 1)
    return dy.view(*kept)


def _reduced(backend: Backend, grad: TensorCore, shape) -> TensorCore:
    out = backend.unbroadcast(grad, shape)
    if out is not grad:
        grad.dispose()
    return out
