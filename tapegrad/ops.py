"""
tapegrad Operations
===================

The forward-execution layer. Each function computes its result with the
numeric backend and, when a Tape is active, records a node carrying the
matching local gradient function.

Example:
    >>> import tapegrad as tg
    >>> a, b = tg.tensor([1.0, 2.0]), tg.tensor([3.0, 4.0])
    >>> with tg.Tape() as tape:
    ...     z = tg.add(tg.mul(a, b), a)
    >>> da, db = tape.gradient_wrt(tg.sum(z), [a, b])   # doctest: +SKIP
"""

from __future__ import annotations
from typing import Optional, Sequence, Tuple, Union

from .autograd import grad_fn as G
from .autograd.node import LocalGradientFn, RecordedOperationNode
from .autograd.tape import Tape
from .core.backend import Backend, get_backend
from .core.storage import TensorCore, _create_tensor

Operand = Union[TensorCore, float, int]


def _backend() -> Backend:
    tape = Tape.current()
    if tape is not None and tape.backend is not None:
        return tape.backend
    return get_backend()


def _as_tensor(x: Operand, like: Optional[TensorCore] = None) -> TensorCore:
    if isinstance(x, TensorCore):
        return x
    dtype = like.dtype if like is not None and like.dtype.is_floating else None
    return _create_tensor(x, dtype=dtype)


def record(
    name: str,
    inputs: Sequence[Tuple[str, TensorCore]],
    output: TensorCore,
    gradient: Optional[LocalGradientFn] = None,
) -> TensorCore:
    """Append a node for `output` to the active tape, if any, and return `output`."""
    tape = Tape.current()
    if tape is not None:
        tape.append(RecordedOperationNode(name, tuple(inputs), output, gradient))
    return output


def _binary(a: Operand, b: Operand):
    if not isinstance(a, TensorCore) and isinstance(b, TensorCore):
        return _as_tensor(a, b), b
    a = _as_tensor(a)
    return a, _as_tensor(b, a)


def add(a: Operand, b: Operand) -> TensorCore:
    a, b = _binary(a, b)
    be = _backend()
    return record('add', (('a', a), ('b', b)), be.add(a, b), G.AddBackward(a, b, backend=be))


def sub(a: Operand, b: Operand) -> TensorCore:
    a, b = _binary(a, b)
    be = _backend()
    return record('sub', (('a', a), ('b', b)), be.sub(a, b), G.SubBackward(a, b, backend=be))


def mul(a: Operand, b: Operand) -> TensorCore:
    a, b = _binary(a, b)
    be = _backend()
    return record('mul', (('a', a), ('b', b)), be.mul(a, b), G.MulBackward(a, b, backend=be))


def div(a: Operand, b: Operand) -> TensorCore:
    a, b = _binary(a, b)
    be = _backend()
    return record('div', (('a', a), ('b', b)), be.div(a, b), G.DivBackward(a, b, backend=be))


def matmul(a: TensorCore, b: TensorCore) -> TensorCore:
    """Matrix product of two tensors with at least two dimensions."""
    if a.ndim < 2 or b.ndim < 2:
        raise ValueError(f"matmul needs 2-D or batched operands, got {a.shape} and {b.shape}")
    be = _backend()
    return record('matmul', (('a', a), ('b', b)), be.matmul(a, b), G.MatMulBackward(a, b, backend=be))


def neg(x: TensorCore) -> TensorCore:
    be = _backend()
    return record('neg', (('x', x),), be.neg(x), G.NegBackward(backend=be))


def exp(x: TensorCore) -> TensorCore:
    be = _backend()
    return record('exp', (('x', x),), be.exp(x), G.ExpBackward(backend=be))


def log(x: TensorCore) -> TensorCore:
    be = _backend()
    return record('log', (('x', x),), be.log(x), G.LogBackward(x, backend=be))


def sqrt(x: TensorCore) -> TensorCore:
    be = _backend()
    return record('sqrt', (('x', x),), be.sqrt(x), G.SqrtBackward(backend=be))


def pow(x: TensorCore, exponent: float) -> TensorCore:
    be = _backend()
    return record('pow', (('x', x),), be.pow(x, exponent), G.PowBackward(x, exponent, backend=be))


def relu(x: TensorCore) -> TensorCore:
    be = _backend()
    return record('relu', (('x', x),), be.relu(x), G.ReluBackward(x, backend=be))


def transpose(x: TensorCore) -> TensorCore:
    be = _backend()
    return record('transpose', (('x', x),), be.transpose(x), G.TransposeBackward(backend=be))


def sum(x: TensorCore, axis=None, keepdims: bool = False) -> TensorCore:
    be = _backend()
    out = be.sum(x, axis=axis, keepdims=keepdims)
    return record('sum', (('x', x),), out, G.SumBackward(x, axis, keepdims, backend=be))


def mean(x: TensorCore, axis=None, keepdims: bool = False) -> TensorCore:
    be = _backend()
    out = be.mean(x, axis=axis, keepdims=keepdims)
    return record('mean', (('x', x),), out, G.MeanBackward(x, axis, keepdims, backend=be))


# Non-differentiable operations: recorded without a gradient function.

def step(x: TensorCore) -> TensorCore:
    """1 where x > 0, else 0."""
    return record('step', (('x', x),), _backend().step(x))


def argmax(x: TensorCore, axis: Optional[int] = None) -> TensorCore:
    return record('argmax', (('x', x),), _backend().argmax(x, axis=axis))
