"""
tapegrad Autograd Module
========================

Reverse-mode differentiation over a recorded operation tape.

Forward operations append RecordedOperationNodes to the active Tape. A
gradient request filters the tape down to the nodes connecting the
sources to the target, then walks them backwards, summing contributions
where a tensor feeds several consumers.
"""

from .node import RecordedOperationNode, LocalGradientFn
from .tape import Tape
from .filter import filter_nodes_x_to_y
from .accumulator import GradientAccumulationMap, backward
from .grad_fn import (
    GradFn,
    SavedContext,
    AddBackward,
    SubBackward,
    MulBackward,
    DivBackward,
    NegBackward,
    ExpBackward,
    LogBackward,
    SqrtBackward,
    PowBackward,
    ReluBackward,
    MatMulBackward,
    TransposeBackward,
    SumBackward,
    MeanBackward,
)

__all__ = [
    # Tape
    'RecordedOperationNode',
    'LocalGradientFn',
    'Tape',
    'filter_nodes_x_to_y',
    'GradientAccumulationMap',
    'backward',

    # Gradient functions
    'GradFn',
    'SavedContext',
    'AddBackward',
    'SubBackward',
    'MulBackward',
    'DivBackward',
    'NegBackward',
    'ExpBackward',
    'LogBackward',
    'SqrtBackward',
    'PowBackward',
    'ReluBackward',
    'MatMulBackward',
    'TransposeBackward',
    'SumBackward',
    'MeanBackward',
]
