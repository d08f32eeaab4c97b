"""
tapegrad Autograd - Recorded Operation Nodes
============================================

One node per executed operation: its name, its inputs by role, its single
output and the local gradient function for the chain-rule step.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..core.storage import TensorCore, TensorId


# (dy, y) -> {role: gradient w.r.t. the input filling that role}
LocalGradientFn = Callable[[TensorCore, TensorCore], Dict[str, TensorCore]]


@dataclass(frozen=True)
class RecordedOperationNode:
    """
    An immutable record of one executed operation.

    `inputs` is an ordered tuple of ``(role, tensor)`` pairs. `gradient`
    is None for operations that cannot be differentiated.
    """
    name: str
    inputs: Tuple[Tuple[str, TensorCore], ...]
    output: TensorCore
    gradient: Optional[LocalGradientFn] = None

    def __post_init__(self):
        roles = [role for role, _ in self.inputs]
        if len(set(roles)) != len(roles):
            raise ValueError(f"Duplicate input role in {self.name}: {roles}")

    @property
    def output_id(self) -> TensorId:
        return self.output.id

    @property
    def input_ids(self) -> Tuple[Tuple[str, TensorId], ...]:
        return tuple((role, t.id) for role, t in self.inputs)

    @property
    def differentiable(self) -> bool:
        return self.gradient is not None

    def input_id(self, role: str) -> TensorId:
        for name, t in self.inputs:
            if name == role:
                return t.id
        raise KeyError(f"{self.name} has no input role '{role}'")

    def __repr__(self) -> str:
        ins = ", ".join(f"{role}={tid}" for role, tid in self.input_ids)
        return f"{self.name}({ins}) -> {self.output_id}"
