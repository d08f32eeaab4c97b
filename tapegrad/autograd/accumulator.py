"""
tapegrad Autograd - Backward Accumulator
========================================

Reverse-mode pass over a filtered node list.

Gradients are kept in a GradientAccumulationMap keyed by TensorId. When a
tensor feeds several consumers its contributions are summed with the
backend's `add`, which is never recorded, and the buffer being replaced is
disposed at once.

Local gradient functions are free to return the same tensor for several
roles (addition hands `dy` to both operands), so the map counts how many
slots hold each gradient buffer and only disposes a buffer once no slot
refers to it. A node's contributions count as held until all of its roles
have been stored.
"""

from __future__ import annotations
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.backend import Backend
from ..core.storage import TensorCore, TensorId
from ..errors import GradientInvariantError, MissingGradientFunctionError
from .node import RecordedOperationNode

logger = logging.getLogger(__name__)


class GradientAccumulationMap:
    """TensorId -> accumulated gradient, owned by a single backward pass."""

    def __init__(self, backend: Backend):
        self.backend = backend
        self._slots: Dict[TensorId, TensorCore] = {}
        # gradient tensor id -> number of slots holding it
        self._holders: Counter = Counter()

    def __contains__(self, tensor_id: TensorId) -> bool:
        return tensor_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, tensor_id: TensorId) -> Optional[TensorCore]:
        return self._slots.get(tensor_id)

    def seed(self, tensor_id: TensorId, grad: TensorCore):
        self._put(tensor_id, grad)

    def _put(self, tensor_id: TensorId, grad: TensorCore):
        self._slots[tensor_id] = grad
        self._holders[grad.id] += 1

    def _drop(self, grad: TensorCore):
        self._holders[grad.id] -= 1
        if self._holders[grad.id] <= 0:
            del self._holders[grad.id]
            grad.dispose()

    def accumulate(self, tensor_id: TensorId, grad: TensorCore):
        """Add `grad` into the slot for `tensor_id`.

        The contribution itself is not disposed here; `accumulate_all`
        settles it once every role of the node has been stored.
        """
        current = self._slots.get(tensor_id)
        if current is None:
            self._put(tensor_id, grad)
            return
        total = self.backend.add(current, grad)
        self._drop(current)
        self._put(tensor_id, total)

    def accumulate_all(self, contributions: Sequence[Tuple[TensorId, TensorCore]]):
        """Accumulate one node's contributions, taking ownership of them.

        Each distinct contribution is pinned while the node is processed,
        so a buffer returned for several roles stays alive until all of
        them are stored. A contribution that ends up in no slot is
        disposed afterwards.
        """
        pending = {grad.id: grad for _, grad in contributions}
        for grad in pending.values():
            self._holders[grad.id] += 1
        try:
            for tensor_id, grad in contributions:
                self.accumulate(tensor_id, grad)
        finally:
            for grad in pending.values():
                self._drop(grad)

    def extract(self, tensor_ids: Sequence[TensorId]) -> List[Optional[TensorCore]]:
        """Final gradients for `tensor_ids`; their ownership moves to the caller.

        Each returned tensor is distinct, so the caller can dispose them
        independently even when two sources shared one gradient buffer.
        """
        result = []
        handed_out = set()
        for tid in tensor_ids:
            grad = self._slots.get(tid)
            if grad is not None:
                if grad.id in handed_out:
                    grad = grad.clone()
                handed_out.add(grad.id)
            result.append(grad)
        return result

    def release(self, keep: Sequence[Optional[TensorCore]] = ()):
        """Dispose every held buffer except those in `keep`."""
        kept = {g.id for g in keep if g is not None}
        for grad in {g.id: g for g in self._slots.values()}.values():
            if grad.id not in kept:
                grad.dispose()
        self._slots.clear()
        self._holders.clear()


def backward(
    nodes: Sequence[RecordedOperationNode],
    target: TensorCore,
    sources: Sequence[TensorId],
    backend: Backend,
    seed: Optional[TensorCore] = None,
    dispose_intermediate: bool = True,
) -> List[Optional[TensorCore]]:
    """
    Walk `nodes` (already filtered, forward order) in reverse.

    Parameters
    ----------
    nodes : filtered recorded nodes connecting the sources to `target`
    target : the tensor being differentiated
    sources : ids to report gradients for, in the caller's order
    backend : numeric backend used for the off-tape sums
    seed : gradient of the target; defaults to ones shaped like the target

    Returns
    -------
    One entry per source: its gradient, or None when no path reaches it.
    """
    grads = GradientAccumulationMap(backend)
    grads.seed(target.id, seed if seed is not None else backend.ones_like(target))

    # contributions of the node in flight, not yet owned by the map
    in_flight: List[TensorCore] = []
    try:
        for node in reversed(nodes):
            dy = grads.get(node.output_id)
            if dy is None:
                raise GradientInvariantError(
                    f"No accumulated gradient for output {node.output_id} of {node.name}"
                )
            if node.gradient is None:
                raise MissingGradientFunctionError(node.name)

            input_grads = node.gradient(dy, node.output)
            logger.debug("backward: %r -> roles %s", node, sorted(input_grads))

            in_flight = [g for g in input_grads.values() if g is not None]
            contributions = [
                (node.input_id(role), grad)
                for role, grad in input_grads.items()
                if grad is not None
            ]
            grads.accumulate_all(contributions)
            in_flight = []

        result = grads.extract(sources)
    except Exception:
        grads.release()
        for grad in in_flight:
            grad.dispose()
        raise

    if dispose_intermediate:
        grads.release(keep=result)
    return result
