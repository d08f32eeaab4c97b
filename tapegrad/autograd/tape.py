"""
tapegrad Autograd - Tape
========================

Append-only record of executed operations with reverse-mode gradients.

Usage:
    with Tape() as tape:
        y = tg.mul(a, b)
        z = tg.add(y, a)

    da, db = tape.gradient_wrt(z, [a, b])
"""

from __future__ import annotations
import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from ..config import get_config
from ..core.backend import Backend, get_backend
from ..core.storage import TensorCore, TensorId
from ..errors import DuplicateOutputError, NotOnTapeError
from .accumulator import backward
from .filter import filter_nodes_x_to_y
from .node import RecordedOperationNode

logger = logging.getLogger(__name__)

TensorOrId = Union[TensorCore, TensorId]


def _tensor_id(t: TensorOrId) -> TensorId:
    return t.id if isinstance(t, TensorCore) else t


class Tape:
    """
    Records operations for the backward pass.

    Nodes are kept in execution order together with an index from each
    output TensorId to the node that produced it. A tensor has at most one
    producer on a tape.
    """

    # stack of tapes entered with `with`, innermost last
    _active: List['Tape'] = []

    def __init__(self, backend: Optional[Backend] = None):
        self.backend = backend
        self._nodes: List[RecordedOperationNode] = []
        self._output_index: Dict[TensorId, RecordedOperationNode] = {}

    def __enter__(self) -> 'Tape':
        Tape._active.append(self)
        return self

    def __exit__(self, *args):
        # tolerate out-of-order exits of nested scopes
        for i in range(len(Tape._active) - 1, -1, -1):
            if Tape._active[i] is self:
                del Tape._active[i]
                break

    @staticmethod
    def current() -> Optional['Tape']:
        """The innermost tape entered with `with`, or None."""
        return Tape._active[-1] if Tape._active else None

    @property
    def nodes(self) -> Tuple[RecordedOperationNode, ...]:
        return tuple(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[RecordedOperationNode]:
        return iter(self._nodes)

    def __contains__(self, t: TensorOrId) -> bool:
        return _tensor_id(t) in self._output_index

    def __repr__(self) -> str:
        return f"Tape({len(self._nodes)} nodes)"

    def append(self, node: RecordedOperationNode):
        """Record an evaluated node."""
        if node.output_id in self._output_index:
            raise DuplicateOutputError(node.output_id, node.name)
        self._output_index[node.output_id] = node
        self._nodes.append(node)
        logger.debug("tape %x: recorded %r", id(self), node)

    add_evaluated_node = append

    def lookup_producer(self, t: TensorOrId) -> Optional[RecordedOperationNode]:
        return self._output_index.get(_tensor_id(t))

    def gradient_wrt(
        self,
        target: TensorOrId,
        sources: Sequence[TensorOrId],
        backend: Optional[Backend] = None,
        output_gradient: Optional[TensorCore] = None,
    ) -> List[Optional[TensorCore]]:
        """
        Gradients of `target` with respect to each of `sources`.

        Parameters
        ----------
        target : TensorCore or TensorId
            A tensor produced by a node on this tape.
        sources : sequence of TensorCore or TensorId
            Tensors to differentiate with respect to.
        backend : Backend, optional
            Numeric backend for gradient arithmetic; defaults to the
            tape's backend, then the process default.
        output_gradient : TensorCore, optional
            Seed gradient for the target; ones shaped like the target
            when omitted. Ownership moves to the backward pass.

        Returns
        -------
        One entry per source, in order: the gradient tensor, owned by the
        caller, or None when the target does not depend on that source.

        Raises
        ------
        NotOnTapeError
            `target` was not produced by any node on this tape.
        MissingGradientFunctionError
            A node between a source and the target has no gradient function.
        """
        if not isinstance(target, TensorCore):
            producer = self._output_index.get(target)
            if producer is None:
                raise NotOnTapeError(target)
            target = producer.output
        if target.id not in self._output_index:
            raise NotOnTapeError(target.id)

        if backend is None:
            backend = self.backend if self.backend is not None else get_backend()

        source_ids = [_tensor_id(s) for s in sources]
        filtered = filter_nodes_x_to_y(self._nodes, source_ids, target.id)
        logger.debug(
            "gradient_wrt: target %s, %d source(s), %d of %d nodes on path",
            target.id, len(source_ids), len(filtered), len(self._nodes),
        )

        return backward(
            filtered,
            target,
            source_ids,
            backend,
            seed=output_gradient,
            dispose_intermediate=get_config().dispose_intermediate_gradients,
        )
