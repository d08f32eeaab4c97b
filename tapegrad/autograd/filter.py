"""
tapegrad Autograd - Subgraph Filter
===================================

Selects the recorded nodes that lie on some path from a source tensor to
the target, in forward order. Everything else on the tape is skipped by the
backward pass: side branches that do not descend from a source, and dead
ends that never reach the target.
"""

from __future__ import annotations
import logging
from typing import Iterable, List, Sequence, Set

from ..core.storage import TensorId
from .node import RecordedOperationNode

logger = logging.getLogger(__name__)


def _reachable_from_sources(
    nodes: Sequence[RecordedOperationNode],
    sources: Set[TensorId],
) -> List[bool]:
    """Forward sweep: a node is reachable if any input is a source or a reachable output."""
    reached: Set[TensorId] = set(sources)
    marks = [False] * len(nodes)
    for i, node in enumerate(nodes):
        if any(tid in reached for _, tid in node.input_ids):
            marks[i] = True
            reached.add(node.output_id)
    return marks


def _leads_to_target(
    nodes: Sequence[RecordedOperationNode],
    forward_marks: List[bool],
    target: TensorId,
) -> List[bool]:
    """Backward sweep over forward-reachable nodes, starting at the target's producer."""
    needed: Set[TensorId] = {target}
    marks = [False] * len(nodes)
    for i in range(len(nodes) - 1, -1, -1):
        if not forward_marks[i]:
            continue
        node = nodes[i]
        if node.output_id in needed:
            marks[i] = True
            needed.update(tid for _, tid in node.input_ids)
    return marks


def filter_nodes_x_to_y(
    nodes: Sequence[RecordedOperationNode],
    sources: Iterable[TensorId],
    target: TensorId,
) -> List[RecordedOperationNode]:
    """
    Nodes connecting any of `sources` to `target`, in original order.

    Returns an empty list when the target has no producer among `nodes`
    or cannot be reached from any source.
    """
    sources = set(sources)
    forward_marks = _reachable_from_sources(nodes, sources)
    backward_marks = _leads_to_target(nodes, forward_marks, target)

    filtered = [node for node, keep in zip(nodes, backward_marks) if keep]
    logger.debug(
        "filter: %d of %d nodes connect %d source(s) to tensor %s",
        len(filtered), len(nodes), len(sources), target,
    )
    return filtered
