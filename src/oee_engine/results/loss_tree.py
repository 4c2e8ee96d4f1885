"""Loss tree traversal — walking, searching and checking the hierarchical loss breakdown.

Trees from the service can be deep (reason codes nest arbitrarily), so
traversal uses an explicit stack instead of recursion.
"""

from __future__ import annotations

from typing import Iterator, Optional

from oee_engine.results.models import LossTree, LossTreeNode

DEFAULT_TOLERANCE_SECONDS = 1.0


def _root_of(tree: LossTree | LossTreeNode) -> LossTreeNode:
    return tree.root if isinstance(tree, LossTree) else tree


def iter_nodes(tree: LossTree | LossTreeNode) -> Iterator[tuple[int, LossTreeNode]]:
    """Yield ``(depth, node)`` pairs in pre-order, children left to right."""
    stack: list[tuple[int, LossTreeNode]] = [(0, _root_of(tree))]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        for child in reversed(node.children):
            stack.append((depth + 1, child))


def find_node(tree: LossTree | LossTreeNode, category_key: str) -> Optional[LossTreeNode]:
    """First node (pre-order) whose category_key matches, or None."""
    for _, node in iter_nodes(tree):
        if node.category_key == category_key:
            return node
    return None


def leaf_nodes(tree: LossTree | LossTreeNode) -> list[LossTreeNode]:
    return [node for _, node in iter_nodes(tree) if not node.children]


def partition_violations(
    tree: LossTree | LossTreeNode,
    tolerance: float = DEFAULT_TOLERANCE_SECONDS,
) -> list[tuple[LossTreeNode, float]]:
    """Nodes whose children's durations add up to more than their own.

    Children may leave part of a node unaccounted for (the service's root is
    planned time with only the loss buckets beneath it), but never exceed it.

    Returns:
        List of ``(node, children_sum - node.duration)`` for every non-leaf
        node where the children overrun it by more than *tolerance* seconds.
    """
    violations: list[tuple[LossTreeNode, float]] = []
    for _, node in iter_nodes(tree):
        if not node.children:
            continue
        difference = sum(child.duration for child in node.children) - node.duration
        if difference > tolerance:
            violations.append((node, difference))
    return violations


def is_partition(tree: LossTree | LossTreeNode, tolerance: float = DEFAULT_TOLERANCE_SECONDS) -> bool:
    return not partition_violations(tree, tolerance)
