"""
Tree navigation over the canvas graph.

The graph is read as a forest rooted at the start node: a node's children are
the targets of its outgoing edges sorted by vertical position, and its parent
is the source of its first incoming edge in edge order. `next` walks the
forest in depth-first pre-order and `prev` walks it backwards.

Every walk keeps a visited set, so hand-wired cycles end the walk instead of
looping.
"""

from typing import Iterable, Literal, Optional

from canvas.models.graph import Edge
from canvas.models.node import Node

Direction = Literal["prev", "next"]


class GraphIndex:
    """Parent and sorted-children lookups derived from one graph state."""

    def __init__(self, nodes: Iterable[Node], edges: Iterable[Edge]):
        positions = {node.id: node.position for node in nodes}
        self._parent_of: dict[str, str] = {}
        children: dict[str, list[str]] = {}

        for edge in edges:
            if edge.source not in positions or edge.target not in positions:
                continue
            # Multi-parent nodes keep the first parent found in edge order
            self._parent_of.setdefault(edge.target, edge.source)
            targets = children.setdefault(edge.source, [])
            if edge.target not in targets:
                targets.append(edge.target)

        # sorted() is stable, so equal y values keep edge order
        self._children_of = {
            source: sorted(targets, key=lambda t: positions[t].y)
            for source, targets in children.items()
        }

    def parent(self, node_id: str) -> Optional[str]:
        return self._parent_of.get(node_id)

    def children(self, node_id: str) -> list[str]:
        return list(self._children_of.get(node_id, []))


def next_target(index: GraphIndex, node_id: str) -> Optional[str]:
    """Pre-order successor: first child, else the next sibling of the nearest ancestor that has one."""
    children = index.children(node_id)
    if children:
        return children[0]

    current = node_id
    visited = {node_id}
    while True:
        parent = index.parent(current)
        if parent is None or parent in visited:
            return None
        siblings = index.children(parent)
        position = siblings.index(current)
        if position < len(siblings) - 1:
            return siblings[position + 1]
        visited.add(parent)
        current = parent


def prev_target(index: GraphIndex, node_id: str) -> Optional[str]:
    """Pre-order predecessor: the parent for a first child, else the previous sibling's last descendant."""
    parent = index.parent(node_id)
    if parent is None:
        return None
    siblings = index.children(parent)
    position = siblings.index(node_id)
    if position == 0:
        return parent
    return _last_descendant(index, siblings[position - 1], exclude=node_id)


def _last_descendant(index: GraphIndex, node_id: str, exclude: str) -> str:
    current = node_id
    visited = {node_id, exclude}
    while True:
        children = index.children(current)
        if not children or children[-1] in visited:
            return current
        current = children[-1]
        visited.add(current)


def find_target(index: GraphIndex, node_id: str, direction: Direction) -> Optional[str]:
    if direction == "next":
        return next_target(index, node_id)
    if direction == "prev":
        return prev_target(index, node_id)
    raise ValueError(f"Unknown navigation direction: {direction}")
