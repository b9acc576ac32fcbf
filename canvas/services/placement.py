"""Auto-placement for nodes created without an explicit position."""

from dataclasses import dataclass
from typing import Optional

from canvas.models.graph import Edge
from canvas.models.node import Node, Position


@dataclass(frozen=True)
class PlacementRules:
    child_x_offset: float = 500.0
    child_y_spacing: float = 650.0
    focus_x_offset: float = 500.0
    origin: Position = Position(x=100.0, y=100.0)
    cascade_step: float = 40.0


def place_node(
    nodes: dict[str, Node],
    edges: list[Edge],
    rules: PlacementRules,
    parent_id: Optional[str] = None,
    focused_node_id: Optional[str] = None,
) -> Position:
    """
    Pick a position for a new node.

    Children stack vertically beside their parent, one slot per existing
    child. Without a parent the node goes beside the focused node, and with
    neither it cascades from the origin by the current node count.
    """
    parent = nodes.get(parent_id) if parent_id else None
    if parent is not None:
        child_index = sum(1 for edge in edges if edge.source == parent.id)
        return parent.position.offset(rules.child_x_offset, child_index * rules.child_y_spacing)

    focused = nodes.get(focused_node_id) if focused_node_id else None
    if focused is not None:
        return focused.position.offset(rules.focus_x_offset, 0)

    step = len(nodes) * rules.cascade_step
    return rules.origin.offset(step, step)
