"""
Graph Models

Edges, history snapshots, command directives and the events the canvas
publishes to its subscribers.
"""

from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from canvas.models.node import Node, NodeKind


def edge_id(source: str, target: str) -> str:
    return f"e-{source}-{target}"


class Edge(BaseModel):
    """Directed provenance link: `target` was created from `source`."""

    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str

    @classmethod
    def link(cls, source: str, target: str) -> "Edge":
        return cls(id=edge_id(source, target), source=source, target=target)


class GraphSnapshot(BaseModel):
    """Immutable capture of the full node and edge collections."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]

    @classmethod
    def capture(cls, nodes: list[Node], edges: list[Edge]) -> "GraphSnapshot":
        return cls(
            nodes=tuple(node.model_copy(deep=True) for node in nodes),
            edges=tuple(edges),
        )

    def restore_nodes(self) -> list[Node]:
        """Fresh, independently mutable copies of the captured nodes."""
        return [node.model_copy(deep=True) for node in self.nodes]

    def restore_edges(self) -> list[Edge]:
        return list(self.edges)


class Directive(BaseModel):
    """Interpreted free-text command: which node to create and with what data."""

    kind: NodeKind
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            # Older prompts call lessons "study" nodes
            if value == "study":
                return "lesson"
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, value: Any) -> Any:
        return {} if value is None else value


EventType = Literal["focus_changed", "notice", "graph_changed"]


class CanvasEvent(BaseModel):
    """Something the view layer may react to (recentre, show an alert, redraw)."""

    type: EventType
    node_id: Optional[str] = None
    message: Optional[str] = None
    level: Literal["info", "error"] = "info"
