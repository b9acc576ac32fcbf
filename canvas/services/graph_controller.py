"""
Graph controller for the study canvas.

Owns the node and edge collections, undo/redo history, the focused node,
auto-placement, prev/next navigation and the free-text command bridge.

All mutating methods are synchronous, so on a single event loop they never
interleave. Only `submit_command` awaits, and it mutates nothing until the
directive has arrived.
"""

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from canvas.models.graph import CanvasEvent, Directive, Edge, GraphSnapshot
from canvas.models.node import (
    DEFAULT_TOPIC,
    START_NODE_ID,
    Node,
    Position,
    StartPayload,
    build_payload,
    validate_kind,
)
from canvas.services.history import HistoryStack
from canvas.services.navigation import Direction, GraphIndex, find_target
from canvas.services.placement import PlacementRules, place_node
from shared.utils.exceptions import DuplicateNodeException, NodeNotFoundException

if TYPE_CHECKING:
    from canvas.services.content_generator import ContentGenerator

logger = logging.getLogger(__name__)

Listener = Callable[[CanvasEvent], None]

COMMAND_FAILED_NOTICE = "Could not understand command."
LIVE_NODE_SIZE = (340.0, 450.0)


class GraphController:
    """Directed graph of study nodes rooted at the start node."""

    def __init__(
        self,
        generator: Optional["ContentGenerator"] = None,
        history_limit: int = 10,
        placement: Optional[PlacementRules] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.generator = generator
        self.history = HistoryStack(limit=history_limit)
        self.placement = placement or PlacementRules()
        self._clock = clock
        self._nodes: dict[str, Node] = {}
        self._edges: list[Edge] = []
        self._listeners: list[Listener] = []
        self._revision = 0
        self._index: Optional[tuple[int, GraphIndex]] = None
        self.focused_node_id: Optional[str] = START_NODE_ID
        self.reset_to_start()

    @classmethod
    def from_settings(cls, settings: Any, generator: Optional["ContentGenerator"] = None) -> "GraphController":
        return cls(
            generator=generator,
            history_limit=settings.history_limit,
            placement=PlacementRules(
                child_x_offset=settings.child_x_offset,
                child_y_spacing=settings.child_y_spacing,
                focus_x_offset=settings.focus_x_offset,
            ),
        )

    # ─── Read access ──────────────────────────────────────────────────

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges)

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def get_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundException(node_id)
        return node

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def children_of(self, node_id: str) -> list[str]:
        return self._graph_index().children(node_id)

    def parent_of(self, node_id: str) -> Optional[str]:
        return self._graph_index().parent(node_id)

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot.capture(self.nodes, self._edges)

    def state(self) -> dict[str, Any]:
        """Serializable view of the live graph."""
        return {
            "nodes": [node.model_dump(mode="json") for node in self._nodes.values()],
            "edges": [edge.model_dump(mode="json") for edge in self._edges],
            "focused_node_id": self.focused_node_id,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
            "revision": self._revision,
        }

    # ─── Events ───────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, message: str, level: str = "info") -> None:
        """Publish a user-visible notice (errors render as a blocking alert)."""
        self._emit(CanvasEvent(type="notice", message=message, level=level))

    def _emit(self, event: CanvasEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Canvas listener failed on {event.type}: {e}")

    def _set_focus(self, node_id: Optional[str]) -> None:
        self.focused_node_id = node_id
        self._emit(CanvasEvent(type="focus_changed", node_id=node_id))

    def _changed(self) -> None:
        self._revision += 1
        self._emit(CanvasEvent(type="graph_changed"))

    def _graph_index(self) -> GraphIndex:
        if self._index is None or self._index[0] != self._revision:
            self._index = (self._revision, GraphIndex(self._nodes.values(), self._edges))
        return self._index[1]

    # ─── History ──────────────────────────────────────────────────────

    def push_history(self) -> None:
        """Snapshot the live graph ahead of a mutation."""
        self.history.push(self.snapshot())

    def undo(self) -> bool:
        previous = self.history.undo(self.snapshot())
        if previous is None:
            return False
        self._restore(previous)
        return True

    def redo(self) -> bool:
        following = self.history.redo(self.snapshot())
        if following is None:
            return False
        self._restore(following)
        return True

    def _restore(self, snapshot: GraphSnapshot) -> None:
        self._nodes = {node.id: node for node in snapshot.restore_nodes()}
        self._edges = snapshot.restore_edges()
        self._changed()
        if self.focused_node_id not in self._nodes:
            self._set_focus(START_NODE_ID if START_NODE_ID in self._nodes else None)

    # ─── Node creation ────────────────────────────────────────────────

    def create_node(
        self,
        kind: str,
        payload: Optional[dict[str, Any]] = None,
        position: Optional[Position] = None,
        parent_id: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> str:
        """Insert a node (and a `parent -> node` edge when parented) and focus it."""
        validate_kind(kind)
        if kind == "start":
            raise DuplicateNodeException(START_NODE_ID)
        if parent_id is not None and parent_id not in self._nodes:
            raise NodeNotFoundException(parent_id)
        if node_id is not None and node_id in self._nodes:
            raise DuplicateNodeException(node_id)

        node_payload = build_payload(kind, payload)

        self.push_history()

        if position is None:
            position = place_node(
                self._nodes,
                self._edges,
                self.placement,
                parent_id=parent_id,
                focused_node_id=self.focused_node_id,
            )
        new_id = node_id or self._new_id(kind)
        self._nodes[new_id] = Node(id=new_id, kind=kind, position=position, payload=node_payload)
        if parent_id is not None:
            self._edges.append(Edge.link(parent_id, new_id))

        logger.info(json.dumps({
            "step": "CREATE_NODE",
            "node_id": new_id,
            "kind": kind,
            "parent_id": parent_id,
            "position": [position.x, position.y],
        }))

        self._changed()
        self._set_focus(new_id)
        return new_id

    def _new_id(self, kind: str) -> str:
        base = f"{kind}-{int(self._clock() * 1000)}"
        candidate = base
        suffix = 2
        while candidate in self._nodes:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    # ─── Edges, drag, selection ───────────────────────────────────────

    def connect(self, source: str, target: str) -> Optional[Edge]:
        """Wire two existing nodes by hand. Self-loops, edges into start and duplicates are ignored."""
        self.get_node(source)
        self.get_node(target)
        if source == target or target == START_NODE_ID:
            logger.info(f"Ignoring connection {source} -> {target}")
            return None
        if any(e.source == source and e.target == target for e in self._edges):
            return None

        self.push_history()
        edge = Edge.link(source, target)
        self._edges.append(edge)
        self._changed()
        return edge

    def begin_drag(self, node_id: str) -> None:
        """Drag start is the undo point for the moves that follow."""
        self.get_node(node_id)
        self.push_history()

    def move_node(self, node_id: str, position: Position) -> None:
        self.get_node(node_id).position = position
        self._changed()

    def select(self, node_id: str, selected: bool = True) -> None:
        self.get_node(node_id).selected = selected
        if selected:
            self._set_focus(node_id)

    def set_selection(self, node_ids: Iterable[str]) -> None:
        """Replace the selection; the first selected node becomes the focus."""
        wanted = list(node_ids)
        for node_id in wanted:
            self.get_node(node_id)
        for node in self._nodes.values():
            node.selected = node.id in wanted
        if wanted:
            self._set_focus(wanted[0])

    # ─── Presentation mode ────────────────────────────────────────────

    def toggle_expanded(self, node_id: str) -> bool:
        """Flip full-screen mode for a node. At most one node is expanded at a time."""
        node = self.get_node(node_id)
        expand = not node.expanded
        if expand:
            for other in self._nodes.values():
                other.expanded = False
        node.expanded = expand
        if expand:
            self._set_focus(node_id)
        return expand

    def collapse_all(self) -> None:
        for node in self._nodes.values():
            node.expanded = False

    # ─── Payload ──────────────────────────────────────────────────────

    def patch_payload(self, node_id: str, updates: dict[str, Any]) -> bool:
        """
        Merge `updates` into a node's payload.

        Returns False and drops the update when the node is gone, which is how
        late generation results for deleted nodes are discarded.
        """
        node = self._nodes.get(node_id)
        if node is None:
            logger.info(f"Dropping payload update for deleted node {node_id}")
            return False
        node.payload = build_payload(node.kind, {**node.payload.model_dump(), **updates})
        self._emit(CanvasEvent(type="graph_changed", node_id=node_id))
        return True

    # ─── Navigation ───────────────────────────────────────────────────

    def navigate(self, node_id: str, direction: Direction) -> Optional[str]:
        """
        Move focus to the pre-order neighbour of `node_id`.

        Returns the target id, or None at a dead end. An expanded source hands
        its presentation mode to the target.
        """
        source = self.get_node(node_id)
        target_id = find_target(self._graph_index(), node_id, direction)
        if target_id is None:
            return None

        if source.expanded:
            source.expanded = False
            self._nodes[target_id].expanded = True
        self._set_focus(target_id)
        return target_id

    # ─── Deletion ─────────────────────────────────────────────────────

    def delete_selected(self) -> list[str]:
        return self.delete_nodes([node.id for node in self._nodes.values() if node.selected])

    def delete_nodes(self, node_ids: Iterable[str]) -> list[str]:
        """Remove nodes and their incident edges. The start node is never removed."""
        doomed = [nid for nid in dict.fromkeys(node_ids) if nid in self._nodes and nid != START_NODE_ID]
        if not doomed:
            return []

        self.push_history()
        doomed_set = set(doomed)
        for nid in doomed:
            del self._nodes[nid]
        self._edges = [e for e in self._edges if e.source not in doomed_set and e.target not in doomed_set]

        logger.info(json.dumps({"step": "DELETE_NODES", "node_ids": doomed}))
        self._changed()
        if self.focused_node_id in doomed_set:
            self._set_focus(START_NODE_ID)
        return doomed

    # ─── Whole-graph operations ───────────────────────────────────────

    def toggle_live(self, center: Optional[Position] = None) -> Optional[str]:
        """Remove every live tutor node, or add one centred on `center` when there is none."""
        live_ids = [node.id for node in self._nodes.values() if node.kind == "live"]
        if live_ids:
            self.delete_nodes(live_ids)
            return None
        center = center or Position()
        width, height = LIVE_NODE_SIZE
        return self.create_node("live", {}, position=center.offset(-width / 2, -height / 2))

    def reset_to_start(self) -> None:
        """Replace the graph with just the start node. Does not record history."""
        start = self._nodes.get(START_NODE_ID)
        payload = start.payload if start is not None else StartPayload()
        self._nodes = {
            START_NODE_ID: Node(id=START_NODE_ID, kind="start", position=Position(), payload=payload)
        }
        self._edges = []
        self._changed()
        self._set_focus(START_NODE_ID)

    # ─── Command bridge ───────────────────────────────────────────────

    async def submit_command(
        self,
        prompt_text: str,
        source_node_id: Optional[str] = None,
        target_position: Optional[Position] = None,
    ) -> Optional[str]:
        """
        Turn a free-text instruction into a new node linked to the source (or focused) node.

        When the reply cannot be interpreted, or its data does not fit the node
        kind, a notice is published and the graph and history
        are left untouched.
        """
        if not prompt_text or not prompt_text.strip():
            return None

        parent_id = source_node_id or self.focused_node_id
        parent = self._nodes.get(parent_id) if parent_id else None
        if parent is None:
            parent_id = None

        context_topic = (parent.topic if parent else None) or ""
        context_data: dict[str, Any] = {"topic": context_topic}
        if parent is not None and parent.context_text:
            context_data["context"] = parent.context_text

        position = target_position
        if position is None and source_node_id and parent is not None:
            position = parent.position.offset(self.placement.focus_x_offset, 0)

        try:
            if self.generator is None:
                raise RuntimeError("No content generator configured")
            directive = await self.generator.interpret_command(prompt_text, context_topic)
            if not isinstance(directive, Directive):
                directive = Directive.model_validate(directive)
            if directive.kind == "start":
                raise ValueError("Commands cannot create a start node")

            data = {**context_data, **{k: v for k, v in directive.data.items() if v not in (None, "")}}
            if not data.get("topic"):
                data["topic"] = DEFAULT_TOPIC
            if directive.kind == "lesson":
                data.setdefault("module_title", data["topic"])
                data.setdefault("module_id", f"gen-{int(self._clock() * 1000)}")
            build_payload(directive.kind, data)
        except Exception as e:
            logger.error(json.dumps({
                "step": "SUBMIT_COMMAND",
                "status": "failed",
                "prompt": prompt_text[:200],
                "error": str(e),
            }))
            self.notify(COMMAND_FAILED_NOTICE, level="error")
            return None

        if parent_id is not None and parent_id not in self._nodes:
            logger.warning(f"Command source {parent_id} was deleted while interpreting; creating unlinked node")
            parent_id = None

        return self.create_node(directive.kind, data, position=position, parent_id=parent_id)
