"""Unit tests for HistoryStack."""

import pytest

from canvas.models.graph import Edge, GraphSnapshot
from canvas.models.node import Node, StartPayload
from canvas.services.history import HistoryStack


def snap(tag: str) -> GraphSnapshot:
    """One-node snapshot distinguishable by node id."""
    return GraphSnapshot.capture([Node(id=tag, kind="start", payload=StartPayload())], [])


class TestHistoryStack:
    def test_starts_empty(self):
        history = HistoryStack()
        assert history.can_undo is False
        assert history.can_redo is False
        assert history.undo(snap("now")) is None
        assert history.redo(snap("now")) is None

    def test_rejects_zero_limit(self):
        with pytest.raises(ValueError):
            HistoryStack(limit=0)

    def test_undo_returns_last_push_and_stores_current(self):
        history = HistoryStack()
        history.push(snap("a"))
        history.push(snap("b"))

        restored = history.undo(snap("c"))

        assert restored.nodes[0].id == "b"
        assert [s.nodes[0].id for s in history.past] == ["a"]
        assert [s.nodes[0].id for s in history.future] == ["c"]

    def test_redo_mirrors_undo(self):
        history = HistoryStack()
        history.push(snap("a"))
        history.undo(snap("b"))

        restored = history.redo(snap("a"))

        assert restored.nodes[0].id == "b"
        assert [s.nodes[0].id for s in history.past] == ["a"]
        assert history.future == ()

    def test_push_clears_future(self):
        history = HistoryStack()
        history.push(snap("a"))
        history.undo(snap("b"))
        assert history.can_redo

        history.push(snap("a2"))

        assert history.can_redo is False

    def test_past_is_capped_oldest_first(self):
        history = HistoryStack(limit=10)
        for i in range(15):
            history.push(snap(f"s{i}"))

        assert len(history.past) == 10
        assert history.past[0].nodes[0].id == "s5"
        assert history.past[-1].nodes[0].id == "s14"

    def test_redo_respects_cap(self):
        history = HistoryStack(limit=2)
        history.push(snap("a"))
        history.push(snap("b"))
        history.undo(snap("c"))
        history.redo(snap("b"))

        assert len(history.past) == 2

    def test_clear(self):
        history = HistoryStack()
        history.push(snap("a"))
        history.undo(snap("b"))
        history.clear()
        assert history.past == ()
        assert history.future == ()


class TestGraphSnapshot:
    def test_capture_is_isolated_from_later_mutation(self):
        node = Node(id="start", kind="start", payload=StartPayload())
        snapshot = GraphSnapshot.capture([node], [Edge.link("start", "x")])

        node.selected = True

        assert snapshot.nodes[0].selected is False
        restored = snapshot.restore_nodes()
        restored[0].expanded = True
        assert snapshot.nodes[0].expanded is False
        assert snapshot.restore_edges()[0].id == "e-start-x"
