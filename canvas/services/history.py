"""
Undo/redo history for the canvas graph.

Linear history: pushing a new snapshot discards anything that was undone.
"""

import logging
from typing import Optional

from canvas.models.graph import GraphSnapshot

logger = logging.getLogger(__name__)


class HistoryStack:
    """Bounded `past` stack (most recent last) and an unbounded `future` stack (next redo first)."""

    def __init__(self, limit: int = 10):
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = limit
        self._past: list[GraphSnapshot] = []
        self._future: list[GraphSnapshot] = []

    @property
    def past(self) -> tuple[GraphSnapshot, ...]:
        return tuple(self._past)

    @property
    def future(self) -> tuple[GraphSnapshot, ...]:
        return tuple(self._future)

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def push(self, snapshot: GraphSnapshot) -> None:
        """Record the state a mutation is about to replace."""
        self._past.append(snapshot)
        if len(self._past) > self.limit:
            del self._past[: len(self._past) - self.limit]
        self._future.clear()

    def undo(self, current: GraphSnapshot) -> Optional[GraphSnapshot]:
        """Swap `current` onto the future stack and return the state to restore."""
        if not self._past:
            return None
        previous = self._past.pop()
        self._future.insert(0, current)
        logger.debug(f"undo: past={len(self._past)} future={len(self._future)}")
        return previous

    def redo(self, current: GraphSnapshot) -> Optional[GraphSnapshot]:
        if not self._future:
            return None
        following = self._future.pop(0)
        self._past.append(current)
        if len(self._past) > self.limit:
            del self._past[: len(self._past) - self.limit]
        logger.debug(f"redo: past={len(self._past)} future={len(self._future)}")
        return following

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
