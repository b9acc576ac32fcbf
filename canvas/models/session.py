"""
Session Models

A completed study session as saved to the session store.
"""

import time
from typing import Any, Optional
from pydantic import BaseModel, Field

from canvas.models.course import Course


def now_ms() -> int:
    return int(time.time() * 1000)


class GraphState(BaseModel):
    nodes: list[dict[str, Any]] = Field(default_factory=list)
    edges: list[dict[str, Any]] = Field(default_factory=list)


class Session(BaseModel):
    """Saved study session; the course is enough to rebuild a fresh canvas."""

    id: str = Field(default_factory=lambda: str(now_ms()))
    topic: str
    created_at: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    course: Course
    graph_state: Optional[GraphState] = None
    last_modified: Optional[int] = None

    def summary(self) -> dict[str, Any]:
        """Lightweight view shown on the start node."""
        return {
            "id": self.id,
            "topic": self.topic,
            "created_at": self.created_at,
            "title": self.course.title,
            "module_count": len(self.course.modules),
        }
