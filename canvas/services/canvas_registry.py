"""In-process registry of open canvases, shared by the HTTP routes."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from canvas.models.graph import CanvasEvent
from canvas.models.session import Session
from canvas.repositories.session_store import SessionStore, build_session_store
from canvas.services.canvas_service import CanvasService
from canvas.services.content_generator import ContentGenerator, build_content_generator
from canvas.services.graph_controller import GraphController
from shared.utils.exceptions import CanvasNotFoundException

logger = logging.getLogger(__name__)


@dataclass
class OpenCanvas:
    """A canvas service plus the notices published since the last response."""

    id: str
    service: CanvasService
    notices: list[dict[str, Any]] = field(default_factory=list)

    def collect(self, event: CanvasEvent) -> None:
        if event.type == "notice":
            self.notices.append({"message": event.message, "level": event.level})

    def drain_notices(self) -> list[dict[str, Any]]:
        drained, self.notices = self.notices, []
        return drained


class CanvasRegistry:
    """Creates canvases that share one content generator and one session store."""

    def __init__(self, settings: Any, generator: Optional[ContentGenerator] = None,
                 store: Optional[SessionStore] = None):
        self.settings = settings
        self._generator = generator
        self.store = store or build_session_store(settings)
        self._canvases: dict[str, OpenCanvas] = {}

    @property
    def generator(self) -> ContentGenerator:
        if self._generator is None:
            self._generator = build_content_generator(self.settings)
        return self._generator

    def create(self) -> OpenCanvas:
        generator = self.generator
        controller = GraphController.from_settings(self.settings, generator)
        canvas = OpenCanvas(id=str(uuid.uuid4()), service=CanvasService(controller, generator, self.store))
        controller.subscribe(canvas.collect)
        self._canvases[canvas.id] = canvas
        logger.info(f"Opened canvas {canvas.id}")
        return canvas

    def get(self, canvas_id: str) -> OpenCanvas:
        canvas = self._canvases.get(canvas_id)
        if canvas is None:
            raise CanvasNotFoundException(canvas_id)
        return canvas

    def delete(self, canvas_id: str) -> None:
        canvas = self.get(canvas_id)
        canvas.service.controller.unsubscribe(canvas.collect)
        del self._canvases[canvas_id]
        logger.info(f"Closed canvas {canvas_id}")

    def list_sessions(self) -> list[Session]:
        return self.store.load()

    def clear_sessions(self) -> None:
        """Clear the store and every open start node's session list."""
        self.store.clear()
        for canvas in self._canvases.values():
            canvas.service.sessions = []
            canvas.service.sync_start_history()


# Global registry instance
_registry: Optional[CanvasRegistry] = None


def get_canvas_registry() -> CanvasRegistry:
    """Get or create the global canvas registry."""
    global _registry
    if _registry is None:
        from config import get_settings

        _registry = CanvasRegistry(get_settings())
    return _registry


def reset_canvas_registry():
    """Reset the global registry (useful for testing)."""
    global _registry
    _registry = None
