"""Canvas services."""
from canvas.services.history import HistoryStack
from canvas.services.navigation import GraphIndex, find_target
from canvas.services.placement import PlacementRules, place_node
from canvas.services.graph_controller import GraphController
from canvas.services.content_generator import ContentGenerator, build_content_generator
from canvas.services.canvas_service import CanvasService
