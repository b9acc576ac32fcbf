"""Canvas models."""
from canvas.models.course import Attachment, Course, CourseModule, LessonContent, QuizQuestion, Slide
from canvas.models.node import (
    NODE_KINDS,
    START_NODE_ID,
    DEFAULT_TOPIC,
    Node,
    NodeKind,
    NodePayload,
    Position,
    build_payload,
)
from canvas.models.graph import CanvasEvent, Directive, Edge, GraphSnapshot
from canvas.models.session import GraphState, Session
