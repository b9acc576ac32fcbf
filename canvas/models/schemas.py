"""Pydantic API request/response schemas."""
from pydantic import BaseModel, Field
from typing import List, Dict, Any, Literal, Optional

from canvas.models.course import Attachment
from canvas.models.node import Position


class CreateNodeRequest(BaseModel):
    """Request to add a node, optionally linked under a parent."""
    kind: str
    payload: Optional[Dict[str, Any]] = None
    position: Optional[Position] = None
    parent_id: Optional[str] = None
    node_id: Optional[str] = None


class UpdateNodeRequest(BaseModel):
    """Partial node update from the view (move, select, expand, edit)."""
    position: Optional[Position] = None
    selected: Optional[bool] = None
    expanded: Optional[bool] = None
    payload: Optional[Dict[str, Any]] = None


class NavigateRequest(BaseModel):
    direction: Literal["prev", "next"]


class NodeActionRequest(BaseModel):
    """Lesson action such as opening slides or a code sandbox."""
    action: str
    data: Optional[Dict[str, Any]] = None


class ConnectRequest(BaseModel):
    source: str
    target: str


class CommandRequest(BaseModel):
    """Free-text instruction typed into a node or the global command bar."""
    prompt: str
    source_node_id: Optional[str] = None
    target_position: Optional[Position] = None


class ChatRequest(BaseModel):
    """Message for a node's tutor; `suggestion_index` picks a suggested question instead."""
    message: Optional[str] = None
    suggestion_index: Optional[int] = None


class LiveRequest(BaseModel):
    center: Optional[Position] = None


class StartCourseRequest(BaseModel):
    topic: str = ""
    attachments: List[Attachment] = Field(default_factory=list)


class Notice(BaseModel):
    message: str
    level: Literal["info", "error"] = "info"


class CanvasResponse(BaseModel):
    """Graph state after an operation, with notices published along the way."""
    canvas_id: str
    node_id: Optional[str] = None
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    focused_node_id: Optional[str] = None
    can_undo: bool
    can_redo: bool
    revision: int
    notices: List[Notice] = Field(default_factory=list)


class SessionSummary(BaseModel):
    id: str
    topic: str
    created_at: int
    title: str
    module_count: int
