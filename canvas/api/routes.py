"""Canvas API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from canvas.models.schemas import (
    CanvasResponse,
    ChatRequest,
    CommandRequest,
    ConnectRequest,
    CreateNodeRequest,
    LiveRequest,
    NavigateRequest,
    NodeActionRequest,
    SessionSummary,
    StartCourseRequest,
    UpdateNodeRequest,
)
from canvas.services.canvas_registry import CanvasRegistry, OpenCanvas, get_canvas_registry
from shared.utils.exceptions import StudyCanvasException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/canvases", tags=["canvases"])


def _respond(canvas: OpenCanvas, node_id: Optional[str] = None) -> CanvasResponse:
    return CanvasResponse(
        canvas_id=canvas.id,
        node_id=node_id,
        notices=canvas.drain_notices(),
        **canvas.service.controller.state(),
    )


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Error {action}: {e}")
    return HTTPException(status_code=500, detail={"message": f"Error {action}: {str(e)}", "type": type(e).__name__})


# ─── Canvases ────────────────────────────────────────────────────────


@router.post("", response_model=CanvasResponse)
def create_canvas(registry: CanvasRegistry = Depends(get_canvas_registry)):
    """Open a new canvas holding only the start node."""
    try:
        return _respond(registry.create())
    except StudyCanvasException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("creating canvas", e)


@router.get("/sessions", response_model=List[SessionSummary])
def list_sessions(registry: CanvasRegistry = Depends(get_canvas_registry)):
    """Saved study sessions, newest first."""
    return [session.summary() for session in registry.list_sessions()]


@router.delete("/sessions", status_code=204)
def clear_sessions(registry: CanvasRegistry = Depends(get_canvas_registry)):
    registry.clear_sessions()


@router.get("/{canvas_id}", response_model=CanvasResponse)
def get_canvas(canvas_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        return _respond(registry.get(canvas_id))
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.delete("/{canvas_id}", status_code=204)
def delete_canvas(canvas_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        registry.delete(canvas_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


# ─── Nodes ───────────────────────────────────────────────────────────


@router.post("/{canvas_id}/nodes", response_model=CanvasResponse)
def create_node(canvas_id: str, request: CreateNodeRequest, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        node_id = canvas.service.controller.create_node(
            request.kind,
            request.payload,
            position=request.position,
            parent_id=request.parent_id,
            node_id=request.node_id,
        )
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("creating node", e)


@router.patch("/{canvas_id}/nodes/{node_id}", response_model=CanvasResponse)
def update_node(
    canvas_id: str,
    node_id: str,
    request: UpdateNodeRequest,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    """Apply view-side edits. Moves are not undo points; call /drag first."""
    try:
        canvas = registry.get(canvas_id)
        controller = canvas.service.controller
        node = controller.get_node(node_id)
        # Payload goes first: it is the only edit that can be rejected.
        if request.payload:
            controller.patch_payload(node_id, request.payload)
        if request.position is not None:
            controller.move_node(node_id, request.position)
        if request.selected is not None:
            controller.select(node_id, request.selected)
        if request.expanded is not None and request.expanded != node.expanded:
            controller.toggle_expanded(node_id)
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("updating node", e)


@router.post("/{canvas_id}/nodes/{node_id}/drag", response_model=CanvasResponse)
def begin_drag(canvas_id: str, node_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        canvas.service.controller.begin_drag(node_id)
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/nodes/{node_id}/navigate", response_model=CanvasResponse)
def navigate(
    canvas_id: str,
    node_id: str,
    request: NavigateRequest,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    """Move focus to the previous or next node in reading order."""
    try:
        canvas = registry.get(canvas_id)
        target = canvas.service.controller.navigate(node_id, request.direction)
        return _respond(canvas, target)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/nodes/{node_id}/actions", response_model=CanvasResponse)
def request_action(
    canvas_id: str,
    node_id: str,
    request: NodeActionRequest,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    try:
        canvas = registry.get(canvas_id)
        new_id = canvas.service.request_action(node_id, request.action, request.data)
        return _respond(canvas, new_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("running node action", e)


@router.post("/{canvas_id}/nodes/{node_id}/modules/{module_id}", response_model=CanvasResponse)
def select_module(
    canvas_id: str,
    node_id: str,
    module_id: str,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    """Open a lesson for one module of a curriculum node."""
    try:
        canvas = registry.get(canvas_id)
        new_id = canvas.service.select_module(node_id, module_id)
        return _respond(canvas, new_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("selecting module", e)


@router.post("/{canvas_id}/nodes/{node_id}/hydrate", response_model=CanvasResponse)
async def hydrate_node(canvas_id: str, node_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    """Generate the node's missing content (lesson, quiz, slides, media analysis)."""
    try:
        canvas = registry.get(canvas_id)
        await canvas.service.hydrate_node(node_id)
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/nodes/{node_id}/run", response_model=CanvasResponse)
async def run_code(canvas_id: str, node_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        await canvas.service.run_code(node_id)
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/nodes/{node_id}/chat", response_model=CanvasResponse)
async def chat(
    canvas_id: str,
    node_id: str,
    request: ChatRequest,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    """Ask the tutor on a lesson or code node; both turns land in the node's chat history."""
    try:
        canvas = registry.get(canvas_id)
        await canvas.service.chat(node_id, request.message, request.suggestion_index)
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


# ─── Graph ───────────────────────────────────────────────────────────


@router.post("/{canvas_id}/edges", response_model=CanvasResponse)
def connect(canvas_id: str, request: ConnectRequest, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        canvas.service.controller.connect(request.source, request.target)
        return _respond(canvas)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/commands", response_model=CanvasResponse)
async def submit_command(
    canvas_id: str,
    request: CommandRequest,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    """Interpret a free-text command into a new linked node."""
    try:
        canvas = registry.get(canvas_id)
        node_id = await canvas.service.controller.submit_command(
            request.prompt,
            source_node_id=request.source_node_id,
            target_position=request.target_position,
        )
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/undo", response_model=CanvasResponse)
def undo(canvas_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        canvas.service.undo()
        return _respond(canvas)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/redo", response_model=CanvasResponse)
def redo(canvas_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        canvas.service.redo()
        return _respond(canvas)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/delete-selected", response_model=CanvasResponse)
def delete_selected(canvas_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        canvas.service.controller.delete_selected()
        return _respond(canvas)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/collapse", response_model=CanvasResponse)
def collapse_all(canvas_id: str, registry: CanvasRegistry = Depends(get_canvas_registry)):
    try:
        canvas = registry.get(canvas_id)
        canvas.service.controller.collapse_all()
        return _respond(canvas)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/live", response_model=CanvasResponse)
def toggle_live(canvas_id: str, request: LiveRequest, registry: CanvasRegistry = Depends(get_canvas_registry)):
    """Add a live tutor node at the viewport centre, or remove the existing one."""
    try:
        canvas = registry.get(canvas_id)
        node_id = canvas.service.controller.toggle_live(request.center)
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


# ─── Courses and sessions ────────────────────────────────────────────


@router.post("/{canvas_id}/course", response_model=CanvasResponse)
async def start_course(
    canvas_id: str,
    request: StartCourseRequest,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    """Plan and structure a course, then open its curriculum node."""
    try:
        canvas = registry.get(canvas_id)
        node_id = await canvas.service.start_course(
            request.topic,
            request.attachments,
            on_progress=lambda status: logger.info(f"Canvas {canvas_id}: {status}"),
        )
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()


@router.post("/{canvas_id}/sessions/{session_id}/resume", response_model=CanvasResponse)
def resume_session(
    canvas_id: str,
    session_id: str,
    registry: CanvasRegistry = Depends(get_canvas_registry),
):
    try:
        canvas = registry.get(canvas_id)
        node_id = canvas.service.resume_session(session_id)
        return _respond(canvas, node_id)
    except StudyCanvasException as e:
        raise e.to_http_exception()
