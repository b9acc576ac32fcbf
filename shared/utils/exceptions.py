"""Custom exception hierarchy for better error handling."""
from fastapi import HTTPException, status


class StudyCanvasException(Exception):
    """Base exception for all application errors."""
    pass


class CanvasNotFoundException(StudyCanvasException):
    """Raised when a canvas is not found in the registry."""

    def __init__(self, canvas_id: str):
        self.canvas_id = canvas_id
        super().__init__(f"Canvas {canvas_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Canvas {self.canvas_id} not found"
        )


class NodeNotFoundException(StudyCanvasException):
    """Raised when a node id does not resolve to a live node."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Node {self.node_id} not found"
        )


class SessionNotFoundException(StudyCanvasException):
    """Raised when a saved study session is not found."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {self.session_id} not found"
        )


class DuplicateNodeException(StudyCanvasException):
    """Raised when a caller-supplied node id is already taken."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} already exists")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Node {self.node_id} already exists"
        )


class InvalidNodeKindException(StudyCanvasException):
    """Raised when a node kind is outside the closed set of kinds."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown node kind: {kind}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown node kind: {self.kind}"
        )


class InvalidActionException(StudyCanvasException):
    """Raised when a node requests an action it does not support."""

    def __init__(self, node_id: str, action: str):
        self.node_id = node_id
        self.action = action
        super().__init__(f"Action {action} is not supported by node {node_id}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Action {self.action} is not supported by node {self.node_id}"
        )


class InvalidPayloadException(StudyCanvasException):
    """Raised when node payload data does not fit the payload model for its kind."""

    def __init__(self, kind: str, errors: list[str]):
        self.kind = kind
        self.errors = errors
        super().__init__(f"Invalid {kind} payload: {'; '.join(errors)}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {self.kind} payload: {'; '.join(self.errors)}"
        )


class LLMProviderException(StudyCanvasException):
    """Raised when LLM provider fails."""

    def __init__(self, original_error: Exception):
        self.original_error = original_error
        super().__init__(f"LLM provider error: {str(original_error)}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service temporarily unavailable"
        )
