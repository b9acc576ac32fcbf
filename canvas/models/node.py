"""
Node Models

A node is one study artifact on the canvas. Its payload is a tagged union
keyed by `kind`; each variant carries the defaults for that kind and lets
extra keys through so free-form data from commands is kept.
"""

from typing import Annotated, Any, Literal, Optional, Union, get_args
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from canvas.models.course import Course, LessonContent, QuizQuestion, Slide
from shared.utils.exceptions import InvalidNodeKindException, InvalidPayloadException


NodeKind = Literal["start", "curriculum", "lesson", "quiz", "slides", "code", "media", "live"]
NODE_KINDS: tuple[str, ...] = get_args(NodeKind)

GenerationStatus = Literal["idle", "loading", "ready", "failed"]

START_NODE_ID = "start"
DEFAULT_TOPIC = "General Study"


class Position(BaseModel):
    """Canvas-space coordinate."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float = 0.0, dy: float = 0.0) -> "Position":
        return Position(x=self.x + dx, y=self.y + dy)


class ChatTurn(BaseModel):
    role: Literal["user", "model"]
    text: str


class BasePayload(BaseModel):
    """Fields shared by every payload variant."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    status: GenerationStatus = Field(default="idle", description="Content generation state")


class StartPayload(BasePayload):
    kind: Literal["start"] = "start"
    history: list[dict[str, Any]] = Field(default_factory=list, description="Saved session summaries")


class CurriculumPayload(BasePayload):
    kind: Literal["curriculum"] = "curriculum"
    course: Course = Field(default_factory=Course)


class LessonPayload(BasePayload):
    kind: Literal["lesson"] = "lesson"
    topic: str = DEFAULT_TOPIC
    module_title: str = ""
    module_id: str = ""
    context: Optional[str] = None
    lesson_content: Optional[LessonContent] = None
    chat_history: list[ChatTurn] = Field(default_factory=list)


class QuizPayload(BasePayload):
    kind: Literal["quiz"] = "quiz"
    topic: str = DEFAULT_TOPIC
    context: Optional[str] = None
    quiz_content: list[QuizQuestion] = Field(default_factory=list)


class SlidesPayload(BasePayload):
    kind: Literal["slides"] = "slides"
    topic: str = DEFAULT_TOPIC
    context: Optional[str] = None
    slide_content: list[Slide] = Field(default_factory=list)


class CodePayload(BasePayload):
    kind: Literal["code"] = "code"
    topic: str = DEFAULT_TOPIC
    language: str = "python"
    code: str = ""
    output: str = ""
    chat_history: list[ChatTurn] = Field(default_factory=list)
    is_assistant_open: bool = False


class MediaPayload(BasePayload):
    kind: Literal["media"] = "media"
    media_url: Optional[str] = None
    media_type: Literal["image", "video"] = "image"
    analysis: str = ""


class LivePayload(BasePayload):
    kind: Literal["live"] = "live"
    topic: Optional[str] = None


NodePayload = Annotated[
    Union[
        StartPayload,
        CurriculumPayload,
        LessonPayload,
        QuizPayload,
        SlidesPayload,
        CodePayload,
        MediaPayload,
        LivePayload,
    ],
    Field(discriminator="kind"),
]

PAYLOAD_MODELS: dict[str, type[BasePayload]] = {
    "start": StartPayload,
    "curriculum": CurriculumPayload,
    "lesson": LessonPayload,
    "quiz": QuizPayload,
    "slides": SlidesPayload,
    "code": CodePayload,
    "media": MediaPayload,
    "live": LivePayload,
}


def validate_kind(kind: str) -> str:
    if kind not in PAYLOAD_MODELS:
        raise InvalidNodeKindException(kind)
    return kind


def build_payload(kind: str, data: Optional[dict[str, Any]] = None) -> BasePayload:
    """
    Merge `data` over the defaults for `kind`. None values fall back to defaults.

    Raises InvalidPayloadException when the merged data does not validate.
    """
    model = PAYLOAD_MODELS[validate_kind(kind)]
    values = {k: v for k, v in (data or {}).items() if v is not None and k != "kind"}
    try:
        return model.model_validate({**values, "kind": kind})
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise InvalidPayloadException(kind, errors) from e


class Node(BaseModel):
    """A study node on the canvas."""

    id: str = Field(frozen=True)
    kind: NodeKind
    position: Position = Field(default_factory=Position)
    payload: NodePayload
    expanded: bool = False
    selected: bool = False

    @model_validator(mode="after")
    def _payload_matches_kind(self) -> "Node":
        if self.payload.kind != self.kind:
            raise ValueError(f"payload kind {self.payload.kind} does not match node kind {self.kind}")
        return self

    @property
    def topic(self) -> Optional[str]:
        """Topic this node carries, if any (module title for lessons without one)."""
        topic = getattr(self.payload, "topic", None)
        if topic:
            return topic
        return getattr(self.payload, "module_title", None) or None

    @property
    def context_text(self) -> Optional[str]:
        """Reading material a child node can use as context."""
        if isinstance(self.payload, LessonPayload) and self.payload.lesson_content:
            return self.payload.lesson_content.markdown_content or None
        return getattr(self.payload, "context", None)
