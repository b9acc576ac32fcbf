"""
Course Models

Generated study material: course structure, lesson content, slides and quizzes.
Field names are snake_case; camelCase keys from model output are accepted too.
"""

import uuid
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class GeneratedModel(BaseModel):
    """Base for models parsed from generator output."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


class CourseModule(GeneratedModel):
    """One module of a course syllabus."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8], description="Module identifier")
    title: str = Field(default="Untitled Module", description="Module name")
    description: str = Field(default="", description="Brief summary")
    concepts: list[str] = Field(default_factory=list, description="Key concepts covered")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("concepts", mode="before")
    @classmethod
    def _coerce_concepts(cls, value: Any) -> list:
        return _as_list(value)


class Course(GeneratedModel):
    """A generated course: title, description and ordered modules."""

    id: str = Field(default_factory=lambda: f"course-{uuid.uuid4().hex[:8]}")
    title: str = Field(default="Untitled Course")
    description: str = Field(default="")
    modules: list[CourseModule] = Field(default_factory=list)

    @field_validator("modules", mode="before")
    @classmethod
    def _coerce_modules(cls, value: Any) -> list:
        return [m for m in _as_list(value) if isinstance(m, dict) or isinstance(m, CourseModule)]

    def get_module(self, module_id: str) -> Optional[CourseModule]:
        for module in self.modules:
            if module.id == module_id:
                return module
        return None


class Slide(GeneratedModel):
    title: str = ""
    bullets: list[str] = Field(default_factory=list)
    image_prompt: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("bullets", mode="before")
    @classmethod
    def _coerce_bullets(cls, value: Any) -> list:
        return _as_list(value)


class QuizQuestion(GeneratedModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
    question: str = ""
    options: list[str] = Field(default_factory=list)
    correct_index: int = 0
    explanation: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> list:
        return _as_list(value)


class LessonContent(GeneratedModel):
    """Full lesson for one module: reading, slides, quiz and follow-up prompts."""

    module_id: str
    markdown_content: str = ""
    slides: list[Slide] = Field(default_factory=list)
    quiz: list[QuizQuestion] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)

    @field_validator("slides", "quiz", "suggested_questions", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> list:
        return _as_list(value)


class Attachment(GeneratedModel):
    """Study material supplied when starting a course."""

    type: Literal["file", "url"]
    mime_type: Optional[str] = None
    data: str = Field(description="Base64 payload for files, URL string for urls")
    name: Optional[str] = None
