"""Pytest configuration and shared fixtures."""
import itertools

import pytest
from unittest.mock import AsyncMock, Mock

from canvas.models.course import Course, CourseModule, LessonContent, QuizQuestion, Slide
from canvas.models.graph import Directive
from canvas.repositories.session_store import InMemorySessionStore
from canvas.services.canvas_service import CanvasService
from canvas.services.graph_controller import GraphController


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep tests away from a developer's .env and real storage files."""
    from config import reset_settings
    from database import reset_db_manager
    from canvas.services.canvas_registry import reset_canvas_registry

    monkeypatch.setenv("SESSION_STORE_BACKEND", "memory")
    monkeypatch.setenv("SESSION_STORE_PATH", str(tmp_path / "storage.json"))
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    reset_settings()
    reset_canvas_registry()
    reset_db_manager()
    yield
    reset_settings()
    reset_canvas_registry()
    reset_db_manager()


@pytest.fixture
def clock():
    """Deterministic clock advancing one second per reading."""
    ticks = itertools.count(1000)
    return lambda: float(next(ticks))


@pytest.fixture
def sample_course():
    return Course(
        id="course-abc123",
        title="Linear Algebra",
        description="Vectors, matrices and maps",
        modules=[
            CourseModule(id="1", title="Vectors", description="Basics", concepts=["span"]),
            CourseModule(id="2", title="Matrices", description="Operations", concepts=["rank"]),
        ],
    )


@pytest.fixture
def fake_generator(sample_course):
    """ContentGenerator double with canned async results."""
    generator = Mock()
    generator.interpret_command = AsyncMock(return_value=Directive(kind="quiz", data={"topic": "Vectors"}))

    async def plan_stream(topic, attachments=None):
        for chunk in ("Focus on ", "vectors."):
            yield chunk

    generator.generate_plan = Mock(side_effect=plan_stream)
    generator.generate_course_structure = AsyncMock(return_value=sample_course)
    generator.generate_lesson_content = AsyncMock(
        return_value=LessonContent(module_id="1", markdown_content="# Vectors", suggested_questions=["Why?"])
    )
    generator.generate_quiz = AsyncMock(return_value=[
        QuizQuestion(question="2+2?", options=["3", "4"], correct_index=1, explanation="Sum"),
    ])
    generator.generate_slides = AsyncMock(return_value=[Slide(title="Intro", bullets=["a"])])
    generator.execute_code = AsyncMock(return_value="42\n")
    generator.analyze_media = AsyncMock(return_value="A diagram of a vector.")

    async def chat_stream(history, message, system_context=""):
        for chunk in ("A vector has ", "magnitude and direction."):
            yield chunk

    generator.stream_chat = Mock(side_effect=chat_stream)
    return generator


@pytest.fixture
def controller(fake_generator, clock):
    return GraphController(generator=fake_generator, clock=clock)


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def canvas_service(controller, fake_generator, session_store):
    return CanvasService(controller, fake_generator, session_store)
