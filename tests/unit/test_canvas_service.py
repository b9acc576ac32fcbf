"""
Unit tests for CanvasService.

Uses the fake generator and in-memory store from conftest. Covers course
start and failure notices, session resume, module selection, lesson actions,
content hydration (including deletion while generating), code runs and tutor chat.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from canvas.exceptions import ContentGenerationError
from canvas.models.course import Attachment
from canvas.models.node import START_NODE_ID, Position
from canvas.models.session import Session
from canvas.services.canvas_service import CHAT_FAILED_REPLY, COURSE_FAILED_NOTICE, CanvasService
from shared.utils.exceptions import InvalidActionException, NodeNotFoundException, SessionNotFoundException


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def notices(events):
    return [e for e in events if e.type == "notice"]


async def open_lesson(service: CanvasService) -> str:
    curriculum = await service.start_course("Linear Algebra")
    return service.select_module(curriculum, "1")


# ---------------------------------------------------------------------------
# start_course
# ---------------------------------------------------------------------------

class TestStartCourse:
    @pytest.mark.asyncio
    async def test_creates_curriculum_and_saves_session(self, canvas_service, fake_generator, session_store, sample_course):
        progress = []

        node_id = await canvas_service.start_course("Linear Algebra", on_progress=progress.append)

        controller = canvas_service.controller
        node = controller.get_node(node_id)
        assert node.kind == "curriculum"
        assert node.position == Position(x=600, y=0)
        assert node.payload.course.title == sample_course.title
        assert controller.parent_of(node_id) == START_NODE_ID
        assert progress == ["ANALYZING & PLANNING...", "STRUCTURING COURSE..."]

        fake_generator.generate_course_structure.assert_awaited_once_with("Linear Algebra", "Focus on vectors.")
        stored = session_store.load()
        assert [s.topic for s in stored] == ["Linear Algebra"]
        assert controller.get_node(START_NODE_ID).payload.history[0]["title"] == sample_course.title

    @pytest.mark.asyncio
    async def test_newest_session_first(self, canvas_service, session_store):
        await canvas_service.start_course("First")
        await canvas_service.start_course("Second")
        assert [s.topic for s in session_store.load()] == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_topic_defaults(self, canvas_service, fake_generator):
        await canvas_service.start_course("  ", attachments=[Attachment(type="url", data="https://x.org")])
        assert fake_generator.generate_plan.call_args.args[0] == "Uploaded Materials"

        await canvas_service.start_course("")
        assert fake_generator.generate_plan.call_args.args[0] == "General Study"

    @pytest.mark.asyncio
    async def test_single_undo_point(self, canvas_service):
        await canvas_service.start_course("Linear Algebra")

        assert canvas_service.undo() is True
        assert [n.id for n in canvas_service.controller.nodes] == [START_NODE_ID]
        assert canvas_service.controller.can_undo is False

    @pytest.mark.asyncio
    async def test_failure_publishes_notice(self, canvas_service, fake_generator, session_store):
        events = []
        canvas_service.controller.subscribe(events.append)
        fake_generator.generate_course_structure.side_effect = ContentGenerationError("generate_course_structure", "down")

        result = await canvas_service.start_course("Linear Algebra")

        assert result is None
        assert [n.message for n in notices(events)] == [COURSE_FAILED_NOTICE]
        assert session_store.load() == []
        assert canvas_service.controller.can_undo is False
        assert len(canvas_service.controller.nodes) == 1


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSessions:
    def test_start_node_lists_stored_sessions(self, controller, fake_generator, session_store, sample_course):
        session_store.save([Session(id="s1", topic="Old", course=sample_course)])

        service = CanvasService(controller, fake_generator, session_store)

        assert [s.id for s in service.list_sessions()] == ["s1"]
        assert controller.get_node(START_NODE_ID).payload.history[0]["id"] == "s1"

    @pytest.mark.asyncio
    async def test_resume_rebuilds_canvas(self, canvas_service):
        await canvas_service.start_course("Linear Algebra")
        controller = canvas_service.controller
        controller.create_node("quiz", parent_id=START_NODE_ID)
        session_id = canvas_service.list_sessions()[0].id

        node_id = canvas_service.resume_session(session_id)

        assert {n.kind for n in controller.nodes} == {"start", "curriculum"}
        assert controller.focused_node_id == node_id
        assert controller.get_node(START_NODE_ID).payload.history

    @pytest.mark.asyncio
    async def test_resume_is_undoable(self, canvas_service):
        await canvas_service.start_course("Linear Algebra")
        quiz = canvas_service.controller.create_node("quiz", parent_id=START_NODE_ID)
        session_id = canvas_service.list_sessions()[0].id

        canvas_service.resume_session(session_id)
        canvas_service.undo()
        canvas_service.undo()

        assert canvas_service.controller.has_node(quiz)

    def test_resume_unknown_session(self, canvas_service):
        with pytest.raises(SessionNotFoundException):
            canvas_service.resume_session("missing")

    def test_resume_session_saved_by_another_canvas(self, canvas_service, session_store, sample_course):
        session_store.save([Session(id="elsewhere", topic="T", course=sample_course)])
        node_id = canvas_service.resume_session("elsewhere")
        assert canvas_service.controller.get_node(node_id).kind == "curriculum"

    @pytest.mark.asyncio
    async def test_clear_history(self, canvas_service, session_store):
        await canvas_service.start_course("Linear Algebra")

        canvas_service.clear_history()

        assert canvas_service.list_sessions() == []
        assert session_store.load() == []
        assert canvas_service.controller.get_node(START_NODE_ID).payload.history == []

    @pytest.mark.asyncio
    async def test_undo_keeps_start_history_current(self, canvas_service):
        await canvas_service.start_course("Linear Algebra")
        canvas_service.undo()
        history = canvas_service.controller.get_node(START_NODE_ID).payload.history
        assert [h["topic"] for h in history] == ["Linear Algebra"]


# ---------------------------------------------------------------------------
# Module selection and lesson actions
# ---------------------------------------------------------------------------

class TestNodeActions:
    @pytest.mark.asyncio
    async def test_select_module_creates_lesson(self, canvas_service, sample_course):
        curriculum = await canvas_service.start_course("Linear Algebra")

        lesson_id = canvas_service.select_module(curriculum, "2")

        lesson = canvas_service.controller.get_node(lesson_id)
        assert lesson.kind == "lesson"
        assert lesson.payload.module_title == "Matrices"
        assert lesson.payload.module_id == "2"
        assert lesson.payload.topic == sample_course.title
        assert canvas_service.controller.parent_of(lesson_id) == curriculum

    @pytest.mark.asyncio
    async def test_select_unknown_module(self, canvas_service):
        curriculum = await canvas_service.start_course("Linear Algebra")
        with pytest.raises(InvalidActionException):
            canvas_service.select_module(curriculum, "99")

    def test_select_module_on_wrong_kind(self, canvas_service):
        with pytest.raises(InvalidActionException):
            canvas_service.select_module(START_NODE_ID, "1")

    @pytest.mark.asyncio
    async def test_slides_action_inherits_context(self, canvas_service):
        lesson_id = await open_lesson(canvas_service)
        await canvas_service.hydrate_node(lesson_id)

        slides_id = canvas_service.request_action(lesson_id, "SLIDES")

        slides = canvas_service.controller.get_node(slides_id)
        assert slides.kind == "slides"
        assert slides.payload.topic == "Linear Algebra"
        assert slides.payload.context == "# Vectors"
        assert canvas_service.controller.parent_of(slides_id) == lesson_id

    @pytest.mark.asyncio
    async def test_code_action_merges_data(self, canvas_service):
        lesson_id = await open_lesson(canvas_service)

        code_id = canvas_service.request_action(lesson_id, "code", {"language": "javascript", "code": "1+1"})

        payload = canvas_service.controller.get_node(code_id).payload
        assert payload.language == "javascript"
        assert payload.code == "1+1"

    @pytest.mark.asyncio
    async def test_unknown_action(self, canvas_service):
        lesson_id = await open_lesson(canvas_service)
        with pytest.raises(InvalidActionException):
            canvas_service.request_action(lesson_id, "dance")

    def test_action_from_non_lesson(self, canvas_service):
        with pytest.raises(InvalidActionException):
            canvas_service.request_action(START_NODE_ID, "slides")

    def test_action_on_missing_node(self, canvas_service):
        with pytest.raises(NodeNotFoundException):
            canvas_service.request_action("ghost", "slides")


# ---------------------------------------------------------------------------
# hydrate_node
# ---------------------------------------------------------------------------

class TestHydrateNode:
    @pytest.mark.asyncio
    async def test_lesson_content(self, canvas_service, fake_generator):
        lesson_id = await open_lesson(canvas_service)

        assert await canvas_service.hydrate_node(lesson_id) is True

        payload = canvas_service.controller.get_node(lesson_id).payload
        assert payload.status == "ready"
        assert payload.lesson_content.markdown_content == "# Vectors"
        fake_generator.generate_lesson_content.assert_awaited_once_with("1", "Vectors", "Linear Algebra")

    @pytest.mark.asyncio
    async def test_already_hydrated_is_skipped(self, canvas_service, fake_generator):
        lesson_id = await open_lesson(canvas_service)
        await canvas_service.hydrate_node(lesson_id)

        assert await canvas_service.hydrate_node(lesson_id) is False
        assert fake_generator.generate_lesson_content.await_count == 1

    @pytest.mark.asyncio
    async def test_quiz_and_slides(self, canvas_service, fake_generator):
        controller = canvas_service.controller
        quiz = controller.create_node("quiz", {"topic": "Sets", "context": "unions"})
        slides = controller.create_node("slides", {"topic": "Sets"})

        await canvas_service.hydrate_node(quiz)
        await canvas_service.hydrate_node(slides)

        assert controller.get_node(quiz).payload.quiz_content[0].correct_index == 1
        assert controller.get_node(slides).payload.slide_content[0].title == "Intro"
        fake_generator.generate_quiz.assert_awaited_once_with("Sets", "unions")

    @pytest.mark.asyncio
    async def test_media_requires_url(self, canvas_service, fake_generator):
        controller = canvas_service.controller
        empty = controller.create_node("media")
        with_url = controller.create_node("media", {"media_url": "data:image/png;base64,aW1n"})

        assert await canvas_service.hydrate_node(empty) is False
        assert await canvas_service.hydrate_node(with_url) is True
        assert controller.get_node(with_url).payload.analysis == "A diagram of a vector."
        fake_generator.analyze_media.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_to_generate_for_code(self, canvas_service):
        code = canvas_service.controller.create_node("code")
        assert await canvas_service.hydrate_node(code) is False

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_empty_content(self, canvas_service, fake_generator):
        fake_generator.generate_lesson_content.side_effect = ContentGenerationError("generate_lesson_content", "down")
        lesson_id = await open_lesson(canvas_service)

        assert await canvas_service.hydrate_node(lesson_id) is True

        payload = canvas_service.controller.get_node(lesson_id).payload
        assert payload.status == "failed"
        assert payload.lesson_content.module_id == "1"
        assert payload.lesson_content.markdown_content == ""

    @pytest.mark.asyncio
    async def test_deleted_while_generating(self, canvas_service, fake_generator):
        controller = canvas_service.controller
        quiz = controller.create_node("quiz", {"topic": "Sets"})
        gate = asyncio.Event()

        async def slow_quiz(topic, context=None):
            await gate.wait()
            return []

        fake_generator.generate_quiz = AsyncMock(side_effect=slow_quiz)

        pending = asyncio.create_task(canvas_service.hydrate_node(quiz))
        await asyncio.sleep(0)
        assert controller.get_node(quiz).payload.status == "loading"

        controller.select(quiz)
        controller.delete_selected()
        gate.set()

        assert await pending is False
        assert not controller.has_node(quiz)

    @pytest.mark.asyncio
    async def test_missing_node_raises(self, canvas_service):
        with pytest.raises(NodeNotFoundException):
            await canvas_service.hydrate_node("ghost")


# ---------------------------------------------------------------------------
# run_code
# ---------------------------------------------------------------------------

class TestRunCode:
    @pytest.mark.asyncio
    async def test_stores_output(self, canvas_service, fake_generator):
        code = canvas_service.controller.create_node("code", {"code": "print(42)", "language": "python"})

        output = await canvas_service.run_code(code)

        assert output == "42\n"
        assert canvas_service.controller.get_node(code).payload.output == "42\n"
        fake_generator.execute_code.assert_awaited_once_with("print(42)", "python")

    @pytest.mark.asyncio
    async def test_error_becomes_output(self, canvas_service, fake_generator):
        fake_generator.execute_code.side_effect = ContentGenerationError("execute_code", "timeout")
        code = canvas_service.controller.create_node("code", {"code": "loop()"})

        output = await canvas_service.run_code(code)

        assert output.startswith("Error:")

    @pytest.mark.asyncio
    async def test_non_code_node(self, canvas_service):
        with pytest.raises(InvalidActionException):
            await canvas_service.run_code(START_NODE_ID)


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------

class TestChat:
    @pytest.mark.asyncio
    async def test_lesson_chat_stores_both_turns(self, canvas_service, fake_generator):
        lesson = await open_lesson(canvas_service)
        chunks = []

        reply = await canvas_service.chat(lesson, "What is a vector?", on_chunk=chunks.append)

        assert reply == "A vector has magnitude and direction."
        assert chunks == ["A vector has ", "magnitude and direction."]
        history = canvas_service.controller.get_node(lesson).payload.chat_history
        assert [(t.role, t.text) for t in history] == [
            ("user", "What is a vector?"),
            ("model", "A vector has magnitude and direction."),
        ]
        earlier, message, context = fake_generator.stream_chat.call_args.args
        assert earlier == []
        assert message == "What is a vector?"
        assert "Linear Algebra" in context

    @pytest.mark.asyncio
    async def test_earlier_turns_are_passed_along(self, canvas_service, fake_generator):
        lesson = await open_lesson(canvas_service)
        await canvas_service.chat(lesson, "First?")

        await canvas_service.chat(lesson, "Second?")

        earlier = fake_generator.stream_chat.call_args.args[0]
        assert [t.text for t in earlier] == ["First?", "A vector has magnitude and direction."]
        assert len(canvas_service.controller.get_node(lesson).payload.chat_history) == 4

    @pytest.mark.asyncio
    async def test_code_chat_opens_assistant(self, canvas_service, fake_generator):
        code = canvas_service.controller.create_node("code", {"code": "v = [1, 2]", "language": "python"})

        await canvas_service.chat(code, "Explain this")

        payload = canvas_service.controller.get_node(code).payload
        assert payload.is_assistant_open is True
        assert len(payload.chat_history) == 2
        assert "v = [1, 2]" in fake_generator.stream_chat.call_args.args[2]

    @pytest.mark.asyncio
    async def test_suggested_question(self, canvas_service, fake_generator):
        lesson = await open_lesson(canvas_service)
        await canvas_service.hydrate_node(lesson)

        await canvas_service.chat(lesson, suggestion_index=0)

        assert fake_generator.stream_chat.call_args.args[1] == "Why?"

    @pytest.mark.asyncio
    async def test_suggestion_out_of_range(self, canvas_service):
        lesson = await open_lesson(canvas_service)
        await canvas_service.hydrate_node(lesson)

        with pytest.raises(InvalidActionException):
            await canvas_service.chat(lesson, suggestion_index=5)
        assert canvas_service.controller.get_node(lesson).payload.chat_history == []

    @pytest.mark.asyncio
    async def test_empty_message(self, canvas_service, fake_generator):
        lesson = await open_lesson(canvas_service)
        with pytest.raises(InvalidActionException):
            await canvas_service.chat(lesson, "   ")
        fake_generator.stream_chat.assert_not_called()

    @pytest.mark.asyncio
    async def test_node_without_chat(self, canvas_service):
        quiz = canvas_service.controller.create_node("quiz", {"topic": "Sets"})
        with pytest.raises(InvalidActionException):
            await canvas_service.chat(quiz, "Hello")

    @pytest.mark.asyncio
    async def test_failure_becomes_reply(self, canvas_service, fake_generator):
        lesson = await open_lesson(canvas_service)

        async def broken(history, message, system_context=""):
            yield "partial"
            raise ContentGenerationError("stream_chat", "down")

        fake_generator.stream_chat.side_effect = broken

        reply = await canvas_service.chat(lesson, "Hello")

        assert reply == CHAT_FAILED_REPLY
        history = canvas_service.controller.get_node(lesson).payload.chat_history
        assert history[-1].text == CHAT_FAILED_REPLY

    @pytest.mark.asyncio
    async def test_deleted_while_streaming(self, canvas_service, fake_generator):
        controller = canvas_service.controller
        lesson = await open_lesson(canvas_service)

        async def delete_then_reply(history, message, system_context=""):
            controller.select(lesson)
            controller.delete_selected()
            yield "Too late."

        fake_generator.stream_chat.side_effect = delete_then_reply

        reply = await canvas_service.chat(lesson, "Hello")

        assert reply == "Too late."
        assert not controller.has_node(lesson)
