"""Canvas application service: course start/resume, module and lesson actions, content hydration, tutor chat."""

import json
import logging
import time
from typing import Any, Callable, Optional

from canvas.models.course import Attachment, Course, LessonContent
from canvas.models.node import (
    DEFAULT_TOPIC,
    START_NODE_ID,
    ChatTurn,
    CodePayload,
    CurriculumPayload,
    LessonPayload,
    MediaPayload,
    Node,
    Position,
    QuizPayload,
    SlidesPayload,
)
from canvas.models.session import Session
from canvas.prompts.templates import CODE_TUTOR_CONTEXT_TEMPLATE, LESSON_CHAT_CONTEXT_TEMPLATE, truncate
from canvas.repositories.session_store import SessionStore
from canvas.services.content_generator import ContentGenerator
from canvas.services.graph_controller import GraphController
from shared.utils.exceptions import InvalidActionException, SessionNotFoundException

logger = logging.getLogger(__name__)

COURSE_FAILED_NOTICE = "Failed to generate course. Please try again."
CHAT_FAILED_REPLY = "Error: Could not connect to the tutor."
CURRICULUM_POSITION = Position(x=600, y=0)
LESSON_ACTIONS = {"slides", "code"}

ProgressCallback = Callable[[str], None]
ChunkCallback = Callable[[str], None]


class CanvasService:
    """Coordinates one canvas with its content generator and the saved session list."""

    def __init__(self, controller: GraphController, generator: ContentGenerator, store: SessionStore):
        self.controller = controller
        self.generator = generator
        self.store = store
        self.sessions: list[Session] = store.load()
        self.sync_start_history()

    # ─── Saved sessions ───────────────────────────────────────────────

    def list_sessions(self) -> list[Session]:
        return list(self.sessions)

    def get_session(self, session_id: str) -> Session:
        """Look up a session, falling back to the store for ones saved by other canvases."""
        for session in [*self.sessions, *self.store.load()]:
            if session.id == session_id:
                return session
        raise SessionNotFoundException(session_id)

    def clear_history(self) -> None:
        self.sessions = []
        self.store.clear()
        self.sync_start_history()

    def _save_session(self, topic: str, course: Course) -> Session:
        session = Session(topic=topic, course=course)
        self.sessions = [session, *self.sessions]
        self.store.save(self.sessions)
        self.sync_start_history()
        return session

    def sync_start_history(self) -> None:
        self.controller.patch_payload(START_NODE_ID, {"history": [s.summary() for s in self.sessions]})

    def undo(self) -> bool:
        """Undo on the canvas; the start node keeps listing the stored sessions."""
        restored = self.controller.undo()
        if restored:
            self.sync_start_history()
        return restored

    def redo(self) -> bool:
        restored = self.controller.redo()
        if restored:
            self.sync_start_history()
        return restored

    # ─── Course lifecycle ─────────────────────────────────────────────

    async def start_course(
        self,
        topic: str,
        attachments: Optional[list[Attachment]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[str]:
        """
        Plan and structure a course, save it as a session and open its curriculum node.

        Returns the curriculum node id, or None after publishing a failure notice.
        """
        attachments = attachments or []
        effective_topic = (topic or "").strip() or ("Uploaded Materials" if attachments else "General Study")
        progress = on_progress or (lambda status: None)
        start_time = time.time()

        try:
            progress("ANALYZING & PLANNING...")
            plan = ""
            async for chunk in self.generator.generate_plan(effective_topic, attachments):
                plan += chunk

            progress("STRUCTURING COURSE...")
            course = await self.generator.generate_course_structure(effective_topic, plan)
        except Exception as e:
            logger.error(json.dumps({
                "step": "START_COURSE",
                "status": "failed",
                "topic": effective_topic,
                "error": str(e),
            }))
            self.controller.notify(COURSE_FAILED_NOTICE, level="error")
            return None

        self._save_session(effective_topic, course)
        node_id = self.add_curriculum_node(course)
        logger.info(json.dumps({
            "step": "START_COURSE",
            "status": "complete",
            "topic": effective_topic,
            "modules": len(course.modules),
            "duration_ms": int((time.time() - start_time) * 1000),
        }))
        return node_id

    def add_curriculum_node(self, course: Course) -> str:
        return self.controller.create_node(
            "curriculum",
            {"course": course},
            position=CURRICULUM_POSITION,
            parent_id=START_NODE_ID,
        )

    def resume_session(self, session_id: str) -> str:
        """Rebuild a fresh canvas from a saved session's course."""
        session = self.get_session(session_id)
        self.controller.push_history()
        self.controller.reset_to_start()
        return self.add_curriculum_node(session.course)

    # ─── Node actions ─────────────────────────────────────────────────

    def select_module(self, curriculum_node_id: str, module_id: str) -> str:
        """Open a lesson node for one module of a curriculum."""
        node = self.controller.get_node(curriculum_node_id)
        if not isinstance(node.payload, CurriculumPayload):
            raise InvalidActionException(curriculum_node_id, "select_module")
        course = node.payload.course
        module = course.get_module(module_id)
        if module is None:
            raise InvalidActionException(curriculum_node_id, f"select_module:{module_id}")

        return self.controller.create_node(
            "lesson",
            {"module_title": module.title, "module_id": module.id, "topic": course.title},
            parent_id=curriculum_node_id,
        )

    def request_action(self, node_id: str, action: str, data: Optional[dict[str, Any]] = None) -> str:
        """Spawn a slides or code node linked to a lesson, carrying its topic and reading."""
        node = self.controller.get_node(node_id)
        kind = (action or "").strip().lower()
        if kind not in LESSON_ACTIONS or not isinstance(node.payload, LessonPayload):
            raise InvalidActionException(node_id, action)

        payload: dict[str, Any] = {"topic": node.topic}
        if node.context_text:
            payload["context"] = node.context_text
        payload.update(data or {})
        return self.controller.create_node(kind, payload, parent_id=node_id)

    # ─── Content ──────────────────────────────────────────────────────

    async def hydrate_node(self, node_id: str) -> bool:
        """
        Generate missing content for a node and patch it in.

        Generation failures leave empty content with status "failed". Returns
        False when there was nothing to generate or the node was deleted before
        the result arrived.
        """
        node = self.controller.get_node(node_id)
        if not self._needs_content(node):
            return False

        self.controller.patch_payload(node_id, {"status": "loading"})
        try:
            updates = await self._generate_content(node)
            updates["status"] = "ready"
        except Exception as e:
            logger.error(json.dumps({
                "step": "HYDRATE_NODE",
                "status": "failed",
                "node_id": node_id,
                "kind": node.kind,
                "error": str(e),
            }))
            updates = self._fallback_content(node)
            updates["status"] = "failed"

        applied = self.controller.patch_payload(node_id, updates)
        if not applied:
            logger.info(f"Discarded generated content for deleted node {node_id}")
        return applied

    @staticmethod
    def _needs_content(node: Node) -> bool:
        payload = node.payload
        if isinstance(payload, LessonPayload):
            return payload.lesson_content is None
        if isinstance(payload, QuizPayload):
            return not payload.quiz_content
        if isinstance(payload, SlidesPayload):
            return not payload.slide_content
        if isinstance(payload, MediaPayload):
            return bool(payload.media_url)
        return False

    async def _generate_content(self, node: Node) -> dict[str, Any]:
        payload = node.payload
        if isinstance(payload, LessonPayload):
            content = await self.generator.generate_lesson_content(
                payload.module_id or node.id,
                payload.module_title or payload.topic,
                payload.topic,
            )
            return {"lesson_content": content}
        if isinstance(payload, QuizPayload):
            return {"quiz_content": await self.generator.generate_quiz(payload.topic, payload.context)}
        if isinstance(payload, SlidesPayload):
            return {"slide_content": await self.generator.generate_slides(payload.topic, payload.context)}
        if isinstance(payload, MediaPayload):
            return {"analysis": await self.generator.analyze_media(payload.media_url, payload.media_type)}
        return {}

    @staticmethod
    def _fallback_content(node: Node) -> dict[str, Any]:
        payload = node.payload
        if isinstance(payload, LessonPayload):
            return {"lesson_content": LessonContent(module_id=payload.module_id or node.id)}
        if isinstance(payload, QuizPayload):
            return {"quiz_content": []}
        if isinstance(payload, SlidesPayload):
            return {"slide_content": []}
        return {}

    async def run_code(self, node_id: str) -> str:
        """Run a code node's source through the interpreter prompt and store the output."""
        node = self.controller.get_node(node_id)
        if not isinstance(node.payload, CodePayload):
            raise InvalidActionException(node_id, "run")
        try:
            output = await self.generator.execute_code(node.payload.code, node.payload.language)
        except Exception as e:
            logger.error(f"Code execution failed for {node_id}: {e}")
            output = f"Error: {e}"
        self.controller.patch_payload(node_id, {"output": output})
        return output

    # ─── Tutor chat ───────────────────────────────────────────────────

    async def chat(
        self,
        node_id: str,
        message: Optional[str] = None,
        suggestion_index: Optional[int] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> str:
        """
        Ask the tutor attached to a lesson or code node.

        The student turn is stored before the model is called. The reply is
        appended only if the node still exists when the stream finishes.
        `suggestion_index` sends one of the lesson's suggested questions.
        """
        node = self.controller.get_node(node_id)
        payload = node.payload
        if not isinstance(payload, (LessonPayload, CodePayload)):
            raise InvalidActionException(node_id, "chat")
        if suggestion_index is not None:
            message = self._suggested_question(node, suggestion_index)
        text = (message or "").strip()
        if not text:
            raise InvalidActionException(node_id, "chat:empty")

        earlier = list(payload.chat_history)
        updates: dict[str, Any] = {"chat_history": [*earlier, ChatTurn(role="user", text=text)]}
        if isinstance(payload, CodePayload):
            updates["is_assistant_open"] = True
        self.controller.patch_payload(node_id, updates)

        reply = ""
        try:
            async for chunk in self.generator.stream_chat(earlier, text, self._chat_context(node)):
                reply += chunk
                if on_chunk:
                    on_chunk(chunk)
        except Exception as e:
            logger.error(json.dumps({
                "step": "CHAT",
                "status": "failed",
                "node_id": node_id,
                "error": str(e),
            }))
            reply = CHAT_FAILED_REPLY

        if not self.controller.has_node(node_id):
            logger.info(f"Discarded tutor reply for deleted node {node_id}")
            return reply
        history = getattr(self.controller.get_node(node_id).payload, "chat_history", [])
        self.controller.patch_payload(node_id, {"chat_history": [*history, ChatTurn(role="model", text=reply)]})
        return reply

    @staticmethod
    def _suggested_question(node: Node, index: int) -> str:
        content = getattr(node.payload, "lesson_content", None)
        questions = content.suggested_questions if content else []
        if not 0 <= index < len(questions):
            raise InvalidActionException(node.id, f"chat:suggestion:{index}")
        return questions[index]

    @staticmethod
    def _chat_context(node: Node) -> str:
        payload = node.payload
        if isinstance(payload, CodePayload):
            return CODE_TUTOR_CONTEXT_TEMPLATE.render(language=payload.language, code=truncate(payload.code, 4000))
        return LESSON_CHAT_CONTEXT_TEMPLATE.render(
            context=truncate(node.context_text, 1000),
            topic=node.topic or DEFAULT_TOPIC,
        )
