"""
Content generator for canvas nodes.

Async facade over the shared LLMService. Each method renders a prompt, runs
the blocking SDK call in the default executor and turns the reply into
canvas models, defaulting anything missing or malformed.
"""

import asyncio
import base64
import json
import logging
import time
from typing import Any, AsyncIterator, Optional

import httpx
from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from canvas.exceptions import CommandInterpretationError, ContentGenerationError
from canvas.models.course import Attachment, Course, LessonContent, QuizQuestion, Slide
from canvas.models.graph import Directive
from canvas.models.node import ChatTurn
from canvas.prompts.templates import (
    CHAT_TEMPLATE,
    COURSE_STRUCTURE_TEMPLATE,
    EXECUTE_CODE_TEMPLATE,
    INTERPRET_COMMAND_TEMPLATE,
    LESSON_CONTENT_TEMPLATE,
    MEDIA_ANALYSIS_PROMPT,
    QUIZ_TEMPLATE,
    SLIDES_TEMPLATE,
    STUDY_PLAN_TEMPLATE,
    truncate,
)
from shared.services.llm_service import LLMService, LLMServiceError

logger = logging.getLogger(__name__)

PLAN_FALLBACK_NOTICE = "Thinking model busy. Switching to fast mode...\n"
_END_OF_STREAM = object()


def _dict_items(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class ContentGenerator:
    """Produces directives, plans, courses and node content from the LLM."""

    def __init__(
        self,
        llm_service: LLMService,
        plan_model: Optional[str] = None,
        fast_model: Optional[str] = None,
        plan_thinking_budget: Optional[int] = 10000,
        media_fetch_timeout: float = 30.0,
    ):
        self.llm = llm_service
        self.fast_model = fast_model or llm_service.model_id
        self.plan_model = plan_model or self.fast_model
        self.plan_thinking_budget = plan_thinking_budget
        self.media_fetch_timeout = media_fetch_timeout

    async def _call(
        self,
        prompt: str,
        json_mode: bool = True,
        model_id: Optional[str] = None,
        inline_data: Optional[list[dict[str, str]]] = None,
    ) -> str:
        loop = asyncio.get_event_loop()
        result = await loop.run_in_executor(
            None,
            lambda: self.llm.call(
                prompt=prompt,
                json_mode=json_mode,
                model_id=model_id or self.fast_model,
                inline_data=inline_data,
            ),
        )
        return result.get("output_text") or ""

    async def _stream(self, prompt: str, **kwargs: Any) -> AsyncIterator[str]:
        """Pull chunks from the blocking provider stream one executor hop at a time."""
        loop = asyncio.get_event_loop()
        iterator = self.llm.stream(prompt, **kwargs)
        while True:
            chunk = await loop.run_in_executor(None, next, iterator, _END_OF_STREAM)
            if chunk is _END_OF_STREAM:
                break
            yield chunk

    # ─── Commands ─────────────────────────────────────────────────────

    async def interpret_command(self, command: str, context_topic: str = "") -> Directive:
        """Ask the model which node a free-text command should create."""
        prompt = INTERPRET_COMMAND_TEMPLATE.render(command=command, context=context_topic)
        try:
            text = await self._call(prompt)
        except LLMServiceError as e:
            raise CommandInterpretationError(command, f"model call failed: {e}") from e

        parsed = LLMService.safe_parse_json(text)
        if not isinstance(parsed, dict):
            raise CommandInterpretationError(command, "reply is not a JSON object")
        kind = parsed.get("type") or parsed.get("kind")
        if not kind:
            raise CommandInterpretationError(command, "reply has no node type")
        data = parsed.get("data")
        if not isinstance(data, dict):
            data = {}

        try:
            directive = Directive(kind=kind, data={to_snake(k): v for k, v in data.items()})
        except ValidationError as e:
            raise CommandInterpretationError(command, f"unsupported node type {kind!r}") from e

        logger.info(json.dumps({
            "step": "INTERPRET_COMMAND",
            "status": "complete",
            "kind": directive.kind,
            "data_keys": sorted(directive.data.keys()),
        }))
        return directive

    # ─── Course planning ──────────────────────────────────────────────

    async def generate_plan(self, topic: str, attachments: Optional[list[Attachment]] = None) -> AsyncIterator[str]:
        """
        Stream a study plan for `topic`, using attached files as context.

        Uses the thinking model; if it fails, yields a notice line and then the
        whole plan from the fast model.
        """
        attachments = attachments or []
        inline_data = [
            {"mime_type": att.mime_type, "data": att.data}
            for att in attachments
            if att.type == "file" and att.mime_type
        ]
        urls = [att.data for att in attachments if att.type == "url"]
        resources = f"\nConsider content from these resources: {', '.join(urls)}." if urls else ""
        focus = (
            f"Focus topic: {topic}."
            if topic
            else "Analyze the provided documents/images to determine the subject matter."
        )
        prompt = STUDY_PLAN_TEMPLATE.render(resources=resources, focus=focus)

        start_time = time.time()
        try:
            async for chunk in self._stream(
                prompt,
                model_id=self.plan_model,
                inline_data=inline_data or None,
                thinking_budget=self.plan_thinking_budget,
            ):
                yield chunk
            logger.info(json.dumps({
                "step": "GENERATE_PLAN",
                "status": "complete",
                "model": self.plan_model,
                "duration_ms": int((time.time() - start_time) * 1000),
            }))
            return
        except Exception as e:
            logger.warning(f"Thinking model failed, falling back to {self.fast_model}: {e}")

        yield PLAN_FALLBACK_NOTICE
        try:
            text = await self._call(prompt, json_mode=False, inline_data=inline_data or None)
        except LLMServiceError as e:
            raise ContentGenerationError("generate_plan", str(e)) from e
        yield text

    async def generate_course_structure(self, topic: str, plan: str) -> Course:
        prompt = COURSE_STRUCTURE_TEMPLATE.render(
            topic=topic or "this subject",
            plan=truncate(plan, 2000),
        )
        try:
            text = await self._call(prompt)
        except LLMServiceError as e:
            raise ContentGenerationError("generate_course_structure", str(e)) from e

        data = LLMService.safe_parse_json(text)
        if not isinstance(data, dict):
            data = {}
        data["modules"] = _dict_items(data.get("modules"))
        try:
            return Course.model_validate(data)
        except ValidationError as e:
            raise ContentGenerationError("generate_course_structure", "malformed course") from e

    # ─── Node content ─────────────────────────────────────────────────

    async def generate_lesson_content(self, module_id: str, module_title: str, topic: str) -> LessonContent:
        prompt = LESSON_CONTENT_TEMPLATE.render(module_title=module_title, topic=topic)
        try:
            text = await self._call(prompt)
        except LLMServiceError as e:
            raise ContentGenerationError("generate_lesson_content", str(e)) from e

        data = LLMService.safe_parse_json(text)
        if not isinstance(data, dict):
            data = {}
        for key in ("slides", "quiz"):
            data[key] = _dict_items(data.get(key))
        suggested = data.get("suggestedQuestions", data.get("suggested_questions"))
        data["suggested_questions"] = [q for q in suggested if isinstance(q, str)] if isinstance(suggested, list) else []
        data.pop("suggestedQuestions", None)
        data["module_id"] = module_id
        data.pop("moduleId", None)
        try:
            return LessonContent.model_validate(data)
        except ValidationError as e:
            raise ContentGenerationError("generate_lesson_content", "malformed lesson") from e

    async def generate_quiz(self, topic: str, context: Optional[str] = None) -> list[QuizQuestion]:
        prompt = QUIZ_TEMPLATE.render(
            topic=topic,
            context=f"Context: {truncate(context, 500)}" if context else "",
        )
        items = await self._generate_list("generate_quiz", prompt, "quiz")
        return [QuizQuestion.model_validate(item) for item in items]

    async def generate_slides(self, topic: str, context: Optional[str] = None) -> list[Slide]:
        prompt = SLIDES_TEMPLATE.render(
            topic=topic,
            context=f"Context: {truncate(context, 500)}" if context else "",
        )
        items = await self._generate_list("generate_slides", prompt, "slides")
        return [Slide.model_validate(item) for item in items]

    async def _generate_list(self, operation: str, prompt: str, wrapper_key: str) -> list[dict]:
        """Accept either a bare JSON array or an object wrapping it under `wrapper_key`."""
        try:
            text = await self._call(prompt)
        except LLMServiceError as e:
            raise ContentGenerationError(operation, str(e)) from e
        data = LLMService.safe_parse_json(text, default=[])
        if isinstance(data, dict):
            data = data.get(wrapper_key, [])
        return _dict_items(data)

    async def execute_code(self, code: str, language: str = "python") -> str:
        """Simulated interpreter run: returns the program output or error text."""
        prompt = EXECUTE_CODE_TEMPLATE.render(code=code, language=language)
        try:
            return await self._call(prompt, json_mode=False)
        except LLMServiceError as e:
            raise ContentGenerationError("execute_code", str(e)) from e

    # ─── Chat ─────────────────────────────────────────────────────────

    async def stream_chat(
        self,
        history: list[ChatTurn],
        message: str,
        system_context: str = "",
    ) -> AsyncIterator[str]:
        """Stream a tutor reply to `message`, given the earlier turns of the conversation."""
        transcript = "\n".join(
            f"{'Student' if turn.role == 'user' else 'Tutor'}: {turn.text}" for turn in history
        )
        prompt = CHAT_TEMPLATE.render(
            system_context=system_context,
            transcript=transcript or "(none)",
            message=message,
        )
        try:
            async for chunk in self._stream(prompt, model_id=self.fast_model):
                yield chunk
        except LLMServiceError as e:
            raise ContentGenerationError("stream_chat", str(e)) from e

    async def analyze_media(self, url: str, media_type: str = "image", prompt: str = MEDIA_ANALYSIS_PROMPT) -> str:
        """
        Summarize an image or video for study purposes.

        Never raises: failures come back as an "Analysis failed" message that is
        shown in place of the analysis.
        """
        try:
            mime_type, data = await self._load_media(url, media_type)
            text = await self._call(
                prompt,
                json_mode=False,
                inline_data=[{"mime_type": mime_type, "data": data}],
            )
            return text or "No analysis provided."
        except Exception as e:
            logger.error(f"Media analysis error for {url[:80]}: {e}")
            return f"Analysis failed: {str(e) or 'Unknown error'}. Note: Remote URLs may block direct downloads."

    async def _load_media(self, url: str, media_type: str) -> tuple[str, str]:
        """Return (mime_type, base64 data) from a data URL or a remote fetch."""
        mime_type = "image/jpeg" if media_type == "image" else "video/mp4"
        if url.startswith("data:"):
            meta, _, data = url.partition(",")
            declared = meta[len("data:"):].split(";")[0]
            return declared or mime_type, data

        async with httpx.AsyncClient(timeout=self.media_fetch_timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return content_type or mime_type, base64.b64encode(response.content).decode("ascii")


def build_content_generator(settings: Any) -> ContentGenerator:
    """Wire a ContentGenerator from application settings."""
    llm_service = LLMService(
        provider=settings.llm_provider,
        model_id=settings.llm_model,
        gemini_api_key=settings.gemini_api_key or None,
        openai_api_key=settings.openai_api_key or None,
    )
    return ContentGenerator(
        llm_service,
        plan_model=settings.plan_model if settings.llm_provider == "google" else settings.llm_model,
        fast_model=settings.llm_model,
        plan_thinking_budget=settings.plan_thinking_budget if settings.llm_provider == "google" else None,
    )
