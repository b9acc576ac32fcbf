"""
LLM Service: centralized interface for all LLM API calls.

Routes calls to the configured provider (Google Gemini or OpenAI) based on
provider + model_id from settings.

The primary entry points are `call()` for a single response and `stream()`
for incremental text fragments.
"""

import base64
import json
import time
from typing import Dict, Any, Iterator, Optional
from openai import OpenAI, OpenAIError, RateLimitError, APITimeoutError
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
import logging

logger = logging.getLogger(__name__)

# Gemini status codes worth retrying
_RETRYABLE_GEMINI_CODES = {429, 500, 503}


class LLMService:
    """
    Service for making LLM API calls with retry logic and error handling.

    `provider` selects the SDK ("google" or "openai"); `model_id` is the
    default model, overridable per call.
    """

    def __init__(
        self,
        *,
        provider: str,
        model_id: str,
        gemini_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        timeout: int = 60,
    ):
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.timeout = timeout
        self.provider = provider
        self.model_id = model_id

        if gemini_api_key:
            self.gemini_client = genai.Client(api_key=gemini_api_key)
            self.has_gemini = True
        else:
            self.gemini_client = None
            self.has_gemini = False

        if openai_api_key:
            self.openai_client = OpenAI(api_key=openai_api_key)
            self.has_openai = True
        else:
            self.openai_client = None
            self.has_openai = False

    # ─── Primary entry points ─────────────────────────────────────────

    def call(
        self,
        prompt: str,
        json_mode: bool = True,
        model_id: Optional[str] = None,
        inline_data: Optional[list[Dict[str, str]]] = None,
        temperature: float = 0.7,
    ) -> Dict[str, Any]:
        """
        Generic LLM call. Routes to the correct API based on self.provider.

        `inline_data` is a list of {"mime_type", "data"} dicts where data is
        base64 text (attached files, images, video frames).

        Always returns: {output_text: str, reasoning: None}
        """
        model = model_id or self.model_id
        if self.provider == "google":
            text = self._call_gemini(
                prompt, model_name=model, json_mode=json_mode,
                inline_data=inline_data, temperature=temperature,
            )
        else:
            if inline_data:
                logger.warning(f"{model} ignores {len(inline_data)} inline attachment(s)")
            text = self._call_chat_completions(
                prompt, model, json_mode=json_mode, temperature=temperature
            )
        return {"output_text": text or "", "reasoning": None}

    def stream(
        self,
        prompt: str,
        model_id: Optional[str] = None,
        inline_data: Optional[list[Dict[str, str]]] = None,
        thinking_budget: Optional[int] = None,
    ) -> Iterator[str]:
        """Yield text fragments as the provider produces them."""
        model = model_id or self.model_id
        logger.info(json.dumps({
            "step": "LLM_STREAM",
            "status": "starting",
            "model": model,
            "params": {
                "attachments": len(inline_data or []),
                "thinking_budget": thinking_budget,
            }
        }))

        if self.provider == "google":
            if not self.has_gemini:
                raise LLMServiceError("Gemini API key not configured")
            config: Dict[str, Any] = {}
            if thinking_budget:
                config["thinking_config"] = {"thinking_budget": thinking_budget}
            try:
                for chunk in self.gemini_client.models.generate_content_stream(
                    model=model,
                    contents=self._build_gemini_contents(prompt, inline_data),
                    config=config or None,
                ):
                    if chunk.text:
                        yield chunk.text
            except genai_errors.APIError as e:
                raise LLMServiceError(f"{model} stream error: {str(e)}") from e
        else:
            if not self.has_openai:
                raise LLMServiceError("OpenAI API key not configured")
            try:
                response = self.openai_client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    stream=True,
                    timeout=self.timeout,
                )
                for chunk in response:
                    if chunk.choices and chunk.choices[0].delta.content:
                        yield chunk.choices[0].delta.content
            except OpenAIError as e:
                raise LLMServiceError(f"{model} stream error: {str(e)}") from e

    # ─── OpenAI Chat Completions API ──────────────────────────────────

    def _call_chat_completions(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        json_mode: bool = True,
    ) -> str:
        """Call OpenAI Chat Completions API. Returns raw text."""
        if not self.has_openai:
            raise LLMServiceError("OpenAI API key not configured")

        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": model,
            "params": {"json_mode": json_mode}
        }))

        def _api_call():
            kwargs = {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "max_completion_tokens": max_tokens,
                "temperature": temperature,
                "timeout": self.timeout,
            }
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = self.openai_client.chat.completions.create(**kwargs)
            return response.choices[0].message.content

        return self._execute_with_retry(_api_call, model)

    # ─── Gemini ───────────────────────────────────────────────────────

    def _call_gemini(
        self,
        prompt: str,
        model_name: str = "gemini-2.5-flash",
        temperature: float = 0.7,
        json_mode: bool = True,
        inline_data: Optional[list[Dict[str, str]]] = None,
    ) -> str:
        """Call Google Gemini. Returns raw text."""
        if not self.has_gemini:
            raise LLMServiceError("Gemini API key not configured")

        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": model_name,
            "params": {
                "temperature": temperature,
                "json_mode": json_mode,
                "attachments": len(inline_data or []),
            }
        }))

        def _api_call():
            config = {"temperature": temperature}
            if json_mode:
                config["response_mime_type"] = "application/json"
            response = self.gemini_client.models.generate_content(
                model=model_name,
                contents=self._build_gemini_contents(prompt, inline_data),
                config=config,
            )
            return response.text

        return self._execute_with_retry(_api_call, f"Gemini-{model_name}")

    @staticmethod
    def _build_gemini_contents(prompt: str, inline_data: Optional[list[Dict[str, str]]]) -> Any:
        if not inline_data:
            return prompt
        parts = [
            types.Part.from_bytes(
                data=base64.b64decode(item["data"]),
                mime_type=item["mime_type"],
            )
            for item in inline_data
        ]
        parts.append(types.Part.from_text(text=prompt))
        return parts

    # ─── Helpers ──────────────────────────────────────────────────────

    def _execute_with_retry(self, api_call_fn, model_name: str) -> Any:
        """Execute API call with exponential backoff retry logic."""
        last_error = None
        delay = self.initial_retry_delay
        start_time = time.time()

        for attempt in range(self.max_retries):
            try:
                result = api_call_fn()
                duration_ms = int((time.time() - start_time) * 1000)

                logger.info(json.dumps({
                    "step": "LLM_CALL",
                    "status": "complete",
                    "model": model_name,
                    "output": {"response_length": len(str(result)) if result else 0},
                    "duration_ms": duration_ms,
                    "attempts": attempt + 1
                }))

                if attempt > 0:
                    logger.info(f"{model_name} call succeeded on attempt {attempt + 1}")
                return result

            except (RateLimitError, APITimeoutError) as e:
                last_error = e
                logger.warning(
                    f"{model_name} rate limit or timeout (attempt {attempt + 1}/{self.max_retries}). "
                    f"Retrying in {delay}s..."
                )
                time.sleep(delay)
                delay *= 2

            except genai_errors.APIError as e:
                if getattr(e, "code", None) in _RETRYABLE_GEMINI_CODES:
                    last_error = e
                    logger.warning(
                        f"{model_name} returned {e.code} (attempt {attempt + 1}/{self.max_retries}). "
                        f"Retrying in {delay}s..."
                    )
                    time.sleep(delay)
                    delay *= 2
                    continue
                logger.error(f"{model_name} API error: {str(e)}")
                raise LLMServiceError(f"{model_name} API error: {str(e)}") from e

            except OpenAIError as e:
                last_error = e
                logger.error(f"{model_name} API error: {str(e)}")
                raise LLMServiceError(f"{model_name} API error: {str(e)}") from e

            except LLMServiceError:
                raise

            except Exception as e:
                last_error = e
                logger.error(f"{model_name} unexpected error: {str(e)}")
                raise LLMServiceError(f"{model_name} unexpected error: {str(e)}") from e

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "failed",
            "model": model_name,
            "error": str(last_error),
            "duration_ms": duration_ms,
            "attempts": self.max_retries
        }))
        raise LLMServiceError(
            f"{model_name} failed after {self.max_retries} attempts. Last error: {str(last_error)}"
        ) from last_error

    @staticmethod
    def safe_parse_json(text: Optional[str], default: Any = None) -> Any:
        """
        Parse JSON, repairing responses that were cut off mid-object.

        Truncated objects get closing quotes and braces appended before a
        second attempt. Anything still unparseable returns `default` ({} when
        not given).
        """
        fallback = {} if default is None else default
        if not text:
            return fallback
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            repaired = text.strip()
            if repaired.startswith("{") and not repaired.endswith("}"):
                for closer in ('"}', "}", '"]}', "]}"):
                    for depth in range(1, 6):
                        try:
                            return json.loads(repaired + closer * depth)
                        except json.JSONDecodeError:
                            continue
            logger.warning(f"Could not repair JSON response: {text[:200]}...")
            return fallback


class LLMServiceError(Exception):
    """Custom exception for LLM service errors"""
    pass
