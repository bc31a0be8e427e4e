"""Gemini client for remote-enhanced analysis.

Only this module imports google-generativeai. The remote backend talks to it
through GeminiTransport and never sees SDK types or SDK exceptions.

One call is one request: there are no internal retries. The orchestrator
bounds every remote call with its own timeout and treats a failure as one
step of the cascade.

Example:
    >>> client = get_client()
    >>> response = await client.generate_json_async(prompt, system_instruction=system)
    >>> response.data["sarcasm_score"]
    72

Logging rules: API keys, prompts and responses are never logged. Every
logger in this module carries a RedactingFilter in case one slips through.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Literal

from pydantic import BaseModel, Field

from chalamandra.config import APIKeyNotFoundError, AppConfig, get_api_key, get_config

try:
    import google.generativeai as genai
    from google.api_core import exceptions as google_exceptions
    from google.generativeai.types import GenerationConfig, HarmBlockThreshold, HarmCategory

    GENAI_AVAILABLE = True
except ImportError:
    genai = None  # type: ignore
    google_exceptions = None  # type: ignore
    GenerationConfig = None  # type: ignore
    HarmBlockThreshold = None  # type: ignore
    HarmCategory = None  # type: ignore
    GENAI_AVAILABLE = False


# =============================================================================
# Secret Redaction
# =============================================================================


class RedactingFilter(logging.Filter):
    """Replace anything that looks like a credential with [REDACTED].

    Handles ``api_key=...``-style assignments, bearer tokens and bare Gemini
    keys, in the message and in its arguments.
    """

    ASSIGNMENT = re.compile(
        r"""((?:api[_-]?key|token|secret|password)\s*[=:]\s*|bearer\s+)["']?[\w\-]{16,}["']?""",
        re.IGNORECASE,
    )
    GEMINI_KEY = re.compile(r"\bAIza[\w\-]{30,}")

    def redact(self, text: str) -> str:
        text = self.ASSIGNMENT.sub(r"\1[REDACTED]", text)
        return self.GEMINI_KEY.sub("[REDACTED]", text)

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(self.redact(a) if isinstance(a, str) else a for a in record.args)
        return True


logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())


# =============================================================================
# Exception Hierarchy
# =============================================================================


class AIClientError(Exception):
    """Base exception for Gemini client failures.

    Subclasses set ``default_message``. Messages are safe to log.

    Attributes:
        message: Description of the failure.
        original_error: SDK exception that caused this one, if any.
    """

    default_message = "Gemini request failed"

    def __init__(self, message: str | None = None, original_error: Exception | None = None) -> None:
        self.message = message or self.default_message
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


UnavailableReason = Literal["disabled", "no_api_key", "sdk_missing", "offline"]


class AIUnavailableError(AIClientError):
    """The client cannot be built: SDK missing, remote disabled or no key."""

    REASONS: dict[str, str] = {
        "disabled": "Remote analysis is disabled in configuration",
        "no_api_key": "No Gemini API key configured",
        "sdk_missing": "google-generativeai is not installed",
        "offline": "Cannot reach the Gemini API",
    }

    def __init__(self, reason: UnavailableReason, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or self.REASONS.get(reason, f"Gemini unavailable: {reason}"))


class AIAuthenticationError(AIClientError):
    default_message = "Gemini rejected the API key"


class AIRateLimitError(AIClientError):
    default_message = "Gemini rate limit reached"


class AIQuotaExceededError(AIClientError):
    default_message = "Gemini quota exhausted"


class AIServerError(AIClientError):
    """5xx from the service. ``status_code`` is set when the SDK or message carries one."""

    default_message = "Gemini service error"

    def __init__(
        self,
        message: str | None = None,
        original_error: Exception | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, original_error)
        self.status_code = status_code


class AIBadRequestError(AIClientError):
    """Malformed prompt, bad parameters or unknown model."""

    default_message = "Gemini rejected the request"


class AITimeoutError(AIClientError):
    default_message = "Gemini reported a deadline expiry"


class ContentBlockedError(AIClientError):
    """The message was refused by Gemini's safety filters."""

    default_message = "Gemini blocked the content"

    def __init__(
        self,
        message: str | None = None,
        original_error: Exception | None = None,
        blocked_reason: str | None = None,
    ) -> None:
        super().__init__(message, original_error)
        self.blocked_reason = blocked_reason


# SDK exception class names, checked in order.
SDK_ERROR_MAP: list[tuple[tuple[str, ...], type[AIClientError]]] = [
    (("PermissionDenied", "Unauthenticated"), AIAuthenticationError),
    (("DeadlineExceeded",), AITimeoutError),
    (("InvalidArgument", "NotFound"), AIBadRequestError),
    (("InternalServerError", "ServiceUnavailable", "BadGateway"), AIServerError),
]

# Message patterns for errors that arrive without a typed SDK exception.
MESSAGE_ERROR_MAP: list[tuple[re.Pattern[str], type[AIClientError]]] = [
    (re.compile(r"blocked|safety"), ContentBlockedError),
    (re.compile(r"\b(?:401|403)\b|unauthori[sz]ed|forbidden"), AIAuthenticationError),
    (re.compile(r"\b429\b|rate.?limit|too many requests"), AIRateLimitError),
    (re.compile(r"quota|billing"), AIQuotaExceededError),
    (re.compile(r"timeout|timed out|deadline"), AITimeoutError),
    (re.compile(r"\b5\d\d\b|unavailable"), AIServerError),
]

STATUS_CODE = re.compile(r"\b(5\d\d)\b")


# =============================================================================
# Responses
# =============================================================================


class AIResponse(BaseModel):
    """Text answer from one generation call."""

    text: str
    model: str
    total_tokens: int | None = None
    finish_reason: str | None = None
    latency_ms: float | None = None


class StructuredAIResponse(BaseModel):
    """JSON answer from one generation call.

    A reply that cannot be parsed is still returned, with
    ``parse_success=False`` and the reason in ``parse_error``.
    """

    data: dict[str, Any] | list[Any] = Field(default_factory=dict)
    raw_text: str
    model: str
    latency_ms: float | None = None
    parse_success: bool = True
    parse_error: str | None = None


FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
JSON_SPAN = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def _container(data: Any) -> tuple[dict[str, Any] | list[Any], str | None]:
    if isinstance(data, (dict, list)):
        return data, None
    return {}, f"JSON answer is a {type(data).__name__}, not an object or array"


def extract_json(text: str) -> tuple[dict[str, Any] | list[Any], str | None]:
    """Parse JSON out of model output.

    Tries the whole text, then a fenced code block, then the outermost
    object or array span.

    Returns:
        (data, error). ``error`` is None on success, ``data`` is ``{}`` on
        failure. A bare scalar such as ``42`` is a failure.
    """
    text = text.strip()
    try:
        return _container(json.loads(text))
    except json.JSONDecodeError as e:
        reason = e.msg

    for label, pattern in (("code block", FENCED_BLOCK), ("extracted content", JSON_SPAN)):
        match = pattern.search(text)
        if match is None:
            continue
        try:
            return _container(json.loads(match.group(1)))
        except json.JSONDecodeError:
            return {}, f"JSON parse error in {label}: {reason}"

    return {}, f"JSON parse error: {reason}"


def _safety_settings() -> dict[Any, Any]:
    """Block only high-severity harassment and hate speech.

    Hostile workplace messages are the input this tool exists for.
    """
    if HarmCategory is None or HarmBlockThreshold is None:
        return {}
    lenient = HarmBlockThreshold.BLOCK_ONLY_HIGH
    strict = HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE
    return {
        HarmCategory.HARM_CATEGORY_HARASSMENT: lenient,
        HarmCategory.HARM_CATEGORY_HATE_SPEECH: lenient,
        HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: strict,
        HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: strict,
    }


# =============================================================================
# Client
# =============================================================================


class AIClient:
    """Async Gemini client.

    Args:
        config: Application configuration. Defaults to get_config().
        api_key: Explicit key. Defaults to get_api_key().

    Raises:
        AIUnavailableError: If the SDK is missing, remote analysis is
            disabled, or no key can be found. No request is made here.
    """

    JSON_ONLY = (
        "Answer with a single JSON object and nothing else: "
        "no markdown fences, no commentary."
    )

    def __init__(self, config: AppConfig | None = None, api_key: str | None = None) -> None:
        self._config = config or get_config()
        self._settings = self._config.remote
        self._model: Any = None
        self.model_name = self._settings.model_name

        if not GENAI_AVAILABLE:
            raise AIUnavailableError("sdk_missing")
        if not self._settings.enabled:
            raise AIUnavailableError("disabled")
        if api_key is None:
            try:
                api_key = get_api_key().get_secret_value()
            except APIKeyNotFoundError as e:
                raise AIUnavailableError("no_api_key") from e

        genai.configure(api_key=api_key)
        logger.info(f"Gemini client ready (model {self.model_name})")

    @property
    def model(self) -> Any:
        if self._model is None:
            self._model = genai.GenerativeModel(
                model_name=self.model_name, safety_settings=_safety_settings()
            )
        return self._model

    def _generation_config(self) -> Any:
        params = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_output_tokens,
        }
        return GenerationConfig(**params) if GenerationConfig is not None else params

    async def generate_async(self, prompt: str, system_instruction: str | None = None) -> AIResponse:
        """Send one prompt and return the text answer.

        The system instruction goes first as a user turn acknowledged by the
        model, which works for every Gemini model version.

        Raises:
            AIClientError: Any SDK failure, mapped by _map_exception().
        """
        turns: list[tuple[str, str]] = []
        if system_instruction:
            turns += [("user", system_instruction), ("model", "Understood.")]
        turns.append(("user", prompt))
        contents = [{"role": role, "parts": [text]} for role, text in turns]

        started = time.perf_counter()
        try:
            raw = await self.model.generate_content_async(
                contents, generation_config=self._generation_config()
            )
        except Exception as e:
            mapped = self._map_exception(e)
            logger.warning(f"Gemini call failed: {type(mapped).__name__}")
            raise mapped from e
        latency_ms = (time.perf_counter() - started) * 1000

        try:
            text = raw.text
        except ValueError as e:
            block_reason = getattr(getattr(raw, "prompt_feedback", None), "block_reason", None)
            if block_reason:
                raise ContentBlockedError(blocked_reason=str(block_reason)) from e
            text = ""

        usage = getattr(raw, "usage_metadata", None)
        candidates = getattr(raw, "candidates", None) or []
        finish = getattr(candidates[0], "finish_reason", None) if candidates else None

        response = AIResponse(
            text=text,
            model=self.model_name,
            total_tokens=getattr(usage, "total_token_count", None) if usage else None,
            finish_reason=str(getattr(finish, "name", finish)) if finish else None,
            latency_ms=latency_ms,
        )
        logger.debug(f"Gemini answered: {response.total_tokens or '?'} tokens in {latency_ms:.0f}ms")
        return response

    async def generate_json_async(
        self, prompt: str, system_instruction: str | None = None
    ) -> StructuredAIResponse:
        """Like generate_async(), but parse the answer as JSON."""
        instruction = f"{system_instruction}\n\n{self.JSON_ONLY}" if system_instruction else self.JSON_ONLY
        response = await self.generate_async(prompt, system_instruction=instruction)
        data, error = extract_json(response.text)
        return StructuredAIResponse(
            data=data,
            raw_text=response.text,
            model=response.model,
            latency_ms=response.latency_ms,
            parse_success=error is None,
            parse_error=error,
        )

    def _map_exception(self, error: Exception) -> AIClientError:
        """Translate an SDK exception into the AIClientError family."""
        if isinstance(error, AIClientError):
            return error

        message = str(error).lower()
        if google_exceptions is not None:
            if isinstance(error, google_exceptions.ResourceExhausted):
                cls = AIQuotaExceededError if "quota" in message else AIRateLimitError
                return cls(original_error=error)
            for names, cls in SDK_ERROR_MAP:
                types = tuple(
                    getattr(google_exceptions, name)
                    for name in names
                    if hasattr(google_exceptions, name)
                )
                if types and isinstance(error, types):
                    return self._build(cls, error, message)

        for pattern, cls in MESSAGE_ERROR_MAP:
            if pattern.search(message):
                return self._build(cls, error, message)

        return AIClientError(f"{type(error).__name__}: {error}", original_error=error)

    @staticmethod
    def _build(cls: type[AIClientError], error: Exception, message: str) -> AIClientError:
        if cls is not AIServerError:
            return cls(original_error=error)
        code = getattr(error, "code", None)
        if not isinstance(code, int) or isinstance(code, bool):
            match = STATUS_CODE.search(message)
            code = int(match.group(1)) if match else None
        return AIServerError(original_error=error, status_code=code)


def get_client(config: AppConfig | None = None) -> AIClient:
    """Build a client, reporting any construction failure as AIUnavailableError."""
    try:
        return AIClient(config=config)
    except AIUnavailableError:
        raise
    except Exception as e:
        logger.error(f"Could not create Gemini client: {type(e).__name__}")
        raise AIUnavailableError("offline", f"Could not create Gemini client: {type(e).__name__}") from e
