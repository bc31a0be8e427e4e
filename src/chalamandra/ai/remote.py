"""Remote-enhanced analysis backend.

The remote backend only ever sees SanitizedContent. Handing it raw Content
raises PrivacyViolationError, which is not a BackendError and therefore is
never absorbed by the cascade.

The network call itself is delegated to a transport: an async callable taking
a prompt payload and returning the parsed JSON answer. GeminiTransport is the
production transport; SimulatedRemoteTransport answers locally after staged
delays and is used for demos and tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from pydantic import ValidationError

from chalamandra.ai.backends import (
    AnalysisBackend,
    BackendError,
    BackendTimeoutError,
    InvalidResponseError,
    RemoteUnavailableError,
    result_from_payload,
)
from chalamandra.ai.client import AIClient, AIClientError, get_client
from chalamandra.ai.heuristic import analyze_content
from chalamandra.ai.prompts import ANALYSIS_SCHEMA, render_for
from chalamandra.config import AppConfig
from chalamandra.core.models import AnalysisMode, AnalysisResult, BackendId, Capabilities, Content
from chalamandra.core.privacy import ensure_sanitized

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
RemoteTransport = Callable[[Payload], Awaitable[Any]]

DEFAULT_REMOTE_TIMEOUT_S = 3.0


# =============================================================================
# Transports
# =============================================================================


class GeminiTransport:
    """Sends prompt payloads to Gemini through AIClient.

    The client is created lazily on first use so that constructing the
    backend never touches the SDK.
    """

    def __init__(self, client: AIClient | None = None, config: AppConfig | None = None) -> None:
        self._client = client
        self._config = config

    def _get_client(self) -> AIClient:
        if self._client is None:
            self._client = get_client(self._config)
        return self._client

    async def __call__(self, payload: Payload) -> Any:
        try:
            client = self._get_client()
            response = await client.generate_json_async(
                payload["prompt"], system_instruction=payload["system"]
            )
        except AIClientError as e:
            raise RemoteUnavailableError(
                f"Gemini request failed: {e.message}", BackendId.REMOTE_ENHANCED
            ) from e

        if not response.parse_success:
            raise InvalidResponseError(
                response.parse_error or "Unparseable Gemini response", BackendId.REMOTE_ENHANCED
            )
        return response.data


class SimulatedRemoteTransport:
    """Local stand-in for a remote service.

    Sleeps through ``stages`` (seconds each) and then answers with a deeper,
    more confident heuristic pass over the sanitized text.
    """

    def __init__(self, stages: Sequence[float] = (0.1, 0.2, 0.2), confidence: float = 0.9) -> None:
        self.stages = tuple(stages)
        self.confidence = confidence

    async def __call__(self, payload: Payload) -> Any:
        for delay in self.stages:
            await asyncio.sleep(delay)
        local = analyze_content(Content(text=payload.get("text", "")), AnalysisMode.DEEP)
        data = local.model_dump(
            mode="json",
            include={
                "strategic", "emotional", "relational", "overall_risk",
                "sarcasm_score", "recommendations", "detected_patterns",
            },
        )
        data["confidence"] = self.confidence
        return data


# =============================================================================
# Backend
# =============================================================================


class RemoteEnhancedBackend(AnalysisBackend):
    """Remote analysis over sanitized content.

    Args:
        transport: Async callable performing the request. Defaults to Gemini.
        default_timeout_s: Bound used when analyze() gets no timeout.
    """

    backend_id = BackendId.REMOTE_ENHANCED
    requires_sanitized = True

    def __init__(
        self,
        transport: RemoteTransport | None = None,
        default_timeout_s: float = DEFAULT_REMOTE_TIMEOUT_S,
    ) -> None:
        self._transport = transport or GeminiTransport()
        self.default_timeout_s = default_timeout_s

    def is_available(self, capabilities: Capabilities) -> bool:
        return capabilities.remote_reachable()

    async def analyze(
        self, content: Content, mode: AnalysisMode, timeout_s: float | None = None
    ) -> AnalysisResult:
        sanitized = ensure_sanitized(content)
        system, prompt = render_for(sanitized, mode)
        payload: Payload = {
            "system": system,
            "prompt": prompt,
            "text": sanitized.text,
            "mode": mode.value,
            "schema": ANALYSIS_SCHEMA,
        }
        timeout = timeout_s if timeout_s is not None else self.default_timeout_s

        try:
            data = await asyncio.wait_for(self._transport(payload), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise BackendTimeoutError(
                f"Remote analysis exceeded {timeout * 1000:.0f}ms", self.backend_id
            ) from e
        except BackendError:
            raise
        except ValidationError as e:
            raise InvalidResponseError(
                f"Remote answer failed validation: {e.error_count()} error(s)", self.backend_id
            ) from e
        except Exception as e:
            raise RemoteUnavailableError(
                f"Remote analysis failed: {type(e).__name__}", self.backend_id
            ) from e

        result = result_from_payload(data, self.backend_id)
        logger.debug(f"Remote analysis returned confidence {result.confidence:.2f}")
        return result
