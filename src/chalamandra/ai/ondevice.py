"""On-device generative backend (Ollama).

Talks to a generative model served locally by Ollama. Nothing leaves the
machine, so raw content is accepted.
"""

from __future__ import annotations

import logging
import time

import httpx

from chalamandra.ai.backends import (
    AnalysisBackend,
    BackendTimeoutError,
    BackendUnavailableError,
    InvalidResponseError,
    result_from_payload,
)
from chalamandra.ai.client import extract_json
from chalamandra.ai.prompts import render_for
from chalamandra.config import OnDeviceConfig
from chalamandra.core.models import AnalysisMode, AnalysisResult, BackendId, Capabilities, Content

logger = logging.getLogger(__name__)


class OnDeviceGenerativeBackend(AnalysisBackend):
    """Ollama-backed local generative analysis.

    Args:
        config: Ollama settings. Defaults to OnDeviceConfig().
        transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
    """

    backend_id = BackendId.ON_DEVICE_GENERATIVE
    requires_sanitized = False

    def __init__(
        self,
        config: OnDeviceConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or OnDeviceConfig()
        self._transport = transport

    def is_available(self, capabilities: Capabilities) -> bool:
        return capabilities.on_device_generative

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url, transport=self._transport, timeout=timeout_s
        )

    async def check_server(self) -> bool:
        """Check that the Ollama server answers and has the configured model."""
        try:
            async with self._client(timeout_s=1.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                models = response.json().get("models", [])
        except (httpx.HTTPError, ValueError):
            return False
        names = {str(m.get("name", "")).split(":")[0] for m in models if isinstance(m, dict)}
        return self.config.model.split(":")[0] in names

    async def analyze(
        self, content: Content, mode: AnalysisMode, timeout_s: float | None = None
    ) -> AnalysisResult:
        system, prompt = render_for(content, mode)
        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "system": system,
            "stream": False,
            "format": "json",
        }
        timeout = timeout_s if timeout_s is not None else self.config.timeout_seconds

        start = time.perf_counter()
        try:
            async with self._client(timeout) as client:
                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(
                f"On-device model did not answer within {timeout:.1f}s", self.backend_id
            ) from e
        except httpx.HTTPStatusError as e:
            raise BackendUnavailableError(
                f"On-device model returned HTTP {e.response.status_code}", self.backend_id
            ) from e
        except httpx.RequestError as e:
            raise BackendUnavailableError(
                f"On-device model unreachable: {type(e).__name__}", self.backend_id
            ) from e
        except ValueError as e:
            raise InvalidResponseError("On-device model returned non-JSON body", self.backend_id) from e

        if not isinstance(body, dict) or not isinstance(body.get("response"), str):
            raise InvalidResponseError("On-device reply has no 'response' text", self.backend_id)

        data, parse_error = extract_json(body["response"])
        if parse_error:
            raise InvalidResponseError(parse_error, self.backend_id)

        result = result_from_payload(data, self.backend_id)
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(f"On-device analysis completed in {latency_ms:.0f}ms")
        return result
