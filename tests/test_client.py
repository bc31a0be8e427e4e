"""Tests for chalamandra.ai.client - the Gemini client.

Tests cover:
- Initialization and unavailability reasons
- Error mapping onto the exception hierarchy
- Response parsing and structured output
- Secret redaction in logs

All tests mock the google.generativeai SDK - no real API calls.
"""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chalamandra.ai.client import (
    AIAuthenticationError,
    AIClient,
    AIClientError,
    AIQuotaExceededError,
    AIRateLimitError,
    AIServerError,
    AITimeoutError,
    AIUnavailableError,
    ContentBlockedError,
    RedactingFilter,
    extract_json,
    get_client,
)
from chalamandra.config import AppConfig, RemoteConfig

# =============================================================================
# Fixtures
# =============================================================================


def raw_response(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        text=text,
        usage_metadata=SimpleNamespace(total_token_count=42),
        candidates=[SimpleNamespace(finish_reason=SimpleNamespace(name="STOP"))],
    )


class BlockedResponse:
    prompt_feedback = SimpleNamespace(block_reason="SAFETY")
    usage_metadata = None
    candidates = None

    @property
    def text(self) -> str:
        raise ValueError("response has no text")


@pytest.fixture
def mock_genai():
    """Patch the SDK so AIClient can be constructed."""
    with patch("chalamandra.ai.client.GENAI_AVAILABLE", True), patch(
        "chalamandra.ai.client.genai"
    ) as genai:
        yield genai


@pytest.fixture
def client(mock_genai: MagicMock, app_config: AppConfig) -> AIClient:
    return AIClient(config=app_config, api_key="test-key")


# =============================================================================
# Initialization Tests
# =============================================================================


class TestInitialization:
    """Tests for AIClient construction."""

    def test_sdk_missing(self, app_config: AppConfig) -> None:
        with patch("chalamandra.ai.client.GENAI_AVAILABLE", False):
            with pytest.raises(AIUnavailableError) as exc_info:
                AIClient(config=app_config, api_key="test-key")
        assert exc_info.value.reason == "sdk_missing"

    def test_disabled(self, mock_genai: MagicMock) -> None:
        config = AppConfig(remote=RemoteConfig(enabled=False))
        with pytest.raises(AIUnavailableError) as exc_info:
            AIClient(config=config, api_key="test-key")
        assert exc_info.value.reason == "disabled"

    def test_no_api_key(self, mock_genai: MagicMock, app_config: AppConfig) -> None:
        with pytest.raises(AIUnavailableError) as exc_info:
            AIClient(config=app_config)
        assert exc_info.value.reason == "no_api_key"

    def test_configures_sdk(self, mock_genai: MagicMock, app_config: AppConfig) -> None:
        client = AIClient(config=app_config, api_key="test-key")

        mock_genai.configure.assert_called_once_with(api_key="test-key")
        assert client.model_name == "gemini-1.5-flash"

    def test_get_client_reraises_unavailable(self, app_config: AppConfig) -> None:
        with patch("chalamandra.ai.client.GENAI_AVAILABLE", False):
            with pytest.raises(AIUnavailableError):
                get_client(app_config)


# =============================================================================
# Generation Tests
# =============================================================================


class TestGeneration:
    """Tests for generate_async and generate_json_async."""

    def test_generate_async(self, client: AIClient, mock_genai: MagicMock) -> None:
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(return_value=raw_response("hello"))

        response = asyncio.run(client.generate_async("prompt", system_instruction="system"))

        assert response.text == "hello"
        assert response.total_tokens == 42
        assert response.finish_reason == "STOP"
        assert response.latency_ms is not None
        contents = model.generate_content_async.call_args.args[0]
        assert contents[0]["parts"] == ["system"]
        assert contents[-1]["parts"] == ["prompt"]

    def test_generate_json_async(self, client: AIClient, mock_genai: MagicMock) -> None:
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(
            return_value=raw_response('```json\n{"sarcasm_score": 80}\n```')
        )

        response = asyncio.run(client.generate_json_async("prompt"))

        assert response.parse_success is True
        assert response.data == {"sarcasm_score": 80}

    def test_generate_json_async_parse_failure(self, client: AIClient, mock_genai: MagicMock) -> None:
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(return_value=raw_response("no json here"))

        response = asyncio.run(client.generate_json_async("prompt"))

        assert response.parse_success is False
        assert response.parse_error

    def test_generate_json_async_scalar_answer(self, client: AIClient, mock_genai: MagicMock) -> None:
        """A bare number is reported as a parse failure, not raised."""
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(return_value=raw_response("42"))

        response = asyncio.run(client.generate_json_async("prompt"))

        assert response.parse_success is False
        assert response.data == {}
        assert "int" in response.parse_error

    def test_sdk_errors_are_mapped(self, client: AIClient, mock_genai: MagicMock) -> None:
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(side_effect=Exception("HTTP 429 too many"))

        with pytest.raises(AIRateLimitError):
            asyncio.run(client.generate_async("prompt"))

    def test_blocked_content(self, client: AIClient, mock_genai: MagicMock) -> None:
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = AsyncMock(return_value=BlockedResponse())

        with pytest.raises(ContentBlockedError) as exc_info:
            asyncio.run(client.generate_async("prompt"))
        assert exc_info.value.blocked_reason == "SAFETY"


class TestExceptionMapping:
    """Tests for _map_exception's message-based fallback."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("HTTP 429 too many requests", AIRateLimitError),
            ("403 forbidden", AIAuthenticationError),
            ("quota exhausted", AIQuotaExceededError),
            ("socket timeout", AITimeoutError),
            ("503 service unavailable", AIServerError),
            ("blocked by safety filters", ContentBlockedError),
        ],
    )
    def test_message_patterns(self, client: AIClient, message: str, expected: type) -> None:
        assert isinstance(client._map_exception(Exception(message)), expected)

    def test_unknown_error_is_base_class(self, client: AIClient) -> None:
        mapped = client._map_exception(KeyError("weird"))

        assert type(mapped) is AIClientError
        assert mapped.original_error is not None

    def test_client_errors_pass_through(self, client: AIClient) -> None:
        error = AIRateLimitError()
        assert client._map_exception(error) is error

    def test_server_error_carries_status_from_message(self, client: AIClient) -> None:
        mapped = client._map_exception(Exception("502 bad gateway"))

        assert isinstance(mapped, AIServerError)
        assert mapped.status_code == 502

    def test_server_error_prefers_sdk_code(self, client: AIClient) -> None:
        error = Exception("service unavailable")
        error.code = 503

        mapped = client._map_exception(error)

        assert isinstance(mapped, AIServerError)
        assert mapped.status_code == 503

    def test_non_server_errors_have_no_status(self, client: AIClient) -> None:
        assert not hasattr(client._map_exception(Exception("403 forbidden")), "status_code")


# =============================================================================
# JSON Extraction
# =============================================================================


class TestExtractJson:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ('{"a": 1}', {"a": 1}),
            ('```json\n{"a": 1}\n```', {"a": 1}),
            ('```\n[1, 2]\n```', [1, 2]),
            ('Here you go: {"a": {"b": 2}} hope it helps', {"a": {"b": 2}}),
        ],
    )
    def test_extracts(self, text: str, expected) -> None:
        data, error = extract_json(text)

        assert error is None
        assert data == expected

    @pytest.mark.parametrize(
        "text",
        ["nothing", "```json\n{broken\n```", "{not: valid}", "42", '"just a string"'],
    )
    def test_reports_errors(self, text: str) -> None:
        data, error = extract_json(text)

        assert data == {}
        assert error


# =============================================================================
# Redaction
# =============================================================================


class TestRedactingFilter:
    def _record(self, msg: str, *args) -> logging.LogRecord:
        return logging.LogRecord("test", logging.INFO, __file__, 1, msg, args, None)

    def test_redacts_key_value(self) -> None:
        record = self._record("Using api_key=abcdefghijklmnopqrstuvwxyz123")
        RedactingFilter().filter(record)

        assert "abcdefghijklmnopqrstuvwxyz123" not in record.getMessage()
        assert "[REDACTED]" in record.getMessage()

    def test_redacts_gemini_keys_in_args(self) -> None:
        key = "AIza" + "x" * 35
        record = self._record("key is %s", key)
        RedactingFilter().filter(record)

        assert key not in record.getMessage()

    def test_leaves_ordinary_messages(self) -> None:
        record = self._record("Generation successful: 42 tokens")
        RedactingFilter().filter(record)
        assert record.getMessage() == "Generation successful: 42 tokens"
