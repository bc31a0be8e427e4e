"""Backend adapter contract and error hierarchy.

Every analysis backend exposes the same async surface so the cascade can try
them interchangeably:

    backend.backend_id              -> BackendId
    backend.requires_sanitized      -> bool
    backend.is_available(caps)      -> bool
    await backend.analyze(content, mode, timeout_s=None) -> AnalysisResult

Failures are reported by raising a BackendError subclass. The cascade absorbs
all of them; PrivacyViolationError is not a BackendError and always
propagates.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any

from chalamandra.core.models import (
    AnalysisMode,
    AnalysisResult,
    BackendId,
    Capabilities,
    Content,
    ErrorKind,
    round_score,
)


# =============================================================================
# Exception Hierarchy
# =============================================================================


class BackendError(Exception):
    """Base exception for recoverable backend failures.

    Attributes:
        kind: ErrorKind recorded in the cascade audit log.
        backend_id: Backend that failed, when known.
    """

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, backend_id: BackendId | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.backend_id = backend_id

    def __str__(self) -> str:
        return self.message


class BackendUnavailableError(BackendError):
    """The backend cannot run right now (not installed, not reachable)."""

    kind = ErrorKind.BACKEND_UNAVAILABLE


class BackendTimeoutError(BackendError):
    """The backend did not answer within its time bound."""

    kind = ErrorKind.TIMEOUT


class RemoteUnavailableError(BackendError):
    """The remote service returned an error or could not be reached."""

    kind = ErrorKind.REMOTE_UNAVAILABLE


class InvalidResponseError(BackendError):
    """The backend answered, but the answer could not be used."""

    kind = ErrorKind.INVALID_RESPONSE


# =============================================================================
# Adapter Contract
# =============================================================================


class AnalysisBackend(ABC):
    """Abstract analysis backend."""

    backend_id: BackendId
    requires_sanitized: bool = False

    @abstractmethod
    def is_available(self, capabilities: Capabilities) -> bool:
        """Check the capability snapshot for this backend."""

    @abstractmethod
    async def analyze(
        self, content: Content, mode: AnalysisMode, timeout_s: float | None = None
    ) -> AnalysisResult:
        """Analyze content.

        Args:
            content: Content to analyze. Remote backends require SanitizedContent.
            mode: Requested analysis mode.
            timeout_s: Upper bound for the call, where the backend honors one.

        Raises:
            BackendError: On any recoverable failure.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.backend_id.value})"


# =============================================================================
# Response Parsing
# =============================================================================


REQUIRED_DIMENSIONS = ("strategic", "emotional", "relational")
DEFAULT_GENERATIVE_CONFIDENCE = 0.7
MIN_CONFIDENCE = 0.05


def _finite_number(value: Any, name: str, backend_id: BackendId) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidResponseError(f"'{name}' is not a number", backend_id)
    try:
        number = float(value)
    except OverflowError:
        raise InvalidResponseError(f"'{name}' is out of range", backend_id) from None
    if not math.isfinite(number):
        raise InvalidResponseError(f"'{name}' is not finite", backend_id)
    return number


def _bounded_int(value: Any, name: str, backend_id: BackendId) -> int:
    return max(0, min(100, round_score(_finite_number(value, name, backend_id))))


def _string_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())


def result_from_payload(data: Any, backend_id: BackendId) -> AnalysisResult:
    """Build an AnalysisResult from a generative model's JSON answer.

    Args:
        data: Parsed JSON.
        backend_id: Backend that produced the answer.

    Raises:
        InvalidResponseError: If a required dimension is missing or a score
            is not numeric.
    """
    if not isinstance(data, dict):
        raise InvalidResponseError("Response is not a JSON object", backend_id)

    missing = [name for name in REQUIRED_DIMENSIONS if not isinstance(data.get(name), dict)]
    if missing:
        raise InvalidResponseError(f"Response is missing {', '.join(missing)}", backend_id)

    confidence = _finite_number(
        data.get("confidence", DEFAULT_GENERATIVE_CONFIDENCE), "confidence", backend_id
    )

    return AnalysisResult(
        strategic=data["strategic"],
        emotional=data["emotional"],
        relational=data["relational"],
        overall_risk=_bounded_int(data.get("overall_risk", 0), "overall_risk", backend_id),
        sarcasm_score=_bounded_int(data.get("sarcasm_score", 0), "sarcasm_score", backend_id),
        confidence=max(MIN_CONFIDENCE, min(1.0, confidence)),
        source=backend_id,
        recommendations=_string_tuple(data.get("recommendations")),
        detected_patterns=_string_tuple(data.get("detected_patterns")),
    )
