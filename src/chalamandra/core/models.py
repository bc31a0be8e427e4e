"""Core data models for Chalamandra.

This module holds the value objects that flow through the analysis
orchestrator. Every model is frozen: once a piece of content has been
submitted, or a result has been returned, nobody downstream may mutate it.

Models follow the request lifecycle:
1. INPUT (Content, ImageRef, AnalysisRequest)
2. ENVIRONMENT (Capabilities, AnalysisMode)
3. OUTPUT (AnalysisResult)
4. AUDIT (CascadeAttempt, PerformanceMetrics)
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class AnalysisMode(str, Enum):
    """How much analysis the caller wants. Supplied by the caller, never inferred.

    Attributes:
        QUICK: Cheapest local pass, core dimensions only.
        DEEP: Local pass with context factors; may escalate to remote.
        MULTIMODAL: Deep pass that also weighs images and emoji.
        LOCAL_ONLY: Never leaves the machine.
        CLOUD_ONLY: Remote-enhanced analysis first, local as fallback.
    """

    QUICK = "quick"
    DEEP = "deep"
    MULTIMODAL = "multimodal"
    LOCAL_ONLY = "local_only"
    CLOUD_ONLY = "cloud_only"


class BackendId(str, Enum):
    """Identifies which backend produced an AnalysisResult."""

    ON_DEVICE_GENERATIVE = "on_device_generative"
    LOCAL_HEURISTIC = "local_heuristic"
    REMOTE_ENHANCED = "remote_enhanced"
    MERGED = "merged"
    ULTIMATE_FALLBACK = "ultimate_fallback"


class AttemptOutcome(str, Enum):
    """Outcome of a single backend attempt."""

    SUCCESS = "success"
    FAILURE = "failure"


class ErrorKind(str, Enum):
    """Why a backend attempt failed.

    Every kind here is recoverable: the cascade moves to the next candidate.
    Privacy violations are deliberately not an ErrorKind because they abort
    the request instead.
    """

    BACKEND_UNAVAILABLE = "backend_unavailable"
    TIMEOUT = "timeout"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    INVALID_RESPONSE = "invalid_response"
    UNEXPECTED = "unexpected"


# =============================================================================
# Input Models
# =============================================================================


class ImageRef(BaseModel):
    """Reference to an image that accompanies a message.

    Images are never decoded. Only the alt text feeds the coarse visual
    sentiment signal used in multimodal analysis.
    """

    model_config = ConfigDict(frozen=True)

    source_uri: str = ""
    alt_text: str = ""
    pixel_area: int = Field(default=0, ge=0)


class Content(BaseModel):
    """A piece of written communication submitted for analysis.

    Attributes:
        text: The message body.
        images: Images attached to or embedded in the message.
        metadata: Free-form string context (url, subject, participants...).

    Example:
        >>> content = Content(text="Per my last email, please advise.")
        >>> content.is_empty()
        False
    """

    model_config = ConfigDict(frozen=True)

    text: str = ""
    images: tuple[ImageRef, ...] = ()
    metadata: dict[str, str] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        """Check whether there is anything to analyze."""
        return not self.text.strip() and not self.images

    def preview(self, length: int = 100) -> str:
        """Return a truncated preview of the text for display."""
        if len(self.text) <= length:
            return self.text
        return self.text[:length] + "..."


class AnalysisOptions(BaseModel):
    """Per-request options.

    Attributes:
        timeout_ms: Bound for the remote call. None uses the configured default.
        allow_remote: Caller-side opt-out. Can only narrow privacy settings,
            never widen them.
    """

    model_config = ConfigDict(frozen=True)

    timeout_ms: int | None = Field(default=None, gt=0)
    allow_remote: bool | None = None


class AnalysisRequest(BaseModel):
    """A complete analysis request as received by the orchestrator."""

    model_config = ConfigDict(frozen=True)

    content: Content
    mode: AnalysisMode = AnalysisMode.QUICK
    options: AnalysisOptions = Field(default_factory=AnalysisOptions)


# =============================================================================
# Environment
# =============================================================================


class Capabilities(BaseModel):
    """Snapshot of which analysis backends are usable right now.

    Owned by the CapabilityRegistry. Everyone else reads it.
    """

    model_config = ConfigDict(frozen=True)

    on_device_generative: bool = False
    local_model: bool = True
    remote_enhanced: bool = False
    network_available: bool = False
    refreshed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def flags(self) -> dict[str, bool]:
        """Return the boolean flags only."""
        return {
            "on_device_generative": self.on_device_generative,
            "local_model": self.local_model,
            "remote_enhanced": self.remote_enhanced,
            "network_available": self.network_available,
        }

    def remote_reachable(self) -> bool:
        """A remote backend is configured and the network is up."""
        return self.remote_enhanced and self.network_available


# =============================================================================
# Output
# =============================================================================


def round_score(value: float) -> int:
    """Round half up, so 50.5 becomes 51."""
    return math.floor(value + 0.5)


class AnalysisResult(BaseModel):
    """Structured assessment of one piece of content.

    Attributes:
        strategic: Power dynamics, agendas, negotiation context.
        emotional: Tone, sentiment score, subtext.
        relational: Trust and collaboration signals.
        overall_risk: 0-100, how likely the message is to cause friction.
        sarcasm_score: 0-100.
        confidence: (0, 1]. Zero is rejected.
        source: Backend that produced the result.
        recommendations: Ordered, most important first.
        detected_patterns: Named patterns that fired (e.g. "hyperbole").
        markers: Processing notes such as "escalation_not_attempted".
        timestamp: When the result was produced.
    """

    model_config = ConfigDict(frozen=True)

    strategic: dict[str, Any] = Field(default_factory=dict)
    emotional: dict[str, Any] = Field(default_factory=dict)
    relational: dict[str, Any] = Field(default_factory=dict)
    overall_risk: int = Field(default=0, ge=0, le=100)
    sarcasm_score: int = Field(default=0, ge=0, le=100)
    confidence: float = Field(..., gt=0.0, le=1.0)
    source: BackendId
    recommendations: tuple[str, ...] = ()
    detected_patterns: tuple[str, ...] = ()
    markers: tuple[str, ...] = ()
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("recommendations", "detected_patterns", "markers", mode="before")
    @classmethod
    def _coerce_sequence(cls, v: Any) -> Any:
        if isinstance(v, list):
            return tuple(v)
        return v

    @property
    def tone(self) -> str:
        """Shortcut to the emotional tone, 'unknown' when absent."""
        return str(self.emotional.get("tone", "unknown"))

    def is_degraded(self) -> bool:
        """True when no backend managed to analyze the content."""
        return self.source == BackendId.ULTIMATE_FALLBACK

    def with_markers(self, *markers: str) -> "AnalysisResult":
        """Return a copy with extra processing markers appended."""
        merged = self.markers + tuple(m for m in markers if m not in self.markers)
        return self.model_copy(update={"markers": merged})

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return self.model_dump(mode="json")


# =============================================================================
# Audit
# =============================================================================


class CascadeAttempt(BaseModel):
    """Audit record for one step of a cascade run."""

    model_config = ConfigDict(frozen=True)

    backend_id: BackendId
    outcome: AttemptOutcome
    duration_ms: float = Field(default=0.0, ge=0.0)
    error_kind: ErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == AttemptOutcome.SUCCESS


class PerformanceMetrics(BaseModel):
    """Process-wide counters exposed by the PerformanceMonitor."""

    model_config = ConfigDict(frozen=True)

    total_cascades: int = 0
    success_rate: float = 1.0
    fallback_usage_count: int = 0
    ultimate_fallback_count: int = 0
    avg_latency_ms: float = 0.0
    backend_failures: dict[str, int] = Field(default_factory=dict)
    escalations: int = 0
    escalation_failures: int = 0
