"""Chalamandra - communication analysis with graceful degradation.

Assesses short written messages for tone, sarcasm, power dynamics, trust and
friction risk. Analysis runs locally by default and falls back through a
cascade of backends, so a result is always returned. Remote enhancement is
opt-in and only ever sees sanitized text.

Example:
    >>> import asyncio
    >>> from chalamandra import AnalysisOrchestrator, AnalysisMode
    >>> result = asyncio.run(AnalysisOrchestrator().analyze_text("Per my last email...", AnalysisMode.DEEP))
"""

__version__ = "0.1.0"

from chalamandra.ai.orchestrator import AnalysisOrchestrator
from chalamandra.core.models import (
    AnalysisMode,
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    BackendId,
    Capabilities,
    Content,
    ImageRef,
)
from chalamandra.core.privacy import PrivacyLevel, PrivacySettings, PrivacyViolationError

__all__ = [
    "__version__",
    "AnalysisOrchestrator",
    "AnalysisMode",
    "AnalysisOptions",
    "AnalysisRequest",
    "AnalysisResult",
    "BackendId",
    "Capabilities",
    "Content",
    "ImageRef",
    "PrivacyLevel",
    "PrivacySettings",
    "PrivacyViolationError",
]
