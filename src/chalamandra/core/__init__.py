"""Core value objects and the privacy boundary.

Only models and privacy are re-exported here; capabilities and history
depend on configuration and are imported from their own modules.
"""

from chalamandra.core.models import (
    AnalysisMode,
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    AttemptOutcome,
    BackendId,
    CascadeAttempt,
    Capabilities,
    Content,
    ErrorKind,
    ImageRef,
    PerformanceMetrics,
)
from chalamandra.core.privacy import (
    PrivacyError,
    PrivacyGate,
    PrivacyLevel,
    PrivacySanitizer,
    PrivacySettings,
    PrivacyViolationError,
    SanitizedContent,
    sanitize,
)

__all__ = [
    "AnalysisMode",
    "AnalysisOptions",
    "AnalysisRequest",
    "AnalysisResult",
    "AttemptOutcome",
    "BackendId",
    "CascadeAttempt",
    "Capabilities",
    "Content",
    "ErrorKind",
    "ImageRef",
    "PerformanceMetrics",
    "PrivacyError",
    "PrivacyGate",
    "PrivacyLevel",
    "PrivacySanitizer",
    "PrivacySettings",
    "PrivacyViolationError",
    "SanitizedContent",
    "sanitize",
]
