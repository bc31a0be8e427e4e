"""Escalation Policy - when a local result should be sent on to remote analysis.

Pure functions: no I/O, no clock, no logging side effects.

Escalation is only possible when ALL of:
    - privacy settings permit remote use
    - the network is available
    - the mode is not LOCAL_ONLY

and then happens when ANY of:
    - confidence is below the threshold
    - risk is above the threshold
    - sarcasm is in the ambiguous band
    - the mode is CLOUD_ONLY
"""

from __future__ import annotations

from chalamandra.config import EscalationThresholds
from chalamandra.core.models import AnalysisMode, AnalysisResult
from chalamandra.core.privacy import PrivacySettings

__all__ = ["EscalationThresholds", "escalation_permitted", "escalation_reasons", "should_escalate"]

DEFAULT_THRESHOLDS = EscalationThresholds()


def escalation_permitted(mode: AnalysisMode, privacy: PrivacySettings, online: bool) -> bool:
    """Gate conditions that must all hold before any threshold is considered."""
    return privacy.remote_permitted() and online and mode != AnalysisMode.LOCAL_ONLY


def escalation_reasons(
    local_result: AnalysisResult,
    mode: AnalysisMode,
    privacy: PrivacySettings,
    online: bool,
    thresholds: EscalationThresholds = DEFAULT_THRESHOLDS,
) -> list[str]:
    """List every triggered escalation reason.

    Returns:
        Reason names, empty when escalation is not permitted or not needed.
    """
    if not escalation_permitted(mode, privacy, online):
        return []

    reasons = []
    if local_result.confidence < thresholds.min_confidence:
        reasons.append("low_confidence")
    if local_result.overall_risk > thresholds.max_risk:
        reasons.append("high_risk")
    if thresholds.sarcasm_low < local_result.sarcasm_score < thresholds.sarcasm_high:
        reasons.append("ambiguous_sarcasm")
    if mode == AnalysisMode.CLOUD_ONLY:
        reasons.append("cloud_only")
    return reasons


def should_escalate(
    local_result: AnalysisResult,
    mode: AnalysisMode,
    privacy: PrivacySettings,
    online: bool,
    thresholds: EscalationThresholds = DEFAULT_THRESHOLDS,
) -> bool:
    """Decide whether to run remote-enhanced analysis after a local pass.

    Example:
        >>> should_escalate(result, AnalysisMode.DEEP, PrivacySettings(), online=True)
        False  # remote not opted in
    """
    return bool(escalation_reasons(local_result, mode, privacy, online, thresholds))
