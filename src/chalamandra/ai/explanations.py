"""Human-readable explanations for analysis results.

Turns the numeric dimensions of an AnalysisResult into an executive summary,
per-dimension explanations and actionable recommendations.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

from chalamandra.core.models import AnalysisResult, round_score

EFFECTIVE_THRESHOLD = 80
ACCEPTABLE_THRESHOLD = 60

SARCASM_RECOMMENDATION_THRESHOLD = 70
RISK_RECOMMENDATION_THRESHOLD = 70

NO_CHANGES_RECOMMENDATION = "Communication looks constructive; no changes needed."


class Explanation(BaseModel):
    """Explainable view of a result.

    Attributes:
        score: 0-100 communication score, higher is better.
        band: "effective", "acceptable" or "high_risk".
        summary: One-paragraph executive summary.
        dimensions: Explanation per notable dimension value.
        recommendations: Actionable suggestions, most important first.
    """

    model_config = ConfigDict(frozen=True)

    score: int
    band: str
    summary: str
    dimensions: dict[str, str]
    recommendations: tuple[str, ...]


def communication_score(result: AnalysisResult) -> int:
    """Combine risk and sarcasm into a 0-100 score."""
    penalty = result.overall_risk * 0.8 + result.sarcasm_score * 0.2
    return max(0, min(100, round_score(100 - penalty)))


def score_band(score: int) -> str:
    if score >= EFFECTIVE_THRESHOLD:
        return "effective"
    if score >= ACCEPTABLE_THRESHOLD:
        return "acceptable"
    return "high_risk"


_BAND_SUMMARIES = {
    "effective": "This message reads as clear and constructive.",
    "acceptable": "This message is workable but has elements that could be misread.",
    "high_risk": "This message is likely to cause friction as written.",
}


def recommend(
    sarcasm_score: int,
    overall_risk: int,
    patterns: Iterable[str],
    power_dynamics: str | None = None,
) -> list[str]:
    """Build actionable recommendations from result signals.

    Args:
        sarcasm_score: 0-100.
        overall_risk: 0-100.
        patterns: Detected pattern names.
        power_dynamics: "high", "balanced", "low" or None.

    Returns:
        Recommendations, most important first. Never empty.
    """
    found = set(patterns)
    recommendations = []
    if sarcasm_score > SARCASM_RECOMMENDATION_THRESHOLD:
        recommendations.append(
            "Sarcasm is likely to be read here; state the concern directly instead."
        )
    if "passive_aggressive" in found:
        recommendations.append(
            "Replace phrases like 'per my last email' with a direct, neutral request."
        )
    if "incongruent_imagery" in found:
        recommendations.append("Images or emoji contradict the wording; make sure they match your intent.")
    if "excessive_positivity" in found:
        recommendations.append("Tone down the intensifiers; heavy praise can read as insincere.")
    if "hyperbole" in found:
        recommendations.append("Avoid absolutes like 'never' and 'always'; be specific instead.")
    if power_dynamics == "high":
        recommendations.append("Soften directives and invite input to balance the conversation.")
    if overall_risk > RISK_RECOMMENDATION_THRESHOLD:
        recommendations.append("Consider discussing this in person before sending it in writing.")
    return recommendations or [NO_CHANGES_RECOMMENDATION]


def _explain_dimensions(result: AnalysisResult) -> dict[str, str]:
    dimensions: dict[str, str] = {}

    power = result.strategic.get("power_dynamics")
    if power == "high":
        dimensions["power_dynamics"] = "Directive language dominates; the writer asserts authority."
    elif power == "low":
        dimensions["power_dynamics"] = "Collaborative language dominates; the writer invites partnership."
    elif power == "balanced":
        dimensions["power_dynamics"] = "Directive and collaborative language are in balance."

    tone = result.emotional.get("tone")
    if tone:
        dimensions["tone"] = {
            "positive": "The overall tone is positive.",
            "negative": "The overall tone is negative or critical.",
            "sarcastic": "The wording likely means something other than what it says.",
            "neutral": "The tone is neutral.",
        }.get(tone, f"Tone: {tone}.")

    trust = _as_number(result.relational.get("trust_score"))
    if trust is not None:
        if trust >= 70:
            dimensions["trust"] = "Language signals trust and reliance."
        elif trust <= 30:
            dimensions["trust"] = "Language signals doubt or a need for verification."
        else:
            dimensions["trust"] = "Trust signals are neutral."

    collaboration = _as_number(result.relational.get("collaboration_score"))
    if collaboration is not None:
        if collaboration >= 70:
            dimensions["collaboration"] = "The message frames the work as shared."
        elif collaboration <= 30:
            dimensions["collaboration"] = "The message centers on the writer rather than the team."

    return dimensions


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def explain(result: AnalysisResult) -> Explanation:
    """Build an explanation for a result.

    Example:
        >>> explanation = explain(result)
        >>> explanation.band
        'effective'
    """
    score = communication_score(result)
    band = score_band(score)
    summary = f"{_BAND_SUMMARIES[band]} Communication score: {score}/100."
    if result.is_degraded():
        summary += " Only a limited analysis was possible."

    recommendations = result.recommendations or tuple(
        recommend(
            result.sarcasm_score,
            result.overall_risk,
            result.detected_patterns,
            result.strategic.get("power_dynamics"),
        )
    )
    return Explanation(
        score=score,
        band=band,
        summary=summary,
        dimensions=_explain_dimensions(result),
        recommendations=tuple(recommendations),
    )
