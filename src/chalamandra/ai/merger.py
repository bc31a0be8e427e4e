"""Result Merger - combine a local and a remote result into one report."""

from __future__ import annotations

from typing import Iterable

from chalamandra.core.models import AnalysisResult, BackendId, round_score

MAX_RECOMMENDATIONS = 5

ESCALATION_NOT_ATTEMPTED = "escalation_not_attempted"
ESCALATION_FAILED = "escalation_failed"


def _normalize(text: str) -> str:
    return " ".join(text.split()).casefold()


def dedupe(items: Iterable[str], limit: int | None = None) -> tuple[str, ...]:
    """Drop duplicates (case and whitespace insensitive), keeping first occurrences."""
    seen: set[str] = set()
    kept: list[str] = []
    for item in items:
        key = _normalize(item)
        if not key or key in seen:
            continue
        seen.add(key)
        kept.append(item.strip())
        if limit is not None and len(kept) >= limit:
            break
    return tuple(kept)


def merge(local: AnalysisResult, remote: AnalysisResult) -> AnalysisResult:
    """Merge a remote-enhanced result into a local one.

    Remote dimensions win when present and non-empty. Risk is blended by the
    remote confidence, sarcasm comes from the remote result, and the
    confidence is the higher of the two.

    Args:
        local: Result of the local cascade.
        remote: Result of the remote-enhanced backend.

    Returns:
        A new result with source MERGED.
    """
    weight = remote.confidence
    return AnalysisResult(
        strategic=remote.strategic or local.strategic,
        emotional=remote.emotional or local.emotional,
        relational=remote.relational or local.relational,
        overall_risk=round_score(local.overall_risk * (1 - weight) + remote.overall_risk * weight),
        sarcasm_score=remote.sarcasm_score,
        confidence=max(local.confidence, remote.confidence),
        source=BackendId.MERGED,
        recommendations=dedupe(
            remote.recommendations + local.recommendations, limit=MAX_RECOMMENDATIONS
        ),
        detected_patterns=dedupe(local.detected_patterns + remote.detected_patterns),
        markers=dedupe(local.markers + remote.markers),
    )


def mark_unescalated(local: AnalysisResult, failed: bool) -> AnalysisResult:
    """Tag a local result whose escalation was skipped or failed."""
    return local.with_markers(ESCALATION_FAILED if failed else ESCALATION_NOT_ATTEMPTED)
