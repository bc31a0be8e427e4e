"""Local heuristic analysis backend.

Pure, deterministic keyword and pattern scoring over fixed lexicons. This
backend is always available and never leaves the machine, which makes it
the backbone of every cascade.

Scoring overview:
    - Sarcasm: weighted patterns (excessive positivity, hyperbole,
      contextual contradiction, passive-aggressive phrasing, emphatic
      capitals), capped at 100. In multimodal mode, image alt text and
      emoji that contradict the text sentiment are blended in (70/30).
    - Tone: sarcastic above 50 sarcasm, otherwise by sentiment balance.
    - Power: directive versus collaborative language.
    - Relational: trust versus distrust language, shared versus
      individual framing.
    - Risk: weighted sum of friction signals.
    - Confidence: grows with the amount of evidence, capped at 0.85.
    - Context (DEEP and other context modes): platform, inferred
      relationship, and a context risk score from the setting. High-risk
      settings add setting-specific advice to the recommendations.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from chalamandra.ai.backends import AnalysisBackend
from chalamandra.ai.explanations import NO_CHANGES_RECOMMENDATION, recommend
from chalamandra.ai.merger import MAX_RECOMMENDATIONS, dedupe
from chalamandra.core.models import (
    AnalysisMode,
    AnalysisResult,
    BackendId,
    Capabilities,
    Content,
    ImageRef,
    round_score,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Lexicons
# =============================================================================


class Lexicon:
    """A fixed set of words or phrases matched on word boundaries."""

    def __init__(self, *terms: str) -> None:
        self.terms = frozenset(t.lower() for t in terms)
        alternatives = "|".join(re.escape(t) for t in sorted(self.terms, key=len, reverse=True))
        self._pattern = re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)")

    def matches(self, text: str) -> set[str]:
        """Distinct terms found in lower-cased text."""
        return set(self._pattern.findall(text))

    def __len__(self) -> int:
        return len(self.terms)


POSITIVE = Lexicon(
    "thank", "thanks", "appreciate", "excellent", "great", "well done", "good",
    "pleasure", "looking forward", "glad", "happy", "collaboration", "partnership",
    "teamwork", "wonderful", "perfect", "love",
)
NEGATIVE = Lexicon(
    "unfortunately", "problem", "issue", "concern", "disappointed", "frustrated",
    "failed", "error", "wrong", "bad", "terrible", "sorry", "disaster", "unacceptable",
)
INTENSITY = Lexicon(
    "absolutely", "thrilled", "delighted", "ecstatic", "excellent", "wonderful",
    "amazing", "incredible", "perfect", "fantastic", "love", "happier", "happiest", "best",
)
HYPERBOLE = Lexicon(
    "nothing makes me", "never", "always", "completely", "totally", "literally",
    "the best", "the worst", "everyone", "nobody", "nothing",
)
PASSIVE_AGGRESSIVE = Lexicon(
    "per my last email", "as i mentioned", "as previously stated", "for future reference",
    "just to clarify", "i assume you know", "hopefully this helps", "as you should know",
    "as per my previous", "going forward",
)
POWER = Lexicon(
    "you must", "you need to", "i require", "i expect", "you should", "mandatory",
    "compliance required", "immediately", "insist", "demand",
)
COLLABORATIVE = Lexicon(
    "we", "our", "together", "team", "partner", "collaborate", "suggest", "recommend",
    "consider",
)
INDIVIDUAL = Lexicon("i", "my", "me", "mine")
TRUST = Lexicon("trust", "confidence", "rely", "depend", "believe", "transparent", "honest")
DISTRUST = Lexicon("doubt", "verify", "double-check", "suspicious", "skeptical")
URGENCY = Lexicon("asap", "urgent", "immediately", "emergency", "right away", "today", "deadline")
FORMAL = Lexicon(
    "dear", "sincerely", "regards", "please find", "kindly", "pursuant", "furthermore",
    "accordingly",
)
INFORMAL = Lexicon("hey", "hi", "lol", "thx", "cool", "gonna", "yeah", "btw")
HEDGES = Lexicon("maybe", "perhaps", "might", "possibly", "i wonder", "if possible")

MANAGER_MARKERS = Lexicon(
    "report to", "reports to", "your manager", "my manager", "direct report",
    "performance review", "my boss", "your boss",
)
CLIENT_MARKERS = Lexicon("client", "clients", "customer", "customers", "vendor", "invoice")
TEAM_MARKERS = Lexicon("team", "everyone", "all hands", "group", "folks")
PEER_MARKERS = Lexicon("colleague", "colleagues", "peer", "peers", "teammate")

POSITIVE_IMAGERY = Lexicon(
    "smile", "smiling", "happy", "celebration", "party", "thumbs up", "laughing",
    "sunny", "heart", "confetti",
)
NEGATIVE_IMAGERY = Lexicon(
    "sad", "angry", "crying", "frown", "frowning", "storm", "broken", "fire", "skull",
)

POSITIVE_EMOJI = frozenset("😀😃😄😁😊🙂😍👍🎉😂🥳👏")
NEGATIVE_EMOJI = frozenset("😠😡😢😞👎💔😤🙄😒")

# Praise followed by a contrast: "excellent work, but..."
CONTRADICTION_PATTERN = re.compile(
    r"\b(?:excellent|great|perfect|wonderful|love|fantastic|good)\b.*?"
    r"\b(?:but|however|except|although|though)\b",
    re.DOTALL,
)
EMPHATIC_CAPS_PATTERN = re.compile(r"\b[A-Z]{4,}\b")

PLATFORM_HOSTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("email", ("mail.google.", "outlook.", "mail.yahoo.", "proton.me")),
    ("chat", ("slack.com", "teams.microsoft.", "discord.com", "web.whatsapp.", "telegram.")),
    ("professional_network", ("linkedin.com",)),
    ("social", ("twitter.com", "x.com", "facebook.com", "instagram.com", "reddit.com")),
)


# =============================================================================
# Weights
# =============================================================================


SARCASM_WEIGHTS = {
    "excessive_positivity": 25,
    "hyperbole": 30,
    "contextual_contradiction": 35,
    "passive_aggressive": 40,
    "emphatic_capitals": 10,
}
EXCESSIVE_POSITIVITY_MIN_MARKERS = 2
SARCASTIC_TONE_THRESHOLD = 50
TEXT_WEIGHT = 0.7
VISUAL_WEIGHT = 0.3
VISUAL_POINTS_PER_INCONGRUENT_ITEM = 40
MAX_CONFIDENCE = 0.85

RELATIONSHIPS = ("manager_subordinate", "client_vendor", "team_group", "peer_colleague")
CONTEXT_RISK_BASE = 10
PLATFORM_RISK = {"email": 10, "chat": 20, "professional_network": 30, "social": 40}
RELATIONSHIP_RISK = {
    "manager_subordinate": 25,
    "client_vendor": 20,
    "team_group": 15,
    "peer_colleague": 10,
}
UNKNOWN_CONTEXT_RISK = 15
HIGH_CONTEXT_RISK = 70
MEDIUM_CONTEXT_RISK = 40
EXPRESSIVE_MARKERS_HIGH = 3
BUSINESS_HOURS = range(9, 18)

CONTEXT_ADVICE = {
    "social": "This is a public platform; assume anyone may read the message.",
    "manager_subordinate": "Reporting lines amplify tone; keep expectations explicit and neutral.",
    "client_vendor": "Keep the focus on outcomes and put agreements in writing.",
    "expressive": "Heavy punctuation and emoji can undercut a professional tone.",
    "after_hours": "Consider scheduling this for business hours.",
}

CONTEXT_MODES = frozenset(
    {AnalysisMode.DEEP, AnalysisMode.MULTIMODAL, AnalysisMode.LOCAL_ONLY, AnalysisMode.CLOUD_ONLY}
)


def _clamp(value: float, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, round_score(value)))


# =============================================================================
# Signals
# =============================================================================


@dataclass
class TextSignals:
    """Lexicon matches for one piece of text."""

    positive: set[str] = field(default_factory=set)
    negative: set[str] = field(default_factory=set)
    intensity: set[str] = field(default_factory=set)
    hyperbole: set[str] = field(default_factory=set)
    passive_aggressive: set[str] = field(default_factory=set)
    power: set[str] = field(default_factory=set)
    collaborative: set[str] = field(default_factory=set)
    individual: set[str] = field(default_factory=set)
    trust: set[str] = field(default_factory=set)
    distrust: set[str] = field(default_factory=set)
    urgency: set[str] = field(default_factory=set)
    contradiction: bool = False
    emphatic_capitals: bool = False

    @classmethod
    def from_text(cls, text: str) -> "TextSignals":
        lowered = text.lower()
        caps = EMPHATIC_CAPS_PATTERN.findall(text)
        return cls(
            positive=POSITIVE.matches(lowered),
            negative=NEGATIVE.matches(lowered),
            intensity=INTENSITY.matches(lowered),
            hyperbole=HYPERBOLE.matches(lowered),
            passive_aggressive=PASSIVE_AGGRESSIVE.matches(lowered),
            power=POWER.matches(lowered),
            collaborative=COLLABORATIVE.matches(lowered),
            individual=INDIVIDUAL.matches(lowered),
            trust=TRUST.matches(lowered),
            distrust=DISTRUST.matches(lowered),
            urgency=URGENCY.matches(lowered),
            contradiction=bool(CONTRADICTION_PATTERN.search(lowered)),
            # Shouting the whole message is not emphasis.
            emphatic_capitals=bool(caps) and not text.isupper(),
        )

    @property
    def sentiment_balance(self) -> int:
        return len(self.positive) - len(self.negative) - len(self.passive_aggressive)

    def evidence_count(self) -> int:
        sets = (
            self.positive, self.negative, self.intensity, self.hyperbole,
            self.passive_aggressive, self.power, self.collaborative, self.trust,
            self.distrust, self.urgency,
        )
        return sum(len(s) for s in sets) + int(self.contradiction) + int(self.emphatic_capitals)


def text_sarcasm(signals: TextSignals) -> tuple[int, list[str]]:
    """Score sarcasm from text signals alone.

    Returns:
        (score 0-100, detected pattern names in weight order)
    """
    patterns = []
    if len(signals.intensity) >= EXCESSIVE_POSITIVITY_MIN_MARKERS:
        patterns.append("excessive_positivity")
    if signals.hyperbole:
        patterns.append("hyperbole")
    if signals.contradiction:
        patterns.append("contextual_contradiction")
    if signals.passive_aggressive:
        patterns.append("passive_aggressive")
    if signals.emphatic_capitals and patterns:
        patterns.append("emphatic_capitals")
    return min(100, sum(SARCASM_WEIGHTS[p] for p in patterns)), patterns


def _item_sentiment(positive: bool, negative: bool) -> int:
    return int(positive) - int(negative)


def visual_items(text: str, images: Iterable[ImageRef]) -> list[int]:
    """Sentiment sign (+1, 0, -1) for each image and emoji in the content."""
    items = []
    for image in images:
        alt = image.alt_text.lower()
        items.append(_item_sentiment(bool(POSITIVE_IMAGERY.matches(alt)), bool(NEGATIVE_IMAGERY.matches(alt))))
    for char in text:
        if char in POSITIVE_EMOJI:
            items.append(1)
        elif char in NEGATIVE_EMOJI:
            items.append(-1)
    return items


def count_incongruent(text_balance: int, items: Iterable[int]) -> int:
    """Count visual items whose sentiment contradicts the text."""
    if text_balance == 0:
        return 0
    return sum(1 for item in items if item != 0 and (item > 0) != (text_balance > 0))


def classify_platform(url: str) -> str:
    """Map a page URL to a communication platform."""
    lowered = url.lower()
    for platform, hosts in PLATFORM_HOSTS:
        if any(host in lowered for host in hosts):
            return platform
    return "unknown"


def _tone(signals: TextSignals, sarcasm_score: int) -> str:
    if sarcasm_score >= SARCASTIC_TONE_THRESHOLD:
        return "sarcastic"
    balance = signals.sentiment_balance
    if balance > 0:
        return "positive"
    if balance < 0:
        return "negative"
    return "neutral"


def _power_dynamics(signals: TextSignals) -> str:
    difference = len(signals.power) - len(signals.collaborative)
    if difference >= 2:
        return "high"
    if difference <= -2:
        return "low"
    return "balanced"


def formality_level(text: str) -> str:
    """'formal', 'informal' or 'neutral', by formal and informal markers."""
    lowered = text.lower()
    formal, informal = FORMAL.matches(lowered), INFORMAL.matches(lowered)
    if len(formal) > len(informal):
        return "formal"
    if len(informal) > len(formal):
        return "informal"
    return "neutral"


def _participants(metadata: dict[str, str]) -> int:
    try:
        return int(metadata.get("participants", "1"))
    except ValueError:
        return 1


def infer_relationship(text: str, metadata: dict[str, str]) -> str:
    """Guess the relationship between writer and readers.

    A valid ``relationship`` metadata value wins. Otherwise explicit wording
    decides, then the participant count, then formality.

    Returns:
        One of RELATIONSHIPS.
    """
    declared = metadata.get("relationship", "").strip().lower()
    if declared in RELATIONSHIPS:
        return declared

    lowered = text.lower()
    if MANAGER_MARKERS.matches(lowered):
        return "manager_subordinate"
    if CLIENT_MARKERS.matches(lowered):
        return "client_vendor"
    if _participants(metadata) > 2 or TEAM_MARKERS.matches(lowered):
        return "team_group"
    if PEER_MARKERS.matches(lowered):
        return "peer_colleague"
    return "client_vendor" if formality_level(text) == "formal" else "peer_colleague"


def expressiveness_level(text: str) -> str:
    """'high', 'medium' or 'low', by exclamation marks and emoji."""
    markers = text.count("!") + sum(1 for c in text if c in POSITIVE_EMOJI or c in NEGATIVE_EMOJI)
    if markers >= EXPRESSIVE_MARKERS_HIGH:
        return "high"
    return "medium" if markers else "low"


def sent_after_hours(metadata: dict[str, str]) -> bool | None:
    """Whether ``sent_at`` (ISO 8601) falls outside weekday business hours.

    None when the timestamp is missing or unreadable.
    """
    try:
        sent_at = datetime.fromisoformat(metadata["sent_at"])
    except (KeyError, ValueError):
        return None
    return sent_at.weekday() >= 5 or sent_at.hour not in BUSINESS_HOURS


def context_risk(
    platform: str,
    relationship: str,
    urgent: bool,
    directness: str,
    expressiveness: str,
    after_hours: bool | None,
) -> tuple[int, str, list[str]]:
    """Score how much the setting raises the stakes of a message.

    Returns:
        (score 0-100, level "low" | "medium" | "high", risk factor names)
    """
    score = CONTEXT_RISK_BASE
    score += PLATFORM_RISK.get(platform, UNKNOWN_CONTEXT_RISK)
    score += RELATIONSHIP_RISK.get(relationship, UNKNOWN_CONTEXT_RISK)

    factors = []
    if platform == "social":
        factors.append("public_platform")
    if relationship == "manager_subordinate":
        factors.append("power_dynamics")
    if urgent:
        score += 15
        factors.append("high_urgency")
    if directness == "direct":
        score += 10
        factors.append("direct_style")
    if expressiveness == "high":
        score += 8
        factors.append("high_expressiveness")
    if after_hours:
        factors.append("outside_business_hours")

    score = min(100, score)
    if score >= HIGH_CONTEXT_RISK:
        level = "high"
    elif score >= MEDIUM_CONTEXT_RISK:
        level = "medium"
    else:
        level = "low"
    return score, level, factors


def context_advice(platform: str, relationship: str, factors: Iterable[str]) -> list[str]:
    """Recommendations for a high-stakes setting."""
    found = set(factors)
    advice = []
    if platform == "social":
        advice.append(CONTEXT_ADVICE["social"])
    if relationship in CONTEXT_ADVICE:
        advice.append(CONTEXT_ADVICE[relationship])
    if "high_expressiveness" in found:
        advice.append(CONTEXT_ADVICE["expressive"])
    if "outside_business_hours" in found:
        advice.append(CONTEXT_ADVICE["after_hours"])
    return advice


def _context_factors(text: str, signals: TextSignals, metadata: dict[str, str]) -> dict[str, Any]:
    if signals.power:
        directness = "direct"
    elif HEDGES.matches(text.lower()):
        directness = "indirect"
    else:
        directness = "neutral"

    platform = classify_platform(metadata.get("url", ""))
    relationship = infer_relationship(text, metadata)
    score, level, factors = context_risk(
        platform,
        relationship,
        bool(signals.urgency),
        directness,
        expressiveness_level(text),
        sent_after_hours(metadata),
    )
    return {
        "urgency": "high" if signals.urgency else "normal",
        "formality": formality_level(text),
        "directness": directness,
        "platform": platform,
        "relationship": relationship,
        "context_risk": score,
        "context_risk_level": level,
        "risk_factors": factors,
    }


# =============================================================================
# Analysis
# =============================================================================


def analyze_content(content: Content, mode: AnalysisMode) -> AnalysisResult:
    """Run heuristic analysis synchronously.

    Deterministic: identical content and mode always give an identical
    result apart from the timestamp.
    """
    text = content.text
    signals = TextSignals.from_text(text)
    sarcasm_score, patterns = text_sarcasm(signals)

    if mode == AnalysisMode.MULTIMODAL:
        items = visual_items(text, content.images)
        if items:
            incongruent = count_incongruent(signals.sentiment_balance, items)
            visual_score = min(100, incongruent * VISUAL_POINTS_PER_INCONGRUENT_ITEM)
            sarcasm_score = _clamp(sarcasm_score * TEXT_WEIGHT + visual_score * VISUAL_WEIGHT)
            if incongruent:
                patterns.append("incongruent_imagery")

    power_dynamics = _power_dynamics(signals)
    strategic: dict[str, Any] = {
        "power_dynamics": power_dynamics,
        "power_score": _clamp(50 + (len(signals.power) - len(signals.collaborative)) * 10),
    }
    if mode in CONTEXT_MODES:
        strategic.update(_context_factors(text, signals, content.metadata))

    emotional = {
        "tone": _tone(signals, sarcasm_score),
        "sentiment_score": _clamp(50 + (len(signals.positive) - len(signals.negative)) * 10),
        "passive_aggressive_phrases": len(signals.passive_aggressive),
    }
    relational = {
        "trust_score": _clamp(50 + (len(signals.trust) - len(signals.distrust)) * 20),
        "collaboration_score": _clamp(
            50 + (len(signals.collaborative) - len(signals.individual)) * 10
        ),
    }

    overall_risk = _clamp(
        10
        + len(signals.passive_aggressive) * 20
        + len(signals.power) * 15
        + len(signals.negative) * 8
        + len(signals.distrust) * 5
        + round_score(sarcasm_score * 0.3)
        + (10 if signals.urgency else 0)
        - len(signals.positive) * 5
    )
    confidence = min(MAX_CONFIDENCE, 0.5 + 0.05 * signals.evidence_count())

    recommendations = recommend(sarcasm_score, overall_risk, patterns, power_dynamics)
    if strategic.get("context_risk_level") == "high":
        advice = context_advice(
            strategic["platform"], strategic["relationship"], strategic["risk_factors"]
        )
        if advice:
            kept = [r for r in recommendations if r != NO_CHANGES_RECOMMENDATION]
            recommendations = list(dedupe(kept + advice, limit=MAX_RECOMMENDATIONS))

    return AnalysisResult(
        strategic=strategic,
        emotional=emotional,
        relational=relational,
        overall_risk=overall_risk,
        sarcasm_score=sarcasm_score,
        confidence=round(confidence, 2),
        source=BackendId.LOCAL_HEURISTIC,
        recommendations=tuple(recommendations),
        detected_patterns=tuple(patterns),
    )


class LocalHeuristicBackend(AnalysisBackend):
    """Always-available local backend."""

    backend_id = BackendId.LOCAL_HEURISTIC
    requires_sanitized = False

    def is_available(self, capabilities: Capabilities) -> bool:
        return capabilities.local_model

    async def analyze(
        self, content: Content, mode: AnalysisMode, timeout_s: float | None = None
    ) -> AnalysisResult:
        result = analyze_content(content, mode)
        logger.debug(
            f"Heuristic analysis: {len(content.text)} chars, risk={result.overall_risk}, "
            f"sarcasm={result.sarcasm_score}"
        )
        return result


# =============================================================================
# Ultimate Fallback
# =============================================================================


ULTIMATE_FALLBACK_CONFIDENCE = 0.3
ULTIMATE_FALLBACK_RISK = 30
ULTIMATE_FALLBACK_RECOMMENDATION = "Only a limited analysis was possible; review this message manually."


def ultimate_fallback_result() -> AnalysisResult:
    """Fixed minimal result used when every backend failed."""
    return AnalysisResult(
        strategic={"power_dynamics": "unknown"},
        emotional={"tone": "neutral"},
        relational={},
        overall_risk=ULTIMATE_FALLBACK_RISK,
        sarcasm_score=0,
        confidence=ULTIMATE_FALLBACK_CONFIDENCE,
        source=BackendId.ULTIMATE_FALLBACK,
        recommendations=(ULTIMATE_FALLBACK_RECOMMENDATION,),
    )
