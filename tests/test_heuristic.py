"""Tests for the local heuristic backend."""

from __future__ import annotations

import asyncio

import pytest

from chalamandra.ai.explanations import NO_CHANGES_RECOMMENDATION
from chalamandra.ai.heuristic import (
    CONTEXT_ADVICE,
    Lexicon,
    LocalHeuristicBackend,
    analyze_content,
    classify_platform,
    context_risk,
    count_incongruent,
    expressiveness_level,
    infer_relationship,
    sent_after_hours,
    ultimate_fallback_result,
)
from chalamandra.core.models import AnalysisMode, BackendId, Capabilities, Content, ImageRef


def quick(text: str):
    return analyze_content(Content(text=text), AnalysisMode.QUICK)


def deep(text: str, **metadata: str):
    return analyze_content(Content(text=text, metadata=metadata), AnalysisMode.DEEP)


# =============================================================================
# Lexicon Tests
# =============================================================================


class TestLexicon:
    """Tests for word-boundary matching."""

    def test_matches_whole_words_only(self) -> None:
        """'i' does not match inside other words."""
        assert Lexicon("i").matches("it is mine") == set()
        assert Lexicon("i").matches("i think so") == {"i"}

    def test_matches_phrases(self) -> None:
        lexicon = Lexicon("per my last email", "going forward")
        assert lexicon.matches("per my last email, going forward please") == {
            "per my last email",
            "going forward",
        }

    def test_counts_distinct_terms(self) -> None:
        """Repeated words count once."""
        assert Lexicon("great").matches("great great great") == {"great"}


# =============================================================================
# Scoring Tests
# =============================================================================


class TestSarcasm:
    """Tests for sarcasm pattern scoring."""

    def test_appreciative_message_scores_low(self, friendly_text: str) -> None:
        """A sincere thank-you is low risk, positive, with no sarcasm."""
        result = quick(friendly_text)

        assert result.overall_risk < 30
        assert result.overall_risk == 0
        assert result.sarcasm_score == 0
        assert result.tone == "positive"
        assert result.confidence == 0.75
        assert result.detected_patterns == ()

    def test_sarcastic_message_triggers_patterns(self, sarcastic_text: str) -> None:
        """Excessive positivity, hyperbole and emphasis add up."""
        result = deep(sarcastic_text)

        assert result.detected_patterns == (
            "excessive_positivity",
            "hyperbole",
            "emphatic_capitals",
        )
        assert result.sarcasm_score == 65
        assert result.tone == "sarcastic"
        assert result.overall_risk == 40
        assert result.confidence == 0.8

    def test_passive_aggressive_phrases(self) -> None:
        result = quick("Per my last email, as I mentioned, this needs fixing.")

        assert "passive_aggressive" in result.detected_patterns
        assert result.sarcasm_score == 40
        assert result.tone == "negative"
        assert result.overall_risk > 50
        assert result.emotional["passive_aggressive_phrases"] == 2

    def test_praise_followed_by_contrast(self) -> None:
        result = quick("Great presentation, but the numbers were wrong.")

        assert result.detected_patterns == ("contextual_contradiction",)
        assert result.sarcasm_score == 35

    def test_capitals_alone_are_not_sarcasm(self) -> None:
        """Emphasis only counts alongside another pattern."""
        result = quick("Please send the REPORT")

        assert result.sarcasm_score == 0
        assert result.detected_patterns == ()

    def test_all_caps_message_is_not_emphasis(self) -> None:
        """Shouting the whole message does not add emphatic_capitals."""
        result = quick("I LOVE THIS ABSOLUTELY PERFECT PLAN")

        assert "excessive_positivity" in result.detected_patterns
        assert "emphatic_capitals" not in result.detected_patterns

    def test_score_is_capped(self) -> None:
        result = quick(
            "Per my last email, this is ABSOLUTELY the best, totally wonderful work, "
            "but as I mentioned it never works."
        )
        assert result.sarcasm_score == 100


class TestDimensions:
    """Tests for strategic, relational and context dimensions."""

    def test_directive_language_is_high_power(self) -> None:
        result = quick("You must finish this immediately. I expect an update.")

        assert result.strategic["power_dynamics"] == "high"
        assert result.overall_risk >= 50

    def test_collaborative_language_is_low_power(self) -> None:
        result = quick("We could work on this together as a team, I suggest we start.")
        assert result.strategic["power_dynamics"] == "low"

    def test_trust_language_raises_trust_score(self) -> None:
        result = quick("I trust you and rely on your judgment.")
        assert result.relational["trust_score"] == 90

    def test_quick_mode_skips_context_factors(self, sarcastic_text: str) -> None:
        result = quick(sarcastic_text)
        assert "urgency" not in result.strategic

    def test_deep_mode_adds_context_factors(self, sarcastic_text: str) -> None:
        result = deep(sarcastic_text, url="https://app.slack.com/client/T1")

        assert result.strategic["urgency"] == "high"
        assert result.strategic["formality"] == "neutral"
        assert result.strategic["directness"] == "neutral"
        assert result.strategic["platform"] == "chat"

    def test_recommendations_never_empty(self, friendly_text: str) -> None:
        assert quick(friendly_text).recommendations

    def test_deterministic(self, sarcastic_text: str) -> None:
        """Same content and mode give the same result apart from the timestamp."""
        first = deep(sarcastic_text).model_dump(exclude={"timestamp"})
        second = deep(sarcastic_text).model_dump(exclude={"timestamp"})
        assert first == second


class TestPlatform:
    """Tests for platform classification."""

    @pytest.mark.parametrize(
        "url,platform",
        [
            ("https://mail.google.com/mail/u/0", "email"),
            ("https://outlook.office.com/mail", "email"),
            ("https://app.slack.com/client", "chat"),
            ("https://www.linkedin.com/messaging", "professional_network"),
            ("https://reddit.com/r/python", "social"),
            ("https://example.org", "unknown"),
            ("", "unknown"),
        ],
    )
    def test_classify_platform(self, url: str, platform: str) -> None:
        assert classify_platform(url) == platform


# =============================================================================
# Context Tests
# =============================================================================


class TestRelationship:
    """Tests for relationship inference."""

    @pytest.mark.parametrize(
        "text,metadata,relationship",
        [
            ("Quick question", {"relationship": "client_vendor"}, "client_vendor"),
            ("Quick question", {"relationship": " Manager_Subordinate "}, "manager_subordinate"),
            ("Please ask your manager", {"relationship": "friends"}, "manager_subordinate"),
            ("The customer called again", {}, "client_vendor"),
            ("Update for everyone", {}, "team_group"),
            ("Notes from the call", {"participants": "5"}, "team_group"),
            ("Notes from the call", {"participants": "many"}, "peer_colleague"),
            ("A colleague asked about it", {}, "peer_colleague"),
            ("Dear Ms. Lee, kindly review the draft. Regards", {}, "client_vendor"),
            ("hey, lunch?", {}, "peer_colleague"),
        ],
    )
    def test_infer_relationship(self, text: str, metadata: dict, relationship: str) -> None:
        assert infer_relationship(text, metadata) == relationship


class TestContextRisk:
    """Tests for context risk scoring."""

    def test_calm_setting_is_low(self) -> None:
        assert context_risk("email", "peer_colleague", False, "neutral", "low", None) == (
            30,
            "low",
            [],
        )

    def test_unknown_setting_is_medium(self) -> None:
        score, level, factors = context_risk("unknown", "other", False, "neutral", "low", False)

        assert (score, level, factors) == (40, "medium", [])

    def test_every_factor_is_reported_and_score_capped(self) -> None:
        score, level, factors = context_risk(
            "social", "manager_subordinate", True, "direct", "high", True
        )

        assert score == 100
        assert level == "high"
        assert factors == [
            "public_platform",
            "power_dynamics",
            "high_urgency",
            "direct_style",
            "high_expressiveness",
            "outside_business_hours",
        ]

    @pytest.mark.parametrize(
        "text,level",
        [("ok", "low"), ("great!", "medium"), ("wow!!!", "high"), ("nice 🎉🎉 !", "high")],
    )
    def test_expressiveness_level(self, text: str, level: str) -> None:
        assert expressiveness_level(text) == level

    @pytest.mark.parametrize(
        "metadata,expected",
        [
            ({"sent_at": "2024-03-09T10:00:00"}, True),
            ({"sent_at": "2024-03-06T10:30:00"}, False),
            ({"sent_at": "2024-03-06T20:00:00"}, True),
            ({"sent_at": "2024-03-06T08:59:00"}, True),
            ({"sent_at": "yesterday"}, None),
            ({}, None),
        ],
    )
    def test_sent_after_hours(self, metadata: dict, expected: bool | None) -> None:
        """2024-03-09 is a Saturday, 2024-03-06 a Wednesday."""
        assert sent_after_hours(metadata) is expected

    def test_deep_mode_reports_context(self) -> None:
        result = deep("Quick update", sent_at="2024-03-06T22:15:00")

        assert result.strategic["relationship"] == "peer_colleague"
        assert result.strategic["context_risk"] == 35
        assert result.strategic["context_risk_level"] == "low"
        assert result.strategic["risk_factors"] == ["outside_business_hours"]
        assert result.recommendations == (NO_CHANGES_RECOMMENDATION,)

    def test_quick_mode_skips_context_risk(self) -> None:
        assert "context_risk" not in quick("You must reply to your manager today!!!").strategic

    def test_high_context_risk_adds_advice(self) -> None:
        result = deep(
            "You must send this to your manager today!!!", url="https://twitter.com/x"
        )

        assert result.strategic["platform"] == "social"
        assert result.strategic["relationship"] == "manager_subordinate"
        assert result.strategic["context_risk_level"] == "high"
        assert result.recommendations == (
            CONTEXT_ADVICE["social"],
            CONTEXT_ADVICE["manager_subordinate"],
            CONTEXT_ADVICE["expressive"],
        )


# =============================================================================
# Multimodal Tests
# =============================================================================


class TestMultimodal:
    """Tests for visual incongruence scoring."""

    def test_incongruent_image_raises_sarcasm(self) -> None:
        """A crying image under cheerful text reads as sarcasm."""
        content = Content(
            text="Great news, thanks team",
            images=(ImageRef(alt_text="crying face"),),
        )
        result = analyze_content(content, AnalysisMode.MULTIMODAL)

        assert result.sarcasm_score == 12
        assert "incongruent_imagery" in result.detected_patterns

    def test_images_ignored_outside_multimodal(self) -> None:
        content = Content(
            text="Great news, thanks team",
            images=(ImageRef(alt_text="crying face"),),
        )
        result = analyze_content(content, AnalysisMode.DEEP)

        assert result.sarcasm_score == 0
        assert "incongruent_imagery" not in result.detected_patterns

    def test_congruent_image_adds_nothing(self) -> None:
        content = Content(
            text="Great news, thanks team",
            images=(ImageRef(alt_text="people smiling at a party"),),
        )
        result = analyze_content(content, AnalysisMode.MULTIMODAL)

        assert result.sarcasm_score == 0
        assert result.detected_patterns == ()

    def test_emoji_count_as_visual_items(self) -> None:
        content = Content(text="Great news, thanks team 👎👎")
        result = analyze_content(content, AnalysisMode.MULTIMODAL)

        assert result.sarcasm_score == 24

    def test_count_incongruent(self) -> None:
        assert count_incongruent(0, [1, -1]) == 0
        assert count_incongruent(2, [1, -1, 0]) == 1
        assert count_incongruent(-1, [1, 1, -1]) == 2


# =============================================================================
# Backend Tests
# =============================================================================


class TestLocalHeuristicBackend:
    """Tests for the backend adapter and the ultimate fallback."""

    def test_available_when_local_model_flag_set(self) -> None:
        backend = LocalHeuristicBackend()

        assert backend.is_available(Capabilities(local_model=True)) is True
        assert backend.is_available(Capabilities(local_model=False)) is False
        assert backend.requires_sanitized is False

    def test_analyze_returns_heuristic_result(self, friendly_text: str) -> None:
        result = asyncio.run(
            LocalHeuristicBackend().analyze(Content(text=friendly_text), AnalysisMode.QUICK)
        )
        assert result.source == BackendId.LOCAL_HEURISTIC

    def test_ultimate_fallback_result(self) -> None:
        """The fallback is fixed, low confidence and never empty."""
        result = ultimate_fallback_result()

        assert result.source == BackendId.ULTIMATE_FALLBACK
        assert result.confidence == 0.3
        assert result.overall_risk == 30
        assert result.is_degraded()
        assert result.recommendations
