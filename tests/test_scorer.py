"""
Tests for the complexity scorer.

Covers:
  1. Known requests land in the expected tier
  2. Band containment for every scored text
  3. Monotonicity: more matched signals never lower the score
  4. History handling (window, truncation, reduced weight)
  5. Confidence near band edges and for unmatched text
"""

from __future__ import annotations

import pytest

from intent_router.scorer import (
    UNMATCHED_CONFIDENCE,
    ComplexityScorer,
    PatternGroup,
    _group,
)
from intent_router.tiers import DEFAULT_TIERS, FIVE_TIERS


@pytest.fixture
def scorer() -> ComplexityScorer:
    return ComplexityScorer()


SAMPLE_TEXTS = [
    "hi",
    "thanks!",
    "what's today's weather",
    "What is the capital of France?",
    "Write a Python function to reverse a linked list",
    "Explain the trade-offs between microservices and a monolith",
    "fix this segfault in my C program",
    "Design a distributed system architecture with sharding and load balancing, "
    "then write a comprehensive step by step migration plan",
    "Write a poem about autumn",
    "word " * 1200,
]


class TestKnownRequests:

    def test_greeting_is_simple(self, scorer):
        result = scorer.score("hi")
        assert result.tier.name == "simple"
        assert result.score == 0.0
        assert result.matched_categories == frozenset({"greeting"})
        assert result.confidence == 1.0

    def test_weather_question(self, scorer):
        result = scorer.score("what's today's weather")
        assert result.score == pytest.approx(0.1)
        assert result.tier.name == "simple"
        assert "question" in result.matched_categories

    def test_segfault_is_expert(self, scorer):
        result = scorer.score("fix this segfault in my C program")
        assert result.score == pytest.approx(0.95)
        assert result.tier.rank >= DEFAULT_TIERS.require("complex").rank
        assert {"debugging", "code"} <= result.matched_categories

    def test_empty_text(self, scorer):
        for text in ("", "   ", "\n\t"):
            result = scorer.score(text)
            assert result.tier is DEFAULT_TIERS.lowest
            assert result.score == 0.0
            assert result.confidence == 1.0
            assert result.matched_categories == frozenset()

    def test_long_input_gets_length_bonus(self, scorer):
        result = scorer.score("word " * 1200)
        assert "long_context" in result.matched_categories
        assert result.score == pytest.approx(0.15)

    def test_five_tier_scheme(self):
        scorer = ComplexityScorer(tier_scheme=FIVE_TIERS)
        assert scorer.score("hi").tier.name == "trivial"
        assert scorer.score("fix this segfault in my C program").tier.name == "expert"


class TestInvariants:

    @pytest.mark.parametrize("text", SAMPLE_TEXTS)
    def test_band_containment(self, scorer, text):
        result = scorer.score(text)
        is_top = result.tier is DEFAULT_TIERS.highest
        assert result.tier.contains(result.score, is_top=is_top)
        assert 0.0 <= result.score <= 1.0
        assert 0.0 <= result.confidence <= 1.0

    def test_monotonic_in_matched_signals(self, scorer):
        base = scorer.score("explain this function")
        richer = scorer.score(
            "explain this function and its distributed architecture in a comprehensive review"
        )
        assert base.matched_categories <= richer.matched_categories
        assert richer.score >= base.score

    def test_score_is_capped(self, scorer):
        text = (
            "comprehensive in-depth debug of this segfault traceback in my python "
            "microservices architecture, explain why step by step, then calculate the integral"
        )
        assert scorer.score(text).score == 1.0

    def test_pure(self, scorer):
        text = "Write a Python function to reverse a linked list"
        assert scorer.score(text) == scorer.score(text)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            ComplexityScorer(groups=[_group("bad", -0.1, r"x")])

    def test_categories_listed(self, scorer):
        assert "debugging" in scorer.categories
        assert "long_context" in scorer.categories


class TestHistory:

    def test_history_raises_score_at_reduced_weight(self, scorer):
        history = [{"role": "user", "content": "design a distributed system architecture"}]
        alone = scorer.score("and then?")
        with_history = scorer.score("and then?", history=history)
        assert "architecture" in with_history.matched_categories
        assert with_history.score == pytest.approx(alone.score + 0.45 * 0.5)

    def test_only_last_turns_considered(self, scorer):
        history = ["design a distributed system architecture", "ok", "sure", "thanks"]
        result = scorer.score("and then?", history=history)
        assert "architecture" not in result.matched_categories

    def test_truncate_history(self, scorer):
        history = [
            {"role": "user", "content": "a" * 800},
            {"role": "assistant", "content": ""},
            "b" * 10,
        ]
        turns = scorer.truncate_history(history)
        assert turns == ["a" * 500, "b" * 10]

    def test_truncation_hides_late_signals(self, scorer):
        history = ["x" * 600 + " segfault"]
        result = scorer.score("and then?", history=history)
        assert "debugging" not in result.matched_categories

    def test_empty_history(self, scorer):
        assert scorer.truncate_history(None) == []
        assert scorer.truncate_history([]) == []

    def test_role_keyed_turns(self, scorer):
        history = [
            {"user": "what's the weather in Paris today"},
            {"assistant": "Sunny, 22C (via web_search)"},
            {"role": "user"},
        ]
        assert scorer.truncate_history(history) == [
            "what's the weather in Paris today",
            "Sunny, 22C (via web_search)",
        ]


class TestConfidence:

    def test_unmatched_text_is_ambiguous(self, scorer):
        result = scorer.score("banana bread")
        assert result.matched_categories == frozenset()
        assert result.confidence == UNMATCHED_CONFIDENCE

    def test_score_on_edge_is_least_confident(self, scorer):
        moderate = DEFAULT_TIERS.require("moderate")
        assert scorer.confidence_for(0.35, moderate, True) == pytest.approx(0.55)

    def test_score_mid_band_is_fully_confident(self, scorer):
        complex_ = DEFAULT_TIERS.require("complex")
        assert scorer.confidence_for(0.7, complex_, True) == pytest.approx(1.0)

    def test_single_tier_scheme_always_confident(self):
        from intent_router.tiers import TierScheme
        scorer = ComplexityScorer(tier_scheme=TierScheme([("only", 0.0, 1.0)]))
        assert scorer.score("explain this").confidence == 1.0

    def test_custom_groups(self):
        groups = [PatternGroup("custom", 0.7, ())]
        scorer = ComplexityScorer(groups=groups)
        assert scorer.score("anything").score == 0.0
