"""
Tests for tier schemes and the pricing table.

Covers:
  1. Band validation (gaps, overlaps, coverage, duplicates)
  2. Score → tier lookup, including band edges and the closed top band
  3. Pricing lookups, cost arithmetic and malformed config
"""

from __future__ import annotations

import pytest

from intent_router.errors import ConfigurationError
from intent_router.pricing import PricingEntry, PricingTable, estimate_tokens
from intent_router.tiers import DEFAULT_TIERS, FIVE_TIERS, TierScheme


# ---------------------------------------------------------------------------
# TierScheme validation
# ---------------------------------------------------------------------------

class TestTierSchemeValidation:

    def test_default_scheme_has_four_tiers(self):
        assert DEFAULT_TIERS.names == ["simple", "moderate", "complex", "expert"]

    def test_five_tier_scheme_starts_with_trivial(self):
        assert FIVE_TIERS.lowest.name == "trivial"
        assert len(FIVE_TIERS) == 5

    def test_empty_scheme_rejected(self):
        with pytest.raises(ConfigurationError):
            TierScheme([])

    def test_gap_rejected(self):
        with pytest.raises(ConfigurationError, match="Gap"):
            TierScheme([("low", 0.0, 0.4), ("high", 0.5, 1.0)])

    def test_overlap_rejected(self):
        with pytest.raises(ConfigurationError, match="overlap"):
            TierScheme([("low", 0.0, 0.6), ("high", 0.5, 1.0)])

    def test_must_start_at_zero(self):
        with pytest.raises(ConfigurationError, match="0.0"):
            TierScheme([("low", 0.1, 0.5), ("high", 0.5, 1.0)])

    def test_must_end_at_one(self):
        with pytest.raises(ConfigurationError, match="1.0"):
            TierScheme([("low", 0.0, 0.5), ("high", 0.5, 0.9)])

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            TierScheme([("same", 0.0, 0.5), ("SAME", 0.5, 1.0)])

    def test_empty_band_rejected(self):
        with pytest.raises(ConfigurationError):
            TierScheme([("a", 0.0, 0.0), ("b", 0.0, 1.0)])

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            TierScheme([])

    def test_from_config_round_trip(self):
        scheme = TierScheme.from_config(DEFAULT_TIERS.to_config())
        assert scheme == DEFAULT_TIERS

    def test_from_config_missing_key(self):
        with pytest.raises(ConfigurationError, match="Malformed"):
            TierScheme.from_config([{"name": "only", "low": 0.0}])


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

class TestTierLookup:

    @pytest.mark.parametrize("score,expected", [
        (0.0, "simple"),
        (0.3499, "simple"),
        (0.35, "moderate"),
        (0.59, "moderate"),
        (0.6, "complex"),
        (0.8, "expert"),
        (1.0, "expert"),
    ])
    def test_tier_for_score(self, score, expected):
        assert DEFAULT_TIERS.tier_for_score(score).name == expected

    def test_scores_are_clamped(self):
        assert DEFAULT_TIERS.tier_for_score(-3.0).name == "simple"
        assert DEFAULT_TIERS.tier_for_score(7.0).name == "expert"

    def test_top_band_is_closed(self):
        top = DEFAULT_TIERS.highest
        assert top.contains(1.0, is_top=True)
        assert not top.contains(1.0)

    def test_get_is_case_insensitive(self):
        assert DEFAULT_TIERS.get("Complex").name == "complex"
        assert DEFAULT_TIERS.get("legendary") is None
        assert "EXPERT" in DEFAULT_TIERS

    def test_require_unknown_raises(self):
        with pytest.raises(ConfigurationError, match="Unknown tier"):
            DEFAULT_TIERS.require("legendary")

    def test_max_tier(self):
        simple = DEFAULT_TIERS.require("simple")
        complex_ = DEFAULT_TIERS.require("complex")
        assert DEFAULT_TIERS.max_tier(simple, complex_) is complex_
        assert DEFAULT_TIERS.max_tier(complex_, simple) is complex_

    def test_interior_boundaries(self):
        assert DEFAULT_TIERS.interior_boundaries(DEFAULT_TIERS.lowest) == [0.35]
        assert DEFAULT_TIERS.interior_boundaries(DEFAULT_TIERS.require("moderate")) == [0.35, 0.6]
        assert DEFAULT_TIERS.interior_boundaries(DEFAULT_TIERS.highest) == [0.8]


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

@pytest.fixture
def table() -> PricingTable:
    return PricingTable.from_config({
        "cheap": {"input": 0.0001, "output": 0.0002, "tier": "simple"},
        "mid": {"input": 0.001, "output": 0.005, "tier": "Moderate"},
        "big": {"input": 0.01, "output": 0.05, "tier": "expert"},
    })


class TestPricing:

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_entry_cost(self):
        entry = PricingEntry("m", 0.001, 0.002, "simple")
        assert entry.calculate_cost(1000, 500) == pytest.approx(0.002)

    def test_table_cost(self, table):
        assert table.calculate_cost("big", 2000, 1000) == pytest.approx(0.07)

    def test_unknown_model_costs_nothing(self, table):
        assert table.calculate_cost("ghost", 1000, 1000) == 0.0
        assert table.calculate_cost(None, 1000, 1000) == 0.0

    def test_tier_labels_lowercased(self, table):
        assert table.tier_of("mid") == "moderate"
        assert [e.model_id for e in table.models_for_tier("moderate")] == ["mid"]

    def test_contains_and_len(self, table):
        assert "cheap" in table
        assert "ghost" not in table
        assert len(table) == 3

    def test_entries_are_immutable(self, table):
        entry = table.get("cheap")
        with pytest.raises(Exception):
            entry.input_unit_cost = 1.0  # type: ignore[misc]

    def test_missing_field_rejected(self):
        with pytest.raises(ConfigurationError, match="Malformed"):
            PricingTable.from_config({"m": {"input": 0.1, "tier": "simple"}})

    def test_negative_cost_rejected(self):
        with pytest.raises(ConfigurationError, match="Negative"):
            PricingTable.from_config({"m": {"input": -0.1, "output": 0.1, "tier": "simple"}})

    def test_to_config_round_trip(self, table):
        again = PricingTable.from_config(table.to_config())
        assert again.calculate_cost("mid", 100, 100) == table.calculate_cost("mid", 100, 100)
