"""
Tests for Deal Fairness

Tests covering:
1. Reference cases (100 vs 90 fair, 100 vs 50 unfair with top-up 0)
2. Symmetry of the fairness flag
3. Suggested top-up only compensates the lower side
4. Input validation
5. Human-readable verdicts
"""

import math

import pytest

from core.errors import ValidationError
from core.fairness import (
    FAIRNESS_TOLERANCE,
    describe_summary,
    tolerance_band,
    value_summary,
)


class TestValueSummary:
    """Tests for value_summary."""

    def test_close_values_are_fair(self):
        summary = value_summary(100, 90)
        assert summary.is_fair
        assert summary.difference == 10
        assert summary.suggested_top_up == 0

    def test_large_gap_is_unfair(self):
        summary = value_summary(100, 50)
        assert not summary.is_fair
        assert summary.difference == 50
        assert summary.suggested_top_up == 0

    def test_lower_offer_gets_top_up(self):
        summary = value_summary(50, 100)
        assert not summary.is_fair
        assert summary.difference == -50
        assert summary.suggested_top_up == 50

    @pytest.mark.parametrize("a,b", [(100, 90), (100, 50), (0, 0), (10, 0), (120, 100)])
    def test_fairness_is_symmetric(self, a, b):
        assert value_summary(a, b).is_fair == value_summary(b, a).is_fair

    def test_zero_totals_are_fair(self):
        assert value_summary(0, 0).is_fair

    def test_boundary_is_inclusive(self):
        # 10% of 200 is exactly 20
        assert value_summary(110, 90).is_fair

    def test_custom_tolerance(self):
        assert not value_summary(100, 90, tolerance=0.01).is_fair

    def test_default_tolerance(self):
        assert FAIRNESS_TOLERANCE == 0.1

    @pytest.mark.parametrize("offer_total,request_total", [(-1, 10), (10, -1), (math.nan, 1), (math.inf, 1)])
    def test_invalid_amounts_rejected(self, offer_total, request_total):
        with pytest.raises(ValidationError):
            value_summary(offer_total, request_total)

    def test_to_dict_uses_wire_names(self):
        assert value_summary(100, 50).to_dict() == {
            "offerTotal": 100.0,
            "requestTotal": 50.0,
            "difference": 50.0,
            "suggestedTopUp": 0.0,
            "isFair": False,
        }


class TestDescribeSummary:
    """Tests for verdict strings."""

    def test_balanced(self):
        assert describe_summary(value_summary(100, 95)) == "Balanced exchange"

    def test_top_up_in_currency(self):
        text = describe_summary(value_summary(1000, 2250), currency="MDL")
        assert text == "Offer is lower. Suggested top-up: 1,250.00 MDL"

    def test_offer_exceeds(self):
        text = describe_summary(value_summary(100, 50), currency="EUR")
        assert text == "Offer exceeds request by €50.00"

    def test_tolerance_band(self):
        assert tolerance_band(value_summary(100, 50)) == pytest.approx(15.0)
