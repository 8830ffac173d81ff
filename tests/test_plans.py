"""Tests for the plan registry and advertisement pricing."""
from datetime import timedelta

import pytest

from app.utils.plans import (
    PLANS,
    advertisement_discount,
    campaign_duration,
    display_name,
    limit_for,
    plan_limit_message,
    price_for,
    quote_advertisement,
)
from tests.factories import T0


class TestPlanRegistry:
    @pytest.mark.parametrize("plan,limit", [
        ("starter-monthly", 1),
        ("starter-yearly", 1),
        ("plus-monthly", 5),
        ("plus-yearly", 5),
        ("max-monthly", 10),
        ("max-yearly", 10),
    ])
    def test_limit_depends_on_tier_only(self, plan, limit):
        assert limit_for(plan) == limit

    @pytest.mark.parametrize("plan", ["enterprise", "", None, "plus"])
    def test_unknown_plan_is_zero(self, plan):
        assert limit_for(plan) == 0
        assert price_for(plan) == 0

    def test_prices_in_cents(self):
        assert price_for("starter-monthly") == 500
        assert price_for("max-yearly") == 15000
        assert all(p.price_cents > 0 for p in PLANS.values())

    def test_display_name(self):
        assert display_name("plus-yearly") == "Plus"
        assert display_name("gold") == "Unknown"

    def test_limit_message_suggests_next_tier(self):
        assert plan_limit_message("plus-monthly", 5, 5) == (
            "Plus plan limit reached (5/5 tools). Upgrade to Max (10 tools)."
        )
        assert plan_limit_message("max-monthly", 10, 10).endswith("Contact us for Enterprise plan.")


class TestAdvertisementPricing:
    def test_discount_grows_per_day_and_caps(self):
        assert advertisement_discount(1) == 0
        assert advertisement_discount(8) == 7
        assert advertisement_discount(31) == 30
        assert advertisement_discount(90) == 30

    def test_duration_counts_both_ends(self):
        assert campaign_duration(T0, T0) == 1
        assert campaign_duration(T0, T0 + timedelta(days=6)) == 7
        assert campaign_duration(T0, T0 + timedelta(days=6, hours=1)) == 8

    def test_quote_all_pages_week(self):
        quote = quote_advertisement("all", T0, T0 + timedelta(days=6))
        assert quote.duration == 7
        assert quote.discount_percentage == 6
        assert quote.daily_rate_cents == 500
        # 7 days * $5 * 0.94
        assert quote.total_price == 3290

    def test_quote_homepage_single_day(self):
        quote = quote_advertisement("homepage", T0, T0)
        assert quote.total_price == 400
        assert quote.discount_percentage == 0
