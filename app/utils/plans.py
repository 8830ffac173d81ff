"""
Findly — Plan Registry
Static plan table: prices and tool-slot limits per plan identifier, plus
advertisement pricing. Unknown plans resolve to zero, never raise.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.config import settings


@dataclass(frozen=True)
class Plan:
    """One purchasable tier/billing combination."""
    name: str
    tier: str
    interval: str  # monthly, yearly
    price_cents: int
    tool_limit: int


# Slots depend on the tier only, not on the billing interval
TIER_LIMITS = {
    "starter": 1,
    "plus": 5,
    "max": 10,
}

TIER_DISPLAY_NAMES = {
    "starter": "Starter",
    "plus": "Plus",
    "max": "Max",
}

PLANS = {
    "starter-monthly": Plan("starter-monthly", "starter", "monthly", 500, TIER_LIMITS["starter"]),
    "plus-monthly": Plan("plus-monthly", "plus", "monthly", 900, TIER_LIMITS["plus"]),
    "max-monthly": Plan("max-monthly", "max", "monthly", 1500, TIER_LIMITS["max"]),
    "starter-yearly": Plan("starter-yearly", "starter", "yearly", 5000, TIER_LIMITS["starter"]),
    "plus-yearly": Plan("plus-yearly", "plus", "yearly", 9000, TIER_LIMITS["plus"]),
    "max-yearly": Plan("max-yearly", "max", "yearly", 15000, TIER_LIMITS["max"]),
}


def get_plan(plan: Optional[str]) -> Optional[Plan]:
    if not plan:
        return None
    return PLANS.get(plan)


def limit_for(plan: Optional[str]) -> int:
    """Tool slots granted by a plan; 0 for unknown plans."""
    found = get_plan(plan)
    return found.tool_limit if found else 0


def price_for(plan: Optional[str]) -> int:
    """Plan price in cents; 0 for unknown plans."""
    found = get_plan(plan)
    return found.price_cents if found else 0


def display_name(plan: Optional[str]) -> str:
    for tier, label in TIER_DISPLAY_NAMES.items():
        if plan and tier in plan:
            return label
    return "Unknown"


def upgrade_message(current_limit: int) -> str:
    if current_limit == TIER_LIMITS["starter"]:
        return "Upgrade to Plus (5 tools)."
    if current_limit == TIER_LIMITS["plus"]:
        return "Upgrade to Max (10 tools)."
    return "Contact us for Enterprise plan."


def plan_limit_message(plan: Optional[str], current_count: int, limit: int) -> str:
    return (
        f"{display_name(plan)} plan limit reached ({current_count}/{limit} tools). "
        f"{upgrade_message(limit)}"
    )


# ── Advertisement pricing ────────────────────────────────────────────────────

@dataclass
class AdvertisementQuote:
    placement: str
    duration: int  # days, inclusive
    discount_percentage: int
    daily_rate_cents: int
    total_price: int  # cents


def daily_rate(placement: str) -> int:
    """Daily rate in whole dollars for a placement."""
    if placement == "homepage":
        return settings.ADVERTISEMENT_RATE_HOMEPAGE
    return settings.ADVERTISEMENT_RATE_ALL


def advertisement_discount(days: int) -> int:
    """Percent off: one step per day beyond the first, capped."""
    return min(
        max(0, days - 1) * settings.ADVERTISEMENT_DISCOUNT_PER_DAY,
        settings.ADVERTISEMENT_DISCOUNT_MAX,
    )


def campaign_duration(start_date: datetime, end_date: datetime) -> int:
    """Whole days covered by the campaign, counting both ends, at least 1."""
    seconds = (end_date - start_date).total_seconds()
    return max(1, math.ceil(seconds / 86400) + 1)


def quote_advertisement(placement: str, start_date: datetime, end_date: datetime) -> AdvertisementQuote:
    duration = campaign_duration(start_date, end_date)
    discount = advertisement_discount(duration)
    discounted_daily = daily_rate(placement) * 100 * (100 - discount) / 100
    return AdvertisementQuote(
        placement=placement,
        duration=duration,
        discount_percentage=discount,
        daily_rate_cents=daily_rate(placement) * 100,
        total_price=round(discounted_daily * duration),
    )
