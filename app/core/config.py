"""
Findly Backend — Configuration
Standalone settings with Stripe dual-mode (test/live) toggle.
Covers subscription plans, advertisement pricing and the cron sweeps.
"""
from typing import Dict, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Application ──────────────────────────────────────────────────────
    APP_NAME: str = "Findly"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000"
    APP_URL: str = "http://localhost:3000"

    # ── Database ─────────────────────────────────────────────────────────
    DATABASE_URL: str = "postgresql+asyncpg://findly:changeme@db:5432/findly"

    # ── Auth / JWT ───────────────────────────────────────────────────────
    # Tokens are issued by the auth service; we only verify them.
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"

    # ── Cron ─────────────────────────────────────────────────────────────
    CRON_SECRET: str = ""

    # ── Stripe Dual-Mode Billing ─────────────────────────────────────────
    STRIPE_MODE: str = "test"  # "test" or "live"

    STRIPE_TEST_SECRET_KEY: str = ""
    STRIPE_TEST_PUBLISHABLE_KEY: str = ""
    STRIPE_TEST_WEBHOOK_SECRET: str = ""

    STRIPE_LIVE_SECRET_KEY: str = ""
    STRIPE_LIVE_PUBLISHABLE_KEY: str = ""
    STRIPE_LIVE_WEBHOOK_SECRET: str = ""

    # One price per plan identifier, for the active mode
    STRIPE_STARTER_MONTHLY_PRICE_ID: str = ""
    STRIPE_STARTER_YEARLY_PRICE_ID: str = ""
    STRIPE_PLUS_MONTHLY_PRICE_ID: str = ""
    STRIPE_PLUS_YEARLY_PRICE_ID: str = ""
    STRIPE_MAX_MONTHLY_PRICE_ID: str = ""
    STRIPE_MAX_YEARLY_PRICE_ID: str = ""

    STRIPE_COUPON_ID: str = ""  # auto-applied to starter-monthly checkouts
    STRIPE_CURRENCY: str = "usd"

    # ── Advertisement Pricing (whole USD per day) ────────────────────────
    ADVERTISEMENT_RATE_ALL: int = 5
    ADVERTISEMENT_RATE_HOMEPAGE: int = 4
    ADVERTISEMENT_DISCOUNT_PER_DAY: int = 1  # percent per extra day
    ADVERTISEMENT_DISCOUNT_MAX: int = 30  # percent

    # ── Tool Selection ───────────────────────────────────────────────────
    TOOL_SELECTION_COOLDOWN_MONTHS: int = 1

    # ── Stripe Helper Properties ─────────────────────────────────────────
    @property
    def active_stripe_secret_key(self) -> str:
        if self.STRIPE_MODE == "live":
            return self.STRIPE_LIVE_SECRET_KEY
        return self.STRIPE_TEST_SECRET_KEY

    @property
    def active_stripe_publishable_key(self) -> str:
        if self.STRIPE_MODE == "live":
            return self.STRIPE_LIVE_PUBLISHABLE_KEY
        return self.STRIPE_TEST_PUBLISHABLE_KEY

    @property
    def active_stripe_webhook_secret(self) -> str:
        if self.STRIPE_MODE == "live":
            return self.STRIPE_LIVE_WEBHOOK_SECRET
        return self.STRIPE_TEST_WEBHOOK_SECRET

    @property
    def plan_price_ids(self) -> Dict[str, str]:
        return {
            "starter-monthly": self.STRIPE_STARTER_MONTHLY_PRICE_ID,
            "starter-yearly": self.STRIPE_STARTER_YEARLY_PRICE_ID,
            "plus-monthly": self.STRIPE_PLUS_MONTHLY_PRICE_ID,
            "plus-yearly": self.STRIPE_PLUS_YEARLY_PRICE_ID,
            "max-monthly": self.STRIPE_MAX_MONTHLY_PRICE_ID,
            "max-yearly": self.STRIPE_MAX_YEARLY_PRICE_ID,
        }

    def plan_for_price_id(self, price_id: Optional[str]) -> Optional[str]:
        """Map a Stripe price id back to its plan identifier."""
        if not price_id:
            return None
        for plan, configured in self.plan_price_ids.items():
            if configured and configured == price_id:
                return plan
        return None

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
