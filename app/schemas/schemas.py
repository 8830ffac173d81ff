"""
Findly Backend — Pydantic Schemas
Request/response models for tools, subscriptions, selection and ads.
"""
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from app.core.database import as_utc
from app.models.tool import ToolOrigin


# ── Shared ───────────────────────────────────────────────────────────────────
class ActionResult(BaseModel):
    """Outcome of a user action: failures carry a message fit for display."""
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "ActionResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ActionResult":
        return cls(success=False, error=error, data=data)


# ── Tools ────────────────────────────────────────────────────────────────────
class ToolCreate(BaseModel):
    url: str = Field(description="Tool website URL, one per domain")
    logo_url: str
    name: str = Field(min_length=1, max_length=255)
    category: str = "productivity"
    description: Optional[str] = None
    app_image_url: Optional[str] = None
    promo_code: Optional[str] = None
    promo_discount: Optional[str] = None


class ToolUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    promo_code: Optional[str] = None
    promo_discount: Optional[str] = None


class ToolResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: str
    url: str
    logo_url: Optional[str]
    app_image_url: Optional[str]
    category: Optional[str]
    featured: bool
    origin: ToolOrigin
    requires_subscription: bool
    boosted_from_id: Optional[str]
    promo_code: Optional[str]
    promo_discount: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ToolListResponse(BaseModel):
    tools: List[ToolResponse]
    has_more: bool
    total: int


class PlanLimitsResponse(BaseModel):
    can_add: bool
    reason: str
    current_count: int
    limit: int
    plan: Optional[str]


# ── Tool Selection ───────────────────────────────────────────────────────────
class ToolSelectionRequest(BaseModel):
    tool_ids: List[str] = Field(default_factory=list)


class SelectionEligibilityResponse(BaseModel):
    can_select: bool
    last_selection_date: Optional[datetime]
    next_selection_date: Optional[datetime]


class SelectionNeededResponse(BaseModel):
    needs_selection: bool
    total_tools: int
    active_tools: int
    limit: int
    plan: Optional[str]


# ── Advertisements ───────────────────────────────────────────────────────────
Placement = Literal["homepage", "all"]


class AdvertiseCheckoutRequest(BaseModel):
    tool_id: Optional[str] = Field(default=None, description="Existing advertisement tool")
    boost_tool_id: Optional[str] = Field(default=None, description="Subscription tool to boost")
    tool_data: Optional[ToolCreate] = Field(default=None, description="Brand-new tool")
    start_date: datetime
    end_date: datetime
    placement: Placement = "all"

    @model_validator(mode="after")
    def _check_dates(self):
        self.start_date = as_utc(self.start_date)
        self.end_date = as_utc(self.end_date)
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CheckoutResponse(BaseModel):
    checkout_url: Optional[str]
    session_id: str


class AdvertiseCheckoutResponse(CheckoutResponse):
    advertisement_id: str


class PaymentConfirmRequest(BaseModel):
    session_id: str


class PaymentConfirmResponse(BaseModel):
    success: bool
    advertisement_id: str
    already_processed: bool = False


class AdvertisementQuoteResponse(BaseModel):
    placement: str
    duration: int
    discount_percentage: int
    daily_rate_cents: int
    total_price: int


class ActiveAdvertisementResponse(BaseModel):
    advertisement_id: str
    placement: str
    start_date: datetime
    end_date: datetime
    tool: ToolResponse


class UserAdvertisementResponse(BaseModel):
    id: str
    tool_id: str
    tool_name: str
    tool_slug: str
    start_date: datetime
    end_date: datetime
    placement: str
    status: str
    total_price: int
    duration: int
    original_tool_name: Optional[str] = None


# ── Billing ──────────────────────────────────────────────────────────────────
class SubscriptionCheckoutRequest(BaseModel):
    plan: str = Field(description="Plan identifier, e.g. plus-monthly")
    success_url: str
    cancel_url: str


class SubscriptionResponse(BaseModel):
    plan: Optional[str]
    status: Optional[str]
    limit: int
    period_start: Optional[datetime]
    period_end: Optional[datetime]
    cancel_at_period_end: bool


# ── Admin ────────────────────────────────────────────────────────────────────
class BanRequest(BaseModel):
    reason: str = ""
