"""
Findly Backend — Billing Routes
Stripe dual-mode (test/live) subscription checkout and the webhook that
drives both subscription and advertisement lifecycles.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.schemas import (
    CheckoutResponse,
    SubscriptionCheckoutRequest,
    SubscriptionResponse,
)
from app.services.advertisements import ensure_stripe_customer
from app.services.billing import create_subscription_checkout, get_stripe_mode, handle_webhook_event
from app.services.stripe_events import handle_stripe_event
from app.services.subscriptions import get_effective_subscription
from app.utils.plans import PLANS, limit_for

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/config",
    summary="Get billing config",
    description="Get the current Stripe configuration (publishable key, mode and plans).",
)
async def get_billing_config():
    """Return the publishable key and plans for frontend Stripe.js."""
    price_ids = settings.plan_price_ids
    return {
        "stripe_mode": get_stripe_mode(),
        "publishable_key": settings.active_stripe_publishable_key,
        "plans": {
            name: {
                "price_id": price_ids.get(name),
                "price": plan.price_cents,
                "interval": plan.interval,
                "tool_limit": plan.tool_limit,
            }
            for name, plan in PLANS.items()
        },
    }


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Create checkout session",
    description="Create a Stripe Checkout session for a subscription plan.",
)
async def create_checkout(
    request: SubscriptionCheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if request.plan not in PLANS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid plan: {request.plan}. Available: {list(PLANS.keys())}",
        )
    if not settings.plan_price_ids.get(request.plan):
        raise HTTPException(
            status_code=503,
            detail=f"Stripe is not configured for plan '{request.plan}' in {settings.STRIPE_MODE} mode.",
        )

    customer_id = await ensure_stripe_customer(db, current_user)
    session = await create_subscription_checkout(
        customer_id=customer_id,
        user_id=current_user.id,
        plan=request.plan,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )
    return CheckoutResponse(**session)


@router.get(
    "/subscription",
    response_model=SubscriptionResponse,
    summary="Get current subscription",
    description="The subscription that currently decides the user's tool limit.",
)
async def get_subscription_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    subscription = await get_effective_subscription(db, current_user.id)
    if not subscription:
        return SubscriptionResponse(
            plan=None,
            status=None,
            limit=0,
            period_start=None,
            period_end=None,
            cancel_at_period_end=False,
        )
    return SubscriptionResponse(
        plan=subscription.plan,
        status=subscription.status,
        limit=limit_for(subscription.plan),
        period_start=subscription.period_start,
        period_end=subscription.period_end,
        cancel_at_period_end=bool(subscription.cancel_at_period_end),
    )


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Handle Stripe webhook events (works for both test and live modes)."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = handle_webhook_event(payload, sig_header)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Stripe webhook ({settings.STRIPE_MODE}): {event['type']}")

    try:
        result = await handle_stripe_event(db, event)
    except Exception as e:
        # Non-2xx makes Stripe retry the delivery; every handler is idempotent
        logger.error(f"Error processing Stripe event {event['type']}: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return {"status": "ok", "result": result}
