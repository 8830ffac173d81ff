"""
Findly Backend — Billing Service
Stripe dual-mode (test/live) integration: customers, subscription and
advertisement checkout sessions, webhook verification.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import stripe

from app.core.config import settings

logger = logging.getLogger(__name__)


def _init_stripe():
    """Initialize Stripe with the active mode key."""
    stripe.api_key = settings.active_stripe_secret_key


_init_stripe()


def get_stripe_mode() -> str:
    """Return the current Stripe mode."""
    return settings.STRIPE_MODE


async def create_customer(user_id: str, email: str, name: Optional[str] = None) -> str:
    """Create a Stripe customer and return the customer ID."""
    _init_stripe()
    try:
        customer = stripe.Customer.create(
            email=email,
            name=name,
            metadata={"userId": user_id, "email": email},
        )
        return customer.id
    except stripe.StripeError as e:
        logger.error(f"Stripe customer creation failed: {str(e)}")
        raise


async def create_subscription_checkout(
    customer_id: str,
    user_id: str,
    plan: str,
    success_url: str,
    cancel_url: str,
) -> dict:
    """Create a Stripe Checkout session for a subscription plan."""
    _init_stripe()

    price_id = settings.plan_price_ids.get(plan)
    if not price_id:
        raise ValueError(f"No price ID configured for plan '{plan}' in {settings.STRIPE_MODE} mode")

    params = dict(
        customer=customer_id,
        line_items=[{"price": price_id, "quantity": 1}],
        mode="subscription",
        success_url=success_url + "?session_id={CHECKOUT_SESSION_ID}",
        cancel_url=cancel_url,
        tax_id_collection={"enabled": True},
        metadata={"userId": user_id, "planName": plan},
    )
    if plan == "starter-monthly" and settings.STRIPE_COUPON_ID:
        params["discounts"] = [{"coupon": settings.STRIPE_COUPON_ID}]
    else:
        params["allow_promotion_codes"] = True

    try:
        session = stripe.checkout.Session.create(**params)
        return {"checkout_url": session.url, "session_id": session.id}
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout creation failed: {str(e)}")
        raise


async def create_advertisement_checkout(
    customer_id: str,
    tool_name: str,
    logo_url: Optional[str],
    placement: str,
    duration: int,
    total_price: int,
    metadata: Dict[str, str],
) -> dict:
    """Create a one-off payment session for an advertisement campaign."""
    _init_stripe()
    placement_label = "Homepage only" if placement == "homepage" else "All pages"
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            customer=customer_id,
            customer_update={"name": "auto", "address": "auto"},
            line_items=[{
                "price_data": {
                    "currency": settings.STRIPE_CURRENCY,
                    "product_data": {
                        "name": f"Advertisement - {tool_name}",
                        "description": (
                            f"{placement_label} placement for {duration} day{'s' if duration > 1 else ''}"
                        ),
                        **({"images": [logo_url]} if logo_url else {}),
                    },
                    "unit_amount": round(total_price / duration),
                },
                "quantity": duration,
            }],
            metadata=metadata,
            success_url=f"{settings.APP_URL}/success?sessionId={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.APP_URL}/advertise",
            automatic_tax={"enabled": True},
            tax_id_collection={"enabled": True},
            invoice_creation={"enabled": True},
        )
        return {"checkout_url": session.url, "session_id": session.id}
    except stripe.StripeError as e:
        logger.error(f"Stripe advertisement checkout failed: {str(e)}")
        raise


async def retrieve_checkout_session(session_id: str) -> dict:
    """Fetch a checkout session; the processor is the source of truth for payment."""
    _init_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
        return {
            "id": session.id,
            "mode": session.mode,
            "payment_status": session.payment_status,
            "customer": session.customer,
            "currency": session.currency,
            "metadata": dict(session.metadata or {}),
        }
    except stripe.StripeError as e:
        logger.error(f"Stripe session retrieval failed: {str(e)}")
        raise


async def retrieve_customer_user_id(customer_id: str) -> Optional[str]:
    """Return the user id stored on a Stripe customer, if any."""
    _init_stripe()
    try:
        customer = stripe.Customer.retrieve(customer_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe customer retrieval failed: {str(e)}")
        raise
    if getattr(customer, "deleted", False):
        return None
    metadata = dict(customer.metadata or {})
    return metadata.get("userId")


def _timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def normalize_subscription(obj) -> dict:
    """Flatten a Stripe subscription object into the fields we store.

    Newer API versions report the billing period on the subscription item
    rather than on the subscription itself.
    """
    items = (obj.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}
    return {
        "id": obj.get("id"),
        "customer": obj.get("customer"),
        "status": obj.get("status"),
        "price_id": price.get("id"),
        "period_start": _timestamp(obj.get("current_period_start") or first_item.get("current_period_start")),
        "period_end": _timestamp(obj.get("current_period_end") or first_item.get("current_period_end")),
        "cancel_at_period_end": bool(obj.get("cancel_at_period_end")),
    }


async def retrieve_subscription(subscription_id: str) -> dict:
    """Get subscription details from Stripe."""
    _init_stripe()
    try:
        subscription = stripe.Subscription.retrieve(subscription_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe subscription retrieval failed: {str(e)}")
        raise
    return normalize_subscription(subscription)


def handle_webhook_event(payload: bytes, sig_header: str) -> dict:
    """Process a Stripe webhook event using the active webhook secret."""
    _init_stripe()
    webhook_secret = settings.active_stripe_webhook_secret
    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, webhook_secret
        )
    except ValueError:
        raise ValueError("Invalid payload")
    except stripe.SignatureVerificationError:
        raise ValueError("Invalid signature")
    return {"type": event.type, "data": event.data.object}
