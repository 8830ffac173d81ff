"""
Findly Backend — Stripe Event Dispatch
Routes verified webhook events to the advertisement and subscription
lifecycles. Event bodies are triggers: subscription state is re-read from
Stripe, stored, and then reconciled from storage.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.services import billing
from app.services.advertisements import confirm_payment
from app.services.subscriptions import (
    apply_subscription_limits,
    cleanup_incomplete_subscriptions,
    sync_subscription,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)


async def resolve_user_id(
    db: AsyncSession,
    customer_id: Optional[str],
    metadata: Optional[dict] = None,
) -> Optional[str]:
    """Find our user behind a Stripe object: metadata, stored customer id, then Stripe."""
    user_id = (metadata or {}).get("userId")
    if user_id:
        return user_id
    if not customer_id:
        return None

    result = await db.execute(select(User.id).where(User.stripe_customer_id == customer_id))
    user_id = result.scalar_one_or_none()
    if user_id:
        return user_id
    return await billing.retrieve_customer_user_id(customer_id)


async def _handle_checkout_completed(db: AsyncSession, session: dict) -> dict:
    metadata = session.get("metadata") or {}

    if metadata.get("advertisementId"):
        logger.info(f"Processing advertisement payment: {session.get('id')}")
        confirmation = await confirm_payment(db, session["id"])
        return {"handled": "advertisement", **confirmation.model_dump()}

    if session.get("mode") != "subscription":
        return {"handled": None}

    user_id = await resolve_user_id(db, session.get("customer"), metadata)
    if not user_id:
        logger.warning(f"No user found for checkout session {session.get('id')}")
        return {"handled": None}

    subscription_id = session.get("subscription")
    if subscription_id:
        snapshot = await billing.retrieve_subscription(subscription_id)
        await sync_subscription(db, user_id, snapshot)

    logger.info(f"Processing new subscription for user: {user_id}")
    await cleanup_incomplete_subscriptions(db, user_id)
    outcome = await apply_subscription_limits(db, user_id, {"status": "active"})
    return {"handled": "subscription", "user_id": user_id, **outcome.to_dict()}


async def _handle_subscription_change(db: AsyncSession, subscription: dict) -> dict:
    user_id = await resolve_user_id(db, subscription.get("customer"), subscription.get("metadata"))
    if not user_id:
        logger.warning(f"No user found for subscription {subscription.get('id')}")
        return {"handled": None}

    snapshot = await billing.retrieve_subscription(subscription["id"])
    await sync_subscription(db, user_id, snapshot)
    logger.info(f"Processing subscription update for user: {user_id}")
    outcome = await apply_subscription_limits(db, user_id, {"status": subscription.get("status")})
    return {"handled": "subscription", "user_id": user_id, **outcome.to_dict()}


async def handle_stripe_event(db: AsyncSession, event: dict) -> dict:
    """Dispatch one verified event. Errors propagate so Stripe retries delivery."""
    event_type = event["type"]
    data = event["data"]
    logger.info(f"Stripe event received: {event_type}")

    if event_type == "checkout.session.completed":
        return await _handle_checkout_completed(db, data)
    if event_type in SUBSCRIPTION_EVENTS:
        return await _handle_subscription_change(db, data)

    logger.debug(f"Ignoring Stripe event {event_type}")
    return {"handled": None}
