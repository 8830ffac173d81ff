"""
Findly Backend — Advertisement Lifecycle
pending -> active -> expired. Payment confirmation is the only way in,
the expiry sweep the only way out. Pending rows of abandoned checkouts
can be removed by an admin.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import utcnow
from app.models.tool import Tool, ToolOrigin
from app.models.tool_advertisement import AdvertisementPlacement, AdvertisementStatus, ToolAdvertisement
from app.models.user import User
from app.schemas.schemas import (
    ActionResult,
    ActiveAdvertisementResponse,
    AdvertiseCheckoutRequest,
    PaymentConfirmResponse,
    ToolResponse,
    UserAdvertisementResponse,
)
from app.services import billing
from app.services.tools import create_advertisement_tool, duplicate_tool_for_advertisement
from app.utils.plans import quote_advertisement

logger = logging.getLogger(__name__)


class PaymentConfirmationError(Exception):
    """The processor does not confirm the payment, or the session is not ours."""


async def ensure_stripe_customer(db: AsyncSession, user: User) -> str:
    if not user.stripe_customer_id:
        user.stripe_customer_id = await billing.create_customer(user.id, user.email, user.name)
        await db.flush()
        logger.info(f"Created Stripe customer {user.stripe_customer_id} for user {user.id}")
    return user.stripe_customer_id


async def _resolve_campaign_tool(db: AsyncSession, user: User, request: AdvertiseCheckoutRequest) -> ActionResult:
    if request.tool_id:
        tool = await db.get(Tool, request.tool_id)
        if tool is None or tool.submitted_by != user.id:
            return ActionResult.fail("Tool not found")
        if tool.origin != ToolOrigin.ADVERTISEMENT:
            return ActionResult.fail("Only advertisement tools can run a campaign; boost subscription tools instead")
        return ActionResult.ok(data=tool)
    if request.boost_tool_id:
        return await duplicate_tool_for_advertisement(db, user, request.boost_tool_id)
    if request.tool_data:
        return await create_advertisement_tool(db, user, request.tool_data)
    return ActionResult.fail("Tool not specified")


async def create_advertisement_checkout(
    db: AsyncSession,
    user: User,
    request: AdvertiseCheckoutRequest,
) -> ActionResult:
    """Insert a pending campaign and open a payment session for it.

    The price is quoted here from the dates and placement. Stripe errors
    propagate.
    """
    customer_id = await ensure_stripe_customer(db, user)

    resolved = await _resolve_campaign_tool(db, user, request)
    if not resolved.success:
        return resolved
    tool: Tool = resolved.data

    quote = quote_advertisement(request.placement, request.start_date, request.end_date)
    advertisement = ToolAdvertisement(
        tool_id=tool.id,
        start_date=request.start_date,
        end_date=request.end_date,
        placement=AdvertisementPlacement(request.placement),
        status=AdvertisementStatus.PENDING,
        total_price=quote.total_price,
        duration=quote.duration,
        discount_percentage=quote.discount_percentage,
    )
    db.add(advertisement)
    await db.flush()

    session = await billing.create_advertisement_checkout(
        customer_id=customer_id,
        tool_name=tool.name,
        logo_url=tool.logo_url,
        placement=request.placement,
        duration=quote.duration,
        total_price=quote.total_price,
        metadata={
            "advertisementId": advertisement.id,
            "toolId": tool.id,
            "placement": request.placement,
            "duration": str(quote.duration),
            "discountPercentage": str(quote.discount_percentage),
        },
    )
    advertisement.stripe_session_id = session["session_id"]
    advertisement.updated_at = utcnow()
    await db.flush()

    logger.info(
        f"Advertisement {advertisement.id} pending for tool {tool.id}: "
        f"{quote.duration} days, {quote.total_price} cents, session {session['session_id']}"
    )
    return ActionResult.ok(data={
        "checkout_url": session["checkout_url"],
        "session_id": session["session_id"],
        "advertisement_id": advertisement.id,
    })


async def confirm_payment(db: AsyncSession, session_id: str) -> PaymentConfirmResponse:
    """Activate the campaign behind a paid checkout session.

    Safe to call repeatedly (success page and webhook both call it): an
    only a pending campaign is activated. Active or expired ones are
    reported as processed and left alone.
    """
    session = await billing.retrieve_checkout_session(session_id)
    if session.get("payment_status") != "paid":
        raise PaymentConfirmationError("Payment not confirmed")

    advertisement_id = (session.get("metadata") or {}).get("advertisementId")
    if not advertisement_id:
        raise PaymentConfirmationError("Advertisement ID missing in metadata")

    advertisement = await db.get(ToolAdvertisement, advertisement_id)
    if advertisement is None:
        raise PaymentConfirmationError(f"Advertisement {advertisement_id} not found")

    if advertisement.status != AdvertisementStatus.PENDING:
        logger.info(f"Advertisement {advertisement_id} already processed ({advertisement.status.value})")
        return PaymentConfirmResponse(success=True, advertisement_id=advertisement_id, already_processed=True)

    now = utcnow()
    advertisement.status = AdvertisementStatus.ACTIVE
    advertisement.updated_at = now

    tool = await db.get(Tool, advertisement.tool_id)
    if tool is not None:
        tool.featured = True
        tool.updated_at = now
    await db.flush()

    logger.info(
        f"Advertisement {advertisement_id} activated for tool {advertisement.tool_id} "
        f"({advertisement.duration} days, {advertisement.placement.value})"
    )
    return PaymentConfirmResponse(success=True, advertisement_id=advertisement_id)


async def _has_other_running_campaign(db: AsyncSession, ad: ToolAdvertisement, now: datetime) -> bool:
    result = await db.execute(
        select(ToolAdvertisement.id).where(
            ToolAdvertisement.tool_id == ad.tool_id,
            ToolAdvertisement.id != ad.id,
            ToolAdvertisement.status == AdvertisementStatus.ACTIVE,
            ToolAdvertisement.end_date > now,
        ).limit(1)
    )
    return result.first() is not None


async def expire_advertisements(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """Cron sweep over active campaigns whose end date has passed.

    Only advertisement-origin tools are hidden. A campaign that somehow
    targets a subscription tool is skipped: that tool belongs to the
    subscription quota.
    """
    now = now or utcnow()
    expired = (await db.execute(
        select(ToolAdvertisement)
        .options(selectinload(ToolAdvertisement.tool))
        .where(
            ToolAdvertisement.status == AdvertisementStatus.ACTIVE,
            ToolAdvertisement.end_date <= now,
        )
    )).scalars().all()
    logger.info(f"Found {len(expired)} expired advertisements")

    results = []
    for ad in expired:
        tool = ad.tool
        item = {
            "advertisement_id": ad.id,
            "tool_id": ad.tool_id,
            "tool_name": tool.name,
            "end_date": ad.end_date,
            "placement": ad.placement.value,
        }
        try:
            async with db.begin_nested():
                if tool.origin == ToolOrigin.SUBSCRIPTION:
                    logger.info(f"Skipped boosted subscription tool: {tool.name} ({tool.id})")
                    item["type"] = "boosted_subscription_skipped"
                elif tool.featured:
                    ad.status = AdvertisementStatus.EXPIRED
                    ad.updated_at = now
                    if not await _has_other_running_campaign(db, ad, now):
                        tool.featured = False
                        tool.updated_at = now
                    logger.info(f"Expired advertisement: {tool.name} ({tool.id}), featured: {tool.featured}")
                    item["type"] = "advertisement_disabled"
                else:
                    ad.status = AdvertisementStatus.EXPIRED
                    ad.updated_at = now
                    logger.info(f"Advertisement tool already disabled: {tool.name} ({tool.id})")
                    item["type"] = "already_disabled"
            item["success"] = True
        except Exception as e:
            logger.error(f"Error processing expired advertisement {ad.id}: {e}")
            item.update(type="error", success=False, error=str(e))
        results.append(item)

    def _count(kind):
        return sum(1 for r in results if r["type"] == kind and r["success"])

    errors = sum(1 for r in results if not r["success"])
    summary = {
        "disabled": _count("advertisement_disabled"),
        "skipped": _count("boosted_subscription_skipped"),
        "already_disabled": _count("already_disabled"),
        "errors": errors,
    }
    logger.info(
        f"Processed {len(expired)} expired advertisements: {summary['disabled']} disabled, "
        f"{summary['skipped']} skipped (subscription), {summary['already_disabled']} already disabled, "
        f"{errors} errors"
    )
    return {
        "message": f"Processed {len(expired)} expired advertisements",
        "processed": len(results),
        "succeeded": len(results) - errors,
        "failed": errors,
        **summary,
        "results": results,
    }


async def delete_pending_advertisement(db: AsyncSession, advertisement_id: str) -> ActionResult:
    """Admin cleanup of an abandoned checkout. Paid campaigns are never deleted."""
    advertisement = await db.get(ToolAdvertisement, advertisement_id)
    if advertisement is None:
        return ActionResult.fail("Advertisement not found")
    if advertisement.status != AdvertisementStatus.PENDING:
        return ActionResult.fail("Only pending advertisements can be deleted")
    await db.delete(advertisement)
    await db.flush()
    logger.info(f"Deleted pending advertisement {advertisement_id}")
    return ActionResult.ok(message="Advertisement deleted")


async def get_active_advertisements(
    db: AsyncSession,
    placement: Optional[str] = None,
) -> List[ActiveAdvertisementResponse]:
    """Running campaigns; status is the source of truth, not the dates."""
    query = (
        select(ToolAdvertisement)
        .options(selectinload(ToolAdvertisement.tool))
        .where(ToolAdvertisement.status == AdvertisementStatus.ACTIVE)
        .order_by(ToolAdvertisement.start_date.desc())
    )
    if placement:
        query = query.where(ToolAdvertisement.placement == AdvertisementPlacement(placement))
    ads = (await db.execute(query)).scalars().all()
    return [
        ActiveAdvertisementResponse(
            advertisement_id=ad.id,
            placement=ad.placement.value,
            start_date=ad.start_date,
            end_date=ad.end_date,
            tool=ToolResponse.model_validate(ad.tool),
        )
        for ad in ads
    ]


async def get_user_advertisements(db: AsyncSession, user_id: str) -> List[UserAdvertisementResponse]:
    """A user's paid campaigns (active or expired), newest first."""
    rows = (await db.execute(
        select(ToolAdvertisement, Tool)
        .join(Tool, ToolAdvertisement.tool_id == Tool.id)
        .where(
            Tool.submitted_by == user_id,
            ToolAdvertisement.status != AdvertisementStatus.PENDING,
        )
        .order_by(ToolAdvertisement.start_date.desc())
    )).all()

    advertisements = []
    for ad, tool in rows:
        original_name = None
        if tool.boosted_from_id:
            original = await db.get(Tool, tool.boosted_from_id)
            original_name = original.name if original else None
        advertisements.append(UserAdvertisementResponse(
            id=ad.id,
            tool_id=tool.id,
            tool_name=tool.name,
            tool_slug=tool.slug,
            start_date=ad.start_date,
            end_date=ad.end_date,
            placement=ad.placement.value,
            status=ad.status.value,
            total_price=ad.total_price,
            duration=ad.duration,
            original_tool_name=original_name,
        ))
    return advertisements
