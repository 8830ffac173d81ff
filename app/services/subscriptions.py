"""
Findly Backend — Subscription Event Processor
Applies plan limits to a user's subscription tools whenever the plan may
have changed: new checkout, Stripe updates and the expiry sweep.

The stored subscription rows are the only source of truth. Webhook
payloads only tell us *that* something changed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import as_utc, utcnow
from app.models.subscription import Subscription
from app.models.tool import Tool, ToolOrigin
from app.models.user import User
from app.schemas.schemas import ActionResult, PlanLimitsResponse
from app.services.reconciler import ReconciliationPlan, ToolState, reconcile
from app.utils.plans import limit_for, plan_limit_message

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionLimitsResult:
    plan_name: Optional[str]
    limit: int
    reconciliation: ReconciliationPlan

    @property
    def action(self) -> str:
        return self.reconciliation.action.value

    def to_dict(self) -> dict:
        plan = self.reconciliation
        return {
            "action": self.action,
            "plan": self.plan_name,
            "limit": self.limit,
            "affected_tools": plan.affected_tools,
            "active_count": plan.active_count,
            "activated_count": plan.net_activated,
            "deactivated_count": plan.net_deactivated,
            "deferred": plan.deferred,
        }


# ── Subscription rows ────────────────────────────────────────────────────────

async def get_effective_subscription(
    db: AsyncSession,
    user_id: str,
    now: Optional[datetime] = None,
) -> Optional[Subscription]:
    """The subscription that decides the user's limit.

    An active row not scheduled for cancellation wins. Otherwise an active
    row that is cancelling still counts until its paid period ends; the
    expiry sweep is what closes it.
    """
    now = now or utcnow()
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.reference_id == user_id,
            Subscription.status == "active",
            or_(Subscription.cancel_at_period_end.is_(None), Subscription.cancel_at_period_end.is_(False)),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    subscription = result.scalar_one_or_none()
    if subscription:
        return subscription

    # A cancelling row keeps its plan until period_end; only the sweep closes it
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.reference_id == user_id,
            Subscription.status == "active",
            Subscription.cancel_at_period_end.is_(True),
            or_(Subscription.period_end.is_(None), Subscription.period_end > now),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def cleanup_incomplete_subscriptions(db: AsyncSession, user_id: str) -> int:
    """Delete rows left behind by abandoned checkouts."""
    result = await db.execute(
        delete(Subscription).where(
            Subscription.reference_id == user_id,
            Subscription.status == "incomplete",
        )
    )
    removed = result.rowcount or 0
    if removed:
        logger.info(f"Cleaned up {removed} incomplete subscriptions for user {user_id}")
    return removed


async def resolve_plan_limit(
    db: AsyncSession,
    user_id: str,
    cleanup: bool = False,
) -> Tuple[int, Optional[str]]:
    """Return (limit, plan) from storage; (0, None) without a subscription."""
    subscription = await get_effective_subscription(db, user_id)
    if subscription is None:
        return 0, None
    if cleanup:
        await cleanup_incomplete_subscriptions(db, user_id)
    return limit_for(subscription.plan), subscription.plan


async def sync_subscription(
    db: AsyncSession,
    user_id: str,
    snapshot: dict,
) -> Subscription:
    """Upsert the stored row from a normalized Stripe subscription."""
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == snapshot["id"])
    )
    subscription = result.scalar_one_or_none()
    plan = settings.plan_for_price_id(snapshot.get("price_id"))

    if subscription is None:
        subscription = Subscription(
            reference_id=user_id,
            stripe_subscription_id=snapshot["id"],
            plan=plan or "unknown",
        )
        db.add(subscription)
    elif plan:
        subscription.plan = plan

    subscription.stripe_customer_id = snapshot.get("customer")
    subscription.status = snapshot.get("status") or subscription.status
    subscription.period_start = snapshot.get("period_start")
    subscription.period_end = snapshot.get("period_end")
    subscription.cancel_at_period_end = snapshot.get("cancel_at_period_end", False)
    await db.flush()
    return subscription


# ── Tools ────────────────────────────────────────────────────────────────────

async def get_subscription_tools(db: AsyncSession, user_id: str) -> List[Tool]:
    """A user's subscription tools, oldest first."""
    result = await db.execute(
        select(Tool)
        .where(Tool.submitted_by == user_id, Tool.origin == ToolOrigin.SUBSCRIPTION)
        .order_by(Tool.created_at.asc(), Tool.id.asc())
    )
    return list(result.scalars().all())


async def reset_user_tool_selection(db: AsyncSession, user_id: str) -> None:
    """Let the user pick their featured tools again right away."""
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(last_tool_selection_at=None, updated_at=utcnow())
    )
    logger.info(f"Reset tool selection date for user {user_id}")


async def check_tool_limits(db: AsyncSession, user: User) -> PlanLimitsResponse:
    """Can this user submit another subscription tool?"""
    count_result = await db.execute(
        select(func.count(Tool.id)).where(
            Tool.submitted_by == user.id,
            Tool.origin == ToolOrigin.SUBSCRIPTION,
        )
    )
    current_count = count_result.scalar() or 0

    limit, plan = await resolve_plan_limit(db, user.id)
    if plan is None:
        return PlanLimitsResponse(
            can_add=False,
            reason="No active subscription found",
            current_count=current_count,
            limit=0,
            plan=None,
        )

    can_add = current_count < limit
    return PlanLimitsResponse(
        can_add=can_add,
        reason="OK" if can_add else plan_limit_message(plan, current_count, limit),
        current_count=current_count,
        limit=limit,
        plan=plan,
    )


async def validate_tool_submission(db: AsyncSession, user: User) -> ActionResult:
    limits = await check_tool_limits(db, user)
    if not limits.can_add:
        return ActionResult.fail(f"Cannot add tool: {limits.reason}", data=limits)
    return ActionResult.ok(data=limits)


# ── Core operation ───────────────────────────────────────────────────────────

async def apply_subscription_limits(
    db: AsyncSession,
    user_id: str,
    subscription_data: Optional[dict] = None,
    force_apply: bool = False,
) -> SubscriptionLimitsResult:
    """Reconcile a user's featured subscription tools with their plan.

    `subscription_data` is whatever the caller saw (e.g. a webhook body)
    and is only logged; the limit is always re-read from storage.
    Upgrades apply at once, downgrades wait for `force_apply` (the sweep
    after the paid period ends). Errors propagate to the caller.
    """
    limit, plan_name = await resolve_plan_limit(db, user_id, cleanup=True)
    if subscription_data and subscription_data.get("plan") not in (None, plan_name):
        logger.debug(
            f"Ignoring caller plan {subscription_data.get('plan')!r} for user {user_id}; stored plan is {plan_name!r}"
        )

    tools = await get_subscription_tools(db, user_id)
    states = [ToolState(id=t.id, featured=bool(t.featured), created_at=as_utc(t.created_at)) for t in tools]
    current_active = sum(1 for s in states if s.featured)

    plan = reconcile(states, current_active, limit, force_apply=force_apply)

    if plan.changes:
        by_id = {t.id: t for t in tools}
        now = utcnow()
        for tool_id, featured in plan.changes:
            by_id[tool_id].featured = featured
            by_id[tool_id].updated_at = now
        await db.flush()

    if force_apply and plan.net_deactivated > 0:
        # The system chose what to cut, so the user gets to choose again
        await reset_user_tool_selection(db, user_id)

    if plan.deferred:
        logger.info(
            f"Downgrade for user {user_id}: {current_active} active > {limit} allowed, "
            f"keeping tools until the paid period ends"
        )
    else:
        logger.info(
            f"Subscription limits applied for user {user_id}: {plan.action.value} "
            f"({plan.active_count} active, +{plan.net_activated}/-{plan.net_deactivated})"
        )

    return SubscriptionLimitsResult(plan_name=plan_name, limit=limit, reconciliation=plan)


# ── Expiry sweep ─────────────────────────────────────────────────────────────

async def _hide_subscription_tools(db: AsyncSession, user_id: str) -> None:
    await db.execute(
        update(Tool)
        .where(Tool.submitted_by == user_id, Tool.origin == ToolOrigin.SUBSCRIPTION)
        .values(featured=False, updated_at=utcnow())
    )


async def process_expired_subscriptions(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """Cron sweep: close cancelled subscriptions and enforce downgrades.

    Each item runs in its own savepoint so one failure does not stop the
    rest of the batch; every step is safe to repeat on the next run.
    """
    now = now or utcnow()
    results = []

    # Part 1: cancelled at period end and the period is over
    expired = (await db.execute(
        select(Subscription).where(
            Subscription.status == "active",
            Subscription.cancel_at_period_end.is_(True),
            Subscription.period_end <= now,
        )
    )).scalars().all()
    logger.info(f"Found {len(expired)} expired subscriptions")

    for sub in expired:
        item = {"type": "expired", "subscription_id": sub.id, "user_id": sub.reference_id}
        try:
            async with db.begin_nested():
                await _hide_subscription_tools(db, sub.reference_id)
                sub.status = "canceled"
            item["success"] = True
            logger.info(f"Processed expired subscription for user {sub.reference_id}")
        except Exception as e:
            logger.error(f"Error processing expired subscription {sub.id}: {e}")
            item.update(success=False, error=str(e))
        results.append(item)

    # Part 2: paid period over on a still-active plan, enforce a pending downgrade
    active = (await db.execute(
        select(Subscription).where(
            Subscription.status == "active",
            Subscription.period_end <= now,
        )
    )).scalars().all()
    logger.info(f"Found {len(active)} active subscriptions with ended periods to check")

    for sub in active:
        plan_limit = limit_for(sub.plan)
        if plan_limit == 0:
            continue
        user_id = sub.reference_id
        try:
            async with db.begin_nested():
                active_count = (await db.execute(
                    select(func.count(Tool.id)).where(
                        and_(
                            Tool.submitted_by == user_id,
                            Tool.origin == ToolOrigin.SUBSCRIPTION,
                            Tool.featured.is_(True),
                        )
                    )
                )).scalar() or 0
                if active_count <= plan_limit:
                    continue

                logger.info(
                    f"Downgrade enforcement: user {user_id} has {active_count} tools, "
                    f"plan {sub.plan} allows {plan_limit}"
                )
                outcome = await apply_subscription_limits(
                    db, user_id, {"status": sub.status, "plan": sub.plan}, force_apply=True
                )
            results.append({
                "type": "downgrade",
                "subscription_id": sub.id,
                "user_id": user_id,
                "plan": sub.plan,
                "previous_active_tools": active_count,
                "new_limit": plan_limit,
                "action": outcome.action,
                "success": True,
            })
        except Exception as e:
            logger.error(f"Error checking downgrade for subscription {sub.id}: {e}")
            results.append({
                "type": "downgrade",
                "subscription_id": sub.id,
                "user_id": user_id,
                "success": False,
                "error": str(e),
            })

    expired_count = sum(1 for r in results if r["type"] == "expired" and r["success"])
    downgrade_count = sum(1 for r in results if r["type"] == "downgrade" and r["success"])
    failed = sum(1 for r in results if not r["success"])
    logger.info(f"Processed {expired_count} expired subscriptions, {downgrade_count} downgrades, {failed} errors")

    return {
        "message": (
            f"Processed {len(expired)} expired subscriptions and checked "
            f"{len(active)} active subscriptions for downgrades"
        ),
        "processed": len(results),
        "succeeded": len(results) - failed,
        "failed": failed,
        "expired": expired_count,
        "downgrades": downgrade_count,
        "results": results,
    }
