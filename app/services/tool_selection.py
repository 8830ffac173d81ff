"""
Findly Backend — Manual Tool Selection
Lets a user whose plan has fewer slots than tools pick which subscription
tools stay featured, at most once per month.
"""
import logging
from datetime import datetime
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import as_utc, utcnow
from app.models.user import User
from app.schemas.schemas import ActionResult, SelectionEligibilityResponse, SelectionNeededResponse
from app.services.subscriptions import get_subscription_tools, resolve_plan_limit

logger = logging.getLogger(__name__)


def next_selection_date(last_selection_at: datetime) -> datetime:
    # Calendar months; Jan 31 + 1 month lands on the last day of February
    return as_utc(last_selection_at) + relativedelta(months=settings.TOOL_SELECTION_COOLDOWN_MONTHS)


def selection_eligibility(user: User, now: Optional[datetime] = None) -> SelectionEligibilityResponse:
    now = now or utcnow()
    last = as_utc(user.last_tool_selection_at)
    if last is None:
        return SelectionEligibilityResponse(
            can_select=True,
            last_selection_date=None,
            next_selection_date=None,
        )

    next_date = next_selection_date(last)
    can_select = now >= next_date
    return SelectionEligibilityResponse(
        can_select=can_select,
        last_selection_date=last,
        next_selection_date=None if can_select else next_date,
    )


async def needs_tool_selection(db: AsyncSession, user: User) -> SelectionNeededResponse:
    """Should the user be offered a choice of featured tools?

    Only once the quota is consistent: with more tools than slots, no more
    active tools than slots, and an actual alternative subset to pick.
    A pending downgrade (more active than allowed) is not offered until
    the expiry sweep has trimmed it.
    """
    tools = await get_subscription_tools(db, user.id)
    limit, plan = await resolve_plan_limit(db, user.id)
    total = len(tools)
    active = sum(1 for t in tools if t.featured)

    needs = total > limit and active <= limit and total > active and limit > 0
    return SelectionNeededResponse(
        needs_selection=needs,
        total_tools=total,
        active_tools=active,
        limit=limit,
        plan=plan,
    )


async def save_tool_selection(
    db: AsyncSession,
    user: User,
    tool_ids: List[str],
    now: Optional[datetime] = None,
) -> ActionResult:
    """Feature exactly the chosen subscription tools and start the cooldown."""
    now = now or utcnow()
    eligibility = selection_eligibility(user, now)
    if not eligibility.can_select:
        return ActionResult.fail(
            f"You can modify your selection on {eligibility.next_selection_date:%m/%d/%Y}"
        )

    selected = list(dict.fromkeys(tool_ids))
    tools = await get_subscription_tools(db, user.id)
    owned = {t.id for t in tools}
    if any(tool_id not in owned for tool_id in selected):
        return ActionResult.fail("Invalid selection detected")

    limit, plan = await resolve_plan_limit(db, user.id)
    if plan is None:
        return ActionResult.fail("No active subscription found")
    if len(selected) > limit:
        return ActionResult.fail(
            f"Your {plan} plan allows only {limit} active tool{'s' if limit > 1 else ''}"
        )

    chosen = set(selected)
    for tool in tools:
        featured = tool.id in chosen
        if tool.featured != featured:
            tool.featured = featured
            tool.updated_at = now

    user.last_tool_selection_at = now
    user.updated_at = now
    await db.flush()

    logger.info(f"User {user.id} manually selected {len(selected)} tools: {', '.join(selected)}")
    return ActionResult.ok(
        data={"selected": selected},
        message=f"Selection saved successfully! {len(selected)} tool{'s' if len(selected) > 1 else ''} activated",
    )
