"""
Findly Backend — Tool Catalog
Submission, editing and public listing of tools. Subscription tools are
quota-governed; advertisement tools (including boost duplicates) stay
hidden until their campaign is paid.
"""
import logging
import re
import uuid
from typing import List, Optional
from urllib.parse import urlparse

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.models.tool import Tool, ToolOrigin
from app.models.tool_advertisement import AdvertisementPlacement, AdvertisementStatus, ToolAdvertisement
from app.models.user import User
from app.schemas.schemas import ActionResult, ToolCreate, ToolUpdate
from app.services.subscriptions import resolve_plan_limit
from app.utils.plans import plan_limit_message

logger = logging.getLogger(__name__)

HOMEPAGE_PAGE_SIZE = 30
CATEGORY_PAGE_SIZE = 20


# ── Domain & slug helpers ────────────────────────────────────────────────────

def extract_domain(url: str) -> str:
    """Hostname without `www.`, lowercased; the raw input if it is not a URL."""
    hostname = urlparse(url).hostname
    if not hostname:
        return url.lower()
    return re.sub(r"^www\.", "", hostname.lower())


async def domain_exists(db: AsyncSession, domain: str) -> bool:
    """Each domain may be submitted once across the whole platform."""
    result = await db.execute(select(Tool.url))
    return any(extract_domain(url) == domain for url in result.scalars())


def generate_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


async def generate_unique_slug(db: AsyncSession, name: str, exclude_tool_id: Optional[str] = None) -> str:
    base = generate_slug(name) or "tool"
    slug = base
    counter = 1
    while True:
        query = select(Tool.id).where(Tool.slug == slug)
        if exclude_tool_id:
            query = query.where(Tool.id != exclude_tool_id)
        if (await db.execute(query.limit(1))).first() is None:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def new_tool_id() -> str:
    return f"tool_{uuid.uuid4().hex[:12]}"


# ── Promo codes ──────────────────────────────────────────────────────────────

def validate_promo_code_pair(promo_code: Optional[str], promo_discount: Optional[str]) -> Optional[str]:
    """Both filled or both empty. Returns an error message or None."""
    code_filled = bool((promo_code or "").strip())
    discount_filled = bool((promo_discount or "").strip())
    if code_filled and not discount_filled:
        return "Discount percentage is required when promo code is provided"
    if discount_filled and not code_filled:
        return "Promo code is required when discount percentage is provided"
    return None


def format_promo_code(value: str) -> str:
    return re.sub(r"\s", "", value.upper())


def validate_promo_discount(value: Optional[str]) -> bool:
    """Whole percent between 1 and 100; empty is allowed."""
    if not value:
        return True
    try:
        number = int(value)
    except ValueError:
        return False
    return 1 <= number <= 100


def _clean_promo(data) -> tuple:
    """Validate and normalise a promo pair; raises ValueError with a user message."""
    error = validate_promo_code_pair(data.promo_code, data.promo_discount)
    if error:
        raise ValueError(error)
    if not validate_promo_discount((data.promo_discount or "").strip()):
        raise ValueError("Discount must be a whole percentage between 1 and 100")
    code = format_promo_code(data.promo_code) if data.promo_code and data.promo_code.strip() else None
    discount = data.promo_discount.strip() if data.promo_discount and data.promo_discount.strip() else None
    return code, discount


async def _check_new_tool(db: AsyncSession, data: ToolCreate) -> Optional[str]:
    if not data.url or not data.logo_url or not data.name:
        return "Missing required fields"
    domain = extract_domain(data.url)
    if await domain_exists(db, domain):
        return f"{domain} already exists. Each domain can only be submitted once."
    return None


# ── Creation ─────────────────────────────────────────────────────────────────

async def count_subscription_tools(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Tool.id)).where(
            Tool.submitted_by == user_id,
            Tool.origin == ToolOrigin.SUBSCRIPTION,
        )
    )
    return result.scalar() or 0


async def create_subscription_tool(db: AsyncSession, user: User, data: ToolCreate) -> ActionResult:
    """Normal submission.

    The first subscription tool is accepted without a subscription and
    stays hidden until checkout completes. Every later one needs an active
    subscription with a free slot, and goes live immediately.
    """
    error = await _check_new_tool(db, data)
    if error:
        return ActionResult.fail(error)
    try:
        promo_code, promo_discount = _clean_promo(data)
    except ValueError as e:
        return ActionResult.fail(str(e))

    current_count = await count_subscription_tools(db, user.id)
    if current_count >= 1:
        limit, plan = await resolve_plan_limit(db, user.id)
        if plan is None:
            return ActionResult.fail(
                f"You have {current_count} subscription tools. Active subscription required to add more."
            )
        if current_count >= limit:
            return ActionResult.fail(plan_limit_message(plan, current_count, limit))

    featured = current_count > 0
    tool = Tool(
        id=new_tool_id(),
        name=data.name,
        slug=await generate_unique_slug(db, data.name),
        description=data.description or f"Submitted tool: {data.url}",
        url=data.url,
        logo_url=data.logo_url,
        app_image_url=data.app_image_url,
        category=data.category or "productivity",
        featured=featured,
        origin=ToolOrigin.SUBSCRIPTION,
        requires_subscription=True,
        promo_code=promo_code,
        promo_discount=promo_discount,
        submitted_by=user.id,
    )
    db.add(tool)
    await db.flush()

    logger.info(
        f"Subscription tool created: {tool.id} for user {user.id}, featured: {featured}, "
        f"subscription tools count: {current_count}"
    )
    return ActionResult.ok(data=tool)


async def create_admin_tool(db: AsyncSession, admin: User, data: ToolCreate) -> ActionResult:
    """Editorial entry: live at once and never tied to a subscription."""
    error = await _check_new_tool(db, data)
    if error:
        return ActionResult.fail(error)
    try:
        promo_code, promo_discount = _clean_promo(data)
    except ValueError as e:
        return ActionResult.fail(str(e))

    tool = Tool(
        id=new_tool_id(),
        name=data.name,
        slug=await generate_unique_slug(db, data.name),
        description=data.description or f"Admin submitted tool: {data.url}",
        url=data.url,
        logo_url=data.logo_url,
        app_image_url=data.app_image_url,
        category=data.category or "productivity",
        featured=True,
        origin=ToolOrigin.SUBSCRIPTION,
        requires_subscription=False,
        promo_code=promo_code,
        promo_discount=promo_discount,
        submitted_by=admin.id,
    )
    db.add(tool)
    await db.flush()
    logger.info(f"Admin tool created: {tool.id} by {admin.id}")
    return ActionResult.ok(data=tool)


async def create_advertisement_tool(db: AsyncSession, user: User, data: ToolCreate) -> ActionResult:
    """A tool that exists only for a paid campaign; hidden until payment."""
    error = await _check_new_tool(db, data)
    if error:
        return ActionResult.fail(error)
    try:
        promo_code, promo_discount = _clean_promo(data)
    except ValueError as e:
        return ActionResult.fail(str(e))

    tool = Tool(
        id=new_tool_id(),
        name=data.name,
        slug=await generate_unique_slug(db, data.name),
        description=data.description or f"Advertisement tool: {data.url}",
        url=data.url,
        logo_url=data.logo_url,
        app_image_url=data.app_image_url,
        category=data.category or "productivity",
        featured=False,
        origin=ToolOrigin.ADVERTISEMENT,
        requires_subscription=False,
        promo_code=promo_code,
        promo_discount=promo_discount,
        submitted_by=user.id,
    )
    db.add(tool)
    await db.flush()
    logger.info(f"Advertisement tool created: {tool.id} for user {user.id}")
    return ActionResult.ok(data=tool)


async def duplicate_tool_for_advertisement(db: AsyncSession, user: User, original_tool_id: str) -> ActionResult:
    """Boost: copy a subscription tool into its advertisement-origin twin.

    There is at most one twin per original (`{original}_ad`). An existing
    twin is reused unless it is currently running a campaign; leftover
    pending campaigns on it are dropped first.
    """
    original = await db.get(Tool, original_tool_id)
    if original is None or original.submitted_by != user.id:
        return ActionResult.fail("Original tool not found or access denied")
    if original.origin != ToolOrigin.SUBSCRIPTION:
        return ActionResult.fail("Can only boost subscription tools")

    twin_id = f"{original_tool_id}_ad"
    twin = await db.get(Tool, twin_id)
    if twin is not None:
        active = (await db.execute(
            select(ToolAdvertisement.id).where(
                ToolAdvertisement.tool_id == twin_id,
                ToolAdvertisement.status == AdvertisementStatus.ACTIVE,
            ).limit(1)
        )).first()
        if active is not None:
            return ActionResult.fail("This tool already has an active advertisement")

        pending = (await db.execute(
            select(ToolAdvertisement).where(
                ToolAdvertisement.tool_id == twin_id,
                ToolAdvertisement.status == AdvertisementStatus.PENDING,
            )
        )).scalars().all()
        for ad in pending:
            await db.delete(ad)
        await db.flush()

        logger.info(f"Reusing existing boost advertisement tool: {twin_id} for original tool {original_tool_id}")
        return ActionResult.ok(data=twin)

    twin = Tool(
        id=twin_id,
        name=original.name,
        slug=await generate_unique_slug(db, f"{original.slug}-ad"),
        description=original.description,
        url=original.url,
        logo_url=original.logo_url,
        app_image_url=original.app_image_url,
        category=original.category,
        featured=False,
        origin=ToolOrigin.ADVERTISEMENT,
        requires_subscription=False,
        boosted_from_id=original_tool_id,
        promo_code=original.promo_code,
        promo_discount=original.promo_discount,
        submitted_by=user.id,
    )
    db.add(twin)
    await db.flush()
    logger.info(f"Boost advertisement tool created: {twin_id} for original tool {original_tool_id}")
    return ActionResult.ok(data=twin)


# ── Editing ──────────────────────────────────────────────────────────────────

async def update_tool(db: AsyncSession, user: User, tool_id: str, updates: ToolUpdate) -> ActionResult:
    tool = await db.get(Tool, tool_id)
    if tool is None or tool.submitted_by != user.id:
        return ActionResult.fail("Tool not found or access denied")

    fields = updates.model_dump(exclude_unset=True)
    if "promo_code" in fields or "promo_discount" in fields:
        merged = ToolUpdate(
            promo_code=fields.get("promo_code", tool.promo_code),
            promo_discount=fields.get("promo_discount", tool.promo_discount),
        )
        try:
            tool.promo_code, tool.promo_discount = _clean_promo(merged)
        except ValueError as e:
            return ActionResult.fail(str(e))

    if updates.name and updates.name != tool.name:
        tool.name = updates.name
        tool.slug = await generate_unique_slug(db, updates.name, exclude_tool_id=tool.id)
    if updates.description:
        tool.description = updates.description
    if updates.category:
        tool.category = updates.category

    tool.updated_at = utcnow()
    await db.flush()
    logger.info(f"Tool updated: {tool_id} by user {user.id}")
    return ActionResult.ok(data=tool)


# ── Listing ──────────────────────────────────────────────────────────────────

def _boosted_originals(placement: Optional[AdvertisementPlacement] = None):
    """Originals whose boost twin is currently running a campaign."""
    query = (
        select(Tool.boosted_from_id)
        .join(ToolAdvertisement, ToolAdvertisement.tool_id == Tool.id)
        .where(
            Tool.origin == ToolOrigin.ADVERTISEMENT,
            Tool.boosted_from_id.is_not(None),
            ToolAdvertisement.status == AdvertisementStatus.ACTIVE,
        )
    )
    if placement is not None:
        query = query.where(ToolAdvertisement.placement == placement)
    return query


async def _paginate(db: AsyncSession, conditions: list, page: int, page_size: int) -> dict:
    page = max(page, 1)
    total = (await db.execute(select(func.count(Tool.id)).where(and_(*conditions)))).scalar() or 0
    result = await db.execute(
        select(Tool)
        .where(and_(*conditions))
        .order_by(Tool.created_at.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    return {
        "tools": list(result.scalars().all()),
        "has_more": page * page_size < total,
        "total": total,
    }


async def get_tools_paginated(db: AsyncSession, page: int = 1, page_size: int = HOMEPAGE_PAGE_SIZE) -> dict:
    """Homepage listing. Shows every placement of ads, so any running boost hides its original."""
    conditions = [
        Tool.origin == ToolOrigin.SUBSCRIPTION,
        Tool.featured.is_(True),
        Tool.id.not_in(_boosted_originals()),
    ]
    return await _paginate(db, conditions, page, page_size)


async def get_tools_by_category_paginated(
    db: AsyncSession,
    category: str,
    page: int = 1,
    page_size: int = CATEGORY_PAGE_SIZE,
) -> dict:
    """Category listing. Only `all`-placement ads show here, so only those boosts hide the original."""
    conditions = [
        Tool.category == category,
        Tool.origin == ToolOrigin.SUBSCRIPTION,
        Tool.featured.is_(True),
        Tool.id.not_in(_boosted_originals(AdvertisementPlacement.ALL)),
    ]
    return await _paginate(db, conditions, page, page_size)


async def get_tool_by_slug(db: AsyncSession, slug: str) -> Optional[Tool]:
    """Public tool page; hidden tools are not found."""
    result = await db.execute(
        select(Tool).where(Tool.slug == slug, Tool.featured.is_(True))
    )
    return result.scalar_one_or_none()


async def get_user_tools(db: AsyncSession, user_id: str, origin: Optional[ToolOrigin] = None) -> List[Tool]:
    query = select(Tool).where(Tool.submitted_by == user_id)
    if origin is not None:
        query = query.where(Tool.origin == origin)
    result = await db.execute(query.order_by(Tool.created_at.asc()))
    return list(result.scalars().all())


async def toggle_featured(db: AsyncSession, tool_id: str) -> Tool:
    """Admin override of a tool's visibility. Raises LookupError if missing."""
    tool = await db.get(Tool, tool_id)
    if tool is None:
        raise LookupError("Tool not found")
    tool.featured = not tool.featured
    tool.updated_at = utcnow()
    await db.flush()
    logger.info(f"Admin toggled tool {tool_id} featured={tool.featured}")

    if tool.featured and tool.origin == ToolOrigin.SUBSCRIPTION and tool.submitted_by:
        limit, plan = await resolve_plan_limit(db, tool.submitted_by)
        active = (await db.execute(
            select(func.count(Tool.id)).where(
                Tool.submitted_by == tool.submitted_by,
                Tool.origin == ToolOrigin.SUBSCRIPTION,
                Tool.featured.is_(True),
            )
        )).scalar() or 0
        if active > limit:
            logger.warning(
                f"Admin override: user {tool.submitted_by} now has {active} featured subscription tools, "
                f"plan {plan} allows {limit}"
            )
    return tool
