"""
Findly Backend — Tool Routes
Tool submission, editing and the public catalog.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.schemas import (
    PlanLimitsResponse,
    ToolCreate,
    ToolListResponse,
    ToolResponse,
    ToolUpdate,
)
from app.services.subscriptions import check_tool_limits
from app.services.tools import (
    CATEGORY_PAGE_SIZE,
    HOMEPAGE_PAGE_SIZE,
    create_subscription_tool,
    get_tool_by_slug,
    get_tools_by_category_paginated,
    get_tools_paginated,
    get_user_tools,
    update_tool,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/",
    response_model=ToolResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a tool",
    description="Submit a subscription tool. The first one goes live after checkout.",
)
async def submit_tool(
    request: ToolCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await create_subscription_tool(db, current_user, request)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return ToolResponse.model_validate(result.data)


@router.get("/mine", response_model=List[ToolResponse], summary="List my tools")
async def list_my_tools(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tools = await get_user_tools(db, current_user.id)
    return [ToolResponse.model_validate(t) for t in tools]


@router.get(
    "/limits",
    response_model=PlanLimitsResponse,
    summary="Check plan limits",
    description="Whether another subscription tool can be submitted on the current plan.",
)
async def get_limits(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await check_tool_limits(db, current_user)


@router.patch("/{tool_id}", response_model=ToolResponse, summary="Update a tool")
async def edit_tool(
    tool_id: str,
    request: ToolUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await update_tool(db, current_user, tool_id, request)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return ToolResponse.model_validate(result.data)


@router.get("/", response_model=ToolListResponse, summary="Browse featured tools")
async def list_tools(
    page: int = Query(1, ge=1),
    limit: int = Query(HOMEPAGE_PAGE_SIZE, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    listing = await get_tools_paginated(db, page, limit)
    return ToolListResponse(
        tools=[ToolResponse.model_validate(t) for t in listing["tools"]],
        has_more=listing["has_more"],
        total=listing["total"],
    )


@router.get("/category/{category}", response_model=ToolListResponse, summary="Browse a category")
async def list_category(
    category: str,
    page: int = Query(1, ge=1),
    limit: int = Query(CATEGORY_PAGE_SIZE, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    listing = await get_tools_by_category_paginated(db, category, page, limit)
    return ToolListResponse(
        tools=[ToolResponse.model_validate(t) for t in listing["tools"]],
        has_more=listing["has_more"],
        total=listing["total"],
    )


@router.get("/slug/{slug}", response_model=ToolResponse, summary="Get a tool page")
async def get_tool(slug: str, db: AsyncSession = Depends(get_db)):
    tool = await get_tool_by_slug(db, slug)
    if tool is None:
        raise HTTPException(status_code=404, detail="Tool not found")
    return ToolResponse.model_validate(tool)
