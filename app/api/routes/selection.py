"""
Findly Backend — Tool Selection Routes
Monthly manual choice of which subscription tools stay featured.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.schemas import (
    ActionResult,
    SelectionEligibilityResponse,
    SelectionNeededResponse,
    ToolSelectionRequest,
)
from app.services.tool_selection import needs_tool_selection, save_tool_selection, selection_eligibility

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/eligibility", response_model=SelectionEligibilityResponse, summary="Can I change my selection?")
async def get_eligibility(current_user: User = Depends(get_current_user)):
    return selection_eligibility(current_user)


@router.get(
    "/needed",
    response_model=SelectionNeededResponse,
    summary="Is a selection needed?",
    description="True when the plan has fewer slots than the user has subscription tools.",
)
async def get_needed(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await needs_tool_selection(db, current_user)


@router.post("/", response_model=ActionResult, summary="Save tool selection")
async def save_selection(
    request: ToolSelectionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await save_tool_selection(db, current_user, request.tool_ids)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return result
