"""
Findly Backend — Admin Routes
Editorial tools, moderation and cleanup of abandoned checkouts.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db, utcnow
from app.core.security import require_admin
from app.models.user import User
from app.schemas.schemas import ActionResult, BanRequest, ToolCreate, ToolResponse
from app.services.advertisements import delete_pending_advertisement
from app.services.tools import create_admin_tool, toggle_featured

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/tools", response_model=ToolResponse, status_code=status.HTTP_201_CREATED, summary="Add a tool")
async def add_tool(
    request: ToolCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await create_admin_tool(db, admin, request)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return ToolResponse.model_validate(result.data)


@router.post("/tools/{tool_id}/toggle-featured", response_model=ToolResponse, summary="Toggle visibility")
async def toggle_tool(
    tool_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        tool = await toggle_featured(db, tool_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ToolResponse.model_validate(tool)


async def _set_ban(db: AsyncSession, user_id: str, banned: bool, reason: str = "") -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    user.banned = banned
    user.ban_reason = (reason or None) if banned else None
    user.updated_at = utcnow()
    await db.flush()
    return user


@router.post("/users/{user_id}/ban", response_model=ActionResult, summary="Ban a user")
async def ban_user(
    user_id: str,
    request: BanRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot ban yourself")
    await _set_ban(db, user_id, True, request.reason)
    logger.info(f"Admin {admin.id} banned user {user_id}")
    return ActionResult.ok(message="User banned")


@router.post("/users/{user_id}/unban", response_model=ActionResult, summary="Unban a user")
async def unban_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await _set_ban(db, user_id, False)
    logger.info(f"Admin {admin.id} unbanned user {user_id}")
    return ActionResult.ok(message="User unbanned")


@router.delete("/advertisements/{advertisement_id}", response_model=ActionResult, summary="Delete a pending ad")
async def remove_advertisement(
    advertisement_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await delete_pending_advertisement(db, advertisement_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return result
