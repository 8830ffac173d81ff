"""
Findly Backend — Cron Routes
Scheduled sweeps, called by an external trigger with the cron secret.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import verify_cron_secret
from app.services.advertisements import expire_advertisements
from app.services.subscriptions import process_expired_subscriptions

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.get(
    "/check-expired-subscriptions",
    summary="Expire subscriptions",
    description="Cancel subscriptions past their period end and enforce pending downgrades.",
)
async def check_expired_subscriptions(db: AsyncSession = Depends(get_db)):
    try:
        return await process_expired_subscriptions(db)
    except Exception as e:
        logger.error(f"Error in expired subscriptions cron job: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/process-expired-advertisements",
    summary="Expire advertisements",
    description="Hide advertisement tools whose campaign has ended.",
)
async def process_expired_advertisements(db: AsyncSession = Depends(get_db)):
    try:
        return await expire_advertisements(db)
    except Exception as e:
        logger.error(f"Error in expired advertisements cron job: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
