"""
Findly Backend — Advertise Routes
Paid placements: quote, checkout, confirmation and listings.
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import as_utc, get_db
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.schemas import (
    ActiveAdvertisementResponse,
    AdvertiseCheckoutRequest,
    AdvertiseCheckoutResponse,
    AdvertisementQuoteResponse,
    PaymentConfirmRequest,
    PaymentConfirmResponse,
    Placement,
    UserAdvertisementResponse,
)
from app.services.advertisements import (
    PaymentConfirmationError,
    confirm_payment,
    create_advertisement_checkout,
    get_active_advertisements,
    get_user_advertisements,
)
from app.utils.plans import quote_advertisement

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/quote", response_model=AdvertisementQuoteResponse, summary="Price a campaign")
async def get_quote(
    start_date: datetime,
    end_date: datetime,
    placement: Placement = "all",
):
    start, end = as_utc(start_date), as_utc(end_date)
    if end < start:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    quote = quote_advertisement(placement, start, end)
    return AdvertisementQuoteResponse(**quote.__dict__)


@router.post(
    "/checkout",
    response_model=AdvertiseCheckoutResponse,
    summary="Start a campaign checkout",
    description="Create a pending advertisement for an advertisement tool, a boost or a new tool.",
)
async def checkout(
    request: AdvertiseCheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await create_advertisement_checkout(db, current_user, request)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return AdvertiseCheckoutResponse(**result.data)


@router.post("/confirm", response_model=PaymentConfirmResponse, summary="Confirm a campaign payment")
async def confirm(request: PaymentConfirmRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await confirm_payment(db, request.session_id)
    except PaymentConfirmationError as e:
        logger.warning(f"Payment confirmation failed for {request.session_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/active", response_model=List[ActiveAdvertisementResponse], summary="Running campaigns")
async def list_active(
    placement: Optional[Placement] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await get_active_advertisements(db, placement)


@router.get("/mine", response_model=List[UserAdvertisementResponse], summary="My campaigns")
async def list_mine(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_user_advertisements(db, current_user.id)
