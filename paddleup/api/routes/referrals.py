"""Referral route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from paddleup.database.db import get_db_session
from paddleup.database.models import ReferralEventType
from paddleup.services import referral_service
from paddleup.services.referral_service import ReferralCodeNotFoundError, SelfReferralError
from paddleup.api.auth_dependencies import get_current_user
from paddleup.api.routes import limiter, PUBLIC_RATE_LIMIT
from paddleup.models.schemas import TrackReferralRequest, ConvertReferralRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/referrals/code")
async def get_referral_code(
    event_type: ReferralEventType = ReferralEventType.GENERAL,
    event_id: Optional[int] = None,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get (or create) the current user's referral code and share link."""
    try:
        return await referral_service.get_or_create_code(
            session, user["id"], event_type=event_type.value, event_id=event_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting referral code for user {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate unique referral code")


@router.get("/api/referrals/stats")
async def get_referral_stats(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Referral totals, recent conversions and reward progress."""
    return await referral_service.get_referral_stats(session, user["id"])


@router.post("/api/referrals/track")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def track_referral(
    request: Request,
    payload: TrackReferralRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Count a visit through a referral link (no auth)."""
    return await referral_service.track_referral(
        session, payload.referral_code, event_type=payload.event_type, event_id=payload.event_id
    )


@router.post("/api/referrals/convert")
async def convert_referral(
    payload: ConvertReferralRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Record the current user's conversion through a referral code."""
    try:
        return await referral_service.convert_referral(
            session,
            payload.referral_code,
            user,
            payload.conversion_type,
            event_id=payload.event_id,
        )
    except ReferralCodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SelfReferralError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error converting referral: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error converting referral")


@router.get("/api/referrals/validate/{code}")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def validate_referral_code(
    request: Request,
    code: str,
    session: AsyncSession = Depends(get_db_session),
):
    """Whether a referral code is usable, with referrer details (no auth)."""
    return await referral_service.validate_code(session, code)
