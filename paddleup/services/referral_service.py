"""
Referral service layer.

Each user owns one referral code per scope (general, or a specific
tournament/league). Visits through a code bump its uses_count; a referred
user's signup, registration or purchase is recorded once per code as a
conversion, and milestone rewards are awarded on exact conversion counts.
"""

import logging
import os
import secrets
from typing import Dict, Optional

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paddleup.database.models import (
    ReferralCode,
    ReferralConversion,
    ReferralEventType,
    ConversionType,
    NotificationType,
)
from paddleup.services import notification_service
from paddleup.utils.constants import (
    REFERRAL_CODE_ALPHABET,
    REFERRAL_CODE_LENGTH,
    REFERRAL_CODE_MAX_ATTEMPTS,
    REFERRAL_MILESTONES,
)
from paddleup.utils.datetime_utils import isoformat

logger = logging.getLogger(__name__)

FRONTEND_URL = os.getenv("FRONTEND_URL", "https://paddle-up.app")

_CONVERSION_VERBS = {
    ConversionType.SIGNUP.value: "signed up",
    ConversionType.REGISTRATION.value: "registered",
    ConversionType.PURCHASE.value: "made a purchase",
}


class ReferralCodeNotFoundError(ValueError):
    """Raised when a referral code is unknown or inactive."""


class SelfReferralError(ValueError):
    """Raised when a user converts with their own code."""


class ReferralCodeGenerationError(Exception):
    """Raised when no unused code was found within the attempt limit."""


def generate_referral_code() -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def build_shareable_url(code: str, event_type: str, event_id: Optional[int]) -> str:
    """Frontend URL carrying ?ref=<code>, pointing at the event when scoped to one."""
    base = FRONTEND_URL.rstrip("/")
    if event_id is not None and event_type == ReferralEventType.TOURNAMENT.value:
        return f"{base}/tournaments/{event_id}?ref={code}"
    if event_id is not None and event_type == ReferralEventType.LEAGUE.value:
        return f"{base}/leagues/{event_id}?ref={code}"
    return f"{base}?ref={code}"


def _is_usable(code: ReferralCode) -> bool:
    return code.is_active and (code.max_uses is None or code.uses_count < code.max_uses)


async def _find_active_code(session: AsyncSession, code: str) -> Optional[ReferralCode]:
    result = await session.execute(
        select(ReferralCode)
        .options(selectinload(ReferralCode.user))
        .where(ReferralCode.code == code.strip().upper(), ReferralCode.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def get_or_create_code(
    session: AsyncSession,
    user_id: int,
    event_type: str = ReferralEventType.GENERAL.value,
    event_id: Optional[int] = None,
) -> Dict:
    """
    Return the user's code for the scope, creating one if needed.

    Args:
        session: Database session
        user_id: Code owner
        event_type: ReferralEventType value (default general)
        event_id: Tournament/league id for scoped codes

    Returns:
        Dict with code, shareable_url, uses_count, is_active, created_at

    Raises:
        ValueError: Unknown event type
        ReferralCodeGenerationError: Every generated candidate was taken
    """
    if event_type not in {e.value for e in ReferralEventType}:
        raise ValueError(f"Invalid event type: {event_type}")

    event_filter = (
        ReferralCode.event_id == event_id if event_id is not None else ReferralCode.event_id.is_(None)
    )
    result = await session.execute(
        select(ReferralCode).where(
            ReferralCode.user_id == user_id,
            ReferralCode.event_type == event_type,
            event_filter,
        )
    )
    referral_code = result.scalars().first()

    if referral_code is None:
        code = None
        for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
            candidate = generate_referral_code()
            taken = await session.execute(
                select(ReferralCode.id).where(ReferralCode.code == candidate)
            )
            if taken.first() is None:
                code = candidate
                break
        if code is None:
            raise ReferralCodeGenerationError("Failed to generate unique referral code")

        referral_code = ReferralCode(
            user_id=user_id,
            code=code,
            event_type=event_type,
            event_id=event_id,
            uses_count=0,
            is_active=True,
        )
        session.add(referral_code)
        await session.flush()
        await session.refresh(referral_code)
        logger.info(f"Created referral code for user {user_id} ({event_type})")

    return {
        "code": referral_code.code,
        "shareable_url": build_shareable_url(referral_code.code, event_type, event_id),
        "uses_count": referral_code.uses_count,
        "is_active": referral_code.is_active,
        "created_at": isoformat(referral_code.created_at),
    }


async def track_referral(
    session: AsyncSession,
    code: str,
    event_type: Optional[str] = None,
    event_id: Optional[int] = None,
) -> Dict:
    """
    Count a visit through a referral link.

    Unknown, inactive and exhausted codes all return tracked False so the
    endpoint does not reveal which codes exist.
    """
    referral_code = await _find_active_code(session, code)
    if referral_code is None or not _is_usable(referral_code):
        return {"tracked": False}

    result = await session.execute(
        update(ReferralCode)
        .where(
            ReferralCode.id == referral_code.id,
            or_(ReferralCode.max_uses.is_(None), ReferralCode.uses_count < ReferralCode.max_uses),
        )
        .values(uses_count=ReferralCode.uses_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return {"tracked": False}

    return {
        "tracked": True,
        "event_type": event_type or referral_code.event_type,
        "event_id": event_id if event_id is not None else referral_code.event_id,
    }


async def validate_code(session: AsyncSession, code: str) -> Dict:
    """Whether a code can be used, with the referrer's public details."""
    referral_code = await _find_active_code(session, code)
    if referral_code is None or not _is_usable(referral_code):
        return {"valid": False}
    return {
        "valid": True,
        "referrer": {
            "display_name": referral_code.user.display_name,
            "avatar_url": referral_code.user.avatar_url,
        },
        "event_type": referral_code.event_type,
        "event_id": referral_code.event_id,
    }


def milestone_for(count: int) -> Optional[Dict]:
    """The milestone reached at exactly ``count`` conversions, if any."""
    for milestone_count, reward, description in REFERRAL_MILESTONES:
        if count == milestone_count:
            return {"count": milestone_count, "reward": reward, "description": description}
    return None


async def _award_milestone(session: AsyncSession, referrer_id: int, code_id: int, count: int) -> Dict:
    milestone = milestone_for(count)
    if milestone is None:
        return {"reward_awarded": False}

    plural = "s" if milestone["count"] > 1 else ""
    try:
        async with session.begin_nested():
            await notification_service.create_notification(
                session,
                user_id=referrer_id,
                type=NotificationType.ACHIEVEMENT_EARNED.value,
                title="Referral Reward Earned!",
                message=(
                    f"Congratulations! You've earned {milestone['description']} for reaching "
                    f"{milestone['count']} successful referral{plural}!"
                ),
                data={
                    "reward": milestone["reward"],
                    "referral_count": milestone["count"],
                    "referral_code_id": code_id,
                },
            )
    except Exception as e:
        logger.warning(f"Failed to create reward notification for user {referrer_id}: {e}")

    return {
        "reward_awarded": True,
        "reward": milestone["reward"],
        "description": milestone["description"],
    }


async def convert_referral(
    session: AsyncSession,
    code: str,
    user: Dict,
    conversion_type: str,
    event_id: Optional[int] = None,
) -> Dict:
    """
    Record a referred user's conversion, once per (code, user).

    Returns:
        {"converted": False, "message": ...} when already converted, else
        {"converted": True, "conversion_id", "reward_awarded", ...}

    Raises:
        ValueError: Unknown conversion type
        ReferralCodeNotFoundError: Unknown or inactive code
        SelfReferralError: Using your own code
    """
    if conversion_type not in {c.value for c in ConversionType}:
        raise ValueError(f"Invalid conversion type: {conversion_type}")

    referral_code = await _find_active_code(session, code)
    if referral_code is None:
        raise ReferralCodeNotFoundError("Invalid referral code")
    if referral_code.user_id == user["id"]:
        raise SelfReferralError("Cannot use your own referral code")

    already = {"converted": False, "message": "Already converted with this referral code"}
    existing = await session.execute(
        select(ReferralConversion.id).where(
            ReferralConversion.referral_code_id == referral_code.id,
            ReferralConversion.referred_user_id == user["id"],
        )
    )
    if existing.first() is not None:
        return already

    conversion = ReferralConversion(
        referral_code_id=referral_code.id,
        referred_user_id=user["id"],
        conversion_type=conversion_type,
        event_id=event_id,
        reward_applied=False,
    )
    session.add(conversion)
    try:
        await session.flush()
    except IntegrityError:
        # A concurrent request recorded the same conversion first. The
        # insert is this transaction's only write so far.
        await session.rollback()
        return already

    count_result = await session.execute(
        select(func.count())
        .select_from(ReferralConversion)
        .where(ReferralConversion.referral_code_id == referral_code.id)
    )
    total = count_result.scalar_one() or 0
    reward = await _award_milestone(session, referral_code.user_id, referral_code.id, total)

    try:
        async with session.begin_nested():
            await notification_service.create_notification(
                session,
                user_id=referral_code.user_id,
                type=NotificationType.SYSTEM.value,
                title="Referral Conversion!",
                message=(
                    f"{user.get('display_name') or 'Someone'} just "
                    f"{_CONVERSION_VERBS[conversion_type]} using your referral link!"
                ),
                data={
                    "conversion_id": conversion.id,
                    "conversion_type": conversion_type,
                    "referred_user_id": user["id"],
                    **reward,
                },
            )
    except Exception as e:
        logger.warning(f"Failed to notify referrer {referral_code.user_id}: {e}")

    logger.info(f"Referral conversion {conversion.id} ({conversion_type}) for code {referral_code.id}")
    return {"converted": True, "conversion_id": conversion.id, **reward}


async def get_referral_stats(session: AsyncSession, user_id: int) -> Dict:
    """
    Referral dashboard for a user across all of their codes.

    Returns:
        Dict with total_views, per-type totals, successful_conversions,
        the 10 most recent conversions, rewards (earned + next milestone)
        and the list of codes.
    """
    result = await session.execute(
        select(ReferralCode)
        .options(
            selectinload(ReferralCode.conversions).selectinload(ReferralConversion.referred_user)
        )
        .where(ReferralCode.user_id == user_id)
        .order_by(ReferralCode.created_at.asc(), ReferralCode.id.asc())
    )
    codes = result.scalars().all()

    totals = {c.value: 0 for c in ConversionType}
    total_views = 0
    conversions = []
    for referral_code in codes:
        total_views += referral_code.uses_count or 0
        for conversion in referral_code.conversions:
            totals[conversion.conversion_type] = totals.get(conversion.conversion_type, 0) + 1
            conversions.append(conversion)

    conversions.sort(key=lambda c: (isoformat(c.created_at) or "", c.id), reverse=True)
    recent = [
        {
            "type": c.conversion_type,
            "user": {
                "display_name": c.referred_user.display_name,
                "avatar_url": c.referred_user.avatar_url,
            },
            "created_at": isoformat(c.created_at),
            "event_id": c.event_id,
        }
        for c in conversions[:10]
    ]

    successful = sum(totals.values())
    earned = []
    next_milestone = None
    for milestone_count, reward, description in REFERRAL_MILESTONES:
        if successful >= milestone_count:
            earned.append({"reward": reward, "description": description})
        elif next_milestone is None:
            next_milestone = {
                "count": milestone_count,
                "reward": reward,
                "description": description,
                "progress": round(successful / milestone_count * 100),
            }

    return {
        "total_views": total_views,
        "total_signups": totals[ConversionType.SIGNUP.value],
        "total_registrations": totals[ConversionType.REGISTRATION.value],
        "total_purchases": totals[ConversionType.PURCHASE.value],
        "successful_conversions": successful,
        "recent_conversions": recent,
        "rewards": {"earned": earned, "next_milestone": next_milestone},
        "codes": [
            {
                "code": c.code,
                "event_type": c.event_type,
                "event_id": c.event_id,
                "uses_count": c.uses_count,
                "is_active": c.is_active,
                "created_at": isoformat(c.created_at),
            }
            for c in codes
        ],
    }
