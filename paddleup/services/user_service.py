"""
User service layer for user accounts synced from Clerk and their ratings.
"""

import re
from decimal import Decimal
from typing import Optional, Dict, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from paddleup.database.models import User, UserRating
from paddleup.utils.datetime_utils import isoformat
import logging

logger = logging.getLogger(__name__)

# Profile fields a user may change through PATCH /api/users/me
EDITABLE_PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "display_name",
    "avatar_url",
    "bio",
    "city",
    "state",
    "skill_level",
)

_USERNAME_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_]")


class EmailInUseError(ValueError):
    """Raised when an email address already belongs to a linked account."""


def user_to_dict(user: User) -> Dict:
    """Serialize a User row for API responses and auth dependencies."""
    return {
        "id": user.id,
        "clerk_id": user.clerk_id,
        "email": user.email,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "bio": user.bio,
        "city": user.city,
        "state": user.state,
        "skill_level": user.skill_level,
        "created_at": isoformat(user.created_at),
        "updated_at": isoformat(user.updated_at),
    }


def display_name_of(user: Dict) -> str:
    """Name shown to other users: display name, falling back to username."""
    return user.get("display_name") or user.get("username") or "Someone"


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dict or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return user_to_dict(user) if user else None


async def get_user_by_clerk_id(session: AsyncSession, clerk_id: str) -> Optional[Dict]:
    """Get user by Clerk user id (the session token's ``sub``)."""
    result = await session.execute(select(User).where(User.clerk_id == clerk_id))
    user = result.scalar_one_or_none()
    return user_to_dict(user) if user else None


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[Dict]:
    """Get user by email address (case-insensitive)."""
    result = await session.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    )
    user = result.scalar_one_or_none()
    return user_to_dict(user) if user else None


async def _unique_username(
    session: AsyncSession, requested: Optional[str], email: str, exclude_user_id: Optional[int] = None
) -> str:
    """
    Pick a username that is not taken.

    Starts from the requested username (or the email local part) and appends
    a numeric suffix until it is free.
    """
    base = _USERNAME_INVALID_CHARS.sub("", requested or email.split("@")[0])[:26] or "player"
    candidate = base
    suffix = 1
    while True:
        query = select(User.id).where(User.username == candidate)
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        result = await session.execute(query)
        if result.scalar_one_or_none() is None:
            return candidate
        suffix += 1
        candidate = f"{base}{suffix}"


async def sync_user_from_clerk(
    session: AsyncSession,
    clerk_id: str,
    email: str,
    first_name: str,
    last_name: str,
    username: Optional[str] = None,
    display_name: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> Tuple[Dict, bool]:
    """
    Create or update the local user record for a Clerk account.

    Matches on clerk_id first, then on email so that an account created
    before Clerk was linked gets adopted instead of duplicated. Only rows
    without a clerk_id are adopted. The email must already be verified by
    the caller.

    Args:
        session: Database session
        clerk_id: Clerk user id
        email: Primary email address
        first_name: First name
        last_name: Last name
        username: Optional preferred username
        display_name: Optional display name
        avatar_url: Optional avatar URL

    Returns:
        Tuple of (user dict, is_new_user)

    Raises:
        EmailInUseError: Email belongs to a row linked to another Clerk account
    """
    email = email.strip().lower()
    result = await session.execute(select(User).where(User.clerk_id == clerk_id))
    user = result.scalar_one_or_none()
    if user is None:
        result = await session.execute(select(User).where(func.lower(User.email) == email))
        user = result.scalar_one_or_none()
        if user is not None and user.clerk_id is not None:
            logger.warning(f"Clerk account {clerk_id} tried to claim the email of user {user.id}")
            raise EmailInUseError("Email is already linked to another account")
    elif user.email.lower() != email:
        result = await session.execute(
            select(User.id).where(func.lower(User.email) == email, User.id != user.id)
        )
        if result.first() is not None:
            raise EmailInUseError("Email is already linked to another account")

    is_new = user is None
    if is_new:
        user = User(
            clerk_id=clerk_id,
            email=email,
            username=await _unique_username(session, username, email),
            first_name=first_name,
            last_name=last_name,
            display_name=display_name or f"{first_name} {last_name}".strip() or None,
            avatar_url=avatar_url,
        )
        session.add(user)
        logger.info(f"Created user for Clerk account {clerk_id}")
    else:
        user.clerk_id = clerk_id
        user.email = email
        user.first_name = first_name
        user.last_name = last_name
        if username and username != user.username:
            user.username = await _unique_username(session, username, email, exclude_user_id=user.id)
        if display_name:
            user.display_name = display_name
        if avatar_url:
            user.avatar_url = avatar_url

    await session.flush()
    await session.refresh(user)
    return user_to_dict(user), is_new


async def update_profile(session: AsyncSession, user_id: int, **fields) -> Dict:
    """
    Update editable profile fields for a user.

    Args:
        session: Database session
        user_id: User ID
        **fields: Any of EDITABLE_PROFILE_FIELDS; other keys are ignored

    Returns:
        Updated user dict

    Raises:
        ValueError: If the user does not exist
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ValueError("User not found")

    for key, value in fields.items():
        if key in EDITABLE_PROFILE_FIELDS:
            setattr(user, key, value)

    await session.flush()
    await session.refresh(user)
    return user_to_dict(user)


async def get_user_rating(
    session: AsyncSession, user_id: int, game_format: Optional[str] = None
) -> Optional[Dict]:
    """
    Get a user's rating, preferring the requested game format.

    Falls back to any rating the user has when none exists for the format.

    Returns:
        Dict with rating (Decimal), rating_type and game_format, or None
    """
    result = await session.execute(
        select(UserRating).where(UserRating.user_id == user_id).order_by(UserRating.id)
    )
    ratings = result.scalars().all()
    if not ratings:
        return None

    match = next((r for r in ratings if r.game_format == game_format), None) if game_format else None
    rating = match or ratings[0]
    return {
        "rating": Decimal(str(rating.rating)),
        "rating_type": rating.rating_type,
        "game_format": rating.game_format,
    }
