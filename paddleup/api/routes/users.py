"""User profile route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from paddleup.database.db import get_db_session
from paddleup.services import user_service
from paddleup.api.auth_dependencies import get_current_user
from paddleup.models.schemas import UserResponse, PublicUserResponse, UpdateProfileRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/users/me", response_model=UserResponse)
async def get_me(user: dict = Depends(get_current_user)):
    """Get the current user's profile."""
    return user


@router.patch("/api/users/me", response_model=UserResponse)
async def update_me(
    payload: UpdateProfileRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the current user's profile. Only provided fields change."""
    try:
        return await user_service.update_profile(
            session, user["id"], **payload.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating profile for user {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error updating profile")


@router.get("/api/users/{user_id}", response_model=PublicUserResponse)
async def get_user(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get another user's public profile."""
    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user
