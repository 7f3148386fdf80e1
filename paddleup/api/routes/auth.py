"""Authentication route handlers (Clerk user sync)."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from paddleup.database.db import get_db_session
from paddleup.services import auth_service, user_service
from paddleup.api.auth_dependencies import get_token_claims
from paddleup.models.schemas import SyncUserRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/sync")
async def sync_user(
    payload: SyncUserRequest,
    claims: dict = Depends(get_token_claims),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create or update the local user for the signed-in Clerk account.

    The body's clerk_id must match the token subject. The email always comes
    from the Clerk Backend API (or the token's email claim when the API is
    unavailable); a body email is only accepted if it matches. Other fields
    missing from the body are filled from the Clerk profile.
    """
    if payload.clerk_id != claims["sub"]:
        raise HTTPException(status_code=403, detail="Token does not match the user being synced")

    clerk_profile = await auth_service.fetch_clerk_user(payload.clerk_id) or {}
    verified_email = clerk_profile.get("email") or claims.get("email")
    if not verified_email:
        raise HTTPException(status_code=400, detail="Could not verify an email address for this account")
    if payload.email and payload.email.strip().lower() != verified_email.strip().lower():
        raise HTTPException(status_code=403, detail="Email does not match the signed-in account")

    profile = {
        "first_name": payload.first_name,
        "last_name": payload.last_name,
        "username": payload.username,
        "avatar_url": payload.avatar_url,
    }
    profile = {k: v if v is not None else clerk_profile.get(k) for k, v in profile.items()}

    try:
        user, is_new = await user_service.sync_user_from_clerk(
            session,
            clerk_id=payload.clerk_id,
            email=verified_email,
            first_name=profile["first_name"] or "",
            last_name=profile["last_name"] or "",
            username=profile["username"],
            display_name=payload.display_name,
            avatar_url=profile["avatar_url"],
        )
        return {"user": user, "is_new_user": is_new}
    except user_service.EmailInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error syncing user {payload.clerk_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error syncing user")
