"""Team invite route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from paddleup.database.db import get_db_session
from paddleup.services import invite_service
from paddleup.services.invite_service import (
    InviteNotFoundError,
    InviteForbiddenError,
    InviteConflictError,
)
from paddleup.services.tournament_service import AlreadyRegisteredError, TournamentFullError
from paddleup.services.league_service import AlreadyInSeasonError, SeasonFullError
from paddleup.api.auth_dependencies import get_current_user
from paddleup.api.routes import limiter, INVITE_RATE_LIMIT, PUBLIC_RATE_LIMIT
from paddleup.models.schemas import CreateInviteRequest

logger = logging.getLogger(__name__)
router = APIRouter()

CODE_PATH = Path(..., min_length=6, max_length=50)


def _to_http(e: ValueError) -> HTTPException:
    """Map invite service errors to HTTP status codes."""
    if isinstance(e, InviteNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InviteForbiddenError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(
        e, (InviteConflictError, AlreadyRegisteredError, TournamentFullError, AlreadyInSeasonError, SeasonFullError)
    ):
        return HTTPException(status_code=409, detail=str(e))
    # Expired invites and closed registration
    return HTTPException(status_code=400, detail=str(e))


@router.post("/api/invites", status_code=201)
@limiter.limit(INVITE_RATE_LIMIT)
async def create_invite(
    request: Request,
    payload: CreateInviteRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invite a partner to a tournament or league."""
    try:
        invite = await invite_service.create_invite(session, user, **payload.model_dump())
        return {"message": "Invitation sent successfully", "invite": invite}
    except ValueError as e:
        raise _to_http(e)
    except Exception as e:
        logger.error(f"Error creating invite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating invite")


# /my/* routes are declared before /{code} so they are not captured as codes.
@router.get("/api/invites/my/sent")
async def list_sent_invites(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invites sent by the current user, newest first."""
    return {"invites": await invite_service.list_sent_invites(session, user["id"])}


@router.get("/api/invites/my/received")
async def list_received_invites(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Invites addressed to the current user (by id or email), newest first."""
    return {"invites": await invite_service.list_received_invites(session, user)}


@router.get("/api/invites/{code}")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def get_invite(
    request: Request,
    code: str = CODE_PATH,
    session: AsyncSession = Depends(get_db_session),
):
    """Public invite details for the landing page."""
    try:
        return {"invite": await invite_service.get_invite(session, code)}
    except InviteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/api/invites/{code}/accept")
async def accept_invite(
    code: str = CODE_PATH,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept an invite and register the team."""
    try:
        return await invite_service.accept_invite(session, code, user)
    except ValueError as e:
        raise _to_http(e)
    except Exception as e:
        logger.error(f"Error accepting invite {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error accepting invite")


@router.post("/api/invites/{code}/decline")
async def decline_invite(
    code: str = CODE_PATH,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline an invite."""
    try:
        return await invite_service.decline_invite(session, code, user)
    except ValueError as e:
        raise _to_http(e)
    except Exception as e:
        logger.error(f"Error declining invite {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error declining invite")


@router.delete("/api/invites/{code}")
async def cancel_invite(
    code: str = CODE_PATH,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a pending invite (inviter only)."""
    try:
        return await invite_service.cancel_invite(session, code, user)
    except ValueError as e:
        raise _to_http(e)
    except Exception as e:
        logger.error(f"Error cancelling invite {code}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error cancelling invite")
