"""Tournament route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from paddleup.database.db import get_db_session
from paddleup.services import tournament_service
from paddleup.services.tournament_service import (
    TournamentNotFoundError,
    NotOrganizerError,
    RegistrationClosedError,
    AlreadyRegisteredError,
    TournamentFullError,
)
from paddleup.api.auth_dependencies import get_current_user, make_require_tournament_organizer
from paddleup.models.schemas import (
    CreateTournamentRequest,
    UpdateTournamentRequest,
    RegisterTeamRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/tournaments")
async def list_tournaments(
    status: Optional[str] = None,
    game_format: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db_session),
):
    """List tournaments, soonest first."""
    return await tournament_service.list_tournaments(
        session, status=status, game_format=game_format, limit=limit, offset=offset
    )


@router.post("/api/tournaments", status_code=201)
async def create_tournament(
    payload: CreateTournamentRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a tournament organized by the current user."""
    try:
        return await tournament_service.create_tournament(
            session, organizer_id=user["id"], **payload.model_dump()
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating tournament: {e}")
        raise HTTPException(status_code=500, detail="Error creating tournament")


@router.get("/api/tournaments/{tournament_id}")
async def get_tournament(tournament_id: str, session: AsyncSession = Depends(get_db_session)):
    """Get a tournament by id or slug."""
    tournament = await tournament_service.get_tournament(session, tournament_id)
    if tournament is None:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.patch("/api/tournaments/{tournament_id}")
async def update_tournament(
    tournament_id: str,
    payload: UpdateTournamentRequest,
    user: dict = Depends(make_require_tournament_organizer()),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a tournament (organizer only)."""
    try:
        tournament = await tournament_service.get_tournament_model(session, tournament_id)
        return await tournament_service.update_tournament(
            session, tournament.id, user["id"], **payload.model_dump(exclude_unset=True)
        )
    except TournamentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotOrganizerError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating tournament")


@router.get("/api/tournaments/{tournament_id}/registrations")
async def list_registrations(tournament_id: int, session: AsyncSession = Depends(get_db_session)):
    """List a tournament's registered teams."""
    try:
        return {"registrations": await tournament_service.list_registrations(session, tournament_id)}
    except TournamentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/api/tournaments/{tournament_id}/registrations", status_code=201)
async def register_team(
    tournament_id: int,
    payload: RegisterTeamRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Register the current user (and optional partner) for a tournament."""
    try:
        return await tournament_service.register_team(
            session,
            tournament_id,
            user,
            team_name=payload.team_name,
            partner_user_id=payload.partner_user_id,
        )
    except TournamentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (AlreadyRegisteredError, TournamentFullError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except RegistrationClosedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error registering for tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error registering for tournament")
