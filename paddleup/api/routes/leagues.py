"""League and season route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from paddleup.database.db import get_db_session
from paddleup.services import league_service
from paddleup.services.league_service import (
    LeagueNotFoundError,
    NotLeagueOrganizerError,
    NoActiveSeasonError,
    AlreadyInSeasonError,
    SeasonFullError,
)
from paddleup.api.auth_dependencies import get_current_user, make_require_league_organizer
from paddleup.models.schemas import (
    CreateLeagueRequest,
    UpdateLeagueRequest,
    CreateSeasonRequest,
    JoinLeagueRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/leagues")
async def list_leagues(
    status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db_session),
):
    """List leagues, newest first."""
    return await league_service.list_leagues(session, status=status, limit=limit, offset=offset)


@router.post("/api/leagues", status_code=201)
async def create_league(
    payload: CreateLeagueRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a league organized by the current user."""
    try:
        return await league_service.create_league(
            session, organizer_id=user["id"], **payload.model_dump()
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating league: {e}")
        raise HTTPException(status_code=500, detail="Error creating league")


@router.get("/api/leagues/{league_id}")
async def get_league(league_id: str, session: AsyncSession = Depends(get_db_session)):
    """Get a league (by id or slug) with its active season."""
    league = await league_service.get_league(session, league_id)
    if league is None:
        raise HTTPException(status_code=404, detail="League not found")
    return league


@router.patch("/api/leagues/{league_id}")
async def update_league(
    league_id: str,
    payload: UpdateLeagueRequest,
    user: dict = Depends(make_require_league_organizer()),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a league (organizer only)."""
    try:
        league = await league_service.get_league_model(session, league_id)
        return await league_service.update_league(
            session, league.id, user["id"], **payload.model_dump(exclude_unset=True)
        )
    except LeagueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotLeagueOrganizerError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating league {league_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating league")


@router.get("/api/leagues/{league_id}/seasons")
async def list_seasons(league_id: int, session: AsyncSession = Depends(get_db_session)):
    """List a league's seasons."""
    try:
        return {"seasons": await league_service.list_seasons(session, league_id)}
    except LeagueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/api/leagues/{league_id}/seasons", status_code=201)
async def create_season(
    league_id: str,
    payload: CreateSeasonRequest,
    user: dict = Depends(make_require_league_organizer()),
    session: AsyncSession = Depends(get_db_session),
):
    """Add the next season to a league (organizer only)."""
    try:
        league = await league_service.get_league_model(session, league_id)
        return await league_service.create_season(
            session, league.id, user["id"], **payload.model_dump()
        )
    except LeagueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotLeagueOrganizerError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating season for league {league_id}: {e}")
        raise HTTPException(status_code=500, detail="Error creating season")


@router.get("/api/leagues/{league_id}/participants")
async def list_participants(
    league_id: int,
    season_id: Optional[int] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """List participants of a season (default: the active season)."""
    if season_id is None:
        if await league_service.get_league_model(session, league_id) is None:
            raise HTTPException(status_code=404, detail="League not found")
        season = await league_service.get_active_season(session, league_id)
        if season is None:
            return {"season": None, "participants": []}
        season_id = season["id"]
    else:
        try:
            seasons = await league_service.list_seasons(session, league_id)
        except LeagueNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        season = next((s for s in seasons if s["id"] == season_id), None)
        if season is None:
            raise HTTPException(status_code=404, detail="Season not found")
    return {
        "season": season,
        "participants": await league_service.list_participants(session, season_id),
    }


@router.post("/api/leagues/{league_id}/join", status_code=201)
async def join_league(
    league_id: int,
    payload: Optional[JoinLeagueRequest] = None,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Join the league's active season."""
    try:
        return await league_service.join_league(
            session, league_id, user["id"], team_name=payload.team_name if payload else None
        )
    except LeagueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (AlreadyInSeasonError, SeasonFullError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NoActiveSeasonError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error joining league {league_id}: {e}")
        raise HTTPException(status_code=500, detail="Error joining league")
