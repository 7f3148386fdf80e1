"""
League service layer.

Leagues run over numbered seasons. The "active" season of a league is the
one with the highest season_number that is neither completed nor cancelled;
league invites and joins attach participants to it.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paddleup.database.models import (
    League,
    LeagueSeason,
    LeagueParticipant,
    LeagueParticipantPlayer,
    GameFormat,
    EventStatus,
    ParticipantStatus,
)
from paddleup.services import user_service
from paddleup.utils.constants import DEFAULT_RATING
from paddleup.utils.datetime_utils import as_utc, isoformat
from paddleup.utils.slugify import unique_slug

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "game_format", "rules", "status")

# Seasons in these states no longer accept participants
_CLOSED_SEASON_STATUSES = (EventStatus.COMPLETED.value, EventStatus.CANCELLED.value)


class LeagueNotFoundError(ValueError):
    """Raised when a league id or slug does not match any record."""


class NotLeagueOrganizerError(ValueError):
    """Raised when a non-organizer tries to manage a league."""


class NoActiveSeasonError(ValueError):
    """Raised when a league has no season accepting participants."""


class AlreadyInSeasonError(ValueError):
    """Raised when a player is already a participant of the active season."""


class SeasonFullError(ValueError):
    """Raised when a season has reached max_participants."""


def league_to_dict(league: League) -> Dict:
    return {
        "id": league.id,
        "name": league.name,
        "slug": league.slug,
        "description": league.description,
        "organizer_id": league.organizer_id,
        "game_format": league.game_format,
        "rules": league.rules,
        "status": league.status,
        "created_at": isoformat(league.created_at),
        "updated_at": isoformat(league.updated_at),
    }


def season_to_dict(season: LeagueSeason) -> Dict:
    return {
        "id": season.id,
        "league_id": season.league_id,
        "name": season.name,
        "season_number": season.season_number,
        "starts_at": isoformat(season.starts_at),
        "ends_at": isoformat(season.ends_at),
        "max_participants": season.max_participants,
        "points_for_win": season.points_for_win,
        "points_for_draw": season.points_for_draw,
        "points_for_loss": season.points_for_loss,
        "status": season.status,
    }


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in {s.value for s in EventStatus}:
        raise ValueError(f"Invalid status: {status}")


async def get_league_model(session: AsyncSession, id_or_slug) -> Optional[League]:
    """Fetch a League row by numeric id or by slug."""
    if isinstance(id_or_slug, int) or str(id_or_slug).isdigit():
        query = select(League).where(League.id == int(id_or_slug))
    else:
        query = select(League).where(League.slug == str(id_or_slug))
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def create_league(
    session: AsyncSession,
    organizer_id: int,
    name: str,
    game_format: str,
    description: Optional[str] = None,
    rules: Optional[str] = None,
    status: str = EventStatus.DRAFT.value,
) -> Dict:
    """
    Create a league owned by the organizer.

    Raises:
        ValueError: Empty name, unknown game format or status
    """
    name = name.strip()
    if not name:
        raise ValueError("League name cannot be empty")
    if game_format not in {g.value for g in GameFormat}:
        raise ValueError(f"Invalid game format: {game_format}")
    _check_status(status)

    league = League(
        name=name,
        slug=await unique_slug(session, League, name),
        description=description,
        organizer_id=organizer_id,
        game_format=game_format,
        rules=rules,
        status=status,
    )
    session.add(league)
    await session.flush()
    await session.refresh(league)
    logger.info(f"League {league.id} ({league.slug}) created by user {organizer_id}")
    return league_to_dict(league)


async def list_leagues(
    session: AsyncSession, status: Optional[str] = None, limit: int = 20, offset: int = 0
) -> Dict:
    """List leagues, newest first, with pagination metadata."""
    query = select(League)
    if status:
        query = query.where(League.status == status)

    total_result = await session.execute(select(func.count()).select_from(query.subquery()))
    total_count = total_result.scalar_one() or 0

    result = await session.execute(
        query.order_by(League.created_at.desc(), League.id.desc()).limit(limit).offset(offset)
    )
    leagues = [league_to_dict(league) for league in result.scalars().all()]
    return {
        "leagues": leagues,
        "total_count": total_count,
        "has_more": (offset + len(leagues)) < total_count,
    }


async def get_league(session: AsyncSession, id_or_slug) -> Optional[Dict]:
    """Get a league with its active season, or None."""
    league = await get_league_model(session, id_or_slug)
    if not league:
        return None
    active = await get_active_season(session, league.id)
    return {**league_to_dict(league), "active_season": active}


async def update_league(session: AsyncSession, league_id: int, user_id: int, **fields) -> Dict:
    """
    Update a league. Only its organizer may do so.

    Raises:
        LeagueNotFoundError: Unknown league
        NotLeagueOrganizerError: Caller is not the organizer
    """
    league = await get_league_model(session, league_id)
    if not league:
        raise LeagueNotFoundError("League not found")
    if league.organizer_id != user_id:
        raise NotLeagueOrganizerError("Only the organizer can update this league")

    changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
    _check_status(changes.get("status"))
    if "game_format" in changes and changes["game_format"] not in {g.value for g in GameFormat}:
        raise ValueError(f"Invalid game format: {changes['game_format']}")
    for key, value in changes.items():
        setattr(league, key, value)

    await session.flush()
    await session.refresh(league)
    return league_to_dict(league)


async def create_season(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    name: str,
    starts_at: datetime,
    ends_at: datetime,
    max_participants: Optional[int] = None,
    points_for_win: int = 3,
    points_for_draw: int = 1,
    points_for_loss: int = 0,
    status: str = EventStatus.DRAFT.value,
) -> Dict:
    """
    Add the next numbered season to a league (organizer only).

    season_number is one more than the league's current highest.

    Raises:
        LeagueNotFoundError: Unknown league
        NotLeagueOrganizerError: Caller is not the organizer
        ValueError: Inverted dates or unknown status
    """
    league = await get_league_model(session, league_id)
    if not league:
        raise LeagueNotFoundError("League not found")
    if league.organizer_id != user_id:
        raise NotLeagueOrganizerError("Only the organizer can add seasons")
    _check_status(status)
    if as_utc(ends_at) < as_utc(starts_at):
        raise ValueError("ends_at must be on or after starts_at")

    result = await session.execute(
        select(func.max(LeagueSeason.season_number)).where(LeagueSeason.league_id == league.id)
    )
    next_number = (result.scalar_one_or_none() or 0) + 1

    season = LeagueSeason(
        league_id=league.id,
        name=name,
        season_number=next_number,
        starts_at=starts_at,
        ends_at=ends_at,
        max_participants=max_participants,
        points_for_win=points_for_win,
        points_for_draw=points_for_draw,
        points_for_loss=points_for_loss,
        status=status,
    )
    session.add(season)
    await session.flush()
    await session.refresh(season)
    return season_to_dict(season)


async def list_seasons(session: AsyncSession, league_id: int) -> List[Dict]:
    """List a league's seasons in season_number order."""
    if not await get_league_model(session, league_id):
        raise LeagueNotFoundError("League not found")
    result = await session.execute(
        select(LeagueSeason)
        .where(LeagueSeason.league_id == league_id)
        .order_by(LeagueSeason.season_number.asc())
    )
    return [season_to_dict(s) for s in result.scalars().all()]


async def get_active_season_model(session: AsyncSession, league_id: int) -> Optional[LeagueSeason]:
    result = await session.execute(
        select(LeagueSeason)
        .where(
            LeagueSeason.league_id == league_id,
            LeagueSeason.status.notin_(_CLOSED_SEASON_STATUSES),
        )
        .order_by(LeagueSeason.season_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_active_season(session: AsyncSession, league_id: int) -> Optional[Dict]:
    """Latest season that is not completed or cancelled, or None."""
    season = await get_active_season_model(session, league_id)
    return season_to_dict(season) if season else None


async def list_participants(session: AsyncSession, season_id: int) -> List[Dict]:
    """List a season's participants with players, in standings order."""
    result = await session.execute(
        select(LeagueParticipant)
        .options(
            selectinload(LeagueParticipant.players).selectinload(LeagueParticipantPlayer.user)
        )
        .where(LeagueParticipant.season_id == season_id)
        .order_by(
            LeagueParticipant.points.desc(),
            LeagueParticipant.wins.desc(),
            LeagueParticipant.id.asc(),
        )
    )
    return [
        {
            "id": p.id,
            "season_id": p.season_id,
            "team_name": p.team_name,
            "matches_played": p.matches_played or 0,
            "wins": p.wins or 0,
            "losses": p.losses or 0,
            "points": p.points or 0,
            "status": p.status,
            "players": [
                {
                    "user_id": pp.user_id,
                    "display_name": user_service.display_name_of(
                        {"display_name": pp.user.display_name, "username": pp.user.username}
                    ),
                    "is_captain": pp.is_captain,
                }
                for pp in sorted(p.players, key=lambda pp: (not pp.is_captain, pp.id))
            ],
        }
        for p in result.scalars().all()
    ]


async def is_user_in_season(session: AsyncSession, season_id: int, user_id: int) -> bool:
    result = await session.execute(
        select(LeagueParticipantPlayer.id)
        .join(LeagueParticipant)
        .where(
            LeagueParticipant.season_id == season_id,
            LeagueParticipant.status == ParticipantStatus.ACTIVE.value,
            LeagueParticipantPlayer.user_id == user_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _rating_for(session: AsyncSession, user_id: int, game_format: str) -> Decimal:
    rating = await user_service.get_user_rating(session, user_id, game_format)
    return rating["rating"] if rating else Decimal(DEFAULT_RATING)


async def ensure_can_join(session: AsyncSession, season: LeagueSeason, user_ids) -> None:
    """
    Raise unless a participant made of ``user_ids`` may still join the season.

    Raises:
        AlreadyInSeasonError: One of the players already plays in the season
        SeasonFullError: Season is at max_participants
    """
    for uid in user_ids:
        if await is_user_in_season(session, season.id, uid):
            raise AlreadyInSeasonError("Player is already in this league season")

    if season.max_participants is not None:
        count_result = await session.execute(
            select(func.count())
            .select_from(LeagueParticipant)
            .where(
                LeagueParticipant.season_id == season.id,
                LeagueParticipant.status == ParticipantStatus.ACTIVE.value,
            )
        )
        if (count_result.scalar_one() or 0) >= season.max_participants:
            raise SeasonFullError("This league season is full")


async def add_league_participant(
    session: AsyncSession,
    season: LeagueSeason,
    game_format: str,
    captain_id: int,
    partner_id: Optional[int],
    team_name: Optional[str],
) -> LeagueParticipant:
    """
    Insert a participant with its player rows. The caller owns the transaction.
    """
    participant = LeagueParticipant(
        season_id=season.id,
        team_name=team_name,
        status=ParticipantStatus.ACTIVE.value,
    )
    session.add(participant)
    await session.flush()

    for uid, is_captain in ((captain_id, True), (partner_id, False)):
        if uid is None:
            continue
        session.add(
            LeagueParticipantPlayer(
                participant_id=participant.id,
                user_id=uid,
                is_captain=is_captain,
                rating_at_registration=await _rating_for(session, uid, game_format),
            )
        )
    await session.flush()
    return participant


async def join_league(
    session: AsyncSession, league_id: int, user_id: int, team_name: Optional[str] = None
) -> Dict:
    """
    Join the league's active season as a solo participant.

    Raises:
        LeagueNotFoundError: Unknown league
        NoActiveSeasonError: League has no open season
        AlreadyInSeasonError: User already plays in that season
        SeasonFullError: Season is at max_participants
    """
    league = await get_league_model(session, league_id)
    if not league:
        raise LeagueNotFoundError("League not found")
    season = await get_active_season_model(session, league.id)
    if not season:
        raise NoActiveSeasonError("No active season found for this league")
    await ensure_can_join(session, season, [user_id])

    participant = await add_league_participant(
        session, season, league.game_format, user_id, None, team_name
    )
    logger.info(f"User {user_id} joined league {league.id} season {season.season_number}")
    return {
        "id": participant.id,
        "league_id": league.id,
        "season_id": season.id,
        "team_name": participant.team_name,
        "status": participant.status,
    }
