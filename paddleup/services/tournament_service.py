"""
Tournament service layer.

Handles tournament CRUD, the registration list, and team registration.
add_team_registration is shared with the invite flow, which registers a
team when a partner accepts.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paddleup.database.models import (
    Tournament,
    TournamentRegistration,
    TournamentRegistrationPlayer,
    TournamentFormat,
    GameFormat,
    EventStatus,
    RegistrationStatus,
)
from paddleup.services import user_service
from paddleup.utils.constants import DEFAULT_RATING
from paddleup.utils.datetime_utils import as_utc, isoformat
from paddleup.utils.slugify import unique_slug

logger = logging.getLogger(__name__)

# Fields an organizer may change through PATCH /api/tournaments/{id}
UPDATABLE_FIELDS = (
    "name",
    "description",
    "starts_at",
    "ends_at",
    "registration_closes_at",
    "max_participants",
    "tournament_format",
    "game_format",
    "points_to_win",
    "win_by",
    "status",
)


# --- Custom exceptions ---


class TournamentNotFoundError(ValueError):
    """Raised when a tournament id or slug does not match any record."""


class NotOrganizerError(ValueError):
    """Raised when a non-organizer tries to manage a tournament."""


class RegistrationClosedError(ValueError):
    """Raised when registering for a tournament that is not open."""


class AlreadyRegisteredError(ValueError):
    """Raised when a player is already on a registration for the tournament."""


class TournamentFullError(ValueError):
    """Raised when the tournament has reached max_participants."""


def tournament_to_dict(tournament: Tournament) -> Dict:
    """Serialize a Tournament row for API responses."""
    return {
        "id": tournament.id,
        "name": tournament.name,
        "slug": tournament.slug,
        "description": tournament.description,
        "organizer_id": tournament.organizer_id,
        "starts_at": isoformat(tournament.starts_at),
        "ends_at": isoformat(tournament.ends_at),
        "registration_closes_at": isoformat(tournament.registration_closes_at),
        "max_participants": tournament.max_participants,
        "current_participants": tournament.current_participants or 0,
        "tournament_format": tournament.tournament_format,
        "game_format": tournament.game_format,
        "points_to_win": tournament.points_to_win,
        "win_by": tournament.win_by,
        "status": tournament.status,
        "created_at": isoformat(tournament.created_at),
        "updated_at": isoformat(tournament.updated_at),
    }


def _validate_choices(fields: Dict) -> None:
    """Reject unknown enum values and an end before the start."""
    if "tournament_format" in fields and fields["tournament_format"] not in {
        f.value for f in TournamentFormat
    }:
        raise ValueError(f"Invalid tournament format: {fields['tournament_format']}")
    if "game_format" in fields and fields["game_format"] not in {g.value for g in GameFormat}:
        raise ValueError(f"Invalid game format: {fields['game_format']}")
    if "status" in fields and fields["status"] not in {s.value for s in EventStatus}:
        raise ValueError(f"Invalid status: {fields['status']}")
    starts_at, ends_at = fields.get("starts_at"), fields.get("ends_at")
    if starts_at and ends_at and as_utc(ends_at) < as_utc(starts_at):
        raise ValueError("ends_at must be on or after starts_at")


async def create_tournament(
    session: AsyncSession,
    organizer_id: int,
    name: str,
    starts_at: datetime,
    ends_at: datetime,
    tournament_format: str,
    game_format: str,
    description: Optional[str] = None,
    registration_closes_at: Optional[datetime] = None,
    max_participants: Optional[int] = None,
    points_to_win: int = 11,
    win_by: int = 2,
    status: str = EventStatus.DRAFT.value,
) -> Dict:
    """
    Create a tournament owned by the organizer.

    Args:
        session: Database session
        organizer_id: User creating the tournament
        name: Display name (slug is derived from it and de-duplicated)
        starts_at: Start time
        ends_at: End time
        tournament_format: TournamentFormat value
        game_format: GameFormat value
        description: Optional description
        registration_closes_at: Optional registration deadline
        max_participants: Optional cap on registered teams
        points_to_win: Game target score
        win_by: Required winning margin
        status: Initial EventStatus value (default draft)

    Returns:
        Tournament dict

    Raises:
        ValueError: If a format/status is unknown or the dates are inverted
    """
    name = name.strip()
    if not name:
        raise ValueError("Tournament name cannot be empty")
    _validate_choices(
        {
            "tournament_format": tournament_format,
            "game_format": game_format,
            "status": status,
            "starts_at": starts_at,
            "ends_at": ends_at,
        }
    )

    tournament = Tournament(
        name=name,
        slug=await unique_slug(session, Tournament, name),
        description=description,
        organizer_id=organizer_id,
        starts_at=starts_at,
        ends_at=ends_at,
        registration_closes_at=registration_closes_at,
        max_participants=max_participants,
        current_participants=0,
        tournament_format=tournament_format,
        game_format=game_format,
        points_to_win=points_to_win,
        win_by=win_by,
        status=status,
    )
    session.add(tournament)
    await session.flush()
    await session.refresh(tournament)
    logger.info(f"Tournament {tournament.id} ({tournament.slug}) created by user {organizer_id}")
    return tournament_to_dict(tournament)


async def list_tournaments(
    session: AsyncSession,
    status: Optional[str] = None,
    game_format: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Dict:
    """
    List tournaments, soonest first.

    Returns:
        Dict with tournaments, total_count and has_more
    """
    query = select(Tournament)
    if status:
        query = query.where(Tournament.status == status)
    if game_format:
        query = query.where(Tournament.game_format == game_format)

    total_result = await session.execute(select(func.count()).select_from(query.subquery()))
    total_count = total_result.scalar_one() or 0

    result = await session.execute(
        query.order_by(Tournament.starts_at.asc(), Tournament.id.asc()).limit(limit).offset(offset)
    )
    tournaments = [tournament_to_dict(t) for t in result.scalars().all()]
    return {
        "tournaments": tournaments,
        "total_count": total_count,
        "has_more": (offset + len(tournaments)) < total_count,
    }


async def get_tournament_model(session: AsyncSession, id_or_slug) -> Optional[Tournament]:
    """Fetch a Tournament row by numeric id or by slug."""
    if isinstance(id_or_slug, int) or str(id_or_slug).isdigit():
        query = select(Tournament).where(Tournament.id == int(id_or_slug))
    else:
        query = select(Tournament).where(Tournament.slug == str(id_or_slug))
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_tournament(session: AsyncSession, id_or_slug) -> Optional[Dict]:
    """Get a tournament by id or slug, or None."""
    tournament = await get_tournament_model(session, id_or_slug)
    return tournament_to_dict(tournament) if tournament else None


async def update_tournament(
    session: AsyncSession, tournament_id: int, user_id: int, **fields
) -> Dict:
    """
    Update a tournament. Only its organizer may do so.

    Raises:
        TournamentNotFoundError: Unknown tournament
        NotOrganizerError: Caller is not the organizer
        ValueError: Invalid field values
    """
    tournament = await get_tournament_model(session, tournament_id)
    if not tournament:
        raise TournamentNotFoundError("Tournament not found")
    if tournament.organizer_id != user_id:
        raise NotOrganizerError("Only the organizer can update this tournament")

    changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
    _validate_choices(
        {
            **changes,
            "starts_at": changes.get("starts_at", tournament.starts_at),
            "ends_at": changes.get("ends_at", tournament.ends_at),
        }
    )
    for key, value in changes.items():
        setattr(tournament, key, value)

    await session.flush()
    await session.refresh(tournament)
    return tournament_to_dict(tournament)


async def list_registrations(session: AsyncSession, tournament_id: int) -> List[Dict]:
    """
    List registrations for a tournament with their players, oldest first.

    Raises:
        TournamentNotFoundError: Unknown tournament
    """
    if not await get_tournament_model(session, tournament_id):
        raise TournamentNotFoundError("Tournament not found")

    result = await session.execute(
        select(TournamentRegistration)
        .options(
            selectinload(TournamentRegistration.players).selectinload(
                TournamentRegistrationPlayer.user
            )
        )
        .where(TournamentRegistration.tournament_id == tournament_id)
        .order_by(TournamentRegistration.registered_at.asc(), TournamentRegistration.id.asc())
    )
    return [
        {
            "id": reg.id,
            "tournament_id": reg.tournament_id,
            "team_name": reg.team_name,
            "status": reg.status,
            "registered_at": isoformat(reg.registered_at),
            "players": [
                {
                    "user_id": p.user_id,
                    "display_name": user_service.display_name_of(
                        {"display_name": p.user.display_name, "username": p.user.username}
                    ),
                    "is_captain": p.is_captain,
                    "rating_at_registration": (
                        str(p.rating_at_registration) if p.rating_at_registration is not None else None
                    ),
                }
                for p in sorted(reg.players, key=lambda p: (not p.is_captain, p.id))
            ],
        }
        for reg in result.scalars().all()
    ]


async def _rating_for(session: AsyncSession, user_id: int, game_format: str) -> Decimal:
    """Rating to record at registration time (DEFAULT_RATING when unrated)."""
    rating = await user_service.get_user_rating(session, user_id, game_format)
    return rating["rating"] if rating else Decimal(DEFAULT_RATING)


async def is_user_registered(session: AsyncSession, tournament_id: int, user_id: int) -> bool:
    """Whether the user is on any non-withdrawn registration for the tournament."""
    result = await session.execute(
        select(TournamentRegistrationPlayer.id)
        .join(TournamentRegistration)
        .where(
            TournamentRegistration.tournament_id == tournament_id,
            TournamentRegistration.status != RegistrationStatus.WITHDRAWN.value,
            TournamentRegistrationPlayer.user_id == user_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def ensure_can_register(session: AsyncSession, tournament: Tournament, user_ids) -> None:
    """
    Raise unless a team made of ``user_ids`` may still enter the tournament.

    Raises:
        RegistrationClosedError: Tournament is not registration_open
        TournamentFullError: max_participants reached
        AlreadyRegisteredError: One of the players is already registered
    """
    if tournament.status != EventStatus.REGISTRATION_OPEN.value:
        raise RegistrationClosedError("Tournament registration is not open")
    if (
        tournament.max_participants is not None
        and (tournament.current_participants or 0) >= tournament.max_participants
    ):
        raise TournamentFullError("Tournament is full")
    for uid in user_ids:
        if await is_user_registered(session, tournament.id, uid):
            raise AlreadyRegisteredError("Player is already registered for this tournament")


async def add_team_registration(
    session: AsyncSession,
    tournament: Tournament,
    captain_id: int,
    partner_id: Optional[int],
    team_name: Optional[str],
) -> TournamentRegistration:
    """
    Insert a registration with its player rows and bump current_participants.

    Ratings at registration use the tournament's game format. The caller
    owns the transaction; nothing is committed here.

    Returns:
        The flushed TournamentRegistration
    """
    registration = TournamentRegistration(
        tournament_id=tournament.id,
        team_name=team_name,
        status=RegistrationStatus.REGISTERED.value,
    )
    session.add(registration)
    await session.flush()

    session.add(
        TournamentRegistrationPlayer(
            registration_id=registration.id,
            user_id=captain_id,
            is_captain=True,
            rating_at_registration=await _rating_for(session, captain_id, tournament.game_format),
        )
    )
    if partner_id is not None:
        session.add(
            TournamentRegistrationPlayer(
                registration_id=registration.id,
                user_id=partner_id,
                is_captain=False,
                rating_at_registration=await _rating_for(session, partner_id, tournament.game_format),
            )
        )

    await session.execute(
        update(Tournament)
        .where(Tournament.id == tournament.id)
        .values(current_participants=func.coalesce(Tournament.current_participants, 0) + 1)
    )
    await session.flush()
    return registration


async def register_team(
    session: AsyncSession,
    tournament_id: int,
    user: Dict,
    team_name: Optional[str] = None,
    partner_user_id: Optional[int] = None,
) -> Dict:
    """
    Register the current user (and optionally a partner) for a tournament.

    Partner registration through this endpoint is for organizers adding known
    teams; players inviting a partner use the invite flow instead.

    Raises:
        TournamentNotFoundError: Unknown tournament
        RegistrationClosedError: Tournament is not registration_open
        TournamentFullError: max_participants reached
        AlreadyRegisteredError: Either player is already registered
        ValueError: Unknown partner or partnering with yourself
    """
    tournament = await get_tournament_model(session, tournament_id)
    if not tournament:
        raise TournamentNotFoundError("Tournament not found")

    if partner_user_id is not None:
        if partner_user_id == user["id"]:
            raise ValueError("You cannot partner with yourself")
        if not await user_service.get_user_by_id(session, partner_user_id):
            raise ValueError("Partner user not found")

    await ensure_can_register(session, tournament, filter(None, [user["id"], partner_user_id]))

    registration = await add_team_registration(
        session, tournament, user["id"], partner_user_id, team_name
    )
    logger.info(f"User {user['id']} registered for tournament {tournament.id}")
    return {
        "id": registration.id,
        "tournament_id": tournament.id,
        "team_name": registration.team_name,
        "status": registration.status,
    }
