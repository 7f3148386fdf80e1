"""
Team invite service layer.

An invite asks one player (by user id or by email) to partner with the
inviter on a tournament or league entry. Lifecycle:

    pending -> accepted | declined | cancelled
    pending -> expired   (stored only when an accept/decline arrives late)

Reads report an "effective" status: a pending invite past its expiry reads
as expired while the stored row is left alone.
"""

import logging
import os
import secrets
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, update, or_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paddleup.database.models import (
    TeamInvite,
    TeamInviteStatus,
    Tournament,
    League,
    User,
    EventStatus,
    NotificationType,
)
from paddleup.services import (
    notification_service,
    user_service,
    tournament_service,
    league_service,
)
from paddleup.services.league_service import NoActiveSeasonError
from paddleup.utils.constants import INVITE_CODE_LENGTH, INVITE_EXPIRY_DAYS as DEFAULT_EXPIRY_DAYS
from paddleup.utils.datetime_utils import utcnow, as_utc, isoformat

logger = logging.getLogger(__name__)

INVITE_EXPIRY_DAYS = int(os.getenv("INVITE_EXPIRY_DAYS", str(DEFAULT_EXPIRY_DAYS)))

__all__ = [
    "InviteNotFoundError",
    "InviteForbiddenError",
    "InviteConflictError",
    "InviteExpiredError",
    "NoActiveSeasonError",
    "create_invite",
    "get_invite",
    "accept_invite",
    "decline_invite",
    "cancel_invite",
    "list_sent_invites",
    "list_received_invites",
    "effective_status",
]


# --- Custom exceptions ---


class InviteNotFoundError(ValueError):
    """Raised when an invite code (or a referenced user/event) does not exist."""


class InviteForbiddenError(ValueError):
    """Raised when the caller is not the party allowed to act on an invite."""


class InviteConflictError(ValueError):
    """Raised when the invite is not pending or a duplicate pending invite exists."""


class InviteExpiredError(ValueError):
    """Raised when accepting or declining an invite past its expiry."""


# --- Helpers ---


def generate_invite_code() -> str:
    """Random URL-safe invite code of INVITE_CODE_LENGTH characters."""
    return secrets.token_urlsafe(INVITE_CODE_LENGTH)[:INVITE_CODE_LENGTH]


def effective_status(invite: TeamInvite, now=None) -> str:
    """Stored status, except a pending invite past expires_at reads as expired."""
    now = now or utcnow()
    if invite.status == TeamInviteStatus.PENDING.value and as_utc(invite.expires_at) < now:
        return TeamInviteStatus.EXPIRED.value
    return invite.status


def _user_summary(user: Optional[User]) -> Optional[Dict]:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
    }


def _event_summary(event) -> Optional[Dict]:
    if event is None:
        return None
    return {"id": event.id, "name": event.name, "slug": event.slug}


def _invite_to_dict(invite: TeamInvite, now=None) -> Dict:
    return {
        "id": invite.id,
        "invite_code": invite.invite_code,
        "invite_url": f"/invite/{invite.invite_code}",
        "tournament_id": invite.tournament_id,
        "league_id": invite.league_id,
        "event_id": invite.event_id,
        "inviter_id": invite.inviter_id,
        "invitee_user_id": invite.invitee_user_id,
        "invitee_email": invite.invitee_email,
        "team_name": invite.team_name,
        "message": invite.message,
        "status": effective_status(invite, now),
        "expires_at": isoformat(invite.expires_at),
        "responded_at": isoformat(invite.responded_at),
        "created_at": isoformat(invite.created_at),
    }


def _event_name(invite: TeamInvite) -> str:
    if invite.tournament is not None:
        return invite.tournament.name
    if invite.league is not None:
        return invite.league.name
    return "the event"


def _event_url(invite: TeamInvite) -> str:
    if invite.tournament_id:
        return f"/tournaments/{invite.tournament_id}"
    return f"/leagues/{invite.league_id}"


def _is_invitee(invite: TeamInvite, user: Dict) -> bool:
    """Whether the user is the designated invitee (by id, else by email)."""
    if invite.invitee_user_id is not None:
        return invite.invitee_user_id == user["id"]
    return (invite.invitee_email or "").lower() == (user.get("email") or "").lower()


async def _load_invite(session: AsyncSession, code: str) -> TeamInvite:
    result = await session.execute(
        select(TeamInvite)
        .options(
            selectinload(TeamInvite.inviter),
            selectinload(TeamInvite.invitee),
            selectinload(TeamInvite.tournament),
            selectinload(TeamInvite.league),
        )
        .where(TeamInvite.invite_code == code)
    )
    invite = result.scalar_one_or_none()
    if not invite:
        raise InviteNotFoundError("Invite not found")
    return invite


async def _notify(session: AsyncSession, user_id: int, title: str, message: str, **kwargs) -> None:
    """Create a notification in a savepoint; failures are logged, never raised."""
    try:
        async with session.begin_nested():
            await notification_service.create_notification(
                session,
                user_id=user_id,
                type=NotificationType.GAME_INVITE.value,
                title=title,
                message=message,
                reference_type="team_invite",
                **kwargs,
            )
    except Exception as e:
        logger.warning(f"Failed to create invite notification for user {user_id}: {e}")


async def _expire_if_needed(session: AsyncSession, invite: TeamInvite) -> None:
    """
    Store the expired status of a late invite and raise InviteExpiredError.

    The change is committed before raising since the request transaction is
    rolled back on error.
    """
    if as_utc(invite.expires_at) >= utcnow():
        return
    invite.status = TeamInviteStatus.EXPIRED.value
    await session.commit()
    logger.info(f"Invite {invite.id} expired on response attempt")
    raise InviteExpiredError("Invite has expired")


# --- Operations ---


async def create_invite(
    session: AsyncSession,
    inviter: Dict,
    tournament_id: Optional[int] = None,
    league_id: Optional[int] = None,
    invitee_user_id: Optional[int] = None,
    invitee_email: Optional[str] = None,
    team_name: Optional[str] = None,
    message: Optional[str] = None,
    event_id: Optional[str] = None,
) -> Dict:
    """
    Create a pending partner invite.

    Args:
        session: Database session
        inviter: Current user dict
        tournament_id / league_id: Exactly one target event
        invitee_user_id / invitee_email: Exactly one invitee
        team_name: Optional team name used on acceptance
        message: Optional note shown to the invitee
        event_id: Optional division within the event

    Returns:
        Invite dict (includes invite_code and invite_url)

    Raises:
        ValueError: Target/invitee not exactly one, or self-invite
        InviteNotFoundError: Unknown invitee user, tournament or league
        tournament_service.RegistrationClosedError: Event registration not open
        InviteConflictError: A pending invite already exists for this pairing
    """
    if (tournament_id is None) == (league_id is None):
        raise ValueError("Exactly one of tournament_id or league_id is required")
    if (invitee_user_id is None) == (invitee_email is None):
        raise ValueError("Exactly one of invitee_user_id or invitee_email is required")

    invitee_email = invitee_email.strip().lower() if invitee_email else None
    if invitee_user_id == inviter["id"] or (
        invitee_email and invitee_email == (inviter.get("email") or "").lower()
    ):
        raise ValueError("You cannot invite yourself")

    # Resolve who to notify. Email invites keep storing the email only.
    if invitee_user_id is not None:
        notify_user = await user_service.get_user_by_id(session, invitee_user_id)
        if not notify_user:
            raise InviteNotFoundError("Invitee user not found")
    else:
        notify_user = await user_service.get_user_by_email(session, invitee_email)

    if tournament_id is not None:
        event = await session.get(Tournament, tournament_id)
        if not event:
            raise InviteNotFoundError("Tournament not found")
        target_filter = TeamInvite.tournament_id == tournament_id
        closed_message = "Tournament registration is not open"
    else:
        event = await session.get(League, league_id)
        if not event:
            raise InviteNotFoundError("League not found")
        target_filter = TeamInvite.league_id == league_id
        closed_message = "League registration is not open"
    if event.status != EventStatus.REGISTRATION_OPEN.value:
        raise tournament_service.RegistrationClosedError(closed_message)

    invitee_filter = (
        TeamInvite.invitee_user_id == invitee_user_id
        if invitee_user_id is not None
        else func.lower(TeamInvite.invitee_email) == invitee_email
    )
    existing = await session.execute(
        select(TeamInvite.id).where(
            TeamInvite.inviter_id == inviter["id"],
            TeamInvite.status == TeamInviteStatus.PENDING.value,
            target_filter,
            invitee_filter,
        )
    )
    if existing.first() is not None:
        raise InviteConflictError("A pending invite already exists for this user/email and event")

    code = generate_invite_code()
    while (
        await session.execute(select(TeamInvite.id).where(TeamInvite.invite_code == code))
    ).first() is not None:
        code = generate_invite_code()

    invite = TeamInvite(
        invite_code=code,
        tournament_id=tournament_id,
        league_id=league_id,
        event_id=event_id,
        inviter_id=inviter["id"],
        invitee_user_id=invitee_user_id,
        invitee_email=invitee_email,
        team_name=team_name,
        message=message,
        status=TeamInviteStatus.PENDING.value,
        expires_at=utcnow() + timedelta(days=INVITE_EXPIRY_DAYS),
    )
    session.add(invite)
    await session.flush()
    await session.refresh(invite)
    logger.info(f"User {inviter['id']} created invite {invite.id} for {event.name}")

    if notify_user:
        inviter_name = user_service.display_name_of(inviter)
        text = f"{inviter_name} has invited you to be their partner for {event.name}"
        if message:
            text += f'. Message: "{message}"'
        await _notify(
            session,
            notify_user["id"],
            "Team Invitation",
            text,
            action_url=f"/invite/{code}",
            reference_id=invite.id,
            data={
                "type": "team_invite",
                "invite_id": invite.id,
                "invite_code": code,
                "inviter_name": inviter_name,
                "event_name": event.name,
                "team_name": team_name,
            },
        )

    return _invite_to_dict(invite)


async def get_invite(session: AsyncSession, code: str) -> Dict:
    """
    Public invite details with inviter, rating and event summary.

    Raises:
        InviteNotFoundError: Unknown code
    """
    invite = await _load_invite(session, code)
    inviter = invite.inviter
    rating = await user_service.get_user_rating(session, inviter.id, "doubles")

    tournament = None
    if invite.tournament is not None:
        t = invite.tournament
        tournament = {
            "id": t.id,
            "name": t.name,
            "slug": t.slug,
            "starts_at": isoformat(t.starts_at),
            "ends_at": isoformat(t.ends_at),
            "registration_closes_at": isoformat(t.registration_closes_at),
            "game_format": t.game_format,
        }
    league = None
    if invite.league is not None:
        lg = invite.league
        league = {
            "id": lg.id,
            "name": lg.name,
            "slug": lg.slug,
            "game_format": lg.game_format,
            "status": lg.status,
        }

    return {
        "id": invite.id,
        "invite_code": invite.invite_code,
        "status": effective_status(invite),
        "team_name": invite.team_name,
        "message": invite.message,
        "expires_at": isoformat(invite.expires_at),
        "created_at": isoformat(invite.created_at),
        "event_id": invite.event_id,
        "inviter": {
            "id": inviter.id,
            "username": inviter.username,
            "display_name": inviter.display_name,
            "first_name": inviter.first_name,
            "last_name": inviter.last_name,
            "avatar_url": inviter.avatar_url,
            "city": inviter.city,
            "state": inviter.state,
            "skill_level": inviter.skill_level,
            "rating": float(rating["rating"]) if rating else None,
            "rating_source": rating["rating_type"] if rating else None,
        },
        "tournament": tournament,
        "league": league,
    }


async def _check_response_allowed(session: AsyncSession, invite: TeamInvite, user: Dict) -> None:
    """Guards shared by accept and decline, in order."""
    if invite.status != TeamInviteStatus.PENDING.value:
        raise InviteConflictError(f"Invite has already been {invite.status}")
    await _expire_if_needed(session, invite)
    if invite.inviter_id == user["id"]:
        raise ValueError("You cannot respond to your own invite")
    if not _is_invitee(invite, user):
        raise InviteForbiddenError("This invite is for a different user")


async def _transition(
    session: AsyncSession, invite: TeamInvite, new_status: str, user_id: Optional[int]
) -> None:
    """Flip a pending invite to new_status, or raise if another request got there first."""
    values = {"status": new_status, "responded_at": utcnow()}
    if user_id is not None:
        values["responder_user_id"] = user_id
    result = await session.execute(
        update(TeamInvite)
        .where(
            TeamInvite.id == invite.id,
            TeamInvite.status == TeamInviteStatus.PENDING.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InviteConflictError("Invite is no longer pending")
    await session.refresh(invite, attribute_names=list(values))


async def accept_invite(session: AsyncSession, code: str, user: Dict) -> Dict:
    """
    Accept an invite and register the inviter + accepter as a team.

    The status flip and the registration (tournament) or participant
    (league, active season) rows are written in the caller's transaction.

    Raises:
        InviteNotFoundError: Unknown code
        InviteConflictError: Invite not pending (or lost a race)
        InviteExpiredError: Past expiry (expired status is committed first)
        ValueError: Accepting your own invite
        InviteForbiddenError: Caller is not the invitee
        NoActiveSeasonError: League has no active season
        tournament_service.RegistrationClosedError: Event no longer open
        tournament_service.TournamentFullError: Tournament at capacity
        tournament_service.AlreadyRegisteredError: Either player already registered
        league_service.SeasonFullError: Season at capacity
        league_service.AlreadyInSeasonError: Either player already in the season
    """
    invite = await _load_invite(session, code)
    await _check_response_allowed(session, invite, user)

    team = [invite.inviter_id, user["id"]]
    season = None
    if invite.tournament_id is not None:
        await tournament_service.ensure_can_register(session, invite.tournament, team)
    else:
        if invite.league.status != EventStatus.REGISTRATION_OPEN.value:
            raise tournament_service.RegistrationClosedError("League registration is not open")
        season = await league_service.get_active_season_model(session, invite.league_id)
        if season is None:
            raise NoActiveSeasonError("No active season found for this league")
        await league_service.ensure_can_join(session, season, team)

    await _transition(session, invite, TeamInviteStatus.ACCEPTED.value, user["id"])

    inviter_name = user_service.display_name_of(
        {"display_name": invite.inviter.display_name, "username": invite.inviter.username}
    )
    accepter_name = user_service.display_name_of(user)
    team_name = invite.team_name or f"{inviter_name} & {accepter_name}"

    registration: Dict = {
        "tournament_id": invite.tournament_id,
        "league_id": invite.league_id,
        "team_name": team_name,
    }
    if invite.tournament_id is not None:
        reg = await tournament_service.add_team_registration(
            session, invite.tournament, invite.inviter_id, user["id"], team_name
        )
        registration["registration_id"] = reg.id
    else:
        participant = await league_service.add_league_participant(
            session, season, invite.league.game_format, invite.inviter_id, user["id"], team_name
        )
        registration["participant_id"] = participant.id
        registration["season_id"] = season.id

    event_name = _event_name(invite)
    await _notify(
        session,
        invite.inviter_id,
        "Invitation Accepted",
        f"{accepter_name} has accepted your partner invitation for {event_name}. "
        "Your team is now registered!",
        action_url=_event_url(invite),
        reference_id=invite.id,
        data={
            "type": "invite_accepted",
            "invite_id": invite.id,
            "accepter_name": accepter_name,
            "event_name": event_name,
        },
    )
    logger.info(f"User {user['id']} accepted invite {invite.id}")

    return {
        "message": "Invitation accepted successfully. You are now registered as a team!",
        "registration": registration,
    }


async def decline_invite(session: AsyncSession, code: str, user: Dict) -> Dict:
    """
    Decline an invite. Same guards as accept_invite.
    """
    invite = await _load_invite(session, code)
    await _check_response_allowed(session, invite, user)
    await _transition(session, invite, TeamInviteStatus.DECLINED.value, user["id"])

    decliner_name = user_service.display_name_of(user)
    event_name = _event_name(invite)
    await _notify(
        session,
        invite.inviter_id,
        "Invitation Declined",
        f"{decliner_name} has declined your partner invitation for {event_name}.",
        action_url=_event_url(invite),
        reference_id=invite.id,
        data={
            "type": "invite_declined",
            "invite_id": invite.id,
            "decliner_name": decliner_name,
            "event_name": event_name,
        },
    )
    return {"message": "Invitation declined"}


async def cancel_invite(session: AsyncSession, code: str, user: Dict) -> Dict:
    """
    Cancel a pending invite. Only the inviter may cancel; the row is kept
    with status cancelled.

    Raises:
        InviteNotFoundError: Unknown code
        InviteForbiddenError: Caller is not the inviter
        InviteConflictError: Invite is not pending
    """
    invite = await _load_invite(session, code)
    if invite.inviter_id != user["id"]:
        raise InviteForbiddenError("Only the inviter can cancel this invite")
    if invite.status != TeamInviteStatus.PENDING.value:
        raise InviteConflictError(f"Cannot cancel an invite that has been {invite.status}")

    await _transition(session, invite, TeamInviteStatus.CANCELLED.value, None)
    return {"message": "Invite cancelled successfully"}


async def list_sent_invites(session: AsyncSession, user_id: int) -> List[Dict]:
    """Invites sent by the user, newest first, with effective status."""
    result = await session.execute(
        select(TeamInvite)
        .options(
            selectinload(TeamInvite.invitee),
            selectinload(TeamInvite.tournament),
            selectinload(TeamInvite.league),
        )
        .where(TeamInvite.inviter_id == user_id)
        .order_by(TeamInvite.created_at.desc(), TeamInvite.id.desc())
    )
    now = utcnow()
    return [
        {
            **_invite_to_dict(invite, now),
            "invitee": _user_summary(invite.invitee),
            "tournament": _event_summary(invite.tournament),
            "league": _event_summary(invite.league),
        }
        for invite in result.scalars().all()
    ]


async def list_received_invites(session: AsyncSession, user: Dict) -> List[Dict]:
    """Invites addressed to the user by id or by email, newest first."""
    conditions = [TeamInvite.invitee_user_id == user["id"]]
    if user.get("email"):
        conditions.append(func.lower(TeamInvite.invitee_email) == user["email"].lower())

    result = await session.execute(
        select(TeamInvite)
        .options(
            selectinload(TeamInvite.inviter),
            selectinload(TeamInvite.tournament),
            selectinload(TeamInvite.league),
        )
        .where(or_(*conditions))
        .order_by(TeamInvite.created_at.desc(), TeamInvite.id.desc())
    )
    now = utcnow()
    return [
        {
            **_invite_to_dict(invite, now),
            "inviter": _user_summary(invite.inviter),
            "tournament": _event_summary(invite.tournament),
            "league": _event_summary(invite.league),
        }
        for invite in result.scalars().all()
    ]
