"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, ConfigDict, model_validator

from paddleup.database.models import (
    SkillLevel,
    GameFormat,
    TournamentFormat,
    EventStatus,
    ReferralEventType,
    ConversionType,
)
from paddleup.utils.datetime_utils import as_utc

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# --- Users / auth ---


class SyncUserRequest(BaseModel):
    """Profile pushed by the frontend after a Clerk sign-in."""

    clerk_id: str = Field(..., min_length=1)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    username: Optional[str] = Field(None, max_length=50)
    display_name: Optional[str] = Field(None, max_length=100)
    avatar_url: Optional[str] = Field(None, max_length=500)


class UpdateProfileRequest(BaseModel):
    """Request to update the current user's profile."""

    model_config = ConfigDict(use_enum_values=True)

    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    display_name: Optional[str] = Field(None, max_length=100)
    avatar_url: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = Field(None, max_length=1000)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    skill_level: Optional[SkillLevel] = None


class UserResponse(BaseModel):
    """User profile as returned by the API."""

    id: int
    clerk_id: Optional[str] = None
    email: str
    username: str
    first_name: str
    last_name: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    skill_level: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PublicUserResponse(BaseModel):
    """User profile visible to other users (no email or Clerk id)."""

    id: int
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    skill_level: Optional[str] = None


# --- Tournaments ---


class CreateTournamentRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    registration_closes_at: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=2)
    tournament_format: TournamentFormat
    game_format: GameFormat
    points_to_win: int = Field(11, ge=1, le=50)
    win_by: int = Field(2, ge=1, le=5)
    status: EventStatus = EventStatus.DRAFT.value

    @model_validator(mode="after")
    def validate_dates(self):
        """Ensure the tournament does not end before it starts."""
        if as_utc(self.ends_at) < as_utc(self.starts_at):
            raise ValueError("ends_at must be on or after starts_at")
        return self


class UpdateTournamentRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    model_config = ConfigDict(use_enum_values=True)

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    registration_closes_at: Optional[datetime] = None
    max_participants: Optional[int] = Field(None, ge=2)
    tournament_format: Optional[TournamentFormat] = None
    game_format: Optional[GameFormat] = None
    points_to_win: Optional[int] = Field(None, ge=1, le=50)
    win_by: Optional[int] = Field(None, ge=1, le=5)
    status: Optional[EventStatus] = None


class RegisterTeamRequest(BaseModel):
    team_name: Optional[str] = Field(None, max_length=100)
    partner_user_id: Optional[int] = None


# --- Leagues ---


class CreateLeagueRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    game_format: GameFormat
    rules: Optional[str] = None
    status: EventStatus = EventStatus.DRAFT.value


class UpdateLeagueRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    game_format: Optional[GameFormat] = None
    rules: Optional[str] = None
    status: Optional[EventStatus] = None


class CreateSeasonRequest(BaseModel):
    """Request to add the next season to a league."""

    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=100)
    starts_at: datetime
    ends_at: datetime
    max_participants: Optional[int] = Field(None, ge=2)
    points_for_win: int = 3
    points_for_draw: int = 1
    points_for_loss: int = 0
    status: EventStatus = EventStatus.DRAFT.value

    @model_validator(mode="after")
    def validate_dates(self):
        if as_utc(self.ends_at) < as_utc(self.starts_at):
            raise ValueError("ends_at must be on or after starts_at")
        return self


class JoinLeagueRequest(BaseModel):
    team_name: Optional[str] = Field(None, max_length=100)


# --- Team invites ---


class CreateInviteRequest(BaseModel):
    """
    Request to invite a partner.

    Exactly one of tournament_id / league_id and exactly one of
    invitee_user_id / invitee_email must be given.
    """

    tournament_id: Optional[int] = None
    league_id: Optional[int] = None
    event_id: Optional[str] = Field(None, max_length=64)
    invitee_user_id: Optional[int] = None
    invitee_email: Optional[str] = Field(None, pattern=EMAIL_PATTERN, max_length=255)
    team_name: Optional[str] = Field(None, min_length=1, max_length=100)
    message: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_targets(self):
        """Ensure exactly one event and exactly one invitee."""
        if (self.tournament_id is None) == (self.league_id is None):
            raise ValueError("Provide exactly one of tournament_id or league_id")
        if (self.invitee_user_id is None) == (self.invitee_email is None):
            raise ValueError("Provide exactly one of invitee_user_id or invitee_email")
        return self


# --- Referrals ---


class TrackReferralRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    referral_code: str = Field(..., min_length=1, max_length=20)
    event_type: Optional[ReferralEventType] = None
    event_id: Optional[int] = None


class ConvertReferralRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    referral_code: str = Field(..., min_length=1, max_length=20)
    conversion_type: ConversionType
    event_id: Optional[int] = None


# --- Round robin ---


class RoundRobinPlayer(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1)
    name: str


class RoundRobinTeam(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    player1: RoundRobinPlayer
    player2: RoundRobinPlayer


class RoundRobinRequest(BaseModel):
    """
    Request to generate a round robin schedule.

    singles and doubles take players; teams takes set-partner teams.
    """

    format: Literal["singles", "doubles", "teams"]
    players: Optional[List[RoundRobinPlayer]] = None
    teams: Optional[List[RoundRobinTeam]] = None
    max_rounds: Optional[int] = Field(None, ge=1, le=100)
    number_of_courts: Optional[int] = Field(None, ge=1, le=64)

    @model_validator(mode="after")
    def validate_participants(self):
        if self.format == "teams":
            if self.teams is None:
                raise ValueError("teams is required for the teams format")
        elif self.players is None:
            raise ValueError(f"players is required for the {self.format} format")
        return self


class ScoredTeam(BaseModel):
    """One side of a scored match; only the id is needed for standings."""

    model_config = ConfigDict(coerce_numbers_to_str=True, extra="allow")

    id: str = Field(..., min_length=1)
    name: Optional[str] = None


class MatchScore(BaseModel):
    team1: int = Field(..., ge=0)
    team2: int = Field(..., ge=0)


class ScoredMatch(BaseModel):
    """A team match with its score, as sent back for standings."""

    id: Optional[str] = None
    round: int = 1
    team1: Optional[ScoredTeam] = None
    team2: Optional[ScoredTeam] = None
    score: MatchScore = Field(default_factory=lambda: MatchScore(team1=0, team2=0))
    completed: bool = False


class StandingsRequest(BaseModel):
    teams: List[RoundRobinTeam]
    matches: List[ScoredMatch]


# --- Notifications ---


class NotificationResponse(BaseModel):
    """Notification as returned by the API."""

    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    action_url: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    is_read: bool
    read_at: Optional[str] = None
    created_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Paginated notifications."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    count: int
