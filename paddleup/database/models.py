"""
SQLAlchemy ORM models for the PaddleUp pickleball community API.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Numeric,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from paddleup.database.db import Base


class SkillLevel(str, enum.Enum):
    """Self-reported skill level."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"
    PRO = "pro"


class GameFormat(str, enum.Enum):
    """Game format enum."""

    SINGLES = "singles"
    DOUBLES = "doubles"
    MIXED_DOUBLES = "mixed_doubles"


class RatingType(str, enum.Enum):
    """Where a rating came from."""

    DUPR = "dupr"
    INTERNAL = "internal"
    SELF_REPORTED = "self_reported"


class EventStatus(str, enum.Enum):
    """Status shared by tournaments, leagues and league seasons."""

    DRAFT = "draft"
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TournamentFormat(str, enum.Enum):
    """Tournament bracket format."""

    SINGLE_ELIMINATION = "single_elimination"
    DOUBLE_ELIMINATION = "double_elimination"
    ROUND_ROBIN = "round_robin"
    POOL_PLAY = "pool_play"
    SWISS = "swiss"


class RegistrationStatus(str, enum.Enum):
    """Tournament registration status."""

    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    CONFIRMED = "confirmed"
    WITHDRAWN = "withdrawn"
    DISQUALIFIED = "disqualified"


class ParticipantStatus(str, enum.Enum):
    """League participant status."""

    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    DISQUALIFIED = "disqualified"


class TeamInviteStatus(str, enum.Enum):
    """Team invite status enum.

    EXPIRED is only written when an accept/decline attempt hits an invite
    past its expiry; reads derive it from expires_at.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ReferralEventType(str, enum.Enum):
    """Scope of a referral code."""

    GENERAL = "general"
    TOURNAMENT = "tournament"
    LEAGUE = "league"


class ConversionType(str, enum.Enum):
    """Referred action that counts as a conversion."""

    SIGNUP = "signup"
    REGISTRATION = "registration"
    PURCHASE = "purchase"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    GAME_INVITE = "game_invite"
    TOURNAMENT_REGISTRATION = "tournament_registration"
    LEAGUE_UPDATE = "league_update"
    ACHIEVEMENT_EARNED = "achievement_earned"
    SYSTEM = "system"


def _enum_check(column: str, enum_cls, name: str) -> CheckConstraint:
    """Build a CHECK constraint restricting a string column to enum values."""
    return CheckConstraint(
        f"{column} IN ({', '.join(repr(e.value) for e in enum_cls)})",
        name=name,
    )


class User(Base):
    """User accounts synced from Clerk."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    clerk_id = Column(String(255), nullable=True, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    username = Column(String(50), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    display_name = Column(String(100), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    skill_level = Column(String(20), nullable=True)  # SkillLevel enum value
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    ratings = relationship("UserRating", back_populates="user", cascade="all, delete-orphan")
    referral_codes = relationship(
        "ReferralCode", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_users_clerk_id", "clerk_id"),
        Index("idx_users_email", "email"),
    )


class UserRating(Base):
    """Current rating per user, rating source and game format."""

    __tablename__ = "user_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating_type = Column(String(20), nullable=False)  # RatingType enum value
    game_format = Column(String(20), nullable=False)  # GameFormat enum value
    rating = Column(Numeric(4, 2), nullable=False)
    games_played = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="ratings")

    __table_args__ = (
        UniqueConstraint("user_id", "rating_type", "game_format", name="uq_user_ratings"),
        Index("idx_user_ratings_user", "user_id"),
    )


class Tournament(Base):
    """Tournaments run by an organizer."""

    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    registration_closes_at = Column(DateTime(timezone=True), nullable=True)
    max_participants = Column(Integer, nullable=True)
    current_participants = Column(Integer, default=0, nullable=False)
    tournament_format = Column(String(30), nullable=False)  # TournamentFormat enum value
    game_format = Column(String(20), nullable=False)  # GameFormat enum value
    points_to_win = Column(Integer, default=11)
    win_by = Column(Integer, default=2)
    status = Column(
        String(30),
        default=EventStatus.DRAFT.value,
        nullable=False,
        server_default=EventStatus.DRAFT.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    organizer = relationship("User", foreign_keys=[organizer_id])
    registrations = relationship(
        "TournamentRegistration", back_populates="tournament", cascade="all, delete-orphan"
    )

    __table_args__ = (
        _enum_check("status", EventStatus, "ck_tournaments_status"),
        Index("idx_tournaments_status", "status"),
        Index("idx_tournaments_organizer", "organizer_id"),
    )


class TournamentRegistration(Base):
    """A team (or single player) entered into a tournament."""

    __tablename__ = "tournament_registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    team_name = Column(String(100), nullable=True)
    status = Column(String(20), default=RegistrationStatus.REGISTERED.value, nullable=False)
    registered_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    tournament = relationship("Tournament", back_populates="registrations")
    players = relationship(
        "TournamentRegistrationPlayer", back_populates="registration", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_tournament_registrations_tournament", "tournament_id"),)


class TournamentRegistrationPlayer(Base):
    """Join table (TournamentRegistration ↔ User)."""

    __tablename__ = "tournament_registration_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registration_id = Column(
        Integer, ForeignKey("tournament_registrations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_captain = Column(Boolean, default=False, nullable=False)
    rating_at_registration = Column(Numeric(4, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    registration = relationship("TournamentRegistration", back_populates="players")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("registration_id", "user_id", name="uq_tournament_registration_players"),
        Index("idx_tournament_registration_players_user", "user_id"),
    )


class League(Base):
    """Leagues run by an organizer across one or more seasons."""

    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    game_format = Column(String(20), nullable=False)  # GameFormat enum value
    rules = Column(Text, nullable=True)
    status = Column(
        String(30),
        default=EventStatus.DRAFT.value,
        nullable=False,
        server_default=EventStatus.DRAFT.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    organizer = relationship("User", foreign_keys=[organizer_id])
    seasons = relationship("LeagueSeason", back_populates="league", cascade="all, delete-orphan")

    __table_args__ = (
        _enum_check("status", EventStatus, "ck_leagues_status"),
        Index("idx_leagues_status", "status"),
        Index("idx_leagues_organizer", "organizer_id"),
    )


class LeagueSeason(Base):
    """Seasons within leagues."""

    __tablename__ = "league_seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    season_number = Column(Integer, nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    max_participants = Column(Integer, nullable=True)
    points_for_win = Column(Integer, default=3)
    points_for_draw = Column(Integer, default=1)
    points_for_loss = Column(Integer, default=0)
    status = Column(String(30), default=EventStatus.DRAFT.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    league = relationship("League", back_populates="seasons")
    participants = relationship(
        "LeagueParticipant", back_populates="season", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("league_id", "season_number", name="uq_league_seasons_number"),
        _enum_check("status", EventStatus, "ck_league_seasons_status"),
        Index("idx_league_seasons_league", "league_id"),
    )


class LeagueParticipant(Base):
    """A team (or single player) playing in a league season."""

    __tablename__ = "league_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_id = Column(
        Integer, ForeignKey("league_seasons.id", ondelete="CASCADE"), nullable=False
    )
    team_name = Column(String(100), nullable=True)
    matches_played = Column(Integer, default=0)
    wins = Column(Integer, default=0)
    losses = Column(Integer, default=0)
    points = Column(Integer, default=0)
    status = Column(String(20), default=ParticipantStatus.ACTIVE.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    season = relationship("LeagueSeason", back_populates="participants")
    players = relationship(
        "LeagueParticipantPlayer", back_populates="participant", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_league_participants_season", "season_id"),)


class LeagueParticipantPlayer(Base):
    """Join table (LeagueParticipant ↔ User)."""

    __tablename__ = "league_participant_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(
        Integer, ForeignKey("league_participants.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_captain = Column(Boolean, default=False, nullable=False)
    rating_at_registration = Column(Numeric(4, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    participant = relationship("LeagueParticipant", back_populates="players")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("participant_id", "user_id", name="uq_league_participant_players"),
        Index("idx_league_participant_players_user", "user_id"),
    )


class TeamInvite(Base):
    """Invitation to partner on a tournament or league entry.

    Targets exactly one event (tournament XOR league) and exactly one invitee
    (user id XOR email). Status transitions: pending → accepted / declined /
    cancelled, or pending → expired on a late accept/decline.
    """

    __tablename__ = "team_invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invite_code = Column(String(50), nullable=False, unique=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=True
    )
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="CASCADE"), nullable=True)
    event_id = Column(String(64), nullable=True)  # Optional division/event within the target
    inviter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    invitee_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    invitee_email = Column(String(255), nullable=True)
    responder_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )  # User who accepted or declined
    team_name = Column(String(100), nullable=True)
    message = Column(Text, nullable=True)
    status = Column(
        String(20),
        default=TeamInviteStatus.PENDING.value,
        nullable=False,
        server_default=TeamInviteStatus.PENDING.value,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    inviter = relationship("User", foreign_keys=[inviter_id])
    invitee = relationship("User", foreign_keys=[invitee_user_id])
    tournament = relationship("Tournament")
    league = relationship("League")

    __table_args__ = (
        CheckConstraint(
            "(tournament_id IS NULL) <> (league_id IS NULL)", name="ck_team_invites_one_target"
        ),
        CheckConstraint(
            "(invitee_user_id IS NULL) <> (invitee_email IS NULL)",
            name="ck_team_invites_one_invitee",
        ),
        _enum_check("status", TeamInviteStatus, "ck_team_invites_status"),
        Index("idx_team_invites_code", "invite_code", unique=True),
        Index("idx_team_invites_inviter", "inviter_id", "status"),
        Index("idx_team_invites_invitee_user", "invitee_user_id"),
        Index("idx_team_invites_invitee_email", "invitee_email"),
    )


class ReferralCode(Base):
    """Per-user referral code, optionally scoped to one event."""

    __tablename__ = "referral_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    code = Column(String(20), nullable=False, unique=True)
    event_type = Column(
        String(20), default=ReferralEventType.GENERAL.value, nullable=False
    )  # ReferralEventType enum value
    event_id = Column(Integer, nullable=True)
    uses_count = Column(Integer, default=0, nullable=False)
    max_uses = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="referral_codes")
    conversions = relationship(
        "ReferralConversion", back_populates="referral_code", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_referral_codes_user", "user_id", "event_type", "event_id"),
    )


class ReferralConversion(Base):
    """One row per referred user per code (signup, registration or purchase)."""

    __tablename__ = "referral_conversions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    referral_code_id = Column(
        Integer, ForeignKey("referral_codes.id", ondelete="CASCADE"), nullable=False
    )
    referred_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    conversion_type = Column(String(20), nullable=False)  # ConversionType enum value
    event_id = Column(Integer, nullable=True)
    reward_applied = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    referral_code = relationship("ReferralCode", back_populates="conversions")
    referred_user = relationship("User")

    __table_args__ = (
        UniqueConstraint(
            "referral_code_id", "referred_user_id", name="uq_referral_conversions_code_user"
        ),
        Index("idx_referral_conversions_code", "referral_code_id"),
    )


class Notification(Base):
    """User notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(40), nullable=False)  # NotificationType enum value
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(
        Text, nullable=True
    )  # JSON string for flexible metadata (invite_code, reward, etc.)
    action_url = Column(String(500), nullable=True)  # Navigation target
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", backref="notifications")

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )
