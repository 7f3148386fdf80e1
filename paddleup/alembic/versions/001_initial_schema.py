"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Initial schema:
- users, user_ratings
- tournaments, tournament_registrations, tournament_registration_players
- leagues, league_seasons, league_participants, league_participant_players
- team_invites
- referral_codes, referral_conversions
- notifications
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EVENT_STATUSES = (
    "'draft', 'registration_open', 'registration_closed', 'in_progress', 'completed', 'cancelled'"
)
INVITE_STATUSES = "'pending', 'accepted', 'declined', 'cancelled', 'expired'"


def _timestamps(updated: bool = True):
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())
        )
    return cols


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("clerk_id", sa.String(255), nullable=True, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("skill_level", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("idx_users_clerk_id", "users", ["clerk_id"])
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "user_ratings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rating_type", sa.String(20), nullable=False),
        sa.Column("game_format", sa.String(20), nullable=False),
        sa.Column("rating", sa.Numeric(4, 2), nullable=False),
        sa.Column("games_played", sa.Integer(), server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "rating_type", "game_format", name="uq_user_ratings"),
    )
    op.create_index("idx_user_ratings_user", "user_ratings", ["user_id"])

    op.create_table(
        "tournaments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("registration_closes_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tournament_format", sa.String(30), nullable=False),
        sa.Column("game_format", sa.String(20), nullable=False),
        sa.Column("points_to_win", sa.Integer(), server_default="11"),
        sa.Column("win_by", sa.Integer(), server_default="2"),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        *_timestamps(),
        sa.CheckConstraint(f"status IN ({EVENT_STATUSES})", name="ck_tournaments_status"),
    )
    op.create_index("idx_tournaments_status", "tournaments", ["status"])
    op.create_index("idx_tournaments_organizer", "tournaments", ["organizer_id"])

    op.create_table(
        "tournament_registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "tournament_id",
            sa.Integer(),
            sa.ForeignKey("tournaments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("team_name", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="registered"),
        sa.Column("registered_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "idx_tournament_registrations_tournament", "tournament_registrations", ["tournament_id"]
    )

    op.create_table(
        "tournament_registration_players",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "registration_id",
            sa.Integer(),
            sa.ForeignKey("tournament_registrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_captain", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rating_at_registration", sa.Numeric(4, 2), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("registration_id", "user_id", name="uq_tournament_registration_players"),
    )
    op.create_index(
        "idx_tournament_registration_players_user", "tournament_registration_players", ["user_id"]
    )

    op.create_table(
        "leagues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("game_format", sa.String(20), nullable=False),
        sa.Column("rules", sa.Text(), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        *_timestamps(),
        sa.CheckConstraint(f"status IN ({EVENT_STATUSES})", name="ck_leagues_status"),
    )
    op.create_index("idx_leagues_status", "leagues", ["status"])
    op.create_index("idx_leagues_organizer", "leagues", ["organizer_id"])

    op.create_table(
        "league_seasons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("league_id", sa.Integer(), sa.ForeignKey("leagues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("season_number", sa.Integer(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("points_for_win", sa.Integer(), server_default="3"),
        sa.Column("points_for_draw", sa.Integer(), server_default="1"),
        sa.Column("points_for_loss", sa.Integer(), server_default="0"),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        *_timestamps(),
        sa.UniqueConstraint("league_id", "season_number", name="uq_league_seasons_number"),
        sa.CheckConstraint(f"status IN ({EVENT_STATUSES})", name="ck_league_seasons_status"),
    )
    op.create_index("idx_league_seasons_league", "league_seasons", ["league_id"])

    op.create_table(
        "league_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "season_id", sa.Integer(), sa.ForeignKey("league_seasons.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("team_name", sa.String(100), nullable=True),
        sa.Column("matches_played", sa.Integer(), server_default="0"),
        sa.Column("wins", sa.Integer(), server_default="0"),
        sa.Column("losses", sa.Integer(), server_default="0"),
        sa.Column("points", sa.Integer(), server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(updated=False),
    )
    op.create_index("idx_league_participants_season", "league_participants", ["season_id"])

    op.create_table(
        "league_participant_players",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "participant_id",
            sa.Integer(),
            sa.ForeignKey("league_participants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_captain", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rating_at_registration", sa.Numeric(4, 2), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("participant_id", "user_id", name="uq_league_participant_players"),
    )
    op.create_index(
        "idx_league_participant_players_user", "league_participant_players", ["user_id"]
    )

    op.create_table(
        "team_invites",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("invite_code", sa.String(50), nullable=False, unique=True),
        sa.Column(
            "tournament_id", sa.Integer(), sa.ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=True
        ),
        sa.Column("league_id", sa.Integer(), sa.ForeignKey("leagues.id", ondelete="CASCADE"), nullable=True),
        sa.Column("event_id", sa.String(64), nullable=True),
        sa.Column("inviter_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "invitee_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("invitee_email", sa.String(255), nullable=True),
        sa.Column(
            "responder_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("team_name", sa.String(100), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(tournament_id IS NULL) <> (league_id IS NULL)", name="ck_team_invites_one_target"
        ),
        sa.CheckConstraint(
            "(invitee_user_id IS NULL) <> (invitee_email IS NULL)", name="ck_team_invites_one_invitee"
        ),
        sa.CheckConstraint(f"status IN ({INVITE_STATUSES})", name="ck_team_invites_status"),
    )
    op.create_index("idx_team_invites_code", "team_invites", ["invite_code"], unique=True)
    op.create_index("idx_team_invites_inviter", "team_invites", ["inviter_id", "status"])
    op.create_index("idx_team_invites_invitee_user", "team_invites", ["invitee_user_id"])
    op.create_index("idx_team_invites_invitee_email", "team_invites", ["invitee_email"])

    op.create_table(
        "referral_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.String(20), nullable=False, unique=True),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="general"),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("uses_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
    )
    op.create_index(
        "idx_referral_codes_user", "referral_codes", ["user_id", "event_type", "event_id"]
    )

    op.create_table(
        "referral_conversions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "referral_code_id",
            sa.Integer(),
            sa.ForeignKey("referral_codes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "referred_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("conversion_type", sa.String(20), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("reward_applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
        sa.UniqueConstraint(
            "referral_code_id", "referred_user_id", name="uq_referral_conversions_code_user"
        ),
    )
    op.create_index("idx_referral_conversions_code", "referral_conversions", ["referral_code_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("action_url", sa.String(500), nullable=True),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "idx_notifications_user_unread", "notifications", ["user_id", "is_read", "created_at"]
    )
    op.create_index("idx_notifications_user_created", "notifications", ["user_id", "created_at"])


def downgrade() -> None:
    for table in (
        "notifications",
        "referral_conversions",
        "referral_codes",
        "team_invites",
        "league_participant_players",
        "league_participants",
        "league_seasons",
        "leagues",
        "tournament_registration_players",
        "tournament_registrations",
        "tournaments",
        "user_ratings",
        "users",
    ):
        op.drop_table(table)
