"""
Route tests with mocked authentication and services.
Checks status codes, error mapping and response shapes for the HTTP layer.
"""
import pytest
from fastapi.testclient import TestClient

from paddleup.api.main import app
from paddleup.services import (
    auth_service,
    user_service,
    invite_service,
    referral_service,
    tournament_service,
    league_service,
    notification_service,
)


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


def make_user_dict(user_id=1, email="test@example.com"):
    return {
        "id": user_id,
        "clerk_id": f"user_clerk_{user_id}",
        "email": email,
        "username": f"player{user_id}",
        "first_name": "Test",
        "last_name": "User",
        "display_name": "Test User",
        "avatar_url": None,
        "bio": None,
        "city": None,
        "state": None,
        "skill_level": None,
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }


def make_client_with_auth(monkeypatch, user_id=1):
    """Create a test client with mocked Clerk authentication."""
    def fake_verify_token(token):
        return {"sub": f"user_clerk_{user_id}"}

    async def fake_get_user_by_clerk_id(session, clerk_id):
        return make_user_dict(user_id)

    monkeypatch.setattr(auth_service, "verify_token", fake_verify_token, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_clerk_id", fake_get_user_by_clerk_id, raising=True)

    return TestClient(app), {"Authorization": "Bearer dummy"}


# ---------------------------------------------------------------------------
# Health / auth
# ---------------------------------------------------------------------------


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_protected_route_requires_token(client):
    response = client.get("/api/users/me")
    assert response.status_code == 401


def test_invalid_token_is_rejected(client, monkeypatch):
    monkeypatch.setattr(auth_service, "verify_token", lambda token: None, raising=True)
    response = client.get("/api/users/me", headers={"Authorization": "Bearer bad"})
    assert response.status_code == 401


def test_unknown_clerk_user_is_rejected(client, monkeypatch):
    async def no_user(session, clerk_id):
        return None

    monkeypatch.setattr(auth_service, "verify_token", lambda token: {"sub": "user_x"}, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_clerk_id", no_user, raising=True)
    response = client.get("/api/users/me", headers={"Authorization": "Bearer dummy"})
    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"


def test_get_me(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=3)
    response = client.get("/api/users/me", headers=headers)
    assert response.status_code == 200
    assert response.json()["username"] == "player3"


def test_sync_user_rejects_mismatched_clerk_id(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)
    response = client.post(
        "/api/auth/sync",
        json={"clerk_id": "user_someone_else", "email": "a@example.com", "first_name": "A", "last_name": "B"},
        headers=headers,
    )
    assert response.status_code == 403


def _fake_clerk_profile(email):
    async def fake_fetch(clerk_id):
        return {"email": email, "first_name": "", "last_name": "", "username": None, "avatar_url": None}
    return fake_fetch


def test_sync_user(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)
    captured = {}

    async def fake_sync(session, **kwargs):
        captured.update(kwargs)
        return make_user_dict(1, kwargs["email"]), True

    monkeypatch.setattr(auth_service, "fetch_clerk_user", _fake_clerk_profile("new@example.com"), raising=True)
    monkeypatch.setattr(user_service, "sync_user_from_clerk", fake_sync, raising=True)
    response = client.post(
        "/api/auth/sync",
        json={"clerk_id": "user_clerk_1", "email": "NEW@example.com", "first_name": "N", "last_name": "U"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["is_new_user"] is True
    assert captured["email"] == "new@example.com"
    assert captured["first_name"] == "N"


def test_sync_user_rejects_email_not_on_clerk_account(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)
    called = []

    async def fake_sync(session, **kwargs):
        called.append(kwargs)
        return make_user_dict(1), False

    monkeypatch.setattr(auth_service, "fetch_clerk_user", _fake_clerk_profile("mine@example.com"), raising=True)
    monkeypatch.setattr(user_service, "sync_user_from_clerk", fake_sync, raising=True)
    response = client.post(
        "/api/auth/sync",
        json={"clerk_id": "user_clerk_1", "email": "victim@example.com"},
        headers=headers,
    )
    assert response.status_code == 403
    assert called == []


def test_sync_user_uses_token_email_when_clerk_unavailable(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)
    monkeypatch.setattr(
        auth_service,
        "verify_token",
        lambda token: {"sub": "user_clerk_1", "email": "claim@example.com"},
        raising=True,
    )
    captured = {}

    async def fake_fetch(clerk_id):
        return None

    async def fake_sync(session, **kwargs):
        captured.update(kwargs)
        return make_user_dict(1, kwargs["email"]), False

    monkeypatch.setattr(auth_service, "fetch_clerk_user", fake_fetch, raising=True)
    monkeypatch.setattr(user_service, "sync_user_from_clerk", fake_sync, raising=True)
    response = client.post("/api/auth/sync", json={"clerk_id": "user_clerk_1"}, headers=headers)
    assert response.status_code == 200
    assert captured["email"] == "claim@example.com"


def test_sync_user_email_linked_elsewhere(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)

    async def fake_sync(session, **kwargs):
        raise user_service.EmailInUseError("Email is already linked to another account")

    monkeypatch.setattr(auth_service, "fetch_clerk_user", _fake_clerk_profile("taken@example.com"), raising=True)
    monkeypatch.setattr(user_service, "sync_user_from_clerk", fake_sync, raising=True)
    response = client.post("/api/auth/sync", json={"clerk_id": "user_clerk_1"}, headers=headers)
    assert response.status_code == 409


def test_sync_user_fills_missing_fields_from_clerk(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)
    captured = {}

    async def fake_fetch(clerk_id):
        return {
            "email": "clerk@example.com",
            "first_name": "Clerk",
            "last_name": "Kent",
            "username": None,
            "avatar_url": None,
        }

    async def fake_sync(session, **kwargs):
        captured.update(kwargs)
        return make_user_dict(1, kwargs["email"]), False

    monkeypatch.setattr(auth_service, "fetch_clerk_user", fake_fetch, raising=True)
    monkeypatch.setattr(user_service, "sync_user_from_clerk", fake_sync, raising=True)
    response = client.post("/api/auth/sync", json={"clerk_id": "user_clerk_1"}, headers=headers)
    assert response.status_code == 200
    assert captured["email"] == "clerk@example.com"
    assert captured["first_name"] == "Clerk"


def test_sync_user_without_any_email(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)

    async def fake_fetch(clerk_id):
        return None

    monkeypatch.setattr(auth_service, "fetch_clerk_user", fake_fetch, raising=True)
    response = client.post("/api/auth/sync", json={"clerk_id": "user_clerk_1"}, headers=headers)
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------


def test_create_invite(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_create(session, inviter, **kwargs):
        assert kwargs["tournament_id"] == 5
        assert kwargs["invitee_email"] == "pal@example.com"
        return {"id": 1, "invite_code": "abcdefabcdef", "status": "pending"}

    monkeypatch.setattr(invite_service, "create_invite", fake_create, raising=True)
    response = client.post(
        "/api/invites",
        json={"tournament_id": 5, "invitee_email": "pal@example.com"},
        headers=headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Invitation sent successfully"
    assert body["invite"]["invite_code"] == "abcdefabcdef"


@pytest.mark.parametrize(
    "payload",
    [
        {"invitee_user_id": 2},
        {"tournament_id": 1, "league_id": 2, "invitee_user_id": 2},
        {"tournament_id": 1},
        {"tournament_id": 1, "invitee_user_id": 2, "invitee_email": "x@example.com"},
        {"tournament_id": 1, "invitee_email": "not-an-email"},
    ],
)
def test_create_invite_bad_body(monkeypatch, payload):
    client, headers = make_client_with_auth(monkeypatch)
    response = client.post("/api/invites", json=payload, headers=headers)
    assert response.status_code == 400


@pytest.mark.parametrize(
    "error, status",
    [
        (invite_service.InviteNotFoundError("Invite not found"), 404),
        (invite_service.InviteForbiddenError("This invite is for a different user"), 403),
        (invite_service.InviteConflictError("Invite has already been accepted"), 409),
        (invite_service.InviteExpiredError("Invite has expired"), 400),
        (invite_service.NoActiveSeasonError("No active season found for this league"), 400),
        (tournament_service.RegistrationClosedError("Tournament registration is not open"), 400),
        (tournament_service.TournamentFullError("Tournament is full"), 409),
        (tournament_service.AlreadyRegisteredError("Player is already registered for this tournament"), 409),
        (league_service.SeasonFullError("This league season is full"), 409),
        (league_service.AlreadyInSeasonError("Player is already in this league season"), 409),
        (ValueError("You cannot respond to your own invite"), 400),
    ],
)
def test_accept_invite_error_mapping(monkeypatch, error, status):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_accept(session, code, user):
        raise error

    monkeypatch.setattr(invite_service, "accept_invite", fake_accept, raising=True)
    response = client.post("/api/invites/abcdefabcdef/accept", headers=headers)
    assert response.status_code == status
    assert response.json()["detail"] == str(error)


def test_accept_invite_unexpected_error(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_accept(session, code, user):
        raise RuntimeError("database went away")

    monkeypatch.setattr(invite_service, "accept_invite", fake_accept, raising=True)
    response = client.post("/api/invites/abcdefabcdef/accept", headers=headers)
    assert response.status_code == 500
    assert response.json()["detail"] == "Error accepting invite"


def test_get_invite_is_public(client, monkeypatch):
    async def fake_get(session, code):
        return {"invite_code": code, "status": "pending"}

    monkeypatch.setattr(invite_service, "get_invite", fake_get, raising=True)
    response = client.get("/api/invites/abcdefabcdef")
    assert response.status_code == 200
    assert response.json() == {"invite": {"invite_code": "abcdefabcdef", "status": "pending"}}


def test_get_invite_not_found(client, monkeypatch):
    async def fake_get(session, code):
        raise invite_service.InviteNotFoundError("Invite not found")

    monkeypatch.setattr(invite_service, "get_invite", fake_get, raising=True)
    assert client.get("/api/invites/abcdefabcdef").status_code == 404


def test_invite_code_length_is_validated(client):
    assert client.get("/api/invites/abc").status_code == 400


def test_my_invite_lists_are_not_codes(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=4)

    async def fake_sent(session, user_id):
        return [{"invite_code": "sentsentsent", "inviter_id": user_id}]

    async def fake_received(session, user):
        return [{"invite_code": "recvrecvrecv", "invitee_user_id": user["id"]}]

    monkeypatch.setattr(invite_service, "list_sent_invites", fake_sent, raising=True)
    monkeypatch.setattr(invite_service, "list_received_invites", fake_received, raising=True)

    sent = client.get("/api/invites/my/sent", headers=headers)
    received = client.get("/api/invites/my/received", headers=headers)
    assert sent.status_code == 200
    assert sent.json()["invites"][0]["inviter_id"] == 4
    assert received.json()["invites"][0]["invitee_user_id"] == 4


def test_decline_and_cancel_invite(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_decline(session, code, user):
        return {"message": "Invitation declined"}

    async def fake_cancel(session, code, user):
        raise invite_service.InviteForbiddenError("Only the inviter can cancel this invite")

    monkeypatch.setattr(invite_service, "decline_invite", fake_decline, raising=True)
    monkeypatch.setattr(invite_service, "cancel_invite", fake_cancel, raising=True)

    assert client.post("/api/invites/abcdefabcdef/decline", headers=headers).status_code == 200
    assert client.delete("/api/invites/abcdefabcdef", headers=headers).status_code == 403


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


def test_referral_code(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_code(session, user_id, event_type="general", event_id=None):
        return {"code": "ABCD2345", "event_type": event_type, "event_id": event_id}

    monkeypatch.setattr(referral_service, "get_or_create_code", fake_code, raising=True)
    response = client.get(
        "/api/referrals/code?event_type=tournament&event_id=9", headers=headers
    )
    assert response.status_code == 200
    assert response.json() == {"code": "ABCD2345", "event_type": "tournament", "event_id": 9}

    assert client.get("/api/referrals/code?event_type=party", headers=headers).status_code == 400


def test_referral_track_and_validate_are_public(client, monkeypatch):
    async def fake_track(session, code, event_type=None, event_id=None):
        return {"tracked": True, "event_type": event_type, "event_id": event_id}

    async def fake_validate(session, code):
        return {"valid": False}

    monkeypatch.setattr(referral_service, "track_referral", fake_track, raising=True)
    monkeypatch.setattr(referral_service, "validate_code", fake_validate, raising=True)

    tracked = client.post("/api/referrals/track", json={"referral_code": "ABCD2345", "event_type": "league"})
    assert tracked.status_code == 200
    assert tracked.json()["event_type"] == "league"

    assert client.get("/api/referrals/validate/ABCD2345").json() == {"valid": False}


@pytest.mark.parametrize(
    "error, status",
    [
        (referral_service.ReferralCodeNotFoundError("Invalid referral code"), 404),
        (referral_service.SelfReferralError("Cannot use your own referral code"), 400),
    ],
)
def test_referral_convert_errors(monkeypatch, error, status):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_convert(session, code, user, conversion_type, event_id=None):
        raise error

    monkeypatch.setattr(referral_service, "convert_referral", fake_convert, raising=True)
    response = client.post(
        "/api/referrals/convert",
        json={"referral_code": "ABCD2345", "conversion_type": "signup"},
        headers=headers,
    )
    assert response.status_code == status


def test_referral_convert_passes_plain_conversion_type(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_convert(session, code, user, conversion_type, event_id=None):
        assert conversion_type == "registration"
        return {"converted": True, "conversion_id": 1, "reward_awarded": False}

    monkeypatch.setattr(referral_service, "convert_referral", fake_convert, raising=True)
    response = client.post(
        "/api/referrals/convert",
        json={"referral_code": "ABCD2345", "conversion_type": "registration", "event_id": 3},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["converted"] is True


# ---------------------------------------------------------------------------
# Tournaments / leagues
# ---------------------------------------------------------------------------


def test_create_tournament_rejects_inverted_dates(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)
    response = client.post(
        "/api/tournaments",
        json={
            "name": "Backwards Open",
            "starts_at": "2026-06-02T09:00:00Z",
            "ends_at": "2026-06-01T09:00:00Z",
            "tournament_format": "round_robin",
            "game_format": "doubles",
        },
        headers=headers,
    )
    assert response.status_code == 400


def test_create_tournament(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=8)
    captured = {}

    async def fake_create(session, organizer_id, **kwargs):
        captured.update(kwargs, organizer_id=organizer_id)
        return {"id": 1, "name": kwargs["name"], "status": kwargs["status"]}

    monkeypatch.setattr(tournament_service, "create_tournament", fake_create, raising=True)
    response = client.post(
        "/api/tournaments",
        json={
            "name": "Harbor Open",
            "starts_at": "2026-06-01T09:00:00Z",
            "ends_at": "2026-06-02T18:00:00Z",
            "tournament_format": "pool_play",
            "game_format": "mixed_doubles",
        },
        headers=headers,
    )
    assert response.status_code == 201
    assert response.json()["status"] == "draft"
    assert captured["organizer_id"] == 8
    assert captured["tournament_format"] == "pool_play"


def test_get_tournament_not_found(client, monkeypatch):
    async def fake_get(session, id_or_slug):
        return None

    monkeypatch.setattr(tournament_service, "get_tournament", fake_get, raising=True)
    assert client.get("/api/tournaments/no-such-slug").status_code == 404


def test_update_tournament_requires_organizer(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=2)

    class FakeTournament:
        id = 1
        organizer_id = 99

    async def fake_model(session, id_or_slug):
        return FakeTournament()

    monkeypatch.setattr(tournament_service, "get_tournament_model", fake_model, raising=True)
    response = client.patch("/api/tournaments/1", json={"name": "Mine now"}, headers=headers)
    assert response.status_code == 403


@pytest.mark.parametrize(
    "error, status",
    [
        (tournament_service.TournamentNotFoundError("Tournament not found"), 404),
        (tournament_service.RegistrationClosedError("Tournament registration is not open"), 400),
        (tournament_service.TournamentFullError("Tournament is full"), 409),
        (tournament_service.AlreadyRegisteredError("Player is already registered"), 409),
    ],
)
def test_register_team_error_mapping(monkeypatch, error, status):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_register(session, tournament_id, user, team_name=None, partner_user_id=None):
        raise error

    monkeypatch.setattr(tournament_service, "register_team", fake_register, raising=True)
    response = client.post("/api/tournaments/1/registrations", json={}, headers=headers)
    assert response.status_code == status


@pytest.mark.parametrize(
    "error, status",
    [
        (league_service.LeagueNotFoundError("League not found"), 404),
        (league_service.NoActiveSeasonError("No active season found for this league"), 400),
        (league_service.AlreadyInSeasonError("You are already in this league season"), 409),
        (league_service.SeasonFullError("This league season is full"), 409),
    ],
)
def test_join_league_error_mapping(monkeypatch, error, status):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_join(session, league_id, user_id, team_name=None):
        raise error

    monkeypatch.setattr(league_service, "join_league", fake_join, raising=True)
    response = client.post("/api/leagues/1/join", headers=headers)
    assert response.status_code == status


# ---------------------------------------------------------------------------
# Round robin
# ---------------------------------------------------------------------------


def test_round_robin_singles(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)
    response = client.post(
        "/api/games/round-robin",
        json={
            "format": "singles",
            "players": [{"id": i, "name": f"P{i}"} for i in range(1, 6)],
            "number_of_courts": 1,
        },
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["round_count"] == 5
    assert len(body["matches"]) == 10
    # Numeric ids come back as strings
    assert {body["matches"][0]["player1"]["id"], body["matches"][0]["player2"]["id"]} <= {
        str(i) for i in range(1, 6)
    }
    # Byes are keyed by round; each player sits out exactly once
    sitting_out = [pid for round_byes in body["byes"].values() for pid in round_byes]
    assert sorted(sitting_out) == ["1", "2", "3", "4", "5"]


def test_round_robin_requires_players_for_format(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)
    response = client.post("/api/games/round-robin", json={"format": "teams"}, headers=headers)
    assert response.status_code == 400
    response = client.post("/api/games/round-robin", json={"format": "quads", "players": []}, headers=headers)
    assert response.status_code == 400


def test_round_robin_duplicate_ids(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)
    response = client.post(
        "/api/games/round-robin",
        json={"format": "singles", "players": [{"id": "a", "name": "A"}, {"id": "a", "name": "B"}]},
        headers=headers,
    )
    assert response.status_code == 400


def test_round_robin_standings(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)
    teams = [
        {"id": "t1", "player1": {"id": "a", "name": "A"}, "player2": {"id": "b", "name": "B"}},
        {"id": "t2", "player1": {"id": "c", "name": "C"}, "player2": {"id": "d", "name": "D"}},
    ]
    response = client.post(
        "/api/games/round-robin/standings",
        json={
            "teams": teams,
            "matches": [
                {"round": 1, "team1": teams[0], "team2": teams[1], "score": {"team1": 11, "team2": 7}, "completed": True}
            ],
        },
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["is_complete"] is True
    assert body["completed_matches"] == 1
    assert body["standings"][0]["team_id"] == "t1"
    assert body["standings"][0]["team_name"] == "A & B"


@pytest.mark.parametrize(
    "match",
    [
        {"team1": {"name": "x"}, "team2": {"id": "t2"}, "score": {"team1": 11, "team2": 7}, "completed": True},
        {"team1": {"id": "t1"}, "team2": {"id": "t2"}, "score": {"team1": 11}, "completed": True},
        {"team1": {"id": "t1"}, "team2": {"id": "t2"}, "score": {"team1": "eleven", "team2": 7}, "completed": True},
    ],
)
def test_round_robin_standings_bad_match(monkeypatch, match):
    client, headers = make_client_with_auth(monkeypatch)
    teams = [
        {"id": "t1", "player1": {"id": "a", "name": "A"}, "player2": {"id": "b", "name": "B"}},
        {"id": "t2", "player1": {"id": "c", "name": "C"}, "player2": {"id": "d", "name": "D"}},
    ]
    response = client.post(
        "/api/games/round-robin/standings",
        json={"teams": teams, "matches": [match]},
        headers=headers,
    )
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def test_get_notifications(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch, user_id=1)

    async def fake_get_user_notifications(session, user_id, limit=50, offset=0, unread_only=False):
        return {
            "notifications": [
                {
                    "id": 1,
                    "user_id": user_id,
                    "type": "game_invite",
                    "title": "Team Invitation",
                    "message": "You have been invited",
                    "data": {"invite_code": "abcdefabcdef"},
                    "action_url": "/invite/abcdefabcdef",
                    "reference_type": "team_invite",
                    "reference_id": 1,
                    "is_read": False,
                    "read_at": None,
                    "created_at": "2026-01-01T00:00:00+00:00",
                }
            ],
            "total_count": 1,
            "has_more": False,
        }

    monkeypatch.setattr(
        notification_service, "get_user_notifications", fake_get_user_notifications, raising=True
    )
    response = client.get("/api/notifications?limit=10", headers=headers)
    assert response.status_code == 200
    assert response.json()["notifications"][0]["action_url"] == "/invite/abcdefabcdef"


def test_mark_notification_read_not_found(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_mark(session, notification_id, user_id):
        raise ValueError("Notification not found or access denied")

    monkeypatch.setattr(notification_service, "mark_as_read", fake_mark, raising=True)
    response = client.put("/api/notifications/5/read", headers=headers)
    assert response.status_code == 404
