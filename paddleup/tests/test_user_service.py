"""
Tests for user sync from Clerk, profile updates and ratings.
"""

import pytest

from paddleup.services import user_service

from conftest import make_user, add_rating


@pytest.mark.asyncio
async def test_sync_creates_then_updates(db_session):
    user, is_new = await user_service.sync_user_from_clerk(
        db_session, "user_1", "Pat@Example.com", "Pat", "Smith", username="pat.dinks"
    )
    assert is_new is True
    assert user["email"] == "pat@example.com"
    assert user["username"] == "patdinks"
    assert user["display_name"] == "Pat Smith"

    again, is_new = await user_service.sync_user_from_clerk(
        db_session, "user_1", "pat@example.com", "Patricia", "Smith"
    )
    assert is_new is False
    assert again["id"] == user["id"]
    assert again["first_name"] == "Patricia"
    # Display name is kept unless a new one is provided
    assert again["display_name"] == "Pat Smith"


@pytest.mark.asyncio
async def test_sync_adopts_existing_account_by_email(db_session):
    existing = await make_user(db_session, "legacy", email="legacy@example.com", clerk_id=None)
    user, is_new = await user_service.sync_user_from_clerk(
        db_session, "user_9", "LEGACY@example.com", "Lee", "Gacy"
    )
    assert is_new is False
    assert user["id"] == existing.id
    assert user["clerk_id"] == "user_9"


@pytest.mark.asyncio
async def test_sync_never_adopts_linked_account(db_session):
    victim = await make_user(db_session, "victim", clerk_id="clerk_victim")

    with pytest.raises(user_service.EmailInUseError):
        await user_service.sync_user_from_clerk(
            db_session, "clerk_attacker", "Victim@example.com", "Eve", "Il"
        )

    await db_session.refresh(victim)
    assert victim.clerk_id == "clerk_victim"
    assert victim.first_name != "Eve"
    assert await user_service.get_user_by_clerk_id(db_session, "clerk_attacker") is None


@pytest.mark.asyncio
async def test_sync_cannot_move_onto_another_accounts_email(db_session):
    await make_user(db_session, "victim", clerk_id="clerk_victim")
    mallory, _ = await user_service.sync_user_from_clerk(
        db_session, "clerk_mallory", "mallory@example.com", "Mal", "Lory"
    )

    with pytest.raises(user_service.EmailInUseError):
        await user_service.sync_user_from_clerk(
            db_session, "clerk_mallory", "victim@example.com", "Mal", "Lory"
        )

    # Changing to a free address still works
    moved, is_new = await user_service.sync_user_from_clerk(
        db_session, "clerk_mallory", "mal@example.com", "Mal", "Lory"
    )
    assert is_new is False
    assert moved["id"] == mallory["id"]
    assert moved["email"] == "mal@example.com"


@pytest.mark.asyncio
async def test_sync_picks_free_username(db_session):
    await make_user(db_session, "sam")
    user, _ = await user_service.sync_user_from_clerk(
        db_session, "user_2", "sam@other.com", "Sam", "Two", username="sam"
    )
    assert user["username"] == "sam2"

    # Falls back to the email local part
    other, _ = await user_service.sync_user_from_clerk(
        db_session, "user_3", "rally.queen@example.com", "R", "Q"
    )
    assert other["username"] == "rallyqueen"


@pytest.mark.asyncio
async def test_lookups(db_session):
    user = await make_user(db_session, "alice")
    assert (await user_service.get_user_by_id(db_session, user.id))["username"] == "alice"
    assert (await user_service.get_user_by_clerk_id(db_session, "user_alice"))["id"] == user.id
    assert (await user_service.get_user_by_email(db_session, " ALICE@example.com"))["id"] == user.id
    assert await user_service.get_user_by_id(db_session, 9999) is None
    assert await user_service.get_user_by_clerk_id(db_session, "user_nobody") is None


@pytest.mark.asyncio
async def test_update_profile_ignores_protected_fields(db_session):
    user = await make_user(db_session, "alice")
    updated = await user_service.update_profile(
        db_session, user.id, bio="Third shot drop fan", city="Austin", email="hijack@example.com"
    )
    assert updated["bio"] == "Third shot drop fan"
    assert updated["city"] == "Austin"
    assert updated["email"] == "alice@example.com"

    with pytest.raises(ValueError, match="User not found"):
        await user_service.update_profile(db_session, 9999, bio="x")


@pytest.mark.asyncio
async def test_get_user_rating_prefers_format(db_session):
    user = await make_user(db_session, "alice")
    assert await user_service.get_user_rating(db_session, user.id) is None

    await add_rating(db_session, user, "3.75", game_format="singles")
    await add_rating(db_session, user, "4.10", game_format="doubles")

    doubles = await user_service.get_user_rating(db_session, user.id, "doubles")
    assert str(doubles["rating"]) == "4.10"
    assert doubles["game_format"] == "doubles"

    # No mixed rating: first available one is used
    fallback = await user_service.get_user_rating(db_session, user.id, "mixed_doubles")
    assert fallback["game_format"] == "singles"


def test_display_name_of():
    assert user_service.display_name_of({"display_name": "Ace", "username": "a"}) == "Ace"
    assert user_service.display_name_of({"display_name": None, "username": "a"}) == "a"
    assert user_service.display_name_of({}) == "Someone"
