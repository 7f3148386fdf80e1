"""
Authentication dependencies for FastAPI routes.

Bearer tokens are Clerk session JWTs; the ``sub`` claim is the Clerk user id,
which is mapped to the local user record.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from paddleup.services import auth_service, user_service, tournament_service, league_service
from paddleup.database.db import get_db_session

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Dependency returning the verified Clerk token claims.

    Used where the caller may not have a local user yet (the sync endpoint).

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise _unauthorized("Authentication required")

    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid authentication token")
    if not payload.get("sub"):
        raise _unauthorized("Invalid token payload")
    return payload


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    claims: dict = Depends(get_token_claims),
) -> dict:
    """
    Dependency to get the current authenticated user from the Clerk token.

    Args:
        session: Database session
        claims: Verified token claims

    Returns:
        User dictionary

    Raises:
        HTTPException: 401 if the token is invalid or no local user exists
    """
    user = await user_service.get_user_by_clerk_id(session, claims["sub"])
    if user is None:
        raise _unauthorized("User not found")
    return user


async def get_current_user_optional(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[dict]:
    """
    Optional dependency to get the current authenticated user.
    Returns None if no token is provided or token is invalid.
    """
    if credentials is None:
        return None

    try:
        claims = await get_token_claims(credentials)
        return await get_current_user(session, claims)
    except HTTPException:
        return None


def make_require_tournament_organizer():
    """Require the caller to organize the tournament named by the path."""

    async def _dep(
        tournament_id: str,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        tournament = await tournament_service.get_tournament_model(session, tournament_id)
        if tournament is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tournament not found")
        if tournament.organizer_id != user["id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Tournament organizer access required"
            )
        return user

    return _dep


def make_require_league_organizer():
    """Require the caller to organize the league named by the path."""

    async def _dep(
        league_id: str,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        league = await league_service.get_league_model(session, league_id)
        if league is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="League not found")
        if league.organizer_id != user["id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="League organizer access required"
            )
        return user

    return _dep
