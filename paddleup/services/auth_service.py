"""
Clerk authentication helpers.

Session tokens issued by Clerk are RS256 JWTs. They are verified locally,
either with the PEM public key from CLERK_JWT_KEY or with the signing keys
published at CLERK_JWKS_URL. The Clerk Backend API is only called to pull a
profile when a user is synced for the first time.
"""

import logging
import os
from typing import Optional, Dict

import httpx
import jwt
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

CLERK_API_URL = os.getenv("CLERK_API_URL", "https://api.clerk.com/v1")
CLERK_JWKS_URL = os.getenv("CLERK_JWKS_URL", "")
CLERK_JWT_ISSUER = os.getenv("CLERK_JWT_ISSUER", "")
CLERK_ALGORITHMS = ["RS256"]

_jwks_client: Optional[jwt.PyJWKClient] = None


def _get_jwks_client() -> Optional[jwt.PyJWKClient]:
    """Lazily build the JWKS client (it caches fetched keys)."""
    global _jwks_client
    if _jwks_client is None and CLERK_JWKS_URL:
        _jwks_client = jwt.PyJWKClient(CLERK_JWKS_URL, cache_keys=True)
    return _jwks_client


def _get_signing_key(token: str):
    """Resolve the key used to verify a token, or None if none is configured."""
    pem_key = os.getenv("CLERK_JWT_KEY")
    if pem_key:
        return pem_key.replace("\\n", "\n")
    client = _get_jwks_client()
    if client is None:
        return None
    return client.get_signing_key_from_jwt(token).key


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify a Clerk session token.

    Args:
        token: Raw bearer token

    Returns:
        Decoded claims (``sub`` is the Clerk user id) or None if the token is
        invalid, expired, or no verification key is configured.
    """
    try:
        key = _get_signing_key(token)
        if key is None:
            logger.error("Neither CLERK_JWT_KEY nor CLERK_JWKS_URL is configured")
            return None
        options = {"require": ["exp", "sub"]}
        kwargs = {"issuer": CLERK_JWT_ISSUER} if CLERK_JWT_ISSUER else {}
        return jwt.decode(token, key, algorithms=CLERK_ALGORITHMS, options=options, **kwargs)
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired session token")
        return None
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected session token: {e}")
        return None


async def fetch_clerk_user(clerk_id: str) -> Optional[Dict]:
    """
    Fetch a user's profile from the Clerk Backend API.

    Args:
        clerk_id: Clerk user id (the token's ``sub`` claim)

    Returns:
        Dict with email, first_name, last_name, username and avatar_url, or
        None if the secret key is missing or the request fails.
    """
    secret_key = os.getenv("CLERK_SECRET_KEY")
    if not secret_key:
        logger.warning("CLERK_SECRET_KEY not set, skipping Clerk profile fetch")
        return None

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(
                f"{CLERK_API_URL}/users/{clerk_id}",
                headers={"Authorization": f"Bearer {secret_key}"},
            )
            resp.raise_for_status()
            data = resp.json()
    except Exception:
        logger.warning("Clerk profile fetch failed for user: %s", clerk_id, exc_info=True)
        return None

    primary_id = data.get("primary_email_address_id")
    emails = data.get("email_addresses") or []
    email = next(
        (e.get("email_address") for e in emails if e.get("id") == primary_id),
        emails[0].get("email_address") if emails else None,
    )
    return {
        "email": email,
        "first_name": data.get("first_name") or "",
        "last_name": data.get("last_name") or "",
        "username": data.get("username"),
        "avatar_url": data.get("image_url"),
    }
