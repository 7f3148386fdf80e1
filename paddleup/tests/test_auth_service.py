"""
Unit tests for authentication service.
Tests Clerk session token verification and the Clerk profile fetch.
"""
import pytest
import httpx
import jwt
from datetime import datetime, timedelta, timezone
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from paddleup.services import auth_service


def _keypair():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_key, public_pem


@pytest.fixture(scope="module")
def keys():
    return _keypair()


def _token(private_key, **overrides):
    claims = {
        "sub": "user_2abc",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        "iat": datetime.now(timezone.utc),
    }
    claims.update(overrides)
    return jwt.encode(claims, private_key, algorithm="RS256")


class TestVerifyToken:
    """Tests for Clerk session token verification."""

    def test_valid_token(self, keys, monkeypatch):
        private_key, public_pem = keys
        monkeypatch.setenv("CLERK_JWT_KEY", public_pem)
        payload = auth_service.verify_token(_token(private_key))
        assert payload is not None
        assert payload["sub"] == "user_2abc"

    def test_escaped_newlines_in_key(self, keys, monkeypatch):
        private_key, public_pem = keys
        monkeypatch.setenv("CLERK_JWT_KEY", public_pem.replace("\n", "\\n"))
        assert auth_service.verify_token(_token(private_key))["sub"] == "user_2abc"

    def test_expired_token(self, keys, monkeypatch):
        private_key, public_pem = keys
        monkeypatch.setenv("CLERK_JWT_KEY", public_pem)
        token = _token(private_key, exp=datetime.now(timezone.utc) - timedelta(minutes=1))
        assert auth_service.verify_token(token) is None

    def test_token_signed_by_other_key(self, keys, monkeypatch):
        _, public_pem = keys
        other_private, _ = _keypair()
        monkeypatch.setenv("CLERK_JWT_KEY", public_pem)
        assert auth_service.verify_token(_token(other_private)) is None

    def test_token_without_subject(self, keys, monkeypatch):
        private_key, public_pem = keys
        monkeypatch.setenv("CLERK_JWT_KEY", public_pem)
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(minutes=5)}, private_key, algorithm="RS256"
        )
        assert auth_service.verify_token(token) is None

    def test_garbage_token(self, keys, monkeypatch):
        monkeypatch.setenv("CLERK_JWT_KEY", keys[1])
        assert auth_service.verify_token("not-a-jwt") is None

    def test_issuer_checked_when_configured(self, keys, monkeypatch):
        private_key, public_pem = keys
        monkeypatch.setenv("CLERK_JWT_KEY", public_pem)
        monkeypatch.setattr(auth_service, "CLERK_JWT_ISSUER", "https://clerk.paddle-up.app")
        good = _token(private_key, iss="https://clerk.paddle-up.app")
        bad = _token(private_key, iss="https://evil.example.com")
        assert auth_service.verify_token(good) is not None
        assert auth_service.verify_token(bad) is None

    def test_no_key_configured(self, keys, monkeypatch):
        monkeypatch.delenv("CLERK_JWT_KEY", raising=False)
        monkeypatch.setattr(auth_service, "CLERK_JWKS_URL", "")
        monkeypatch.setattr(auth_service, "_jwks_client", None)
        assert auth_service.verify_token(_token(keys[0])) is None


def _mock_clerk(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(auth_service.httpx, "AsyncClient", client_factory)


class TestFetchClerkUser:
    """Tests for the Clerk Backend API profile fetch."""

    @pytest.mark.asyncio
    async def test_without_secret_key(self, monkeypatch):
        monkeypatch.delenv("CLERK_SECRET_KEY", raising=False)
        assert await auth_service.fetch_clerk_user("user_2abc") is None

    @pytest.mark.asyncio
    async def test_primary_email_is_used(self, monkeypatch):
        monkeypatch.setenv("CLERK_SECRET_KEY", "sk_test_123")
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(
                200,
                json={
                    "primary_email_address_id": "idn_2",
                    "email_addresses": [
                        {"id": "idn_1", "email_address": "old@example.com"},
                        {"id": "idn_2", "email_address": "pat@example.com"},
                    ],
                    "first_name": "Pat",
                    "last_name": None,
                    "username": "patdinks",
                    "image_url": "https://img.clerk.com/pat.png",
                },
            )

        _mock_clerk(monkeypatch, handler)
        profile = await auth_service.fetch_clerk_user("user_2abc")

        assert seen["url"].endswith("/users/user_2abc")
        assert seen["auth"] == "Bearer sk_test_123"
        assert profile == {
            "email": "pat@example.com",
            "first_name": "Pat",
            "last_name": "",
            "username": "patdinks",
            "avatar_url": "https://img.clerk.com/pat.png",
        }

    @pytest.mark.asyncio
    async def test_api_error_returns_none(self, monkeypatch):
        monkeypatch.setenv("CLERK_SECRET_KEY", "sk_test_123")
        _mock_clerk(monkeypatch, lambda request: httpx.Response(404, json={"errors": []}))
        assert await auth_service.fetch_clerk_user("user_missing") is None
