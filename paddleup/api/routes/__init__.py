"""
API routes - combined router from all domain modules.

The shared limiter lives here; every sub-router imports it from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
limiter = Limiter(key_func=get_remote_address)
if IS_TEST_ENV:

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = no_op_limit

# Limits for unauthenticated endpoints and invite creation
PUBLIC_RATE_LIMIT = os.getenv("PUBLIC_RATE_LIMIT", "60/minute")
INVITE_RATE_LIMIT = os.getenv("INVITE_RATE_LIMIT", "20/minute")

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from paddleup.api.routes.auth import router as auth_router  # noqa: E402
from paddleup.api.routes.users import router as users_router  # noqa: E402
from paddleup.api.routes.tournaments import router as tournaments_router  # noqa: E402
from paddleup.api.routes.leagues import router as leagues_router  # noqa: E402
from paddleup.api.routes.invites import router as invites_router  # noqa: E402
from paddleup.api.routes.referrals import router as referrals_router  # noqa: E402
from paddleup.api.routes.games import router as games_router  # noqa: E402
from paddleup.api.routes.notifications import router as notifications_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(tournaments_router)
router.include_router(leagues_router)
router.include_router(invites_router)
router.include_router(referrals_router)
router.include_router(games_router)
router.include_router(notifications_router)
