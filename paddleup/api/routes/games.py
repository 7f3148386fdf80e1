"""Game scheduling route handlers (round robin)."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from paddleup.services import round_robin_service
from paddleup.api.auth_dependencies import get_current_user
from paddleup.models.schemas import RoundRobinRequest, StandingsRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/games/round-robin")
async def generate_round_robin(
    payload: RoundRobinRequest,
    user: dict = Depends(get_current_user),
):
    """
    Generate a round robin schedule.

    Returns matches (flat and grouped by round), byes per round, and the
    number of rounds a full cycle needs.
    """
    participants = payload.teams if payload.format == "teams" else payload.players
    try:
        return round_robin_service.generate_round_robin(
            payload.format,
            [p.model_dump() for p in participants],
            max_rounds=payload.max_rounds,
            number_of_courts=payload.number_of_courts,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/api/games/round-robin/standings")
async def round_robin_standings(
    payload: StandingsRequest,
    user: dict = Depends(get_current_user),
):
    """Standings and progress for a scored team round robin."""
    matches = [m.model_dump() for m in payload.matches]
    return {
        "standings": round_robin_service.calculate_standings(
            matches, [t.model_dump() for t in payload.teams]
        ),
        "completed_matches": round_robin_service.completed_match_count(matches),
        "total_matches": len(matches),
        "is_complete": round_robin_service.is_round_robin_complete(matches),
    }
