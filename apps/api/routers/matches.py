"""Match endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from redis.exceptions import RedisError

from apps.api.deps import get_services
from apps.matching import MatchingServices
from core.auth import caller_auth
from core.errors import MatchNotFound, NotMatchParticipant, PersistenceFailure
from models.match import Match

router = APIRouter(prefix="/matches", tags=["matches"])
logger = logging.getLogger(__name__)


class MatchListOut(BaseModel):
    matches: list[Match]
    total_matches: int


@router.get("", response_model=MatchListOut)
async def list_matches(
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> MatchListOut:
    """Active matches of the caller, newest first, with the lifetime match count."""
    try:
        matches = await services.matches.fetch_matches(caller)
    except PersistenceFailure:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable") from None
    try:
        total = await services.matches.match_count(caller)
    except RedisError as e:
        # Counter is best-effort; fall back to what is visible now
        logger.warning(f"Match counter unavailable for {caller}: {e}")
        total = len(matches)
    return MatchListOut(matches=matches, total_matches=total)


@router.get("/{match_id}", response_model=Match)
async def get_match(
    match_id: str,
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> Match:
    """Get one match. Only participants may read it."""
    try:
        match = await services.matches.get_match(match_id)
    except PersistenceFailure:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable") from None

    # Non-participants get the same answer as for a missing match
    if match is None or not match.involves(caller):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Match not found")
    return match


@router.post("/{match_id}/unmatch", response_model=Match)
async def unmatch(
    match_id: str,
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> Match:
    """Deactivate a match. Swipe history is kept."""
    try:
        return await services.matches.deactivate(match_id, initiated_by=caller)
    except MatchNotFound:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Match not found") from None
    except NotMatchParticipant:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "User not part of this match") from None
    except PersistenceFailure:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Unmatch not recorded, please retry") from None
