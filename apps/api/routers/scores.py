"""Compatibility score endpoints for the discovery feed."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from apps.api.deps import get_services
from apps.matching import MatchingServices
from apps.matching.scoring import CompatibilityScore
from core.auth import caller_auth
from core.errors import PersistenceFailure, ProfileNotFound

router = APIRouter(prefix="/scores", tags=["scores"])


class RankIn(BaseModel):
    candidate_ids: list[str] = Field(max_length=500)


@router.post("/rank", response_model=list[CompatibilityScore])
async def rank_candidates(
    body: RankIn,
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> list[CompatibilityScore]:
    """Rank candidates for the caller, best first."""
    try:
        return await services.compatibility.rank(caller, body.candidate_ids)
    except ProfileNotFound as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e)) from None
    except PersistenceFailure:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable") from None


@router.get("/{candidate_id}", response_model=CompatibilityScore)
async def score_candidate(
    candidate_id: str,
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> CompatibilityScore:
    """Compatibility of candidate_id from the caller's point of view."""
    try:
        return await services.compatibility.score(caller, candidate_id)
    except ProfileNotFound as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e)) from None
    except PersistenceFailure:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable") from None
