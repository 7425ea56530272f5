"""Swipe endpoints."""

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from apps.api.deps import get_services
from apps.matching import MatchingServices
from apps.matching.ledger import LikeResult, SwipeStatus
from core.auth import caller_auth
from core.errors import InvalidSwipe, PersistenceFailure, RateLimitExceeded

router = APIRouter(prefix="/swipes", tags=["swipes"])
logger = logging.getLogger(__name__)


class LikeIn(BaseModel):
    """Input model for liking a user."""

    to_user: str
    is_super_like: bool = False


class PassIn(BaseModel):
    """Input model for passing on a user."""

    to_user: str


class LikesReceivedOut(BaseModel):
    user_ids: list[str]


def _rate_limited(e: RateLimitExceeded) -> HTTPException:
    headers = {"Retry-After": str(math.ceil(e.retry_after))} if e.retry_after is not None else None
    return HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, str(e), headers=headers)


@router.post("/like", response_model=LikeResult)
async def like_user(
    body: LikeIn,
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> LikeResult:
    """
    Like a user; creates the match when the like is mutual.

    Raises:
        HTTPException: 400 invalid swipe, 429 rate limited, 503 store failure
    """
    try:
        return await services.ledger.like(caller, body.to_user, is_super_like=body.is_super_like)
    except InvalidSwipe as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e)) from None
    except RateLimitExceeded as e:
        raise _rate_limited(e) from None
    except PersistenceFailure as e:
        logger.error(f"Like failed: from={caller}, to={body.to_user}: {e}")
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Like not recorded, please retry") from None


@router.post("/pass")
async def pass_user(
    body: PassIn,
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> dict[str, bool]:
    """Pass on a user."""
    try:
        await services.ledger.pass_user(caller, body.to_user)
    except InvalidSwipe as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e)) from None
    except RateLimitExceeded as e:
        raise _rate_limited(e) from None
    except PersistenceFailure as e:
        logger.error(f"Pass failed: from={caller}, to={body.to_user}: {e}")
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Pass not recorded, please retry") from None
    return {"ok": True}


@router.get("/likes-received", response_model=LikesReceivedOut)
async def likes_received(
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> LikesReceivedOut:
    """Users who currently like the caller, most recent first."""
    try:
        return LikesReceivedOut(user_ids=await services.ledger.likes_received(caller))
    except PersistenceFailure:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable") from None


@router.get("/{to_user}", response_model=SwipeStatus)
async def has_swiped_on(
    to_user: str,
    services: MatchingServices = Depends(get_services),
    caller: str = Depends(caller_auth),
) -> SwipeStatus:
    """Whether the caller currently likes or has passed on to_user."""
    try:
        return await services.ledger.has_swiped_on(caller, to_user)
    except PersistenceFailure:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable") from None
