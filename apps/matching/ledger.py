"""Swipe ledger: directional like/pass decisions and mutual-like detection."""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ValidationError

from apps.matching.admission import ActionKind, AdmissionControl
from apps.matching.events import SWIPE_RECORDED, EventPublisher
from apps.matching.matches import MatchCreator
from core.errors import InvalidSwipe, PersistenceFailure, RateLimitExceeded
from core.metrics import swipes_total
from core.store import KeyValueStore
from models.swipe import SwipeAction, SwipeRecord, swipe_key

logger = logging.getLogger(__name__)

SWIPES = "swipes"


class LikeResult(BaseModel):
    """``is_match`` is True only for the call that created the match."""

    is_match: bool
    match_id: str | None = None


class SwipeStatus(BaseModel):
    liked: bool
    passed: bool


class SwipeLedger:
    """Records the latest decision per ordered pair.

    A new swipe overwrites the previous record of the same ordered pair, so a
    pass can be revised into a like and back at any time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        admission: AdmissionControl,
        matches: MatchCreator,
        events: EventPublisher,
    ) -> None:
        self.store = store
        self.admission = admission
        self.matches = matches
        self.events = events

    async def _admit(self, user_id: str, action: ActionKind) -> None:
        admission = await self.admission.try_consume(user_id, action)
        if not admission.allowed:
            raise RateLimitExceeded(action.value, admission.retry_after)

    def _build(self, from_user: str, to_user: str, action: SwipeAction, is_super_like: bool) -> SwipeRecord:
        try:
            return SwipeRecord(
                from_user=from_user,
                to_user=to_user,
                action=action,
                is_super_like=is_super_like,
                active=True,
                timestamp=datetime.now(timezone.utc),
            )
        except ValidationError as e:
            raise InvalidSwipe(str(e)) from e

    async def _record(self, record: SwipeRecord) -> None:
        await self.store.upsert(SWIPES, record.key, record.to_document())
        swipes_total.labels(action="super_like" if record.is_super_like else record.action.value).inc()
        logger.debug(f"{record.action.value.capitalize()} recorded: {record.from_user} -> {record.to_user}")
        self.events.publish(
            SWIPE_RECORDED,
            {
                "from_user": record.from_user,
                "to_user": record.to_user,
                "action": record.action.value,
                "is_super_like": record.is_super_like,
                "timestamp": record.timestamp.isoformat(),
            },
        )

    async def get_record(self, from_user: str, to_user: str) -> SwipeRecord | None:
        doc = await self.store.get(SWIPES, swipe_key(from_user, to_user))
        if doc is None:
            return None
        try:
            return SwipeRecord.from_document(doc)
        except ValidationError as e:
            logger.error(f"Corrupt swipe document {from_user} -> {to_user}: {e}")
            raise PersistenceFailure(f"Corrupt swipe document {from_user} -> {to_user}") from e

    async def like(self, from_user: str, to_user: str, is_super_like: bool = False) -> LikeResult:
        """
        Record a like and create the match if the like is mutual.

        Args:
            from_user: User who swiped
            to_user: User who was liked
            is_super_like: Counts against the super-like quota instead of swipes

        Returns:
            LikeResult; ``match_id`` is set whenever the pair has an active match

        Raises:
            InvalidSwipe: Self-like or malformed user ids
            RateLimitExceeded: Quota exhausted
            PersistenceFailure: Store error; retrying is safe
        """
        record = self._build(from_user, to_user, SwipeAction.LIKE, is_super_like)
        await self._admit(from_user, ActionKind.SUPER_LIKE if is_super_like else ActionKind.SWIPE)
        await self._record(record)
        return await self.resolve_mutual(from_user, to_user)

    async def pass_user(self, from_user: str, to_user: str) -> None:
        """Record a pass. No reciprocal check."""
        record = self._build(from_user, to_user, SwipeAction.PASS, False)
        await self._admit(from_user, ActionKind.SWIPE)
        await self._record(record)

    async def resolve_mutual(self, from_user: str, to_user: str) -> LikeResult:
        """
        Create the pair's match if both directions are active likes.

        Called after every like; also resolves a pair whose earlier match
        creation failed after the like was recorded.
        """
        reciprocal = await self.get_record(to_user, from_user)
        if reciprocal is None or not reciprocal.is_active_like:
            return LikeResult(is_match=False)

        own = await self.get_record(from_user, to_user)
        if own is None or not own.is_active_like:
            return LikeResult(is_match=False)

        logger.info(f"Mutual like detected: {from_user} <-> {to_user}")
        outcome = await self.matches.create_or_get(from_user, to_user)
        return LikeResult(is_match=outcome.created, match_id=outcome.match.id)

    async def has_swiped_on(self, from_user: str, to_user: str) -> SwipeStatus:
        record = await self.get_record(from_user, to_user)
        if record is None or not record.active:
            return SwipeStatus(liked=False, passed=False)
        return SwipeStatus(liked=record.action is SwipeAction.LIKE, passed=record.action is SwipeAction.PASS)

    async def likes_received(self, user_id: str) -> list[str]:
        """Users with an active like on user_id, most recent first."""
        docs = await self.store.query(SWIPES, {"to_user": user_id, "action": SwipeAction.LIKE.value, "active": True})
        try:
            records = [SwipeRecord.from_document(doc) for doc in docs]
        except ValidationError as e:
            logger.error(f"Corrupt swipe document addressed to {user_id}: {e}")
            raise PersistenceFailure(f"Corrupt swipe document addressed to {user_id}") from e
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return [record.from_user for record in records]
