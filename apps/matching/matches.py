"""Canonical match creation and lifecycle."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial

import redis.asyncio as redis
from pydantic import ValidationError

from apps.matching.events import MATCH_CREATED, MATCH_DEACTIVATED, EventPublisher
from apps.workers.background import BackgroundTaskQueue
from core.errors import InvalidSwipe, MatchNotFound, NotMatchParticipant, PersistenceFailure
from core.metrics import match_create_conflicts_total, matches_created_total, matches_deactivated_total
from core.store import KeyValueStore
from models.match import Match, pair_key

logger = logging.getLogger(__name__)

MATCHES = "matches"

# Each lost create race re-reads the winner; a few rounds always settle unless
# the pair is being unmatched and rematched continuously.
MAX_CREATE_ATTEMPTS = 3


class MatchCounter(ABC):
    """Per-user total-match counter. Eventually consistent."""

    @abstractmethod
    async def increment(self, user_id: str) -> None: ...

    @abstractmethod
    async def get(self, user_id: str) -> int: ...


class RedisMatchCounter(MatchCounter):
    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    async def increment(self, user_id: str) -> None:
        await self.client.incr(f"match_count:{user_id}")

    async def get(self, user_id: str) -> int:
        value = await self.client.get(f"match_count:{user_id}")
        return int(value) if value else 0


@dataclass(frozen=True)
class MatchOutcome:
    match: Match
    created: bool


def _load(doc: dict) -> Match:
    try:
        return Match.from_document(doc)
    except ValidationError as e:
        logger.error(f"Corrupt match document {doc.get('id')}: {e}")
        raise PersistenceFailure(f"Corrupt match document {doc.get('id')}") from e


class MatchCreator:
    """Creates or returns the single active match of a pair."""

    def __init__(
        self,
        store: KeyValueStore,
        events: EventPublisher,
        counters: MatchCounter,
        tasks: BackgroundTaskQueue,
    ) -> None:
        self.store = store
        self.events = events
        self.counters = counters
        self.tasks = tasks

    async def get_match(self, match_id: str) -> Match | None:
        doc = await self.store.get(MATCHES, match_id)
        return _load(doc) if doc is not None else None

    async def _latest(self, user_a: str, user_b: str) -> Match | None:
        docs = await self.store.query(MATCHES, {"pair_key": pair_key(user_a, user_b)})
        matches = [_load(doc) for doc in docs]
        return max(matches, key=lambda m: m.generation, default=None)

    async def find_active_match(self, user_a: str, user_b: str) -> Match | None:
        latest = await self._latest(user_a, user_b)
        return latest if latest is not None and latest.active else None

    async def has_matched(self, user_a: str, user_b: str) -> bool:
        return await self.find_active_match(user_a, user_b) is not None

    async def create_or_get(self, user_a: str, user_b: str) -> MatchOutcome:
        """
        Return the active match of the pair, creating it if there is none.

        Both call orders address the same canonical key, and creation is a
        conditional write, so concurrent callers settle on one match.

        Args:
            user_a: One party of the pair
            user_b: The other party

        Returns:
            The match and whether this call created it

        Raises:
            PersistenceFailure: The store failed or the pair never settled
        """
        if user_a == user_b:
            raise InvalidSwipe("A user cannot match with themselves")

        for _ in range(MAX_CREATE_ATTEMPTS):
            latest = await self._latest(user_a, user_b)
            if latest is not None and latest.active:
                return MatchOutcome(latest, created=False)

            # Only an inactive (final) generation is ever superseded
            generation = latest.generation + 1 if latest is not None else 1
            match = Match.new(user_a, user_b, generation, datetime.now(timezone.utc))
            if await self.store.create_if_absent(MATCHES, match.id, match.to_document()):
                self._after_create(match)
                return MatchOutcome(match, created=True)

            match_create_conflicts_total.inc()
            existing = await self.get_match(match.id)
            if existing is not None and existing.active:
                logger.info(f"Match {match.id} was created concurrently, reusing it")
                return MatchOutcome(existing, created=False)

        raise PersistenceFailure(f"Could not settle a match for pair {pair_key(user_a, user_b)}")

    def _after_create(self, match: Match) -> None:
        matches_created_total.inc()
        logger.info(f"Match created: {match.id}")
        for user_id in (match.user_a, match.user_b):
            self.tasks.submit("match.counter", partial(self.counters.increment, user_id))
        self.events.publish(
            MATCH_CREATED,
            {"match_id": match.id, "user_a": match.user_a, "user_b": match.user_b},
        )

    async def deactivate(self, match_id: str, initiated_by: str) -> Match:
        """
        Unmatch: mark the match inactive and record who ended it.

        Swipe history is untouched. Deactivating an inactive match is a no-op.

        Raises:
            MatchNotFound: No match with this id
            NotMatchParticipant: initiated_by is not part of the match
        """
        match = await self.get_match(match_id)
        if match is None:
            raise MatchNotFound(match_id)
        if not match.involves(initiated_by):
            raise NotMatchParticipant(f"{initiated_by} is not part of match {match_id}")
        if not match.active:
            return match

        updated = match.model_copy(
            update={"active": False, "unmatched_by": initiated_by, "unmatched_at": datetime.now(timezone.utc)}
        )
        await self.store.upsert(MATCHES, updated.id, updated.to_document())
        matches_deactivated_total.inc()
        logger.info(f"Match {match_id} deactivated by {initiated_by}")
        self.events.publish(MATCH_DEACTIVATED, {"match_id": match_id, "initiated_by": initiated_by})
        return updated

    async def fetch_matches(self, user_id: str) -> list[Match]:
        """Active matches of a user, newest first."""
        as_a = await self.store.query(MATCHES, {"user_a": user_id, "active": True})
        as_b = await self.store.query(MATCHES, {"user_b": user_id, "active": True})
        matches = [_load(doc) for doc in as_a + as_b]
        return sorted(matches, key=lambda m: m.created_at, reverse=True)

    async def match_count(self, user_id: str) -> int:
        return await self.counters.get(user_id)
