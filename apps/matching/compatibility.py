"""Compatibility lookups for the discovery feed."""

import asyncio
import logging
import time

from apps.matching.profiles import ProfileStore
from apps.matching.scoring import CompatibilityScore, CompatibilityScorer
from core.errors import ProfileNotFound
from core.metrics import scoring_duration
from models.profile import Profile

logger = logging.getLogger(__name__)


class CompatibilityService:
    """Resolves profiles by id and delegates to the scorer."""

    def __init__(self, profiles: ProfileStore, scorer: CompatibilityScorer) -> None:
        self.profiles = profiles
        self.scorer = scorer

    async def _require(self, user_id: str) -> Profile:
        profile = await self.profiles.get(user_id)
        if profile is None:
            raise ProfileNotFound(user_id)
        return profile

    async def score(self, viewer_id: str, candidate_id: str) -> CompatibilityScore:
        viewer, candidate = await asyncio.gather(self._require(viewer_id), self._require(candidate_id))
        t0 = time.perf_counter()
        try:
            return self.scorer.score(viewer, candidate)
        finally:
            scoring_duration.labels(operation="score").observe(time.perf_counter() - t0)

    async def rank(self, viewer_id: str, candidate_ids: list[str]) -> list[CompatibilityScore]:
        """
        Rank candidates for a viewer.

        Unknown candidate ids are skipped (the feed may hold profiles deleted
        since it was built); an unknown viewer is an error.

        Args:
            viewer_id: User the feed is built for
            candidate_ids: Candidate user ids, in any order

        Returns:
            Scores ordered best first
        """
        viewer = await self._require(viewer_id)
        unique_ids = list(dict.fromkeys(candidate_ids))
        found = await asyncio.gather(*(self.profiles.get(candidate_id) for candidate_id in unique_ids))

        candidates = []
        for candidate_id, profile in zip(unique_ids, found):
            if profile is None:
                logger.info(f"Skipping unknown candidate {candidate_id} while ranking for {viewer_id}")
                continue
            candidates.append(profile)

        t0 = time.perf_counter()
        try:
            return self.scorer.rank(viewer, candidates)
        finally:
            scoring_duration.labels(operation="rank").observe(time.perf_counter() - t0)
