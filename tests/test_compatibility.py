"""Tests for profile-backed compatibility lookups."""

import pytest

from apps.matching.profiles import PROFILES
from core.errors import PersistenceFailure, ProfileNotFound


async def test_score_by_id(services, make_profile):
    await services.profiles.save(make_profile("viewer", interests=["hiking", "travel", "coffee"]))
    await services.profiles.save(make_profile("cand", interests=["hiking", "travel", "yoga", "art"]))

    result = await services.compatibility.score("viewer", "cand")

    assert result.candidate_id == "cand"
    assert result.breakdown.interests == pytest.approx(0.4)


async def test_score_unknown_profile(services, make_profile):
    await services.profiles.save(make_profile("viewer"))

    with pytest.raises(ProfileNotFound) as exc:
        await services.compatibility.score("viewer", "ghost")
    assert exc.value.user_id == "ghost"


async def test_rank_skips_unknown_and_duplicate_candidates(services, make_profile):
    await services.profiles.save(make_profile("viewer", interests=["a"]))
    await services.profiles.save(make_profile("x", interests=["a"]))
    await services.profiles.save(make_profile("y"))

    ranked = await services.compatibility.rank("viewer", ["y", "ghost", "x", "y", "viewer"])

    assert [s.candidate_id for s in ranked] == ["x", "y"]


async def test_rank_unknown_viewer(services):
    with pytest.raises(ProfileNotFound):
        await services.compatibility.rank("ghost", ["a"])


async def test_corrupt_profile_document(services, store):
    await store.upsert(PROFILES, "broken", {"id": "broken", "age": "not a number"})

    with pytest.raises(PersistenceFailure):
        await services.profiles.get("broken")
