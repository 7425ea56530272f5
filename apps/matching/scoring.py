"""Profile compatibility scoring.

Scores are weighted sums of six component scores, each in [0, 1]:

    interests 0.30, languages 0.15, age fit 0.15, lifestyle 0.20,
    relationship goal 0.15, profile completeness 0.05

Proximity is computed alongside but kept out of the headline value; the
discovery feed uses it for tie-breaking and display.
"""

from geopy.distance import great_circle
from pydantic import BaseModel

from models.profile import Profile

INTEREST_WEIGHT = 0.30
LANGUAGE_WEIGHT = 0.15
AGE_WEIGHT = 0.15
LIFESTYLE_WEIGHT = 0.20
GOAL_WEIGHT = 0.15
COMPLETENESS_WEIGHT = 0.05

NEUTRAL_SCORE = 0.5
MAX_REASONS = 3

LIFESTYLE_ATTRIBUTES = ("smoking", "drinking", "exercise", "diet", "pets")

# Goals that are not identical but still work together
COMPATIBLE_GOALS: dict[str, frozenset[str]] = {
    "Long-term": frozenset({"Open to anything", "See where it goes"}),
    "Short-term": frozenset({"Open to anything", "Casual"}),
    "Casual": frozenset({"Short-term", "Open to anything"}),
    "Friendship": frozenset({"Open to anything"}),
    "Open to anything": frozenset({"Long-term", "Short-term", "Casual", "Friendship"}),
}


class ScoreBreakdown(BaseModel):
    interests: float
    languages: float
    age: float
    lifestyle: float
    relationship_goal: float
    completeness: float
    proximity: float


class CompatibilityScore(BaseModel):
    candidate_id: str
    value: float
    reasons: list[str]
    breakdown: ScoreBreakdown


def _shared_in_order(mine: list[str], theirs: list[str]) -> list[str]:
    """Shared items in the order the viewer declared them, without repeats."""
    theirs_set = set(theirs)
    seen: set[str] = set()
    shared = []
    for item in mine:
        if item in theirs_set and item not in seen:
            seen.add(item)
            shared.append(item)
    return shared


def interest_score(viewer: Profile, candidate: Profile) -> float:
    mine = set(viewer.interests)
    theirs = set(candidate.interests)
    union = mine | theirs
    if not union:
        return NEUTRAL_SCORE

    shared = len(mine & theirs)
    jaccard = shared / len(union)
    if shared >= 5:
        bonus = 0.2
    elif shared >= 3:
        bonus = 0.1
    else:
        bonus = 0.0
    return min(jaccard + bonus, 1.0)


def language_score(viewer: Profile, candidate: Profile) -> float:
    mine = set(viewer.languages)
    theirs = set(candidate.languages)
    if not mine or not theirs:
        return NEUTRAL_SCORE

    shared = len(mine & theirs)
    if shared == 0:
        return 0.2
    return min(shared * 0.4, 1.0)


def ideal_age(viewer: Profile) -> int:
    return (viewer.age_range_min + viewer.age_range_max) // 2


def age_score(viewer: Profile, candidate: Profile) -> float:
    if not viewer.age_range_min <= candidate.age <= viewer.age_range_max:
        return 0.0

    span = viewer.age_range_max - viewer.age_range_min
    if span == 0:
        return 1.0
    difference = abs(candidate.age - ideal_age(viewer))
    return max(1.0 - difference / span, 0.0)


def lifestyle_score(viewer: Profile, candidate: Profile) -> float:
    matches = 0
    comparisons = 0
    for attribute in LIFESTYLE_ATTRIBUTES:
        mine = getattr(viewer, attribute)
        theirs = getattr(candidate, attribute)
        if mine is None or theirs is None:
            continue
        comparisons += 1
        if mine == theirs:
            matches += 1

    if comparisons == 0:
        return NEUTRAL_SCORE
    return matches / comparisons


def relationship_goal_score(viewer: Profile, candidate: Profile) -> float:
    mine = viewer.relationship_goal
    theirs = candidate.relationship_goal
    if mine is None or theirs is None:
        return NEUTRAL_SCORE
    if mine == theirs:
        return 1.0
    if theirs in COMPATIBLE_GOALS.get(mine, frozenset()):
        return 0.6
    return 0.2


def completeness_score(profile: Profile) -> float:
    checks = (
        bool(profile.bio),
        bool(profile.interests),
        bool(profile.languages),
        bool(profile.photos),
        len(profile.prompts) >= 2,
        profile.education_level is not None,
        profile.height is not None,
        profile.relationship_goal is not None,
        profile.exercise is not None,
        profile.diet is not None,
    )
    return sum(checks) / len(checks)


def distance_km(viewer: Profile, candidate: Profile) -> float | None:
    """Great-circle distance between two profiles, None if either is unlocated."""
    if viewer.location is None or candidate.location is None:
        return None
    return great_circle(viewer.location, candidate.location).kilometers


def proximity_score(viewer: Profile, candidate: Profile) -> float:
    distance = distance_km(viewer, candidate)
    if distance is None:
        return NEUTRAL_SCORE
    if distance > viewer.max_distance:
        return 0.1
    return max(1.0 - distance / viewer.max_distance, 0.0)


def compatibility_reasons(viewer: Profile, candidate: Profile) -> list[str]:
    """Up to three human-readable reasons, highest priority first."""
    reasons = []

    shared_interests = _shared_in_order(viewer.interests, candidate.interests)
    if len(shared_interests) >= 3:
        reasons.append(f"You both love {', '.join(shared_interests[:3])}")
    elif shared_interests:
        reasons.append(f"Shared interest in {shared_interests[0]}")

    shared_languages = _shared_in_order(viewer.languages, candidate.languages)
    if shared_languages:
        reasons.append(f"Speak the same language: {shared_languages[0]}")

    if viewer.age_range_min <= candidate.age <= viewer.age_range_max:
        if abs(candidate.age - ideal_age(viewer)) <= 2:
            reasons.append("Perfect age match")

    if viewer.relationship_goal is not None and viewer.relationship_goal == candidate.relationship_goal:
        reasons.append("Same relationship goals")

    if viewer.exercise is not None and viewer.exercise == candidate.exercise:
        reasons.append("Similar fitness lifestyle")

    distance = distance_km(viewer, candidate)
    if distance is not None:
        if distance < 5:
            reasons.append("Very close to you!")
        elif distance < 20:
            reasons.append("Nearby")

    if candidate.is_premium:
        reasons.append("Premium member")
    if candidate.is_verified:
        reasons.append("Verified profile")

    return reasons[:MAX_REASONS]


class CompatibilityScorer:
    """Stateless scorer over two profiles."""

    def score(self, viewer: Profile, candidate: Profile) -> CompatibilityScore:
        breakdown = ScoreBreakdown(
            interests=interest_score(viewer, candidate),
            languages=language_score(viewer, candidate),
            age=age_score(viewer, candidate),
            lifestyle=lifestyle_score(viewer, candidate),
            relationship_goal=relationship_goal_score(viewer, candidate),
            completeness=completeness_score(candidate),
            proximity=proximity_score(viewer, candidate),
        )
        value = (
            breakdown.interests * INTEREST_WEIGHT
            + breakdown.languages * LANGUAGE_WEIGHT
            + breakdown.age * AGE_WEIGHT
            + breakdown.lifestyle * LIFESTYLE_WEIGHT
            + breakdown.relationship_goal * GOAL_WEIGHT
            + breakdown.completeness * COMPLETENESS_WEIGHT
        )
        return CompatibilityScore(
            candidate_id=candidate.id,
            value=min(max(value, 0.0), 1.0),
            reasons=compatibility_reasons(viewer, candidate),
            breakdown=breakdown,
        )

    def rank(self, viewer: Profile, candidates: list[Profile]) -> list[CompatibilityScore]:
        """Score candidates; best first, ties broken by proximity then id."""
        scores = [self.score(viewer, candidate) for candidate in candidates if candidate.id != viewer.id]
        return sorted(scores, key=lambda s: (-s.value, -s.breakdown.proximity, s.candidate_id))
