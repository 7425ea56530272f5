"""Database models and record types."""

from models.document import Document
from models.match import Match, canonical_pair, match_id_for, pair_key
from models.profile import Profile, ProfilePrompt
from models.swipe import SwipeAction, SwipeRecord, UserId, swipe_key

__all__ = [
    "Document",
    "Match",
    "Profile",
    "ProfilePrompt",
    "SwipeAction",
    "SwipeRecord",
    "UserId",
    "canonical_pair",
    "match_id_for",
    "pair_key",
    "swipe_key",
]
