"""Canonical match between two users."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.swipe import UserId


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Order a pair so both swipe directions address the same match."""
    u_lo, u_hi = sorted((user_a, user_b))
    return u_lo, u_hi


def pair_key(user_a: str, user_b: str) -> str:
    """Order-independent identifier of an unordered pair."""
    u_lo, u_hi = canonical_pair(user_a, user_b)
    return f"{u_lo}:{u_hi}"


def match_id_for(user_a: str, user_b: str, generation: int) -> str:
    return f"{pair_key(user_a, user_b)}:{generation}"


class Match(BaseModel):
    """Match model for connecting two users.

    ``user_a``/``user_b`` are stored in canonical (sorted) order. A pair that
    unmatches and matches again gets a new record with the next generation.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    pair_key: str
    generation: int = Field(ge=1)
    user_a: UserId
    user_b: UserId
    active: bool = True
    created_at: datetime
    unread_count: dict[str, int] = Field(default_factory=dict)
    unmatched_by: str | None = None
    unmatched_at: datetime | None = None

    @model_validator(mode="after")
    def _check_identity(self) -> "Match":
        # Prevent self-matching (user cannot match with themselves)
        if self.user_a >= self.user_b:
            raise ValueError("user_a must sort strictly before user_b")
        if self.pair_key != pair_key(self.user_a, self.user_b):
            raise ValueError("pair_key does not match the users")
        if self.id != match_id_for(self.user_a, self.user_b, self.generation):
            raise ValueError("id does not match pair_key and generation")
        if self.unmatched_by is not None and not self.involves(self.unmatched_by):
            raise ValueError("unmatched_by must be a participant")
        return self

    @classmethod
    def new(cls, user_a: str, user_b: str, generation: int, created_at: datetime) -> "Match":
        u_lo, u_hi = canonical_pair(user_a, user_b)
        return cls(
            id=match_id_for(u_lo, u_hi, generation),
            pair_key=pair_key(u_lo, u_hi),
            generation=generation,
            user_a=u_lo,
            user_b=u_hi,
            created_at=created_at,
            unread_count={u_lo: 0, u_hi: 0},
        )

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_a, self.user_b)

    def partner_of(self, user_id: str) -> str:
        if user_id == self.user_a:
            return self.user_b
        if user_id == self.user_b:
            return self.user_a
        raise ValueError(f"{user_id} is not part of match {self.id}")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Match":
        return cls.model_validate(doc)

    def __repr__(self) -> str:
        return f"<Match(id={self.id}, user_a={self.user_a}, user_b={self.user_b}, active={self.active})>"
