"""Directional swipe decision records."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, StringConstraints, model_validator

# User ids end up inside store keys, so they may not contain the key separator.
UserId = Annotated[str, StringConstraints(min_length=1, max_length=120, pattern=r"^[^:]+$")]


class SwipeAction(str, Enum):
    LIKE = "like"
    PASS = "pass"


def swipe_key(from_user: str, to_user: str) -> str:
    """Store key of the ordered pair (from_user -> to_user)."""
    return f"{from_user}:{to_user}"


class SwipeRecord(BaseModel):
    """The latest decision of one user about another. Overwritten, never appended."""

    model_config = ConfigDict(frozen=True)

    from_user: UserId
    to_user: UserId
    action: SwipeAction
    is_super_like: bool = False
    active: bool = True
    timestamp: datetime

    @model_validator(mode="after")
    def _check_consistency(self) -> "SwipeRecord":
        if self.from_user == self.to_user:
            raise ValueError("A user cannot swipe on themselves")
        if self.action is SwipeAction.PASS and self.is_super_like:
            raise ValueError("A pass cannot be a super like")
        return self

    @property
    def key(self) -> str:
        return swipe_key(self.from_user, self.to_user)

    @property
    def is_active_like(self) -> bool:
        return self.active and self.action is SwipeAction.LIKE

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "SwipeRecord":
        return cls.model_validate(doc)
