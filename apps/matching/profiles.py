"""Profile lookup on the document store."""

import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError

from core.errors import PersistenceFailure
from core.store import KeyValueStore
from models.profile import Profile

logger = logging.getLogger(__name__)

PROFILES = "profiles"


class ProfileStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Profile | None:
        """Return the profile of user_id, or None if it does not exist."""


class KeyValueProfileStore(ProfileStore):
    """Profiles kept as documents in the ``profiles`` collection."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def get(self, user_id: str) -> Profile | None:
        doc = await self.store.get(PROFILES, user_id)
        if doc is None:
            return None
        try:
            return Profile.model_validate(doc)
        except ValidationError as e:
            logger.error(f"Corrupt profile document for {user_id}: {e}")
            raise PersistenceFailure(f"Corrupt profile document for {user_id}") from e

    async def save(self, profile: Profile) -> None:
        await self.store.upsert(PROFILES, profile.id, profile.model_dump(mode="json"))
