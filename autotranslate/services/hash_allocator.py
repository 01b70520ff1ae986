"""Allocation of unique content hashes."""

import logging
import secrets
import string
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.db.models import HASH_LENGTH, Translation
from autotranslate.exceptions import HashSpaceExhaustedError
from autotranslate.services.translation_store import TranslationStore

logger = logging.getLogger(__name__)

HASH_ALPHABET = string.ascii_letters + string.digits


class HashAllocator:
    """Generates hashes that are not used by any translation record."""

    def __init__(
        self,
        store: TranslationStore,
        max_attempts: int = 100,
        length: int = HASH_LENGTH,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.length = length

    def generate(self) -> str:
        return "".join(secrets.choice(HASH_ALPHABET) for _ in range(self.length))

    async def is_used(self, db: AsyncSession, hash: str) -> bool:
        found = await db.scalar(select(Translation.id).where(Translation.hash == hash).limit(1))
        return found is not None

    async def allocate(self, db: AsyncSession) -> str:
        """Return a hash no record uses yet."""
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generate()
            if not await self.is_used(db, candidate):
                return candidate
            logger.debug(f"Hash collision on attempt {attempt}: {candidate}")
        raise HashSpaceExhaustedError(
            f"Could not allocate a unique hash after {self.max_attempts} attempts"
        )

    async def find_existing(self, db: AsyncSession, source_text: str) -> Optional[str]:
        """Hash of the source record holding exactly this text, if any."""
        record = await self.store.find_source_by_text(db, source_text)
        return record.hash if record else None
