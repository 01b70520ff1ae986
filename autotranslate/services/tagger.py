"""Tagging primitives shared by batch tagging and lazy tagging at render time."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.config import Settings
from autotranslate.text.markers import (
    embed,
    extract_hash,
    is_tagged,
    normalize_whitespace,
    strip_marker,
)
from autotranslate.text.multilang import MultilangResult, parse_multilang
from autotranslate.services.hash_allocator import HashAllocator
from autotranslate.services.translation_store import TranslationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagResult:
    tagged_text: str
    hash: str
    created: bool  # a new source record was inserted
    already_tagged: bool = False


class Tagger:
    """Turns raw content into marked content backed by translation records.

    Methods flush but never commit; the caller owns the transaction. Each
    call should start a fresh unit of work because losing an allocation race
    rolls the session back.
    """

    def __init__(self, store: TranslationStore, allocator: HashAllocator, settings: Settings):
        self.store = store
        self.allocator = allocator
        self.settings = settings

    def parse(self, text: str) -> MultilangResult:
        return parse_multilang(
            text, self.settings.site_language, self.settings.installed_languages
        )

    async def tag_text(
        self,
        db: AsyncSession,
        text: str,
        scope_level: int,
        scope_id: Optional[int] = None,
    ) -> TagResult:
        """Tag ``text``, reusing the hash of identical source text when one exists."""
        if is_tagged(text):
            hash = await self.register_tagged(db, text, scope_level, scope_id)
            return TagResult(text, hash, created=False, already_tagged=True)

        parsed = self.parse(text)
        if not parsed.source_text:
            raise ValueError("Nothing to tag")

        created = False
        hash = await self.allocator.find_existing(db, parsed.source_text)
        if hash is None:
            hash = await self.allocator.allocate(db)
            try:
                await self.store.upsert_source(
                    db, hash, parsed.source_text, scope_level, claim_text=True
                )
                created = True
            except IntegrityError:
                # Someone inserted the same text meanwhile; converge on their hash
                await self.store.rollback(db)
                hash = await self.allocator.find_existing(db, parsed.source_text)
                if hash is None:
                    raise
                logger.info(f"Lost allocation race, reusing hash {hash}")

        for lang, translation in parsed.translations.items():
            if await self.store.get_translation(db, hash, lang) is None:
                await self.store.upsert_translation(db, hash, lang, translation, is_human=True)

        await self.store.add_scope_mapping(db, hash, scope_id)
        return TagResult(embed(parsed.display_text.rstrip(), hash), hash, created=created)

    async def register_tagged(
        self,
        db: AsyncSession,
        text: str,
        scope_level: int,
        scope_id: Optional[int] = None,
    ) -> str:
        """
        Make sure an already marked text is backed by its source record.

        The source is created when missing and synced when the text around
        the marker was edited. The hash is mapped to ``scope_id``.
        """
        hash = extract_hash(text)
        if hash is None:
            raise ValueError("Text carries no marker")

        body = self.parse(strip_marker(text)).source_text
        source = await self.store.get_source(db, hash)
        if source is None:
            if body:
                await self.store.upsert_source(db, hash, body, scope_level)
        elif body and normalize_whitespace(source.translated_text) != normalize_whitespace(body):
            logger.info(f"Source text of {hash} changed, updating")
            await self.store.upsert_source(db, hash, body, source.scope_level)

        await self.store.add_scope_mapping(db, hash, scope_id)
        return hash
