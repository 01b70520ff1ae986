"""Translation record store and scope mapping."""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from autotranslate.db.models import (
    SOURCE_LANG,
    ScopeLevel,
    ScopeMapping,
    Translation,
    utcnow,
)
from autotranslate.exceptions import (
    MissingSourceError,
    ScopeLevelMismatchError,
    TranslationNotFoundError,
)
from autotranslate.services.cache import ContentCache

logger = logging.getLogger(__name__)

# Session.info key holding the hashes written in the current transaction
_TOUCHED_KEY = "autotranslate_touched_hashes"

SORTABLE_FIELDS = {
    "id": Translation.id,
    "hash": Translation.hash,
    "lang": Translation.lang,
    "human": Translation.human,
    "modified_at": Translation.modified_at,
    "reviewed_at": Translation.reviewed_at,
}


def source_digest(text: str) -> str:
    """SHA-256 of the trimmed source text."""
    return hashlib.sha256(text.strip().encode("utf-8")).hexdigest()


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def compute_stale(translation: Translation, source: Optional[Translation]) -> bool:
    """
    A non-source record is stale when it was never reviewed or was reviewed
    before the latest change to itself or to its source. Source records are
    never stale.
    """
    if translation.is_source:
        return False
    reviewed = _aware(translation.reviewed_at)
    if reviewed is None:
        return True
    changed = _aware(translation.modified_at)
    if source is not None:
        changed = max(changed, _aware(source.modified_at))
    return reviewed < changed


class TranslationStore:
    """CRUD over (hash, language) records and hash to scope mappings."""

    def __init__(self, cache: Optional[ContentCache] = None):
        self.cache = cache

    # ============== Transactions ==============

    def _touch(self, db: AsyncSession, hash: str) -> None:
        db.info.setdefault(_TOUCHED_KEY, set()).add(hash)

    async def commit(self, db: AsyncSession) -> None:
        """Commit and drop cache entries of every hash written."""
        await db.commit()
        touched = db.info.pop(_TOUCHED_KEY, set())
        if self.cache is not None:
            for hash in touched:
                await self.cache.invalidate(hash)

    async def rollback(self, db: AsyncSession) -> None:
        await db.rollback()
        db.info.pop(_TOUCHED_KEY, None)

    # ============== Reads ==============

    async def get_source(self, db: AsyncSession, hash: str) -> Optional[Translation]:
        return await self.get_translation(db, hash, SOURCE_LANG)

    async def get_translation(
        self, db: AsyncSession, hash: str, lang: str
    ) -> Optional[Translation]:
        result = await db.execute(
            select(Translation)
            .where(Translation.hash == hash, Translation.lang == lang)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_languages(self, db: AsyncSession, hash: str) -> list[Translation]:
        """All records of a hash, source first."""
        result = await db.execute(
            select(Translation)
            .where(Translation.hash == hash)
            .order_by(case((Translation.lang == SOURCE_LANG, 0), else_=1), Translation.lang)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_sources(
        self, db: AsyncSession, hashes: Iterable[str]
    ) -> dict[str, Translation]:
        hashes = list(set(hashes))
        if not hashes:
            return {}
        result = await db.execute(
            select(Translation).where(
                Translation.hash.in_(hashes), Translation.lang == SOURCE_LANG
            )
        )
        return {row.hash: row for row in result.scalars().all()}

    async def find_source_by_text(self, db: AsyncSession, text: str) -> Optional[Translation]:
        """Source record whose stored text equals the trimmed ``text``."""
        text = text.strip()
        result = await db.execute(
            select(Translation)
            .where(
                Translation.lang == SOURCE_LANG,
                Translation.source_digest == source_digest(text),
            )
            .order_by(Translation.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is not None and row.translated_text.strip() == text:
            return row
        return None

    async def is_stale(self, db: AsyncSession, hash: str, lang: str) -> bool:
        translation = await self.get_translation(db, hash, lang)
        if translation is None:
            raise TranslationNotFoundError(f"No {lang} record for {hash}")
        source = await self.get_source(db, hash)
        return compute_stale(translation, source)

    async def hashes_for_scope(self, db: AsyncSession, scope_id: int) -> list[str]:
        result = await db.execute(
            select(ScopeMapping.hash)
            .where(ScopeMapping.scope_id == scope_id)
            .order_by(ScopeMapping.hash)
        )
        return list(result.scalars().all())

    async def list_translations(
        self,
        db: AsyncSession,
        *,
        lang: Optional[str] = None,
        human: Optional[bool] = None,
        scope_id: Optional[int] = None,
        needs_review: bool = False,
        sort: str = "hash",
        descending: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Translation], int]:
        """
        Paginated listing of translation records.

        Args:
            db: Database session
            lang: Only this language ("other" for sources)
            human: Filter on the human-edited flag
            scope_id: Only hashes mapped to this scope
            needs_review: Only stale records
            sort: Column name, one of SORTABLE_FIELDS
            descending: Sort direction
            page: Page number (1-based)
            page_size: Items per page

        Returns:
            Tuple of (records, total_count)
        """
        source = aliased(Translation)
        query = select(Translation)

        if lang:
            query = query.where(Translation.lang == lang)
        if human is not None:
            query = query.where(Translation.human == human)
        if scope_id is not None:
            query = query.where(
                Translation.hash.in_(
                    select(ScopeMapping.hash).where(ScopeMapping.scope_id == scope_id)
                )
            )
        if needs_review:
            query = query.join(
                source,
                and_(source.hash == Translation.hash, source.lang == SOURCE_LANG),
                isouter=True,
            ).where(
                Translation.lang != SOURCE_LANG,
                or_(
                    Translation.reviewed_at.is_(None),
                    Translation.reviewed_at < Translation.modified_at,
                    Translation.reviewed_at < source.modified_at,
                ),
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar() or 0

        column = SORTABLE_FIELDS.get(sort, Translation.hash)
        order = column.desc() if descending else column.asc()
        query = (
            query.order_by(order, Translation.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def untranslated_hashes(
        self,
        db: AsyncSession,
        target_lang: str,
        scope_id: Optional[int] = None,
        limit: int = 100,
    ) -> list[Translation]:
        """Source records that have no ``target_lang`` translation yet."""
        target = aliased(Translation)
        query = (
            select(Translation)
            .join(
                target,
                and_(target.hash == Translation.hash, target.lang == target_lang),
                isouter=True,
            )
            .where(Translation.lang == SOURCE_LANG, target.id.is_(None))
        )
        if scope_id is not None:
            query = query.where(
                Translation.hash.in_(
                    select(ScopeMapping.hash).where(ScopeMapping.scope_id == scope_id)
                )
            )
        result = await db.execute(query.order_by(Translation.id).limit(limit))
        return list(result.scalars().all())

    # ============== Writes ==============

    async def _digest_for(self, db: AsyncSession, hash: str, text: str) -> Optional[str]:
        # The digest belongs to the first hash that claimed the text
        digest = source_digest(text)
        owner = await db.scalar(
            select(Translation.hash).where(
                Translation.source_digest == digest, Translation.hash != hash
            )
        )
        return None if owner else digest

    async def upsert_source(
        self,
        db: AsyncSession,
        hash: str,
        text: str,
        scope_level: int,
        claim_text: bool = False,
    ) -> Translation:
        """
        Insert or update the source record of a hash.

        With ``claim_text`` a new record always takes the text digest, so the
        unique constraint raises IntegrityError (on flush) when another writer
        stored the same source text first. Without it the digest stays with
        the hash that already owns the text, which is how imported markers
        sharing a text are registered.
        """
        text = text.strip()
        now = utcnow()
        level = int(ScopeLevel(scope_level))
        record = await self.get_source(db, hash)

        if record is None:
            record = Translation(
                hash=hash,
                lang=SOURCE_LANG,
                translated_text=text,
                source_digest=(
                    source_digest(text) if claim_text else await self._digest_for(db, hash, text)
                ),
                scope_level=level,
                human=True,
                created_at=now,
                modified_at=now,
                reviewed_at=now,
            )
            db.add(record)
        else:
            if record.translated_text != text:
                record.translated_text = text
                record.source_digest = await self._digest_for(db, hash, text)
            record.modified_at = now
            if record.reviewed_at is None:
                record.reviewed_at = now
            record.human = True
            if record.scope_level != level:
                record.scope_level = level
                await db.execute(
                    update(Translation)
                    .where(Translation.hash == hash, Translation.lang != SOURCE_LANG)
                    .values(scope_level=level)
                    .execution_options(synchronize_session=False)
                )

        await db.flush()
        self._touch(db, hash)
        return record

    async def upsert_translation(
        self,
        db: AsyncSession,
        hash: str,
        lang: str,
        text: str,
        is_human: bool,
        scope_level: Optional[int] = None,
    ) -> Translation:
        """Insert or update a non-source language record."""
        if lang == SOURCE_LANG:
            raise ValueError("Use upsert_source for the source record")

        source = await self.get_source(db, hash)
        if source is None:
            raise MissingSourceError(f"No source record for {hash}")
        if scope_level is not None and int(scope_level) != source.scope_level:
            raise ScopeLevelMismatchError(
                f"Scope level {scope_level} differs from source level {source.scope_level}"
            )

        now = utcnow()
        record = await self.get_translation(db, hash, lang)
        if record is None:
            record = Translation(
                hash=hash,
                lang=lang,
                translated_text=text,
                scope_level=source.scope_level,
                human=is_human,
                created_at=now,
                modified_at=now,
                reviewed_at=now,
            )
            db.add(record)
        else:
            record.translated_text = text
            record.human = is_human
            record.scope_level = source.scope_level
            record.modified_at = now
            record.reviewed_at = now

        await db.flush()
        self._touch(db, hash)
        return record

    async def mark_reviewed(self, db: AsyncSession, hash: str, lang: str) -> Translation:
        record = await self.get_translation(db, hash, lang)
        if record is None:
            raise TranslationNotFoundError(f"No {lang} record for {hash}")
        record.reviewed_at = utcnow()
        await db.flush()
        self._touch(db, hash)
        return record

    async def add_scope_mapping(
        self, db: AsyncSession, hash: str, scope_id: Optional[int]
    ) -> bool:
        """Map a hash to a scope. Returns True when a row was added."""
        if not scope_id:
            return False
        existing = await db.get(ScopeMapping, (hash, scope_id))
        if existing is not None:
            return False
        db.add(ScopeMapping(hash=hash, scope_id=scope_id, created_at=utcnow()))
        await db.flush()
        return True

    async def mark_stale(
        self, db: AsyncSession, hashes: Iterable[str], scope_level: Optional[int]
    ) -> int:
        """
        Flag the translations of ``hashes`` for re-review.

        Only records at ``scope_level`` are touched (every level when None).
        Source records are left alone. Returns the number of rows updated.
        """
        hashes = list(hashes)
        if not hashes:
            return 0
        now = utcnow()
        query = update(Translation).where(
            Translation.hash.in_(hashes),
            Translation.lang != SOURCE_LANG,
        )
        if scope_level is not None:
            query = query.where(Translation.scope_level == int(scope_level))
        result = await db.execute(
            query
            .values(
                modified_at=now,
                reviewed_at=case(
                    (Translation.reviewed_at.is_(None), now),
                    else_=Translation.reviewed_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        for hash in hashes:
            self._touch(db, hash)
        logger.info(f"Marked {result.rowcount} translations stale for {len(hashes)} hashes")
        return result.rowcount

    async def mark_scope_stale(
        self, db: AsyncSession, scope_id: int, scope_level: Optional[int] = None
    ) -> int:
        """Flag every translation mapped to a scope for re-review."""
        hashes = await self.hashes_for_scope(db, scope_id)
        return await self.mark_stale(db, hashes, scope_level)
