"""Render-time resolution of markers into language-appropriate text."""

import hashlib
import html
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.config import Settings
from autotranslate.db.models import SOURCE_LANG, ScopeLevel
from autotranslate.services.cache import CachedTranslation, ContentCache
from autotranslate.services.tagger import Tagger
from autotranslate.services.translation_store import TranslationStore
from autotranslate.text.markers import (
    MarkerMatch,
    find_markers,
    is_blank_or_numeric,
    normalize_whitespace,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedText:
    display_text: str
    is_auto: bool  # machine translated, not reviewed by a person


@dataclass
class RenderRequest:
    """Per-request rendering options and memo."""

    language: str
    scope_id: Optional[int] = None
    scope_level: int = ScopeLevel.COURSE
    allow_html: bool = True
    memo: dict[str, ResolvedText] = field(default_factory=dict)


def text_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ResolutionEngine:
    """Replaces markers with translations, tagging unseen content on the fly."""

    def __init__(
        self,
        store: TranslationStore,
        tagger: Tagger,
        cache: ContentCache,
        settings: Settings,
    ):
        self.store = store
        self.tagger = tagger
        self.cache = cache
        self.settings = settings

    @property
    def indicator(self) -> str:
        label = html.escape(self.settings.machine_translation_indicator)
        return f' <span class="autotranslate-indicator">({label})</span>'

    async def render(self, db: AsyncSession, text: str, request: RenderRequest) -> str:
        """
        Resolve every marker in ``text`` for the requested language.

        Never raises: on any failure the original text is returned.
        """
        if not text or int(request.scope_level) not in self.settings.enabled_scope_levels:
            return text
        try:
            return await self._render(db, text, request)
        except Exception:
            logger.exception("Rendering failed, returning original text")
            await self.store.rollback(db)
            return text

    async def _render(self, db: AsyncSession, text: str, request: RenderRequest) -> str:
        markers = find_markers(text)
        if not markers:
            if is_blank_or_numeric(text):
                return text
            text = await self._lazy_tag(db, text, request)
            markers = find_markers(text)
            if not markers:
                return text

        parts = []
        for match in markers:
            resolved = request.memo.get(match.hash)
            if resolved is None:
                resolved = await self._resolve(db, match, request)
                request.memo[match.hash] = resolved

            preceding = match.preceding_text
            leading = preceding[: len(preceding) - len(preceding.lstrip())]
            parts.append(leading + resolved.display_text)
            if resolved.is_auto and request.allow_html:
                parts.append(self.indicator)

        parts.append(text[markers[-1].end:])
        return "".join(parts)

    async def _lazy_tag(self, db: AsyncSession, text: str, request: RenderRequest) -> str:
        digest = text_digest(text)
        cached = await self.cache.get_tagged(digest, request.scope_id)
        if cached is not None:
            return cached.tagged_text

        result = await self.tagger.tag_text(db, text, request.scope_level, request.scope_id)
        await self.store.commit(db)
        await self.cache.set_tagged(digest, request.scope_id, result.tagged_text, result.hash)
        logger.debug(f"Lazily tagged content as {result.hash}")
        return result.tagged_text

    def target_language(self, language: str) -> str:
        lang = language.strip().lower()
        if lang == self.settings.site_language.lower():
            return SOURCE_LANG
        return lang

    async def _resolve(
        self, db: AsyncSession, match: MarkerMatch, request: RenderRequest
    ) -> ResolvedText:
        preceding = match.source_text
        source = await self.store.get_source(db, match.hash)
        source_text = source.translated_text if source is not None else None

        if preceding and (
            source_text is None
            or normalize_whitespace(source_text) != normalize_whitespace(preceding)
        ):
            level = source.scope_level if source is not None else request.scope_level
            await self.store.upsert_source(db, match.hash, preceding, level)
            await self.store.add_scope_mapping(db, match.hash, request.scope_id)
            await self.store.commit(db)
            source_text = preceding

        lang = self.target_language(request.language)
        if lang == SOURCE_LANG:
            return ResolvedText(source_text or preceding, is_auto=False)

        translation = await self._lookup(db, match.hash, lang)
        if translation is not None and translation.text:
            return ResolvedText(translation.text, is_auto=not translation.human)
        return ResolvedText(source_text or preceding, is_auto=False)

    async def _lookup(self, db: AsyncSession, hash: str, lang: str) -> Optional[CachedTranslation]:
        cached = await self.cache.get_translation(hash, lang)
        if cached is not None:
            return cached
        record = await self.store.get_translation(db, hash, lang)
        if record is None:
            return None
        cached = CachedTranslation(text=record.translated_text, human=record.human)
        await self.cache.set_translation(hash, lang, cached.text, cached.human)
        return cached
