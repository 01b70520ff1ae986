"""Database models for the translation store."""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from autotranslate.db.session import Base

# Language code of the canonical source record of every hash
SOURCE_LANG = "other"

HASH_LENGTH = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScopeLevel(enum.IntEnum):
    """Hierarchy levels a piece of content can belong to."""

    SYSTEM = 10
    USER = 30
    CATEGORY = 40
    COURSE = 50
    MODULE = 70
    BLOCK = 80


class Translation(Base):
    """One language variant of a tagged piece of content."""

    __tablename__ = "translations"
    __table_args__ = (
        UniqueConstraint("hash", "lang", name="uq_translations_hash_lang"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hash: Mapped[str] = mapped_column(String(HASH_LENGTH), index=True)
    lang: Mapped[str] = mapped_column(String(20), index=True)  # "other" for the source
    translated_text: Mapped[str] = mapped_column(Text)
    # SHA-256 of the trimmed source text, only set on "other" rows
    source_digest: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, nullable=True
    )
    scope_level: Mapped[int] = mapped_column(Integer, default=int(ScopeLevel.COURSE))
    human: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # NULL means never reviewed

    @property
    def is_source(self) -> bool:
        return self.lang == SOURCE_LANG


class ScopeMapping(Base):
    """Links a hash to a scope (course) where it appears."""

    __tablename__ = "scope_mappings"

    hash: Mapped[str] = mapped_column(String(HASH_LENGTH), primary_key=True)
    scope_id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class TaggingCursor(Base):
    """Progress checkpoint of the batch tagging run for one content type."""

    __tablename__ = "tagging_cursors"

    content_type: Mapped[str] = mapped_column(String(100), primary_key=True)
    table_name: Mapped[str] = mapped_column(String(100))
    last_id: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
