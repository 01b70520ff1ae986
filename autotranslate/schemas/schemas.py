"""Pydantic schemas for request/response validation."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from autotranslate.db.models import ScopeLevel


def normalize_language(lang: str | None) -> str | None:
    """Normalize language code to standard format."""
    if lang is None:
        return None
    return lang.lower().strip().replace("-", "_")


# ============== Render Schemas ==============


class RenderRequestBody(BaseModel):
    """Request to resolve tagged text for one language."""

    texts: list[str] = Field(..., min_length=1, max_length=500, description="Text blobs to render")
    language: str = Field(..., description="Language code of the reader")
    scope_id: Optional[int] = Field(None, description="Scope (course) the text belongs to")
    scope_level: ScopeLevel = Field(ScopeLevel.COURSE, description="Scope level of the text")
    allow_html: bool = Field(True, description="Allow the machine translation indicator markup")

    @field_validator("language", mode="before")
    @classmethod
    def normalize_lang(cls, v: str | None) -> str | None:
        return normalize_language(v)


class RenderResponse(BaseModel):
    """Rendered texts, in request order."""

    texts: list[str]
    language: str


# ============== Translation Schemas ==============


class TranslationResponse(BaseModel):
    """One language variant of a hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    hash: str
    lang: str
    translated_text: str
    scope_level: int
    human: bool
    created_at: datetime
    modified_at: datetime
    reviewed_at: Optional[datetime] = None
    stale: bool = False


class TranslationListResponse(BaseModel):
    """Paginated list of translation records."""

    items: list[TranslationResponse]
    total: int
    page: int
    page_size: int


class TranslationDetailResponse(BaseModel):
    """Source text of a hash with all its language variants."""

    hash: str
    source: Optional[TranslationResponse] = None
    translations: list[TranslationResponse]


class TranslationUpdate(BaseModel):
    """Human edit of a translation."""

    translated_text: str = Field(..., min_length=1, description="Translated text")
    human: bool = Field(True, description="Whether a person supplied the text")


class UntranslatedItem(BaseModel):
    """Source text still lacking a target translation."""

    hash: str
    source_text: str
    scope_level: int


# ============== Scope Schemas ==============


class ScopeHashesResponse(BaseModel):
    scope_id: int
    hashes: list[str]


class MarkStaleRequest(BaseModel):
    scope_level: Optional[ScopeLevel] = Field(
        None, description="Only flag records at this level (all levels when omitted)"
    )


class MarkStaleResponse(BaseModel):
    scope_id: int
    updated: int


class ScopeRebuildRequest(BaseModel):
    """Request to re-tag the content of one scope."""

    content_types: Optional[list[str]] = Field(
        None, description="Content types to visit (every scoped content type when omitted)"
    )
    batch_size: Optional[int] = Field(None, ge=1, le=1000, description="Records per query")
    inline: bool = Field(False, description="Rebuild now instead of queueing")


class ScopeRebuildResponse(BaseModel):
    scope_id: int
    status: Literal["queued", "completed"]
    task_id: Optional[str] = None
    content_types: list[str] = Field(default_factory=list)
    records_processed: int = 0
    errors: int = 0
    marked_stale: int = 0


# ============== Tagging Schemas ==============


class RelationshipInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    fk: str
    parent_table: Optional[str] = None
    parent_fk: Optional[str] = None
    grandparent_table: Optional[str] = None
    grandparent_fk: Optional[str] = None


class SecondaryTableInfo(BaseModel):
    table: str
    fields: list[str]
    relationship: RelationshipInfo


class FieldSchemaResponse(BaseModel):
    """Discovered translatable fields of a content type."""

    content_type: str
    policy_version: int
    scope_level: int
    scope_field: Optional[str] = None
    primary_table: str
    primary_fields: list[str]
    secondary: list[SecondaryTableInfo]


class TaggingRunRequest(BaseModel):
    """Request to tag a content type."""

    content_type: str = Field(..., min_length=1, max_length=100, description="Primary table name")
    batch_size: Optional[int] = Field(None, ge=1, le=1000, description="Records per batch")
    inline: bool = Field(False, description="Run one batch now instead of queueing")


class TaggingRunResponse(BaseModel):
    content_type: str
    status: Literal["queued", "completed"]
    task_id: Optional[str] = None
    state: Optional[str] = None
    records_processed: int = 0
    fields_tagged: int = 0
    fields_registered: int = 0
    fields_skipped: int = 0
    errors: int = 0
    last_id: int = 0
    has_more: bool = False


class TaggingCursorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    content_type: str
    table_name: str
    last_id: int
    updated_at: Optional[datetime] = None


# ============== Health & Misc Schemas ==============


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    database: str
    cache: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Optional[str] = None


class LanguageInfo(BaseModel):
    """Information about an installed language."""

    code: str
    is_site_language: bool
    rtl: bool = False
