"""Tagging policy: which host content types, tables and fields get tagged.

The policy is an immutable, versioned snapshot. Components receive it
explicitly; changing the policy means building a new one with a higher
``version``, which also invalidates every schema derived from the old one.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from autotranslate.db.models import ScopeLevel

logger = logging.getLogger(__name__)


# Column names that usually hold human-readable text
DEFAULT_INCLUDE_FIELDS = frozenset({
    "name", "intro", "summary", "description", "content", "contents",
    "message", "text", "body", "title", "feedback", "instructions",
    "question", "answer", "response", "comment", "label", "value",
    "presentation", "instructauthors", "instructreviewers", "conclusion",
    "subject", "concept", "definition", "questiontext", "generalfeedback",
    "heading", "cachedcontent",
})

# Column names never tagged by discovery, even when text-like
DEFAULT_EXCLUDE_FIELDS = frozenset({
    "id", "timemodified", "timecreated", "dependvalue", "configdata", "path",
    "colour", "activity", "attemptreopenmethod", "pathnew", "onlinetext",
    "commenttext", "type", "format", "version", "status", "grade", "score",
    "url", "email", "phone", "ip", "token", "key", "secret", "password",
    "hash", "signature", "settings", "options", "metadata", "attributes",
    "params", "data", "json",
})

DEFAULT_SKIP_TABLES = frozenset({
    "quiz_grade_items", "workshopform_numerrors", "chat_messages_current",
    "survey", "survey_analysis", "survey_answers", "survey_questions",
})


class Relationship(BaseModel):
    """
    How a secondary table row reaches its primary record.

    ``fk`` is a column of the secondary table. Without a parent it points at
    the primary record id. With a parent it points at the parent row id and
    the parent's ``parent_fk`` points at the primary (or, with a grandparent,
    at the grandparent row whose ``grandparent_fk`` points at the primary).
    """

    model_config = ConfigDict(frozen=True)

    fk: str
    parent_table: Optional[str] = None
    parent_fk: Optional[str] = None
    grandparent_table: Optional[str] = None
    grandparent_fk: Optional[str] = None

    @model_validator(mode="after")
    def check_chain(self) -> "Relationship":
        if self.parent_table and not self.parent_fk:
            raise ValueError("parent_fk is required with parent_table")
        if self.grandparent_table and not (self.parent_table and self.grandparent_fk):
            raise ValueError("grandparent_table needs parent_table and grandparent_fk")
        return self

    @property
    def hops(self) -> int:
        if self.grandparent_table:
            return 2
        if self.parent_table:
            return 1
        return 0


class SecondaryTableConfig(BaseModel):
    """A declared secondary table with its relationship and fields."""

    model_config = ConfigDict(frozen=True)

    relationship: Relationship
    fields: tuple[str, ...] = ()


class ContentTypeConfig(BaseModel):
    """Tagging settings for one content type (primary table)."""

    model_config = ConfigDict(frozen=True)

    scope_level: ScopeLevel = ScopeLevel.MODULE
    # Explicit field selection for the primary table; empty means discover
    fields: tuple[str, ...] = ()
    secondary: dict[str, SecondaryTableConfig] = Field(default_factory=dict)
    # Column holding the scope id ("id" when the record is the scope itself)
    scope_field: Optional[str] = "course"


class TaggingPolicy(BaseModel):
    """Immutable snapshot of the tagging configuration."""

    model_config = ConfigDict(frozen=True)

    version: int = 1
    content_types: dict[str, ContentTypeConfig] = Field(default_factory=dict)
    include_fields: frozenset[str] = DEFAULT_INCLUDE_FIELDS
    exclude_fields: frozenset[str] = DEFAULT_EXCLUDE_FIELDS
    skip_tables: frozenset[str] = DEFAULT_SKIP_TABLES

    def find(self, content_type: str) -> Optional[ContentTypeConfig]:
        return self.content_types.get(content_type)

    def for_levels(self, levels: list[int]) -> list[str]:
        """Content types whose scope level is enabled."""
        return [
            name for name, config in self.content_types.items()
            if int(config.scope_level) in levels
        ]

    def replace(self, **changes) -> "TaggingPolicy":
        """Return a new snapshot with ``changes`` applied and the version bumped."""
        data = self.model_dump()
        data.update(changes)
        data["version"] = self.version + 1
        return TaggingPolicy.model_validate(data)

    @classmethod
    def from_file(cls, path: str) -> "TaggingPolicy":
        """Load a policy from a JSON file."""
        logger.info(f"Loading tagging policy from {path}")
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _direct(fk: str, *fields: str) -> SecondaryTableConfig:
    return SecondaryTableConfig(relationship=Relationship(fk=fk), fields=fields)


def _via(
    fk: str,
    parent_table: str,
    parent_fk: str,
    *fields: str,
    grandparent_table: Optional[str] = None,
    grandparent_fk: Optional[str] = None,
) -> SecondaryTableConfig:
    return SecondaryTableConfig(
        relationship=Relationship(
            fk=fk,
            parent_table=parent_table,
            parent_fk=parent_fk,
            grandparent_table=grandparent_table,
            grandparent_fk=grandparent_fk,
        ),
        fields=fields,
    )


def _module(*fields: str, **secondary: SecondaryTableConfig) -> ContentTypeConfig:
    return ContentTypeConfig(
        scope_level=ScopeLevel.MODULE,
        fields=fields,
        secondary=secondary,
        scope_field="course",
    )


DEFAULT_POLICY = TaggingPolicy(
    version=1,
    content_types={
        "course_categories": ContentTypeConfig(
            scope_level=ScopeLevel.CATEGORY,
            fields=("name", "description"),
            scope_field=None,
        ),
        "course": ContentTypeConfig(
            scope_level=ScopeLevel.COURSE,
            fields=("fullname", "shortname", "summary"),
            secondary={"course_sections": _direct("course", "name", "summary")},
            scope_field="id",
        ),
        "assign": _module("name", "intro", "activity"),
        "book": _module(
            "name", "intro",
            book_chapters=_direct("bookid", "title", "content"),
        ),
        "choice": _module(
            "name", "intro",
            choice_options=_direct("choiceid", "text"),
        ),
        "data": _module(
            "name", "intro",
            data_fields=_direct("dataid", "name", "description"),
            data_content=_via(
                "recordid", "data_records", "dataid",
                "content", "content1", "content2", "content3", "content4",
            ),
        ),
        "feedback": _module(
            "name", "intro", "page_after_submit",
            feedback_item=_direct("feedback", "name", "label"),
        ),
        "folder": _module("name", "intro"),
        "forum": _module(
            "name", "intro",
            forum_discussions=_direct("forum", "name"),
            forum_posts=_via("discussion", "forum_discussions", "forum", "subject", "message"),
        ),
        "glossary": _module(
            "name", "intro",
            glossary_entries=_direct("glossaryid", "concept", "definition"),
        ),
        "label": _module("intro", "name"),
        "lesson": _module(
            "name", "intro",
            lesson_pages=_direct("lessonid", "title", "contents"),
            lesson_answers=_via("pageid", "lesson_pages", "lessonid", "answer"),
        ),
        "lti": _module("name", "intro"),
        "page": _module("name", "intro", "content"),
        "quiz": _module("name", "intro"),
        "resource": _module("name", "intro"),
        "url": _module("name", "intro"),
        "wiki": _module(
            "name", "intro", "firstpagetitle",
            wiki_pages=_via("subwikiid", "wiki_subwikis", "wikiid", "title"),
            wiki_versions=_via(
                "pageid", "wiki_pages", "subwikiid", "content",
                grandparent_table="wiki_subwikis",
                grandparent_fk="wikiid",
            ),
        ),
        "workshop": _module(
            "name", "intro",
            workshop_submissions=_direct("workshopid", "title", "content"),
            workshop_assessments=_via(
                "submissionid", "workshop_submissions", "workshopid",
                "feedbackauthor", "feedbackreviewer",
            ),
        ),
    },
)
