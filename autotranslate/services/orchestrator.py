"""Batch tagging of host content, one content type at a time."""

import enum
import logging
from dataclasses import asdict, dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.db.models import TaggingCursor, utcnow
from autotranslate.exceptions import HashSpaceExhaustedError, UnknownContentTypeError
from autotranslate.services.discovery import FieldSchema, SchemaDiscovery
from autotranslate.services.host_store import HostStore, Record
from autotranslate.services.tagger import Tagger
from autotranslate.services.translation_store import TranslationStore
from autotranslate.text.markers import is_blank_or_numeric

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    """Phase of a tagging run."""

    FETCH_SCHEMA = "fetch_schema"
    FETCH_BATCH = "fetch_batch"
    TAG = "tag"
    ADVANCE = "advance"
    DONE = "done"


@dataclass
class TaggingRunResult:
    content_type: str
    state: RunState = RunState.FETCH_SCHEMA
    records_processed: int = 0
    fields_tagged: int = 0
    fields_registered: int = 0  # already carried a marker
    fields_skipped: int = 0
    errors: int = 0
    last_id: int = 0
    has_more: bool = False

    def as_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass
class ScopeRebuildResult:
    scope_id: int
    runs: list[TaggingRunResult] = field(default_factory=list)
    marked_stale: int = 0

    @property
    def records_processed(self) -> int:
        return sum(run.records_processed for run in self.runs)

    @property
    def errors(self) -> int:
        return sum(run.errors for run in self.runs)

    def as_dict(self) -> dict:
        return {
            "scope_id": self.scope_id,
            "runs": [run.as_dict() for run in self.runs],
            "records_processed": self.records_processed,
            "errors": self.errors,
            "marked_stale": self.marked_stale,
        }


class TaggingOrchestrator:
    """
    Walks the primary table of a content type in id order and tags every
    translatable field of each record and of its secondary rows.

    Progress is checkpointed in ``tagging_cursors`` after every record, so a
    run can stop after any record and resume later. A complete pass rewinds
    the cursor so the next pass picks up edited content.
    """

    def __init__(
        self,
        discovery: SchemaDiscovery,
        host: HostStore,
        tagger: Tagger,
        store: TranslationStore,
        default_batch_size: int = 20,
    ):
        self.discovery = discovery
        self.host = host
        self.tagger = tagger
        self.store = store
        self.default_batch_size = default_batch_size

    async def get_cursor(self, db: AsyncSession, content_type: str, table: str) -> TaggingCursor:
        cursor = await db.get(TaggingCursor, content_type)
        if cursor is None:
            cursor = TaggingCursor(content_type=content_type, table_name=table, last_id=0)
            db.add(cursor)
        elif cursor.table_name != table:
            cursor.table_name = table
            cursor.last_id = 0
        return cursor

    async def run(
        self,
        db: AsyncSession,
        content_type: str,
        batch_size: Optional[int] = None,
    ) -> TaggingRunResult:
        """Tag up to ``batch_size`` primary records after the saved cursor."""
        batch_size = batch_size or self.default_batch_size
        result = TaggingRunResult(content_type=content_type)

        result.state = RunState.FETCH_SCHEMA
        schema = await self.discovery.discover(content_type)
        cursor = await self.get_cursor(db, content_type, schema.primary.table)
        await self.store.commit(db)

        result.state = RunState.FETCH_BATCH
        fields = list(schema.primary.fields)
        if schema.scope_field and schema.scope_field != "id":
            fields.append(schema.scope_field)
        records = await self.host.get_records(
            schema.primary.table,
            after_id=cursor.last_id,
            limit=batch_size + 1,
            fields=fields,
        )
        result.has_more = len(records) > batch_size
        records = records[:batch_size]
        result.last_id = cursor.last_id

        for record in records:
            result.state = RunState.TAG
            await self._tag_record(db, schema, record, result)

            result.state = RunState.ADVANCE
            cursor.last_id = record.id
            cursor.updated_at = utcnow()
            await self.store.commit(db)
            result.records_processed += 1
            result.last_id = record.id

        if not result.has_more:
            cursor.last_id = 0
            cursor.updated_at = utcnow()
            await self.store.commit(db)

        result.state = RunState.DONE
        logger.info(
            f"Tagging run {content_type}: {result.records_processed} records, "
            f"{result.fields_tagged} tagged, {result.errors} errors, has_more={result.has_more}"
        )
        return result

    async def rebuild_scope(
        self,
        db: AsyncSession,
        scope_id: int,
        content_types: Optional[list[str]] = None,
        batch_size: Optional[int] = None,
    ) -> ScopeRebuildResult:
        """
        Re-tag every record that belongs to one scope, then flag the scope's
        translations for review.

        Without ``content_types`` every policy content type with a scope field
        is visited and the ones missing from the host are skipped. Cursors of
        regular runs are left untouched.
        """
        batch_size = batch_size or self.default_batch_size
        result = ScopeRebuildResult(scope_id=scope_id)

        if content_types is None:
            names = [
                name for name, config in self.discovery.policy.content_types.items()
                if config.scope_field
            ]
        else:
            names = content_types

        for content_type in names:
            try:
                schema = await self.discovery.discover(content_type)
            except UnknownContentTypeError:
                if content_types is not None:
                    raise
                logger.debug(f"Rebuild of scope {scope_id}: skipping {content_type}")
                continue
            if not schema.scope_field:
                if content_types is not None:
                    raise UnknownContentTypeError(
                        f"Content type {content_type} is not mapped to scopes"
                    )
                continue
            result.runs.append(await self._rebuild_content_type(db, schema, scope_id, batch_size))

        result.marked_stale = await self.store.mark_scope_stale(db, scope_id)
        await self.store.commit(db)
        logger.info(
            f"Rebuilt scope {scope_id}: {result.records_processed} records, "
            f"{result.marked_stale} translations flagged for review"
        )
        return result

    async def _rebuild_content_type(
        self, db: AsyncSession, schema: FieldSchema, scope_id: int, batch_size: int
    ) -> TaggingRunResult:
        run = TaggingRunResult(content_type=schema.content_type, state=RunState.FETCH_BATCH)
        fields = list(schema.primary.fields)
        if schema.scope_field != "id":
            fields.append(schema.scope_field)

        after_id = 0
        while True:
            records = await self.host.get_records(
                schema.primary.table,
                after_id=after_id,
                limit=batch_size,
                filters={schema.scope_field: scope_id},
                fields=fields,
            )
            run.state = RunState.TAG
            for record in records:
                await self._tag_record(db, schema, record, run)
                await self.store.commit(db)
                run.records_processed += 1
                run.last_id = after_id = record.id
            if len(records) < batch_size:
                break

        run.state = RunState.DONE
        return run

    def scope_id_for(self, schema: FieldSchema, record: Record) -> Optional[int]:
        if not schema.scope_field:
            return None
        if schema.scope_field == "id":
            return record.id
        value = record.get(schema.scope_field)
        return int(value) if value else None

    async def _tag_record(
        self, db: AsyncSession, schema: FieldSchema, record: Record, result: TaggingRunResult
    ) -> None:
        scope_id = self.scope_id_for(schema, record)

        for field in schema.primary.fields:
            await self._tag_field(db, schema, record, field, scope_id, result)

        for secondary in schema.secondary:
            try:
                rows = await self.host.get_related_records(
                    secondary.table, secondary.relationship, record.id, secondary.fields
                )
            except Exception as e:
                logger.error(
                    f"Failed to load {secondary.table} rows for "
                    f"{schema.content_type} {record.id}: {e}"
                )
                result.errors += 1
                continue

            for row in rows:
                for field in secondary.fields:
                    await self._tag_field(db, schema, row, field, scope_id, result)

    async def _tag_field(
        self,
        db: AsyncSession,
        schema: FieldSchema,
        record: Record,
        field: str,
        scope_id: Optional[int],
        result: TaggingRunResult,
    ) -> None:
        value = record.get(field)
        if not isinstance(value, str) or is_blank_or_numeric(value):
            result.fields_skipped += 1
            return

        try:
            tag = await self.tagger.tag_text(db, value, schema.scope_level, scope_id)
            await self.store.commit(db)
            if tag.already_tagged:
                result.fields_registered += 1
                return
            # The field is written only once its translation records are committed
            await self.host.update_field(record.table, record.id, field, tag.tagged_text)
            result.fields_tagged += 1
        except HashSpaceExhaustedError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to tag {schema.content_type} {record.table}.{field} "
                f"id={record.id}: {e}"
            )
            await self.store.rollback(db)
            result.errors += 1
