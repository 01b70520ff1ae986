"""Discovery of translatable fields in the host schema."""

import logging
from dataclasses import dataclass
from typing import Optional

from autotranslate.content_types import (
    ContentTypeConfig,
    Relationship,
    TaggingPolicy,
)
from autotranslate.db.models import ScopeLevel
from autotranslate.exceptions import UnknownContentTypeError
from autotranslate.services.host_store import ColumnInfo, HostStore

logger = logging.getLogger(__name__)

TEXT_TYPE_MARKERS = ("text", "varchar", "char", "clob", "string")
BINARY_TYPE_MARKERS = ("blob", "bytea")


@dataclass(frozen=True)
class TableFields:
    table: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class SecondaryTable:
    table: str
    fields: tuple[str, ...]
    relationship: Relationship


@dataclass(frozen=True)
class FieldSchema:
    """Translatable fields of one content type."""

    content_type: str
    policy_version: int
    scope_level: ScopeLevel
    scope_field: Optional[str]
    primary: TableFields
    secondary: tuple[SecondaryTable, ...] = ()

    @property
    def tables(self) -> list[str]:
        return [self.primary.table, *(s.table for s in self.secondary)]


def is_text_column(column: ColumnInfo, explicit: bool = False) -> bool:
    """Text-like columns; binary ones only when selected explicitly."""
    if any(marker in column.type_name for marker in TEXT_TYPE_MARKERS):
        return True
    return explicit and any(marker in column.type_name for marker in BINARY_TYPE_MARKERS)


class SchemaDiscovery:
    """Derives a FieldSchema per content type from the host and the policy."""

    def __init__(self, host: HostStore, policy: TaggingPolicy):
        self.host = host
        self.policy = policy
        self._cache: dict[tuple[str, int], FieldSchema] = {}

    def invalidate(self, content_type: Optional[str] = None) -> None:
        if content_type is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] == content_type]:
            del self._cache[key]

    def use_policy(self, policy: TaggingPolicy) -> None:
        """Switch to a new policy snapshot."""
        if policy.version != self.policy.version:
            self.invalidate()
        self.policy = policy

    async def discover(self, content_type: str) -> FieldSchema:
        key = (content_type, self.policy.version)
        if key not in self._cache:
            self._cache[key] = await self._discover(content_type)
        return self._cache[key]

    def _select_fields(
        self, columns: list[ColumnInfo], explicit: tuple[str, ...]
    ) -> tuple[str, ...]:
        if explicit:
            wanted = set(explicit)
            return tuple(
                c.name for c in columns
                if c.name in wanted and is_text_column(c, explicit=True)
            )
        return tuple(
            c.name for c in columns
            if is_text_column(c)
            and c.name.lower() in self.policy.include_fields
            and c.name.lower() not in self.policy.exclude_fields
        )

    async def _columns(self, table: str) -> Optional[list[ColumnInfo]]:
        try:
            return await self.host.introspect_columns(table)
        except Exception as e:
            logger.warning(f"Skipping table {table}: introspection failed: {e}")
            return None

    def _heuristic_relationship(
        self, content_type: str, columns: list[ColumnInfo]
    ) -> Optional[Relationship]:
        names = {c.name for c in columns}
        for candidate in (content_type, f"{content_type}id"):
            if candidate in names:
                return Relationship(fk=candidate)
        return None

    async def _discover(self, content_type: str) -> FieldSchema:
        config = self.policy.find(content_type) or ContentTypeConfig()

        if content_type in self.policy.skip_tables or not await self.host.has_table(content_type):
            raise UnknownContentTypeError(f"No host table for content type {content_type}")

        primary_columns = await self._columns(content_type)
        if primary_columns is None:
            raise UnknownContentTypeError(f"Cannot introspect table {content_type}")

        primary = TableFields(content_type, self._select_fields(primary_columns, config.fields))

        scope_field = config.scope_field
        if scope_field and scope_field != "id" and scope_field not in {c.name for c in primary_columns}:
            logger.warning(f"{content_type}: scope field {scope_field} not found, scope mapping disabled")
            scope_field = None

        secondary: dict[str, SecondaryTable] = {}
        for table in await self.host.list_tables_matching(content_type):
            if table == content_type or table in self.policy.skip_tables:
                continue
            columns = await self._columns(table)
            if columns is None:
                continue

            declared = config.secondary.get(table)
            if declared is not None:
                relationship = declared.relationship
                fields = self._select_fields(columns, declared.fields)
            else:
                relationship = self._heuristic_relationship(content_type, columns)
                if relationship is None:
                    logger.debug(f"{content_type}: no foreign key in {table}, dropped")
                    continue
                fields = self._select_fields(columns, ())

            if fields:
                secondary[table] = SecondaryTable(table, fields, relationship)

        # Declared tables outside the name prefix
        for table, declared in config.secondary.items():
            if table in secondary or table in self.policy.skip_tables:
                continue
            if not await self.host.has_table(table):
                logger.debug(f"{content_type}: declared table {table} not in host")
                continue
            columns = await self._columns(table)
            if columns is None:
                continue
            fields = self._select_fields(columns, declared.fields)
            if fields:
                secondary[table] = SecondaryTable(table, fields, declared.relationship)

        schema = FieldSchema(
            content_type=content_type,
            policy_version=self.policy.version,
            scope_level=ScopeLevel(config.scope_level),
            scope_field=scope_field,
            primary=primary,
            secondary=tuple(secondary.values()),
        )
        logger.info(
            f"Discovered {content_type}: {len(primary.fields)} primary fields, "
            f"{len(schema.secondary)} secondary tables"
        )
        return schema
