"""Access to the host application's content tables."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy import MetaData, Table, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from autotranslate.content_types import Relationship

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Record:
    """One host row with an explicit projection of its fields."""

    table: str
    id: int
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type_name: str  # lower-cased SQL type, e.g. "varchar(255)"


class HostStore(ABC):
    """Generic read and update-by-id interface over host tables.

    Table names are given without the host table prefix.
    """

    @abstractmethod
    async def get_record(
        self, table: str, id: int, fields: Optional[Sequence[str]] = None
    ) -> Optional[Record]:
        ...

    @abstractmethod
    async def get_records(
        self,
        table: str,
        *,
        after_id: int = 0,
        limit: int = 100,
        filters: Optional[dict[str, Any]] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> list[Record]:
        """Rows with ``id > after_id`` in id order."""

    @abstractmethod
    async def update_field(self, table: str, id: int, field: str, value: Any) -> None:
        ...

    @abstractmethod
    async def introspect_columns(self, table: str) -> list[ColumnInfo]:
        ...

    @abstractmethod
    async def list_tables_matching(self, prefix: str) -> list[str]:
        ...

    @abstractmethod
    async def has_table(self, table: str) -> bool:
        ...

    @abstractmethod
    async def get_related_records(
        self,
        table: str,
        relationship: Relationship,
        primary_id: int,
        fields: Sequence[str],
    ) -> list[Record]:
        """Rows of a secondary table that belong to one primary record."""


class SQLAlchemyHostStore(HostStore):
    """HostStore over any database SQLAlchemy can reflect."""

    def __init__(self, engine: AsyncEngine, table_prefix: str = ""):
        self.engine = engine
        self.table_prefix = table_prefix
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}

    def _full_name(self, table: str) -> str:
        return f"{self.table_prefix}{table}"

    async def _table(self, table: str) -> Table:
        if table not in self._tables:
            full_name = self._full_name(table)
            async with self.engine.connect() as conn:
                self._tables[table] = await conn.run_sync(
                    lambda sync_conn: Table(full_name, self._metadata, autoload_with=sync_conn)
                )
        return self._tables[table]

    def _columns(self, table: Table, fields: Optional[Sequence[str]]):
        if fields is None:
            return [table]
        names = ["id", *[f for f in fields if f != "id"]]
        return [table.c[name] for name in names if name in table.c]

    def _to_record(self, table: str, row) -> Record:
        data = dict(row._mapping)
        return Record(table=table, id=int(data.pop("id")), fields=data)

    async def get_record(self, table, id, fields=None):
        t = await self._table(table)
        query = select(*self._columns(t, fields)).where(t.c.id == id)
        async with self.engine.connect() as conn:
            row = (await conn.execute(query)).first()
        return self._to_record(table, row) if row else None

    async def get_records(self, table, *, after_id=0, limit=100, filters=None, fields=None):
        t = await self._table(table)
        query = select(*self._columns(t, fields)).where(t.c.id > after_id)
        for name, value in (filters or {}).items():
            query = query.where(t.c[name] == value)
        query = query.order_by(t.c.id).limit(limit)
        async with self.engine.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [self._to_record(table, row) for row in rows]

    async def update_field(self, table, id, field, value):
        t = await self._table(table)
        async with self.engine.begin() as conn:
            await conn.execute(update(t).where(t.c.id == id).values({field: value}))

    async def introspect_columns(self, table):
        full_name = self._full_name(table)
        async with self.engine.connect() as conn:
            columns = await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).get_columns(full_name)
            )
        return [ColumnInfo(name=c["name"], type_name=str(c["type"]).lower()) for c in columns]

    async def list_tables_matching(self, prefix):
        full_prefix = self._full_name(prefix)
        async with self.engine.connect() as conn:
            names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        return sorted(
            name[len(self.table_prefix):] for name in names if name.startswith(full_prefix)
        )

    async def has_table(self, table):
        full_name = self._full_name(table)
        async with self.engine.connect() as conn:
            return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(full_name))

    async def get_related_records(self, table, relationship, primary_id, fields):
        s = await self._table(table)
        query = select(*self._columns(s, fields))

        if relationship.parent_table is None:
            query = query.where(s.c[relationship.fk] == primary_id)
        else:
            p = await self._table(relationship.parent_table)
            query = query.join(p, s.c[relationship.fk] == p.c.id)
            if relationship.grandparent_table is None:
                query = query.where(p.c[relationship.parent_fk] == primary_id)
            else:
                g = await self._table(relationship.grandparent_table)
                query = query.join(g, p.c[relationship.parent_fk] == g.c.id)
                query = query.where(g.c[relationship.grandparent_fk] == primary_id)

        query = query.order_by(s.c.id)
        async with self.engine.connect() as conn:
            rows = (await conn.execute(query)).all()
        return [self._to_record(table, row) for row in rows]
