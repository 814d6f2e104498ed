from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Table, and_, or_, select, text, update
from sqlalchemy.sql.elements import TextClause

from collab_store.errors import StoreError
from collab_store.persistence.base import BulkRequest, BulkResult, bulk_shape
from collab_store.persistence.connection import Database


logger = logging.getLogger(__name__)


def lock_statement(dialect_name: str, table: Table, preparer: Any) -> TextClause | None:
    """Session-scoped table lock taken before the upsert.

    PostgreSQL gets SHARE ROW EXCLUSIVE: readers proceed, concurrent upserts
    queue behind each other. SQLite has no table locks; its UPDATE takes the
    database RESERVED lock, held until COMMIT, so no statement is needed.
    """
    if dialect_name == "postgresql":
        return text(f"LOCK TABLE {preparer.format_table(table)} IN SHARE ROW EXCLUSIVE MODE")
    if dialect_name == "sqlite":
        return None
    raise StoreError(f"no table lock known for dialect {dialect_name!r}")


class SqlSnapshotStore:
    def __init__(self, db: Database, table: Table) -> None:
        self._db = db
        self._table = table

    async def get_snapshot(self, collection: str, name: str) -> Any | None:
        t = self._table
        stmt = select(t.c.data).where(t.c.collection == collection, t.c.name == name).limit(1)
        async with self._db.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return row.data if row is not None else None

    async def bulk_get_snapshot(self, requests: BulkRequest) -> BulkResult:
        pairs, result = bulk_shape(requests)
        t = self._table
        clauses = [and_(t.c.collection == collection, t.c.name.in_(names)) for collection, names in pairs if names]
        if not clauses:
            return result

        stmt = select(t.c.collection, t.c.name, t.c.data).where(or_(*clauses))
        async with self._db.connect() as conn:
            rows = (await conn.execute(stmt)).all()

        for row in rows:
            result[row.collection][row.name] = row.data
        return result

    async def write_snapshot(self, collection: str, name: str, data: Any) -> Any:
        t = self._table
        try:
            async with self._db.transaction() as conn:
                lock = lock_statement(conn.dialect.name, t, conn.dialect.identifier_preparer)
                if lock is not None:
                    await conn.execute(lock)

                res = await conn.execute(
                    update(t).where(t.c.collection == collection, t.c.name == name).values(data=data)
                )
                if res.rowcount == 0:
                    await conn.execute(t.insert().values(collection=collection, name=name, data=data))
        except StoreError:
            logger.warning("snapshot upsert aborted", extra={"collection": collection, "doc": name})
            raise

        logger.debug(
            "snapshot written",
            extra={"collection": collection, "doc": name, "version": _version_of(data)},
        )
        return data


def _version_of(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("v", "-")
    return "-"
