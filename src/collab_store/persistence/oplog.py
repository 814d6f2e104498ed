from __future__ import annotations

import logging

from sqlalchemy import Table, func, select

from collab_store.core.models import OpData, OpWriteResult, op_version
from collab_store.errors import DuplicateVersionConflict, StoreError, is_unique_violation
from collab_store.persistence.connection import Database


logger = logging.getLogger(__name__)


class SqlOpLogStore:
    def __init__(self, db: Database, table: Table) -> None:
        self._db = db
        self._table = table

    async def _insert(self, collection: str, name: str, version: int, op_data: OpData) -> None:
        stmt = self._table.insert().values(
            collection_name=collection,
            document_name=name,
            version=version,
            data=dict(op_data),
        )
        try:
            async with self._db.connect() as conn:
                await conn.execute(stmt)
        except StoreError as e:
            if is_unique_violation(e.__cause__):
                raise DuplicateVersionConflict(collection, name, version) from e.__cause__
            raise

    async def append_op(self, collection: str, name: str, op_data: OpData) -> OpWriteResult:
        version = op_version(op_data)
        try:
            await self._insert(collection, name, version, op_data)
        except DuplicateVersionConflict:
            logger.info(
                "duplicate op version suppressed",
                extra={"collection": collection, "doc": name, "version": version},
            )
            return OpWriteResult(op=op_data, created=False)

        logger.debug("op appended", extra={"collection": collection, "doc": name, "version": version})
        return OpWriteResult(op=op_data, created=True)

    async def write_op(self, collection: str, name: str, op_data: OpData) -> OpData:
        # Callers cannot tell a suppressed duplicate from a fresh insert here.
        return (await self.append_op(collection, name, op_data)).op

    async def get_version(self, collection: str, name: str) -> int:
        t = self._table
        stmt = select(func.max(t.c.version)).where(
            t.c.collection_name == collection,
            t.c.document_name == name,
        )
        async with self._db.connect() as conn:
            latest = (await conn.execute(stmt)).scalar()
        return 0 if latest is None else int(latest) + 1

    async def get_ops(self, collection: str, name: str, start: int, end: int | None = None) -> list[OpData]:
        t = self._table
        stmt = select(t.c.data).where(
            t.c.collection_name == collection,
            t.c.document_name == name,
            t.c.version >= start,
        )
        if end is not None:
            stmt = stmt.where(t.c.version < end)
        stmt = stmt.order_by(t.c.version.asc())

        async with self._db.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [row.data for row in rows]
