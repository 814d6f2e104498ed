"""Store facade consumed by the OT engine.

One ``LiveStore`` owns one connection provider and the two tables named in
its configuration::

    store = LiveStore(conn="postgresql://localhost/docs", table="snapshots", ops_table="ops")
    snapshot = await store.get_snapshot("notes", "readme")
    ops = await store.get_ops("notes", "readme", start=snapshot["v"])
    await store.close()
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import MetaData

from collab_store.config import StoreSettings, load_settings
from collab_store.core.models import OpData, OpWriteResult
from collab_store.logging_config import configure_logging
from collab_store.persistence.base import BulkRequest, BulkResult, DocumentStore
from collab_store.persistence.connection import Database
from collab_store.persistence.oplog import SqlOpLogStore
from collab_store.persistence.snapshots import SqlSnapshotStore
from collab_store.persistence import tables


class LiveStore(DocumentStore):
    def __init__(
        self,
        conn: str | None = None,
        table: str | None = None,
        ops_table: str | None = None,
        *,
        settings: StoreSettings | None = None,
        **options: Any,
    ) -> None:
        if settings is None:
            settings = load_settings(conn=conn, table=table, ops_table=ops_table, **options)
        self.settings = settings

        self._metadata = MetaData()
        self._db = Database(settings)
        self._snapshots = SqlSnapshotStore(self._db, tables.snapshot_table(self._metadata, settings.table))
        self._ops = SqlOpLogStore(self._db, tables.ops_table(self._metadata, settings.ops_table))

    @classmethod
    def from_env(cls) -> "LiveStore":
        """Build from ``COLLAB_STORE_*`` variables, installing stdout logging if none is set up."""
        configure_logging()
        return cls(settings=load_settings())

    @property
    def closed(self) -> bool:
        return self._db.closed

    async def __aenter__(self) -> "LiveStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    async def get_snapshot(self, collection: str, name: str) -> Any | None:
        return await self._snapshots.get_snapshot(collection, name)

    async def bulk_get_snapshot(self, requests: BulkRequest) -> BulkResult:
        return await self._snapshots.bulk_get_snapshot(requests)

    async def write_snapshot(self, collection: str, name: str, data: Any) -> Any:
        return await self._snapshots.write_snapshot(collection, name, data)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def write_op(self, collection: str, name: str, op_data: OpData) -> OpData:
        return await self._ops.write_op(collection, name, op_data)

    async def append_op(self, collection: str, name: str, op_data: OpData) -> OpWriteResult:
        return await self._ops.append_op(collection, name, op_data)

    async def get_version(self, collection: str, name: str) -> int:
        return await self._ops.get_version(collection, name)

    async def get_ops(self, collection: str, name: str, start: int, end: int | None = None) -> list[OpData]:
        return await self._ops.get_ops(collection, name, start, end)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def create_tables(self) -> None:
        await self._db.create_tables(self._metadata)

    async def health_check(self) -> bool:
        return await self._db.health_check()

    async def close(self) -> None:
        await self._db.close()
