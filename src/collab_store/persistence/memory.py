from __future__ import annotations

import asyncio
import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from collab_store.core.models import OpData, OpWriteResult, op_version
from collab_store.errors import StoreError
from collab_store.persistence.base import BulkRequest, BulkResult, DocumentStore, bulk_shape


DocKey = Tuple[str, str]


def _stored_copy(value: Any) -> Any:
    """Copy a payload the way a JSON column would store it."""
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError) as e:
        raise StoreError(f"payload is not JSON-serializable: {e}") from e


@dataclass
class _DocLog:
    ops: Dict[int, OpData] = field(default_factory=dict)


class InMemoryStore(DocumentStore):
    """Process-local store with the same contract as the SQL-backed one."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._snapshots: Dict[DocKey, Any] = {}
        self._logs: Dict[DocKey, _DocLog] = {}
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise StoreError("store is closed")

    async def get_snapshot(self, collection: str, name: str) -> Any | None:
        self._check_open()
        async with self._lock:
            return copy.deepcopy(self._snapshots.get((collection, name)))

    async def bulk_get_snapshot(self, requests: BulkRequest) -> BulkResult:
        self._check_open()
        pairs, result = bulk_shape(requests)
        async with self._lock:
            for collection, names in pairs:
                for name in names:
                    key = (collection, name)
                    if key in self._snapshots:
                        result[collection][name] = copy.deepcopy(self._snapshots[key])
        return result

    async def write_snapshot(self, collection: str, name: str, data: Any) -> Any:
        self._check_open()
        stored = _stored_copy(data)
        async with self._lock:
            self._snapshots[(collection, name)] = stored
        return data

    async def append_op(self, collection: str, name: str, op_data: OpData) -> OpWriteResult:
        self._check_open()
        version = op_version(op_data)
        stored = _stored_copy(dict(op_data))
        async with self._lock:
            log = self._logs.setdefault((collection, name), _DocLog())
            if version in log.ops:
                return OpWriteResult(op=op_data, created=False)
            log.ops[version] = stored
        return OpWriteResult(op=op_data, created=True)

    async def write_op(self, collection: str, name: str, op_data: OpData) -> OpData:
        return (await self.append_op(collection, name, op_data)).op

    async def get_version(self, collection: str, name: str) -> int:
        self._check_open()
        async with self._lock:
            log = self._logs.get((collection, name))
            return max(log.ops) + 1 if log and log.ops else 0

    async def get_ops(self, collection: str, name: str, start: int, end: int | None = None) -> list[OpData]:
        self._check_open()
        async with self._lock:
            log = self._logs.get((collection, name))
            if log is None:
                return []
            return [
                copy.deepcopy(log.ops[v])
                for v in sorted(log.ops)
                if v >= start and (end is None or v < end)
            ]

    async def close(self) -> None:
        self.closed = True
