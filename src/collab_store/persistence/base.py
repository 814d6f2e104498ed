from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from collab_store.core.models import OpData, OpWriteResult
from collab_store.errors import StoreError


BulkRequest = Mapping[str, Iterable[str]]
BulkResult = dict[str, dict[str, Any]]


class DocumentStore(Protocol):
    async def get_snapshot(self, collection: str, name: str) -> Any | None: ...

    async def bulk_get_snapshot(self, requests: BulkRequest) -> BulkResult: ...

    async def write_snapshot(self, collection: str, name: str, data: Any) -> Any: ...

    async def write_op(self, collection: str, name: str, op_data: OpData) -> OpData: ...

    async def append_op(self, collection: str, name: str, op_data: OpData) -> OpWriteResult: ...

    async def get_version(self, collection: str, name: str) -> int: ...

    async def get_ops(self, collection: str, name: str, start: int, end: int | None = None) -> list[OpData]: ...

    async def close(self) -> None: ...


def bulk_shape(requests: BulkRequest) -> tuple[list[tuple[str, list[str]]], BulkResult]:
    """Split a bulk request into ordered (collection, names) pairs and an empty result.

    Every requested collection gets an inner mapping up front so that
    collections without hits still appear in the result. A bare string is
    rejected rather than read as a sequence of one-letter names.
    """
    pairs: list[tuple[str, list[str]]] = []
    result: BulkResult = {}
    for collection, names in requests.items():
        if isinstance(names, (str, bytes)):
            raise StoreError(f"names for collection {collection!r} must be a collection of strings, not a string")
        unique = list(dict.fromkeys(names))
        pairs.append((collection, unique))
        result[collection] = {}
    return pairs, result
