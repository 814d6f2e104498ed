"""Tests for snapshot reads, bulk lookups and the race-free upsert.

Each test runs against both the SQLite-backed LiveStore and InMemoryStore.
"""

import asyncio

import pytest
from sqlalchemy import MetaData
from sqlalchemy.dialects import postgresql, sqlite

from collab_store.errors import StoreError
from collab_store.persistence.snapshots import lock_statement
from collab_store.persistence.tables import snapshot_table


def test_missing_snapshot_is_absent(run) -> None:
    """A document that was never written has no snapshot."""

    async def scenario(store):
        return await store.get_snapshot("notes", "nope")

    assert run(scenario) is None


def test_write_then_read_returns_written_data(run) -> None:
    """The first write creates the row and returns the data verbatim."""

    data = {"v": 3, "type": "text", "data": "hello"}

    async def scenario(store):
        written = await store.write_snapshot("notes", "readme", data)
        return written, await store.get_snapshot("notes", "readme")

    written, read = run(scenario)
    assert written == data
    assert read == data


def test_second_write_updates_in_place(run) -> None:
    """A later write replaces the document without touching its neighbours."""

    async def scenario(store):
        await store.write_snapshot("notes", "a", {"v": 1, "data": "first"})
        await store.write_snapshot("notes", "b", {"v": 1, "data": "other"})
        await store.write_snapshot("notes", "a", {"v": 2, "data": "second"})
        return await store.bulk_get_snapshot({"notes": ["a", "b"]})

    assert run(scenario) == {
        "notes": {
            "a": {"v": 2, "data": "second"},
            "b": {"v": 1, "data": "other"},
        }
    }


def test_same_name_in_different_collections_is_distinct(run) -> None:
    async def scenario(store):
        await store.write_snapshot("notes", "x", {"data": "n"})
        await store.write_snapshot("tasks", "x", {"data": "t"})
        return await store.get_snapshot("notes", "x"), await store.get_snapshot("tasks", "x")

    assert run(scenario) == ({"data": "n"}, {"data": "t"})


def test_read_returns_copy_not_shared_reference(run) -> None:
    """Mutating a returned snapshot must not change what the store holds."""

    async def scenario(store):
        await store.write_snapshot("notes", "doc", {"items": [1, 2]})
        first = await store.get_snapshot("notes", "doc")
        first["items"].append(3)
        return await store.get_snapshot("notes", "doc")

    assert run(scenario) == {"items": [1, 2]}


def test_concurrent_writes_to_new_document_leave_one_submitted_payload(run) -> None:
    """Racing first writers never fail and leave exactly one of their payloads."""

    payloads = [{"v": i, "data": f"writer-{i}"} for i in range(8)]

    async def scenario(store):
        results = await asyncio.gather(*(store.write_snapshot("notes", "race", p) for p in payloads))
        final = await store.get_snapshot("notes", "race")
        bulk = await store.bulk_get_snapshot({"notes": ["race"]})
        return results, final, bulk

    results, final, bulk = run(scenario)
    assert results == payloads
    assert final in payloads
    assert list(bulk["notes"]) == ["race"]


def test_concurrent_writes_never_duplicate_rows(live_store) -> None:
    """The upsert lock keeps the (collection, name) pair to a single row."""

    from sqlalchemy import func, select

    async def main():
        await live_store.create_tables()
        try:
            await asyncio.gather(
                *(live_store.write_snapshot("notes", "race", {"v": i}) for i in range(10))
            )
            table = live_store._snapshots._table
            async with live_store._db.connect() as conn:
                stmt = select(func.count()).select_from(table).where(table.c.name == "race")
                return (await conn.execute(stmt)).scalar()
        finally:
            await live_store.close()

    assert asyncio.run(main()) == 1


def test_bulk_get_reshapes_and_keeps_every_requested_collection(run) -> None:
    """Misses are left out of inner mappings; requested collections always appear."""

    async def scenario(store):
        await store.write_snapshot("A", "x", {"data": "X"})
        await store.write_snapshot("B", "z", {"data": "Z"})
        await store.write_snapshot("B", "unrequested", {"data": "U"})
        return await store.bulk_get_snapshot({"A": ["x", "y"], "B": ["z"], "C": ["w"]})

    assert run(scenario) == {
        "A": {"x": {"data": "X"}},
        "B": {"z": {"data": "Z"}},
        "C": {},
    }


def test_bulk_get_with_empty_name_lists_skips_query(run) -> None:
    async def scenario(store):
        await store.write_snapshot("A", "x", {"data": "X"})
        return await store.bulk_get_snapshot({"A": [], "B": []})

    assert run(scenario) == {"A": {}, "B": {}}


def test_bulk_get_with_no_requests_is_empty(run) -> None:
    async def scenario(store):
        return await store.bulk_get_snapshot({})

    assert run(scenario) == {}


def test_bulk_get_tolerates_repeated_names(run) -> None:
    async def scenario(store):
        await store.write_snapshot("A", "x", {"data": "X"})
        return await store.bulk_get_snapshot({"A": ("x", "x")})

    assert run(scenario) == {"A": {"x": {"data": "X"}}}


def test_postgres_upsert_takes_share_row_exclusive_lock() -> None:
    table = snapshot_table(MetaData(), "doc snapshots")
    stmt = lock_statement("postgresql", table, postgresql.dialect().identifier_preparer)

    assert stmt is not None
    assert stmt.text == 'LOCK TABLE "doc snapshots" IN SHARE ROW EXCLUSIVE MODE'


def test_sqlite_upsert_relies_on_database_write_lock() -> None:
    table = snapshot_table(MetaData(), "snapshots")

    assert lock_statement("sqlite", table, sqlite.dialect().identifier_preparer) is None


def test_failed_upsert_rolls_back_and_frees_the_next_write(run) -> None:
    """A write that fails midway leaves the old row and blocks no later writer."""

    unserializable = {"v": 2, "cursor": object()}

    async def scenario(store):
        await store.write_snapshot("notes", "kept", {"v": 1})
        for name in ("kept", "fresh"):
            with pytest.raises(StoreError):
                await store.write_snapshot("notes", name, unserializable)

        after_failure = await store.get_snapshot("notes", "kept"), await store.get_snapshot("notes", "fresh")
        await asyncio.wait_for(store.write_snapshot("notes", "kept", {"v": 3}), timeout=2)
        return after_failure, await store.get_snapshot("notes", "kept")

    after_failure, final = run(scenario)
    assert after_failure == ({"v": 1}, None)
    assert final == {"v": 3}


@pytest.mark.parametrize("names", ["xy", b"xy"])
def test_bulk_get_rejects_bare_string_name_list(run, names) -> None:
    """A string is not split into one-letter document names."""

    async def scenario(store):
        await store.write_snapshot("A", "xy", {"data": "XY"})
        with pytest.raises(StoreError, match="not a string"):
            await store.bulk_get_snapshot({"A": names})
        return await store.bulk_get_snapshot({"A": ["xy"]})

    assert run(scenario) == {"A": {"xy": {"data": "XY"}}}
