"""pytest configuration for collab-store.

Puts the source directory on the import path and provides stores for the
behavior tests: a LiveStore over a temporary SQLite file and an
InMemoryStore, each driven inside a single ``asyncio.run``.

Location:
- tests/conftest.py
"""

import asyncio
import os
import sys

import pytest


def pytest_configure() -> None:
    """Configure pytest to include the src directory in sys.path."""

    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    src_path = os.path.join(repo_root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture(autouse=True)
def _clean_store_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("COLLAB_STORE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def live_store(tmp_path):
    from collab_store.store import LiveStore

    return LiveStore(conn=f"sqlite:///{tmp_path / 'store.db'}", table="snapshots", ops_table="ops")


@pytest.fixture(params=["sql", "memory"])
def store(request, tmp_path):
    if request.param == "memory":
        from collab_store.persistence.memory import InMemoryStore

        return InMemoryStore()
    return request.getfixturevalue("live_store")


@pytest.fixture
def run(store):
    """Run ``scenario(store)`` on a fresh event loop, creating tables first and closing after."""

    def _run(scenario):
        async def main():
            if hasattr(store, "create_tables"):
                await store.create_tables()
            try:
                return await scenario(store)
            finally:
                await store.close()

        return asyncio.run(main())

    return _run
