from __future__ import annotations

import sqlite3
from typing import Any

from sqlalchemy.exc import IntegrityError


PG_UNIQUE_VIOLATION = "23505"

_SQLITE_UNIQUE_CODES = {
    sqlite3.SQLITE_CONSTRAINT_UNIQUE,
    sqlite3.SQLITE_CONSTRAINT_PRIMARYKEY,
}


class CollabStoreError(Exception):
    pass


class ConfigurationError(CollabStoreError):
    pass


class StoreError(CollabStoreError):
    pass


class DuplicateVersionConflict(StoreError):
    def __init__(self, collection: str, name: str, version: int) -> None:
        super().__init__(f"version {version} already recorded for {collection}/{name}")
        self.collection = collection
        self.name = name
        self.version = version


def _sqlstate(err: Any) -> str | None:
    code = getattr(err, "sqlstate", None) or getattr(err, "pgcode", None)
    return str(code) if code else None


def is_unique_violation(exc: BaseException) -> bool:
    """Return True when ``exc`` is a unique-constraint failure.

    Only integrity errors qualify. The wrapped DBAPI error is checked for the
    PostgreSQL SQLSTATE (asyncpg exposes it on the adapted error and on the
    chained driver error) and for SQLite's extended result codes.
    """
    if not isinstance(exc, IntegrityError):
        return False

    orig = exc.orig
    for err in (orig, getattr(orig, "__cause__", None)):
        if err is not None and _sqlstate(err) == PG_UNIQUE_VIOLATION:
            return True

    return getattr(orig, "sqlite_errorcode", None) in _SQLITE_UNIQUE_CODES
