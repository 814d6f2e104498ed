"""Store configuration via pydantic-settings.

Keyword options win over environment variables, which use the
``COLLAB_STORE_`` prefix (e.g. ``COLLAB_STORE_CONN=postgresql://...``).

Usage:
    from collab_store.config import load_settings
    settings = load_settings(conn=dsn, table="snapshots", ops_table="ops")
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from collab_store.errors import ConfigurationError


class StoreSettings(BaseSettings):
    """Connection target, table names and pool tuning for one store."""

    model_config = SettingsConfigDict(env_prefix="COLLAB_STORE_", extra="ignore")

    # ------------------------------------------------------------------
    # Required
    # ------------------------------------------------------------------
    conn: str = Field(min_length=1)
    table: str = Field(min_length=1)
    ops_table: str = Field(min_length=1)

    # ------------------------------------------------------------------
    # Pool
    # ------------------------------------------------------------------
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=20, ge=0)
    pool_timeout: float = Field(default=30.0, gt=0)
    pool_recycle: int = 3600
    echo: bool = False

    @model_validator(mode="after")
    def _distinct_tables(self) -> "StoreSettings":
        if self.table == self.ops_table:
            raise ValueError("table and ops_table must name different tables")
        return self


def load_settings(**options: Any) -> StoreSettings:
    """Build settings, raising ConfigurationError for missing or bad keys."""
    given = {k: v for k, v in options.items() if v is not None}
    try:
        return StoreSettings(**given)
    except ValidationError as e:
        problems = [f"{'.'.join(map(str, err['loc'])) or 'settings'}: {err['msg']}" for err in e.errors()]
        raise ConfigurationError("invalid store configuration: " + "; ".join(problems)) from e


def normalize_dsn(dsn: str) -> str:
    """Select the async driver for bare ``postgresql://`` and ``sqlite://`` DSNs."""
    for prefix, target in (
        ("postgresql://", "postgresql+asyncpg://"),
        ("postgres://", "postgresql+asyncpg://"),
        ("sqlite://", "sqlite+aiosqlite://"),
    ):
        if dsn.startswith(prefix):
            return dsn.replace(prefix, target, 1)
    return dsn
