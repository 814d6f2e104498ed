"""Schema contract for the snapshot and operation tables.

The tables are built per configured name on a private ``MetaData`` so one
process can hold stores for several table pairs. DDL is only issued by
``LiveStore.create_tables``; production schemas are expected to exist.
"""

from sqlalchemy import JSON, CheckConstraint, Column, Integer, MetaData, String, Table, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB


JsonData = JSON().with_variant(JSONB(), "postgresql")


def snapshot_table(metadata: MetaData, name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("collection", String, nullable=False),
        Column("name", String, nullable=False),
        Column("data", JsonData),
        UniqueConstraint("collection", "name", name=f"uq_{name}_collection_name"),
    )


def ops_table(metadata: MetaData, name: str) -> Table:
    return Table(
        name,
        metadata,
        Column("collection_name", String, nullable=False),
        Column("document_name", String, nullable=False),
        Column("version", Integer, nullable=False),
        Column("data", JsonData, nullable=False),
        UniqueConstraint("collection_name", "document_name", "version", name=f"uq_{name}_doc_version"),
        CheckConstraint("version >= 0", name=f"ck_{name}_version_nonneg"),
    )
