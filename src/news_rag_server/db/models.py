"""
SQLAlchemy Schema

Defines the table backing a vector collection. The collection name and vector
dimensionality are configurable, so the table is built from a factory rather
than a fixed declarative class.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    MetaData,
    Table,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from pgvector.sqlalchemy import Vector


def build_collection_table(
    metadata: MetaData,
    name: str,
    dimension: int,
) -> Table:
    """
    Build the table for one vector collection.

    Columns
    -------
    id : BIGINT
        Point identifier derived from the chunk id; never auto-generated.
    embedding : VECTOR(dimension)
        Searched with cosine distance through an HNSW index.
    payload : JSONB
        Chunk content plus its article metadata.
    updated_at : TIMESTAMPTZ
        Last upsert time.
    """
    return Table(
        name,
        metadata,
        Column("id", BigInteger, primary_key=True, autoincrement=False),
        Column("embedding", Vector(dimension), nullable=False),
        Column(
            "payload",
            JSONB,
            nullable=False,
            server_default=text("'{}'::jsonb"),
        ),
        Column(
            "updated_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        ),
        Index(
            f"ix_{name}_embedding"[:63],
            "embedding",
            postgresql_using="hnsw",
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )
