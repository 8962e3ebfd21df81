"""
Database Package

Provides the async engine factory, the collection schema and the
pgvector-backed vector index.
"""

from .session import create_engine, normalize_database_url
from .models import build_collection_table
from .schemas import IndexedPoint, SearchResult
from .vector_store import VectorIndex, VectorIndexError, point_id_for

__all__ = [
    "create_engine",
    "normalize_database_url",
    "build_collection_table",
    "IndexedPoint",
    "SearchResult",
    "VectorIndex",
    "VectorIndexError",
    "point_id_for",
]
