"""Core query engine public API.

Centralizes query heuristics (date-range extraction, large-query
classification), the DuckDB session lifecycle and memory-bounded result
materialization over remote parquet datasets.
"""

from .classify import is_large_query, heuristic_classifier
from .extract import extract_date_range
from .session import QuerySession, open_session
from .materialize import ChunkCollection, QueryResult, collect_chunks, materialize
from .engine import plan_paths, resolve_date_range, run_query

__all__ = [
    "is_large_query",
    "heuristic_classifier",
    "extract_date_range",
    "QuerySession",
    "open_session",
    "ChunkCollection",
    "QueryResult",
    "collect_chunks",
    "materialize",
    "plan_paths",
    "resolve_date_range",
    "run_query",
]
