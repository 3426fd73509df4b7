"""Dataset query functions for researcher analysis code.

Each function is a thin wrapper around :func:`enclave_query.core.query.run_query`
for one dataset and returns a pandas DataFrame. Large result sets are
collected in pages automatically, and collection stops early (with a
``MemoryPressureAbort`` warning) if the process gets close to the container
memory limit.

Usage:
    >>> from enclave_query.datasets import query_tutor
    >>> df = query_tutor(
    ...     "SELECT course_id, COUNT(*) AS n FROM tutor_data "
    ...     "WHERE created_at >= '2023-01-01' GROUP BY course_id"
    ... )
"""

from __future__ import annotations

import logging
from typing import List, Optional

import pandas as pd

from .core.catalog import get_dataset
from .core.config import EngineConfig, load_config
from .core.dates import DateLike, DateRange
from .core.paths import resolve_paths
from .core.query.engine import run_query

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG: Optional[EngineConfig] = None


def default_config() -> EngineConfig:
    """Process-wide configuration, read from the environment on first use."""
    global _DEFAULT_CONFIG
    if _DEFAULT_CONFIG is None:
        _DEFAULT_CONFIG = load_config()
    return _DEFAULT_CONFIG


def set_default_config(config: Optional[EngineConfig]) -> None:
    """Replace (or with None, reset) the process-wide configuration."""
    global _DEFAULT_CONFIG
    _DEFAULT_CONFIG = config


def query_tutor(
    sql_query: str,
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
    *,
    config: Optional[EngineConfig] = None,
) -> pd.DataFrame:
    """Query Tutor activity (view ``tutor_data``), one parquet file per year.

    Missing dates are inferred from the query's date predicates, falling back
    to 2024.
    """
    result = run_query(
        "tutor", sql_query, start_date, end_date, config=config or default_config()
    )
    return result.frame


def query_tutor_exercises(sql_query: str, *, config: Optional[EngineConfig] = None) -> pd.DataFrame:
    """Query Tutor assessment exercises (view ``exercises_data``)."""
    return run_query("tutor_exercises", sql_query, config=config or default_config()).frame


def query_tutor_notes_and_highlights(
    sql_query: str, *, config: Optional[EngineConfig] = None
) -> pd.DataFrame:
    """Query Tutor notes and highlights (view ``tutor_notes_highlights``)."""
    return run_query(
        "tutor_notes_highlights", sql_query, config=config or default_config()
    ).frame


def query_large_parquet_files(
    table: str, sql_query: str, *, config: Optional[EngineConfig] = None
) -> pd.DataFrame:
    """Query one table of the highlights export; the view is named after the table."""
    logger.info("Table: %s", table)
    return run_query(
        "notes_highlights", sql_query, name=table, config=config or default_config()
    ).frame


def query_notes_and_highlights(
    sql_query: str, *, config: Optional[EngineConfig] = None
) -> pd.DataFrame:
    """Query the ``highlights`` table of the highlights export."""
    return query_large_parquet_files("highlights", sql_query, config=config)


def query_event_capture(
    event: str, start_date: DateLike, end_date: DateLike, sql_query: str
) -> Optional[pd.DataFrame]:
    """Resolve the day-partitioned paths for an event type.

    Query execution for event capture is not implemented yet: the paths are
    resolved and logged and None is returned.
    """
    date_range = DateRange.from_values(start_date, end_date)
    logger.info("Generating date sequence from %s", date_range)
    paths: List[str] = resolve_paths(get_dataset("event_capture"), date_range, name=event)
    for p in paths:
        logger.info("Constructed path: %s", p)
    logger.warning(
        "Event capture query execution is not implemented; resolved %d path(s), "
        "query not run: %s",
        len(paths),
        sql_query,
    )
    return None


__all__ = [
    "default_config",
    "set_default_config",
    "query_tutor",
    "query_tutor_exercises",
    "query_tutor_notes_and_highlights",
    "query_large_parquet_files",
    "query_notes_and_highlights",
    "query_event_capture",
]
