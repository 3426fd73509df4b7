from __future__ import annotations

import gc
import logging
import time
import warnings
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional

import pandas as pd

from ..config import EngineConfig
from ..errors import MemoryPressureAbort, QueryExecutionError
from ..memory import MemoryReading, sample_memory
from .classify import QueryClassifier, heuristic_classifier
from .session import QuerySession

logger = logging.getLogger(__name__)

MemoryMonitor = Callable[[str], MemoryReading]

# rows per DuckDB vector; pages are fetched in whole vectors
VECTOR_SIZE = 2048


@dataclass
class ChunkCollection:
    """Pages fetched so far by one chunked execution."""

    pages: List[pd.DataFrame] = field(default_factory=list)
    total_rows: int = 0
    page_count: int = 0
    aborted: bool = False
    abort_message: Optional[str] = None

    def add(self, page: pd.DataFrame) -> None:
        self.pages.append(page)
        self.page_count += 1
        self.total_rows += len(page)

    def combine(self, empty: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """Concatenate pages in fetch order.

        With no pages, ``empty`` (the typed zero-row frame of the result) is
        returned, or a frame without columns when there is none.
        """
        if not self.pages:
            return empty if empty is not None else pd.DataFrame()
        if len(self.pages) == 1:
            return self.pages[0]
        return pd.concat(self.pages, ignore_index=True)


@dataclass
class QueryResult:
    """Materialized rows plus how they were collected."""

    frame: pd.DataFrame
    chunked: bool = False
    aborted: bool = False
    page_count: int = 0
    elapsed_seconds: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return int(len(self.frame))

    @property
    def column_count(self) -> int:
        return int(len(self.frame.columns))


def default_monitor(config: EngineConfig) -> MemoryMonitor:
    return partial(
        sample_memory,
        warning_gb=config.thresholds.warning_gb,
        abort_gb=config.thresholds.abort_gb,
    )


def vectors_per_page(page_size: int) -> int:
    """Whole DuckDB vectors needed to cover ``page_size`` rows."""
    return max(1, -(-page_size // VECTOR_SIZE))


def _close_quietly(cursor: Any) -> None:
    close = getattr(cursor, "close", None)
    if close is None:
        return
    try:
        close()
    except Exception as e:  # logged only
        logger.warning("Failed to release query cursor: %s", e)


def collect_chunks(
    connection: Any,
    sql: str,
    table_label: str,
    *,
    page_size: int,
    monitor: MemoryMonitor,
) -> tuple[pd.DataFrame, ChunkCollection]:
    """Fetch ``sql`` results in pages of about ``page_size`` rows.

    Pages are pandas frames converted by DuckDB itself
    (``fetch_df_chunk``), so column dtypes match a single ``.df()`` fetch.
    ``page_size`` is rounded up to whole vectors of ``VECTOR_SIZE`` rows.

    Memory is sampled after every page. When a reading crosses the abort
    threshold, collection stops and the rows fetched so far are returned;
    a ``MemoryPressureAbort`` warning is issued once the cursor is released.

    Raises:
        QueryExecutionError: If executing or fetching fails. The cursor is
            released first; a failure to release it is only logged.
    """
    logger.info("Executing query with chunked result collection...")
    monitor("before chunked execution")

    vectors = vectors_per_page(page_size)
    state = ChunkCollection()
    empty: Optional[pd.DataFrame] = None
    cursor = None
    try:
        cursor = connection.sql(sql)
        if cursor is not None:
            chunk_num = 0
            while True:
                chunk_num += 1
                logger.info("Fetching chunk %d...", chunk_num)
                page = cursor.fetch_df_chunk(vectors)
                if len(page) == 0:
                    empty = page
                    break
                state.add(page)

                reading = monitor(f"after chunk {chunk_num}")
                if reading.should_abort:
                    state.aborted = True
                    state.abort_message = (
                        f"Memory usage too high ({reading.resident_gb} GB), stopped chunked "
                        f"collection on {table_label} after {state.total_rows} rows"
                    )
                    logger.warning(state.abort_message)
                    break
                gc.collect()
    except Exception as e:
        raise QueryExecutionError(
            f"Chunked query execution failed on {table_label}: {e}", sql=sql, table=table_label
        ) from e
    finally:
        if cursor is not None:
            _close_quietly(cursor)

    if state.aborted:
        warnings.warn(state.abort_message, MemoryPressureAbort, stacklevel=3)

    logger.info(
        "Combining %d chunks with total %d rows...", len(state.pages), state.total_rows
    )
    frame = state.combine(empty)
    state.pages = []
    gc.collect()
    monitor("after chunked execution complete")
    return frame, state


def materialize(
    session: QuerySession,
    sql: str,
    table_label: str,
    *,
    config: EngineConfig,
    classifier: Optional[QueryClassifier] = None,
    monitor: Optional[MemoryMonitor] = None,
) -> QueryResult:
    """Run ``sql`` on an open session and collect the full result.

    Queries the classifier predicts to be small are fetched in one call;
    large ones go through :func:`collect_chunks`. A memory abort during
    chunked collection is not an error: the partial result comes back with
    ``aborted`` set and the warning text in ``warnings``.

    Raises:
        QueryExecutionError: If the query fails.
    """
    classifier = classifier or heuristic_classifier(config.thresholds.limit_threshold)
    monitor = monitor or default_monitor(config)
    connection = session.connection

    logger.info("Analyzing query for memory optimization...")
    large = classifier(sql)

    start = time.perf_counter()
    if large:
        logger.info("Large query detected - using chunked result collection...")
        frame, state = collect_chunks(
            connection,
            sql,
            table_label,
            page_size=config.thresholds.page_size,
            monitor=monitor,
        )
        result = QueryResult(frame=frame, chunked=True, page_count=state.page_count)
        if state.aborted:
            result.aborted = True
            result.warnings.append(state.abort_message or "chunked collection aborted")
    else:
        logger.info("Executing query against %s...", table_label)
        monitor("before query execution")
        try:
            frame = connection.execute(sql).df()
        except Exception as e:
            raise QueryExecutionError(
                f"Query execution failed on {table_label}: {e}", sql=sql, table=table_label
            ) from e
        monitor("after query execution")
        result = QueryResult(frame=frame, page_count=1)

    result.elapsed_seconds = round(time.perf_counter() - start, 2)
    logger.info("Query completed in %s seconds", result.elapsed_seconds)
    logger.info("Result rows: %d", result.row_count)
    logger.info("Result columns: %d", result.column_count)
    return result


__all__ = [
    "ChunkCollection",
    "QueryResult",
    "collect_chunks",
    "materialize",
    "default_monitor",
    "vectors_per_page",
]
