"""Single query call: dataset lookup, date range, paths, session, results."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..catalog import DatasetDescriptor, DatasetRegistry, default_registry
from ..config import EngineConfig
from ..dates import DateLike, DateRange, coerce_date
from ..errors import ConfigurationError
from ..paths import resolve_paths, view_name_for
from .classify import QueryClassifier
from .extract import extract_date_range
from .materialize import MemoryMonitor, QueryResult, materialize
from .session import Connector, open_session

logger = logging.getLogger(__name__)


def resolve_date_range(
    sql: str, start: Optional[DateLike] = None, end: Optional[DateLike] = None
) -> DateRange:
    """Combine explicit bounds with bounds extracted from ``sql``.

    Only the missing bounds are taken from the query text (or the defaults).
    A filled-in bound that would land on the wrong side of the explicit one
    is moved to the explicit bound's calendar year.

    Raises:
        ConfigurationError: If a bound is malformed, or both are explicit and
            start is after end.
    """
    start_date = coerce_date(start, label="start_date") if start is not None else None
    end_date = coerce_date(end, label="end_date") if end is not None else None
    if start_date is None or end_date is None:
        logger.info("Extracting date range from SQL query...")
        extracted = extract_date_range(sql)
        if start_date is None and end_date is None:
            start_date, end_date = extracted.start, extracted.end
        elif start_date is None:
            start_date = extracted.start
            if start_date > end_date:
                start_date = date(end_date.year, 1, 1)
        else:
            end_date = extracted.end
            if start_date > end_date:
                end_date = date(start_date.year, 12, 31)
        logger.info("Using start_date %s and end_date %s", start_date, end_date)
    return DateRange(start_date, end_date)


def plan_paths(
    descriptor: DatasetDescriptor,
    sql: str,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    *,
    name: Optional[str] = None,
) -> list[str]:
    """Resolve the remote paths a query against ``descriptor`` needs."""
    date_range = None
    if descriptor.partitioning.is_date_partitioned:
        date_range = resolve_date_range(sql, start, end)
        logger.info("Date range for file selection: %s", date_range)
    paths = resolve_paths(descriptor, date_range, name=name)
    for p in paths:
        logger.debug("S3 path: %s", p)
    return paths


def run_query(
    dataset_id: str,
    sql: str,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    *,
    config: EngineConfig,
    name: Optional[str] = None,
    registry: Optional[DatasetRegistry] = None,
    connect: Optional[Connector] = None,
    classifier: Optional[QueryClassifier] = None,
    monitor: Optional[MemoryMonitor] = None,
) -> QueryResult:
    """Run ``sql`` against a remote dataset within the configured memory budget.

    Args:
        dataset_id: Id of a registered dataset (e.g. "tutor").
        sql: Query referencing the dataset's view name.
        start: Explicit lower date bound for date-partitioned datasets.
        end: Explicit upper date bound for date-partitioned datasets.
        config: Engine configuration built at process start.
        name: Table or event name for wildcard and by-day datasets.
        registry: Dataset registry; the built-in one by default.
        connect: DuckDB connection factory override.
        classifier: Large-query predicate override.
        monitor: Memory sampler override.

    Returns:
        QueryResult with the collected rows.

    Raises:
        ConfigurationError: Unknown or paths-only dataset, or malformed inputs.
        SessionError: The DuckDB session could not be set up.
        QueryExecutionError: The query itself failed.
    """
    registry = registry or default_registry()
    descriptor = registry.get(dataset_id)
    if not descriptor.executable:
        raise ConfigurationError(
            f"Query execution for dataset '{dataset_id}' is not implemented; "
            f"only path resolution is available"
        )
    logger.info("Starting memory-efficient %s query using DuckDB", dataset_id)
    logger.debug("SQL Query: %s", sql)

    paths = plan_paths(descriptor, sql, start, end, name=name)
    view_name = view_name_for(descriptor, name)
    with open_session(descriptor, paths, view_name, config=config, connect=connect) as session:
        return materialize(
            session,
            sql,
            view_name,
            config=config,
            classifier=classifier,
            monitor=monitor,
        )


__all__ = ["run_query", "plan_paths", "resolve_date_range"]
