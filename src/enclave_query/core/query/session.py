"""DuckDB session lifecycle for one query call.

A session is a fresh in-memory DuckDB connection with remote S3 access, the
container resource profile applied and a view bound over the resolved
parquet paths. ``open_session`` is a context manager: the connection is
closed exactly once when the block exits, whatever happens inside it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import duckdb

from ..catalog import DatasetDescriptor
from ..config import EngineConfig, ResourceProfile, StorageSettings
from ..errors import SessionError

logger = logging.getLogger(__name__)

SECRET_NAME = "enclave_s3"

Connector = Callable[..., Any]


@dataclass
class QuerySession:
    """An open connection and the views registered on it."""

    connection: Any
    memory_limit: str
    views: Dict[str, List[str]] = field(default_factory=dict)
    row_count: Optional[int] = None


def sql_literal(value: str) -> str:
    """Quote a string as a SQL literal."""
    return "'" + str(value).replace("'", "''") + "'"


def _sql_bool(value: bool) -> str:
    return "true" if value else "false"


def _enable_remote_storage(connection: Any) -> None:
    logger.info("Setting up S3 access...")
    connection.execute("INSTALL httpfs;")
    connection.execute("LOAD httpfs;")


def secret_statement(storage: StorageSettings, region: str, endpoint: Optional[str]) -> str:
    """Build the CREATE SECRET statement for S3 access."""
    opts = ["TYPE s3"]
    if storage.has_explicit_credentials:
        opts.append(f"KEY_ID {sql_literal(storage.access_key_id or '')}")
        opts.append(f"SECRET {sql_literal(storage.secret_access_key or '')}")
    else:
        opts.append("PROVIDER credential_chain")
    opts.append(f"REGION {sql_literal(region)}")
    if endpoint:
        opts.append(f"ENDPOINT {sql_literal(endpoint)}")
        opts.append("URL_STYLE 'path'")
    opts.append(f"USE_SSL {_sql_bool(storage.use_ssl)}")
    return f"CREATE OR REPLACE SECRET {SECRET_NAME} ({', '.join(opts)});"


def _configure_storage(
    connection: Any, descriptor: DatasetDescriptor, storage: StorageSettings
) -> None:
    region = descriptor.region or storage.region
    endpoint = storage.endpoint
    if endpoint is None and descriptor.region:
        endpoint = f"s3.{region}.amazonaws.com"
    if storage.has_explicit_credentials:
        logger.info("Using AWS credentials from configuration")
    else:
        logger.info("No explicit AWS credentials configured - using default credential chain")
    connection.execute(secret_statement(storage, region, endpoint))
    logger.debug("S3 region %s, endpoint %s", region, endpoint or "default")


def resource_statements(resources: ResourceProfile) -> List[str]:
    return [
        f"SET memory_limit={sql_literal(resources.memory_limit)};",
        f"SET max_memory={sql_literal(resources.memory_limit)};",
        f"SET temp_directory={sql_literal(resources.temp_directory)};",
        f"SET threads={int(resources.threads)};",
        f"SET preserve_insertion_order={_sql_bool(resources.preserve_insertion_order)};",
        f"SET enable_progress_bar={_sql_bool(resources.enable_progress_bar)};",
    ]


def _apply_resources(connection: Any, resources: ResourceProfile) -> None:
    logger.info("Configuring memory limits...")
    for statement in resource_statements(resources):
        connection.execute(statement)


def view_statement(view_name: str, paths: Sequence[str]) -> str:
    """CREATE VIEW over one parquet path/glob, or a union of several."""
    if len(paths) == 1:
        source = sql_literal(paths[0])
    else:
        source = "[" + ", ".join(sql_literal(p) for p in paths) + "]"
    return f'CREATE OR REPLACE VIEW "{view_name}" AS SELECT * FROM read_parquet({source})'


def _probe_row_count(connection: Any, view_name: str) -> int:
    row = connection.execute(f'SELECT COUNT(*) AS total_rows FROM "{view_name}"').fetchone()
    return int(row[0]) if row else 0


def _release(connection: Any) -> None:
    try:
        connection.close()
    except Exception as e:  # logged only
        logger.warning("Failed to close DuckDB connection cleanly: %s", e)
    else:
        logger.info("DuckDB connection closed")


@contextmanager
def open_session(
    descriptor: DatasetDescriptor,
    paths: Sequence[str],
    view_name: str,
    *,
    config: EngineConfig,
    connect: Optional[Connector] = None,
    probe_row_count: Optional[bool] = None,
) -> Iterator[QuerySession]:
    """Open a configured DuckDB session with ``view_name`` bound to ``paths``.

    Args:
        descriptor: Dataset the paths belong to (supplies the region pin).
        paths: Resolved remote paths; at least one.
        view_name: Name queries use to reference the data.
        config: Engine configuration (storage and resource profile).
        connect: Connection factory, ``duckdb.connect`` by default.
        probe_row_count: Run a ``COUNT(*)`` over the view after creating it.
            Defaults to ``config.probe_row_count``.

    Yields:
        QuerySession for the duration of the ``with`` block.

    Raises:
        SessionError: If opening, configuring or binding the view fails. The
            attempted paths are included in the message and on ``.paths``.
    """
    paths = list(paths)
    if not paths:
        raise SessionError(f"No paths resolved for dataset '{descriptor.dataset_id}'")
    if probe_row_count is None:
        probe_row_count = config.probe_row_count
    connect = connect or duckdb.connect

    logger.info("Connecting to DuckDB...")
    try:
        connection = connect(database=":memory:")
    except Exception as e:
        raise SessionError(f"Failed to open DuckDB connection: {e}", paths=paths) from e

    try:
        try:
            _enable_remote_storage(connection)
            _configure_storage(connection, descriptor, config.storage)
            _apply_resources(connection, config.resources)
            logger.info("Creating view %s over %d parquet path(s)...", view_name, len(paths))
            connection.execute(view_statement(view_name, paths))
            session = QuerySession(
                connection=connection,
                memory_limit=config.resources.memory_limit,
                views={view_name: paths},
            )
            if probe_row_count:
                session.row_count = _probe_row_count(connection, view_name)
                logger.info("Total rows available: %s", session.row_count)
        except Exception as e:
            raise SessionError(
                f"Failed to set up session for dataset '{descriptor.dataset_id}': {e}",
                paths=paths,
            ) from e
        yield session
    finally:
        _release(connection)


__all__ = [
    "QuerySession",
    "open_session",
    "secret_statement",
    "resource_statements",
    "view_statement",
    "sql_literal",
]
