import argparse
import logging
from pathlib import Path
from typing import Optional

import colorlog

from enclave_query.core.catalog import DatasetRegistry
from enclave_query.core.config import EngineConfig, load_config
from enclave_query.core.errors import (
    ConfigurationError,
    EnclaveQueryError,
    QueryExecutionError,
    SessionError,
)
from enclave_query.core.memory import sample_memory, system_memory_available
from enclave_query.core.query.classify import first_limit, has_aggregation, is_large_query
from enclave_query.core.query.engine import plan_paths, resolve_date_range, run_query

from enclave_query import __version__ as _PACKAGE_VERSION

EXIT_CONFIGURATION = 2
EXIT_SESSION = 3
EXIT_QUERY = 4

OUTPUT_FORMATS = (".csv", ".json")


def setup_logging(
    verbose: bool = False, warnings_only: bool = False, errors_only: bool = False
) -> None:
    logger = logging.getLogger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    log_format = (
        "%(asctime)s:%(levelname)s:%(name)s in %(filename)s:%(funcName)s:%(lineno)d: %(message)s"
    )
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    stream_handler = colorlog.StreamHandler()
    formatter = colorlog.ColoredFormatter(f"%(log_color)s{log_format}", log_colors=log_colors)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    if errors_only:
        logger.setLevel(logging.ERROR)
    elif warnings_only:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _config_path(args: argparse.Namespace) -> Optional[Path]:
    value = getattr(args, "config", None)
    return Path(value).resolve() if value else None


def _load(args: argparse.Namespace) -> tuple[EngineConfig, DatasetRegistry]:
    path = _config_path(args)
    config = load_config(path)
    registry = DatasetRegistry.from_yaml(path) if path else DatasetRegistry.builtin()
    return config, registry


def _read_sql(args: argparse.Namespace) -> str:
    if getattr(args, "sql", None):
        return args.sql
    sql_file = getattr(args, "sql_file", None)
    if sql_file:
        path = Path(sql_file)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read SQL file {path}: {e}") from e
    raise ConfigurationError("One of --sql or --sql-file is required")


def _exit_code_for(error: EnclaveQueryError) -> int:
    if isinstance(error, SessionError):
        return EXIT_SESSION
    if isinstance(error, QueryExecutionError):
        return EXIT_QUERY
    return EXIT_CONFIGURATION


def cmd_datasets(args: argparse.Namespace) -> int:
    """List the datasets the engine knows about."""
    try:
        _, registry = _load(args)
    except ConfigurationError as e:
        logging.error("%s", e)
        return EXIT_CONFIGURATION
    for d in registry.all():
        print(f"{d.dataset_id:<24} {d.partitioning.value:<9} {d.storage_location}/{d.path_template}")
        if d.description:
            print(f"{'':<24} {d.description}")
    return 0


def cmd_paths(args: argparse.Namespace) -> int:
    """Print the remote paths a query against a dataset would bind."""
    try:
        _, registry = _load(args)
        descriptor = registry.get(args.dataset)
        sql = getattr(args, "sql", None) or ""
        paths = plan_paths(
            descriptor,
            sql,
            getattr(args, "start", None),
            getattr(args, "end", None),
            name=getattr(args, "name", None),
        )
    except ConfigurationError as e:
        logging.error("%s", e)
        return EXIT_CONFIGURATION
    for p in paths:
        print(p)
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    """Show how the heuristics read a query: size class and date range."""
    try:
        config, _ = _load(args)
        sql = _read_sql(args)
    except ConfigurationError as e:
        logging.error("%s", e)
        return EXIT_CONFIGURATION
    threshold = config.thresholds.limit_threshold
    large = is_large_query(sql, limit_threshold=threshold)
    date_range = resolve_date_range(sql)
    limit = first_limit(sql)
    print(f"large: {'yes' if large else 'no'}")
    print(f"limit: {limit if limit is not None else '-'} (threshold {threshold})")
    print(f"aggregation: {'yes' if has_aggregation(sql) else 'no'}")
    print(f"date range: {date_range}")
    return 0


def _write_output(frame, output: Path) -> None:
    suffix = output.suffix.lower()
    output.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".csv":
        frame.to_csv(output, index=False)
    else:
        frame.to_json(output, orient="records", date_format="iso")


def cmd_query(args: argparse.Namespace) -> int:
    """Run a query against a dataset and write or preview the result."""
    try:
        config, registry = _load(args)
        sql = _read_sql(args)
        output = Path(args.output) if getattr(args, "output", None) else None
        if output is not None and output.suffix.lower() not in OUTPUT_FORMATS:
            raise ConfigurationError(
                f"Unsupported output format '{output.suffix}'. "
                f"Use one of: {', '.join(OUTPUT_FORMATS)}"
            )
        result = run_query(
            args.dataset,
            sql,
            getattr(args, "start", None),
            getattr(args, "end", None),
            config=config,
            name=getattr(args, "name", None),
            registry=registry,
        )
        if output is not None:
            _write_output(result.frame, output)
    except EnclaveQueryError as e:
        logging.error("%s", e)
        return _exit_code_for(e)

    if result.aborted:
        for w in result.warnings:
            logging.warning("Partial result: %s", w)
    if output is not None:
        logging.info("Wrote %d rows to %s", result.row_count, output)
    else:
        preview = getattr(args, "preview", None)
        if preview is None:
            preview = 20
        if preview > 0:
            print(result.frame.head(preview).to_string(index=False))
        print(f"[{result.row_count} rows x {result.column_count} columns]")
    return 0


def cmd_memory(args: argparse.Namespace) -> int:
    """Print the current process memory reading and system availability."""
    try:
        config, _ = _load(args)
    except ConfigurationError as e:
        logging.error("%s", e)
        return EXIT_CONFIGURATION
    reading = sample_memory(
        "now",
        warning_gb=config.thresholds.warning_gb,
        abort_gb=config.thresholds.abort_gb,
    )
    if reading.available:
        print(f"process resident memory: {reading.resident_gb} GB")
    else:
        print(f"process memory estimate: {reading.resident_gb} GB (resident size unavailable)")
    print(f"warning threshold: {config.thresholds.warning_gb} GB")
    print(f"abort threshold: {config.thresholds.abort_gb} GB")
    available = system_memory_available()
    print(f"system: {available or 'unavailable'}")
    return 0


def _add_range_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--start", default=None, help="Start date (YYYY-MM-DD) for date-partitioned datasets")
    p.add_argument("--end", default=None, help="End date (YYYY-MM-DD) for date-partitioned datasets")
    p.add_argument(
        "--name",
        default=None,
        help="Table name (highlights export) or event type (event capture)",
    )


def _add_sql_args(p: argparse.ArgumentParser, required: bool = True) -> None:
    group = p.add_mutually_exclusive_group(required=required)
    group.add_argument("--sql", default=None, help="SQL query text")
    group.add_argument("--sql-file", default=None, help="Path to a file containing the SQL query")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="enclave-query",
        description="Memory-bounded SQL over remote parquet datasets",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {_PACKAGE_VERSION}")
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    p.add_argument(
        "--warnings-only",
        action="store_true",
        help="Only show warnings and errors",
    )
    p.add_argument(
        "--errors-only",
        action="store_true",
        help="Only show errors",
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to a YAML config (storage, resources, thresholds, datasets). "
        "Defaults to $ENCLAVE_QUERY_CONFIG when set.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    p_datasets = sub.add_parser("datasets", help="List known datasets")
    p_datasets.set_defaults(func=cmd_datasets)

    p_paths = sub.add_parser("paths", help="Print remote paths resolved for a dataset")
    p_paths.add_argument("--dataset", required=True, help="Dataset id (see 'datasets')")
    p_paths.add_argument(
        "--sql",
        default=None,
        help="Optional query; its date predicates fill missing --start/--end",
    )
    _add_range_args(p_paths)
    p_paths.set_defaults(func=cmd_paths)

    p_classify = sub.add_parser(
        "classify", help="Show the size class and date range inferred from a query"
    )
    _add_sql_args(p_classify)
    p_classify.set_defaults(func=cmd_classify)

    p_query = sub.add_parser("query", help="Run a query against a dataset")
    p_query.add_argument("--dataset", required=True, help="Dataset id (see 'datasets')")
    _add_sql_args(p_query)
    _add_range_args(p_query)
    p_query.add_argument(
        "--output",
        default=None,
        help="Write the result to this file (.csv or .json). Prints a preview when omitted.",
    )
    p_query.add_argument(
        "--preview",
        type=int,
        default=20,
        help="Rows to print when no --output is given (default 20, 0 prints only the shape)",
    )
    p_query.set_defaults(func=cmd_query)

    p_memory = sub.add_parser("memory", help="Show process and system memory")
    p_memory.set_defaults(func=cmd_memory)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        verbose=bool(args.verbose),
        warnings_only=bool(getattr(args, "warnings_only", False)),
        errors_only=bool(getattr(args, "errors_only", False)),
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
