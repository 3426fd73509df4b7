"""Error and warning types raised by the query engine.

- ConfigurationError: unknown dataset, malformed dates or partition inputs
- SessionError: the DuckDB session could not be opened or configured
- QueryExecutionError: the submitted SQL failed against the registered view
- MemoryPressureAbort: warning issued when chunked collection stops early
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class EnclaveQueryError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(EnclaveQueryError):
    """Invalid dataset, date or configuration input."""


class SessionError(EnclaveQueryError):
    """Failure while opening or configuring a query session.

    Attributes:
        paths: Remote path(s) the session was being bound to.
    """

    def __init__(self, message: str, paths: Optional[Sequence[str]] = None) -> None:
        self.paths: List[str] = list(paths or [])
        if self.paths:
            message = f"{message} (paths attempted: {', '.join(self.paths)})"
        super().__init__(message)


class QueryExecutionError(EnclaveQueryError):
    """The query failed while executing or fetching results."""

    def __init__(self, message: str, sql: str = "", table: str = "") -> None:
        self.sql = sql
        self.table = table
        super().__init__(message)


class MemoryPressureAbort(UserWarning):
    """Chunked collection stopped because resident memory crossed the abort threshold.

    Issued with ``warnings.warn``; the partial result is still returned.
    """


__all__ = [
    "EnclaveQueryError",
    "ConfigurationError",
    "SessionError",
    "QueryExecutionError",
    "MemoryPressureAbort",
]
