"""Shared pytest fixtures and DuckDB fakes for query engine testing."""

from __future__ import annotations

from typing import List, Optional, Sequence

import pandas as pd
import pytest

from enclave_query.core.config import EngineConfig, StorageSettings
from enclave_query.core.memory import MemoryReading


class FakeRelation:
    """Stand-in for a DuckDB relation: hands out prebuilt pages via ``fetch_df_chunk``."""

    def __init__(
        self,
        pages: Sequence[pd.DataFrame],
        columns: Sequence[str] = (),
        fail_on_fetch: Optional[int] = None,
        fail_on_close: bool = False,
    ) -> None:
        self._pages = list(pages)
        self.empty = pd.DataFrame(columns=list(columns))
        self.fail_on_fetch = fail_on_fetch
        self.fail_on_close = fail_on_close
        self.fetch_calls = 0
        self.vector_requests: List[int] = []
        self.close_calls = 0

    def fetch_df_chunk(self, vectors_per_chunk: int = 1) -> pd.DataFrame:
        self.fetch_calls += 1
        self.vector_requests.append(vectors_per_chunk)
        if self.fail_on_fetch is not None and self.fetch_calls == self.fail_on_fetch:
            raise RuntimeError("IO Error: connection reset while fetching")
        if not self._pages:
            return self.empty
        return self._pages.pop(0)

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_on_close:
            raise RuntimeError("close failed")


class FakeResult:
    def __init__(self, frame: Optional[pd.DataFrame] = None, row: Optional[tuple] = None):
        self._frame = frame
        self._row = row

    def df(self) -> pd.DataFrame:
        return self._frame if self._frame is not None else pd.DataFrame()

    def fetchone(self) -> Optional[tuple]:
        return self._row


class FakeConnection:
    """Records every statement; raises on the first one containing ``fail_on``."""

    def __init__(
        self,
        *,
        fail_on: Optional[str] = None,
        relation: Optional[FakeRelation] = None,
        frame: Optional[pd.DataFrame] = None,
        row_count: int = 0,
    ) -> None:
        self.fail_on = fail_on
        self.relation = relation
        self.frame = frame
        self.row_count = row_count
        self.statements: List[str] = []
        self.close_calls = 0

    def _record(self, statement: str) -> None:
        self.statements.append(statement)
        if self.fail_on and self.fail_on in statement:
            raise RuntimeError(f"Catalog Error: failed on {self.fail_on}")

    def execute(self, statement: str) -> FakeResult:
        self._record(statement)
        if "COUNT(*) AS total_rows" in statement:
            return FakeResult(row=(self.row_count,))
        return FakeResult(frame=self.frame)

    def sql(self, statement: str) -> Optional[FakeRelation]:
        self._record(statement)
        return self.relation

    def close(self) -> None:
        self.close_calls += 1


def make_monitor(abort_on: Sequence[str] = ()):
    """Memory monitor that reports 7.5 GB at the given stages and 1 GB elsewhere."""
    stages: List[str] = []

    def monitor(stage: str) -> MemoryReading:
        stages.append(stage)
        over = stage in abort_on
        return MemoryReading(
            stage=stage,
            resident_gb=7.5 if over else 1.0,
            over_warning=over,
            over_abort=over,
        )

    monitor.stages = stages  # type: ignore[attr-defined]
    return monitor


def numbered_pages(*sizes: int) -> List[pd.DataFrame]:
    """Frames of the given sizes with consecutive ``id`` values across pages."""
    pages = []
    start = 0
    for size in sizes:
        ids = list(range(start, start + size))
        pages.append(pd.DataFrame({"id": ids, "label": [f"row-{i}" for i in ids]}))
        start += size
    return pages


@pytest.fixture
def engine_config() -> EngineConfig:
    """Default configuration with no credentials, independent of the environment."""
    return EngineConfig(storage=StorageSettings(region="us-east-2"))


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection(row_count=42)


@pytest.fixture
def connector(fake_connection):
    """Connection factory returning ``fake_connection``; records its kwargs."""
    calls: List[dict] = []

    def connect(**kwargs):
        calls.append(kwargs)
        return fake_connection

    connect.calls = calls  # type: ignore[attr-defined]
    return connect
