"""End-to-end query against local parquet files written by DuckDB itself.

Remote storage setup is patched out; everything else (session settings, view
binding, classification, chunked and direct collection) runs for real.
"""

from __future__ import annotations

import duckdb
import pytest

from enclave_query.core.catalog import DatasetDescriptor, DatasetRegistry
from enclave_query.core.config import EngineConfig, ResourceProfile, Thresholds
from enclave_query.core.enums import PartitionScheme
from enclave_query.core.query import session as session_module
from enclave_query.core.query.engine import run_query

ROWS = 3000


@pytest.fixture
def local_events(tmp_path, monkeypatch):
    """Two yearly parquet files of ROWS rows each, registered as a by-year dataset."""
    con = duckdb.connect()
    try:
        for offset, year in enumerate((2022, 2023)):
            path = tmp_path / f"events_{year}.parquet"
            con.execute(
                f"COPY (SELECT {offset * ROWS} + i AS id, 'row-' || CAST(i AS VARCHAR) AS label, "
                f"DATE '{year}-01-01' + CAST(i AS INTEGER) AS created_at, "
                f"CASE WHEN i % 7 = 0 THEN NULL ELSE i END AS score, "
                f"CAST(i / 4 AS DECIMAL(10, 2)) AS amount "
                f"FROM range({ROWS}) t(i)) TO '{path}' (FORMAT PARQUET)"
            )
    finally:
        con.close()

    monkeypatch.setattr(session_module, "_enable_remote_storage", lambda connection: None)
    monkeypatch.setattr(
        session_module, "_configure_storage", lambda connection, descriptor, storage: None
    )

    registry = DatasetRegistry(
        [
            DatasetDescriptor(
                dataset_id="local_events",
                storage_location=str(tmp_path),
                partitioning=PartitionScheme.BY_YEAR,
                path_template="events_{year}.parquet",
                view_name="events",
            )
        ]
    )
    config = EngineConfig(
        resources=ResourceProfile(memory_limit="1GB", temp_directory=str(tmp_path), threads=1),
        thresholds=Thresholds(page_size=2048),
    )
    return registry, config


def test_large_query_is_collected_in_pages(local_events):
    registry, config = local_events
    result = run_query(
        "local_events",
        "SELECT id, label FROM events",
        "2022-01-01",
        "2023-12-31",
        config=config,
        registry=registry,
    )
    assert result.chunked
    assert not result.aborted
    assert result.page_count >= 3
    assert result.row_count == 2 * ROWS
    assert sorted(result.frame["id"].tolist()) == list(range(2 * ROWS))
    assert list(result.frame.columns) == ["id", "label"]


def test_small_query_is_fetched_directly(local_events):
    registry, config = local_events
    result = run_query(
        "local_events",
        "SELECT COUNT(*) AS n FROM events",
        "2023-01-01",
        "2023-12-31",
        config=config,
        registry=registry,
    )
    assert not result.chunked
    assert result.frame["n"].tolist() == [ROWS]


def test_aggregate_over_filtered_days(local_events):
    registry, config = local_events
    result = run_query(
        "local_events",
        "SELECT MIN(id) AS lo, MAX(id) AS hi FROM events WHERE created_at >= '2022-02-01' "
        "AND created_at <= '2022-03-01'",
        config=config,
        registry=registry,
    )
    assert result.frame["lo"].tolist() == [31]
    assert result.frame["hi"].tolist() == [59]


@pytest.mark.parametrize(
    "where", ["", "WHERE id < 0"], ids=["rows", "empty"]
)
def test_chunked_and_direct_results_have_same_dtypes(local_events, where):
    registry, config = local_events
    sql = f"SELECT id, label, created_at, score, amount FROM events {where}"
    frames = {}
    for chunked in (True, False):
        result = run_query(
            "local_events",
            sql,
            "2022-01-01",
            "2023-12-31",
            config=config,
            registry=registry,
            classifier=lambda _sql, chunked=chunked: chunked,
        )
        assert result.chunked is chunked
        frames[chunked] = result.frame

    assert list(frames[True].columns) == list(frames[False].columns)
    assert frames[True].dtypes.to_dict() == frames[False].dtypes.to_dict()
    assert len(frames[True]) == len(frames[False])
