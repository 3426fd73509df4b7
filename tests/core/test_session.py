"""Tests for the DuckDB session lifecycle."""

from __future__ import annotations

import pytest

from enclave_query.core.catalog import get_dataset
from enclave_query.core.config import EngineConfig, StorageSettings
from enclave_query.core.errors import SessionError
from enclave_query.core.query.session import (
    open_session,
    resource_statements,
    secret_statement,
    view_statement,
)

from conftest import FakeConnection

TUTOR_PATHS = [
    "s3://openstax-enclave-data/tutor/v1/openstax_tutor_2023-01-01__2023-12-31.parquet",
    "s3://openstax-enclave-data/tutor/v1/openstax_tutor_2024-01-01__2024-12-31.parquet",
]


class TestOpenSession:
    def test_configures_and_binds_view(self, engine_config, fake_connection, connector):
        with open_session(
            get_dataset("tutor"), TUTOR_PATHS, "tutor_data", config=engine_config, connect=connector
        ) as session:
            assert session.connection is fake_connection
            assert session.views == {"tutor_data": TUTOR_PATHS}
            assert session.row_count == 42
            assert session.memory_limit == "5GB"
            assert fake_connection.close_calls == 0

        assert fake_connection.close_calls == 1
        assert connector.calls == [{"database": ":memory:"}]
        statements = fake_connection.statements
        assert statements[:2] == ["INSTALL httpfs;", "LOAD httpfs;"]
        secret = statements[2]
        assert "PROVIDER credential_chain" in secret
        assert "REGION 'us-west-2'" in secret
        assert "ENDPOINT 's3.us-west-2.amazonaws.com'" in secret
        assert "SET memory_limit='5GB';" in statements
        assert "SET threads=4;" in statements
        assert any(s.startswith('CREATE OR REPLACE VIEW "tutor_data"') for s in statements)
        assert statements[-1] == 'SELECT COUNT(*) AS total_rows FROM "tutor_data"'

    def test_fault_at_view_registration_releases_once(self, engine_config):
        """A failing view registration still closes the connection exactly once."""
        connection = FakeConnection(fail_on="CREATE OR REPLACE VIEW")
        with pytest.raises(SessionError) as excinfo:
            with open_session(
                get_dataset("tutor"),
                TUTOR_PATHS,
                "tutor_data",
                config=engine_config,
                connect=lambda **kwargs: connection,
            ):
                pytest.fail("session body must not run")

        assert connection.close_calls == 1
        assert excinfo.value.paths == TUTOR_PATHS
        assert TUTOR_PATHS[0] in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_fault_in_body_releases_once(self, engine_config, fake_connection, connector):
        with pytest.raises(ValueError, match="analysis failed"):
            with open_session(
                get_dataset("tutor_exercises"),
                ["s3://b/x.parquet"],
                "exercises_data",
                config=engine_config,
                connect=connector,
            ):
                raise ValueError("analysis failed")
        assert fake_connection.close_calls == 1

    def test_close_failure_is_logged(self, engine_config, caplog):
        connection = FakeConnection()

        def broken_close():
            connection.close_calls += 1
            raise RuntimeError("already closed")

        connection.close = broken_close
        with open_session(
            get_dataset("tutor_exercises"),
            ["s3://b/x.parquet"],
            "exercises_data",
            config=engine_config,
            connect=lambda **kwargs: connection,
        ):
            pass
        assert connection.close_calls == 1
        assert "Failed to close DuckDB connection cleanly" in caplog.text

    def test_connect_failure(self, engine_config):
        def refuse(**kwargs):
            raise RuntimeError("out of file descriptors")

        with pytest.raises(SessionError, match="Failed to open DuckDB connection"):
            with open_session(
                get_dataset("tutor"), TUTOR_PATHS, "tutor_data", config=engine_config, connect=refuse
            ):
                pass

    def test_no_paths(self, engine_config, connector):
        with pytest.raises(SessionError, match="No paths resolved"):
            with open_session(
                get_dataset("tutor"), [], "tutor_data", config=engine_config, connect=connector
            ):
                pass
        assert connector.calls == []

    def test_row_count_can_be_disabled(self, fake_connection, connector):
        config = EngineConfig(probe_row_count=False)
        with open_session(
            get_dataset("tutor_exercises"),
            ["s3://b/x.parquet"],
            "exercises_data",
            config=config,
            connect=connector,
        ) as session:
            assert session.row_count is None
        assert not any("COUNT(*)" in s for s in fake_connection.statements)

    def test_unpinned_dataset_uses_configured_region(self, fake_connection, connector):
        config = EngineConfig(storage=StorageSettings(region="eu-central-1"))
        with open_session(
            get_dataset("notes_highlights"),
            ["s3://b/public.highlights/1/combined*.parquet"],
            "highlights",
            config=config,
            connect=connector,
        ):
            pass
        secret = fake_connection.statements[2]
        assert "REGION 'eu-central-1'" in secret
        assert "ENDPOINT" not in secret


def test_secret_statement_with_credentials():
    storage = StorageSettings(access_key_id="AKIAEXAMPLE", secret_access_key="it's")
    statement = secret_statement(storage, "us-east-2", None)
    assert statement.startswith("CREATE OR REPLACE SECRET enclave_s3 (TYPE s3, ")
    assert "KEY_ID 'AKIAEXAMPLE'" in statement
    assert "SECRET 'it''s'" in statement
    assert "credential_chain" not in statement
    assert "USE_SSL true" in statement


def test_resource_statements(engine_config):
    assert resource_statements(engine_config.resources) == [
        "SET memory_limit='5GB';",
        "SET max_memory='5GB';",
        "SET temp_directory='/tmp';",
        "SET threads=4;",
        "SET preserve_insertion_order=false;",
        "SET enable_progress_bar=false;",
    ]


def test_view_statement():
    assert view_statement("v", ["s3://b/a.parquet"]) == (
        "CREATE OR REPLACE VIEW \"v\" AS SELECT * FROM read_parquet('s3://b/a.parquet')"
    )
    assert view_statement("v", ["a.parquet", "b.parquet"]) == (
        "CREATE OR REPLACE VIEW \"v\" AS SELECT * FROM read_parquet(['a.parquet', 'b.parquet'])"
    )
