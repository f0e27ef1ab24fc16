"""
Tests for the session: reproduction record, schema cache and statement echo.
"""

import dataclasses

import pytest

from core.errors import SessionCreationError
from core.query import Query
from tests.conftest import FakeDatabaseError, FakeDialect


class TestRecord:

    def test_execute_appends_to_record(self, session):
        query = Query("INSERT INTO t0 VALUES (1)")
        assert session.execute(query)
        assert session.state.statements == [query]

    def test_failed_statement_is_still_recorded(self, session):
        session.connection.failures["boom"] = "ERROR: boom"
        query = Query("INSERT INTO boom VALUES (1)")
        with pytest.raises(FakeDatabaseError):
            session.execute(query)
        assert session.state.statements == [query]

    def test_execute_and_get_sets_last_query(self, session):
        cursor = session.execute_and_get(Query("SELECT * FROM t0"))
        cursor.close()
        assert session.state.statements == []
        assert session.state.query_string == "SELECT * FROM t0;"

    def test_fill_and_execute_appends_to_record(self, session):
        query = Query("INSERT INTO t0 VALUES (1)")
        session.fill_and_execute(query, "INSERT INTO t0 VALUES (%s)", [1])
        assert session.state.statements == [query]


class TestSchemaCache:

    def test_lazy_and_cached(self, session, fake_dialect):
        assert not session.has_cached_schema
        assert session.schema == []
        assert session.schema == []
        assert fake_dialect.refreshes == 1

    def test_successful_schema_statement_invalidates(self, session, fake_dialect):
        session.ensure_fresh()
        session.execute(Query("CREATE TABLE t0(c0 INT)", could_affect_schema=True))
        assert not session.has_cached_schema
        assert session.schema == ["t0"]
        assert fake_dialect.refreshes == 2

    def test_plain_statement_keeps_cache(self, session):
        session.ensure_fresh()
        session.execute(Query("INSERT INTO t0 VALUES (1)"))
        assert session.has_cached_schema

    def test_expected_error_keeps_cache(self, session):
        session.connection.failures["CREATE"] = "ERROR: already exists"
        session.ensure_fresh()
        query = Query("CREATE TABLE t0(c0 INT)", ["already exists"], could_affect_schema=True)
        assert session.execute(query) is False
        assert session.has_cached_schema


class TestEcho:

    def test_print_all_statements(self, fake_dialect, options, metrics, registry, capsys):
        options = dataclasses.replace(options, print_all_statements=True)
        with fake_dialect.create_session(options, {}, "database1", 1, metrics, registry) as session:
            session.execute(Query("INSERT INTO t0 VALUES (1)"))
        assert "INSERT INTO t0 VALUES (1);" in capsys.readouterr().out

    def test_print_succeeding_statements_skips_failures(self, fake_dialect, options, metrics,
                                                       registry, capsys):
        options = dataclasses.replace(options, print_succeeding_statements=True)
        with fake_dialect.create_session(options, {}, "database1", 1, metrics, registry) as session:
            session.connection.failures["bad"] = "ERROR: expected"
            session.execute(Query("INSERT INTO good VALUES (1)"))
            session.execute(Query("INSERT INTO bad VALUES (1)", ["expected"]))
        out = capsys.readouterr().out
        assert "INSERT INTO good VALUES (1);" in out
        assert "bad" not in out

    def test_statement_log(self, session):
        session.execute(Query("INSERT INTO t0 VALUES (1)"))
        session.execute(Query("INSERT INTO t0 VALUES (2)"))
        session.state_logger.close()
        lines = session.state_logger.current_file.read_text().splitlines()
        assert lines == ["INSERT INTO t0 VALUES (1);", "INSERT INTO t0 VALUES (2);"]

    def test_statement_log_with_execution_time(self, fake_dialect, options, metrics, registry):
        options = dataclasses.replace(options, log_execution_time=True)
        session = fake_dialect.create_session(options, {}, "database2", 1, metrics, registry)
        with session:
            session.execute(Query("INSERT INTO t0 VALUES (1)"))
        session.state_logger.close()
        line = session.state_logger.current_file.read_text().strip()
        assert line.startswith("INSERT INTO t0 VALUES (1); -- ")
        assert line.endswith("ms")

    def test_statement_log_disabled(self, fake_dialect, options, metrics, registry):
        options = dataclasses.replace(options, log_each_select=False)
        with fake_dialect.create_session(options, {}, "database3", 1, metrics, registry) as session:
            session.execute(Query("INSERT INTO t0 VALUES (1)"))
            assert session.state_logger.current_file is None


class TestLifecycle:

    def test_context_manager_closes_connection(self, fake_dialect, options, metrics, registry):
        session = fake_dialect.create_session(options, {}, "database4", 1, metrics, registry)
        connection = session.connection
        with session:
            pass
        assert connection.closed
        assert session.connection is None
        session.state_logger.close()

    def test_create_session_counts_databases(self, session, metrics):
        assert metrics.snapshot().databases == 1
        assert session.randomly.seed_value == 1
        assert session.state.database_name == "database0"

    def test_connection_failure_is_fatal(self, options, metrics, registry):
        class BrokenDialect(FakeDialect):
            def open_connection(self, session):
                raise FakeDatabaseError("connection refused")

        with pytest.raises(SessionCreationError):
            BrokenDialect().create_session(options, {}, "database5", 1, metrics, registry)
        assert metrics.snapshot().databases == 0
