"""
Shared test fixtures: an in-memory fake dialect and DB-API connection.

No test needs a live database. FakeConnection records every statement and
raises FakeDatabaseError for statements matching a configured substring.
"""

import threading
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from config import MainOptions
from core.actions import Action, fixed_weight
from core.dialect import Dialect
from core.metrics import Metrics
from core.query import Query
from oracles.base_oracle import BaseOracle
from utils.state_logger import LogDirectoryRegistry


class FakeDatabaseError(Exception):
    """Stands in for a driver's database error class."""


class FakeCursor:
    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.closed = False
        self.rows: List[tuple] = []

    def execute(self, sql, params=None):
        self.connection.executed.append((sql, params))
        for marker, message in self.connection.failures.items():
            if marker in sql:
                raise FakeDatabaseError(message)
        if sql.startswith("CREATE TABLE"):
            self.connection.tables.append(sql.split()[2].split("(")[0])
        self.rows = list(self.connection.results(sql))

    def fetchall(self):
        return self.rows

    def fetchone(self):
        return self.rows[0] if self.rows else None

    def close(self):
        self.closed = True
        self.connection.closed_cursors += 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class FakeConnection:
    def __init__(self, failures: Optional[Dict[str, str]] = None,
                 results: Optional[Callable[[str], Sequence[tuple]]] = None):
        self.failures = dict(failures or {})
        self.results = results or (lambda sql: [])
        self.executed: List[tuple] = []
        self.tables: List[str] = []
        self.closed = False
        self.closed_cursors = 0

    def cursor(self):
        return FakeCursor(self)

    def close(self):
        self.closed = True

    @property
    def statements(self) -> List[str]:
        return [sql for sql, _ in self.executed]


class NoopOracle(BaseOracle):
    """Always consistent."""

    def check(self, session):
        return None


class MismatchOracle(BaseOracle):
    """Always reports a mismatch."""

    def check(self, session):
        return "results differ"


class FakeDialect(Dialect):
    """Dialect over FakeConnection; every aspect is configurable per test."""

    name = "fake"
    error_types = (FakeDatabaseError,)

    def __init__(self, actions: Optional[Sequence[Action]] = None,
                 oracles: Optional[Callable[[object], List[BaseOracle]]] = None,
                 failures: Optional[Dict[str, str]] = None,
                 after_statement: Optional[Callable] = None):
        super().__init__()
        self._actions = list(actions) if actions is not None else [
            Action("INSERT", lambda s: Query("INSERT INTO t0 VALUES (1)"), fixed_weight(2)),
        ]
        self._oracles = oracles or (lambda session: [NoopOracle()])
        self.failures = failures or {}
        self._after_statement = after_statement
        self._lock = threading.Lock()
        self.sessions = []
        self.connections: List[FakeConnection] = []
        self.refreshes = 0

    def open_connection(self, session):
        connection = FakeConnection(self.failures)
        with self._lock:
            self.sessions.append(session)
            self.connections.append(connection)
        return connection

    def actions(self):
        return self._actions

    def build_oracles(self, session):
        return self._oracles(session)

    def refresh_schema(self, session):
        with self._lock:
            self.refreshes += 1
        return list(session.connection.tables)

    def generate_table(self, session):
        return Query(f"CREATE TABLE t{len(session.schema)}(c0 INT)", could_affect_schema=True)

    def count_tables(self, session):
        return len(session.schema)

    def after_statement(self, session, query):
        if self._after_statement is not None:
            self._after_statement(session, query)


@pytest.fixture
def options(tmp_path):
    """Small, deterministic options bundle writing logs under tmp_path."""
    return MainOptions(
        num_tries=1,
        num_threads=1,
        random_seed=1,
        num_queries=3,
        max_generated_databases=1,
        print_progress_information=False,
        log_directory=str(tmp_path / "logs"),
    )


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def registry():
    return LogDirectoryRegistry()


@pytest.fixture
def fake_dialect():
    return FakeDialect()


@pytest.fixture
def session(fake_dialect, options, metrics, registry):
    """A connected session on the fake dialect."""
    session = fake_dialect.create_session(options, {}, "database0", 1, metrics, registry)
    yield session
    session.close()
    session.state_logger.close()
