"""
End-to-end tests of the execution harness on the fake dialect.
"""

import dataclasses
import logging
import threading
import time
from pathlib import Path

import pytest

from core.actions import Action, fixed_weight
from core.errors import SkipAttempt
from core.harness import ExecutionHarness, ProgressMonitor, Worker, WorkerState
from core.metrics import Metrics, MetricsSnapshot
from core.query import Query
from utils.state_logger import LogDirectoryRegistry
from tests.conftest import FakeDialect, MismatchOracle, NoopOracle


def insert_action(weight: int, errors=()):
    return Action("INSERT", lambda s: Query("INSERT INTO t0 VALUES (1)", errors), fixed_weight(weight))


def log_dir(options) -> Path:
    return Path(options.log_directory) / "fake"


class TestCleanRun:

    def test_exit_code_and_counters(self, options, metrics):
        harness = ExecutionHarness(FakeDialect(), options, metrics=metrics)
        assert harness.run() == 0
        snapshot = metrics.snapshot()
        assert snapshot.databases == 1
        assert snapshot.queries == options.num_queries
        assert snapshot.successful_actions == 3
        assert snapshot.workers_retired == 0
        assert [w.state for w in harness.workers] == [WorkerState.FINISHED]

    def test_statement_log_removed_after_clean_session(self, options):
        ExecutionHarness(FakeDialect(), options).run()
        assert not (log_dir(options) / "database0-cur.log").exists()
        assert not (log_dir(options) / "database0.log").exists()

    def test_soft_failures_never_retire(self, options, metrics):
        def skipping(session):
            raise SkipAttempt()

        dialect = FakeDialect(
            actions=[insert_action(4, ["duplicate key"]), Action("SKIP", skipping, fixed_weight(3))],
            failures={"INSERT": "ERROR: duplicate key value violates unique constraint"},
        )
        assert ExecutionHarness(dialect, options, metrics=metrics).run() == 0
        snapshot = metrics.snapshot()
        assert snapshot.unsuccessful_actions == 4
        assert snapshot.workers_retired == 0

    def test_oracle_skips_are_not_counted(self, options, metrics):
        class SkippingOracle(NoopOracle):
            def check(self, session):
                raise SkipAttempt()

        dialect = FakeDialect(oracles=lambda s: [SkippingOracle()])
        assert ExecutionHarness(dialect, options, metrics=metrics).run() == 0
        assert metrics.snapshot().queries == 0


class TestFailures:

    def test_unexpected_error_retires_worker(self, options, metrics):
        dialect = FakeDialect(failures={"INSERT": "ERROR: server closed the connection"})
        harness = ExecutionHarness(dialect, options, metrics=metrics)
        assert harness.run() == options.error_exit_code
        assert metrics.snapshot().workers_retired == 1
        assert harness.workers[0].state == WorkerState.RETIRING
        assert harness.fatal_error is None

        reports = list(log_dir(options).glob("database*.log"))
        reports = [r for r in reports if not r.name.endswith("-cur.log")]
        assert [r.name for r in reports] == ["database0.log"]
        text = reports[0].read_text()
        assert "-- seed value: 1" in text
        assert "CREATE TABLE t0(c0 INT);" in text
        assert "INSERT INTO t0 VALUES (1);" in text
        assert "server closed the connection" in text

    def test_statement_log_kept_after_failure(self, options):
        dialect = FakeDialect(failures={"INSERT": "ERROR: crash"})
        ExecutionHarness(dialect, options).run()
        assert (log_dir(options) / "database0-cur.log").exists()

    def test_logic_bug_retires_worker(self, options, metrics):
        dialect = FakeDialect(oracles=lambda s: [MismatchOracle()])
        assert ExecutionHarness(dialect, options, metrics=metrics).run() == options.error_exit_code
        assert metrics.snapshot().workers_retired == 1
        text = (log_dir(options) / "database0.log").read_text()
        assert "[MismatchOracle] results differ" in text

    def test_fatal_error_aborts_run(self, options, metrics):
        options = dataclasses.replace(options, error_exit_code=3)
        broken = Action("BROKEN", lambda s: Query("CREATE TABLE t9(c0 INT)"), fixed_weight(1))
        harness = ExecutionHarness(FakeDialect(actions=[broken]), options, metrics=metrics)
        assert harness.run() == 3
        assert harness.fatal_error is not None
        assert type(harness.fatal_error).__name__ == "QueryConstructionError"
        assert metrics.snapshot().workers_retired == 0

    def test_one_retired_worker_does_not_stop_others(self, options, metrics):
        options = dataclasses.replace(options, num_tries=3, num_threads=3)

        def fail_first(session, query):
            if session.database_name == "database0":
                raise RuntimeError("unexpected state")

        dialect = FakeDialect(after_statement=fail_first)
        harness = ExecutionHarness(dialect, options, metrics=metrics)
        assert harness.run() == options.error_exit_code
        snapshot = metrics.snapshot()
        assert snapshot.workers_retired == 1
        assert snapshot.queries == 2 * options.num_queries


class TestConcurrency:

    def test_counters_are_exact(self, options, metrics):
        options = dataclasses.replace(options, num_tries=4, num_threads=4, num_queries=5)
        dialect = FakeDialect(actions=[insert_action(6)])
        assert ExecutionHarness(dialect, options, metrics=metrics).run() == 0
        snapshot = metrics.snapshot()
        assert snapshot.databases == 4
        assert snapshot.successful_actions == 4 * (6 + 1)
        assert snapshot.queries == 4 * 5

    def test_database_names_and_seeds_are_unique(self, options):
        options = dataclasses.replace(options, num_tries=3, num_threads=2,
                                      max_generated_databases=2, random_seed=100)
        dialect = FakeDialect()
        ExecutionHarness(dialect, options).run()
        names = sorted(s.database_name for s in dialect.sessions)
        seeds = sorted(s.randomly.seed_value for s in dialect.sessions)
        assert names == sorted(f"database{n}" for n in range(6))
        assert seeds == [100 + n for n in range(6)]

    def test_options_are_copied(self, options):
        harness = ExecutionHarness(FakeDialect(), options)
        options.num_queries = 99
        assert harness.options.num_queries == 3


class TestStopping:

    def test_shutdown_before_run(self, options, metrics):
        harness = ExecutionHarness(FakeDialect(), options, metrics=metrics)
        harness.shutdown()
        assert harness.run() == 0
        assert metrics.snapshot().databases == 0

    def test_timeout_stops_unbounded_run(self, options, metrics):
        options = dataclasses.replace(options, max_generated_databases=-1, timeout_seconds=1)
        started = time.monotonic()
        assert ExecutionHarness(FakeDialect(), options, metrics=metrics).run() == 0
        assert time.monotonic() - started < 30
        assert metrics.snapshot().databases >= 1

    def test_post_hook_skip_discards_session(self, options, metrics):
        def skip(session, query):
            raise SkipAttempt()

        dialect = FakeDialect(after_statement=skip)
        assert ExecutionHarness(dialect, options, metrics=metrics).run() == 0
        snapshot = metrics.snapshot()
        assert snapshot.queries == 0
        assert snapshot.workers_retired == 0

    def test_worker_stops_on_event(self, options, metrics):
        stop = threading.Event()
        stop.set()
        worker = Worker(0, FakeDialect(), options, {}, 1, metrics, LogDirectoryRegistry(), stop)
        assert worker.run() == WorkerState.FINISHED
        assert worker.sessions_run == 0


class TestSoftSkipsInHooks:

    @pytest.mark.parametrize("hook", ["after_workload", "build_oracles", "count_tables"])
    def test_skip_discards_session_without_retiring(self, options, metrics, hook):
        class SkippingDialect(FakeDialect):
            pass

        def skip(*args):
            raise SkipAttempt()

        setattr(SkippingDialect, hook, skip)
        options = dataclasses.replace(options, max_generated_databases=2)
        harness = ExecutionHarness(SkippingDialect(), options, metrics=metrics)

        assert harness.run() == 0
        snapshot = metrics.snapshot()
        assert snapshot.workers_retired == 0
        assert snapshot.databases == 2
        assert snapshot.queries == 0
        assert harness.workers[0].state == WorkerState.FINISHED
        assert list(log_dir(options).iterdir()) == []


class TestBaseSeed:

    def test_explicit_seed_is_used(self, options):
        assert ExecutionHarness(FakeDialect(), options).base_seed == 1

    def test_wall_clock_seed_has_millisecond_resolution(self, options):
        options = dataclasses.replace(options, random_seed=None)
        before = time.time_ns() // 1_000_000
        seed = ExecutionHarness(FakeDialect(), options).base_seed
        after = time.time_ns() // 1_000_000
        assert before <= seed <= after


class TestProgressMonitor:

    def test_format_progress(self):
        previous = MetricsSnapshot(0, 0, 0, 0, 0)
        current = MetricsSnapshot(100, 2, 30, 10, 1)
        line = ProgressMonitor.format_progress(previous, current, 10.0, 12.5)
        assert line == ("Executed 100 queries (10 queries/s; 0.20/s dbs, successful statements: 75%). "
                        "Threads shut down: 1. Memory: 12.5 MB")

    def test_format_progress_without_statements(self):
        snapshot = MetricsSnapshot(0, 0, 0, 0, 0)
        assert "successful statements:  0%" in ProgressMonitor.format_progress(snapshot, snapshot, 0, 0)

    def test_logs_periodically(self, caplog):
        metrics = Metrics()
        metrics.increment_queries(5)
        with caplog.at_level(logging.INFO, logger="ProgressMonitor"):
            monitor = ProgressMonitor(metrics, 0.01)
            monitor.start()
            time.sleep(0.1)
            monitor.stop()
        assert not monitor.is_alive()
        assert any("Executed 5 queries" in r.getMessage() for r in caplog.records)
