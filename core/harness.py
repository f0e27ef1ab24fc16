"""
Execution Harness - concurrent multi-worker fuzzing

The harness owns a fixed pool of worker threads. Every worker repeatedly:
- creates a fresh session (new database, next seed)
- generates the minimum schema
- runs one randomized statement workload
- runs the configured number of oracle checks

A worker that hits a hard failure writes the session's reproduction record
and retires; all other workers keep going. A FatalError (adapter or
configuration bug) aborts the whole run.
"""

import dataclasses
import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import psutil

from core.actions import StatementExecutor
from core.errors import FatalError, SkipAttempt
from core.metrics import Metrics, MetricsSnapshot
from utils.state_logger import LogDirectoryRegistry

if TYPE_CHECKING:
    from config import MainOptions
    from core.dialect import Dialect
    from core.session import Session


def wall_clock_seed() -> int:
    """Base seed for runs without an explicit one, in milliseconds."""
    return time.time_ns() // 1_000_000


class WorkerState(Enum):
    CREATING_SESSION = "creating_session"
    GENERATING_SCHEMA = "generating_schema"
    RUNNING_WORKLOAD = "running_workload"
    RUNNING_ORACLES = "running_oracles"
    RETIRING = "retiring"
    FINISHED = "finished"


class Worker:
    """One attempt slot of the pool; runs sessions until it retires or is stopped."""

    def __init__(self, attempt: int, dialect: "Dialect", options: "MainOptions",
                 dialect_options: Any, base_seed: int, metrics: Metrics,
                 registry: LogDirectoryRegistry, stop_event: threading.Event):
        self.attempt = attempt
        self.dialect = dialect
        self.options = options
        self.dialect_options = dialect_options
        self.base_seed = base_seed
        self.metrics = metrics
        self.registry = registry
        self.stop_event = stop_event
        self.state = WorkerState.CREATING_SESSION
        self.sessions_run = 0
        self.logger = logging.getLogger(self.__class__.__name__)

    def database_number(self, iteration: int) -> int:
        return iteration * self.options.num_tries + self.attempt

    def _should_stop(self) -> bool:
        if self.stop_event.is_set():
            return True
        limit = self.options.max_generated_databases
        return limit != -1 and self.sessions_run >= limit

    def run(self) -> WorkerState:
        """
        Run sessions back to back.

        Returns:
            RETIRING after a hard failure, FINISHED after a stop request or
            once max_generated_databases sessions were run

        Raises:
            FatalError: session creation or an adapter invariant failed
        """
        while not self._should_stop():
            number = self.database_number(self.sessions_run)
            self.sessions_run += 1
            self.state = WorkerState.CREATING_SESSION
            session = self.dialect.create_session(
                self.options, self.dialect_options, f"database{number}",
                self.base_seed + number, self.metrics, self.registry)

            try:
                with session:
                    self.run_session(session)
            except FatalError as e:
                session.state_logger.log_exception(e, session.state)
                session.state_logger.close()
                raise
            except SkipAttempt:
                self.logger.debug(f"Session {session.database_name} skipped, starting the next one")
                session.state_logger.close(keep_current_log=False)
                continue
            except Exception as e:
                session.state_logger.log_exception(e, session.state)
                session.state_logger.close()
                retired = self.metrics.increment_retired()
                self.logger.error(f"Worker {self.attempt} retired after failure in "
                                  f"{session.database_name} ({retired} retired in total)")
                self.state = WorkerState.RETIRING
                return self.state
            session.state_logger.close(keep_current_log=False)

        self.state = WorkerState.FINISHED
        return self.state

    def run_session(self, session: "Session") -> None:
        """Schema, workload and oracle phases of one session."""
        self.state = WorkerState.GENERATING_SCHEMA
        self.generate_schema(session)

        self.state = WorkerState.RUNNING_WORKLOAD
        executor = StatementExecutor(
            session, self.dialect.actions(),
            post_hook=lambda query: self.dialect.after_statement(session, query))
        try:
            executor.execute_statements()
        except SkipAttempt:
            self.logger.debug(f"Workload of {session.database_name} abandoned, discarding session")
            return
        self.dialect.after_workload(session)

        self.state = WorkerState.RUNNING_ORACLES
        self.run_oracles(session)

    def generate_schema(self, session: "Session") -> None:
        target = self.dialect.min_table_count(session)
        while self.dialect.count_tables(session) < target:
            if self.stop_event.is_set():
                return
            try:
                query = self.dialect.generate_table(session)
            except SkipAttempt:
                continue
            session.execute(query)

    def run_oracles(self, session: "Session") -> None:
        oracle = self.dialect.build_oracle(session)
        for _ in range(self.options.num_queries):
            if self.stop_event.is_set():
                break
            try:
                oracle.run(session)
            except SkipAttempt:
                continue
            self.metrics.increment_queries()


class ProgressMonitor(threading.Thread):
    """Daemon thread that periodically logs throughput and memory usage."""

    def __init__(self, metrics: Metrics, interval: float):
        super().__init__(name="ProgressMonitor", daemon=True)
        self.metrics = metrics
        self.interval = interval
        self._stopped = threading.Event()
        self._process = psutil.Process()
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self) -> None:
        previous = self.metrics.snapshot()
        previous_time = time.monotonic()
        while not self._stopped.wait(self.interval):
            current = self.metrics.snapshot()
            now = time.monotonic()
            self.logger.info(self.format_progress(previous, current, now - previous_time,
                                                  self._memory_mb()))
            previous, previous_time = current, now

    def _memory_mb(self) -> float:
        try:
            return self._process.memory_info().rss / (1024 * 1024)
        except psutil.Error as e:
            self.logger.debug(f"Failed to sample memory usage: {e}")
            return 0.0

    @staticmethod
    def format_progress(previous: MetricsSnapshot, current: MetricsSnapshot,
                        elapsed: float, memory_mb: float) -> str:
        elapsed = max(elapsed, 1e-9)
        queries_per_second = (current.queries - previous.queries) / elapsed
        databases_per_second = (current.databases - previous.databases) / elapsed
        successful = current.successful_actions - previous.successful_actions
        unsuccessful = current.unsuccessful_actions - previous.unsuccessful_actions
        total = successful + unsuccessful
        ratio = 100 * successful // total if total else 0
        return (f"Executed {current.queries} queries ({queries_per_second:.0f} queries/s; "
                f"{databases_per_second:.2f}/s dbs, successful statements: {ratio:2d}%). "
                f"Threads shut down: {current.workers_retired}. Memory: {memory_mb:.1f} MB")

    def stop(self) -> None:
        self._stopped.set()
        if self.is_alive():
            self.join(timeout=self.interval)


class ExecutionHarness:
    """Runs ``num_tries`` workers on ``num_threads`` threads for one dialect."""

    def __init__(self, dialect: "Dialect", options: "MainOptions",
                 dialect_options: Optional[Dict[str, Any]] = None,
                 metrics: Optional[Metrics] = None,
                 registry: Optional[LogDirectoryRegistry] = None):
        # Private copy; sessions must not see later edits to the caller's options.
        self.options = dataclasses.replace(options)
        self.dialect = dialect
        self.dialect_options = dialect.new_options(dialect_options)
        self.metrics = metrics or Metrics()
        self.registry = registry or LogDirectoryRegistry()
        self.stop_event = threading.Event()
        self.workers: List[Worker] = []
        self.fatal_error: Optional[BaseException] = None
        self.base_seed = (self.options.random_seed if self.options.random_seed is not None
                          else wall_clock_seed())
        self.logger = logging.getLogger(self.__class__.__name__)

    def shutdown(self) -> None:
        """Ask workers to finish their current session and start no new one."""
        if not self.stop_event.is_set():
            self.logger.info("Shutdown requested; workers stop after their current session")
        self.stop_event.set()

    def _new_worker(self, attempt: int) -> Worker:
        return Worker(attempt, self.dialect, self.options, self.dialect_options,
                      self.base_seed, self.metrics, self.registry, self.stop_event)

    def run(self) -> int:
        """
        Run all workers to completion.

        Returns:
            0 if no worker retired, otherwise options.error_exit_code
        """
        options = self.options
        self.logger.info(f"Fuzzing {self.dialect.name} with {options.num_tries} tries on "
                         f"{options.num_threads} threads (base seed {self.base_seed})")

        monitor = None
        if options.print_progress_information:
            monitor = ProgressMonitor(self.metrics, options.progress_interval)
            monitor.start()

        self.workers = [self._new_worker(attempt) for attempt in range(options.num_tries)]
        timeout = options.timeout_seconds if options.timeout_seconds > 0 else None
        try:
            with ThreadPoolExecutor(max_workers=options.num_threads,
                                    thread_name_prefix=f"{self.dialect.name}-worker") as pool:
                futures: List[Future] = [pool.submit(worker.run) for worker in self.workers]
                done, not_done = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
                if not_done:
                    if timeout is not None and not any(f.exception() for f in done):
                        self.logger.info(f"Timeout of {timeout}s reached")
                    self.shutdown()
                    for future in not_done:
                        future.cancel()
                    wait(not_done)
        finally:
            if monitor is not None:
                monitor.stop()

        for future in futures:
            if future.cancelled():
                continue
            error = future.exception()
            if error is not None and self.fatal_error is None:
                self.fatal_error = error

        if self.fatal_error is not None:
            self.logger.critical(f"Aborting run after fatal error: {self.fatal_error}")
            return options.error_exit_code
        if self.metrics.workers_retired:
            return options.error_exit_code
        return 0
