"""
Reproduction Logger - per-database log files for replaying failures

This module keeps two kinds of plain-text files per session, under
<log_directory>/<dialect>/:
- <database>.log      written once, when the session fails; holds the seed,
                      every submitted statement, the stack trace and the
                      dialect's diagnostic block
- <database>-cur.log  optional running log of every statement as it is
                      submitted (verbose statement logging)

Logging I/O problems are reported through the standard logger and never
interrupt the workload.
"""

import io
import logging
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Set, TextIO

if TYPE_CHECKING:
    from config import MainOptions
    from core.dialect import Dialect
    from core.state import ReproductionRecord

TIME_FORMAT = "%Y/%m/%d %H:%M:%S"


class LogDirectoryRegistry:
    """
    Remembers which dialect log directories were prepared by this process.

    The first worker that needs a dialect's directory creates it and clears
    stale files from earlier runs; concurrent workers of the same dialect wait
    on that dialect's lock instead of racing.
    """

    def __init__(self):
        self._master_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._initialized: Set[str] = set()
        self.logger = logging.getLogger(self.__class__.__name__)

    def _lock_for(self, key: str) -> threading.Lock:
        with self._master_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def ensure_exists_and_is_empty(self, directory: Path, key: str) -> None:
        with self._lock_for(key):
            if key in self._initialized:
                return
            if directory.exists() and not directory.is_dir():
                raise NotADirectoryError(str(directory))
            directory.mkdir(parents=True, exist_ok=True)
            for stale in directory.iterdir():
                if stale.is_file():
                    stale.unlink()
            self._initialized.add(key)
            self.logger.debug(f"Prepared log directory {directory}")

    def is_initialized(self, key: str) -> bool:
        with self._master_lock:
            return key in self._initialized


class ReproductionLogger:
    """Writes the statement log and failure report of one session."""

    def __init__(self, database_name: str, dialect: "Dialect", options: "MainOptions",
                 registry: LogDirectoryRegistry):
        self.database_name = database_name
        self.dialect = dialect
        self.log_each_select = options.log_each_select
        self.logger = logging.getLogger(self.__class__.__name__)

        self.directory = Path(options.log_directory) / dialect.name
        registry.ensure_exists_and_is_empty(self.directory, dialect.name)
        self.log_file = self.directory / f"{database_name}.log"
        self.current_file: Optional[Path] = None
        if self.log_each_select:
            self.current_file = self.directory / f"{database_name}-cur.log"
        self._current_writer: Optional[TextIO] = None

    def _get_current_writer(self) -> TextIO:
        if not self.log_each_select:
            raise RuntimeError("statement logging is disabled for this session")
        if self._current_writer is None:
            self._current_writer = open(self.current_file, "w", encoding="utf-8")
        return self._current_writer

    def write_current(self, statement: str) -> None:
        """Append one submitted statement to the running statement log."""
        self._write_current((statement if statement.endswith(";") else statement + ";") + "\n")

    def write_current_no_line_break(self, statement: str) -> None:
        self._write_current(statement if statement.endswith(";") else statement + ";")

    def write_current_suffix(self, text: str) -> None:
        """Finish the current line, e.g. with the statement's execution time."""
        self._write_current(text + "\n")

    def _write_current(self, text: str) -> None:
        try:
            writer = self._get_current_writer()
            writer.write(text)
            writer.flush()
        except OSError as e:
            self.logger.error(f"Could not write statement log {self.current_file}: {e}")

    def render_state(self, record: "ReproductionRecord", error: Optional[BaseException] = None) -> str:
        """Render the reproduction report exactly as it is written to disk."""
        lines = [
            f"-- Time: {datetime.now().strftime(TIME_FORMAT)}",
            f"-- Database: {record.database_name}",
            f"-- Database version: {record.database_version}",
            f"-- seed value: {record.seed}",
        ]
        for query in record.statements:
            statement = query.query_string
            lines.append(statement if statement.endswith(";") else statement + ";")
        if record.query_string is not None:
            last = record.query_string if record.query_string.endswith(";") else record.query_string + ";"
            if not lines or lines[-1] != last:
                lines.append(last)
        text = "\n".join(lines) + "\n"
        if error is not None:
            text += self.format_stack_trace(error)
        diagnostics = io.StringIO()
        try:
            self.dialect.write_diagnostics(diagnostics, record)
        except Exception:
            self.logger.exception(f"Dialect {self.dialect.name} failed to write diagnostics")
        return text + diagnostics.getvalue()

    @staticmethod
    def format_stack_trace(error: BaseException) -> str:
        trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return "\n".join("--" + line for line in trace.rstrip("\n").split("\n")) + "\n"

    def log_exception(self, error: BaseException, record: "ReproductionRecord") -> None:
        """Persist the failure report; also echoed to the console at ERROR level."""
        record.exception = str(error)
        report = self.render_state(record, error)
        self.logger.error(f"Failure in {record.database_name} (seed {record.seed}):\n{report}")
        try:
            with open(self.log_file, "w", encoding="utf-8") as f:
                f.write(report)
                f.flush()
        except OSError as e:
            self.logger.error(f"Could not write reproduction log {self.log_file}: {e}")

    def close(self, keep_current_log: bool = True) -> None:
        if self._current_writer is not None:
            try:
                self._current_writer.close()
            except OSError as e:
                self.logger.error(f"Could not close statement log {self.current_file}: {e}")
            self._current_writer = None
        if not keep_current_log and self.current_file is not None:
            try:
                self.current_file.unlink(missing_ok=True)
            except OSError as e:
                self.logger.error(f"Could not remove statement log {self.current_file}: {e}")
