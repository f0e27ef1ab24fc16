"""
Session - all state of one isolated fuzzing attempt against one database.

A session owns its connection, its seeded random source, the options bundle
(generic and dialect-specific), the reproduction record and a lazily rebuilt
schema snapshot. It is only ever touched by the worker that created it, so
none of this state needs locking; the shared Metrics object is the exception
and synchronizes itself.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence, Tuple

from core.metrics import Metrics
from core.query import Query
from core.randomly import Randomly
from core.state import ReproductionRecord
from utils.timer import ExecutionTimer

if TYPE_CHECKING:
    from config import MainOptions
    from core.dialect import Dialect
    from utils.state_logger import ReproductionLogger


class Session:
    """Per-run context handed to generators, the scheduler and the oracles."""

    def __init__(self, dialect: "Dialect", options: "MainOptions", dialect_options: Any,
                 database_name: str, seed: int, metrics: Metrics,
                 record: ReproductionRecord, state_logger: "ReproductionLogger"):
        self.dialect = dialect
        self.options = options
        self.dialect_options = dialect_options
        self.database_name = database_name
        self.randomly = Randomly(seed)
        self.metrics = metrics
        self.state = record
        self.state_logger = state_logger
        self.connection: Optional[Any] = None
        self.logger = logging.getLogger(self.__class__.__name__)

        self._schema: Optional[Any] = None

    @property
    def error_types(self) -> Tuple[type, ...]:
        return self.dialect.error_types

    # --- schema cache ---

    @property
    def schema(self) -> Any:
        return self.ensure_fresh()

    def invalidate_schema(self) -> None:
        self._schema = None

    def ensure_fresh(self) -> Any:
        """Return the cached schema snapshot, rebuilding it if it was invalidated."""
        if self._schema is None:
            self._schema = self.dialect.refresh_schema(self)
        return self._schema

    @property
    def has_cached_schema(self) -> bool:
        return self._schema is not None

    # --- statement execution ---

    def execute(self, query: Query) -> bool:
        """Record, submit and classify a statement; see Query.execute()."""
        self.state.add_statement(query)
        return self._run(query, lambda: query.execute(self), lambda success: success)

    def execute_and_get(self, query: Query) -> Optional[Any]:
        """Submit a result-returning query and return its open cursor (or None)."""
        self.state.query_string = query.query_string
        return self._run(query, lambda: query.execute_and_get(self), lambda cursor: cursor is not None)

    def fill_and_execute(self, query: Query, template: str, fills: Sequence[Any]) -> bool:
        self.state.add_statement(query)
        return self._run(query, lambda: query.fill_and_execute(self, template, fills),
                         lambda success: success)

    def fill_and_execute_and_get(self, query: Query, template: str,
                                 fills: Sequence[Any]) -> Optional[Any]:
        self.state.query_string = query.query_string
        return self._run(query, lambda: query.fill_and_execute_and_get(self, template, fills),
                         lambda cursor: cursor is not None)

    def _run(self, query: Query, submit, succeeded):
        options = self.options
        timer = ExecutionTimer().start() if options.log_execution_time else None
        if options.print_all_statements:
            print(query.query_string)
        if options.log_each_select:
            if timer is not None:
                self.state_logger.write_current_no_line_break(query.query_string)
            else:
                self.state_logger.write_current(query.query_string)

        result = submit()
        success = succeeded(result)

        if success and options.print_succeeding_statements:
            print(query.query_string)
        if timer is not None and options.log_each_select:
            self.state_logger.write_current_suffix(f" -- {timer.end().as_string()}")
        if success and query.could_affect_schema:
            self.invalidate_schema()
        return result

    # --- lifecycle ---

    def close(self) -> None:
        if self.connection is not None:
            try:
                self.connection.close()
            except self.error_types as e:
                self.logger.warning(f"Error closing connection for {self.database_name}: {e}")
            self.connection = None

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
