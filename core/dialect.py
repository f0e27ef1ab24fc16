"""
Dialect adapter contract.

A dialect is implemented once per target database and is the only place that
knows how to connect, read the catalog, build statements and pick oracles.
The engine never constructs sessions or options by type lookup: it asks the
dialect's factory methods.
"""

import argparse
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, TextIO, Tuple

from core.errors import FatalError, SessionCreationError
from core.metrics import Metrics
from core.query import Query
from core.session import Session
from core.state import ReproductionRecord
from oracles.base_oracle import BaseOracle
from oracles.composite_oracle import CompositeOracle
from utils.state_logger import LogDirectoryRegistry, ReproductionLogger

if TYPE_CHECKING:
    from config import DatabaseConfig, MainOptions
    from core.actions import Action


class Dialect(ABC):
    """Base class for dialect adapters."""

    # Canonical lowercase identifier, also the CLI sub-command and log directory.
    name: str = ""
    # Exceptions that represent errors reported by the database itself.
    error_types: Tuple[type, ...] = (Exception,)

    def __init__(self, database_config: Optional["DatabaseConfig"] = None):
        self.database_config = database_config
        self.logger = logging.getLogger(self.__class__.__name__)

    # --- command line ---

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        """Register dialect-specific flags on the dialect's sub-command."""

    @classmethod
    def options_from_args(cls, args: argparse.Namespace) -> Dict[str, Any]:
        """Dialect options given on the command line, as a raw mapping."""
        return {}

    # --- factories ---

    def new_options(self, raw: Optional[Dict[str, Any]] = None) -> Any:
        """Build the dialect-specific options from a plain mapping."""
        return dict(raw or {})

    def new_record(self, database_name: str, seed: int) -> ReproductionRecord:
        return ReproductionRecord(database_name=database_name, seed=seed)

    def new_session(self, options: "MainOptions", dialect_options: Any, database_name: str,
                    seed: int, metrics: Metrics, record: ReproductionRecord,
                    state_logger: ReproductionLogger) -> Session:
        return Session(self, options, dialect_options, database_name, seed, metrics,
                       record, state_logger)

    def create_session(self, options: "MainOptions", dialect_options: Any, database_name: str,
                       seed: int, metrics: Metrics, registry: LogDirectoryRegistry) -> Session:
        """
        Create a new, connected session.

        Raises:
            SessionCreationError: the session could not be set up
        """
        session = None
        try:
            record = self.new_record(database_name, seed)
            state_logger = ReproductionLogger(database_name, self, options, registry)
            session = self.new_session(options, dialect_options, database_name, seed,
                                       metrics, record, state_logger)
            session.connection = self.open_connection(session)
        except FatalError:
            if session is not None:
                session.close()
            raise
        except Exception as e:
            if session is not None:
                session.close()
            raise SessionCreationError(f"could not create session {database_name}: {e}") from e
        metrics.increment_databases()
        try:
            record.database_version = self.database_version(session)
        except self.error_types as e:
            self.logger.debug(f"Database version unavailable for {database_name}: {e}")
        return session

    # --- contract ---

    @abstractmethod
    def open_connection(self, session: Session) -> Any:
        """Connect (creating the session's database if needed) and return the connection."""

    @abstractmethod
    def actions(self) -> Sequence["Action"]:
        """Ordered action set with weight policies."""

    @abstractmethod
    def build_oracles(self, session: Session) -> List[BaseOracle]:
        """Oracles configured for this session."""

    @abstractmethod
    def refresh_schema(self, session: Session) -> Any:
        """Read the catalog into a fresh schema snapshot."""

    @abstractmethod
    def generate_table(self, session: Session) -> Query:
        """A CREATE TABLE statement for the next table; may raise SkipAttempt."""

    @abstractmethod
    def count_tables(self, session: Session) -> int:
        """Number of tables in the session's current schema snapshot."""

    def build_oracle(self, session: Session) -> BaseOracle:
        oracles = self.build_oracles(session)
        if len(oracles) == 1:
            return oracles[0]
        return CompositeOracle(oracles)

    def min_table_count(self, session: Session) -> int:
        return 1

    def after_statement(self, session: Session, query: Query) -> None:
        """Workload post-execution hook; raise SkipAttempt to abandon the workload."""

    def after_workload(self, session: Session) -> None:
        """Runs once the workload finished, before the oracle checks."""

    def database_version(self, session: Session) -> Optional[str]:
        return None

    def write_diagnostics(self, writer: TextIO, record: ReproductionRecord) -> None:
        """Append dialect-specific context to a failure report."""
        for key, value in record.diagnostics.items():
            text = str(value).replace("\n", "\n-- ")
            writer.write(f"-- {key}: {text}\n")
