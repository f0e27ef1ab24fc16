# Defines the abstract base class for all test oracles.
# An oracle performs one self-contained falsification attempt per check() call
# and either finds nothing, skips (SkipAttempt), lets a database error escape,
# or reports a logic bug.

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from core.errors import LogicBugError, SkipAttempt
from core.query import Query

if TYPE_CHECKING:
    from core.session import Session


@dataclass(frozen=True)
class SelectTarget:
    """Tables, fetched columns and a random boolean predicate for one check."""
    tables: List[str]
    columns: List[str]
    predicate: str

    @property
    def from_clause(self) -> str:
        return ", ".join(self.tables)

    @property
    def fetch_columns(self) -> str:
        return ", ".join(self.columns) if self.columns else "*"


# Supplied by a dialect: builds a fresh SelectTarget or raises SkipAttempt.
TargetProvider = Callable[["Session"], SelectTarget]


class BaseOracle(ABC):
    """Base class for all oracles."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def fetch_rows(self, session: "Session", sql: str,
                   expected_errors: Iterable[str] = ()) -> List[tuple]:
        """
        Run an oracle query and return all of its rows.

        Raises:
            SkipAttempt: the query failed with an expected error
        """
        cursor = session.execute_and_get(Query(sql, expected_errors))
        if cursor is None:
            raise SkipAttempt()
        try:
            return cursor.fetchall()
        finally:
            cursor.close()

    @abstractmethod
    def check(self, session: "Session") -> Optional[str]:
        """
        Run one falsification attempt against the session's database.

        Args:
            session: The session whose connection and schema to use

        Returns:
            None if the engine behaved consistently, otherwise a description
            of the mismatch

        Raises:
            SkipAttempt: no meaningful check can be built right now
            LogicBugError: the oracle detected a discrepancy itself
        """

    def run(self, session: "Session") -> None:
        """
        Call check() and turn a reported mismatch into a LogicBugError.

        Diagnostics of earlier checks are dropped first, so a failure report
        only shows the state of the check that failed.
        """
        session.state.diagnostics.clear()
        mismatch = self.check(session)
        if mismatch:
            raise LogicBugError(mismatch, self.get_oracle_name())

    def get_oracle_name(self) -> str:
        """
        Get the name of this oracle.

        Returns:
            The oracle's name
        """
        return self.__class__.__name__
