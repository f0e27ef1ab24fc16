"""
Query - a single SQL statement plus the metadata needed to classify its errors.

A Query carries:
- the statement text, canonicalized to end with ';' unless it holds a comment
- an allow-list of error substrings that are expected noise from random
  generation (type mismatches, constraint violations, ...)
- a flag telling the session that a successful run may have changed the schema

Errors whose message contains an allow-listed substring are absorbed and the
attempt is reported as unsuccessful; any other database error propagates
unchanged, since by construction nobody anticipated it.
"""

import logging
import re
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence

from core.errors import QueryConstructionError

if TYPE_CHECKING:
    from core.session import Session

logger = logging.getLogger(__name__)

COMMENT_MARKER = "--"
TERMINATOR = ";"

# Statements that create a persistent object tracked by schema snapshots.
SCHEMA_OBJECT_CREATION = re.compile(
    r"\bCREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:GLOBAL|LOCAL)\s+)?"
    r"(?:(?:TEMP|TEMPORARY|UNLOGGED|UNIQUE|RECURSIVE)\s+)?"
    r"(?:TABLE|VIEW|MATERIALIZED\s+VIEW|INDEX)\b",
    re.IGNORECASE,
)


def canonicalize(query_string: str) -> str:
    """Terminate a statement with ';' unless it already is or contains a comment."""
    if query_string.endswith(TERMINATOR):
        return query_string
    if COMMENT_MARKER in query_string:
        return query_string
    return query_string + TERMINATOR


def _check_error_list(errors: Iterable[str]) -> None:
    # Allow-lists hold whole message substrings, never the characters of one str.
    if isinstance(errors, str):
        raise QueryConstructionError(f"expected errors must be a collection of strings, got {errors!r}")


class ExpectedErrors:
    """Mutable builder used by generators to collect allow-listed messages."""

    def __init__(self, errors: Iterable[str] = ()):
        self._errors: List[str] = []
        self.add_all(errors)

    def add(self, error: str) -> "ExpectedErrors":
        if error not in self._errors:
            self._errors.append(error)
        return self

    def add_all(self, errors: Iterable[str]) -> "ExpectedErrors":
        _check_error_list(errors)
        for error in errors:
            self.add(error)
        return self

    def __iter__(self):
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __contains__(self, error: object) -> bool:
        return error in self._errors


class Query:
    """Immutable SQL statement with its expected-error allow-list."""

    __slots__ = ("_query_string", "_expected_errors", "_could_affect_schema")

    def __init__(self, query_string: str, expected_errors: Iterable[str] = (),
                 could_affect_schema: bool = False):
        self._query_string = canonicalize(query_string)
        _check_error_list(expected_errors)
        self._expected_errors = frozenset(expected_errors)
        self._could_affect_schema = could_affect_schema
        self._check_query_string()

    def _check_query_string(self) -> None:
        if not self._could_affect_schema and SCHEMA_OBJECT_CREATION.search(self._query_string):
            raise QueryConstructionError(
                f"statement creates a schema object but could_affect_schema is not set: "
                f"{self._query_string}"
            )

    @property
    def query_string(self) -> str:
        return self._query_string

    @property
    def expected_errors(self) -> frozenset:
        return self._expected_errors

    @property
    def could_affect_schema(self) -> bool:
        return self._could_affect_schema

    def is_expected(self, error: BaseException) -> bool:
        message = str(error)
        return any(expected in message for expected in self._expected_errors)

    def check_exception(self, error: BaseException) -> None:
        """Re-raise ``error`` unless its message is allow-listed."""
        if not self.is_expected(error):
            raise error
        logger.debug(f"Expected error for '{self._query_string}': {error}")

    def execute(self, session: "Session") -> bool:
        """
        Run the statement on the session's connection.

        Returns:
            True on success, False if the database raised an expected error.
        """
        try:
            with session.connection.cursor() as cursor:
                cursor.execute(self._query_string)
        except session.error_types as e:
            session.metrics.record_action(False)
            self.check_exception(e)
            return False
        session.metrics.record_action(True)
        return True

    def execute_and_get(self, session: "Session") -> Optional[Any]:
        """
        Run the statement and hand back the open cursor.

        The caller owns (and must close) the returned cursor. On an expected
        error the partially opened cursor is closed and None is returned.
        """
        cursor = session.connection.cursor()
        try:
            cursor.execute(self._query_string)
        except session.error_types as e:
            cursor.close()
            session.metrics.record_action(False)
            self.check_exception(e)
            return None
        session.metrics.record_action(True)
        return cursor

    def fill_and_execute(self, session: "Session", template: str, fills: Sequence[Any]) -> bool:
        """Like execute(), binding ``fills`` positionally into ``template``."""
        try:
            with session.connection.cursor() as cursor:
                cursor.execute(template, tuple(fills))
        except session.error_types as e:
            session.metrics.record_action(False)
            self.check_exception(e)
            return False
        session.metrics.record_action(True)
        return True

    def fill_and_execute_and_get(self, session: "Session", template: str,
                                 fills: Sequence[Any]) -> Optional[Any]:
        cursor = session.connection.cursor()
        try:
            cursor.execute(template, tuple(fills))
        except session.error_types as e:
            cursor.close()
            session.metrics.record_action(False)
            self.check_exception(e)
            return None
        session.metrics.record_action(True)
        return cursor

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Query):
            return NotImplemented
        return (self._query_string == other._query_string
                and self._expected_errors == other._expected_errors
                and self._could_affect_schema == other._could_affect_schema)

    def __hash__(self) -> int:
        return hash((self._query_string, self._expected_errors, self._could_affect_schema))

    def __repr__(self) -> str:
        return f"Query({self._query_string!r}, could_affect_schema={self._could_affect_schema})"

    def __str__(self) -> str:
        return self._query_string
