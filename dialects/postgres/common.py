"""
Shared vocabulary of the PostgreSQL statement generators: the data types the
generators know about and the expected-error substrings that random
statements of each family are allowed to trigger.
"""

from enum import Enum
from typing import Optional

from core.query import ExpectedErrors


class PostgresDataType(Enum):
    INT = "INT"
    BOOLEAN = "BOOLEAN"
    TEXT = "TEXT"

    @classmethod
    def from_catalog(cls, data_type: str) -> Optional["PostgresDataType"]:
        """Map an information_schema data_type onto a generator type (None if unknown)."""
        data_type = (data_type or "").lower()
        if data_type in ("integer", "smallint", "bigint"):
            return cls.INT
        if data_type == "boolean":
            return cls.BOOLEAN
        if data_type in ("text", "character varying", "character", "name"):
            return cls.TEXT
        return None


def table_name(index: int) -> str:
    return f"t{index}"


EXPRESSION_ERRORS = (
    "out of range",
    "cannot cast",
    "invalid input syntax for",
    "division by zero",
    "value too long for type",
    "operator does not exist",
    "could not determine which collation to use for string comparison",
    "invalid regular expression",
    "negative substring length not allowed",
    "LIKE pattern must not end with escape character",
    "No function matches the given name and argument types",
    "No operator matches the given name and argument types",
    "argument of WHERE must be type boolean",
    "must be type boolean",
    "is not unique",
)

INSERT_UPDATE_ERRORS = (
    "violates not-null constraint",
    "violates unique constraint",
    "violates foreign key constraint",
    "violates check constraint",
    "conflicting key value violates exclusion constraint",
    "reached maximum value of sequence",
    "duplicate key value violates unique constraint",
    "but expression is of type",
    "cannot insert into column",
    "cannot insert a non-DEFAULT value into column",
    "can only be updated to DEFAULT",
    "You might need to add explicit type casts.",
    "multiple assignments to same column",
    "View columns that are not columns of their base relation are not updatable",
    "cannot insert into view",
    "cannot update view",
    "cannot delete from view",
)

TRANSACTION_ERRORS = (
    "cannot run inside a transaction block",
    "cannot be executed inside a transaction block",
)


def add_common_expression_errors(errors: ExpectedErrors) -> ExpectedErrors:
    return errors.add_all(EXPRESSION_ERRORS)


def add_common_insert_update_errors(errors: ExpectedErrors) -> ExpectedErrors:
    return errors.add_all(INSERT_UPDATE_ERRORS)


def add_common_table_errors(errors: ExpectedErrors) -> ExpectedErrors:
    errors.add("already exists")
    errors.add("does not exist")
    return errors.add_all(TRANSACTION_ERRORS)
