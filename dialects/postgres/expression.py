"""
Random typed SQL expressions over a set of columns.

Expressions are produced directly as SQL text. Every sub-expression is
parenthesized, so operator precedence never changes the meaning of the
generated predicate.
"""

from typing import TYPE_CHECKING, List, Sequence

from dialects.postgres.common import PostgresDataType
from dialects.postgres.schema import PostgresColumn

if TYPE_CHECKING:
    from core.randomly import Randomly

COMPARISON_OPERATORS = ("=", "<>", "<", "<=", ">", ">=")
ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "%")
POSTFIX_BOOLEAN_OPERATORS = ("IS NULL", "IS NOT NULL", "IS TRUE", "IS FALSE", "IS NOT TRUE",
                             "IS NOT FALSE", "IS UNKNOWN", "IS NOT UNKNOWN")


def quote_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class PostgresExpressionGenerator:
    """Builds random expressions of a requested type."""

    def __init__(self, randomly: "Randomly", columns: Sequence[PostgresColumn] = (),
                 max_depth: int = 3, qualify_columns: bool = False):
        self.randomly = randomly
        self.columns: List[PostgresColumn] = [c for c in columns if c.data_type is not None]
        self.max_depth = max_depth
        self.qualify_columns = qualify_columns

    def generate_constant(self, data_type: PostgresDataType) -> str:
        r = self.randomly
        if r.get_boolean_with_small_probability():
            return "NULL"
        if data_type == PostgresDataType.INT:
            value = r.get_interesting_integer()
            return f"({value})" if value < 0 else str(value)
        if data_type == PostgresDataType.BOOLEAN:
            return r.from_options("TRUE", "FALSE")
        return quote_string(r.get_string())

    def _column_reference(self, data_type: PostgresDataType) -> str:
        candidates = [c for c in self.columns if c.data_type == data_type]
        column = self.randomly.from_list(candidates)
        return column.full_name if self.qualify_columns else column.name

    def _leaf(self, data_type: PostgresDataType) -> str:
        has_column = any(c.data_type == data_type for c in self.columns)
        if has_column and self.randomly.get_boolean():
            return self._column_reference(data_type)
        return self.generate_constant(data_type)

    def generate_expression(self, data_type: PostgresDataType, depth: int = 0) -> str:
        if depth >= self.max_depth or self.randomly.get_boolean_with_probability(0.3):
            return self._leaf(data_type)
        if data_type == PostgresDataType.BOOLEAN:
            return self._boolean_expression(depth + 1)
        if data_type == PostgresDataType.INT:
            return self._integer_expression(depth + 1)
        return self._text_expression(depth + 1)

    def generate_predicate(self) -> str:
        return self.generate_expression(PostgresDataType.BOOLEAN)

    def _any_type(self) -> PostgresDataType:
        return self.randomly.from_list(list(PostgresDataType))

    def _boolean_expression(self, depth: int) -> str:
        r = self.randomly
        kind = r.from_options("not", "binary_logical", "comparison", "postfix", "between", "in", "like")
        if kind == "not":
            return f"(NOT {self.generate_expression(PostgresDataType.BOOLEAN, depth)})"
        if kind == "binary_logical":
            left = self.generate_expression(PostgresDataType.BOOLEAN, depth)
            right = self.generate_expression(PostgresDataType.BOOLEAN, depth)
            return f"({left} {r.from_options('AND', 'OR')} {right})"
        if kind == "postfix":
            operand = self.generate_expression(self._any_type(), depth)
            return f"({operand} {r.from_list(POSTFIX_BOOLEAN_OPERATORS)})"
        if kind == "between":
            data_type = r.from_options(PostgresDataType.INT, PostgresDataType.TEXT)
            operands = [self.generate_expression(data_type, depth) for _ in range(3)]
            symmetric = " SYMMETRIC" if r.get_boolean() else ""
            negated = "NOT " if r.get_boolean() else ""
            return f"({operands[0]} {negated}BETWEEN{symmetric} {operands[1]} AND {operands[2]})"
        if kind == "in":
            data_type = self._any_type()
            left = self.generate_expression(data_type, depth)
            items = [self.generate_expression(data_type, depth) for _ in range(r.get_integer(1, 3))]
            negated = "NOT " if r.get_boolean() else ""
            return f"({left} {negated}IN ({', '.join(items)}))"
        if kind == "like":
            left = self.generate_expression(PostgresDataType.TEXT, depth)
            right = self.generate_expression(PostgresDataType.TEXT, depth)
            return f"({left} {r.from_options('LIKE', 'NOT LIKE', 'ILIKE')} {right})"
        data_type = self._any_type()
        left = self.generate_expression(data_type, depth)
        right = self.generate_expression(data_type, depth)
        return f"({left} {r.from_list(COMPARISON_OPERATORS)} {right})"

    def _integer_expression(self, depth: int) -> str:
        r = self.randomly
        kind = r.from_options("binary", "unary", "abs", "length", "cast")
        if kind == "binary":
            left = self.generate_expression(PostgresDataType.INT, depth)
            right = self.generate_expression(PostgresDataType.INT, depth)
            return f"({left} {r.from_list(ARITHMETIC_OPERATORS)} {right})"
        if kind == "unary":
            return f"({r.from_options('+', '-')} {self.generate_expression(PostgresDataType.INT, depth)})"
        if kind == "abs":
            return f"ABS({self.generate_expression(PostgresDataType.INT, depth)})"
        if kind == "length":
            return f"LENGTH({self.generate_expression(PostgresDataType.TEXT, depth)})"
        operand = self.generate_expression(r.from_options(PostgresDataType.BOOLEAN, PostgresDataType.TEXT), depth)
        return f"CAST({operand} AS INT)"

    def _text_expression(self, depth: int) -> str:
        r = self.randomly
        kind = r.from_options("concat", "case", "substr", "cast")
        if kind == "concat":
            left = self.generate_expression(PostgresDataType.TEXT, depth)
            right = self.generate_expression(PostgresDataType.TEXT, depth)
            return f"({left} || {right})"
        if kind == "case":
            return f"{r.from_options('UPPER', 'LOWER', 'TRIM')}({self.generate_expression(PostgresDataType.TEXT, depth)})"
        if kind == "substr":
            operand = self.generate_expression(PostgresDataType.TEXT, depth)
            start = self.generate_expression(PostgresDataType.INT, depth)
            return f"SUBSTR({operand}, {start})"
        operand = self.generate_expression(r.from_options(PostgresDataType.INT, PostgresDataType.BOOLEAN), depth)
        return f"CAST({operand} AS TEXT)"
