"""
TLP Oracle - Ternary Logic Partitioning for Logic Bug Detection.

For any predicate p, every row of a query Q lands in exactly one of the three
partitions (Q WHERE p), (Q WHERE NOT p) and (Q WHERE p IS NULL). The multiset
union of the partitions must therefore equal the unfiltered result of Q.

This tests for:
1. NULL handling bugs
2. Boolean logic inconsistencies
3. Predicate push-down and index selection bugs that drop or duplicate rows
"""

from collections import Counter
from typing import TYPE_CHECKING, Iterable, List, Optional

from oracles.base_oracle import BaseOracle, TargetProvider

if TYPE_CHECKING:
    from core.session import Session


def _row_key(row: tuple) -> tuple:
    # Rows are compared as multisets; repr() keeps unhashable values usable.
    return tuple(repr(value) for value in row)


class TLPWhereOracle(BaseOracle):
    """Ternary Logic Partitioning over the WHERE clause."""

    def __init__(self, target_provider: TargetProvider, expected_errors: Iterable[str] = ()):
        super().__init__()
        self.target_provider = target_provider
        self.expected_errors = frozenset(expected_errors)

    def get_oracle_name(self) -> str:
        return "TLP_WHERE"

    def _partition_queries(self, base_query: str, predicate: str) -> List[str]:
        return [
            f"{base_query} WHERE {predicate}",
            f"{base_query} WHERE NOT ({predicate})",
            f"{base_query} WHERE ({predicate}) IS NULL",
        ]

    def check(self, session: "Session") -> Optional[str]:
        target = self.target_provider(session)
        base_query = f"SELECT {target.fetch_columns} FROM {target.from_clause}"
        partitions = self._partition_queries(base_query, target.predicate)

        diagnostics = session.state.diagnostics
        diagnostics["tlp predicate"] = target.predicate
        diagnostics["tlp base query"] = base_query

        base_rows = Counter(_row_key(row) for row in self.fetch_rows(session, base_query, self.expected_errors))
        partitioned_rows: Counter = Counter()
        for query in partitions:
            partitioned_rows.update(_row_key(row) for row in self.fetch_rows(session, query, self.expected_errors))

        if base_rows == partitioned_rows:
            return None

        missing = base_rows - partitioned_rows
        extra = partitioned_rows - base_rows
        diagnostics["tlp partition queries"] = "\n".join(partitions)
        self.logger.debug(f"TLP mismatch in {session.database_name}: predicate {target.predicate}")
        return (f"TLP mismatch for predicate {target.predicate}: base query returned "
                f"{sum(base_rows.values())} rows, partitions returned {sum(partitioned_rows.values())} "
                f"({sum(missing.values())} missing, {sum(extra.values())} extra)")
