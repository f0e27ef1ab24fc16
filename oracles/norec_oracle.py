"""
NoREC Oracle - Non-optimizing Reference Engine Construction.

Compares the row count of an optimizable query

    SELECT COUNT(*) FROM t WHERE p

with a version the planner cannot optimize, because the predicate is moved
from the WHERE clause into the projection and evaluated once per row:

    SELECT SUM(count) FROM (SELECT CAST((p) IS TRUE AS INT) AS count FROM t) AS res

Both must agree; a difference points at an optimization bug.
"""

from typing import TYPE_CHECKING, Iterable, Optional

from oracles.base_oracle import BaseOracle, TargetProvider

if TYPE_CHECKING:
    from core.session import Session


class NoRECOracle(BaseOracle):
    """Optimized vs. non-optimized evaluation of the same predicate."""

    def __init__(self, target_provider: TargetProvider, expected_errors: Iterable[str] = ()):
        super().__init__()
        self.target_provider = target_provider
        self.expected_errors = frozenset(expected_errors)

    def get_oracle_name(self) -> str:
        return "NOREC"

    def _single_count(self, session: "Session", sql: str) -> int:
        rows = self.fetch_rows(session, sql, self.expected_errors)
        if not rows or rows[0][0] is None:
            return 0
        return int(rows[0][0])

    def check(self, session: "Session") -> Optional[str]:
        target = self.target_provider(session)
        optimized = f"SELECT COUNT(*) FROM {target.from_clause} WHERE {target.predicate}"
        unoptimized = (f"SELECT SUM(count) FROM (SELECT CAST(({target.predicate}) IS TRUE AS INT) "
                       f"AS count FROM {target.from_clause}) AS res")

        diagnostics = session.state.diagnostics
        diagnostics["norec optimized query"] = optimized
        diagnostics["norec unoptimized query"] = unoptimized

        optimized_count = self._single_count(session, optimized)
        unoptimized_count = self._single_count(session, unoptimized)
        if optimized_count == unoptimized_count:
            return None
        return (f"NoREC mismatch: optimized query counted {optimized_count} rows, "
                f"unoptimized query counted {unoptimized_count}")
