"""
Composite oracle that spreads checks over several member oracles.

Selection policy: round-robin. Each check() call is delegated to exactly one
member, cycling through the members in their configured order, so with N
members and K checks per session every member runs floor(K/N) or ceil(K/N)
times. A member's skip, database error or mismatch is passed through as is.
"""

from typing import TYPE_CHECKING, List, Optional, Sequence

from core.errors import ConfigurationError
from oracles.base_oracle import BaseOracle

if TYPE_CHECKING:
    from core.session import Session


class CompositeOracle(BaseOracle):
    """Delegates each check to the next member oracle in turn."""

    def __init__(self, oracles: Sequence[BaseOracle]):
        super().__init__()
        if not oracles:
            raise ConfigurationError("CompositeOracle needs at least one member oracle")
        self.oracles: List[BaseOracle] = list(oracles)
        self._next_index = 0
        self._last_oracle: Optional[BaseOracle] = None

    def _advance(self) -> BaseOracle:
        oracle = self.oracles[self._next_index]
        self._next_index = (self._next_index + 1) % len(self.oracles)
        return oracle

    def check(self, session: "Session") -> Optional[str]:
        oracle = self._advance()
        self._last_oracle = oracle
        return oracle.check(session)

    def get_oracle_name(self) -> str:
        # Name the member that produced the result, not the composite.
        if self._last_oracle is not None:
            return self._last_oracle.get_oracle_name()
        return super().get_oracle_name()
