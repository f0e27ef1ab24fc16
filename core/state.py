# Everything needed to replay a session: the submitted statements in order,
# the seed and database identity, and (after a failure) the exception text plus
# whatever the dialect's oracles stashed away for diagnostics.

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.query import Query


@dataclass
class ReproductionRecord:
    """Ordered statement log plus metadata for one session."""
    database_name: str
    seed: Optional[int] = None
    database_version: Optional[str] = None
    statements: List[Query] = field(default_factory=list)
    # Last result-returning (oracle) statement; printed after the statements.
    query_string: Optional[str] = None
    exception: Optional[str] = None
    # Opaque to the engine; only the dialect's write_diagnostics reads it.
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def add_statement(self, query: Query) -> None:
        self.statements.append(query)

    def log_statement(self, statement: str) -> None:
        """Record a bootstrap statement that bypassed the session (e.g. \\c db)."""
        self.statements.append(Query(statement))
