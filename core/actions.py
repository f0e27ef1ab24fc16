"""
Actions and the randomized workload scheduler.

An Action is a named statement category of a dialect (INSERT, VACUUM, ...)
made of a generator and a weight policy. The StatementExecutor draws how often
each action runs this session, shuffles the resulting worklist and executes it
statement by statement.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from core.errors import SkipAttempt
from core.query import Query

if TYPE_CHECKING:
    from core.session import Session

QueryGenerator = Callable[["Session"], Query]
WeightPolicy = Callable[["Session"], int]
PostExecutionHook = Callable[[Query], None]


@dataclass(frozen=True)
class Action:
    """A named, dialect-registered statement category."""
    name: str
    generator: QueryGenerator
    weight: WeightPolicy

    def get_query(self, session: "Session") -> Query:
        return self.generator(session)


def fixed_weight(count: int) -> WeightPolicy:
    """Weight policy that always yields ``count`` repetitions."""
    return lambda session: count


def ranged_weight(lo: int, hi: int) -> WeightPolicy:
    """Weight policy drawing uniformly from [lo, hi] with the session's random source."""
    return lambda session: session.randomly.get_integer(lo, hi)


class StatementExecutor:
    """Builds and runs one randomized workload of statements against a session."""

    def __init__(self, session: "Session", actions: Sequence[Action],
                 weight: Optional[Callable[["Session", Action], int]] = None,
                 post_hook: Optional[PostExecutionHook] = None):
        """
        Args:
            session: Session to run the workload on
            actions: Ordered actions of the dialect
            weight: Optional override of the per-action weight policy
            post_hook: Called with each executed Query; may raise SkipAttempt
                to abandon the rest of the workload
        """
        self.session = session
        self.actions = list(actions)
        self.weight = weight or (lambda s, action: action.weight(s))
        self.post_hook = post_hook
        self.logger = logging.getLogger(self.__class__.__name__)

    def build_worklist(self) -> List[Action]:
        """Replicate every action by its drawn count and shuffle the result."""
        worklist: List[Action] = []
        for action in self.actions:
            count = self.weight(self.session, action)
            if count < 0:
                raise ValueError(f"weight policy of {action.name} returned {count}")
            worklist.extend([action] * count)
        self.session.randomly.shuffle(worklist)
        return worklist

    def execute_statements(self) -> int:
        """
        Run the workload.

        Returns:
            Number of statements submitted

        Raises:
            SkipAttempt: the post-execution hook abandoned the workload
        """
        worklist = self.build_worklist()
        self.logger.debug(f"{self.session.database_name}: workload of {len(worklist)} statements")
        submitted = 0
        for action in worklist:
            try:
                query = action.get_query(self.session)
            except SkipAttempt:
                continue
            self.session.execute(query)
            submitted += 1
            if self.post_hook is not None:
                self.post_hook(query)
        return submitted
