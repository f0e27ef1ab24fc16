# Process-wide counters shared by all workers. One Metrics object is owned by
# the harness and handed to every session; increments are lock-protected so
# that no update is lost when many workers report at once.

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class MetricsSnapshot:
    queries: int
    databases: int
    successful_actions: int
    unsuccessful_actions: int
    workers_retired: int

    @property
    def successful_ratio(self) -> float:
        total = self.successful_actions + self.unsuccessful_actions
        return self.successful_actions / total if total else 0.0


class Metrics:
    """Increment-only totals for queries, sessions, statements and retirements."""

    def __init__(self):
        self._lock = threading.Lock()
        self._queries = 0
        self._databases = 0
        self._successful_actions = 0
        self._unsuccessful_actions = 0
        self._workers_retired = 0

    def increment_queries(self, amount: int = 1) -> None:
        with self._lock:
            self._queries += amount

    def increment_databases(self) -> None:
        with self._lock:
            self._databases += 1

    def record_action(self, success: bool) -> None:
        with self._lock:
            if success:
                self._successful_actions += 1
            else:
                self._unsuccessful_actions += 1

    def increment_retired(self) -> int:
        """Count one retired worker and return the new total."""
        with self._lock:
            self._workers_retired += 1
            return self._workers_retired

    @property
    def workers_retired(self) -> int:
        with self._lock:
            return self._workers_retired

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                queries=self._queries,
                databases=self._databases,
                successful_actions=self._successful_actions,
                unsuccessful_actions=self._unsuccessful_actions,
                workers_retired=self._workers_retired,
            )
