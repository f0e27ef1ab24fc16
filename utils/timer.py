import time


class ExecutionTimer:
    """Wall-clock stopwatch used for the per-statement timing log."""

    def __init__(self):
        self._start = None
        self._elapsed = None

    def start(self) -> "ExecutionTimer":
        self._start = time.perf_counter()
        return self

    def end(self) -> "ExecutionTimer":
        if self._start is None:
            raise RuntimeError("timer was never started")
        self._elapsed = time.perf_counter() - self._start
        return self

    @property
    def elapsed_ms(self) -> float:
        return (self._elapsed or 0.0) * 1000

    def as_string(self) -> str:
        return f"{self.elapsed_ms:.0f}ms"
