# Exception hierarchy shared by the engine, the oracles and the dialects.
# Soft skips and logic bugs are plain exceptions; anything deriving from
# FatalError signals an adapter or configuration bug and aborts the run.

from typing import Optional


class FuzzerError(Exception):
    """Base class for all errors raised by the fuzzer itself."""


class SkipAttempt(FuzzerError):
    """
    Raised by a generator or oracle whose precondition is not met.

    The current statement (or oracle check) is abandoned without counting as
    a failure. Raised from the workload's post-statement hook it abandons the
    rest of the workload and the session is discarded.
    """


class LogicBugError(FuzzerError):
    """An oracle found two results that should agree but don't."""

    def __init__(self, description: str, oracle_name: Optional[str] = None):
        super().__init__(description)
        self.description = description
        self.oracle_name = oracle_name

    def __str__(self) -> str:
        if self.oracle_name:
            return f"[{self.oracle_name}] {self.description}"
        return self.description


class FatalError(FuzzerError):
    """Programming or setup error; never treated as a fuzzing finding."""


class QueryConstructionError(FatalError):
    """A Query was built in violation of its invariants."""


class SessionCreationError(FatalError):
    """A session (or its connection) could not be created."""


class ConfigurationError(FatalError):
    """Invalid configuration or unknown dialect."""
