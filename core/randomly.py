"""
Seeded random source for a fuzzing session.

Every randomized decision taken while a session runs (which action to run,
how many times, which table, which constant) must come from the session's
Randomly instance so that a fixed seed replays an identical statement
sequence.
"""

import random
import string
from typing import Any, List, Optional, Sequence, TypeVar

T = TypeVar("T")

INTERESTING_INTEGERS = (
    0, 1, -1,
    127, -128, 255,
    32767, -32768,
    2147483647, -2147483648,
    9223372036854775807, -9223372036854775808,
)

STRING_ALPHABET = string.ascii_letters + string.digits + " %_'\\"


class Randomly:
    """Deterministic random-number generator seeded once per session."""

    SMALL_PROBABILITY = 0.05
    CACHE_SIZE = 100
    CACHE_PROBABILITY = 0.25

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random()
        self._seed: Optional[int] = None
        # Previously drawn values; re-using them makes equal constants (and so
        # matching rows) far more likely than uniform draws would.
        self._cached_integers: List[int] = []
        self._cached_strings: List[str] = []
        if seed is not None:
            self.seed(seed)

    def seed(self, value: int) -> None:
        self._seed = value
        self._random.seed(value)
        self._cached_integers.clear()
        self._cached_strings.clear()

    @property
    def seed_value(self) -> Optional[int]:
        return self._seed

    def get_integer(self, lo: int, hi: int) -> int:
        """Uniform integer in the closed range [lo, hi]."""
        if lo > hi:
            raise ValueError(f"empty range [{lo}, {hi}]")
        return self._random.randint(lo, hi)

    def get_boolean(self) -> bool:
        return self._random.random() < 0.5

    def get_boolean_with_probability(self, probability: float) -> bool:
        return self._random.random() < probability

    def get_boolean_with_small_probability(self) -> bool:
        return self.get_boolean_with_probability(self.SMALL_PROBABILITY)

    def get_boolean_with_large_probability(self) -> bool:
        return self.get_boolean_with_probability(1 - self.SMALL_PROBABILITY)

    def get_double(self) -> float:
        return self._random.uniform(-1e6, 1e6)

    def from_options(self, *options: T) -> T:
        if not options:
            raise ValueError("from_options() needs at least one option")
        return options[self._random.randrange(len(options))]

    def from_list(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("cannot pick from an empty list")
        return items[self._random.randrange(len(items))]

    def shuffle(self, items: List[Any]) -> None:
        self._random.shuffle(items)

    def subset(self, items: Sequence[T]) -> List[T]:
        return [item for item in items if self.get_boolean()]

    def non_empty_subset(self, items: Sequence[T]) -> List[T]:
        if not items:
            raise ValueError("cannot take a non-empty subset of an empty list")
        chosen = self.subset(items)
        if not chosen:
            chosen = [self.from_list(items)]
        return chosen

    def get_interesting_integer(self) -> int:
        """Boundary value, previously drawn value, or a uniform 64-bit integer."""
        if self._cached_integers and self.get_boolean_with_probability(self.CACHE_PROBABILITY):
            return self.from_list(self._cached_integers)
        if self.get_boolean():
            value = self.from_list(INTERESTING_INTEGERS)
        else:
            value = self._random.randint(-(2 ** 63), 2 ** 63 - 1)
        self._remember(self._cached_integers, value)
        return value

    def get_string(self, max_length: int = 10) -> str:
        if self._cached_strings and self.get_boolean_with_probability(self.CACHE_PROBABILITY):
            return self.from_list(self._cached_strings)
        length = self.get_integer(0, max_length)
        value = "".join(self.from_list(STRING_ALPHABET) for _ in range(length))
        self._remember(self._cached_strings, value)
        return value

    def _remember(self, cache: List[Any], value: Any) -> None:
        if len(cache) >= self.CACHE_SIZE:
            cache.pop(0)
        cache.append(value)
