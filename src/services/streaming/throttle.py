"""Rate limiting for delta emission, keyed by slide index or field path."""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)


class DeltaThrottle(Generic[K]):
    """Decide whether an accumulated value should be forwarded now.

    A non-forced offer passes only if the value grew since the last emission
    for that key and at least ``min_interval_ms`` elapsed. A forced offer
    always passes. The first offer for a key is never held back by the
    interval.
    """

    def __init__(
        self,
        min_interval_ms: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._min_interval = max(min_interval_ms, 0) / 1000.0
        self._clock = clock
        self._last_length: dict[K, int] = {}
        self._last_at: dict[K, float] = {}

    def offer(self, key: K, value: str, *, force: bool = False) -> bool:
        if not force:
            if len(value) <= self._last_length.get(key, 0):
                return False
            last_at = self._last_at.get(key)
            if last_at is not None and self._clock() - last_at < self._min_interval:
                return False
        self._last_at[key] = self._clock()
        self._last_length[key] = len(value)
        return True
