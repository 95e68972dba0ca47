"""
Per-request deadline propagated into every vault, database and HTTP call.
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from errors import DeadlineExceeded


class Deadline:
    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + float(seconds)

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, what: str) -> None:
        if self.expired:
            raise DeadlineExceeded(f"Deadline exceeded before {what}")

    def timeout(self, configured: Optional[float] = None) -> float:
        """The timeout to hand to the next call: the configured one, capped by what is left."""
        left = self.remaining()
        if configured is None:
            return left
        return min(float(configured), left)
