"""Wall-clock budget for a single batch call."""

import time
from typing import Callable, Optional

Timer = Callable[[], float]


class TimeBudget:
    """Monotonic deadline checked before each document of a page.

    Exceeding the budget only stops consuming the current page. Mutations
    already staged are still applied by the caller.
    """

    def __init__(self, max_execution_ms: int, timer: Timer = time.monotonic):
        if max_execution_ms < 0:
            raise ValueError("max_execution_ms must be >= 0")
        self.max_execution_ms = max_execution_ms
        self._timer = timer
        self._started_at: Optional[float] = None

    def start(self) -> "TimeBudget":
        self._started_at = self._timer()
        return self

    def _elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return (self._timer() - self._started_at) * 1000

    @property
    def elapsed_ms(self) -> int:
        """Whole milliseconds, for reporting only."""
        return int(self._elapsed())

    def exceeded(self) -> bool:
        return self._elapsed() > self.max_execution_ms
