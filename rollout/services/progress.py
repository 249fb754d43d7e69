import threading
import time
from typing import Callable, Optional

from rollout.errors import ProgressInvariantError
from rollout.models import Progress


class ProgressAggregator:
    """Started/completed counters and elapsed time for one job.

    Counters only ever grow and always satisfy
    ``0 <= completed <= started <= total``. Once :meth:`freeze` has been
    called the counters and the duration no longer change, and further
    marks are ignored.
    """

    def __init__(self, total: int, lock: Optional[threading.RLock] = None,
                 clock: Callable[[], float] = time.monotonic):
        if total < 0:
            raise ValueError("total must be non-negative")
        self.total = total
        self._lock = lock or threading.RLock()
        self._clock = clock
        self._started_at = clock()
        self._started = 0
        self._completed = 0
        self._duration: Optional[int] = None

    @property
    def frozen(self) -> bool:
        return self._duration is not None

    @property
    def started(self) -> int:
        return self._started

    @property
    def completed(self) -> int:
        return self._completed

    def mark_started(self) -> bool:
        with self._lock:
            if self.frozen:
                return False
            if self._started >= self.total:
                raise ProgressInvariantError(
                    f"started would exceed destination count ({self.total})")
            self._started += 1
            return True

    def mark_completed(self) -> bool:
        with self._lock:
            if self.frozen:
                return False
            if self._completed >= self._started:
                raise ProgressInvariantError(
                    f"completed would exceed started ({self._started})")
            self._completed += 1
            return True

    def elapsed(self) -> int:
        return int(self._clock() - self._started_at)

    def freeze(self) -> int:
        """Fix the duration at the current elapsed time; idempotent."""
        with self._lock:
            if self._duration is None:
                self._duration = max(self.elapsed(), 0)
            return self._duration

    def all_completed(self) -> bool:
        with self._lock:
            return self._completed == self.total

    def snapshot(self) -> Progress:
        with self._lock:
            duration = self._duration if self._duration is not None else max(self.elapsed(), 0)
            return Progress(started=self._started, completed=self._completed, duration=duration)
