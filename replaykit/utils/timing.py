# replaykit/utils/timing.py
from __future__ import annotations

import heapq
import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, TypeVar, ParamSpec

from replaykit.utils.logger import get_logger

P = ParamSpec("P")
T = TypeVar("T")


# ---------------- Monotonic time helpers ----------------

def now_ms() -> float:
    """Monotonic time in milliseconds."""
    return time.monotonic_ns() / 1_000_000


def sleep_ms(ms: float) -> None:
    """Sleep for `ms` milliseconds (blocking)."""
    if ms <= 0:
        return
    time.sleep(ms / 1000.0)


# ---------------- Stopwatch ----------------

@dataclass
class Stopwatch:
    """Simple stopwatch usable as a context manager. Reads time from `clock` when given."""
    clock: Optional["SystemClock | ManualClock"] = None
    start_ms: Optional[float] = None

    def _now(self) -> float:
        return self.clock.now_ms() if self.clock is not None else now_ms()

    def start(self) -> "Stopwatch":
        self.start_ms = self._now()
        return self

    def elapsed_ms(self) -> float:
        if self.start_ms is None:
            return 0.0
        return max(0.0, self._now() - self.start_ms)

    def __enter__(self) -> "Stopwatch":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


# ---------------- Clocks ----------------

class _ThreadTimer:
    def __init__(self, timer: threading.Timer) -> None:
        self._timer = timer
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        self._timer.cancel()


class SystemClock:
    """
    Wall-clock implementation of the Clock capability.
    Delayed callbacks run on daemon timer threads; sleeps wait on the cancel
    event so a cancelled run wakes up immediately.
    """

    def now_ms(self) -> float:
        return now_ms()

    def sleep_ms(self, ms: float, cancel: Optional[threading.Event] = None) -> bool:
        """Return False when `cancel` fired before or during the sleep."""
        if cancel is None:
            sleep_ms(ms)
            return True
        if cancel.is_set():
            return False
        return not cancel.wait(max(0.0, ms) / 1000.0)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ThreadTimer:
        t = threading.Timer(max(0.0, delay_ms) / 1000.0, callback)
        t.daemon = True
        t.start()
        return _ThreadTimer(t)


@dataclass
class _ManualTimer:
    due_ms: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualClock:
    """
    Virtual clock driven by `advance()`. Timers fire synchronously, in due order,
    on the caller's thread. `sleep_ms` simply advances virtual time.
    """
    current_ms: float = 0.0
    _queue: List[Tuple[float, int, _ManualTimer]] = field(default_factory=list)
    _seq: "itertools.count[int]" = field(default_factory=itertools.count)

    def now_ms(self) -> float:
        return self.current_ms

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(due_ms=self.current_ms + max(0.0, delay_ms), callback=callback)
        heapq.heappush(self._queue, (timer.due_ms, next(self._seq), timer))
        return timer

    def advance(self, ms: float) -> None:
        target = self.current_ms + max(0.0, ms)
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.current_ms = due
            timer.callback()
        self.current_ms = target

    def sleep_ms(self, ms: float, cancel: Optional[threading.Event] = None) -> bool:
        if cancel is not None and cancel.is_set():
            return False
        self.advance(ms)
        return not (cancel is not None and cancel.is_set())

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)


# ---------------- measure decorator ----------------

def measure(label: str = "", level: str = "DEBUG") -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator to log the execution time of a function.
    Example:
        @measure("build bundle")
        def build(...): ...
    """
    level = level.upper()
    log = get_logger(__name__)
    log_fn = getattr(log, level.lower(), log.debug)

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            with Stopwatch() as sw:
                try:
                    return func(*args, **kwargs)
                finally:
                    ms = sw.elapsed_ms()
                    human = f"{ms:.1f} ms" if ms < 1000 else f"{ms/1000:.3f} s"
                    name = label or func.__name__
                    log_fn(f"{name} took {human}")
        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper
    return decorator
