import threading
import time
from typing import NamedTuple

import numpy as np
from typing_extensions import List, Optional

__all__ = ["ElapsedTime", "SpeedStats", "Summary", "Timer"]


class ElapsedTime(NamedTuple):
    seconds: float
    # True when the value came from the codec's own `.time` report instead of
    # our wall clock.
    self_reported: bool = False

    def __repr__(self) -> str:
        source = "self-reported" if self.self_reported else "measured"
        return f"<ElapsedTime {self.seconds:.6f}s ({source})>"


class Summary(NamedTuple):
    min: float
    max: float
    central_tendency: float
    variability: float
    type: str


class SpeedStats:
    """
    Collects the elapsed times of repeated encode or decode runs.
    Safe to share between worker threads.
    """

    def __init__(self) -> None:
        self._elapsed: List[float] = []
        self._lock = threading.Lock()

    def notify_elapsed(self, elapsed_seconds: float) -> None:
        if elapsed_seconds > 0.0:
            with self._lock:
                self._elapsed.append(elapsed_seconds)

    def __len__(self) -> int:
        return len(self._elapsed)

    @property
    def total(self) -> float:
        return sum(self._elapsed)

    def get_summary(self) -> Summary:
        with self._lock:
            elapsed = np.sort(np.asarray(self._elapsed, dtype=np.float64))
        if elapsed.size == 0:
            raise ValueError("Didn't call notify_elapsed")

        lo, hi = float(elapsed[0]), float(elapsed[-1])
        if elapsed.size == 1:
            return Summary(lo, hi, lo, 0.0, "")
        if elapsed.size == 2:
            # Two samples are not enough for a spread; report the faster one.
            return Summary(lo, hi, lo, 0.0, "Best of 2")

        geomean = float(np.exp(np.mean(np.log(elapsed))))
        return Summary(
            lo,
            hi,
            geomean,
            float(np.std(elapsed, ddof=1)),
            f"Geomean of {elapsed.size}",
        )

    def summary_string(self, pixels: int = 0) -> str:
        """Central time and, given the pixels per run, the throughput."""
        s = self.get_summary()
        text = f"{s.central_tendency:.6f}s"
        if s.type:
            text += f" ({s.type}, min {s.min:.6f}s, max {s.max:.6f}s)"
        if pixels:
            text += f", {pixels * 1e-6 / s.central_tendency:.2f} MP/s"
        return text


class Timer:
    """
    Context manager that measures the wall clock time of a piece of code.
    The elapsed time is reported to `speed_stats` if one is given.
    """

    def __init__(self, speed_stats: Optional[SpeedStats] = None) -> None:
        self.speed_stats = speed_stats
        self.time_start = None
        self.elapsed = None

    def __enter__(self):
        self.time_start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.elapsed = time.perf_counter() - self.time_start
        if exc_type is None and self.speed_stats is not None:
            self.speed_stats.notify_elapsed(self.elapsed)
