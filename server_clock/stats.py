"""
Probe Statistics
================

Tracks probe latency and failure counts over a sliding window.
"""

from collections import Counter, deque

from .timing import Sample


class ProbeStats:
    """Sliding-window probe statistics.

    Args:
        window: Number of recent samples to keep for averaging.
    """

    def __init__(self, window: int = 100):
        self._elapsed: deque[float] = deque(maxlen=window)
        self._round_trips: deque[float] = deque(maxlen=window)
        self.sample_count: int = 0
        self.failures: Counter = Counter()

    def record(self, sample: Sample):
        """Record a successful probe."""
        self._elapsed.append(sample.elapsed_ms)
        if sample.timing is not None:
            self._round_trips.append(sample.timing.round_trip)
        self.sample_count += 1

    def record_failure(self, error: Exception):
        """Record a failed probe under its error type name."""
        self.failures[type(error).__name__] += 1

    @staticmethod
    def _avg(d: deque) -> float:
        """Average of a deque, or 0.0 if empty."""
        return sum(d) / len(d) if d else 0.0

    @property
    def failure_count(self) -> int:
        return sum(self.failures.values())

    @property
    def avg_elapsed_ms(self) -> float:
        return self._avg(self._elapsed)

    @property
    def avg_round_trip_ms(self) -> float:
        return self._avg(self._round_trips)

    def __str__(self) -> str:
        failures = " ".join(f"{name}={count}" for name, count in sorted(self.failures.items()))
        return (
            f"samples={self.sample_count} failures={self.failure_count} "
            f"elapsed={self.avg_elapsed_ms:.1f}ms "
            f"rtt={self.avg_round_trip_ms:.1f}ms"
            + (f" [{failures}]" if failures else "")
        )
