"""
Clock Projection
================

Holds the committed offset and projects server time from the local clock.

Offset convention:
    offset      = server_time - local_time
    server_time = local_time + offset
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from .timing import LocalClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClockState:
    """Snapshot of the committed synchronization result.

    `offset_ms` and `last_synchronized_at` stay None until the first
    session finalizes. Replaced as a whole on every commit.
    """

    offset_ms: Optional[float] = None
    last_synchronized_at: Optional[float] = None
    stopped: bool = False


class ClockProjection:
    """Read-only view of server time for any number of consumers.

    Only the owning Synchronizer calls `commit()` and `mark_stopped()`.

    Args:
        clock:     Local clock to project from.
        valid_for: Seconds after which the committed offset is stale.
    """

    def __init__(self, clock: LocalClock, valid_for: float = 1200):
        self._clock = clock
        self.valid_for = valid_for
        self._state = ClockState()

    @property
    def state(self) -> ClockState:
        return self._state

    @property
    def offset(self) -> Optional[float]:
        """Committed offset (ms), or None before the first synchronization."""
        return self._state.offset_ms

    @property
    def last_synchronized_at(self) -> Optional[float]:
        """Monotonic ms of the last commit, or None."""
        return self._state.last_synchronized_at

    @property
    def synced(self) -> bool:
        return self._state.offset_ms is not None

    def to_server_time(self, local_time_ms: float) -> float:
        """Convert a local epoch timestamp to server time (offset 0 until synced)."""
        return local_time_ms + (self._state.offset_ms or 0.0)

    def now(self) -> float:
        """Projected server time, epoch ms."""
        return self.to_server_time(self._clock.now())

    def is_stale(self) -> bool:
        """True if never synchronized or the last commit is older than `valid_for`."""
        last = self._state.last_synchronized_at
        if last is None:
            return True
        return (self._clock.monotonic() - last) > self.valid_for * 1000

    def commit(self, offset_ms: float, synchronized_at: float):
        self._state = ClockState(offset_ms=offset_ms, last_synchronized_at=synchronized_at)
        logger.info(f"Committed offset {offset_ms / 1000:.3f}s")

    def mark_stopped(self):
        self._state = replace(self._state, stopped=True)
