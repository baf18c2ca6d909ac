"""
Probe Scheduler
===============

Chooses when the next probe is sent so that successive probes land at
different phases of the server second. Without that spread every sample
would be truncated by roughly the same amount and the upper end of the
truncation range would never be observed.
"""

from typing import Optional

from .config import SyncConfig
from .timing import TRUNCATION_MS, LocalClock


def truncation_phase_delay(local_time: float, offset: float, expected_elapsed: float,
                           phase: float) -> float:
    """Delay (ms) until the next probe reaches the server `phase` ms before a second boundary.

    Args:
        local_time:       Local epoch ms now.
        offset:           Current best-guess offset, ms.
        expected_elapsed: Expected dispatch-to-server time of the next probe, ms.
        phase:            Target distance before the server second boundary, ms.

    Returns:
        A delay in (0, TRUNCATION_MS].
    """
    return TRUNCATION_MS - ((local_time + offset + expected_elapsed + phase) % TRUNCATION_MS)


class Scheduler:
    """Computes inter-probe delays.

    Args:
        config: Supplies `warmup_delay` and `error_tolerance` (the phase floor).
        clock:  Local clock.
    """

    def __init__(self, config: SyncConfig, clock: LocalClock):
        self.config = config
        self._clock = clock

    def phase_offset(self, sample_count: int) -> float:
        """Phase target, halving with every sample down to `error_tolerance`."""
        return max(TRUNCATION_MS / (2 ** sample_count), self.config.error_tolerance)

    def next_delay(self, expected_elapsed: float, sample_count: int,
                   best_offset: Optional[float]) -> float:
        """Delay in ms before the next probe."""
        if best_offset is None:
            return self.config.warmup_delay
        return truncation_phase_delay(
            self._clock.now(),
            best_offset,
            expected_elapsed,
            self.phase_offset(sample_count),
        )
