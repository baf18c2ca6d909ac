"""
Timing Primitives
=================

Shared clock, sample and timing types used by every stage of the
synchronization pipeline.

HTTP DATE QUANTIZATION:
  The `Date` response header carries whole seconds only, so a server
  time of 12:00:00.999 is reported as 12:00:00. Every offset recovered
  from a single probe therefore under-reads the true offset by somewhere
  between 0 and 999 ms:

      true_offset - 999 ms  <=  sample.offset_ms  <=  true_offset

  Probing at different phases of the server second spreads samples over
  both ends of that range; a spread of ~1000 ms means the upper end has
  been hit.

OFFSET ESTIMATE (one probe):
  latency_half  = (response_start - request_start) / 2
  elapsed       = (request_start - start_time) + latency_half
  offset        = http_time - (client_time + elapsed)

  where client_time is the local wall-clock reading taken right before
  dispatch and the other marks come from per-request network tracing.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional


# =================
# CONSTANTS
# =================

# Resolution of the HTTP `Date` header, in ms.
TRUNCATION_MS = 1000


class SyncStatus(str, Enum):
    """Status events published to listeners."""
    SYNCHRONIZING = "synchronizing"
    CONVERGED = "converged"
    INACCURACY_WARNING = "inaccuracy_warning"
    REQUEST_ERROR = "request_error"
    STOPPED = "stopped"


# ===================
# UTILITY FUNCTIONS
# ===================

def current_time_ms() -> float:
    """Current time in milliseconds since Unix epoch."""
    return time.time() * 1000


def monotonic_ms() -> float:
    """High-precision monotonic counter in milliseconds."""
    return time.perf_counter() * 1000


def estimate_offset(http_time_ms: float, client_time_ms: float, elapsed_ms: float) -> float:
    """Offset implied by one probe.

    Args:
        http_time_ms:   Server `Date` header as epoch ms (whole seconds).
        client_time_ms: Local epoch ms recorded right before dispatch.
        elapsed_ms:     Estimated time between dispatch and the moment the
                        server stamped the response.
    """
    return http_time_ms - (client_time_ms + elapsed_ms)


class LocalClock:
    """Local wall clock anchored to a monotonic counter.

    Wall-clock readings are derived from a single epoch origin plus the
    monotonic counter, so `now()` never jumps when the system clock is
    stepped while the engine runs.
    """

    def __init__(self):
        self._origin_ms = current_time_ms() - monotonic_ms()

    def monotonic(self) -> float:
        """Monotonic milliseconds, used for durations and staleness."""
        return monotonic_ms()

    def now(self) -> float:
        """Local epoch milliseconds."""
        return self._origin_ms + self.monotonic()


# =================
# DATA CLASSES
# =================

@dataclass(frozen=True)
class ProbeTiming:
    """Network timing marks for one probe (monotonic ms)."""

    start_time: float
    request_start: float
    response_start: float
    response_end: float

    @property
    def latency_half(self) -> float:
        """One-way latency, assuming a symmetric round trip."""
        return (self.response_start - self.request_start) / 2

    @property
    def elapsed_since_request_start(self) -> float:
        return (self.request_start - self.start_time) + self.latency_half

    @property
    def round_trip(self) -> float:
        return self.response_end - self.start_time


@dataclass(frozen=True)
class Sample:
    """A single offset sample produced by one successful probe."""

    offset_ms: float
    elapsed_ms: float
    collected_at: float
    timing: Optional[ProbeTiming] = None

    def __str__(self) -> str:
        return f"Sample[offset={self.offset_ms:.1f}ms elapsed={self.elapsed_ms:.1f}ms]"
