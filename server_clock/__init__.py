"""
Server Clock Package
====================

Estimates the offset between the local clock and a remote HTTP server
from the one-second resolution `Date` response header, and projects
server time from it.

Modules:
    timing        - Clock, sample and timing primitives
    config        - Synchronization settings
    errors        - Error taxonomy
    sampler       - One timed HTTP probe -> offset sample
    scheduler     - Phase-spreading delays between probes
    estimation    - Convergence checks and adjustment selection
    projection    - Committed offset and server-time projection
    stats         - Probe statistics
    synchronizer  - Session state machine tying it all together
"""

from .timing import (
    TRUNCATION_MS,
    SyncStatus,
    LocalClock,
    ProbeTiming,
    Sample,
    current_time_ms,
    estimate_offset,
)
from .config import SyncConfig
from .errors import (
    ServerClockError,
    ConfigError,
    ProbeError,
    NetworkFailure,
    ProbeTimeout,
    TimingUnavailable,
    SampleExhaustion,
)
from .sampler import Sampler
from .scheduler import Scheduler, truncation_phase_delay
from .estimation import Decision, SampleSet, evaluate, select_adjustment
from .projection import ClockProjection, ClockState
from .stats import ProbeStats
from .synchronizer import SessionState, SyncResult, Synchronizer

ServerClock = Synchronizer

__all__ = [
    "TRUNCATION_MS",
    "SyncStatus",
    "LocalClock",
    "ProbeTiming",
    "Sample",
    "current_time_ms",
    "estimate_offset",
    "SyncConfig",
    "ServerClockError",
    "ConfigError",
    "ProbeError",
    "NetworkFailure",
    "ProbeTimeout",
    "TimingUnavailable",
    "SampleExhaustion",
    "Sampler",
    "Scheduler",
    "truncation_phase_delay",
    "Decision",
    "SampleSet",
    "evaluate",
    "select_adjustment",
    "ClockProjection",
    "ClockState",
    "ProbeStats",
    "SessionState",
    "SyncResult",
    "Synchronizer",
    "ServerClock",
]
