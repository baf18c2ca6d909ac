"""
Server Clock Synchronizer
=========================

Drives repeated HTTP probes against a target URL until the collected
offsets converge, then commits the chosen offset to the clock projection.

Session states:

    IDLE -> COLLECTING -> EVALUATING -> CONVERGED | DEGRADED | FAILED
                ^              |
                +--------------+

A session runs as a single asyncio task; every wait (probe timeout and
inter-probe delay) happens inside it, so cancelling that one task stops
all pending work.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from .config import SyncConfig
from .errors import ProbeError, SampleExhaustion
from .estimation import Decision, SampleSet, evaluate, select_adjustment
from .projection import ClockProjection
from .sampler import Sampler
from .scheduler import Scheduler
from .stats import ProbeStats
from .timing import LocalClock, SyncStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus], None]


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class SessionState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    EVALUATING = "evaluating"
    CONVERGED = "converged"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class SyncSession:
    """Working state of one synchronization run."""

    session_id: int
    samples: SampleSet = field(default_factory=SampleSet)
    attempts: int = 0
    last_elapsed: float = 0.0
    state: SessionState = SessionState.IDLE


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a finished session."""

    state: SessionState
    offset_ms: float
    offsets: Tuple[float, ...]
    attempts: int

    @property
    def converged(self) -> bool:
        return self.state is SessionState.CONVERGED


class Synchronizer:
    """Estimates and tracks the offset between the local clock and an HTTP server.

    Each instance is independent; running several against different
    servers is fine.

    Args:
        url:       Target URL. Any endpoint returning a `Date` header works.
        config:    Synchronization settings.
        sampler:   Probe implementation (default: HTTP Sampler).
        clock:     Local clock shared by sampler, scheduler and projection.
        sleep:     Coroutine used for inter-probe waits, in seconds.
        on_status: Optional listener registered at construction.
    """

    def __init__(
        self,
        url: str,
        config: Optional[SyncConfig] = None,
        *,
        sampler: Optional[Sampler] = None,
        clock: Optional[LocalClock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_status: Optional[StatusListener] = None,
    ):
        self.url = url
        self.config = config or SyncConfig()
        self._clock = clock or LocalClock()
        self._sampler = sampler or Sampler(self._clock, self.config.correlation_tolerance)
        self._scheduler = Scheduler(self.config, self._clock)
        self._sleep = sleep

        self.projection = ClockProjection(self._clock, valid_for=self.config.valid_for)
        self.stats = ProbeStats()

        self._listeners: List[StatusListener] = []
        if on_status:
            self._listeners.append(on_status)

        self._task: Optional[asyncio.Task] = None
        self._session: Optional[SyncSession] = None
        self._session_counter = 0
        self._stopped = False

    # ---- Properties ----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """State of the current (or most recent) session."""
        return self._session.state if self._session else SessionState.IDLE

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def get_server_time(self) -> float:
        """Projected server time, epoch ms."""
        return self.projection.now()

    def get_offset(self) -> Optional[float]:
        """Committed offset in ms (positive = server ahead), or None."""
        return self.projection.offset

    def get_last_synchronized_at(self) -> Optional[float]:
        """Monotonic ms of the last commit, or None."""
        return self.projection.last_synchronized_at

    def is_stale(self) -> bool:
        return self.projection.is_stale()

    # ---- Status events -------------------------------------------------------

    def add_listener(self, listener: StatusListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, status: SyncStatus):
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Status listener error: {e}")

    # ---- Lifecycle -----------------------------------------------------------

    async def synchronize(self) -> SyncResult:
        """Run a synchronization session.

        Any session already running is cancelled first, and only the most
        recent call starts a new one. Superseded callers, and callers whose
        start was interrupted by `stop()`, see asyncio.CancelledError.

        Returns:
            SyncResult of the converged or degraded session.

        Raises:
            SampleExhaustion: every attempt failed.
        """
        self._session_counter += 1
        generation = self._session_counter
        self._stopped = False

        await self._cancel_pending()
        if generation != self._session_counter or self._stopped:
            raise asyncio.CancelledError()

        session = SyncSession(session_id=generation)
        self._session = session

        task = asyncio.create_task(self._run(session))
        self._task = task
        try:
            return await task
        finally:
            if self._task is task:
                self._task = None

    def stop(self):
        """Cancel pending work and prevent further scheduling.

        An already committed offset is kept. When called from inside the
        session (e.g. by a status listener) the session finishes its
        current step and then ends.
        """
        self._stopped = True
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self.projection.mark_stopped()
        self._emit(SyncStatus.STOPPED)

    async def close(self):
        """Stop and release the HTTP session."""
        if not self._stopped:
            self.stop()
        await self._cancel_pending()
        await self._sampler.close()

    exit = close

    async def __aenter__(self) -> "Synchronizer":
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _cancel_pending(self):
        """Cancel the running session and wait until it has finished.

        The task stays registered while it winds down so that concurrent
        callers cancel and wait on the same task.
        """
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait({task})
        if self._task is task:
            self._task = None

    # ---- Session -------------------------------------------------------------

    async def _run(self, session: SyncSession) -> SyncResult:
        config = self.config
        samples = session.samples
        delay: Optional[float] = None
        last_error: Optional[Exception] = None

        logger.info(f"Synchronizing with {self.url}")
        self._emit(SyncStatus.SYNCHRONIZING)
        session.state = SessionState.COLLECTING

        while True:
            if delay is not None:
                await self._sleep(delay / 1000)
            if self._stopped:
                raise asyncio.CancelledError()

            session.attempts += 1
            try:
                sample = await self._sampler.collect(self.url, config.timeout_after)
            except ProbeError as e:
                last_error = e
                self.stats.record_failure(e)
                logger.warning(f"Probe {session.attempts}/{config.sample_maximum} failed: {e}")
                self._emit(SyncStatus.REQUEST_ERROR)
                if session.attempts >= config.sample_maximum:
                    if samples:
                        return self._finalize(session, SessionState.DEGRADED)
                    session.state = SessionState.FAILED
                    raise SampleExhaustion(session.attempts, last_error)
                delay = self._scheduler.next_delay(
                    session.last_elapsed, len(samples), samples.best_offset
                )
                continue

            samples.add(sample)
            session.last_elapsed = sample.elapsed_ms
            self.stats.record(sample)
            logger.debug(f"Collected a difference sample ({len(samples)}): {sample}")

            session.state = SessionState.EVALUATING
            decision = evaluate(samples, session.attempts, config)

            if decision is Decision.OUTLIER:
                dropped = samples.trim_outliers()
                logger.info(
                    f"Likely outlier, dropped "
                    f"{', '.join(f'{s.offset_ms:.0f}ms' for s in dropped)}"
                )
                if session.attempts >= config.sample_maximum:
                    decision = Decision.DEGRADED

            if decision is Decision.CONVERGED:
                return self._finalize(session, SessionState.CONVERGED)
            if decision is Decision.DEGRADED:
                return self._finalize(session, SessionState.DEGRADED)

            session.state = SessionState.COLLECTING
            delay = self._scheduler.next_delay(
                sample.elapsed_ms, len(samples), samples.best_offset
            )

    def _finalize(self, session: SyncSession, state: SessionState) -> SyncResult:
        offsets = tuple(session.samples.offsets())
        offset = select_adjustment(offsets)
        session.state = state

        if session is not self._session or self._stopped:
            # Superseded sessions never write the clock state.
            raise asyncio.CancelledError()

        self.projection.commit(offset, self._clock.monotonic())
        logger.info(
            f"Adjustments: {', '.join(f'{o / 1000:.3f}' for o in offsets)}; "
            f"chosen {offset / 1000:.3f}s after {session.attempts} attempts"
        )
        logger.info(f"Probe stats: {self.stats}")

        if state is SessionState.DEGRADED:
            logger.warning("Inaccuracy warning: maximum attempts reached before convergence")
            self._emit(SyncStatus.INACCURACY_WARNING)
        else:
            self._emit(SyncStatus.CONVERGED)

        return SyncResult(state=state, offset_ms=offset, offsets=offsets, attempts=session.attempts)
