"""
HTTP Offset Sampler
===================

Performs one cache-disabled GET against the target URL and turns the
response `Date` header plus traced request timing into a single Sample.

Timing marks are recorded through aiohttp trace signals and tied to the
probe that produced them via `trace_request_ctx`:

    start_time      on_request_start
    request_start   on_request_headers_sent (or connection acquired)
    response_start  on_request_end (response headers received)
    response_end    body drained
"""

import asyncio
import logging
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import aiohttp
from aiohttp import hdrs

from .errors import NetworkFailure, ProbeTimeout, TimingUnavailable
from .timing import LocalClock, ProbeTiming, Sample, estimate_offset

logger = logging.getLogger(__name__)

# Keep intermediaries from answering with a cached `Date`.
NO_CACHE_HEADERS = {
    hdrs.CONNECTION: "keep-alive",
    hdrs.CACHE_CONTROL: "no-cache",
    hdrs.PRAGMA: "no-cache",
    hdrs.EXPIRES: "0",
}


def parse_http_date(value: Optional[str]) -> float:
    """Parse an HTTP `Date` header into epoch milliseconds.

    Raises:
        NetworkFailure: header missing or malformed.
    """
    if not value:
        raise NetworkFailure("Response has no Date header")
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError) as e:
        raise NetworkFailure(f"Unparsable Date header {value!r}") from e
    if parsed is None:
        raise NetworkFailure(f"Unparsable Date header {value!r}")
    if parsed.tzinfo is None:
        # asctime form and "-0000" carry no zone; HTTP dates are always GMT
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000


class TimingRecord:
    """Mutable timing marks collected while a probe is in flight."""

    def __init__(self):
        self.start_time: Optional[float] = None
        self.connection_ready: Optional[float] = None
        self.headers_sent: Optional[float] = None
        self.response_start: Optional[float] = None
        self.response_end: Optional[float] = None

    @property
    def request_start(self) -> Optional[float]:
        if self.headers_sent is not None:
            return self.headers_sent
        if self.connection_ready is not None:
            return self.connection_ready
        return self.start_time


def correlate_timing(record: TimingRecord, dispatched_at: float, tolerance: float) -> ProbeTiming:
    """Turn a timing record into ProbeTiming for the probe dispatched at `dispatched_at`.

    Raises:
        TimingUnavailable: marks are missing, out of order, or the traced
            request started too far from the dispatch mark to belong to it.
    """
    marks = (record.start_time, record.request_start, record.response_start, record.response_end)
    if any(mark is None for mark in marks):
        raise TimingUnavailable("Incomplete timing record for probe")
    if abs(record.start_time - dispatched_at) > tolerance:
        raise TimingUnavailable(
            f"Timing record started {record.start_time - dispatched_at:.1f}ms "
            f"from dispatch (tolerance {tolerance:.0f}ms)"
        )
    timing = ProbeTiming(*marks)
    if not timing.start_time <= timing.request_start <= timing.response_start <= timing.response_end:
        raise TimingUnavailable(f"Timing marks out of order: {timing}")
    return timing


class Sampler:
    """Collects offset samples from an HTTP endpoint.

    Owns one aiohttp session, created lazily and reused across probes so
    that keep-alive connections are shared.

    Args:
        clock:                 Local clock used for both the dispatch mark
                               and the traced timing marks.
        correlation_tolerance: See SyncConfig.correlation_tolerance.
    """

    def __init__(self, clock: Optional[LocalClock] = None, correlation_tolerance: float = 50):
        self._clock = clock or LocalClock()
        self.correlation_tolerance = correlation_tolerance
        self._session: Optional[aiohttp.ClientSession] = None

        self.trace_config = aiohttp.TraceConfig()
        self.trace_config.on_request_start.append(self._on_request_start)
        self.trace_config.on_connection_create_end.append(self._on_connection_ready)
        self.trace_config.on_connection_reuseconn.append(self._on_connection_ready)
        self.trace_config.on_request_headers_sent.append(self._on_headers_sent)
        self.trace_config.on_request_end.append(self._on_request_end)

    # ---- Trace callbacks -----------------------------------------------------

    @staticmethod
    def _record(ctx) -> Optional[TimingRecord]:
        record = getattr(ctx, "trace_request_ctx", None)
        return record if isinstance(record, TimingRecord) else None

    async def _on_request_start(self, session, ctx, params):
        record = self._record(ctx)
        if record is not None:
            record.start_time = self._clock.monotonic()

    async def _on_connection_ready(self, session, ctx, params):
        record = self._record(ctx)
        if record is not None:
            record.connection_ready = self._clock.monotonic()

    async def _on_headers_sent(self, session, ctx, params):
        record = self._record(ctx)
        if record is not None:
            record.headers_sent = self._clock.monotonic()

    async def _on_request_end(self, session, ctx, params):
        record = self._record(ctx)
        if record is not None:
            record.response_start = self._clock.monotonic()

    # ---- Probing -------------------------------------------------------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(trace_configs=[self.trace_config])
        return self._session

    async def _fetch(self, url: str, record: TimingRecord) -> float:
        """GET `url`, drain the body, and return the `Date` header as epoch ms."""
        session = self._ensure_session()
        async with session.get(url, headers=NO_CACHE_HEADERS, trace_request_ctx=record) as response:
            date_header = response.headers.get(hdrs.DATE)
            await response.read()
            record.response_end = self._clock.monotonic()
        return parse_http_date(date_header)

    async def collect(self, url: str, timeout_after: float) -> Sample:
        """Run one probe.

        Args:
            url:           Target URL.
            timeout_after: Timeout in ms; the request is cancelled when it expires.

        Returns:
            The resulting Sample.

        Raises:
            NetworkFailure, ProbeTimeout, TimingUnavailable
        """
        record = TimingRecord()
        dispatched_at = self._clock.monotonic()
        client_time = self._clock.now()

        try:
            http_time = await asyncio.wait_for(self._fetch(url, record), timeout=timeout_after / 1000)
        except asyncio.TimeoutError:
            raise ProbeTimeout(f"No response from {url} within {timeout_after:.0f}ms") from None
        except (aiohttp.ClientError, OSError) as e:
            raise NetworkFailure(f"Request to {url} failed: {e}") from e

        timing = correlate_timing(record, dispatched_at, self.correlation_tolerance)
        elapsed = timing.elapsed_since_request_start
        sample = Sample(
            offset_ms=estimate_offset(http_time, client_time, elapsed),
            elapsed_ms=elapsed,
            collected_at=self._clock.monotonic(),
            timing=timing,
        )
        logger.debug(f"Collected {sample} rtt={timing.round_trip:.1f}ms")
        return sample

    async def close(self):
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
