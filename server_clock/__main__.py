"""
Entry point for `python -m server_clock`.

Usage:
    python -m server_clock --url https://example.com/ [--once] [--verbose]
"""

import asyncio
import argparse
import contextlib
import logging
import signal
import sys
import time

from .config import SyncConfig
from .errors import ServerClockError
from .synchronizer import Synchronizer
from .timing import SyncStatus

logger = logging.getLogger("ServerClock")

STATUS_MESSAGES = {
    SyncStatus.SYNCHRONIZING: "SYNCHRONIZING...",
    SyncStatus.CONVERGED: "SYNCHRONIZED",
    SyncStatus.INACCURACY_WARNING: "INACCURACY WARNING",
    SyncStatus.REQUEST_ERROR: "HTTP REQUEST ERROR",
    SyncStatus.STOPPED: "STOPPED",
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Server Clock - HTTP Date offset estimation")
    parser.add_argument("--url", "-u", default="https://www.google.com/")
    parser.add_argument("--once", action="store_true", help="Print the offset and exit")
    parser.add_argument("--verbose", "-v", action="store_true")

    tuning = parser.add_argument_group("synchronization")
    tuning.add_argument("--sample-minimum", dest="sample_minimum", type=int)
    tuning.add_argument("--sample-maximum", dest="sample_maximum", type=int)
    tuning.add_argument("--timeout-after", dest="timeout_after", type=float, help="ms")
    tuning.add_argument("--valid-for", dest="valid_for", type=float, help="seconds")
    tuning.add_argument("--error-tolerance", dest="error_tolerance", type=float, help="ms")
    tuning.add_argument("--outlier-tolerance", dest="outlier_tolerance", type=float, help="ms")
    tuning.add_argument("--warmup-delay", dest="warmup_delay", type=float, help="ms")
    tuning.add_argument("--correlation-tolerance", dest="correlation_tolerance", type=float, help="ms")
    return parser.parse_args(argv)


def format_clock(server_time_ms: float) -> str:
    """Format epoch ms as a 12-hour local wall-clock string."""
    return time.strftime("%I:%M:%S %p", time.localtime(server_time_ms / 1000))


async def until_shutdown(coro, shutdown: asyncio.Event):
    """Await `coro` unless `shutdown` is set first.

    Returns the coroutine's result, or None when shutdown won; the loser
    is cancelled either way.
    """
    work = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(shutdown.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, waiter):
            if not task.done():
                task.cancel()
        await asyncio.wait({work, waiter})

    if work.cancelled():
        return None
    return work.result()


async def display(clock: Synchronizer, shutdown: asyncio.Event):
    """Print server time at every server-second boundary, resyncing when stale."""
    while not shutdown.is_set():
        if clock.is_stale():
            logger.warning(STATUS_MESSAGES[SyncStatus.INACCURACY_WARNING])
            try:
                await until_shutdown(clock.synchronize(), shutdown)
            except ServerClockError as e:
                logger.error(f"Resynchronization failed: {e}")
            if shutdown.is_set():
                break

        server_time = clock.get_server_time()
        print(format_clock(server_time), flush=True)

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(shutdown.wait(), timeout=(1000 - server_time % 1000) / 1000)


async def run(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    try:
        config = SyncConfig.from_args(args)
    except ServerClockError as e:
        print(f"Invalid configuration: {e}")
        return 2

    print(f"URL: {args.url}\n")

    clock = Synchronizer(
        args.url,
        config,
        on_status=lambda status: logger.info(STATUS_MESSAGES[status]),
    )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown.set)

    async with clock:
        try:
            result = await until_shutdown(clock.synchronize(), shutdown)
        except ServerClockError as e:
            print(f"Synchronization failed: {e}")
            return 1
        if result is None:
            logger.info("Interrupted before the first synchronization finished")
            return 0

        print(f"Offset: {result.offset_ms / 1000:+.3f}s ({result.state.value}, "
              f"{result.attempts} attempts)\n")
        if args.once:
            return 0

        task = asyncio.create_task(display(clock, shutdown))
        await shutdown.wait()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info(f"Stats: {clock.stats}")

    return 0


def main():
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
