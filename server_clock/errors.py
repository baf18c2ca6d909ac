"""Error types raised by the server clock engine."""


class ServerClockError(Exception):
    """Base class for all server clock errors."""


class ConfigError(ServerClockError, ValueError):
    """Invalid synchronization configuration."""


class ProbeError(ServerClockError):
    """A single probe failed. Always retryable."""


class NetworkFailure(ProbeError):
    """Transport error, or a response without a usable `Date` header."""


class ProbeTimeout(ProbeError):
    """No response within `timeout_after`."""


class TimingUnavailable(ProbeError):
    """Network timing could not be matched to the probe that was sent."""


class SampleExhaustion(ServerClockError):
    """Every attempt failed and not a single sample was collected."""

    def __init__(self, attempts: int, last_error: Exception = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"No sample collected after {attempts} attempts"
        if last_error is not None:
            message = f"{message} (last error: {last_error})"
        super().__init__(message)
