"""
Synchronization Configuration
=============================

All tunables of the engine live here; there are no other behavior switches.
"""

from dataclasses import dataclass, fields

from .errors import ConfigError
from .timing import TRUNCATION_MS


@dataclass
class SyncConfig:
    """Configuration for one synchronizer.

    Args:
        sample_minimum:        Attempts required before convergence is judged.
        sample_maximum:        Attempt budget per session.
        timeout_after:         Per-probe timeout, ms.
        valid_for:             Seconds after which a committed offset is stale.
        error_tolerance:       Allowed shortfall of the sample spread from 1000 ms.
        outlier_tolerance:     Maximum gap inside each end cluster, ms.
        warmup_delay:          Delay between probes before any estimate exists, ms.
        correlation_tolerance: Maximum distance between the dispatch mark and
                               the traced request start, ms.
    """

    sample_minimum: int = 6
    sample_maximum: int = 25
    timeout_after: float = 5000
    valid_for: float = 1200
    error_tolerance: float = 125
    outlier_tolerance: float = 200
    warmup_delay: float = 250
    correlation_tolerance: float = 50

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise ConfigError if the configuration is inconsistent."""
        if self.sample_minimum < 1:
            raise ConfigError(f"sample_minimum must be >= 1, got {self.sample_minimum}")
        if self.sample_maximum < self.sample_minimum:
            raise ConfigError(
                f"sample_maximum ({self.sample_maximum}) must be >= "
                f"sample_minimum ({self.sample_minimum})"
            )
        for name in ("timeout_after", "valid_for", "outlier_tolerance", "correlation_tolerance"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.warmup_delay < 0:
            raise ConfigError(f"warmup_delay must be >= 0, got {self.warmup_delay}")
        if not 0 <= self.error_tolerance < TRUNCATION_MS:
            raise ConfigError(
                f"error_tolerance must be in [0, {TRUNCATION_MS}), got {self.error_tolerance}"
            )

    @classmethod
    def from_args(cls, args) -> "SyncConfig":
        """Build from an argparse namespace; unset (None) options keep defaults."""
        values = {}
        for f in fields(cls):
            value = getattr(args, f.name, None)
            if value is not None:
                values[f.name] = value
        return cls(**values)
