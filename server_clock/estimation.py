"""
Offset Estimation
=================

Pure decision logic of a synchronization session: the working sample set,
the per-round sufficiency check, and the final adjustment selection.

Because the `Date` header is truncated to whole seconds, samples taken at
different phases of the server second cluster near two values about
1000 ms apart. A spread close to 1000 ms with tight clusters at both ends
means both truncation extremes have been seen, and the upper cluster can
be trusted as the untruncated offset.
"""

from enum import Enum
from typing import Iterator, List, Optional, Sequence

from .config import SyncConfig
from .timing import TRUNCATION_MS, Sample


class Decision(Enum):
    """Outcome of evaluating the sample set after a successful probe."""
    COLLECT = "collect"
    OUTLIER = "outlier"
    CONVERGED = "converged"
    DEGRADED = "degraded"


class SampleSet:
    """Samples of one session, kept sorted by descending offset."""

    def __init__(self, samples: Sequence[Sample] = ()):
        self._samples: List[Sample] = sorted(samples, key=lambda s: s.offset_ms, reverse=True)

    def add(self, sample: Sample):
        self._samples.append(sample)
        self._samples.sort(key=lambda s: s.offset_ms, reverse=True)

    def clear(self):
        self._samples.clear()

    def offsets(self) -> List[float]:
        return [s.offset_ms for s in self._samples]

    @property
    def best_offset(self) -> Optional[float]:
        """Current best guess: the largest (least truncated) offset."""
        return self._samples[0].offset_ms if self._samples else None

    @property
    def spread(self) -> float:
        if not self._samples:
            return 0.0
        return self._samples[0].offset_ms - self._samples[-1].offset_ms

    def trim_outliers(self) -> List[Sample]:
        """Drop the extreme samples and return them.

        Both ends are dropped when at least three samples exist; otherwise
        only the maximum. The set is never emptied.
        """
        if len(self._samples) >= 3:
            dropped = [self._samples.pop(0), self._samples.pop()]
        elif len(self._samples) == 2:
            dropped = [self._samples.pop(0)]
        else:
            dropped = []
        return dropped

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __getitem__(self, index: int) -> Sample:
        return self._samples[index]


def evaluate(samples: SampleSet, attempts: int, config: SyncConfig) -> Decision:
    """Decide what a session does after a new sample has been added.

    Args:
        samples:  The session's sample set.
        attempts: Probes sent so far in the session, failed ones included.
        config:   Tolerances and attempt bounds.
    """
    if attempts < config.sample_minimum or not samples:
        return Decision.COLLECT

    offsets = samples.offsets()
    spread = offsets[0] - offsets[-1]

    if spread > TRUNCATION_MS:
        return Decision.OUTLIER
    if attempts >= config.sample_maximum:
        return Decision.DEGRADED
    if len(offsets) < 2:
        return Decision.COLLECT

    max_, max2 = offsets[0], offsets[1]
    min_, min2 = offsets[-1], offsets[-2]
    if (
        TRUNCATION_MS - config.error_tolerance <= spread <= TRUNCATION_MS
        and min2 - min_ < config.outlier_tolerance
        and max_ - max2 < config.outlier_tolerance
    ):
        return Decision.CONVERGED
    return Decision.COLLECT


def select_adjustment(offsets: Sequence[float]) -> float:
    """Pick the offset to commit from a finished session.

    For each candidate start (descending order), the window reaches the
    farthest sample less than TRUNCATION_MS below it. The start of the
    largest window wins; ties go to the higher offset.

    Raises:
        ValueError: `offsets` is empty.
    """
    if not offsets:
        raise ValueError("Cannot select an adjustment from no samples")

    ranked = sorted(offsets, reverse=True)
    best_index, best_size = 0, -1
    for i, start in enumerate(ranked):
        j = len(ranked) - 1
        while start - ranked[j] >= TRUNCATION_MS:
            j -= 1
        if j - i > best_size:
            best_index, best_size = i, j - i
    return ranked[best_index]
