"""
Tests for sample evaluation and adjustment selection
"""

import pytest
from hypothesis import given, settings, strategies as st

from server_clock.config import SyncConfig
from server_clock.estimation import Decision, SampleSet, evaluate, select_adjustment
from server_clock.timing import Sample


def make_set(*offsets):
    return SampleSet([Sample(offset_ms=o, elapsed_ms=10.0, collected_at=float(i))
                      for i, o in enumerate(offsets)])


@pytest.fixture
def config():
    return SyncConfig(sample_minimum=6, sample_maximum=25, error_tolerance=125, outlier_tolerance=200)


class TestSampleSet:
    """Test sample set ordering and trimming"""

    def test_sorted_descending(self):
        samples = make_set(5, 100, -20)
        samples.add(Sample(offset_ms=50, elapsed_ms=1.0, collected_at=9.0))
        assert samples.offsets() == [100, 50, 5, -20]
        assert samples.best_offset == 100
        assert samples.spread == 120

    def test_empty(self):
        samples = SampleSet()
        assert samples.best_offset is None
        assert samples.spread == 0.0
        assert len(samples) == 0

    def test_trim_drops_both_extremes(self):
        samples = make_set(0, 500, 600, 1500)
        dropped = samples.trim_outliers()
        assert [s.offset_ms for s in dropped] == [1500, 0]
        assert samples.offsets() == [600, 500]

    def test_trim_never_empties(self):
        samples = make_set(0, 1500)
        samples.trim_outliers()
        assert samples.offsets() == [0]
        assert samples.trim_outliers() == []
        assert samples.offsets() == [0]


class TestEvaluate:
    """Test the per-round decision"""

    def test_below_minimum_keeps_collecting(self, config):
        assert evaluate(make_set(0, 999), attempts=5, config=config) is Decision.COLLECT

    def test_converges_on_full_second_spread(self, config):
        samples = make_set(0, 10, 500, 990, 999)
        assert evaluate(samples, attempts=6, config=config) is Decision.CONVERGED

    def test_gross_outlier(self, config):
        assert evaluate(make_set(0, 1500), attempts=6, config=config) is Decision.OUTLIER

    def test_outlier_checked_before_exhaustion(self, config):
        assert evaluate(make_set(0, 1500), attempts=25, config=config) is Decision.OUTLIER

    def test_exhaustion_degrades(self, config):
        assert evaluate(make_set(100, 120), attempts=25, config=config) is Decision.DEGRADED

    def test_spread_too_small(self, config):
        # 1000 - 125 = 875 is the lower bound
        assert evaluate(make_set(0, 5, 870, 874), attempts=10, config=config) is Decision.COLLECT
        assert evaluate(make_set(0, 5, 870, 875), attempts=10, config=config) is Decision.CONVERGED

    def test_loose_clusters_do_not_converge(self, config):
        # min2 - min = 250 >= outlier_tolerance
        assert evaluate(make_set(0, 250, 999, 990), attempts=8, config=config) is Decision.COLLECT
        # max - max2 = 300 >= outlier_tolerance
        assert evaluate(make_set(0, 5, 699, 999), attempts=8, config=config) is Decision.COLLECT

    def test_single_sample_never_converges(self, config):
        assert evaluate(make_set(42), attempts=6, config=config) is Decision.COLLECT

    def test_concrete_scenario(self, config):
        samples = make_set(120, 121, 119, 1118, 1119, 1117)
        assert evaluate(samples, attempts=6, config=config) is Decision.CONVERGED
        assert 1117 <= select_adjustment(samples.offsets()) <= 1119


class TestSelectAdjustment:
    """Test fixed-width mode seeking"""

    def test_single(self):
        assert select_adjustment([42.0]) == 42.0

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            select_adjustment([])

    def test_prefers_largest_window(self):
        # 2500 sits alone; the window starting at 1100 covers four samples
        assert select_adjustment([2500, 1100, 1050, 300, 200]) == 1100

    def test_tie_goes_to_higher_offset(self):
        assert select_adjustment([1119, 1118, 120, 119]) == 1119

    def test_window_is_strictly_below_one_second(self):
        # 1000 - 0 is not < 1000, so 1000 and 0 never share a window
        assert select_adjustment([1000, 0, -10]) == 0

    def test_unsorted_input(self):
        assert select_adjustment([120, 1119, 121, 1118]) == 1119

    @settings(max_examples=200, deadline=None)
    @given(
        true_offset=st.floats(min_value=-1e7, max_value=1e7, allow_nan=False),
        remainders=st.lists(st.floats(min_value=0, max_value=999), min_size=1, max_size=25),
    )
    def test_choice_within_truncation_range(self, true_offset, remainders):
        offsets = [true_offset + r for r in remainders]
        chosen = select_adjustment(offsets)
        assert chosen in offsets
        assert true_offset - 1e-6 <= chosen <= true_offset + 999 + 1e-6

    @settings(max_examples=100, deadline=None)
    @given(
        true_offset=st.integers(min_value=-100000, max_value=100000),
        jitter=st.lists(st.integers(min_value=0, max_value=30), min_size=6, max_size=6),
    )
    def test_two_bucket_sampling_recovers_upper_cluster(self, true_offset, jitter):
        # Probes phase-shifted across the second boundary: half are barely
        # truncated, half are truncated by almost a full second.
        upper = [true_offset - j for j in jitter[:3]]
        lower = [true_offset - 999 + j for j in jitter[3:]]
        chosen = select_adjustment(upper + lower)
        assert chosen == max(upper)
