"""
Unit tests for the traffic pattern scheduler

Covers request count conservation, phase shapes for every pattern type and
degenerate inputs.
"""

import math

import pytest

from loadtesting.core.config import SchedulerConfig
from loadtesting.core.models import BurstConfig, Duration, LoadPattern, Stage
from loadtesting.core.pattern_scheduler import (
    build_schedule,
    reconcile_sizes,
    split_proportionally,
)

PATTERNS = ["constant", "spike", "ramp-up", "step", "random-burst"]


class TestRequestCountConservation:
    """Every schedule has exactly as many offsets as requested"""

    @pytest.mark.parametrize("pattern_type", PATTERNS)
    @pytest.mark.parametrize("count", [1, 2, 3, 7, 10, 11, 99, 101, 1000])
    def test_total_matches_request_count(self, pattern_type, count):
        """Test offsets and phase allocations both sum to the requested total"""
        schedule = build_schedule(LoadPattern(type=pattern_type), count, 30)

        assert len(schedule) == count
        assert schedule.total == count
        assert sum(phase.request_count for phase in schedule.phases) == count

    @pytest.mark.parametrize("pattern_type", PATTERNS)
    def test_offsets_are_ordered(self, pattern_type):
        """Test offsets never go backwards"""
        schedule = build_schedule(LoadPattern(type=pattern_type, requests_per_second=5), 57, 20)

        assert schedule.offsets == sorted(schedule.offsets)
        assert schedule.offsets[0] == 0.0

    def test_rate_curve_counts_every_dispatch(self):
        """Test the per-bucket curve adds up to the total"""
        schedule = build_schedule(LoadPattern(type="spike"), 50, 10)

        assert sum(schedule.rate_curve(1.0)) == 50
        assert sum(schedule.rate_curve(0.25)) == 50


class TestConstantPattern:
    """Test constant spacing"""

    def test_even_spacing(self):
        """Test spacing is duration divided by count"""
        schedule = build_schedule(LoadPattern(type="constant"), 5, 10)

        assert schedule.offsets == pytest.approx([0.0, 2.0, 4.0, 6.0, 8.0])
        assert schedule.phases[0].spacing == pytest.approx(2.0)

    def test_accepts_duration_object(self):
        """Test Duration values are converted to seconds"""
        schedule = build_schedule(LoadPattern(), 4, Duration(2, "minutes"))

        assert schedule.offsets[1] == pytest.approx(30.0)


class TestSpikePattern:
    """Test the 20/60/20 spike split"""

    def test_phase_split_and_remainder(self):
        """Test the rounding remainder goes to the last phase"""
        schedule = build_schedule(LoadPattern(type="spike"), 7, 10)

        names = [phase.name for phase in schedule.phases]
        counts = [phase.request_count for phase in schedule.phases]
        assert names == ["ramp-up", "peak", "ramp-down"]
        assert counts == [1, 4, 2]

    def test_phase_boundaries(self):
        """Test phases start at 0%, 20% and 80% of the duration"""
        schedule = build_schedule(LoadPattern(type="spike"), 100, 10)

        starts = [phase.start_offset for phase in schedule.phases]
        assert starts == pytest.approx([0.0, 2.0, 8.0])

    def test_peak_is_denser_than_ramps(self):
        """Test peak spacing is phase duration over phase count"""
        schedule = build_schedule(LoadPattern(type="spike"), 100, 10)
        ramp_up, peak, ramp_down = schedule.phases

        assert peak.spacing == pytest.approx(6.0 / 60)
        assert ramp_up.spacing == pytest.approx(2.0 / 20)
        assert ramp_down.spacing == pytest.approx(2.0 / 20)

    def test_custom_split(self):
        """Test a configured split is honoured"""
        config = SchedulerConfig(spike_split=(0.1, 0.8, 0.1))
        schedule = build_schedule(LoadPattern(type="spike"), 10, 10, config)

        assert [p.request_count for p in schedule.phases] == [1, 8, 1]


class TestRampUpPattern:
    """Test linearly increasing rate"""

    def test_first_gap_uses_start_rate(self):
        """Test the first gap is one over ten percent of the target rate"""
        schedule = build_schedule(LoadPattern(type="ramp-up", requests_per_second=10), 10, 0)

        assert schedule.offsets[1] == pytest.approx(1.0)

    def test_gaps_shrink(self):
        """Test inter-request gaps decrease as the rate ramps up"""
        schedule = build_schedule(LoadPattern(type="ramp-up", requests_per_second=10), 20, 0)
        gaps = [b - a for a, b in zip(schedule.offsets, schedule.offsets[1:])]

        assert all(later < earlier for earlier, later in zip(gaps, gaps[1:]))

    def test_rate_from_duration_without_rps(self):
        """Test the end rate falls back to count over duration"""
        schedule = build_schedule(LoadPattern(type="ramp-up"), 10, 10)

        # end rate 1/s, start rate 0.1/s
        assert schedule.offsets[1] == pytest.approx(10.0)

    def test_no_rate_fires_immediately(self):
        """Test ramp-up without rps or duration fires everything at once"""
        schedule = build_schedule(LoadPattern(type="ramp-up"), 5, 0)

        assert schedule.offsets == [0.0] * 5


class TestStepPattern:
    """Test back-to-back steps separated by a dwell"""

    def test_explicit_step_sizes(self):
        """Test shortfall is added to the last step"""
        schedule = build_schedule(LoadPattern(type="step", step_sizes=[2, 3]), 10, 0)

        assert [p.request_count for p in schedule.phases] == [2, 8]
        assert [p.start_offset for p in schedule.phases] == [0.0, 2.0]
        assert schedule.offsets == [0.0] * 2 + [2.0] * 8

    def test_stage_targets_as_sizes(self):
        """Test stage targets are used when no step sizes are declared"""
        pattern = LoadPattern(
            type="step", stages=[Stage("10s", 1), Stage("10s", 2), Stage("10s", 3)]
        )
        schedule = build_schedule(pattern, 6, 0)

        assert [p.request_count for p in schedule.phases] == [1, 2, 3]

    def test_default_equal_steps(self):
        """Test four equal steps by default"""
        schedule = build_schedule(LoadPattern(type="step"), 8, 0)

        assert [p.request_count for p in schedule.phases] == [2, 2, 2, 2]
        assert [p.start_offset for p in schedule.phases] == [0.0, 2.0, 4.0, 6.0]

    def test_reconcile_trims_excess_from_end(self):
        """Test excess is removed from the last steps"""
        assert reconcile_sizes([5, 5], 7) == [5, 2]
        assert reconcile_sizes([3, 3, 3], 4) == [3, 1]
        assert reconcile_sizes([], 4) == [4]


class TestRandomBurstPattern:
    """Test three seeded random bursts"""

    def test_remainder_goes_to_largest_burst(self):
        """Test an 11 request split puts the extra request in the 50% burst"""
        schedule = build_schedule(LoadPattern(type="random-burst"), 11, 0)

        assert [p.request_count for p in schedule.phases] == [3, 6, 2]

    def test_gaps_within_interval(self):
        """Test bursts are separated by 1 to 3 seconds"""
        schedule = build_schedule(LoadPattern(type="random-burst"), 30, 0)
        starts = [p.start_offset for p in schedule.phases]
        gaps = [b - a for a, b in zip(starts, starts[1:])]

        assert all(1.0 <= gap <= 3.0 for gap in gaps)

    def test_burst_config_interval(self):
        """Test the pattern's burst interval overrides the default"""
        pattern = LoadPattern(
            type="random-burst",
            burst_config=BurstConfig(min_interval_seconds=5, max_interval_seconds=5),
        )
        schedule = build_schedule(pattern, 10, 0)

        assert [p.start_offset for p in schedule.phases] == pytest.approx([0.0, 5.0, 10.0])

    def test_reproducible(self):
        """Test identical inputs produce identical schedules"""
        first = build_schedule(LoadPattern(type="random-burst"), 40, 10)
        second = build_schedule(LoadPattern(type="random-burst"), 40, 10)
        seeded = build_schedule(
            LoadPattern(type="random-burst"), 40, 10, SchedulerConfig(random_seed=7)
        )
        seeded_again = build_schedule(
            LoadPattern(type="random-burst"), 40, 10, SchedulerConfig(random_seed=7)
        )

        assert first.offsets == second.offsets
        assert seeded.offsets == seeded_again.offsets


class TestDegenerateInputs:
    """Test malformed numbers never raise"""

    @pytest.mark.parametrize("count", [0, -5, float("nan"), None, "abc"])
    def test_bad_counts_give_empty_schedule(self, count):
        """Test non-positive or non-numeric counts schedule nothing"""
        schedule = build_schedule(LoadPattern(type="spike"), count, 10)

        assert len(schedule) == 0
        assert schedule.duration == 0.0

    @pytest.mark.parametrize("duration", [0, -1, float("nan"), float("inf"), None])
    @pytest.mark.parametrize("pattern_type", ["constant", "spike"])
    def test_bad_duration_fires_immediately(self, duration, pattern_type):
        """Test missing or invalid durations put every offset at zero"""
        schedule = build_schedule(LoadPattern(type=pattern_type), 9, duration)

        assert len(schedule) == 9
        assert all(offset == 0.0 for offset in schedule.offsets)

    def test_unknown_type_uses_constant(self):
        """Test an unrecognised pattern type falls back to constant spacing"""
        schedule = build_schedule(LoadPattern(type="sawtooth"), 4, 8)

        assert schedule.pattern_type == "constant"
        assert schedule.offsets == pytest.approx([0.0, 2.0, 4.0, 6.0])

    def test_missing_pattern(self):
        """Test None is read as a constant pattern"""
        assert len(build_schedule(None, 3, 3)) == 3


class TestSplitProportionally:
    """Test the shared proportional splitter"""

    def test_shares_sum_to_total(self):
        """Test shares always add up, for awkward totals too"""
        for total in range(0, 50):
            shares = split_proportionally(total, [0.2, 0.6, 0.2])
            assert sum(shares) == total
            assert all(share >= 0 for share in shares)

    def test_zero_weights_split_evenly(self):
        """Test all-zero weights are treated as equal"""
        assert split_proportionally(4, [0, 0]) == [2, 2]

    def test_nan_weight_ignored(self):
        """Test a NaN weight gets no share"""
        shares = split_proportionally(10, [math.nan, 1.0])
        assert shares == [0, 10]
