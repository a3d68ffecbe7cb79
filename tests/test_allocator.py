"""
Tests for the weekly load allocator and its hard caps.

Run with: python -m pytest tests/test_allocator.py -v
"""

from datetime import date, timedelta

import pytest

from core.goals import Goal, RacePerformanceTarget, goal_demand_ctl
from core.load_state import LoadState, simulate_load_states
from core.recovery import EventGoal
from core.timeline import (
    build_recovery_segments,
    build_week_frames,
    deload_debt_by_week,
    horizon_end_date,
    rest_day_offsets,
    trailing_loading_streak,
)
from optimization.objective import (
    ObjectiveWeights,
    candidate_score,
    preparedness_score,
    weights_for_profile,
)
from core.plan import OptimizationProfile
from optimization.search import (
    AllocatorSettings,
    allocate_weekly_load,
    candidate_multipliers,
    compose_week_one_seed,
    constrained_base_load,
    max_base_for_ctl_ramp,
    ramp_pct,
    weekly_ctl_ramp,
)


START = date(2025, 12, 20)
GOAL_DAY = date(2026, 3, 14)
MARATHON = RacePerformanceTarget(42195.0, 12600.0)
HUNDRED_MILE = RacePerformanceTarget(160934.0, 108000.0)


def build_frames(n_weeks=4):
    """Goal-free build weeks."""
    return build_week_frames(START, START + timedelta(days=7 * n_weeks - 1), [], {}, [], 2)


@pytest.fixture(scope="module")
def marathon_plan():
    """Frames and goal data for a 12-week marathon build."""
    goal = Goal('m', 'Marathon', GOAL_DAY, (MARATHON,))
    event = EventGoal.from_goal(goal)
    segments = build_recovery_segments([event], 7)
    frames = build_week_frames(START, horizon_end_date([event], segments), [event], {'m': 8}, segments, 2)
    return {
        'frames': frames,
        'profiles': {'m': event.profile},
        'demands': [(GOAL_DAY, goal_demand_ctl(goal))],
    }


@pytest.fixture(scope="module")
def marathon_allocation(marathon_plan):
    settings = AllocatorSettings(10.0, 3.0, lookahead_weeks=4, candidate_steps=7)
    start_state = LoadState(START - timedelta(days=1), 40.0, 38.0)
    return allocate_weekly_load(
        marathon_plan['frames'], start_state, settings, 280.0, 'seed_from_ctl',
        marathon_plan['demands'], marathon_plan['profiles'],
    )


class TestTimeline:
    """Tests for microcycle frames."""

    def test_rest_days_are_lowest_weights(self):
        """Two rest days land on the lightest weekday weights."""
        assert rest_day_offsets(2) == (4, 6)
        assert rest_day_offsets(0) == ()

    def test_deload_every_fourth_week(self):
        """Three build weeks are followed by a deload."""
        frames = build_frames(8)
        assert [f.pattern for f in frames] == ['build', 'build', 'build', 'deload'] * 2

    def test_marathon_patterns(self, marathon_plan):
        """Taper precedes the event week; recovery follows."""
        patterns = [f.pattern for f in marathon_plan['frames']]
        assert patterns[12] == 'event'
        assert patterns[11] == 'taper'
        assert 'recovery' not in patterns[:12]
        assert marathon_plan['frames'][12].event_goal_ids[0] == 'm'

    def test_deload_debt(self):
        """Debt counts loading weeks past the deload cycle."""
        frames = build_frames(2)
        assert deload_debt_by_week(frames, initial_loading_streak=5) == [2, 3]
        assert deload_debt_by_week(frames) == [0, 0]

    def test_trailing_streak_resets_on_light_week(self):
        """A week at or under 85% of the recent max resets the streak."""
        assert trailing_loading_streak([300.0, 320.0, 250.0, 330.0, 340.0]) == 2
        assert trailing_loading_streak([]) == 0


class TestSeedAndCandidates:
    """Tests for seeding and the candidate set."""

    def test_seed_from_ctl(self):
        """Positive CTL seeds at CTL × 7."""
        assert compose_week_one_seed(40.0) == (280.0, 'seed_from_ctl')

    def test_seed_composed(self):
        """Without fitness, components are blended 0.6/0.25/0.15."""
        seed, source = compose_week_one_seed(0.0, prior_week_load=300.0, block_midpoint=400.0, demand_floor=140.0)
        assert seed == pytest.approx(301.0)
        assert source == 'seed_composed'

    def test_seed_renormalizes_missing(self):
        """Missing components drop out and the rest are reweighted."""
        seed, _ = compose_week_one_seed(0.0, block_midpoint=400.0, demand_floor=140.0)
        assert seed == pytest.approx(302.5)

    def test_seed_empty(self):
        """Nothing to seed from gives zero."""
        assert compose_week_one_seed(0.0) == (0.0, 'seed_empty')

    def test_candidates_span_ramp(self):
        """Candidates are evenly spaced within ± the ramp cap."""
        assert candidate_multipliers(10.0, 5) == pytest.approx([0.9, 0.95, 1.0, 1.05, 1.1])
        assert candidate_multipliers(10.0, 1) == [1.1]
        assert candidate_multipliers(0.0, 7) == [1.0]

    def test_settings_bounds(self):
        """Lookahead and candidate steps are bounded."""
        with pytest.raises(ValueError):
            AllocatorSettings(10.0, 3.0, lookahead_weeks=0, candidate_steps=5)
        with pytest.raises(ValueError):
            AllocatorSettings(10.0, 3.0, lookahead_weeks=4, candidate_steps=16)


class TestObjective:
    """Tests for candidate scoring."""

    def test_preparedness_capped(self):
        """Preparedness is CTL over demand, capped at 1."""
        assert preparedness_score(35.0, 70.0, 40.0) == pytest.approx(0.5)
        assert preparedness_score(90.0, 70.0, 40.0) == 1.0
        assert preparedness_score(40.0, None, 40.0) == 1.0

    def test_weights_normalized(self):
        """Weights that do not sum to 1 are normalized."""
        w = ObjectiveWeights(preparedness=2.0, risk=1.0, volatility=0.5, churn=0.5)
        assert w.preparedness + w.risk + w.volatility + w.churn == pytest.approx(1.0)

    def test_profiles_differ_in_risk_weight(self):
        """Sustainable weighs risk heaviest, outcome-first lightest."""
        sustainable = weights_for_profile(OptimizationProfile.SUSTAINABLE)
        outcome = weights_for_profile(OptimizationProfile.OUTCOME_FIRST)
        assert sustainable.risk > outcome.risk

    def test_score_penalizes_risk(self):
        """More risk, lower score."""
        w = ObjectiveWeights()
        assert candidate_score(0.8, 0.1, 1.0, 1.0, w) > candidate_score(0.8, 0.5, 1.0, 1.0, w)


class TestHardCaps:
    """Tests for the TSS and CTL ramp caps."""

    def test_tss_cap(self):
        """Planned load beyond the previous week × (1 + ρ) is cut to the cap."""
        frame = build_frames(1)[0]
        state = LoadState(START - timedelta(days=1), 60.0, 60.0)
        settings = AllocatorSettings(10.0, 10.0, 4, 7)
        base, codes = constrained_base_load(state, frame, 400.0, 300.0, settings, {})
        assert base == pytest.approx(330.0)
        assert codes == ('tss_ramp_capped',)

    def test_tss_cap_applies_to_planned_load(self):
        """A shaped week's base may exceed the cap; its planned load may not."""
        frame = build_frames(4)[3]
        assert frame.pattern == 'deload'
        state = LoadState(START - timedelta(days=1), 60.0, 60.0)
        settings = AllocatorSettings(10.0, 10.0, 4, 7)
        base, codes = constrained_base_load(state, frame, 500.0, 300.0, settings, {})
        assert sum(frame.training_loads(base)) == pytest.approx(330.0)
        assert base > 330.0
        assert codes == ('tss_ramp_capped',)

    def test_no_previous_week_leaves_tss_uncapped(self):
        """With nothing planned the week before, only the CTL cap applies."""
        frame = build_frames(1)[0]
        state = LoadState(START - timedelta(days=1), 60.0, 60.0)
        settings = AllocatorSettings(10.0, 10.0, 4, 7)
        base, codes = constrained_base_load(state, frame, 400.0, 0.0, settings, {})
        assert base == 400.0
        assert codes == ()

    def test_ramp_pct_over_previous_week(self):
        """Ramp is measured against the previous week's planned load."""
        assert ramp_pct(330.0, 300.0) == pytest.approx(10.0)
        assert ramp_pct(270.0, 300.0) == pytest.approx(-10.0)
        assert ramp_pct(300.0, 0.0) == 0.0

    def test_ctl_cap_replaces_tss_code(self):
        """When the CTL cap binds harder it is the one reported."""
        frame = build_frames(1)[0]
        state = LoadState(START - timedelta(days=1), 40.0, 40.0)
        settings = AllocatorSettings(10.0, 0.5, 4, 7)
        base, codes = constrained_base_load(state, frame, 400.0, 300.0, settings, {})
        assert base < 330.0
        assert codes == ('ctl_ramp_capped',)
        assert weekly_ctl_ramp(state, frame, base, {}) <= 0.5 + 1e-9

    def test_bisection_finds_cap(self):
        """The largest allowed base sits right at the CTL cap."""
        frame = build_frames(1)[0]
        state = LoadState(START - timedelta(days=1), 40.0, 38.0)
        base = max_base_for_ctl_ramp(state, frame, 2000.0, 2.0, {})
        assert weekly_ctl_ramp(state, frame, base, {}) == pytest.approx(2.0, abs=1e-3)

    def test_bisection_keeps_feasible_upper(self):
        """An already-feasible base is returned unchanged."""
        frame = build_frames(1)[0]
        state = LoadState(START - timedelta(days=1), 40.0, 38.0)
        assert max_base_for_ctl_ramp(state, frame, 100.0, 2.0, {}) == 100.0

    def test_event_load_alone_exceeds_cap(self):
        """An event whose load alone breaks the cap zeroes training."""
        goal = Goal('u', '100 miles', START, (HUNDRED_MILE,))
        event = EventGoal.from_goal(goal)
        frame = build_week_frames(START, START + timedelta(days=6), [event], {'u': 8}, [], 2)[0]
        state = LoadState(START - timedelta(days=1), 20.0, 60.0)
        settings = AllocatorSettings(10.0, 3.0, 4, 7)
        base, codes = constrained_base_load(state, frame, 150.0, 150.0, settings, {'u': event.profile})
        assert base == 0.0
        assert 'ctl_ramp_capped' in codes
        assert 'event_load_exceeds_ctl_ramp' in codes


class TestAllocation:
    """Tests for the full allocation over a marathon build."""

    def test_one_allocation_per_week(self, marathon_plan, marathon_allocation):
        """Every frame gets exactly one allocation and every day a load."""
        frames = marathon_plan['frames']
        assert len(marathon_allocation.weeks) == len(frames)
        assert len(marathon_allocation.daily_tss) == sum(len(f.days) for f in frames)

    def test_tss_ramp_respected(self, marathon_allocation):
        """No week's planned load exceeds the previous week's × 1.10."""
        previous = marathon_allocation.seed_load
        for week in marathon_allocation.weeks:
            if previous > 0:
                assert week.planned_load <= previous * 1.10 + 1e-6
                assert week.ramp_pct <= 10.0 + 1e-6
            previous = week.planned_load

    def test_build_after_deload_ramps_from_deload(self, marathon_allocation):
        """The first build week after a deload ramps from the deload's load."""
        weeks = marathon_allocation.weeks
        pairs = [(a, b) for a, b in zip(weeks, weeks[1:]) if a.pattern == 'deload' and b.pattern == 'build']
        assert pairs
        for deload, build in pairs:
            assert build.planned_load <= deload.planned_load * 1.10 + 1e-6

    def test_ctl_ramp_respected(self, marathon_plan, marathon_allocation):
        """Weekly CTL rise stays within the cap unless the event alone breaks it."""
        states = simulate_load_states(list(marathon_allocation.daily_tss), START, 40.0, 38.0)
        ctl_before = 40.0
        i = 0
        for frame, week in zip(marathon_plan['frames'], marathon_allocation.weeks):
            i += len(frame.days)
            ctl_after = states[i - 1].ctl
            if 'event_load_exceeds_ctl_ramp' not in week.rationale_codes:
                assert ctl_after - ctl_before <= 3.0 + 1e-6
            ctl_before = ctl_after

    def test_rest_days_empty(self, marathon_plan, marathon_allocation):
        """Rest days carry no load unless they hold the event."""
        rest = rest_day_offsets(2)
        daily = marathon_allocation.daily_tss
        i = 0
        for frame in marathon_plan['frames']:
            for offset, goal_id in enumerate(frame.event_goal_ids):
                if offset in rest and goal_id is None:
                    assert daily[i + offset] == 0.0
            i += len(frame.days)

    def test_no_negative_load(self, marathon_allocation):
        """Allocated daily load is never negative."""
        assert min(marathon_allocation.daily_tss) >= 0.0

    def test_capped_week_counts(self, marathon_allocation):
        """Summary counts match the per-week codes."""
        weeks = marathon_allocation.weeks
        assert marathon_allocation.ctl_ramp_capped_weeks == sum('ctl_ramp_capped' in w.rationale_codes for w in weeks)
        assert marathon_allocation.tss_ramp_capped_weeks == sum('tss_ramp_capped' in w.rationale_codes for w in weeks)

    def test_deterministic(self, marathon_plan, marathon_allocation):
        """Same inputs, same allocation."""
        settings = AllocatorSettings(10.0, 3.0, lookahead_weeks=4, candidate_steps=7)
        again = allocate_weekly_load(
            marathon_plan['frames'], LoadState(START - timedelta(days=1), 40.0, 38.0), settings,
            280.0, 'seed_from_ctl', marathon_plan['demands'], marathon_plan['profiles'],
        )
        assert again == marathon_allocation
