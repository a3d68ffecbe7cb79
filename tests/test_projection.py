"""
End-to-end tests for the projection pipeline.

Tests cover:
1. Reference scenarios (single marathon, back-to-back, marathon then 5K)
2. Determinism and boundedness over generated inputs
3. No readiness floor under severe fatigue; conflict suppression
4. Seeding precedence, ceilings, horizon and rationale codes

Run with: python -m pytest tests/test_projection.py -v
"""

from datetime import date, timedelta

import numpy as np
import pytest

from core.calibration import Calibration
from core.load_state import AthleteHistory
from core.plan import CreationConfig, MinimalPlanDefinition, StartingState
from core.readiness import finalize_score
from data.synthetic import (
    generate_goal_scenarios,
    generate_history,
    marathon_goal,
    reference_scenario,
)
from simulation.engine import ProjectionEngine, build_projection_chart


MARATHON_DAY = date(2026, 3, 14)


def project(scenario, **kwargs):
    engine = ProjectionEngine()
    return engine.project(scenario.plan, scenario.config, starting_state=scenario.starting_state,
                          history=scenario.history, **kwargs)


@pytest.fixture(scope="module")
def single_marathon():
    return project(reference_scenario(1))


@pytest.fixture(scope="module")
def back_to_back():
    return project(reference_scenario(2))


@pytest.fixture(scope="module")
def marathon_then_5k():
    return project(reference_scenario(3))


@pytest.fixture(scope="module")
def generated_charts():
    return [project(s) for s in generate_goal_scenarios(12, seed=7)]


# =============================================================================
# Reference scenarios
# =============================================================================

class TestReferenceScenarios:
    """Readiness at goal dates for the reference scenarios."""

    def test_single_marathon(self, single_marathon):
        """12-week build from CTL 40: goal-day readiness 80-95."""
        assert 80 <= single_marathon.readiness_on(MARATHON_DAY) <= 95

    def test_back_to_back_first(self, back_to_back):
        """First of two consecutive marathons: 80-92."""
        assert 80 <= back_to_back.readiness_on(MARATHON_DAY) <= 92

    def test_back_to_back_second(self, back_to_back):
        """Second marathon the next day: 35-50."""
        assert 35 <= back_to_back.readiness_on(date(2026, 3, 15)) <= 50

    def test_five_k_after_marathon(self, marathon_then_5k):
        """5K three days after a marathon: 45-58."""
        assert 45 <= marathon_then_5k.readiness_on(date(2026, 3, 17)) <= 58

    def test_goal_markers(self, back_to_back):
        """Markers carry each goal's readiness and conflict flag."""
        markers = {m.goal_id: m for m in back_to_back.goal_markers}
        assert set(markers) == {'marathon', 'marathon_2'}
        assert all(m.conflicted for m in markers.values())
        assert markers['marathon_2'].readiness_score == back_to_back.readiness_on(date(2026, 3, 15))
        assert 'goal_conflict' in markers['marathon_2'].rationale_codes


# =============================================================================
# Properties
# =============================================================================

class TestProperties:
    """Determinism, boundedness and fatigue properties."""

    def test_deterministic(self, single_marathon):
        """Identical input, identical chart."""
        again = project(reference_scenario(1))
        assert again.to_dict() == single_marathon.to_dict()
        assert again.points == single_marathon.points

    def test_bounded(self, generated_charts):
        """Every score lies in [0, 100] for generated inputs."""
        for chart in generated_charts:
            for p in chart.points:
                assert 0 <= p.readiness_score <= 100
                assert 0.0 <= p.readiness_confidence <= 1.0
                c = p.components
                for score in (c.target_attainment_score, c.envelope_score,
                              c.durability_score, c.evidence_score):
                    assert 0.0 <= score <= 100.0
                assert np.isfinite(p.ctl) and np.isfinite(p.atl)
                assert p.daily_tss >= 0.0

    def test_no_floor_under_fatigue(self, back_to_back):
        """Two marathons a day apart never both score 95 or more."""
        first = back_to_back.readiness_on(MARATHON_DAY)
        second = back_to_back.readiness_on(date(2026, 3, 15))
        assert not (first >= 95 and second >= 95)

    def test_conflict_suppression(self, back_to_back, marathon_then_5k):
        """A conflicted later goal never exceeds base readiness minus its fatigue."""
        for chart, day in ((back_to_back, date(2026, 3, 15)), (marathon_then_5k, date(2026, 3, 17))):
            point = chart.point_on(day)
            assert point.fatigue_penalty > 0
            assert point.readiness_score <= finalize_score(max(0.0, point.base_readiness - point.fatigue_penalty))

    def test_never_above_fatigue_adjusted(self, generated_charts):
        """No later stage lifts readiness above the fatigue-adjusted value."""
        for chart in generated_charts:
            for p in chart.points:
                assert p.readiness_score <= finalize_score(max(0.0, p.base_readiness - p.fatigue_penalty))

    def test_weekly_tss_ramp_over_previous_week(self, single_marathon, generated_charts):
        """Planned weekly TSS never rises more than the cap over the week before."""
        for chart in [single_marathon] + generated_charts:
            cap = chart.constraint_summary.constraints.max_weekly_tss_ramp_pct / 100.0
            previous = chart.constraint_summary.seed_load
            for week in chart.microcycles:
                if previous > 0:
                    assert week.planned_tss <= previous * (1.0 + cap) + 1e-6
                previous = week.planned_tss

    def test_post_event_drop(self, single_marathon):
        """Readiness falls the day after the marathon."""
        after = single_marathon.point_on(MARATHON_DAY + timedelta(days=1))
        assert after.readiness_score < single_marathon.readiness_on(MARATHON_DAY)
        assert 'post_event_fatigue' in after.rationale_codes


# =============================================================================
# Pipeline behavior
# =============================================================================

class TestPipeline:
    """Seeding, horizon, ceilings and rationale codes."""

    def test_horizon(self, single_marathon):
        """Chart runs from plan start through post-goal recovery."""
        assert single_marathon.start_date == date(2025, 12, 20)
        assert single_marathon.end_date == MARATHON_DAY + timedelta(days=5)
        assert len(single_marathon.points) == (single_marathon.end_date - single_marathon.start_date).days + 1
        assert single_marathon.points[-1].date == single_marathon.end_date

    def test_recovery_segment(self, single_marathon):
        """Marathon recovery starts the next day and lasts five days."""
        segment = single_marathon.recovery_segments[0]
        assert segment.start_date == MARATHON_DAY + timedelta(days=1)
        assert segment.days == 5

    def test_codes_sorted_unique(self, back_to_back):
        """Rationale codes are sorted and free of duplicates."""
        for p in back_to_back.points:
            assert list(p.rationale_codes) == sorted(set(p.rationale_codes))

    def test_conflict_codes_span_goals(self, back_to_back):
        """Both conflicted goal days carry the conflict code."""
        assert 'goal_conflict' in back_to_back.point_on(MARATHON_DAY).rationale_codes
        assert 'goal_conflict' in back_to_back.point_on(date(2026, 3, 15)).rationale_codes
        assert 'goal_conflict' in back_to_back.constraint_summary.rationale_codes

    def test_ceiling(self):
        """A plan-level ceiling caps every day."""
        s = reference_scenario(1)
        chart = ProjectionEngine().project(s.plan, CreationConfig(readiness_ceiling=70),
                                           starting_state=s.starting_state)
        assert max(p.readiness_score for p in chart.points) <= 70
        assert any('readiness_ceiling_applied' in p.rationale_codes for p in chart.points)

    def test_insufficient_time(self):
        """Two weeks from CTL 20 cannot reach marathon demand."""
        start = date(2026, 2, 28)
        plan = MinimalPlanDefinition(start, (marathon_goal('m', MARATHON_DAY),))
        chart = ProjectionEngine().project(plan, starting_state=StartingState(20.0, 20.0))
        marker = chart.goal_markers[0]
        assert 'insufficient_time_to_target' in marker.rationale_codes
        assert 'insufficient_time_to_target' in chart.point_on(MARATHON_DAY).rationale_codes
        assert marker.readiness_score < 80

    def test_prior_seed(self):
        """No state and no history falls back to the prior."""
        plan = MinimalPlanDefinition(date(2025, 12, 20), (marathon_goal('m', MARATHON_DAY),))
        chart = ProjectionEngine().project(plan)
        assert chart.constraint_summary.starting_state_source == 'prior'
        assert 'starting_state_prior' in chart.constraint_summary.rationale_codes
        assert 'starting_state_prior' in chart.points[0].rationale_codes
        assert chart.constraint_summary.evidence_state == 'none'

    def test_history_seed(self):
        """Recorded history seeds the state."""
        start = date(2025, 12, 20)
        history = generate_history(np.random.RandomState(3), start - timedelta(days=1), 8, 350.0, 0.9, 0)
        plan = MinimalPlanDefinition(start, (marathon_goal('m', MARATHON_DAY),))
        chart = ProjectionEngine().project(plan, history=history)
        assert chart.constraint_summary.starting_state_source == 'history'
        assert chart.constraint_summary.evidence_state in ('sparse', 'rich')

    def test_stale_history_decays_to_plan_start(self):
        """Days between the history end and the plan start count as rest."""
        start = date(2025, 12, 20)
        plan = MinimalPlanDefinition(start, (marathon_goal('m', MARATHON_DAY),))
        fresh = AthleteHistory(end_date=start - timedelta(days=1), daily_tss=(50.0,) * 60)
        stale = AthleteHistory(end_date=start - timedelta(days=101), daily_tss=(50.0,) * 60)

        fresh_chart = ProjectionEngine().project(plan, history=fresh)
        stale_chart = ProjectionEngine().project(plan, history=stale)
        assert fresh_chart.points[0].ctl > 40.0
        assert stale_chart.points[0].ctl < 5.0
        assert stale_chart.constraint_summary.starting_state_source == 'history'
        assert stale_chart.constraint_summary.evidence_state == 'stale'

    def test_history_overlapping_plan_rejected(self):
        """History must end before the plan starts."""
        start = date(2025, 12, 20)
        plan = MinimalPlanDefinition(start, (marathon_goal('m', MARATHON_DAY),))
        history = AthleteHistory(end_date=start, daily_tss=(50.0,) * 14)
        with pytest.raises(ValueError, match="on or after plan start"):
            ProjectionEngine().project(plan, history=history)

    def test_override_replaces_ctl(self):
        """The CTL override applies on top of an explicit state."""
        s = reference_scenario(1)
        chart = ProjectionEngine().project(s.plan, CreationConfig(starting_ctl_override=55.0),
                                           starting_state=s.starting_state)
        assert chart.constraint_summary.starting_state_source == 'explicit+override'
        assert chart.constraint_summary.seed_load == pytest.approx(385.0)

    def test_functional_wrapper(self, single_marathon):
        """The functional entry point matches the engine."""
        s = reference_scenario(1)
        chart = build_projection_chart(s.plan, s.config, starting_state=s.starting_state)
        assert chart.to_dict() == single_marathon.to_dict()

    def test_calibration_version(self, single_marathon):
        """Charts carry the calibration version they were computed with."""
        assert single_marathon.calibration_version == Calibration().version
        assert single_marathon.constraint_summary.calibration_version == Calibration().version


class TestErrors:
    """Contract violations fail fast."""

    def test_no_goals(self):
        """An empty goal list is rejected."""
        with pytest.raises(ValueError, match="no goals"):
            ProjectionEngine().project(MinimalPlanDefinition(date(2026, 1, 1), ()))

    def test_goal_before_start(self):
        """Goals may not precede the plan start."""
        plan = MinimalPlanDefinition(date(2026, 4, 1), (marathon_goal('m', MARATHON_DAY),))
        with pytest.raises(ValueError, match="precedes plan start"):
            ProjectionEngine().project(plan)

    def test_invalid_calibration(self):
        """Inconsistent calibration is rejected at construction."""
        with pytest.raises(ValueError, match="Invalid calibration"):
            ProjectionEngine(Calibration(weight_attainment=0.9))

    def test_point_outside_horizon(self, single_marathon):
        """Looking up a day outside the chart raises KeyError."""
        with pytest.raises(KeyError):
            single_marathon.point_on(date(2030, 1, 1))

    def test_unknown_reference_scenario(self):
        """Only scenarios 1-3 exist."""
        with pytest.raises(ValueError):
            reference_scenario(9)
