"""
Projection Orchestrator: one non-overwriting pipeline from plan to chart.

Stages, composed only here and in this order:

    seed → timeline → allocate → simulate → envelope → base readiness
         → fatigue adjust → smooth → anchor → ceiling → emit

Each stage reads the previous stage's output and returns a new value.
Later stages only merge or cap earlier values; nothing is replaced.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.envelope import CapacityEnvelope, assess_week, compute_envelope_score, derive_capacity_envelope
from core.feasibility import (
    GoalFeasibility, ProjectionFeasibility, assess_goal_feasibility, compute_projection_feasibility,
)
from core.goals import Goal, goal_demand_ctl, goal_duration_hours, no_history_ctl_prior
from core.load_state import AthleteHistory, LoadState, derive_state_from_history, simulate_load_states, weekly_totals
from core.peaks import (
    PeakWindow, anchor_goal_peaks, apply_readiness_ceiling, compute_peak_window,
    conflicted_goal_ids, detect_goal_conflicts, smooth_readiness,
)
from core.plan import (
    PROFILE_DEFAULTS, CreationConfig, MinimalPlanDefinition, PlanConstraints,
    StartingState, normalize_constraints,
)
from core.readiness import (
    ReadinessComposite, assess_evidence, compose_readiness, compute_attainment,
    compute_durability, compute_readiness_confidence, compute_readiness_raw,
)
from core.recovery import EventGoal, EventRecoveryProfile, compute_combined_fatigue_penalty
from core.timeline import (
    RecoverySegment, build_recovery_segments, build_week_frames, deload_debt_by_week,
    horizon_end_date, trailing_loading_streak,
)
from optimization.objective import weights_for_profile
from optimization.search import AllocatorSettings, allocate_weekly_load, compose_week_one_seed


logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# OUTPUT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EnvelopeSnapshot:
    """Envelope view attached to each point."""
    envelope_score: float
    envelope_state: str
    limiting_factors: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'envelope_score': round(self.envelope_score, 2),
            'envelope_state': self.envelope_state,
            'limiting_factors': list(self.limiting_factors),
        }


@dataclass(frozen=True)
class ProjectionPoint:
    """One day of output. Immutable once emitted."""
    date: date
    ctl: float
    atl: float
    tsb: float
    daily_tss: float
    weekly_tss: float
    readiness_score: int
    readiness_confidence: float
    capacity_envelope: EnvelopeSnapshot
    rationale_codes: Tuple[str, ...]
    components: ReadinessComposite
    base_readiness: float
    fatigue_penalty: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'ctl': round(self.ctl, 2),
            'atl': round(self.atl, 2),
            'tsb': round(self.tsb, 2),
            'daily_tss': round(self.daily_tss, 1),
            'weekly_tss': round(self.weekly_tss, 1),
            'readiness_score': self.readiness_score,
            'readiness_confidence': self.readiness_confidence,
            'capacity_envelope': self.capacity_envelope.to_dict(),
            'rationale_codes': list(self.rationale_codes),
            'components': self.components.to_dict(),
            'base_readiness': round(self.base_readiness, 2),
            'fatigue_penalty': round(self.fatigue_penalty, 2),
        }


@dataclass(frozen=True)
class GoalMarker:
    """Goal as placed on the chart."""
    goal_id: str
    name: str
    date: date
    priority: int
    demand_ctl: float
    recovery_profile: EventRecoveryProfile
    peak_window: PeakWindow
    conflicted: bool
    projected_ctl: float
    projected_atl: float
    readiness_score: int
    rationale_codes: Tuple[str, ...]
    feasibility: GoalFeasibility

    def to_dict(self) -> Dict[str, Any]:
        return {
            'goal_id': self.goal_id,
            'name': self.name,
            'date': self.date.isoformat(),
            'priority': self.priority,
            'demand_ctl': round(self.demand_ctl, 2),
            'recovery_profile': self.recovery_profile.to_dict(),
            'taper_days': self.peak_window.taper_days,
            'peak_window': self.peak_window.peak_window,
            'conflicted': self.conflicted,
            'projected_ctl': round(self.projected_ctl, 2),
            'projected_atl': round(self.projected_atl, 2),
            'readiness_score': self.readiness_score,
            'rationale_codes': list(self.rationale_codes),
            'feasibility': self.feasibility.to_dict(),
        }


@dataclass(frozen=True)
class Microcycle:
    """One planned week."""
    index: int
    start_date: date
    end_date: date
    pattern: str
    base_load: float
    planned_tss: float
    realized_tss: float
    envelope: CapacityEnvelope
    envelope_state: str
    envelope_penalty: float
    limiting_factors: Tuple[str, ...]
    rationale_codes: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'pattern': self.pattern,
            'base_load': round(self.base_load, 1),
            'planned_tss': round(self.planned_tss, 1),
            'realized_tss': round(self.realized_tss, 1),
            'safe_low': round(self.envelope.safe_low, 1),
            'safe_high': round(self.envelope.safe_high, 1),
            'ramp_limit_pct': round(self.envelope.ramp_limit_pct, 2),
            'envelope_state': self.envelope_state,
            'envelope_penalty': round(self.envelope_penalty, 4),
            'limiting_factors': list(self.limiting_factors),
            'rationale_codes': list(self.rationale_codes),
        }


@dataclass(frozen=True)
class ConstraintSummary:
    """Effective constraints and how often they bound the plan."""
    optimization_profile: str
    constraints: PlanConstraints
    lookahead_weeks: int
    candidate_steps: int
    seed_load: float
    seed_source: str
    starting_state_source: str
    tss_ramp_capped_weeks: int
    ctl_ramp_capped_weeks: int
    evidence_state: str
    calibration_version: str
    feasibility: ProjectionFeasibility
    rationale_codes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'optimization_profile': self.optimization_profile,
            'constraints': self.constraints.to_dict(),
            'lookahead_weeks': self.lookahead_weeks,
            'candidate_steps': self.candidate_steps,
            'seed_load': round(self.seed_load, 1),
            'seed_source': self.seed_source,
            'starting_state_source': self.starting_state_source,
            'tss_ramp_capped_weeks': self.tss_ramp_capped_weeks,
            'ctl_ramp_capped_weeks': self.ctl_ramp_capped_weeks,
            'evidence_state': self.evidence_state,
            'calibration_version': self.calibration_version,
            'feasibility': self.feasibility.to_dict(),
            'rationale_codes': list(self.rationale_codes),
        }


@dataclass(frozen=True)
class ProjectionChart:
    """The engine's sole output artifact."""
    start_date: date
    end_date: date
    points: Tuple[ProjectionPoint, ...]
    goal_markers: Tuple[GoalMarker, ...]
    microcycles: Tuple[Microcycle, ...]
    recovery_segments: Tuple[RecoverySegment, ...]
    constraint_summary: ConstraintSummary
    calibration_version: str

    def point_on(self, day: date) -> ProjectionPoint:
        """Point for ``day``; raises KeyError outside the horizon."""
        index = (day - self.start_date).days
        if not 0 <= index < len(self.points):
            raise KeyError(f"{day} is outside the projection {self.start_date}..{self.end_date}")
        return self.points[index]

    def readiness_on(self, day: date) -> int:
        return self.point_on(day).readiness_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'points': [p.to_dict() for p in self.points],
            'goal_markers': [g.to_dict() for g in self.goal_markers],
            'microcycles': [m.to_dict() for m in self.microcycles],
            'recovery_segments': [s.to_dict() for s in self.recovery_segments],
            'constraint_summary': self.constraint_summary.to_dict(),
            'calibration_version': self.calibration_version,
        }


@dataclass(frozen=True)
class _Seed:
    state: LoadState
    source: str
    codes: Tuple[str, ...] = field(default_factory=tuple)


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════════════════════

class ProjectionEngine:
    """
    Projects a plan into a day-by-day readiness chart.

    Holds only its immutable calibration; every call to ``project`` is
    independent.
    """

    def __init__(self, calibration: Calibration = DEFAULT_CALIBRATION):
        is_valid, message = calibration.validate()
        if not is_valid:
            raise ValueError(f"Invalid calibration {calibration.version}: {message}")
        self.calibration = calibration

    def project(
        self,
        plan: MinimalPlanDefinition,
        config: Optional[CreationConfig] = None,
        starting_state: Optional[StartingState] = None,
        history: Optional[AthleteHistory] = None,
        as_of: Optional[date] = None
    ) -> ProjectionChart:
        """
        Run the full projection pipeline.

        Args:
            plan: Plan start and goals
            config: Optimization profile, constraints, overrides
            starting_state: Explicit CTL/ATL carried into the plan
            history: Realized daily load ending before the plan start
            as_of: Date the projection is made (defaults to plan start)

        Returns:
            ProjectionChart

        Raises:
            ValueError: On an empty goal list or a goal before the plan start
        """
        cal = self.calibration
        config = config or CreationConfig()
        start = plan.plan_start_date
        as_of = as_of or start

        if not plan.goals:
            raise ValueError("Plan has no goals")
        for goal in plan.goals:
            if goal.target_date < start:
                raise ValueError(
                    f"Goal '{goal.id}' on {goal.target_date} precedes plan start {start}"
                )
        if history is not None and history.end_date >= start:
            raise ValueError(f"History ends {history.end_date}, on or after plan start {start}")

        constraints = normalize_constraints(config)
        defaults = PROFILE_DEFAULTS[config.optimization_profile]
        goals = list(plan.goals)
        demands = {g.id: goal_demand_ctl(g, cal) for g in goals}

        # ── seed ────────────────────────────────────────────────────────────
        # Unrecorded days up to the plan start are rest
        realized = history.extended_to(start - timedelta(days=1)) if history is not None else None
        seed = self._resolve_seed(start, goals, demands, config, starting_state, realized)
        history_weekly = weekly_totals(realized.daily_tss) if realized is not None else []
        evidence = assess_evidence(history, as_of, cal)
        loading_streak = trailing_loading_streak(history_weekly, cal)

        # ── timeline ────────────────────────────────────────────────────────
        planning_goals = [EventGoal.from_goal(g, calibration=cal) for g in goals]
        taper_days = {e.goal.id: compute_peak_window(e.profile, cal).taper_days for e in planning_goals}
        segments = build_recovery_segments(planning_goals, constraints.post_goal_recovery_days)
        end = max(horizon_end_date(planning_goals, segments),
                  plan.last_goal_date + timedelta(days=constraints.post_goal_recovery_days))
        frames = build_week_frames(start, end, planning_goals, taper_days, segments,
                                   constraints.min_recovery_days_per_cycle, loading_streak, cal)
        logger.debug("Timeline %s..%s: %d weeks, patterns=%s",
                     start, end, len(frames), [f.pattern for f in frames])

        # ── allocate ────────────────────────────────────────────────────────
        first_envelope = derive_capacity_envelope(0, start, seed.state.ctl, history_weekly,
                                                  1.0, evidence.coverage, cal)
        seed_load, seed_source = compose_week_one_seed(
            seed.state.ctl,
            prior_week_load=history_weekly[-1] if history_weekly else None,
            block_midpoint=first_envelope.midpoint,
            demand_floor=no_history_ctl_prior(demands[goals[0].id], cal) * 7.0,
            calibration=cal,
        )
        settings = AllocatorSettings(
            max_weekly_tss_ramp_pct=constraints.max_weekly_tss_ramp_pct,
            max_ctl_ramp_per_week=constraints.max_ctl_ramp_per_week,
            lookahead_weeks=defaults.lookahead_weeks,
            candidate_steps=defaults.candidate_steps,
            weights=weights_for_profile(config.optimization_profile),
        )
        allocation = allocate_weekly_load(
            frames, seed.state, settings, seed_load, seed_source,
            [(g.target_date, demands[g.id]) for g in goals],
            {e.goal.id: e.profile for e in planning_goals},
            history_weekly, evidence.coverage, cal,
        )

        # ── simulate ────────────────────────────────────────────────────────
        daily_tss = list(allocation.daily_tss)
        states = simulate_load_states(daily_tss, start, seed.state.ctl, seed.state.atl, cal)
        mornings = [seed.state] + states[:-1]
        days = [s.date for s in states]
        index_of = {d: i for i, d in enumerate(days)}

        # Recovery profiles with the state actually carried into each event
        event_goals = [
            EventGoal.from_goal(g, mornings[index_of[g.target_date]].ctl,
                                mornings[index_of[g.target_date]].atl, cal)
            for g in goals
        ]
        conflicts = detect_goal_conflicts(event_goals)
        conflicted = conflicted_goal_ids(conflicts)

        # ── envelope ────────────────────────────────────────────────────────
        week_of_day: List[int] = []
        assessments = []
        envelopes = []
        for frame, week in zip(frames, allocation.weeks):
            envelope = derive_capacity_envelope(
                frame.index, frame.start_date, mornings[index_of[frame.start_date]].ctl,
                history_weekly, frame.structural_factor, evidence.coverage, cal,
            )
            envelopes.append(envelope)
            assessments.append(assess_week(week.planned_load, envelope, week.ramp_pct, cal))
            week_of_day.extend([frame.index] * len(frame.days))

        penalties = [a.penalty for a in assessments]
        window = cal.envelope_window_weeks
        envelope_scores = [
            compute_envelope_score(penalties[max(0, k - window + 1):k + 1]) for k in range(len(frames))
        ]
        debts = deload_debt_by_week(frames, loading_streak, cal)

        # ── base readiness ──────────────────────────────────────────────────
        history_daily = realized.filled() if realized is not None else []
        series = history_daily + daily_tss
        offset = len(history_daily)

        infeasible = set()
        for g in goals:
            morning = mornings[index_of[g.target_date]]
            if morning.ctl < cal.infeasible_demand_ratio * demands[g.id]:
                infeasible.add(g.id)
                logger.info("Goal '%s': projected CTL %.1f below %.0f%% of demand %.1f",
                            g.id, morning.ctl, cal.infeasible_demand_ratio * 100, demands[g.id])

        base_values = []
        sub_scores = []
        point_codes: List[Set[str]] = []
        for i, day in enumerate(days):
            k = week_of_day[i]
            morning = mornings[i]
            goal = _relevant_goal(goals, day)
            codes = set(allocation.weeks[k].rationale_codes)
            codes.update(assessments[k].limiting_factors)
            if k == 0:
                codes.update(seed.codes)
            if goal.id in infeasible:
                codes.add('insufficient_time_to_target')

            attainment = compute_attainment(morning.ctl, morning.atl, demands[goal.id],
                                            goal_duration_hours(goal, cal), cal)
            trailing = series[max(0, offset + i - 7):offset + i]
            durability = compute_durability(trailing, morning.ctl, debts[k], cal)
            codes.update(durability.rationale_codes)
            confidence = compute_readiness_confidence(evidence.score, (day - as_of).days, cal)
            if confidence < cal.low_confidence_threshold:
                codes.add('low_evidence_confidence')

            sub_scores.append((attainment, envelope_scores[k], durability.score, evidence.score, confidence))
            base_values.append(compute_readiness_raw(attainment, envelope_scores[k],
                                                     durability.score, evidence.score, cal))
            point_codes.append(codes)

        # ── fatigue adjust ──────────────────────────────────────────────────
        fatigue = [
            compute_combined_fatigue_penalty(day, mornings[i], event_goals, cal)
            for i, day in enumerate(days)
        ]
        adjusted = [max(0.0, b - p) for b, p in zip(base_values, fatigue)]
        for i, penalty in enumerate(fatigue):
            if penalty > 0:
                point_codes[i].add('post_event_fatigue')

        for conflict in conflicts:
            earlier = next(g for g in goals if g.id == conflict.earlier_goal_id)
            later = next(g for g in goals if g.id == conflict.later_goal_id)
            for i in range(index_of[earlier.target_date], index_of[later.target_date] + 1):
                point_codes[i].add('goal_conflict')

        # ── smooth ──────────────────────────────────────────────────────────
        smoothed, limited = smooth_readiness(adjusted, cal.smoothing_max_step)
        for i in limited:
            point_codes[i].add('recovery_rate_limited')

        # ── anchor ──────────────────────────────────────────────────────────
        peak_windows = {e.goal.id: compute_peak_window(e.profile, cal) for e in event_goals}
        anchors = [
            (index_of[e.event_date], peak_windows[e.goal.id].peak_window)
            for e in event_goals if e.goal.id not in conflicted
        ]
        anchored, changed = anchor_goal_peaks(smoothed, adjusted, anchors)
        for i in changed:
            point_codes[i].add('peak_anchored')

        # ── ceiling ─────────────────────────────────────────────────────────
        final, capped = apply_readiness_ceiling(anchored, config.readiness_ceiling)
        for i in capped:
            point_codes[i].add('readiness_ceiling_applied')

        # ── emit ────────────────────────────────────────────────────────────
        points = []
        for i, state in enumerate(states):
            k = week_of_day[i]
            attainment, envelope_score, durability_score, evidence_score, confidence = sub_scores[i]
            composite = compose_readiness(attainment, envelope_score, durability_score, evidence_score,
                                          confidence, adjusted_readiness=final[i], calibration=cal)
            points.append(ProjectionPoint(
                date=state.date,
                ctl=state.ctl,
                atl=state.atl,
                tsb=state.tsb,
                daily_tss=daily_tss[i],
                weekly_tss=allocation.weeks[k].realized_load,
                readiness_score=composite.readiness_score,
                readiness_confidence=confidence,
                capacity_envelope=EnvelopeSnapshot(
                    envelope_score=envelope_score,
                    envelope_state=assessments[k].state,
                    limiting_factors=assessments[k].limiting_factors,
                ),
                rationale_codes=tuple(sorted(point_codes[i])),
                components=composite,
                base_readiness=base_values[i],
                fatigue_penalty=fatigue[i],
            ))

        goal_feasibility = {
            g.id: assess_goal_feasibility(g, (g.target_date - start).days / 7.0, demands[g.id])
            for g in goals
        }
        feasibility = compute_projection_feasibility(
            max(f.required_weekly_tss for f in goal_feasibility.values()),
            [w.planned_load for w in allocation.weeks],
            allocation.tss_ramp_capped_weeks,
            allocation.ctl_ramp_capped_weeks,
            evidence.score / 100.0,
        )

        markers = []
        for e in event_goals:
            i = index_of[e.event_date]
            codes = set()
            build_time = goal_feasibility[e.goal.id].build_time
            if build_time != 'full':
                codes.add(f"build_time_{build_time}")
            if e.goal.id in conflicted:
                codes.add('goal_conflict')
            if e.goal.id in infeasible:
                codes.add('insufficient_time_to_target')
            if i in changed:
                codes.add('peak_anchored')
            markers.append(GoalMarker(
                goal_id=e.goal.id,
                name=e.goal.name,
                date=e.event_date,
                priority=e.goal.priority,
                demand_ctl=demands[e.goal.id],
                recovery_profile=e.profile,
                peak_window=peak_windows[e.goal.id],
                conflicted=e.goal.id in conflicted,
                projected_ctl=mornings[i].ctl,
                projected_atl=mornings[i].atl,
                readiness_score=points[i].readiness_score,
                rationale_codes=tuple(sorted(codes)),
                feasibility=goal_feasibility[e.goal.id],
            ))

        microcycles = tuple(
            Microcycle(
                index=frame.index,
                start_date=frame.start_date,
                end_date=frame.end_date,
                pattern=frame.pattern,
                base_load=week.base_load,
                planned_tss=week.planned_load,
                realized_tss=week.realized_load,
                envelope=envelope,
                envelope_state=assessment.state,
                envelope_penalty=assessment.penalty,
                limiting_factors=assessment.limiting_factors,
                rationale_codes=week.rationale_codes,
            )
            for frame, week, envelope, assessment in zip(frames, allocation.weeks, envelopes, assessments)
        )

        summary_codes = set(seed.codes)
        summary_codes.update(feasibility.rationale_codes)
        if conflicts:
            summary_codes.add('goal_conflict')
        if infeasible:
            summary_codes.add('insufficient_time_to_target')
        summary = ConstraintSummary(
            optimization_profile=config.optimization_profile.value,
            constraints=constraints,
            lookahead_weeks=settings.lookahead_weeks,
            candidate_steps=settings.candidate_steps,
            seed_load=allocation.seed_load,
            seed_source=allocation.seed_source,
            starting_state_source=seed.source,
            tss_ramp_capped_weeks=allocation.tss_ramp_capped_weeks,
            ctl_ramp_capped_weeks=allocation.ctl_ramp_capped_weeks,
            evidence_state=evidence.state,
            calibration_version=cal.version,
            feasibility=feasibility,
            rationale_codes=tuple(sorted(summary_codes)),
        )
        if allocation.ctl_ramp_capped_weeks:
            logger.info("CTL ramp cap bound %d of %d weeks",
                        allocation.ctl_ramp_capped_weeks, len(frames))

        logger.debug("Projected %d days, %d goals, %d conflicts", len(points), len(goals), len(conflicts))
        return ProjectionChart(
            start_date=start,
            end_date=end,
            points=tuple(points),
            goal_markers=tuple(markers),
            microcycles=microcycles,
            recovery_segments=tuple(segments),
            constraint_summary=summary,
            calibration_version=cal.version,
        )

    def _resolve_seed(
        self,
        start: date,
        goals: Sequence[Goal],
        demands: Dict[str, float],
        config: CreationConfig,
        starting_state: Optional[StartingState],
        history: Optional[AthleteHistory]
    ) -> _Seed:
        """
        State carried into the first plan day.

        Precedence: explicit starting state, then realized history, then
        the no-history prior. ``starting_ctl_override`` replaces CTL from
        any source.
        """
        cal = self.calibration
        day_before = start - timedelta(days=1)
        has_history = history is not None and any(v is not None and v > 0 for v in history.daily_tss)

        if starting_state is not None:
            ctl, atl, source = starting_state.ctl, starting_state.atl, 'explicit'
        elif has_history:
            derived = derive_state_from_history(history, cal, through=day_before)
            ctl, atl, source = derived.ctl, derived.atl, 'history'
        elif config.starting_ctl_override is not None:
            ctl = atl = config.starting_ctl_override
            source = 'override'
        else:
            prior = no_history_ctl_prior(demands[goals[0].id], cal)
            logger.info("No history or starting state; assuming CTL %.0f", prior)
            return _Seed(LoadState(day_before, prior, prior), 'prior', ('starting_state_prior',))

        if config.starting_ctl_override is not None:
            ctl = config.starting_ctl_override
            source = 'override' if source == 'override' else f"{source}+override"

        return _Seed(LoadState(day_before, float(ctl), float(atl)), source)


def _relevant_goal(goals: Sequence[Goal], day: date) -> Goal:
    """Next goal on or after ``day``; the last goal once all have passed."""
    for goal in goals:
        if goal.target_date >= day:
            return goal
    return goals[-1]


def build_projection_chart(
    plan: MinimalPlanDefinition,
    config: Optional[CreationConfig] = None,
    starting_state: Optional[StartingState] = None,
    history: Optional[AthleteHistory] = None,
    as_of: Optional[date] = None,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> ProjectionChart:
    """Functional wrapper around ``ProjectionEngine.project``."""
    return ProjectionEngine(calibration).project(plan, config, starting_state, history, as_of)
