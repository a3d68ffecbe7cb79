"""
Weekly Load Allocator: bounded candidate search under hard safety caps.

For each microcycle the allocator enumerates a small set of base-load
multipliers around the loading reference, holds each candidate over a
short lookahead (move blocking), and keeps the one with the best objective
(see optimization.objective). Hard constraints are applied to every
simulated week before it is scored and are never traded away:

- weekly TSS ramp: planned training load <= previous week × (1 + ramp cap)
- CTL ramp: simulated weekly CTL rise <= cap (20-step bisection)
- rest days: the microcycle's rest days never receive training load

Infeasible goals still get the best constraint-respecting trajectory;
the shortfall surfaces downstream as a lower attainment score.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.envelope import assess_week, derive_capacity_envelope
from core.load_state import LoadState, advance_state
from core.recovery import EventRecoveryProfile, compute_event_load
from core.timeline import WeekFrame
from optimization.objective import (
    ObjectiveWeights, acwr_risk, candidate_score, preparedness_score,
    risk_score, score_breakdown,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocatorSettings:
    """Constraint caps and search bounds for one allocation run."""
    max_weekly_tss_ramp_pct: float
    max_ctl_ramp_per_week: float
    lookahead_weeks: int
    candidate_steps: int
    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)

    def __post_init__(self):
        if not 1 <= self.lookahead_weeks <= 12:
            raise ValueError(f"lookahead_weeks must be in [1, 12], got {self.lookahead_weeks}")
        if not 1 <= self.candidate_steps <= 15:
            raise ValueError(f"candidate_steps must be in [1, 15], got {self.candidate_steps}")


@dataclass(frozen=True)
class WeekAllocation:
    """Chosen load for one microcycle."""
    week_index: int
    start_date: date
    end_date: date
    pattern: str
    base_load: float
    multiplier: float
    planned_load: float       # training load only
    realized_load: float      # training plus event load
    ramp_pct: float
    rationale_codes: Tuple[str, ...]
    objective: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            'week_index': self.week_index,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'pattern': self.pattern,
            'base_load': round(self.base_load, 1),
            'multiplier': round(self.multiplier, 4),
            'planned_load': round(self.planned_load, 1),
            'realized_load': round(self.realized_load, 1),
            'ramp_pct': round(self.ramp_pct, 2),
            'rationale_codes': list(self.rationale_codes),
        }


@dataclass(frozen=True)
class AllocationResult:
    """Full allocation over the horizon."""
    weeks: Tuple[WeekAllocation, ...]
    daily_tss: Tuple[float, ...]
    seed_load: float
    seed_source: str

    @property
    def tss_ramp_capped_weeks(self) -> int:
        return sum('tss_ramp_capped' in w.rationale_codes for w in self.weeks)

    @property
    def ctl_ramp_capped_weeks(self) -> int:
        return sum('ctl_ramp_capped' in w.rationale_codes for w in self.weeks)


# ═══════════════════════════════════════════════════════════════════════════════
# SEEDING
# ═══════════════════════════════════════════════════════════════════════════════

def compose_week_one_seed(
    ctl0: float,
    prior_week_load: Optional[float] = None,
    block_midpoint: Optional[float] = None,
    demand_floor: Optional[float] = None,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> Tuple[float, str]:
    """
    Loading reference for the first week.

    Prefers the CTL-derived seed (CTL₀ × 7). Without fitness, blends the
    prior realized week, the first block's envelope midpoint and the
    active demand floor over whichever of them exist.

    Returns:
        Tuple of (seed load, seed source code)
    """
    if ctl0 > 0:
        return ctl0 * 7.0, 'seed_from_ctl'

    components = [
        (calibration.seed_prior_week_weight, prior_week_load),
        (calibration.seed_block_midpoint_weight, block_midpoint),
        (calibration.seed_demand_floor_weight, demand_floor),
    ]
    present = [(w, v) for w, v in components if v is not None and v > 0]
    if not present:
        return 0.0, 'seed_empty'

    total_weight = sum(w for w, _ in present)
    return sum(w * v for w, v in present) / total_weight, 'seed_composed'


def candidate_multipliers(max_weekly_tss_ramp_pct: float, steps: int) -> List[float]:
    """Evenly spaced base-load multipliers within ± the ramp cap."""
    rho = max_weekly_tss_ramp_pct / 100.0
    if steps <= 1 or rho <= 0:
        return [1.0 + rho]
    return sorted({round(1.0 + rho * f, 6) for f in np.linspace(-1.0, 1.0, steps)})


# ═══════════════════════════════════════════════════════════════════════════════
# WEEK SIMULATION & HARD CAPS
# ═══════════════════════════════════════════════════════════════════════════════

def simulate_week(
    state: LoadState,
    frame: WeekFrame,
    base_load: float,
    event_profiles: Dict[str, EventRecoveryProfile],
    calibration: Calibration = DEFAULT_CALIBRATION
) -> Tuple[List[float], List[LoadState]]:
    """
    Simulate one microcycle on ``base_load``.

    Event days add the load that produces the event's ATL spike on top
    of the (zero) training load of that day.

    Returns:
        Tuple of (daily TSS, end-of-day states)
    """
    daily = []
    states = []
    for load, goal_id in zip(frame.training_loads(base_load), frame.event_goal_ids):
        if goal_id is not None:
            load += compute_event_load(event_profiles[goal_id], state.atl, calibration)
        state = advance_state(state, load, calibration)
        daily.append(load)
        states.append(state)
    return daily, states


def weekly_ctl_ramp(
    state: LoadState,
    frame: WeekFrame,
    base_load: float,
    event_profiles: Dict[str, EventRecoveryProfile],
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    _, states = simulate_week(state, frame, base_load, event_profiles, calibration)
    return states[-1].ctl - state.ctl


def max_base_for_ctl_ramp(
    state: LoadState,
    frame: WeekFrame,
    upper_base: float,
    max_ctl_ramp: float,
    event_profiles: Dict[str, EventRecoveryProfile],
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """
    Largest base load <= ``upper_base`` whose weekly CTL rise stays within cap.

    Returns 0.0 when even an empty training week exceeds the cap (the
    week's event load alone does).
    """
    if weekly_ctl_ramp(state, frame, upper_base, event_profiles, calibration) <= max_ctl_ramp:
        return upper_base
    if weekly_ctl_ramp(state, frame, 0.0, event_profiles, calibration) > max_ctl_ramp:
        return 0.0

    low, high = 0.0, upper_base
    for _ in range(calibration.ctl_ramp_bisection_steps):
        mid = (low + high) / 2.0
        if weekly_ctl_ramp(state, frame, mid, event_profiles, calibration) <= max_ctl_ramp:
            low = mid
        else:
            high = mid
    return low


def ramp_pct(planned: float, previous_planned: float) -> float:
    """Week-over-week change of planned training load (%), 0 without a previous week."""
    if previous_planned <= 0:
        return 0.0
    return (planned / previous_planned - 1.0) * 100.0


def constrained_base_load(
    state: LoadState,
    frame: WeekFrame,
    proposed: float,
    previous_planned: float,
    settings: AllocatorSettings,
    event_profiles: Dict[str, EventRecoveryProfile],
    calibration: Calibration = DEFAULT_CALIBRATION
) -> Tuple[float, Tuple[str, ...]]:
    """
    Apply both ramp caps to a proposed base load.

    The TSS cap bounds the week's planned training load to the previous
    week's planned load × (1 + ρ). Without a previous week there is
    nothing to ramp from and only the CTL cap applies.

    Returns:
        Tuple of (allowed base load, codes for caps that bound)
    """
    codes = []
    base = max(0.0, proposed)
    per_base = frame.structural_factor
    if previous_planned > 0 and per_base > 0:
        tss_cap = previous_planned * (1.0 + settings.max_weekly_tss_ramp_pct / 100.0) / per_base
        if base >= tss_cap - 1e-9:
            base = tss_cap
            codes.append('tss_ramp_capped')

    ctl_cap_base = max_base_for_ctl_ramp(state, frame, base, settings.max_ctl_ramp_per_week,
                                         event_profiles, calibration)
    if ctl_cap_base < base - 1e-9:
        base = ctl_cap_base
        codes = [c for c in codes if c != 'tss_ramp_capped']
        codes.append('ctl_ramp_capped')
        if base <= 0 and frame.pattern == 'event':
            codes.append('event_load_exceeds_ctl_ramp')

    return base, tuple(codes)


# ═══════════════════════════════════════════════════════════════════════════════
# CANDIDATE SEARCH
# ═══════════════════════════════════════════════════════════════════════════════

def _next_goal(goal_demands: Sequence[Tuple[date, float]], day: date) -> Optional[Tuple[date, float]]:
    for goal_date, demand in goal_demands:
        if goal_date >= day:
            return goal_date, demand
    return None


def evaluate_candidate(
    multiplier: float,
    week_index: int,
    frames: Sequence[WeekFrame],
    state: LoadState,
    reference: float,
    previous_planned: float,
    settings: AllocatorSettings,
    goal_demands: Sequence[Tuple[date, float]],
    event_profiles: Dict[str, EventRecoveryProfile],
    history_weekly: Sequence[float],
    evidence_coverage: float,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> Tuple[float, float, float]:
    """
    Hold ``multiplier`` over the lookahead and score the outcome.

    Returns:
        Tuple of (preparedness, risk, effective first-week multiplier)
    """
    next_goal = _next_goal(goal_demands, frames[week_index].start_date)
    s = state
    ref = reference
    prev = previous_planned
    penalties = []
    risks = []
    eval_ctl = None
    effective = multiplier

    last = min(len(frames), week_index + settings.lookahead_weeks)
    for j in range(week_index, last):
        frame = frames[j]
        base, _ = constrained_base_load(s, frame, ref * multiplier, prev, settings,
                                        event_profiles, calibration)
        if j == week_index:
            effective = base / ref if ref > 0 else multiplier

        _, states = simulate_week(s, frame, base, event_profiles, calibration)
        envelope = derive_capacity_envelope(j, frame.start_date, s.ctl, history_weekly,
                                            frame.structural_factor, evidence_coverage, calibration)
        planned = sum(frame.training_loads(base))
        penalties.append(assess_week(planned, envelope, ramp_pct(planned, prev), calibration).penalty)
        risks.append(acwr_risk(states[-1].atl, states[-1].ctl, calibration))

        if next_goal is not None and next_goal[0] in frame.days:
            i = frame.days.index(next_goal[0])
            eval_ctl = states[i - 1].ctl if i > 0 else s.ctl
            break

        if frame.is_loading:
            ref = base
        prev = planned
        s = states[-1]

    if eval_ctl is None:
        eval_ctl = s.ctl

    demand = next_goal[1] if next_goal is not None else None
    preparedness = preparedness_score(eval_ctl, demand, state.ctl)
    return preparedness, risk_score(penalties, risks), effective


def allocate_weekly_load(
    frames: Sequence[WeekFrame],
    start_state: LoadState,
    settings: AllocatorSettings,
    seed_load: float,
    seed_source: str,
    goal_demands: Sequence[Tuple[date, float]],
    event_profiles: Dict[str, EventRecoveryProfile],
    history_weekly: Sequence[float] = (),
    evidence_coverage: float = 0.0,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> AllocationResult:
    """
    Choose a base load for every microcycle.

    The seed is both the first loading reference and the load the first
    week ramps from.

    Args:
        frames: Microcycles of the horizon, in order
        start_state: State carried into the first plan day
        settings: Caps, lookahead and candidate count
        seed_load: Loading reference for the first week
        seed_source: How the seed was derived (reported only)
        goal_demands: (goal date, demand CTL) in date order
        event_profiles: Recovery profile per goal id
        history_weekly: Realized weekly totals before the plan
        evidence_coverage: Fraction of recent days with recorded training
        calibration: Calibration constants

    Returns:
        AllocationResult with per-week choices and the daily TSS series
    """
    candidates = candidate_multipliers(settings.max_weekly_tss_ramp_pct, settings.candidate_steps)
    state = start_state
    reference = seed_load
    previous_planned = seed_load
    previous_multiplier = 1.0
    weeks = []
    daily_tss: List[float] = []

    for k, frame in enumerate(frames):
        best = None
        for multiplier in candidates:
            preparedness, risk, effective = evaluate_candidate(
                multiplier, k, frames, state, reference, previous_planned, settings, goal_demands,
                event_profiles, history_weekly, evidence_coverage, calibration,
            )
            score = candidate_score(preparedness, risk, effective, previous_multiplier, settings.weights)
            if best is None or score > best[0] + 1e-12:
                best = (score, multiplier, preparedness, risk, effective)

        _, multiplier, preparedness, risk, effective = best
        base, codes = constrained_base_load(state, frame, reference * multiplier, previous_planned,
                                            settings, event_profiles, calibration)
        daily, states = simulate_week(state, frame, base, event_profiles, calibration)
        planned = sum(frame.training_loads(base))

        weeks.append(WeekAllocation(
            week_index=frame.index,
            start_date=frame.start_date,
            end_date=frame.end_date,
            pattern=frame.pattern,
            base_load=base,
            multiplier=effective,
            planned_load=planned,
            realized_load=sum(daily),
            ramp_pct=ramp_pct(planned, previous_planned),
            rationale_codes=codes,
            objective=score_breakdown(preparedness, risk, effective, previous_multiplier, settings.weights),
        ))
        logger.debug("Week %d (%s): base=%.1f planned=%.1f mult=%.3f codes=%s",
                     frame.index, frame.pattern, base, planned, effective, codes)

        daily_tss.extend(daily)
        state = states[-1]
        previous_multiplier = effective
        previous_planned = planned
        if frame.is_loading:
            reference = base

    return AllocationResult(
        weeks=tuple(weeks),
        daily_tss=tuple(daily_tss),
        seed_load=seed_load,
        seed_source=seed_source,
    )
