"""
Projection feasibility: how much of the goal demand the capped plan can deliver.

Per goal, a build-time tier from the goal's demand tier and the whole
weeks between plan start and goal:

    tier     full    limited
    high     >= 16   >= 12      (race >= 30 km)
    medium   >= 12   >= 8       (race >= 10 km, threshold targets)
    low      >= 8    >= 6

Per projection, the peak weekly load the goals call for (demand CTL × 7)
against the peak planned weekly load the caps allowed, plus how often the
caps bound.
"""

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np

from core.goals import Goal, RacePerformanceTarget


BUILD_TIME_WEEKS = {
    'high': (16, 12),
    'medium': (12, 8),
    'low': (8, 6),
}

FEASIBILITY_CONFIDENCE = {
    'full': 'high',
    'limited': 'medium',
    'insufficient': 'low',
}


def goal_tier(goal: Goal) -> str:
    """Demand tier of a goal: long races high, mid races and tests medium."""
    medium = False
    for target in goal.targets:
        if isinstance(target, RacePerformanceTarget):
            if target.distance_m >= 30000:
                return 'high'
            if target.distance_m >= 10000:
                medium = True
        else:
            medium = True
    return 'medium' if medium else 'low'


def classify_build_time(tier: str, weeks_to_event: float) -> str:
    """full / limited / insufficient build time for a goal tier."""
    if not np.isfinite(weeks_to_event):
        weeks = 0
    else:
        weeks = max(0, int(np.floor(weeks_to_event)))
    full, limited = BUILD_TIME_WEEKS[tier]
    if weeks >= full:
        return 'full'
    elif weeks >= limited:
        return 'limited'
    return 'insufficient'


@dataclass(frozen=True)
class GoalFeasibility:
    """Build-time feasibility of one goal."""
    tier: str
    weeks_to_event: int
    build_time: str
    confidence: str
    required_weekly_tss: float

    def to_dict(self) -> Dict[str, object]:
        return {
            'tier': self.tier,
            'weeks_to_event': self.weeks_to_event,
            'build_time': self.build_time,
            'confidence': self.confidence,
            'required_weekly_tss': round(self.required_weekly_tss, 1),
        }


def assess_goal_feasibility(goal: Goal, weeks_to_event: float, demand_ctl: float) -> GoalFeasibility:
    tier = goal_tier(goal)
    build_time = classify_build_time(tier, weeks_to_event)
    return GoalFeasibility(
        tier=tier,
        weeks_to_event=max(0, int(np.floor(weeks_to_event))),
        build_time=build_time,
        confidence=FEASIBILITY_CONFIDENCE[build_time],
        required_weekly_tss=demand_ctl * 7.0,
    )


@dataclass(frozen=True)
class ProjectionFeasibility:
    """Demand gap and cap pressure over the whole projection."""
    required_peak_weekly_tss: float
    applied_peak_weekly_tss: float
    unmet_weekly_tss: float
    unmet_ratio: float
    demand_fulfillment: float
    clamp_pressure: float
    dominant_limiters: Tuple[str, ...]
    rationale_codes: Tuple[str, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            'required_peak_weekly_tss': round(self.required_peak_weekly_tss, 1),
            'applied_peak_weekly_tss': round(self.applied_peak_weekly_tss, 1),
            'unmet_weekly_tss': round(self.unmet_weekly_tss, 1),
            'unmet_ratio': round(self.unmet_ratio, 3),
            'demand_fulfillment': round(self.demand_fulfillment, 3),
            'clamp_pressure': round(self.clamp_pressure, 3),
            'dominant_limiters': list(self.dominant_limiters),
            'rationale_codes': list(self.rationale_codes),
        }


def compute_projection_feasibility(
    required_peak_weekly_tss: float,
    planned_weekly_tss: Sequence[float],
    tss_ramp_capped_weeks: int,
    ctl_ramp_capped_weeks: int,
    evidence_confidence: float
) -> ProjectionFeasibility:
    """
    Demand gap of a projection.

    Args:
        required_peak_weekly_tss: Peak weekly load the goals call for
        planned_weekly_tss: Planned training load per week
        tss_ramp_capped_weeks: Weeks bound by the TSS ramp cap
        ctl_ramp_capped_weeks: Weeks bound by the CTL ramp cap
        evidence_confidence: Evidence confidence in [0, 1]

    Returns:
        ProjectionFeasibility
    """
    required = max(0.0, required_peak_weekly_tss)
    applied = max([0.0] + [float(w) for w in planned_weekly_tss])
    unmet = max(0.0, required - applied)
    unmet_ratio = 0.0 if required <= 0 else unmet / required
    fulfillment = 1.0 if required <= 0 else float(np.clip(applied / required, 0.0, 1.0))
    pressure = float(np.clip((tss_ramp_capped_weeks + ctl_ramp_capped_weeks) /
                             max(1, len(planned_weekly_tss)), 0.0, 1.0))

    limiters = []
    if unmet > 0:
        limiters.append('required_growth_exceeds_caps')
    if tss_ramp_capped_weeks > 0:
        limiters.append('tss_ramp_cap_pressure')
    if ctl_ramp_capped_weeks > 0:
        limiters.append('ctl_ramp_cap_pressure')
    if evidence_confidence < 0.5:
        limiters.append('low_evidence_confidence')

    codes = []
    if fulfillment < 0.85:
        codes.append('readiness_penalty_demand_gap')
    if pressure > 0.15:
        codes.append('readiness_penalty_clamp_pressure')

    return ProjectionFeasibility(
        required_peak_weekly_tss=required,
        applied_peak_weekly_tss=applied,
        unmet_weekly_tss=unmet,
        unmet_ratio=unmet_ratio,
        demand_fulfillment=fulfillment,
        clamp_pressure=pressure,
        dominant_limiters=tuple(limiters),
        rationale_codes=tuple(codes),
    )
