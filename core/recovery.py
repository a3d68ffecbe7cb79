"""
Event Recovery Model: recovery profiles and post-event fatigue.

Each goal target maps to a recovery profile (how long full and functional
recovery take, how intense the event is, how far it spikes ATL). After the
event the profile drives a time-decayed fatigue penalty:

    half_life = recovery_days_full / 3
    decay     = 0.5 ^ (days_after / half_life)
    overload  = max(0, (ATL / CTL - 1) × 30)          (0 when CTL <= 0)
    penalty   = min(60, (fatigue_intensity × 0.5 + overload) × decay)

Based on:
- Race recovery heuristics (roughly one easy day per mile/km-hour raced)
- Coggan: ATL response to single large training impulses
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, Optional

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.goals import (
    Goal, GoalTarget, RacePerformanceTarget, PaceThresholdTarget,
    PowerThresholdTarget, HrThresholdTarget,
)


logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class EventRecoveryProfile:
    """Derived recovery characteristics of one event. Never persisted."""
    recovery_days_full: int
    recovery_days_functional: int
    fatigue_intensity: float      # 0-100
    atl_spike_factor: float       # 1.0 = no spike, capped at 2.5

    def to_dict(self) -> Dict[str, float]:
        return {
            'recovery_days_full': self.recovery_days_full,
            'recovery_days_functional': self.recovery_days_functional,
            'fatigue_intensity': self.fatigue_intensity,
            'atl_spike_factor': round(self.atl_spike_factor, 3),
        }


def race_fatigue_intensity(
    duration_hours: float,
    activity: str,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """
    Fatigue intensity of a race by duration bucket and activity.

    Shorter races are run closer to maximal effort, so they score higher.
    """
    intensity = calibration.race_default_intensity
    for hours_above, bucket_intensity in calibration.race_intensity_buckets:
        if duration_hours > hours_above:
            intensity = bucket_intensity
            break

    factor = calibration.activity_intensity_factors.get(activity, 1.0)
    return float(round_half_up(intensity * factor))


def compute_event_recovery_profile(
    target: GoalTarget,
    projected_ctl: Optional[float] = None,
    projected_atl: Optional[float] = None,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> EventRecoveryProfile:
    """
    Recovery profile for a single goal target.

    Args:
        target: Goal target (any variant)
        projected_ctl: CTL carried into the event, if known
        projected_atl: ATL carried into the event, if known
        calibration: Calibration constants

    Returns:
        EventRecoveryProfile. Entering an event with ATL above CTL extends
        full recovery by up to 25%.

    Raises:
        ValueError: On an unsupported target variant
    """
    if isinstance(target, RacePerformanceTarget):
        hours = target.time_s / 3600.0
        base_days = min(calibration.race_max_base_days,
                        max(calibration.race_min_base_days, hours * calibration.race_days_per_hour))
        intensity = race_fatigue_intensity(hours, target.activity, calibration)
        full = round_half_up(base_days * (calibration.full_recovery_base +
                                          intensity / 100.0 * calibration.full_recovery_intensity_weight))
        functional = round_half_up(base_days * calibration.functional_recovery_ratio)
        spike = min(calibration.atl_spike_cap, 1.0 + hours * calibration.atl_spike_per_hour)

    elif isinstance(target, (PaceThresholdTarget, PowerThresholdTarget)):
        hours = target.test_duration_s / 3600.0
        base_days = calibration.threshold_test_base_days + hours * calibration.threshold_test_days_per_hour
        full = int(min(calibration.threshold_test_max_full_days,
                       max(calibration.threshold_test_min_full_days, round_half_up(base_days))))
        functional = max(1, round_half_up(base_days * calibration.threshold_test_functional_ratio))
        intensity = calibration.threshold_test_intensity
        spike = calibration.threshold_test_spike

    elif isinstance(target, HrThresholdTarget):
        full = calibration.hr_test_full_days
        functional = calibration.hr_test_functional_days
        intensity = calibration.hr_test_intensity
        spike = calibration.hr_test_spike

    else:
        raise ValueError(f"Unsupported goal target: {target!r}")

    if projected_ctl is not None and projected_atl is not None and 0 < projected_ctl < projected_atl:
        overload = min(calibration.overload_extension_cap, projected_atl / projected_ctl - 1.0)
        full += round_half_up(full * overload)

    return EventRecoveryProfile(
        recovery_days_full=int(full),
        recovery_days_functional=int(min(functional, full)),
        fatigue_intensity=float(intensity),
        atl_spike_factor=float(spike),
    )


def compute_goal_recovery_profile(
    goal: Goal,
    projected_ctl: Optional[float] = None,
    projected_atl: Optional[float] = None,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> EventRecoveryProfile:
    """
    Recovery profile of a goal: its most demanding target.

    Ranked by full recovery days, then intensity; ties keep canonical
    target order.
    """
    profiles = [
        compute_event_recovery_profile(t, projected_ctl, projected_atl, calibration)
        for t in goal.targets
    ]
    return max(profiles, key=lambda p: (p.recovery_days_full, p.fatigue_intensity))


@dataclass(frozen=True)
class EventGoal:
    """A goal together with the recovery profile projected for it."""
    goal: Goal
    profile: EventRecoveryProfile

    @property
    def event_date(self) -> date:
        return self.goal.target_date

    @classmethod
    def from_goal(
        cls,
        goal: Goal,
        projected_ctl: Optional[float] = None,
        projected_atl: Optional[float] = None,
        calibration: Calibration = DEFAULT_CALIBRATION
    ) -> 'EventGoal':
        return cls(goal, compute_goal_recovery_profile(goal, projected_ctl, projected_atl, calibration))


def compute_atl_overload(ctl: float, atl: float, calibration: Calibration = DEFAULT_CALIBRATION) -> float:
    """Overload term of the fatigue penalty, 0 when CTL is not positive."""
    if ctl <= 0:
        return 0.0
    return max(0.0, (atl / ctl - 1.0) * calibration.penalty_overload_scale)


def compute_post_event_fatigue_penalty(
    current_date: date,
    current_point,
    event_goal: EventGoal,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """
    Time-decayed fatigue penalty left by a past event.

    Args:
        current_date: Day being scored
        current_point: Load state carried into that day (needs ctl, atl)
        event_goal: The event and its recovery profile
        calibration: Calibration constants

    Returns:
        Penalty in readiness points, 0 on or before the event date
    """
    days_after = (current_date - event_goal.event_date).days
    if days_after <= 0:
        return 0.0

    profile = event_goal.profile
    half_life = profile.recovery_days_full / calibration.half_life_divisor
    if half_life <= 0:
        return 0.0

    decay = 0.5 ** (days_after / half_life)
    overload = compute_atl_overload(current_point.ctl, current_point.atl, calibration)
    penalty = (profile.fatigue_intensity * calibration.penalty_intensity_weight + overload) * decay
    return min(calibration.penalty_cap, penalty)


def compute_combined_fatigue_penalty(
    current_date: date,
    current_point,
    event_goals: Iterable[EventGoal],
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """Largest remaining penalty over all past events."""
    penalties = [
        compute_post_event_fatigue_penalty(current_date, current_point, event_goal, calibration)
        for event_goal in event_goals
    ]
    return max(penalties, default=0.0)


def compute_event_load(
    profile: EventRecoveryProfile,
    morning_atl: float,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """
    Event-day TSS that lifts ATL by the profile's spike factor.

    With ATL_after = ATL + α_a × (TSS - ATL) = spike × ATL:
        TSS = ATL × (1 + (spike - 1) / α_a)
    """
    reference = max(morning_atl, calibration.event_min_reference_atl)
    return reference * (1.0 + (profile.atl_spike_factor - 1.0) / calibration.atl_alpha)
