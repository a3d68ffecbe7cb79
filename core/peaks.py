"""
Goal Peak/Conflict Resolver.

    taper_days  = round(5 + fatigue_intensity / 100 × 3)
    peak_window = taper_days + round(recovery_days_full × 0.6)

Two goals conflict when the days between them are within the functional
recovery of either. Conflicting goals are never given an artificial peak:
the fatigue decay from the earlier event shows through at the later date.

Every operation here only merges or caps; none raises a value above the
fatigue-adjusted readiness it was given.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.recovery import EventGoal, EventRecoveryProfile, round_half_up


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeakWindow:
    taper_days: int
    peak_window: int


@dataclass(frozen=True)
class GoalConflict:
    """Two goals too close together to both peak."""
    earlier_goal_id: str
    later_goal_id: str
    days_between: int


def compute_peak_window(
    profile: EventRecoveryProfile,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> PeakWindow:
    """Taper length and peak window of an event."""
    taper = round_half_up(calibration.taper_base_days +
                          profile.fatigue_intensity / 100.0 * calibration.taper_intensity_days)
    window = taper + round_half_up(profile.recovery_days_full * calibration.peak_recovery_ratio)
    return PeakWindow(taper_days=taper, peak_window=window)


def goals_conflict(first: EventGoal, second: EventGoal) -> bool:
    """True when either goal falls inside the other's functional recovery."""
    days = abs((second.event_date - first.event_date).days)
    return (days <= first.profile.recovery_days_functional or
            days <= second.profile.recovery_days_functional)


def detect_goal_conflicts(event_goals: Sequence[EventGoal]) -> List[GoalConflict]:
    """
    All conflicting goal pairs, earlier goal first.

    Args:
        event_goals: Goals with their recovery profiles

    Returns:
        GoalConflict list ordered by date
    """
    ordered = sorted(event_goals, key=lambda e: (e.event_date, e.goal.id))
    conflicts = []
    for i, earlier in enumerate(ordered):
        for later in ordered[i + 1:]:
            if goals_conflict(earlier, later):
                conflicts.append(GoalConflict(
                    earlier_goal_id=earlier.goal.id,
                    later_goal_id=later.goal.id,
                    days_between=(later.event_date - earlier.event_date).days,
                ))
    if conflicts:
        logger.info("Detected %d goal conflict(s)", len(conflicts))
    return conflicts


def conflicted_goal_ids(conflicts: Sequence[GoalConflict]) -> Set[str]:
    ids = set()
    for conflict in conflicts:
        ids.add(conflict.earlier_goal_id)
        ids.add(conflict.later_goal_id)
    return ids


def smooth_readiness(
    values: Sequence[float],
    max_step: float
) -> Tuple[Tuple[float, ...], Tuple[int, ...]]:
    """
    Bounded forward pass limiting day-over-day rises to ``max_step``.

    Drops pass through unchanged so post-event decay keeps its shape, and
    no value is ever raised.

    Returns:
        Tuple of (smoothed values, indices that were limited)
    """
    if max_step <= 0:
        raise ValueError(f"max_step must be positive, got {max_step}")

    smoothed: List[float] = []
    limited: List[int] = []
    for i, value in enumerate(values):
        if i > 0 and value > smoothed[-1] + max_step:
            smoothed.append(smoothed[-1] + max_step)
            limited.append(i)
        else:
            smoothed.append(float(value))
    return tuple(smoothed), tuple(limited)


def anchor_goal_peaks(
    values: Sequence[float],
    fatigue_adjusted: Sequence[float],
    anchors: Sequence[Tuple[int, int]]
) -> Tuple[Tuple[float, ...], Tuple[int, ...]]:
    """
    Make each anchored goal day the local maximum of its peak window.

    The goal day is restored to its fatigue-adjusted value (never above it)
    and every other non-goal day in the window is capped to that value.

    Args:
        values: Smoothed readiness
        fatigue_adjusted: Readiness after the fatigue penalty, before smoothing
        anchors: (day index, peak window days) of non-conflicting goals

    Returns:
        Tuple of (anchored values, indices whose value changed)
    """
    result = list(values)
    anchored_days = {index for index, _ in anchors}

    for index, _ in anchors:
        result[index] = max(result[index], fatigue_adjusted[index])

    for index, window in anchors:
        peak = result[index]
        low = max(0, index - window)
        high = min(len(result) - 1, index + window)
        for j in range(low, high + 1):
            if j not in anchored_days and result[j] > peak:
                result[j] = peak

    changed = tuple(i for i, (a, b) in enumerate(zip(values, result)) if a != b)
    return tuple(result), changed


def apply_readiness_ceiling(
    values: Sequence[float],
    ceiling: Optional[float]
) -> Tuple[Tuple[float, ...], Tuple[int, ...]]:
    """Cap every value to the plan-level ceiling, if one is supplied."""
    if ceiling is None:
        return tuple(values), ()
    capped = tuple(min(v, ceiling) for v in values)
    changed = tuple(i for i, (a, b) in enumerate(zip(values, capped)) if a != b)
    return capped, changed
