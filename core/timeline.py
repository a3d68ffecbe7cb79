"""
Plan timeline: microcycle frames, week patterns and recovery segments.

Weeks are 7-day microcycles counted from the plan start. Each week gets a
pattern that shapes its load:

    event     week contains a goal                         0.62
    taper     a goal falls within taper_days after it      0.70 (<= 7 days) / 0.85
    recovery  every day sits in a post-goal recovery       0.75
    deload    after (cycle - 1) consecutive loading weeks  0.90
    build     otherwise                                    1.00

Within a week, load follows fixed day weights. The lowest-weight days of
each microcycle are rest days, goal days carry the event instead of
training, and post-goal recovery days are scaled down.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.recovery import EventGoal


PATTERNS = ('build', 'deload', 'taper', 'event', 'recovery')


@dataclass(frozen=True)
class RecoverySegment:
    """Reduced-load days following a goal."""
    goal_id: str
    start_date: date
    end_date: date

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def to_dict(self) -> Dict[str, object]:
        return {
            'goal_id': self.goal_id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'days': self.days,
        }


@dataclass(frozen=True)
class WeekFrame:
    """One microcycle of the plan and how its load is shaped."""
    index: int
    days: Tuple[date, ...]
    pattern: str
    pattern_multiplier: float
    day_factors: Tuple[float, ...]            # share of the week's load per day
    event_goal_ids: Tuple[Optional[str], ...]  # goal held on each day, if any
    full_week_weight: float                   # day-weight total of a normal week

    @property
    def start_date(self) -> date:
        return self.days[0]

    @property
    def end_date(self) -> date:
        return self.days[-1]

    @property
    def is_loading(self) -> bool:
        return self.pattern == 'build'

    @property
    def structural_factor(self) -> float:
        """Planned training load of this week relative to a normal full week."""
        if self.full_week_weight <= 0:
            return 0.0
        return self.pattern_multiplier * sum(self.day_factors) / self.full_week_weight

    def training_loads(self, base_load: float) -> List[float]:
        """Daily training TSS for a week built on ``base_load``."""
        if self.full_week_weight <= 0:
            return [0.0] * len(self.days)
        unit = base_load * self.pattern_multiplier / self.full_week_weight
        return [unit * factor for factor in self.day_factors]


def rest_day_offsets(min_recovery_days: int, calibration: Calibration = DEFAULT_CALIBRATION) -> Tuple[int, ...]:
    """Microcycle offsets that are rest days (lowest day weights first)."""
    weights = calibration.day_weights
    order = sorted(range(len(weights)), key=lambda i: (weights[i], i))
    return tuple(sorted(order[:max(0, min_recovery_days)]))


def build_recovery_segments(
    event_goals: Sequence[EventGoal],
    post_goal_recovery_days: int
) -> List[RecoverySegment]:
    """
    Recovery segment per goal, starting the day after the event.

    Length is the larger of the configured post-goal recovery and the
    event's functional recovery. Goals needing neither get no segment.
    """
    segments = []
    for event_goal in sorted(event_goals, key=lambda e: (e.event_date, e.goal.id)):
        length = max(post_goal_recovery_days, event_goal.profile.recovery_days_functional)
        if length <= 0:
            continue
        start = event_goal.event_date + timedelta(days=1)
        segments.append(RecoverySegment(
            goal_id=event_goal.goal.id,
            start_date=start,
            end_date=start + timedelta(days=length - 1),
        ))
    return segments


def horizon_end_date(event_goals: Sequence[EventGoal], segments: Sequence[RecoverySegment]) -> date:
    """Last projected day: the latest goal or recovery segment end."""
    candidates = [e.event_date for e in event_goals] + [s.end_date for s in segments]
    return max(candidates)


def _taper_multiplier(days_to_goal: int, calibration: Calibration) -> float:
    if days_to_goal <= 7:
        return calibration.taper_near_multiplier
    return calibration.taper_far_multiplier


def build_week_frames(
    plan_start: date,
    end_date: date,
    event_goals: Sequence[EventGoal],
    taper_days: Dict[str, int],
    segments: Sequence[RecoverySegment],
    min_recovery_days: int,
    initial_loading_streak: int = 0,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> List[WeekFrame]:
    """
    Split the horizon into microcycles and assign each its pattern.

    Args:
        plan_start: First plan day
        end_date: Last plan day (inclusive)
        event_goals: Goals with recovery profiles
        taper_days: Taper length per goal id
        segments: Post-goal recovery segments
        min_recovery_days: Rest days per microcycle
        initial_loading_streak: Loading weeks already completed before the plan
        calibration: Calibration constants

    Returns:
        WeekFrame list covering every day from plan_start to end_date
    """
    if end_date < plan_start:
        raise ValueError(f"Horizon end {end_date} precedes plan start {plan_start}")

    goal_on_day = {}
    for event_goal in sorted(event_goals, key=lambda e: (e.event_date, -e.goal.priority, e.goal.id)):
        goal_on_day.setdefault(event_goal.event_date, event_goal.goal.id)

    rest = set(rest_day_offsets(min_recovery_days, calibration))
    weights = calibration.day_weights
    full_week_weight = sum(w for i, w in enumerate(weights) if i not in rest)

    n_days = (end_date - plan_start).days + 1
    frames = []
    loading_streak = initial_loading_streak

    for week_index, offset in enumerate(range(0, n_days, 7)):
        days = tuple(plan_start + timedelta(days=offset + i) for i in range(min(7, n_days - offset)))

        factors = []
        event_ids = []
        for i, day in enumerate(days):
            goal_id = goal_on_day.get(day)
            event_ids.append(goal_id)
            if i in rest or goal_id is not None:
                factors.append(0.0)
            elif any(s.contains(day) for s in segments):
                factors.append(weights[i] * calibration.recovery_day_factor)
            else:
                factors.append(weights[i])

        multipliers = []
        if any(goal_id is not None for goal_id in event_ids):
            pattern = 'event'
            multipliers.append(calibration.event_week_multiplier)
        else:
            for event_goal in event_goals:
                days_to_goal = (event_goal.event_date - days[-1]).days
                if 1 <= days_to_goal <= taper_days.get(event_goal.goal.id, 0):
                    multipliers.append(_taper_multiplier(days_to_goal, calibration))
            if multipliers:
                pattern = 'taper'
            elif all(any(s.contains(day) for s in segments) for day in days):
                pattern = 'recovery'
                multipliers.append(calibration.recovery_week_multiplier)
            elif loading_streak >= calibration.deload_cycle_weeks - 1:
                pattern = 'deload'
                multipliers.append(calibration.deload_multiplier)
            else:
                pattern = 'build'

        loading_streak = loading_streak + 1 if pattern == 'build' else 0

        frames.append(WeekFrame(
            index=week_index,
            days=days,
            pattern=pattern,
            pattern_multiplier=min(multipliers) if multipliers else 1.0,
            day_factors=tuple(factors),
            event_goal_ids=tuple(event_ids),
            full_week_weight=full_week_weight,
        ))

    return frames


def trailing_loading_streak(
    weekly_totals: Sequence[float],
    calibration: Calibration = DEFAULT_CALIBRATION
) -> int:
    """
    Consecutive loading weeks at the end of a realized weekly series.

    A week counts as recovery when its total drops to the detection ratio
    of the largest week in the preceding deload cycle.
    """
    streak = 0
    cycle = calibration.deload_cycle_weeks
    for i, total in enumerate(weekly_totals):
        window = weekly_totals[max(0, i - cycle):i]
        if total <= 0 or (window and total <= calibration.deload_detection_ratio * max(window)):
            streak = 0
        else:
            streak += 1
    return streak


def deload_debt_by_week(
    frames: Sequence[WeekFrame],
    initial_loading_streak: int = 0,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> List[int]:
    """Loading weeks carried into each week beyond what the deload cycle allows."""
    debts = []
    streak = initial_loading_streak
    for frame in frames:
        debts.append(max(0, streak - (calibration.deload_cycle_weeks - 1)))
        streak = streak + 1 if frame.is_loading else 0
    return debts
