"""
Goals and goal targets.

A goal target is a closed tagged variant: race performance, pace threshold,
power threshold or heart-rate threshold. Every consumer dispatches on
``target_type`` explicitly and raises on anything else.

Goal demand (the CTL a goal calls for) follows the distance/pace model:

    demand = base + scale × ln(1 + km) + min(cap, max(0, (kph - baseline) × boost))
"""

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, ClassVar, Dict, List, Tuple, Union

from core.calibration import Calibration, DEFAULT_CALIBRATION


class TargetType(Enum):
    """Goal target discriminant."""
    RACE_PERFORMANCE = 'race_performance'
    PACE_THRESHOLD = 'pace_threshold'
    POWER_THRESHOLD = 'power_threshold'
    HR_THRESHOLD = 'hr_threshold'


TARGET_TYPE_ORDER = {
    TargetType.RACE_PERFORMANCE: 0,
    TargetType.PACE_THRESHOLD: 1,
    TargetType.POWER_THRESHOLD: 2,
    TargetType.HR_THRESHOLD: 3,
}

ACTIVITIES = ('run', 'bike', 'swim', 'other')


def _require_positive(name: str, value: float) -> None:
    if value is None or not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive number, got {value!r}")


def _require_activity(activity: str) -> None:
    if activity not in ACTIVITIES:
        raise ValueError(f"Unknown activity '{activity}', expected one of {ACTIVITIES}")


@dataclass(frozen=True)
class RacePerformanceTarget:
    """Finish ``distance_m`` in ``time_s``."""
    target_type: ClassVar[TargetType] = TargetType.RACE_PERFORMANCE

    distance_m: float
    time_s: float
    activity: str = 'run'

    def __post_init__(self):
        _require_positive('distance_m', self.distance_m)
        _require_positive('time_s', self.time_s)
        _require_activity(self.activity)

    def sort_key(self) -> Tuple:
        return (self.distance_m, self.time_s, self.activity)


@dataclass(frozen=True)
class PaceThresholdTarget:
    """Hold ``target_speed_mps`` for a ``test_duration_s`` threshold test."""
    target_type: ClassVar[TargetType] = TargetType.PACE_THRESHOLD

    target_speed_mps: float
    test_duration_s: float
    activity: str = 'run'

    def __post_init__(self):
        _require_positive('target_speed_mps', self.target_speed_mps)
        _require_positive('test_duration_s', self.test_duration_s)
        _require_activity(self.activity)

    def sort_key(self) -> Tuple:
        return (self.target_speed_mps, self.test_duration_s, self.activity)


@dataclass(frozen=True)
class PowerThresholdTarget:
    """Hold ``watts`` for a ``test_duration_s`` threshold test."""
    target_type: ClassVar[TargetType] = TargetType.POWER_THRESHOLD

    watts: float
    test_duration_s: float
    activity: str = 'bike'

    def __post_init__(self):
        _require_positive('watts', self.watts)
        _require_positive('test_duration_s', self.test_duration_s)
        _require_activity(self.activity)

    def sort_key(self) -> Tuple:
        return (self.watts, self.test_duration_s, self.activity)


@dataclass(frozen=True)
class HrThresholdTarget:
    """Raise lactate-threshold heart rate to ``bpm``."""
    target_type: ClassVar[TargetType] = TargetType.HR_THRESHOLD

    bpm: float
    activity: str = 'run'

    def __post_init__(self):
        _require_positive('bpm', self.bpm)
        _require_activity(self.activity)

    def sort_key(self) -> Tuple:
        return (self.bpm, self.activity)


GoalTarget = Union[RacePerformanceTarget, PaceThresholdTarget,
                   PowerThresholdTarget, HrThresholdTarget]

TARGET_CLASSES = {
    TargetType.RACE_PERFORMANCE: RacePerformanceTarget,
    TargetType.PACE_THRESHOLD: PaceThresholdTarget,
    TargetType.POWER_THRESHOLD: PowerThresholdTarget,
    TargetType.HR_THRESHOLD: HrThresholdTarget,
}

REQUIRED_FIELDS = {
    TargetType.RACE_PERFORMANCE: ('distance_m', 'time_s'),
    TargetType.PACE_THRESHOLD: ('target_speed_mps', 'test_duration_s'),
    TargetType.POWER_THRESHOLD: ('watts', 'test_duration_s'),
    TargetType.HR_THRESHOLD: ('bpm',),
}


def target_sort_key(target: GoalTarget) -> Tuple:
    """Canonical ordering key: type order, then type-specific key."""
    return (TARGET_TYPE_ORDER[target.target_type],) + target.sort_key()


def target_to_dict(target: GoalTarget) -> Dict[str, Any]:
    d = {'target_type': target.target_type.value}
    d.update({k: v for k, v in target.__dict__.items()})
    return d


def parse_target(d: Dict[str, Any]) -> GoalTarget:
    """
    Build a goal target from its wire form.

    Raises:
        ValueError: On an unknown discriminant or a missing required field
    """
    raw_type = d.get('target_type')
    try:
        target_type = TargetType(raw_type)
    except ValueError:
        raise ValueError(f"Unknown target_type discriminant: {raw_type!r}") from None

    missing = [name for name in REQUIRED_FIELDS[target_type] if d.get(name) is None]
    if missing:
        raise ValueError(f"{target_type.value} target missing required fields: {missing}")

    cls = TARGET_CLASSES[target_type]
    kwargs = {name: float(d[name]) for name in REQUIRED_FIELDS[target_type]}
    if 'activity' in d:
        kwargs['activity'] = d['activity']
    return cls(**kwargs)


@dataclass(frozen=True)
class Goal:
    """
    A dated objective with one or more measurable targets.

    Targets are stored in canonical order so that equal goals always
    serialize identically.
    """
    id: str
    name: str
    target_date: date
    targets: Tuple[GoalTarget, ...]
    priority: int = 5

    def __post_init__(self):
        if not self.targets:
            raise ValueError(f"Goal '{self.id}' has no targets")
        for target in self.targets:
            if not isinstance(target, tuple(TARGET_CLASSES.values())):
                raise ValueError(f"Goal '{self.id}' has unsupported target {target!r}")
        object.__setattr__(self, 'targets', tuple(sorted(self.targets, key=target_sort_key)))

    @property
    def primary_target(self) -> GoalTarget:
        return self.targets[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'target_date': self.target_date.isoformat(),
            'priority': self.priority,
            'targets': [target_to_dict(t) for t in self.targets],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Goal':
        targets = d.get('targets') or []
        return cls(
            id=str(d['id']),
            name=d.get('name', str(d['id'])),
            target_date=date.fromisoformat(d['target_date']),
            targets=tuple(parse_target(t) for t in targets),
            priority=int(d.get('priority', 5)),
        )


def sort_goals(goals: List[Goal]) -> List[Goal]:
    """Goals in date order, ties broken by priority (high first) then id."""
    return sorted(goals, key=lambda g: (g.target_date, -g.priority, g.id))


# ═══════════════════════════════════════════════════════════════════════════════
# EVENT DURATION & FORM TARGETS
# ═══════════════════════════════════════════════════════════════════════════════

def target_duration_hours(
    target: GoalTarget,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """Expected duration of the event or test in hours."""
    if isinstance(target, RacePerformanceTarget):
        return target.time_s / 3600.0
    elif isinstance(target, (PaceThresholdTarget, PowerThresholdTarget)):
        return target.test_duration_s / 3600.0
    elif isinstance(target, HrThresholdTarget):
        return calibration.hr_test_duration_hours
    raise ValueError(f"Unsupported goal target: {target!r}")


def optimal_tsb(hours: float, calibration: Calibration = DEFAULT_CALIBRATION) -> float:
    """
    Target TSB on event day by event duration.

    Short events want more freshness; long events tolerate less taper.
    """
    for upper, tsb in calibration.optimal_tsb_buckets:
        if hours < upper:
            return tsb
    return calibration.optimal_tsb_default


# ═══════════════════════════════════════════════════════════════════════════════
# GOAL DEMAND
# ═══════════════════════════════════════════════════════════════════════════════

def pace_baseline_kph(activity: str, distance_km: float) -> float:
    """Reference race speed for an activity/distance tier."""
    if activity == 'run':
        if distance_km < 10:
            return 12.0
        elif distance_km < 25:
            return 10.0
        elif distance_km < 50:
            return 9.0
        return 8.0
    elif activity == 'bike':
        if distance_km < 40:
            return 32.0
        elif distance_km < 100:
            return 30.0
        return 28.0
    elif activity == 'swim':
        return 3.5 if distance_km < 2 else 3.0
    return 10.0


def target_demand_ctl(
    target: GoalTarget,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """CTL a single target calls for on its date."""
    if isinstance(target, RacePerformanceTarget):
        km = target.distance_m / 1000.0
        kph = km / (target.time_s / 3600.0)
        boost = (kph - pace_baseline_kph(target.activity, km)) * calibration.demand_pace_boost_per_kph
        boost = min(calibration.demand_pace_boost_cap, max(0.0, boost))
        return calibration.demand_base_ctl + calibration.demand_distance_scale * math.log1p(km) + boost
    elif isinstance(target, PaceThresholdTarget):
        return calibration.demand_pace_threshold_ctl
    elif isinstance(target, PowerThresholdTarget):
        return calibration.demand_power_threshold_ctl
    elif isinstance(target, HrThresholdTarget):
        return calibration.demand_hr_threshold_ctl
    raise ValueError(f"Unsupported goal target: {target!r}")


def goal_demand_ctl(goal: Goal, calibration: Calibration = DEFAULT_CALIBRATION) -> float:
    """
    CTL demand for a goal.

    Single-target goals use the target's demand; multi-target goals blend
    the hardest target with the mean so secondary targets still count.
    """
    demands = [target_demand_ctl(t, calibration) for t in goal.targets]
    if len(demands) == 1:
        return demands[0]
    w = calibration.demand_max_weight
    return w * max(demands) + (1 - w) * (sum(demands) / len(demands))


def goal_duration_hours(goal: Goal, calibration: Calibration = DEFAULT_CALIBRATION) -> float:
    """Duration of the longest target of a goal."""
    return max(target_duration_hours(t, calibration) for t in goal.targets)


def no_history_ctl_prior(demand_ctl: float, calibration: Calibration = DEFAULT_CALIBRATION) -> float:
    """Starting CTL assumed when nothing about the athlete is known."""
    for upper, prior in calibration.no_history_ctl_priors:
        if demand_ctl < upper:
            return prior
    return calibration.no_history_ctl_prior_max
