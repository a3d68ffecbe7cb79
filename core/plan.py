"""
Plan inputs: plan definition, creation config, constraints and profiles.

Inputs arrive already validated and normalized from the plan-creation
layer. Constraint fields left unset fall back to the optimization
profile's defaults and every value is clamped to its hard bounds.
"""

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.goals import Goal, sort_goals


class OptimizationProfile(Enum):
    """How aggressively the allocator trades risk for preparedness."""
    SUSTAINABLE = 'sustainable'
    BALANCED = 'balanced'
    OUTCOME_FIRST = 'outcome_first'


@dataclass(frozen=True)
class ProfileDefaults:
    """Default constraints and search bounds of an optimization profile."""
    post_goal_recovery_days: int
    max_weekly_tss_ramp_pct: float
    max_ctl_ramp_per_week: float
    min_recovery_days_per_cycle: int
    lookahead_weeks: int
    candidate_steps: int


PROFILE_DEFAULTS = {
    OptimizationProfile.OUTCOME_FIRST: ProfileDefaults(3, 10.0, 5.0, 1, 8, 9),
    OptimizationProfile.BALANCED: ProfileDefaults(5, 7.0, 3.0, 1, 6, 7),
    OptimizationProfile.SUSTAINABLE: ProfileDefaults(7, 5.0, 2.0, 2, 4, 5),
}

# (low, high) hard bounds for each constraint
CONSTRAINT_BOUNDS = {
    'max_weekly_tss_ramp_pct': (0.0, 20.0),
    'max_ctl_ramp_per_week': (0.0, 8.0),
    'min_recovery_days_per_cycle': (0, 3),
    'post_goal_recovery_days': (0, 28),
}


@dataclass(frozen=True)
class PlanConstraints:
    """Safety constraints; None means "use the profile default"."""
    max_weekly_tss_ramp_pct: Optional[float] = None
    max_ctl_ramp_per_week: Optional[float] = None
    min_recovery_days_per_cycle: Optional[int] = None
    post_goal_recovery_days: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_weekly_tss_ramp_pct': self.max_weekly_tss_ramp_pct,
            'max_ctl_ramp_per_week': self.max_ctl_ramp_per_week,
            'min_recovery_days_per_cycle': self.min_recovery_days_per_cycle,
            'post_goal_recovery_days': self.post_goal_recovery_days,
        }


@dataclass(frozen=True)
class CreationConfig:
    """Caller-supplied plan creation settings."""
    optimization_profile: OptimizationProfile = OptimizationProfile.BALANCED
    constraints: PlanConstraints = PlanConstraints()
    starting_ctl_override: Optional[float] = None
    readiness_ceiling: Optional[float] = None

    def __post_init__(self):
        if self.starting_ctl_override is not None and self.starting_ctl_override < 0:
            raise ValueError(f"starting_ctl_override must be >= 0, got {self.starting_ctl_override}")


@dataclass(frozen=True)
class MinimalPlanDefinition:
    """Plan start date and its dated goals."""
    plan_start_date: date
    goals: Tuple[Goal, ...]

    def __post_init__(self):
        object.__setattr__(self, 'goals', tuple(sort_goals(list(self.goals))))

    @property
    def last_goal_date(self) -> date:
        return self.goals[-1].target_date


@dataclass(frozen=True)
class StartingState:
    """Explicit CTL/ATL carried into the first plan day."""
    ctl: float
    atl: float

    def __post_init__(self):
        if self.ctl < 0 or self.atl < 0:
            raise ValueError(f"Starting state must be non-negative (ctl={self.ctl}, atl={self.atl})")


def _clamp(name: str, value: float) -> float:
    low, high = CONSTRAINT_BOUNDS[name]
    return min(high, max(low, value))


def normalize_constraints(config: CreationConfig) -> PlanConstraints:
    """
    Resolve every constraint to a concrete, bounded value.

    Returns:
        PlanConstraints with no None fields
    """
    defaults = PROFILE_DEFAULTS[config.optimization_profile]
    c = config.constraints

    def pick(name: str):
        value = getattr(c, name)
        return getattr(defaults, name) if value is None else value

    return replace(
        c,
        max_weekly_tss_ramp_pct=float(_clamp('max_weekly_tss_ramp_pct', pick('max_weekly_tss_ramp_pct'))),
        max_ctl_ramp_per_week=float(_clamp('max_ctl_ramp_per_week', pick('max_ctl_ramp_per_week'))),
        min_recovery_days_per_cycle=int(_clamp('min_recovery_days_per_cycle', pick('min_recovery_days_per_cycle'))),
        post_goal_recovery_days=int(_clamp('post_goal_recovery_days', pick('post_goal_recovery_days'))),
    )


def plan_from_dict(d: Dict[str, Any]) -> MinimalPlanDefinition:
    """Build a plan definition from its wire form."""
    goals: List[Goal] = [Goal.from_dict(g) for g in d.get('goals', [])]
    return MinimalPlanDefinition(
        plan_start_date=date.fromisoformat(d['plan_start_date']),
        goals=tuple(goals),
    )


def config_from_dict(d: Dict[str, Any]) -> CreationConfig:
    """Build a creation config from its wire form."""
    constraints = d.get('constraints') or {}
    return CreationConfig(
        optimization_profile=OptimizationProfile(d.get('optimization_profile', 'balanced')),
        constraints=PlanConstraints(
            max_weekly_tss_ramp_pct=constraints.get('max_weekly_tss_ramp_pct'),
            max_ctl_ramp_per_week=constraints.get('max_ctl_ramp_per_week'),
            min_recovery_days_per_cycle=constraints.get('min_recovery_days_per_cycle'),
            post_goal_recovery_days=constraints.get('post_goal_recovery_days'),
        ),
        starting_ctl_override=d.get('starting_ctl_override'),
        readiness_ceiling=d.get('readiness_ceiling'),
    )
