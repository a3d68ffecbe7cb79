"""
Synthetic goal scenarios for property tests and demos.

Generates valid plan inputs with:
- Varied goal mixes (single races, back-to-back races, race + test, ultras)
- Varied optimization profiles and constraint overrides
- Optional realized history with missed sessions and stale gaps
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from core.goals import (
    Goal, HrThresholdTarget, PaceThresholdTarget, PowerThresholdTarget,
    RacePerformanceTarget,
)
from core.load_state import AthleteHistory
from core.plan import (
    CreationConfig, MinimalPlanDefinition, OptimizationProfile, PlanConstraints,
    StartingState,
)


@dataclass(frozen=True)
class GoalScenario:
    """Complete input set for one projection."""
    id: str
    name: str
    plan: MinimalPlanDefinition
    config: CreationConfig
    starting_state: Optional[StartingState] = None
    history: Optional[AthleteHistory] = None

    def to_dict(self) -> Dict[str, object]:
        """Wire form accepted by ``main.py preview``."""
        d = {
            'id': self.id,
            'name': self.name,
            'plan_start_date': self.plan.plan_start_date.isoformat(),
            'goals': [g.to_dict() for g in self.plan.goals],
            'config': {
                'optimization_profile': self.config.optimization_profile.value,
                'constraints': self.config.constraints.to_dict(),
                'starting_ctl_override': self.config.starting_ctl_override,
                'readiness_ceiling': self.config.readiness_ceiling,
            },
        }
        if self.starting_state is not None:
            d['starting_state'] = {'ctl': self.starting_state.ctl, 'atl': self.starting_state.atl}
        return d


# ═══════════════════════════════════════════════════════════════════════════════
# GOAL BUILDERS
# ═══════════════════════════════════════════════════════════════════════════════

# (distance_m, (fast_s, slow_s)) per race class
RACE_CLASSES = {
    '5k': (5000.0, (1050.0, 1800.0)),
    '10k': (10000.0, (2200.0, 3900.0)),
    'half': (21097.5, (4800.0, 8400.0)),
    'marathon': (42195.0, (10200.0, 18000.0)),
    '50k': (50000.0, (14400.0, 25200.0)),
    '100mi': (160934.0, (72000.0, 108000.0)),
}


def marathon_goal(goal_id: str, target_date: date, time_s: float = 12600.0, priority: int = 5) -> Goal:
    """Run marathon goal (3:30 by default)."""
    return Goal(goal_id, f"Marathon {target_date.isoformat()}", target_date,
                (RacePerformanceTarget(42195.0, time_s),), priority)


def five_k_goal(goal_id: str, target_date: date, time_s: float = 1200.0, priority: int = 5) -> Goal:
    """Run 5K goal (20:00 by default)."""
    return Goal(goal_id, f"5K {target_date.isoformat()}", target_date,
                (RacePerformanceTarget(5000.0, time_s),), priority)


def _random_race(rng: np.random.RandomState, race_class: str, activity: str = 'run') -> RacePerformanceTarget:
    distance, (fast, slow) = RACE_CLASSES[race_class]
    return RacePerformanceTarget(distance, float(round(rng.uniform(fast, slow))), activity)


def _random_test(rng: np.random.RandomState):
    kind = rng.randint(3)
    if kind == 0:
        return PaceThresholdTarget(float(round(rng.uniform(3.2, 5.0), 2)), float(rng.choice([1200, 1800, 3600])))
    elif kind == 1:
        return PowerThresholdTarget(float(round(rng.uniform(180, 320))), float(rng.choice([1200, 3600])))
    return HrThresholdTarget(float(round(rng.uniform(150, 175))))


# ═══════════════════════════════════════════════════════════════════════════════
# SCENARIO ARCHETYPES
# ═══════════════════════════════════════════════════════════════════════════════

def create_single_race(rng: np.random.RandomState, start: date, idx: int) -> Tuple[Goal, ...]:
    """One race 6-20 weeks out."""
    race_class = str(rng.choice(['5k', '10k', 'half', 'marathon']))
    target_date = start + timedelta(days=int(rng.randint(42, 141)))
    return (Goal(f"race_{idx}", race_class, target_date, (_random_race(rng, race_class),)),)


def create_back_to_back(rng: np.random.RandomState, start: date, idx: int) -> Tuple[Goal, ...]:
    """Two races 0-4 days apart."""
    first = start + timedelta(days=int(rng.randint(56, 113)))
    second = first + timedelta(days=int(rng.randint(0, 5)))
    return (
        Goal(f"b2b_a_{idx}", 'marathon', first, (_random_race(rng, 'marathon'),)),
        Goal(f"b2b_b_{idx}", 'half', second, (_random_race(rng, 'half'),)),
    )


def create_race_then_test(rng: np.random.RandomState, start: date, idx: int) -> Tuple[Goal, ...]:
    """A threshold test block followed by a race."""
    test_date = start + timedelta(days=int(rng.randint(21, 50)))
    race_date = test_date + timedelta(days=int(rng.randint(14, 70)))
    return (
        Goal(f"test_{idx}", 'threshold test', test_date, (_random_test(rng),), priority=3),
        Goal(f"race_{idx}", '10k', race_date, (_random_race(rng, '10k'),), priority=7),
    )


def create_ultra(rng: np.random.RandomState, start: date, idx: int) -> Tuple[Goal, ...]:
    """A long ultra with a tune-up race."""
    ultra_class = str(rng.choice(['50k', '100mi']))
    ultra_date = start + timedelta(days=int(rng.randint(98, 169)))
    tune_up = ultra_date - timedelta(days=int(rng.randint(21, 43)))
    return (
        Goal(f"tuneup_{idx}", 'marathon', tune_up, (_random_race(rng, 'marathon'),), priority=4),
        Goal(f"ultra_{idx}", ultra_class, ultra_date, (_random_race(rng, ultra_class),), priority=9),
    )


def create_multi_target(rng: np.random.RandomState, start: date, idx: int) -> Tuple[Goal, ...]:
    """One goal carrying a race and a threshold target."""
    target_date = start + timedelta(days=int(rng.randint(35, 120)))
    activity = str(rng.choice(['run', 'bike']))
    race_class = 'half' if activity == 'run' else '10k'
    return (Goal(f"multi_{idx}", 'multi-target', target_date,
                 (_random_test(rng), _random_race(rng, race_class, activity))),)


ARCHETYPE_CREATORS: List[Tuple[Callable, int]] = [
    (create_single_race, 3),
    (create_back_to_back, 2),
    (create_race_then_test, 2),
    (create_ultra, 1),
    (create_multi_target, 2),
]


def generate_history(
    rng: np.random.RandomState,
    end_date: date,
    weeks: int,
    weekly_load: float,
    compliance: float = 0.85,
    stale_days: int = 0
) -> AthleteHistory:
    """
    Realized daily load with missed sessions.

    Args:
        rng: Random state
        end_date: Last history day
        weeks: Length in weeks
        weekly_load: Typical weekly TSS
        compliance: Probability a planned session happened
        stale_days: Trailing days with nothing recorded

    Returns:
        AthleteHistory with None on missed days
    """
    days = []
    for i in range(weeks * 7):
        if i % 7 in (2, 6) or rng.random_sample() > compliance:
            days.append(None)
        else:
            days.append(float(round(weekly_load / 5 * rng.uniform(0.7, 1.3), 1)))
    for i in range(min(stale_days, len(days))):
        days[-1 - i] = None
    return AthleteHistory(end_date=end_date, daily_tss=tuple(days))


def generate_goal_scenarios(
    n_scenarios: int = 20,
    seed: Optional[int] = None
) -> List[GoalScenario]:
    """
    Generate diverse valid projection inputs.

    Args:
        n_scenarios: Number of scenarios to generate
        seed: Random seed for reproducibility

    Returns:
        List of GoalScenario objects
    """
    rng = np.random.RandomState(seed)
    profiles = list(OptimizationProfile)
    scenarios = []

    creators = [creator for creator, count in ARCHETYPE_CREATORS for _ in range(count)]
    while len(scenarios) < n_scenarios:
        idx = len(scenarios) + 1
        creator = creators[(idx - 1) % len(creators)] if idx <= len(creators) else \
            ARCHETYPE_CREATORS[rng.randint(len(ARCHETYPE_CREATORS))][0]

        start = date(2025, 1, 6) + timedelta(days=int(rng.randint(0, 365)))
        goals = creator(rng, start, idx)

        constraints = PlanConstraints()
        if rng.random_sample() < 0.4:
            constraints = PlanConstraints(
                max_weekly_tss_ramp_pct=float(round(rng.uniform(0, 20), 1)),
                max_ctl_ramp_per_week=float(round(rng.uniform(0, 8), 1)),
                min_recovery_days_per_cycle=int(rng.randint(0, 4)),
                post_goal_recovery_days=int(rng.randint(0, 15)),
            )
        config = CreationConfig(
            optimization_profile=profiles[rng.randint(len(profiles))],
            constraints=constraints,
            starting_ctl_override=float(round(rng.uniform(10, 80), 1)) if rng.random_sample() < 0.15 else None,
            readiness_ceiling=float(round(rng.uniform(60, 100))) if rng.random_sample() < 0.2 else None,
        )

        starting_state = None
        history = None
        source = rng.randint(3)
        if source == 0:
            ctl = float(round(rng.uniform(0, 90), 1))
            starting_state = StartingState(ctl, float(round(ctl * rng.uniform(0.6, 1.5), 1)))
        elif source == 1:
            history = generate_history(rng, start - timedelta(days=1), int(rng.randint(1, 13)),
                                       float(rng.uniform(150, 600)), float(rng.uniform(0.5, 1.0)),
                                       int(rng.choice([0, 0, 20])))

        scenarios.append(GoalScenario(
            id=f"scenario_{idx}",
            name=creator.__doc__.strip() if creator.__doc__ else creator.__name__,
            plan=MinimalPlanDefinition(start, goals),
            config=config,
            starting_state=starting_state,
            history=history,
        ))

    return scenarios


# ═══════════════════════════════════════════════════════════════════════════════
# REFERENCE SCENARIOS
# ═══════════════════════════════════════════════════════════════════════════════

REFERENCE_START = date(2025, 12, 20)
REFERENCE_STATE = StartingState(ctl=40.0, atl=38.0)


def reference_scenario(number: int) -> GoalScenario:
    """
    Fixed demo scenarios on a 12-week build from CTL 40 / ATL 38.

        1  single marathon on 2026-03-14
        2  marathons on 2026-03-14 and 2026-03-15
        3  marathon on 2026-03-14, 5K on 2026-03-17
    """
    marathon = marathon_goal('marathon', date(2026, 3, 14))
    if number == 1:
        goals = (marathon,)
        name = 'Single marathon'
    elif number == 2:
        goals = (marathon, marathon_goal('marathon_2', date(2026, 3, 15)))
        name = 'Back-to-back marathons'
    elif number == 3:
        goals = (marathon, five_k_goal('5k', date(2026, 3, 17)))
        name = 'Marathon then 5K'
    else:
        raise ValueError(f"Unknown reference scenario {number}, expected 1-3")

    return GoalScenario(
        id=f"reference_{number}",
        name=name,
        plan=MinimalPlanDefinition(REFERENCE_START, goals),
        config=CreationConfig(),
        starting_state=REFERENCE_STATE,
    )
