"""Weekly load allocation: bounded candidate search and its objective."""

from .objective import ObjectiveWeights, candidate_score, weights_for_profile
from .search import (
    AllocatorSettings,
    AllocationResult,
    WeekAllocation,
    allocate_weekly_load,
    compose_week_one_seed,
    max_base_for_ctl_ramp,
)

__all__ = [
    'ObjectiveWeights',
    'candidate_score',
    'weights_for_profile',
    'AllocatorSettings',
    'AllocationResult',
    'WeekAllocation',
    'allocate_weekly_load',
    'compose_week_one_seed',
    'max_base_for_ctl_ramp',
]
