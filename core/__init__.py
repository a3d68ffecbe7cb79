"""
Core computations for training-load projection and readiness.

This package provides:
- Load state simulation (CTL / ATL / TSB)
- Goals, goal targets and goal demand
- Event recovery profiles and post-event fatigue
- Capacity envelope and readiness composite scoring
- Peak windows, goal conflicts and readiness smoothing
- Plan timeline (microcycles, patterns, recovery segments)
"""

# Calibration
from .calibration import (
    Calibration,
    DEFAULT_CALIBRATION,
    load_calibration,
)

# Load state
from .load_state import (
    LoadState,
    AthleteHistory,
    advance_state,
    simulate_load_states,
    daily_tss_from_mapping,
    derive_state_from_history,
)

# Metrics
from .metrics import (
    calculate_ewma,
    calculate_acwr,
    classify_acwr_zone,
    calculate_monotony,
    calculate_strain,
)

# Goals
from .goals import (
    TargetType,
    RacePerformanceTarget,
    PaceThresholdTarget,
    PowerThresholdTarget,
    HrThresholdTarget,
    Goal,
    parse_target,
    goal_demand_ctl,
)

# Event recovery
from .recovery import (
    EventRecoveryProfile,
    EventGoal,
    compute_event_recovery_profile,
    compute_goal_recovery_profile,
    compute_post_event_fatigue_penalty,
    compute_event_load,
)

# Envelope
from .envelope import (
    CapacityEnvelope,
    EnvelopeAssessment,
    derive_capacity_envelope,
    assess_week,
    compute_envelope_score,
)

# Readiness
from .readiness import (
    ReadinessComposite,
    compute_attainment,
    compute_durability,
    assess_evidence,
    compose_readiness,
)

# Peaks and conflicts
from .peaks import (
    PeakWindow,
    GoalConflict,
    compute_peak_window,
    detect_goal_conflicts,
    smooth_readiness,
    anchor_goal_peaks,
    apply_readiness_ceiling,
)

# Feasibility
from .feasibility import (
    GoalFeasibility,
    ProjectionFeasibility,
    classify_build_time,
    assess_goal_feasibility,
    compute_projection_feasibility,
)

# Plan inputs
from .plan import (
    OptimizationProfile,
    PlanConstraints,
    CreationConfig,
    MinimalPlanDefinition,
    StartingState,
    normalize_constraints,
)

__all__ = [
    # Calibration
    'Calibration',
    'DEFAULT_CALIBRATION',
    'load_calibration',
    # Load state
    'LoadState',
    'AthleteHistory',
    'advance_state',
    'simulate_load_states',
    'daily_tss_from_mapping',
    'derive_state_from_history',
    # Metrics
    'calculate_ewma',
    'calculate_acwr',
    'classify_acwr_zone',
    'calculate_monotony',
    'calculate_strain',
    # Goals
    'TargetType',
    'RacePerformanceTarget',
    'PaceThresholdTarget',
    'PowerThresholdTarget',
    'HrThresholdTarget',
    'Goal',
    'parse_target',
    'goal_demand_ctl',
    # Recovery
    'EventRecoveryProfile',
    'EventGoal',
    'compute_event_recovery_profile',
    'compute_goal_recovery_profile',
    'compute_post_event_fatigue_penalty',
    'compute_event_load',
    # Envelope
    'CapacityEnvelope',
    'EnvelopeAssessment',
    'derive_capacity_envelope',
    'assess_week',
    'compute_envelope_score',
    # Readiness
    'ReadinessComposite',
    'compute_attainment',
    'compute_durability',
    'assess_evidence',
    'compose_readiness',
    # Peaks
    'PeakWindow',
    'GoalConflict',
    'compute_peak_window',
    'detect_goal_conflicts',
    'smooth_readiness',
    'anchor_goal_peaks',
    'apply_readiness_ceiling',
    # Feasibility
    'GoalFeasibility',
    'ProjectionFeasibility',
    'classify_build_time',
    'assess_goal_feasibility',
    'compute_projection_feasibility',
    # Plan
    'OptimizationProfile',
    'PlanConstraints',
    'CreationConfig',
    'MinimalPlanDefinition',
    'StartingState',
    'normalize_constraints',
]
