"""
Calibration: versioned constants for load projection and readiness scoring.

Every tuned number used by the engine lives on a single immutable
``Calibration`` value that is passed explicitly into each computation.
Golden tests pin their expected output to ``Calibration.version``.

Based on:
- Banister impulse-response model (CTL/ATL time constants 42/7 days)
- Foster (1998): monotony and strain thresholds
- Coggan: TSB form targets by event duration
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Dict, Any, Tuple


CALIBRATION_VERSION = "2026.1"


@dataclass(frozen=True)
class Calibration:
    """
    Tunable constants for the projection engine.

    Ratios are decimals (0.75 = 75%), ramp limits are percentages,
    durations are days unless the name says otherwise.
    """

    version: str = CALIBRATION_VERSION

    # ═══════════════════════════════════════════════════════════════════════════
    # LOAD STATE (impulse-response time constants)
    # ═══════════════════════════════════════════════════════════════════════════

    ctl_time_constant: int = 42    # α_c = 2 / (42 + 1)
    atl_time_constant: int = 7     # α_a = 2 / (7 + 1)

    # ═══════════════════════════════════════════════════════════════════════════
    # EVENT RECOVERY
    # ═══════════════════════════════════════════════════════════════════════════

    race_days_per_hour: float = 3.5
    race_min_base_days: float = 2.0
    race_max_base_days: float = 28.0
    # (hours above, intensity) checked longest first
    race_intensity_buckets: Tuple[Tuple[float, float], ...] = (
        (24.0, 70.0), (12.0, 75.0), (6.0, 80.0), (3.0, 85.0), (1.0, 90.0),
    )
    race_default_intensity: float = 95.0
    activity_intensity_factors: Dict[str, float] = field(default_factory=lambda: {
        'run': 1.0, 'bike': 0.9, 'swim': 0.95, 'other': 0.85,
    })
    full_recovery_base: float = 0.7
    full_recovery_intensity_weight: float = 0.3
    functional_recovery_ratio: float = 0.4
    atl_spike_per_hour: float = 0.15
    atl_spike_cap: float = 2.5
    overload_extension_cap: float = 0.25

    threshold_test_base_days: float = 3.0
    threshold_test_days_per_hour: float = 2.0
    threshold_test_functional_ratio: float = 0.35
    threshold_test_intensity: float = 75.0
    threshold_test_spike: float = 1.2
    threshold_test_min_full_days: int = 3
    threshold_test_max_full_days: int = 5

    hr_test_full_days: int = 3
    hr_test_functional_days: int = 1
    hr_test_intensity: float = 65.0
    hr_test_spike: float = 1.1
    hr_test_duration_hours: float = 1.0
    event_min_reference_atl: float = 10.0

    # ═══════════════════════════════════════════════════════════════════════════
    # POST-EVENT FATIGUE PENALTY
    # ═══════════════════════════════════════════════════════════════════════════

    penalty_intensity_weight: float = 0.5
    penalty_overload_scale: float = 30.0
    penalty_cap: float = 60.0
    half_life_divisor: float = 3.0

    # ═══════════════════════════════════════════════════════════════════════════
    # GOAL DEMAND
    # ═══════════════════════════════════════════════════════════════════════════

    demand_base_ctl: float = 20.0
    demand_distance_scale: float = 11.0
    demand_pace_boost_per_kph: float = 2.8
    demand_pace_boost_cap: float = 20.0
    demand_pace_threshold_ctl: float = 50.0
    demand_power_threshold_ctl: float = 54.0
    demand_hr_threshold_ctl: float = 46.0
    demand_max_weight: float = 0.7
    infeasible_demand_ratio: float = 0.85
    # (demand below, starting CTL prior) when no history is available
    no_history_ctl_priors: Tuple[Tuple[float, float], ...] = (
        (45.0, 20.0), (60.0, 28.0),
    )
    no_history_ctl_prior_max: float = 35.0

    # ═══════════════════════════════════════════════════════════════════════════
    # PEAK WINDOWS & SMOOTHING
    # ═══════════════════════════════════════════════════════════════════════════

    taper_base_days: float = 5.0
    taper_intensity_days: float = 3.0
    peak_recovery_ratio: float = 0.6
    smoothing_max_step: float = 5.0

    # ═══════════════════════════════════════════════════════════════════════════
    # READINESS COMPOSITE
    # ═══════════════════════════════════════════════════════════════════════════

    weight_attainment: float = 0.45
    weight_envelope: float = 0.30
    weight_durability: float = 0.15
    weight_evidence: float = 0.10

    attainment_fitness_weight: float = 0.75
    attainment_form_weight: float = 0.15
    attainment_freshness_weight: float = 0.10
    form_tolerance: float = 25.0
    freshness_ctl_ratio: float = 0.4
    # (hours below, optimal TSB)
    optimal_tsb_buckets: Tuple[Tuple[float, float], ...] = (
        (0.5, 15.0), (1.5, 12.0), (3.0, 8.0), (5.0, 5.0),
    )
    optimal_tsb_default: float = 3.0

    monotony_threshold: float = 2.0
    monotony_penalty_span: float = 1.5
    monotony_penalty_max: float = 40.0
    monotony_cap: float = 4.0
    strain_threshold_ratio: float = 2.5
    strain_penalty_max: float = 30.0
    deload_debt_penalty_per_week: float = 10.0
    deload_debt_penalty_max: float = 30.0

    evidence_base: Dict[str, float] = field(default_factory=lambda: {
        'none': 0.2, 'sparse': 0.45, 'stale': 0.35, 'rich': 0.8,
    })
    evidence_floor: Dict[str, float] = field(default_factory=lambda: {
        'none': 0.35, 'sparse': 0.30, 'stale': 0.25, 'rich': 0.5,
    })
    evidence_default_quality: float = 0.4
    evidence_stale_after_days: int = 14
    evidence_rich_min_days: int = 28
    evidence_rich_min_coverage: float = 0.5
    evidence_window_days: int = 42
    confidence_horizon_days: float = 365.0
    confidence_min_ratio: float = 0.5
    low_confidence_threshold: float = 0.5

    # ═══════════════════════════════════════════════════════════════════════════
    # CAPACITY ENVELOPE
    # ═══════════════════════════════════════════════════════════════════════════

    envelope_low_ratio: float = 0.75
    envelope_high_ratio: float = 1.25
    envelope_min_safe_high: float = 150.0
    envelope_ramp_limit_base: float = 10.0
    envelope_ramp_limit_bonus: float = 5.0
    envelope_weight_over_high: float = 1.0
    envelope_weight_under_low: float = 0.5
    envelope_weight_over_ramp: float = 0.75
    envelope_inside_tolerance: float = 0.005
    envelope_edge_threshold: float = 0.15
    envelope_window_weeks: int = 4
    envelope_history_weeks: int = 4

    # ═══════════════════════════════════════════════════════════════════════════
    # WEEKLY ALLOCATION
    # ═══════════════════════════════════════════════════════════════════════════

    # Relative day weights of a 7-day microcycle; lowest weights become rest days
    day_weights: Tuple[float, ...] = (1.0, 1.3, 0.7, 1.2, 0.6, 1.8, 0.4)
    deload_cycle_weeks: int = 4
    deload_multiplier: float = 0.9
    deload_detection_ratio: float = 0.85
    taper_near_multiplier: float = 0.70
    taper_far_multiplier: float = 0.85
    event_week_multiplier: float = 0.62
    recovery_week_multiplier: float = 0.75
    recovery_day_factor: float = 0.3
    ctl_ramp_bisection_steps: int = 20
    seed_prior_week_weight: float = 0.6
    seed_block_midpoint_weight: float = 0.25
    seed_demand_floor_weight: float = 0.15
    acwr_zone_risk: Dict[str, float] = field(default_factory=lambda: {
        'low': 0.0, 'optimal': 0.0, 'caution': 0.25, 'danger': 0.6, 'critical': 1.0,
    })

    @property
    def ctl_alpha(self) -> float:
        return 2.0 / (self.ctl_time_constant + 1.0)

    @property
    def atl_alpha(self) -> float:
        return 2.0 / (self.atl_time_constant + 1.0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, tuple):
                d[key] = [list(v) if isinstance(v, tuple) else v for v in value]
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Calibration':
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in d.items():
            if key not in known:
                continue
            if isinstance(value, list):
                value = tuple(tuple(v) if isinstance(v, list) else v for v in value)
            kwargs[key] = value
        return cls(**kwargs)

    def validate(self) -> Tuple[bool, str]:
        """
        Validate constant consistency.

        Returns:
            Tuple of (is_valid, error_message)
        """
        composite = (self.weight_attainment + self.weight_envelope +
                     self.weight_durability + self.weight_evidence)
        if abs(composite - 1.0) > 1e-6:
            return False, f"Composite weights must sum to 1.0, got {composite:.4f}"

        attainment = (self.attainment_fitness_weight + self.attainment_form_weight +
                      self.attainment_freshness_weight)
        if abs(attainment - 1.0) > 1e-6:
            return False, f"Attainment weights must sum to 1.0, got {attainment:.4f}"

        if self.ctl_time_constant <= self.atl_time_constant:
            return False, "CTL time constant must exceed ATL time constant"

        if not (0 < self.envelope_low_ratio <= 1.0 <= self.envelope_high_ratio):
            return False, "Envelope ratios must satisfy 0 < low <= 1 <= high"

        if self.atl_spike_cap < 1.0:
            return False, f"ATL spike cap must be >= 1.0, got {self.atl_spike_cap}"

        if len(self.day_weights) != 7 or any(w < 0 for w in self.day_weights):
            return False, "day_weights must hold 7 non-negative values"

        if self.smoothing_max_step <= 0:
            return False, "smoothing_max_step must be positive"

        for name, (low, high) in PARAM_BOUNDS.items():
            value = getattr(self, name)
            if not (low <= value <= high):
                return False, f"{name}={value} outside bounds [{low}, {high}]"

        return True, "Valid"


DEFAULT_CALIBRATION = Calibration()


# Bounds for scalar constants that may be overridden from a calibration file
PARAM_BOUNDS = {
    'penalty_cap': (0.0, 100.0),
    'penalty_overload_scale': (0.0, 100.0),
    'smoothing_max_step': (0.5, 25.0),
    'form_tolerance': (5.0, 60.0),
    'monotony_threshold': (1.0, 4.0),
    'monotony_cap': (2.0, 10.0),
    'strain_threshold_ratio': (1.0, 6.0),
    'envelope_edge_threshold': (0.01, 1.0),
    'deload_cycle_weeks': (2, 8),
    'deload_multiplier': (0.5, 1.0),
    'event_week_multiplier': (0.3, 1.0),
    'recovery_day_factor': (0.0, 1.0),
    'infeasible_demand_ratio': (0.5, 1.0),
}


def load_calibration(d: Dict[str, Any]) -> Calibration:
    """
    Build and validate a calibration from a mapping.

    Raises:
        ValueError: If the resulting constants are inconsistent
    """
    calibration = Calibration.from_dict(d)
    is_valid, message = calibration.validate()
    if not is_valid:
        raise ValueError(f"Invalid calibration {calibration.version}: {message}")
    return calibration
