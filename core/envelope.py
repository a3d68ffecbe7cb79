"""
Capacity Envelope Model: sustainable weekly load band and ramp limit.

Per week:
    center    = max(CTL × 7, mean of recent realized weeks)
    safe_high = max(center × 1.25, minimum band)
    safe_low  = min(center × 0.75 × structural factor, safe_high)

The structural factor is the planned shaping of the week (taper, event,
recovery days) so that an intentionally light week does not read as
detraining. The envelope is derived, never user-settable.

Week penalty:
    a × over_high / safe_high + b × under_low / safe_low + c × over_ramp / ramp_limit
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Sequence, Tuple

import numpy as np

from core.calibration import Calibration, DEFAULT_CALIBRATION


ENVELOPE_STATES = ('inside', 'edge', 'outside')


@dataclass(frozen=True)
class CapacityEnvelope:
    """Sustainable load band for one week."""
    week_index: int
    week_start: date
    safe_low: float
    safe_high: float
    ramp_limit_pct: float

    def __post_init__(self):
        if self.safe_low > self.safe_high:
            raise ValueError(
                f"Envelope week {self.week_index}: safe_low {self.safe_low:.1f} "
                f"exceeds safe_high {self.safe_high:.1f}"
            )

    @property
    def midpoint(self) -> float:
        return (self.safe_low + self.safe_high) / 2.0

    def to_dict(self) -> Dict[str, object]:
        return {
            'week_index': self.week_index,
            'week_start': self.week_start.isoformat(),
            'safe_low': round(self.safe_low, 1),
            'safe_high': round(self.safe_high, 1),
            'ramp_limit_pct': round(self.ramp_limit_pct, 2),
        }


@dataclass(frozen=True)
class EnvelopeAssessment:
    """How a planned week sits against its envelope."""
    penalty: float
    state: str
    limiting_factors: Tuple[str, ...]
    ramp_pct: float


def derive_capacity_envelope(
    week_index: int,
    week_start: date,
    ctl: float,
    history_weekly: Sequence[float] = (),
    structural_factor: float = 1.0,
    evidence_coverage: float = 0.0,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> CapacityEnvelope:
    """
    Derive the envelope for one week.

    Args:
        week_index: Index of the week in the plan
        week_start: First day of the week
        ctl: CTL carried into the week
        history_weekly: Realized weekly totals before the plan, oldest first
        structural_factor: Planned load shaping of this week (1.0 = normal)
        evidence_coverage: Fraction of recent days with recorded training
        calibration: Calibration constants

    Returns:
        CapacityEnvelope
    """
    if ctl < 0:
        raise ValueError(f"CTL must be non-negative, got {ctl}")

    center = ctl * 7.0
    recent = list(history_weekly)[-calibration.envelope_history_weeks:]
    if recent:
        center = max(center, float(np.mean(recent)))

    safe_high = max(center * calibration.envelope_high_ratio, calibration.envelope_min_safe_high)
    safe_low = min(center * calibration.envelope_low_ratio * max(0.0, structural_factor), safe_high)

    coverage = float(np.clip(evidence_coverage, 0.0, 1.0))
    ramp_limit = calibration.envelope_ramp_limit_base + calibration.envelope_ramp_limit_bonus * coverage

    return CapacityEnvelope(
        week_index=week_index,
        week_start=week_start,
        safe_low=safe_low,
        safe_high=safe_high,
        ramp_limit_pct=ramp_limit,
    )


def classify_envelope_state(penalty: float, calibration: Calibration = DEFAULT_CALIBRATION) -> str:
    """inside / edge / outside by week penalty."""
    if penalty <= calibration.envelope_inside_tolerance:
        return 'inside'
    elif penalty <= calibration.envelope_edge_threshold:
        return 'edge'
    return 'outside'


def assess_week(
    planned: float,
    envelope: CapacityEnvelope,
    ramp_pct: float = 0.0,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> EnvelopeAssessment:
    """
    Score one planned week against its envelope.

    Args:
        planned: Planned training load for the week
        envelope: Envelope for the same week
        ramp_pct: Change of planned load over the previous week (%)
        calibration: Calibration constants

    Returns:
        EnvelopeAssessment with penalty, state and limiting factors
    """
    over_high = max(0.0, planned - envelope.safe_high)
    under_low = max(0.0, envelope.safe_low - planned)
    over_ramp = max(0.0, ramp_pct - envelope.ramp_limit_pct)

    penalty = 0.0
    factors: List[str] = []
    if over_high > 0:
        penalty += calibration.envelope_weight_over_high * over_high / max(envelope.safe_high, 1.0)
        factors.append('over_safe_high')
    if under_low > 0:
        penalty += calibration.envelope_weight_under_low * under_low / max(envelope.safe_low, 1.0)
        factors.append('under_safe_low')
    if over_ramp > 0:
        penalty += calibration.envelope_weight_over_ramp * over_ramp / max(envelope.ramp_limit_pct, 1.0)
        factors.append('over_ramp_limit')

    return EnvelopeAssessment(
        penalty=penalty,
        state=classify_envelope_state(penalty, calibration),
        limiting_factors=tuple(factors),
        ramp_pct=ramp_pct,
    )


def compute_envelope_score(penalties: Sequence[float]) -> float:
    """envelope_score = clamp(100 - 100 × mean(week_penalty), 0, 100)."""
    if len(penalties) == 0:
        return 100.0
    return float(np.clip(100.0 - 100.0 * float(np.mean(penalties)), 0.0, 100.0))
