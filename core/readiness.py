"""
Readiness Composite Scorer.

    readiness_raw   = 0.45 × attainment + 0.30 × envelope
                    + 0.15 × durability + 0.10 × evidence
    readiness_score = clamp(round(readiness_raw), 0, 100)

Sub-scores:
- attainment: how well the state carried into a day meets the relevant
  goal (fitness vs. demand, form vs. the event's optimal TSB, freshness)
- durability: penalizes monotony, strain and missed deload weeks
- evidence: how much real history backs the projection

There is exactly one headline number and no score floor of any kind.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.goals import optimal_tsb
from core.load_state import AthleteHistory
from core.metrics import calculate_monotony, calculate_strain
from core.recovery import round_half_up


EVIDENCE_STATES = ('none', 'sparse', 'stale', 'rich')


@dataclass(frozen=True)
class ReadinessComposite:
    """Per-day scoring breakdown. Only ``readiness_score`` is a headline."""
    target_attainment_score: float
    envelope_score: float
    durability_score: float
    evidence_score: float
    readiness_score: int
    readiness_confidence: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'target_attainment_score': round(self.target_attainment_score, 2),
            'envelope_score': round(self.envelope_score, 2),
            'durability_score': round(self.durability_score, 2),
            'evidence_score': round(self.evidence_score, 2),
            'readiness_score': self.readiness_score,
            'readiness_confidence': self.readiness_confidence,
        }


def clamp_score(value: float) -> float:
    """Clamp to [0, 100], mapping NaN to 0."""
    if value != value:
        return 0.0
    return float(np.clip(value, 0.0, 100.0))


def finalize_score(value: float) -> int:
    """Round half up and clamp to an integer in [0, 100]."""
    return int(min(100, max(0, round_half_up(clamp_score(value)))))


# ═══════════════════════════════════════════════════════════════════════════════
# TARGET ATTAINMENT
# ═══════════════════════════════════════════════════════════════════════════════

def compute_attainment(
    ctl: float,
    atl: float,
    demand_ctl: float,
    duration_hours: float,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """
    Attainment of a goal from the state carried into a day.

    Args:
        ctl: Morning CTL
        atl: Morning ATL
        demand_ctl: CTL the goal calls for
        duration_hours: Event duration (sets the optimal TSB)
        calibration: Calibration constants

    Returns:
        Score in [0, 100]
    """
    fitness = 1.0 if demand_ctl <= 0 else min(1.0, max(0.0, ctl / demand_ctl))

    tsb = ctl - atl
    target_tsb = optimal_tsb(duration_hours, calibration)
    form = float(np.clip(1.0 - abs(tsb - target_tsb) / calibration.form_tolerance, 0.0, 1.0))

    if ctl <= 0:
        freshness = 0.0 if atl > 0 else 1.0
    else:
        excess = max(0.0, atl - ctl)
        freshness = float(np.clip(1.0 - excess / (calibration.freshness_ctl_ratio * ctl), 0.0, 1.0))

    score = 100.0 * (calibration.attainment_fitness_weight * fitness +
                     calibration.attainment_form_weight * form +
                     calibration.attainment_freshness_weight * freshness)
    return clamp_score(score)


# ═══════════════════════════════════════════════════════════════════════════════
# DURABILITY
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DurabilityAssessment:
    score: float
    monotony: float
    strain: float
    rationale_codes: Tuple[str, ...]


def compute_durability(
    trailing_daily: Sequence[float],
    ctl: float,
    deload_debt_weeks: int = 0,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> DurabilityAssessment:
    """
    Durability from the trailing week of load.

    Args:
        trailing_daily: Up to 7 days of load ending the day before
        ctl: Morning CTL (scales the strain threshold)
        deload_debt_weeks: Loading weeks beyond the deload cycle
        calibration: Calibration constants

    Returns:
        DurabilityAssessment with score in [0, 100]
    """
    codes = []
    monotony = 0.0
    strain = 0.0
    penalty = 0.0

    if len(trailing_daily) >= 3:
        monotony = calculate_monotony(trailing_daily, calibration.monotony_cap)
        strain = calculate_strain(trailing_daily, calibration.monotony_cap)

        excess = (monotony - calibration.monotony_threshold) / calibration.monotony_penalty_span
        if excess > 0:
            penalty += min(1.0, excess) * calibration.monotony_penalty_max
            codes.append('high_monotony')

        threshold = calibration.strain_threshold_ratio * max(ctl, 1.0) * 7.0
        if strain > threshold:
            penalty += min(1.0, strain / threshold - 1.0) * calibration.strain_penalty_max
            codes.append('high_strain')

    if deload_debt_weeks > 0:
        penalty += min(calibration.deload_debt_penalty_max,
                       deload_debt_weeks * calibration.deload_debt_penalty_per_week)
        codes.append('deload_debt')

    return DurabilityAssessment(
        score=clamp_score(100.0 - penalty),
        monotony=monotony,
        strain=strain,
        rationale_codes=tuple(codes),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# EVIDENCE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EvidenceAssessment:
    state: str
    coverage: float
    score: float


def assess_evidence(
    history: Optional[AthleteHistory],
    as_of: date,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> EvidenceAssessment:
    """
    Evidence tier of the athlete's recent history.

    Tiers: none (nothing recorded), stale (last activity too long before
    ``as_of``), rich (long and well covered), sparse (anything else).
    Each tier has a confidence floor.
    """
    recorded = []
    if history is not None:
        window = list(history.daily_tss)[-calibration.evidence_window_days:]
        recorded = [v is not None and v > 0 for v in window]

    if not any(recorded):
        state, quality, coverage = 'none', calibration.evidence_default_quality, 0.0
    else:
        coverage = sum(recorded) / len(recorded)
        quality = coverage
        last_active = len(recorded) - 1 - recorded[::-1].index(True)
        last_active_date = history.end_date - timedelta(days=len(recorded) - 1 - last_active)
        if (as_of - last_active_date).days > calibration.evidence_stale_after_days:
            state = 'stale'
        elif (len(history.daily_tss) >= calibration.evidence_rich_min_days and
              coverage >= calibration.evidence_rich_min_coverage):
            state = 'rich'
        else:
            state = 'sparse'

    value = max(calibration.evidence_floor[state],
                0.7 * calibration.evidence_base[state] + 0.3 * quality)
    return EvidenceAssessment(state=state, coverage=coverage, score=clamp_score(100.0 * value))


def compute_readiness_confidence(
    evidence_score: float,
    days_ahead: int,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """Evidence confidence decayed with distance into the projection."""
    horizon = max(calibration.confidence_min_ratio,
                  1.0 - max(0, days_ahead) / calibration.confidence_horizon_days)
    return round(clamp_score(evidence_score) / 100.0 * horizon, 3)


# ═══════════════════════════════════════════════════════════════════════════════
# COMPOSITE
# ═══════════════════════════════════════════════════════════════════════════════

def compute_readiness_raw(
    attainment: float,
    envelope_score: float,
    durability_score: float,
    evidence_score: float,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> float:
    """Weighted blend of the four sub-scores, unrounded."""
    return (calibration.weight_attainment * clamp_score(attainment) +
            calibration.weight_envelope * clamp_score(envelope_score) +
            calibration.weight_durability * clamp_score(durability_score) +
            calibration.weight_evidence * clamp_score(evidence_score))


def compose_readiness(
    attainment: float,
    envelope_score: float,
    durability_score: float,
    evidence_score: float,
    readiness_confidence: float,
    adjusted_readiness: Optional[float] = None,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> ReadinessComposite:
    """
    Build the per-day composite.

    Args:
        adjusted_readiness: Final readiness after fatigue, smoothing and
            caps. When omitted the composite's own blend is the headline.
    """
    raw = compute_readiness_raw(attainment, envelope_score, durability_score,
                                evidence_score, calibration)
    headline = raw if adjusted_readiness is None else adjusted_readiness
    return ReadinessComposite(
        target_attainment_score=clamp_score(attainment),
        envelope_score=clamp_score(envelope_score),
        durability_score=clamp_score(durability_score),
        evidence_score=clamp_score(evidence_score),
        readiness_score=finalize_score(headline),
        readiness_confidence=readiness_confidence,
    )
