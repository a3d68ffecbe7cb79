"""
Objective for weekly load candidate selection.

Each candidate week is scored over a short lookahead as:

    score = w_p × preparedness - w_r × risk - w_v × volatility - w_c × churn

- preparedness: projected CTL at the next goal (or lookahead end) relative
  to the goal's demand, capped at 1.0. Higher is always better.
- risk: mean envelope penalty plus ACWR-zone risk over the lookahead
- volatility: distance of the week's multiplier from steady progression
- churn: change of multiplier from the previous week
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.metrics import calculate_acwr, classify_acwr_zone
from core.plan import OptimizationProfile


@dataclass
class ObjectiveWeights:
    """
    Weights for candidate scoring.

    Weights are normalized to sum to 1.0 for interpretability.
    """
    preparedness: float = 0.70
    risk: float = 0.20
    volatility: float = 0.05
    churn: float = 0.05

    def __post_init__(self):
        total = self.preparedness + self.risk + self.volatility + self.churn
        if total <= 0:
            raise ValueError("Objective weights must have a positive sum")
        if abs(total - 1.0) > 0.01:
            self.preparedness /= total
            self.risk /= total
            self.volatility /= total
            self.churn /= total


PROFILE_WEIGHTS = {
    OptimizationProfile.SUSTAINABLE: dict(preparedness=0.55, risk=0.30, volatility=0.10, churn=0.05),
    OptimizationProfile.BALANCED: dict(preparedness=0.70, risk=0.20, volatility=0.05, churn=0.05),
    OptimizationProfile.OUTCOME_FIRST: dict(preparedness=0.80, risk=0.10, volatility=0.05, churn=0.05),
}


def weights_for_profile(profile: OptimizationProfile) -> ObjectiveWeights:
    return ObjectiveWeights(**PROFILE_WEIGHTS[profile])


def preparedness_score(ctl: float, demand_ctl: Optional[float], reference_ctl: float) -> float:
    """
    Progress toward the goal's demand, capped at 1.0.

    With no goal ahead, holding the reference CTL counts as fully prepared.
    """
    target = demand_ctl if demand_ctl is not None else reference_ctl
    if target <= 0:
        return 1.0
    return float(np.clip(ctl / target, 0.0, 1.0))


def acwr_risk(atl: float, ctl: float, calibration: Calibration = DEFAULT_CALIBRATION) -> float:
    """Risk weight of the ACWR zone at a point in time."""
    if ctl <= 0:
        return 0.0
    return calibration.acwr_zone_risk[classify_acwr_zone(calculate_acwr(atl, ctl))]


def risk_score(
    envelope_penalties: Sequence[float],
    acwr_risks: Sequence[float]
) -> float:
    """Mean envelope penalty plus mean ACWR risk."""
    envelope = float(np.mean(envelope_penalties)) if len(envelope_penalties) else 0.0
    acwr = float(np.mean(acwr_risks)) if len(acwr_risks) else 0.0
    return envelope + acwr


def candidate_score(
    preparedness: float,
    risk: float,
    multiplier: float,
    previous_multiplier: float,
    weights: ObjectiveWeights
) -> float:
    """Composite objective of one candidate (higher is better)."""
    volatility = abs(multiplier - 1.0)
    churn = abs(multiplier - previous_multiplier)
    return (weights.preparedness * preparedness -
            weights.risk * risk -
            weights.volatility * volatility -
            weights.churn * churn)


def score_breakdown(
    preparedness: float,
    risk: float,
    multiplier: float,
    previous_multiplier: float,
    weights: ObjectiveWeights
) -> Dict[str, float]:
    """Candidate score with its components, for logging and reports."""
    return {
        'preparedness': preparedness,
        'risk': risk,
        'volatility': abs(multiplier - 1.0),
        'churn': abs(multiplier - previous_multiplier),
        'score': candidate_score(preparedness, risk, multiplier, previous_multiplier, weights),
    }
