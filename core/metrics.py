"""
Core training metrics: EWMA load, ACWR, monotony and strain.

Based on:
- Banister (1975) / Coggan: CTL and ATL as exponentially weighted loads
- Williams et al. (2017): EWMA-based ACWR
- Gabbett (2016): ACWR injury risk thresholds
- Foster (1998): training monotony and strain
"""

import numpy as np
from typing import Optional, Sequence


# Upper bound on monotony; flat windows with load score here
MONOTONY_CAP = 4.0


def calculate_ewma(
    values: Sequence[float],
    span: int,
    seed: Optional[float] = None
) -> np.ndarray:
    """
    Calculate Exponentially Weighted Moving Average.

    Uses the formula: EWMA_t = EWMA_{t-1} + λ × (value_t - EWMA_{t-1})
    where λ = 2 / (span + 1)

    Args:
        values: Array of daily values (e.g., TSS)
        span: Time constant (7 for acute, 42 for chronic)
        seed: Value carried into the first day, or None to start
            from the first observation

    Returns:
        Array of EWMA values, one per input day
    """
    values = np.asarray(values, dtype=float)
    n = len(values)

    if n == 0:
        return np.array([])

    alpha = 2.0 / (span + 1.0)

    ewma = np.zeros(n)
    previous = values[0] if seed is None else float(seed)

    for i in range(n):
        previous = previous + alpha * (values[i] - previous)
        ewma[i] = previous

    return ewma


def calculate_acwr(atl: float, ctl: float) -> float:
    """
    Acute:Chronic Workload Ratio from ATL and CTL.

    Returns 0.0 when chronic load is zero or negative.
    """
    if ctl <= 0:
        return 0.0
    return atl / ctl


def classify_acwr_zone(acwr: float) -> str:
    """
    Classify ACWR into training zones.

    Zones based on Gabbett (2016):
        - Low: < 0.8 (under-training, can increase load)
        - Optimal: 0.8-1.3 (sweet spot for gains)
        - Caution: 1.3-1.5 (elevated risk, maintain)
        - Danger: 1.5-2.0 (reduce load)
        - Critical: >= 2.0 (significant injury risk)

    Args:
        acwr: Acute:Chronic Workload Ratio

    Returns:
        Zone classification string
    """
    if acwr < 0.8:
        return 'low'
    elif acwr < 1.3:
        return 'optimal'
    elif acwr < 1.5:
        return 'caution'
    elif acwr < 2.0:
        return 'danger'
    else:
        return 'critical'


def calculate_monotony(daily_loads: Sequence[float], cap: float = MONOTONY_CAP) -> float:
    """
    Foster training monotony: mean daily load / standard deviation.

    A window with load but no variation is as monotonous as it gets and
    scores ``cap``, which also bounds near-flat windows.

    Args:
        daily_loads: Daily loads for the window (usually 7 days)
        cap: Upper bound on the returned monotony

    Returns:
        Monotony in [0, cap], 0.0 when the window is empty or all-zero
    """
    loads = np.asarray(daily_loads, dtype=float)
    if len(loads) == 0:
        return 0.0

    mean = float(np.mean(loads))
    std = float(np.std(loads))
    if mean <= 0:
        return 0.0
    if std <= 0:
        return cap
    return min(cap, mean / std)


def calculate_strain(daily_loads: Sequence[float], cap: float = MONOTONY_CAP) -> float:
    """Foster training strain: total window load × monotony."""
    loads = np.asarray(daily_loads, dtype=float)
    return float(np.sum(loads)) * calculate_monotony(loads, cap)
