"""
Load State Simulator: daily fitness/fatigue state from training stress.

CTL_n = CTL_{n-1} + α_c × (TSS_n - CTL_{n-1}),  α_c = 2/43
ATL_n = ATL_{n-1} + α_a × (TSS_n - ATL_{n-1}),  α_a = 2/8
TSB   = CTL - ATL

Missing days count as rest (0 TSS). Negative TSS or a negative seed is a
broken caller contract and raises immediately.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from core.calibration import Calibration, DEFAULT_CALIBRATION
from core.metrics import calculate_ewma


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadState:
    """End-of-day fitness/fatigue snapshot."""
    date: date
    ctl: float
    atl: float

    def __post_init__(self):
        if self.ctl < 0 or self.atl < 0:
            raise ValueError(
                f"LoadState on {self.date} has negative load "
                f"(ctl={self.ctl}, atl={self.atl})"
            )

    @property
    def tsb(self) -> float:
        return self.ctl - self.atl

    def to_dict(self) -> Dict[str, object]:
        return {
            'date': self.date.isoformat(),
            'ctl': round(self.ctl, 2),
            'atl': round(self.atl, 2),
            'tsb': round(self.tsb, 2),
        }


@dataclass(frozen=True)
class AthleteHistory:
    """
    Recent realized daily load.

    ``daily_tss`` is oldest first and ends on ``end_date``. ``None`` entries
    are days with no recorded activity.
    """
    end_date: date
    daily_tss: Tuple[Optional[float], ...]

    @property
    def start_date(self) -> date:
        return self.end_date - timedelta(days=len(self.daily_tss) - 1)

    def filled(self) -> List[float]:
        """Daily TSS with missing days as rest."""
        return [0.0 if v is None else float(v) for v in self.daily_tss]

    def extended_to(self, day: date) -> 'AthleteHistory':
        """Same history padded with unrecorded days through ``day``."""
        gap = (day - self.end_date).days
        if gap < 0:
            raise ValueError(f"History ends {self.end_date}, after {day}")
        return AthleteHistory(end_date=day, daily_tss=self.daily_tss + (None,) * gap)


def validate_tss(value: float, day: date) -> float:
    """Return ``value`` as float, raising on negative or non-finite TSS."""
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"TSS on {day} is not finite: {value}")
    if value < 0:
        raise ValueError(f"TSS on {day} is negative: {value}")
    return value


def advance_state(
    state: LoadState,
    tss: float,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> LoadState:
    """Apply one day of training stress to ``state``."""
    day = state.date + timedelta(days=1)
    tss = validate_tss(tss, day)
    ctl = state.ctl + calibration.ctl_alpha * (tss - state.ctl)
    atl = state.atl + calibration.atl_alpha * (tss - state.atl)
    return LoadState(date=day, ctl=max(0.0, ctl), atl=max(0.0, atl))


def simulate_load_states(
    daily_tss: Sequence[Optional[float]],
    start_date: date,
    ctl0: float,
    atl0: float,
    calibration: Calibration = DEFAULT_CALIBRATION
) -> List[LoadState]:
    """
    Roll a daily TSS sequence into end-of-day load states.

    Args:
        daily_tss: TSS per day starting at ``start_date``; None means rest
        start_date: Date of the first value
        ctl0: CTL carried into ``start_date``
        atl0: ATL carried into ``start_date``
        calibration: Calibration constants

    Returns:
        One LoadState per input day

    Raises:
        ValueError: On negative seeds or negative/non-finite TSS
    """
    if ctl0 < 0 or atl0 < 0:
        raise ValueError(f"Seed state must be non-negative (ctl0={ctl0}, atl0={atl0})")

    state = LoadState(date=start_date - timedelta(days=1), ctl=float(ctl0), atl=float(atl0))
    states = []
    for value in daily_tss:
        state = advance_state(state, 0.0 if value is None else value, calibration)
        states.append(state)
    return states


def daily_tss_from_mapping(
    mapping: Dict[date, float],
    start_date: date,
    end_date: date
) -> List[float]:
    """
    Expand a sparse {date: TSS} mapping into an inclusive daily sequence.

    Days absent from the mapping are rest days (0 TSS).
    """
    if end_date < start_date:
        raise ValueError(f"end_date {end_date} precedes start_date {start_date}")

    n_days = (end_date - start_date).days + 1
    return [
        validate_tss(mapping.get(start_date + timedelta(days=i), 0.0),
                     start_date + timedelta(days=i))
        for i in range(n_days)
    ]


def derive_state_from_history(
    history: AthleteHistory,
    calibration: Calibration = DEFAULT_CALIBRATION,
    through: Optional[date] = None
) -> LoadState:
    """
    Seed state from realized history, starting from zero load.

    Days between ``history.end_date`` and ``through`` had nothing recorded
    and count as rest.

    Args:
        history: Realized daily load
        calibration: Calibration constants
        through: Date the state is wanted for (defaults to the history end)

    Returns:
        LoadState at ``through``

    Raises:
        ValueError: If ``through`` precedes the history end or a day's TSS is invalid
    """
    through = through or history.end_date
    gap = (through - history.end_date).days
    if gap < 0:
        raise ValueError(f"History ends {history.end_date}, after {through}")

    loads = [validate_tss(v, history.start_date + timedelta(days=i))
             for i, v in enumerate(history.filled())] + [0.0] * gap
    if not loads:
        return LoadState(date=through, ctl=0.0, atl=0.0)

    ctl = calculate_ewma(loads, calibration.ctl_time_constant, seed=0.0)[-1]
    atl = calculate_ewma(loads, calibration.atl_time_constant, seed=0.0)[-1]
    logger.debug("History of %d days (%d rest days to %s) seeds ctl=%.1f atl=%.1f",
                 len(history.daily_tss), gap, through, ctl, atl)
    return LoadState(date=through, ctl=max(0.0, float(ctl)), atl=max(0.0, float(atl)))


def weekly_totals(daily_tss: Sequence[Optional[float]]) -> List[float]:
    """
    Sum a daily sequence into 7-day totals aligned to its end.

    The oldest partial week is dropped so every total covers 7 days.
    """
    values = [0.0 if v is None else float(v) for v in daily_tss]
    n_weeks = len(values) // 7
    offset = len(values) - n_weeks * 7
    return [sum(values[offset + 7 * i: offset + 7 * (i + 1)]) for i in range(n_weeks)]
