"""
Input loaders: realized training history (CSV) and plan requests (JSON).

History CSV layout, one row per activity:

    date,tss
    2025-11-01,62.5
    2025-11-01,20
    2025-11-03,71

Activities on the same day are summed. Days with no row are recorded as
missing (None), which the engine treats as rest and the evidence scorer
treats as absent data.
"""

import json
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from core.load_state import AthleteHistory
from core.plan import (
    CreationConfig, MinimalPlanDefinition, StartingState, config_from_dict, plan_from_dict,
)


logger = logging.getLogger(__name__)


def history_from_dataframe(
    df: pd.DataFrame,
    date_column: str = 'date',
    tss_column: str = 'tss',
    end_date: Optional[date] = None
) -> AthleteHistory:
    """
    Build an AthleteHistory from per-activity rows.

    Args:
        df: DataFrame with a date column and a TSS column
        date_column: Name of the date column
        tss_column: Name of the TSS column
        end_date: Last history day (defaults to the last recorded day)

    Returns:
        AthleteHistory covering the first recorded day through ``end_date``

    Raises:
        ValueError: On missing columns or negative/non-finite TSS
    """
    missing = [c for c in (date_column, tss_column) if c not in df.columns]
    if missing:
        raise ValueError(f"History is missing columns: {missing}")

    if df.empty:
        if end_date is None:
            raise ValueError("History is empty and no end_date was given")
        return AthleteHistory(end_date=end_date, daily_tss=())

    tss = pd.to_numeric(df[tss_column], errors='raise').astype(float)
    if not np.all(np.isfinite(tss.values)) or (tss < 0).any():
        raise ValueError(f"History column '{tss_column}' holds negative or non-finite TSS")

    days = pd.to_datetime(df[date_column]).dt.date
    daily = tss.groupby(days).sum()

    first = min(daily.index)
    last = end_date or max(daily.index)
    if last < first:
        raise ValueError(f"end_date {last} precedes first recorded day {first}")

    values = []
    current = first
    while current <= last:
        values.append(float(daily[current]) if current in daily.index else None)
        current += timedelta(days=1)

    logger.debug("Loaded %d history days (%d recorded)", len(values), len(daily))
    return AthleteHistory(end_date=last, daily_tss=tuple(values))


def load_history_csv(
    path: str,
    date_column: str = 'date',
    tss_column: str = 'tss',
    end_date: Optional[date] = None
) -> AthleteHistory:
    """Load realized history from a CSV file."""
    df = pd.read_csv(Path(path))
    return history_from_dataframe(df, date_column, tss_column, end_date)


def history_to_dataframe(history: AthleteHistory) -> pd.DataFrame:
    """
    Daily view of a history.

    Returns:
        DataFrame with columns: date, tss, recorded
    """
    return pd.DataFrame({
        'date': [history.start_date + timedelta(days=i) for i in range(len(history.daily_tss))],
        'tss': history.filled(),
        'recorded': [v is not None for v in history.daily_tss],
    })


def request_from_dict(
    d: Dict[str, Any]
) -> Tuple[MinimalPlanDefinition, CreationConfig, Optional[StartingState]]:
    """
    Split a projection request into its inputs.

    The request holds ``plan_start_date`` and ``goals`` at the top level,
    an optional ``config`` mapping and an optional ``starting_state``.
    """
    plan = plan_from_dict(d)
    config = config_from_dict(d.get('config') or {})
    starting_state = None
    if d.get('starting_state') is not None:
        s = d['starting_state']
        starting_state = StartingState(ctl=float(s['ctl']), atl=float(s['atl']))
    return plan, config, starting_state


def load_request_json(path: str) -> Tuple[MinimalPlanDefinition, CreationConfig, Optional[StartingState]]:
    """Load a projection request from a JSON file."""
    with open(path) as f:
        return request_from_dict(json.load(f))
