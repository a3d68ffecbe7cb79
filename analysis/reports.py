"""
Report generation for projection charts.

Turns a ProjectionChart into pandas tables and a formatted text report.
"""

from datetime import datetime
from typing import List, Optional

import numpy as np
import pandas as pd

from simulation.engine import ProjectionChart


def chart_to_dataframe(chart: ProjectionChart) -> pd.DataFrame:
    """
    Daily points as a DataFrame.

    Returns:
        DataFrame indexed by date with load state, readiness, sub-scores,
        envelope state and a ';'-joined rationale column
    """
    rows = []
    for p in chart.points:
        rows.append({
            'date': pd.Timestamp(p.date),
            'ctl': p.ctl,
            'atl': p.atl,
            'tsb': p.tsb,
            'daily_tss': p.daily_tss,
            'weekly_tss': p.weekly_tss,
            'readiness_score': p.readiness_score,
            'readiness_confidence': p.readiness_confidence,
            'base_readiness': p.base_readiness,
            'fatigue_penalty': p.fatigue_penalty,
            'attainment': p.components.target_attainment_score,
            'envelope_score': p.capacity_envelope.envelope_score,
            'durability': p.components.durability_score,
            'evidence': p.components.evidence_score,
            'envelope_state': p.capacity_envelope.envelope_state,
            'rationale': ';'.join(p.rationale_codes),
        })
    return pd.DataFrame(rows).set_index('date')


def weekly_summary(chart: ProjectionChart) -> pd.DataFrame:
    """
    One row per microcycle with load, envelope and end-of-week state.

    Returns:
        DataFrame indexed by week index
    """
    daily = chart_to_dataframe(chart)
    rows = []
    for m in chart.microcycles:
        week = daily.loc[pd.Timestamp(m.start_date):pd.Timestamp(m.end_date)]
        rows.append({
            'week': m.index,
            'start_date': m.start_date,
            'pattern': m.pattern,
            'planned_tss': m.planned_tss,
            'realized_tss': m.realized_tss,
            'safe_low': m.envelope.safe_low,
            'safe_high': m.envelope.safe_high,
            'envelope_state': m.envelope_state,
            'ctl_end': week['ctl'].iloc[-1],
            'atl_end': week['atl'].iloc[-1],
            'readiness_mean': week['readiness_score'].mean(),
            'rationale': ';'.join(m.rationale_codes),
        })
    df = pd.DataFrame(rows).set_index('week')
    df['ctl_ramp'] = df['ctl_end'].diff()
    return df


def goal_summary(chart: ProjectionChart) -> pd.DataFrame:
    """Goal markers as a DataFrame."""
    return pd.DataFrame([{
        'goal_id': g.goal_id,
        'date': g.date,
        'priority': g.priority,
        'demand_ctl': g.demand_ctl,
        'projected_ctl': g.projected_ctl,
        'readiness_score': g.readiness_score,
        'recovery_days_full': g.recovery_profile.recovery_days_full,
        'recovery_days_functional': g.recovery_profile.recovery_days_functional,
        'peak_window': g.peak_window.peak_window,
        'conflicted': g.conflicted,
        'tier': g.feasibility.tier,
        'build_time': g.feasibility.build_time,
    } for g in chart.goal_markers])


def generate_projection_report(
    chart: ProjectionChart,
    title: str = "Training Load Projection",
    timestamp: Optional[str] = None
) -> str:
    """
    Generate a text report of one projection.

    Args:
        chart: Projection output
        title: Report title
        timestamp: Fixed timestamp (defaults to now)

    Returns:
        Formatted report string
    """
    timestamp = timestamp or datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    daily = chart_to_dataframe(chart)
    summary = chart.constraint_summary
    c = summary.constraints
    feas = summary.feasibility

    report = f"""
{'='*70}
{title}
{'='*70}
Generated: {timestamp}
Horizon:   {chart.start_date} .. {chart.end_date} ({len(chart.points)} days, {len(chart.microcycles)} weeks)
Calibration: {chart.calibration_version}

CONSTRAINTS ({summary.optimization_profile})
------------------
Max weekly TSS ramp:       {c.max_weekly_tss_ramp_pct:>8.1f} %
Max CTL ramp / week:       {c.max_ctl_ramp_per_week:>8.1f}
Rest days / cycle:         {c.min_recovery_days_per_cycle:>8d}
Post-goal recovery days:   {c.post_goal_recovery_days:>8d}
Seed:                      {summary.seed_load:>8.1f} ({summary.seed_source}, state: {summary.starting_state_source})
TSS ramp capped weeks:     {summary.tss_ramp_capped_weeks:>8d}
CTL ramp capped weeks:     {summary.ctl_ramp_capped_weeks:>8d}
Evidence:                  {summary.evidence_state:>8}

FEASIBILITY
-----------
Required peak weekly TSS:  {feas.required_peak_weekly_tss:>8.1f}
Applied peak weekly TSS:   {feas.applied_peak_weekly_tss:>8.1f}
Unmet ratio:               {feas.unmet_ratio:>8.3f}
Clamp pressure:            {feas.clamp_pressure:>8.3f}
Limiters:                  {', '.join(feas.dominant_limiters) or '-'}

LOAD
----
CTL start / end:           {daily['ctl'].iloc[0]:>8.1f} / {daily['ctl'].iloc[-1]:.1f}
Peak ATL:                  {daily['atl'].max():>8.1f}
Min TSB:                   {daily['tsb'].min():>8.1f}
Readiness mean:            {daily['readiness_score'].mean():>8.1f}
Readiness range:           {int(daily['readiness_score'].min())} - {int(daily['readiness_score'].max())}

"""

    report += """
GOALS
-----
"""
    report += f"{'Goal':<16} {'Date':>10} {'Demand':>7} {'CTL':>6} {'Ready':>6} {'Window':>7} {'Codes'}\n"
    report += "-" * 70 + "\n"
    for g in chart.goal_markers:
        report += (f"{g.goal_id[:16]:<16} "
                   f"{g.date.isoformat():>10} "
                   f"{g.demand_ctl:>7.1f} "
                   f"{g.projected_ctl:>6.1f} "
                   f"{g.readiness_score:>6d} "
                   f"{g.peak_window.peak_window:>7d} "
                   f"{','.join(g.rationale_codes)}\n")

    report += """
MICROCYCLES
-----------
"""
    report += f"{'Week':>4} {'Start':>10} {'Pattern':<9} {'Planned':>8} {'Realized':>9} {'Envelope':<8} {'Codes'}\n"
    report += "-" * 70 + "\n"
    for m in chart.microcycles:
        report += (f"{m.index:>4d} "
                   f"{m.start_date.isoformat():>10} "
                   f"{m.pattern:<9} "
                   f"{m.planned_tss:>8.0f} "
                   f"{m.realized_tss:>9.0f} "
                   f"{m.envelope_state:<8} "
                   f"{','.join(m.rationale_codes)}\n")

    return report


def generate_batch_report(charts: List[ProjectionChart], title: str = "Projection Batch") -> str:
    """Readiness at every goal across many projections."""
    scores = [g.readiness_score for chart in charts for g in chart.goal_markers]
    conflicted = sum(g.conflicted for chart in charts for g in chart.goal_markers)
    infeasible = sum('insufficient_time_to_target' in g.rationale_codes
                     for chart in charts for g in chart.goal_markers)

    return f"""
{'='*70}
{title}
{'='*70}
Projections:               {len(charts):>8d}
Goals:                     {len(scores):>8d}
Goal readiness (mean):     {np.mean(scores) if scores else 0.0:>8.1f}
Goal readiness (range):    {min(scores, default=0)} - {max(scores, default=0)}
Conflicted goals:          {conflicted:>8d}
Infeasible goals:          {infeasible:>8d}
"""


def export_points_csv(chart: ProjectionChart, filepath: str) -> None:
    """Export daily points to CSV."""
    chart_to_dataframe(chart).to_csv(filepath)
