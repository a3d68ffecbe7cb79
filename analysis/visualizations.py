"""
Visualization of projection charts.

Provides charts for:
- CTL / ATL / TSB over the horizon
- Readiness with goal markers and post-goal recovery shading
- Weekly planned load against the capacity envelope
"""

from typing import List, Optional, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.patches import Patch

from simulation.engine import ProjectionChart


ENVELOPE_COLORS = {'inside': 'tab:green', 'edge': 'tab:orange', 'outside': 'tab:red'}


def _shade_recovery(ax: plt.Axes, chart: ProjectionChart) -> None:
    for segment in chart.recovery_segments:
        ax.axvspan(segment.start_date, segment.end_date, color='grey', alpha=0.15, linewidth=0)


def _mark_goals(ax: plt.Axes, chart: ProjectionChart) -> None:
    for goal in chart.goal_markers:
        ax.axvline(goal.date, color='tab:red' if goal.conflicted else 'black',
                   linestyle='--', linewidth=1, alpha=0.8)


def plot_load_state(
    chart: ProjectionChart,
    title: str = "Projected Load State",
    figsize: Tuple[int, int] = (12, 5),
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """
    Plot CTL, ATL and TSB.

    Args:
        chart: Projection output
        title: Plot title
        figsize: Figure size
        ax: Optional existing axes

    Returns:
        Matplotlib figure
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()

    dates = [p.date for p in chart.points]
    ax.plot(dates, [p.ctl for p in chart.points], label='CTL (fitness)', linewidth=2)
    ax.plot(dates, [p.atl for p in chart.points], label='ATL (fatigue)', linewidth=1.5)
    ax.bar(dates, [p.tsb for p in chart.points], label='TSB (form)', alpha=0.3, color='tab:purple')
    ax.axhline(0, color='black', linewidth=0.5)

    _shade_recovery(ax, chart)
    _mark_goals(ax, chart)

    ax.set_ylabel('Load')
    ax.set_title(title)
    ax.legend(loc='upper left')
    ax.grid(True, alpha=0.3)
    return fig


def plot_readiness(
    chart: ProjectionChart,
    title: str = "Readiness",
    figsize: Tuple[int, int] = (12, 4),
    show_base: bool = True,
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """
    Plot final readiness, optionally over the pre-fatigue base readiness.

    Returns:
        Matplotlib figure
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()

    dates = [p.date for p in chart.points]
    if show_base:
        ax.plot(dates, [p.base_readiness for p in chart.points], color='grey',
                linestyle=':', label='Base (before fatigue)')
    ax.plot(dates, [p.readiness_score for p in chart.points], color='tab:blue',
            linewidth=2, label='Readiness')

    for goal in chart.goal_markers:
        ax.scatter([goal.date], [goal.readiness_score], zorder=3,
                   color='tab:red' if goal.conflicted else 'black')
        ax.annotate(f"{goal.goal_id} ({goal.readiness_score})", (goal.date, goal.readiness_score),
                    textcoords='offset points', xytext=(4, 6), fontsize=8)

    _shade_recovery(ax, chart)
    ax.set_ylim(0, 105)
    ax.set_ylabel('Score')
    ax.set_title(title)
    ax.legend(loc='lower left')
    ax.grid(True, alpha=0.3)
    return fig


def plot_weekly_envelope(
    chart: ProjectionChart,
    title: str = "Weekly Load vs Capacity Envelope",
    figsize: Tuple[int, int] = (12, 4),
    ax: Optional[plt.Axes] = None
) -> plt.Figure:
    """
    Plot planned weekly load with its safe band, colored by envelope state.

    Returns:
        Matplotlib figure
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()

    weeks = [m.index for m in chart.microcycles]
    ax.fill_between(weeks, [m.envelope.safe_low for m in chart.microcycles],
                    [m.envelope.safe_high for m in chart.microcycles],
                    color='tab:green', alpha=0.15, step='mid')
    ax.bar(weeks, [m.planned_tss for m in chart.microcycles],
           color=[ENVELOPE_COLORS[m.envelope_state] for m in chart.microcycles], alpha=0.7)
    ax.plot(weeks, [m.realized_tss for m in chart.microcycles], 'k.', label='Realized (incl. events)')

    legend_elements: List[Patch] = [
        Patch(facecolor=color, alpha=0.7, label=state) for state, color in ENVELOPE_COLORS.items()
    ]
    ax.legend(handles=ax.get_legend_handles_labels()[0] + legend_elements, loc='upper left')
    ax.set_xlabel('Week')
    ax.set_ylabel('TSS')
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    return fig


def plot_projection_chart(
    chart: ProjectionChart,
    title: str = "Projection",
    figsize: Tuple[int, int] = (14, 12),
) -> plt.Figure:
    """
    Three-panel dashboard: load state, readiness, weekly envelope.

    Args:
        chart: Projection output
        title: Dashboard title
        figsize: Figure size

    Returns:
        Matplotlib figure
    """
    fig, (ax1, ax2, ax3) = plt.subplots(3, 1, figsize=figsize)

    plot_load_state(chart, ax=ax1, title="CTL / ATL / TSB")
    plot_readiness(chart, ax=ax2, title="Readiness")
    plot_weekly_envelope(chart, ax=ax3, title="Weekly Load vs Envelope")

    fig.suptitle(title, fontsize=14, fontweight='bold')
    fig.tight_layout()
    return fig
