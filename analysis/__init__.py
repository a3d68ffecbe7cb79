"""Analysis and visualization utilities."""

from .visualizations import (
    plot_load_state,
    plot_readiness,
    plot_weekly_envelope,
    plot_projection_chart,
)
from .reports import (
    chart_to_dataframe,
    weekly_summary,
    goal_summary,
    generate_projection_report,
)

__all__ = [
    'plot_load_state',
    'plot_readiness',
    'plot_weekly_envelope',
    'plot_projection_chart',
    'chart_to_dataframe',
    'weekly_summary',
    'goal_summary',
    'generate_projection_report',
]
