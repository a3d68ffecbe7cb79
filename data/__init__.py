"""Scenario generation and input loading utilities."""

from .synthetic import GoalScenario, generate_goal_scenarios, reference_scenario
from .loaders import load_history_csv, history_from_dataframe, load_request_json

__all__ = [
    # Synthetic scenarios
    'GoalScenario',
    'generate_goal_scenarios',
    'reference_scenario',
    # Loaders
    'load_history_csv',
    'history_from_dataframe',
    'load_request_json',
]
