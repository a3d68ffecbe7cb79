#!/usr/bin/env python3
"""
Training Load Projection - CLI Entry Point

Usage:
    python main.py preview <request.json> [--history H.csv] [--as-of DATE] [--json] [--plot OUT.png]
    python main.py demo [--scenario N] [--json] [--plot OUT.png]
    python main.py report [--scenarios N] [--seed S]
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

from core.config import get_settings, resolve_calibration
from core.logging_config import setup_logging
from data.loaders import load_history_csv, load_request_json
from data.synthetic import generate_goal_scenarios, reference_scenario
from simulation.engine import ProjectionEngine
from analysis.reports import generate_batch_report, generate_projection_report


logger = logging.getLogger(__name__)


def _emit(chart, as_json: bool, plot_path: str = None, title: str = "Training Load Projection"):
    if as_json:
        print(json.dumps(chart.to_dict(), indent=2))
    else:
        print(generate_projection_report(chart, title=title))

    if plot_path:
        from analysis.visualizations import plot_projection_chart

        fig = plot_projection_chart(chart, title=title)
        Path(plot_path).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(plot_path, dpi=120)
        logger.info("Chart written to %s", plot_path)


def run_preview(engine: ProjectionEngine, request_path: str, history_path: str = None,
                as_of: str = None, as_json: bool = False, plot_path: str = None):
    """Project a plan request from a JSON file."""
    plan, config, starting_state = load_request_json(request_path)
    history = load_history_csv(history_path) if history_path else None
    chart = engine.project(
        plan, config,
        starting_state=starting_state,
        history=history,
        as_of=date.fromisoformat(as_of) if as_of else None,
    )
    _emit(chart, as_json, plot_path)
    return chart


def run_demo(engine: ProjectionEngine, scenario: int = 1, as_json: bool = False, plot_path: str = None):
    """Project one of the reference scenarios."""
    s = reference_scenario(scenario)
    chart = engine.project(s.plan, s.config, starting_state=s.starting_state, history=s.history)
    _emit(chart, as_json, plot_path, title=s.name)
    return chart


def run_report(engine: ProjectionEngine, n_scenarios: int = 20, seed: int = 42):
    """Project a batch of synthetic scenarios and summarize goal readiness."""
    scenarios = generate_goal_scenarios(n_scenarios, seed=seed)
    charts = []
    for s in scenarios:
        charts.append(engine.project(s.plan, s.config, starting_state=s.starting_state, history=s.history))
        logger.debug("%s: %s", s.id, [g.readiness_score for g in charts[-1].goal_markers])

    print(generate_batch_report(charts, title=f"Synthetic batch ({n_scenarios} scenarios, seed {seed})"))
    return charts


def main():
    parser = argparse.ArgumentParser(description='Training load projection and readiness engine')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Preview command
    pv_parser = subparsers.add_parser('preview', help='Project a plan request (JSON)')
    pv_parser.add_argument('request', help='Path to plan request JSON')
    pv_parser.add_argument('--history', help='CSV of realized daily TSS (date,tss)')
    pv_parser.add_argument('--as-of', help='Projection date (YYYY-MM-DD)')
    pv_parser.add_argument('--json', action='store_true', help='Print chart JSON')
    pv_parser.add_argument('--plot', help='Write a PNG dashboard to this path')

    # Demo command
    demo_parser = subparsers.add_parser('demo', help='Project a reference scenario')
    demo_parser.add_argument('--scenario', type=int, default=1, choices=[1, 2, 3], help='Scenario number')
    demo_parser.add_argument('--json', action='store_true', help='Print chart JSON')
    demo_parser.add_argument('--plot', help='Write a PNG dashboard to this path')

    # Report command
    rep_parser = subparsers.add_parser('report', help='Summarize synthetic scenarios')
    rep_parser.add_argument('--scenarios', type=int, default=20, help='Number of scenarios')
    rep_parser.add_argument('--seed', type=int, default=42, help='Random seed')

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    engine = ProjectionEngine(resolve_calibration(settings))

    try:
        if args.command == 'preview':
            run_preview(engine, args.request, args.history, args.as_of, args.json, args.plot)
        elif args.command == 'demo':
            run_demo(engine, args.scenario, args.json, args.plot)
        elif args.command == 'report':
            run_report(engine, args.scenarios, args.seed)
        else:
            parser.print_help()
    except ValueError as e:
        logger.error("Invalid input: %s", e)
        sys.exit(2)


if __name__ == '__main__':
    main()
