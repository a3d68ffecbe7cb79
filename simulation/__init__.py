"""Projection orchestrator."""

from .engine import ProjectionChart, ProjectionEngine, ProjectionPoint, build_projection_chart

__all__ = [
    'ProjectionChart',
    'ProjectionEngine',
    'ProjectionPoint',
    'build_projection_chart',
]
