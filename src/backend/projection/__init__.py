"""
Deterministic household projection engine.
"""

from .engine import ProjectionEngine
from .errors import ConfigurationError, InvariantViolation, ProjectionArithmeticError, ProjectionError
from .runner import preset_assumptions, run_projection, run_scenarios
from .summary import summarize
from .validation import load_scenario, validate_scenario

__all__ = [
    "ProjectionEngine",
    "ProjectionError",
    "ConfigurationError",
    "ProjectionArithmeticError",
    "InvariantViolation",
    "load_scenario",
    "validate_scenario",
    "preset_assumptions",
    "run_projection",
    "run_scenarios",
    "summarize",
]
