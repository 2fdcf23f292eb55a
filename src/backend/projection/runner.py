"""
Independent runs of one scenario under several assumption sets.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Dict, Mapping, Optional

import config
from models import ProjectionResult, Scenario, ScenarioAssumptions

from .engine import ProjectionEngine
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def preset_assumptions(name: str, base: Optional[ScenarioAssumptions] = None) -> ScenarioAssumptions:
    """
    Rates of a named preset (optimistic, average, pessimistic).

    Fields the preset does not set, such as a base-rate schedule, come from ``base``.
    """
    try:
        rates = config.SCENARIO_PRESETS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown preset {name!r}; expected one of {', '.join(config.SCENARIO_PRESETS)}"
        ) from None
    if base is None:
        return ScenarioAssumptions(**rates)
    return base.model_copy(update=rates)


def run_projection(scenario: Scenario, assumptions: Optional[ScenarioAssumptions] = None) -> ProjectionResult:
    return ProjectionEngine(scenario, assumptions).run()


def run_scenarios(
    scenario: Scenario,
    assumption_sets: Mapping[str, ScenarioAssumptions],
    parallel: Optional[bool] = None,
) -> Dict[str, ProjectionResult]:
    """
    Project ``scenario`` once per assumption set.

    Runs share nothing, so they go to a process pool when parallel processing
    is enabled and run one after another otherwise. Results keep the order of
    ``assumption_sets``.
    """
    parallel = config.USE_PARALLEL_PROCESSING if parallel is None else parallel
    names = list(assumption_sets)
    if parallel and len(names) > 1:
        logger.info("running %d projections on up to %d workers", len(names), config.MAX_WORKERS)
        with ProcessPoolExecutor(max_workers=config.MAX_WORKERS) as pool:
            futures = {name: pool.submit(run_projection, scenario, assumption_sets[name]) for name in names}
            return {name: futures[name].result() for name in names}
    return {name: run_projection(scenario, assumption_sets[name]) for name in names}
