"""Scenario assertions, catalog and runner."""

from .assertions import ScenarioAssertions
from .catalog import Scenario, load_catalog, parse_catalog
from .runner import RunReport, ScenarioResult, ScenarioRunner, ScenarioStatus

__all__ = [
    "ScenarioAssertions",
    "Scenario",
    "load_catalog",
    "parse_catalog",
    "RunReport",
    "ScenarioResult",
    "ScenarioRunner",
    "ScenarioStatus",
]
