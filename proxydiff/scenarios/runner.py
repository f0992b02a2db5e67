"""
Scenario runner.

Runs catalog scenarios concurrently. Every outcome is scenario-scoped: a
failure or a dead backend in one scenario is recorded and the others carry on.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from proxydiff.domain.records import ResponseRecord
from proxydiff.exceptions import (
    DivergenceAssertionError,
    EquivalenceAssertionError,
    FetchError,
    FetchTimeoutError,
    ScenarioAssertionError,
)
from proxydiff.scenarios.assertions import ScenarioAssertions
from proxydiff.scenarios.catalog import CLASSIFY_CMS, EXPECT_DIFFERENT, Scenario
from proxydiff.utils.logger import get_logger

logger = get_logger(__name__)


class ScenarioStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    PENDING = "pending"


@dataclass
class ScenarioResult:
    """Outcome of one scenario."""

    name: str
    status: ScenarioStatus
    message: str = ""
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class RunReport:
    """All scenario results of one run, in catalog order."""

    old_backend: str = ""
    new_backend: str = ""
    results: List[ScenarioResult] = field(default_factory=list)

    def statistics(self) -> Dict[str, int]:
        counts = {status: 0 for status in ScenarioStatus}
        for result in self.results:
            counts[result.status] += 1
        return {
            "total": len(self.results),
            "passed": counts[ScenarioStatus.PASS],
            "failed": counts[ScenarioStatus.FAIL],
            "errors": counts[ScenarioStatus.ERROR],
            "pending": counts[ScenarioStatus.PENDING],
        }

    @property
    def succeeded(self) -> bool:
        return all(
            r.status in (ScenarioStatus.PASS, ScenarioStatus.PENDING) for r in self.results
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "old_backend": self.old_backend,
            "new_backend": self.new_backend,
            "statistics": self.statistics(),
            "results": [r.to_dict() for r in self.results],
        }


def _failure_details(error: ScenarioAssertionError) -> Dict[str, Any]:
    details: Dict[str, Any] = {"path": error.path, "error_type": type(error).__name__}
    if isinstance(error, EquivalenceAssertionError):
        details.update(
            reason=error.reason,
            score=error.score,
            diff=error.diff,
            old_body=error.old_body,
            new_body=error.new_body,
        )
    elif isinstance(error, DivergenceAssertionError):
        details.update(score=error.score, threshold=error.threshold)
    return details


class ScenarioRunner:
    """Executes scenarios on a thread pool and collects a RunReport."""

    def __init__(self, assertions: ScenarioAssertions, max_workers: int = 4):
        self.assertions = assertions
        self.max_workers = max_workers

    def check_path(
        self, scenario: Scenario, path: str, deadline: Optional[float] = None
    ) -> ResponseRecord:
        """Apply the scenario's expectation to one path."""
        if scenario.expect == EXPECT_DIFFERENT:
            response = self.assertions.assert_divergent(path, deadline=deadline)
        else:
            response = self.assertions.assert_equivalent(path, deadline=deadline)

        if scenario.classify == CLASSIFY_CMS:
            self.assertions.assert_served_by_cms(response, path=path)
        return response

    def run_scenario(self, scenario: Scenario) -> ScenarioResult:
        """Run one scenario; never raises for fetch or assertion failures."""
        if scenario.pending:
            return ScenarioResult(scenario.name, ScenarioStatus.PENDING, "not implemented yet")

        start_time = time.time()
        # One budget for every path of the scenario
        deadline = time.monotonic() + self.assertions.fetcher.settings.scenario_timeout
        checked: List[Dict[str, Any]] = []

        def elapsed_ms() -> float:
            return (time.time() - start_time) * 1000

        for path in scenario.paths:
            try:
                response = self.check_path(scenario, path, deadline)
            except ScenarioAssertionError as e:
                logger.warning(
                    f"Scenario failed: {scenario.name}",
                    operation="run_scenario",
                    context={"path": path},
                    error=str(e).splitlines()[0],
                )
                details = _failure_details(e)
                details["checked"] = checked
                return ScenarioResult(
                    scenario.name, ScenarioStatus.FAIL, str(e), elapsed_ms(), details
                )
            except FetchError as e:
                logger.error(
                    f"Scenario errored: {scenario.name}",
                    operation="run_scenario",
                    context={"path": path, "side": e.side},
                    error=str(e),
                )
                return ScenarioResult(
                    scenario.name,
                    ScenarioStatus.ERROR,
                    str(e),
                    elapsed_ms(),
                    {
                        "path": path,
                        "side": e.side,
                        "error_type": "timeout" if isinstance(e, FetchTimeoutError) else "connectivity",
                        "checked": checked,
                    },
                )
            checked.append({"path": path, "status_code": response.status_code})

        return ScenarioResult(
            scenario.name, ScenarioStatus.PASS, "", elapsed_ms(), {"checked": checked}
        )

    def _run_isolated(self, scenario: Scenario) -> ScenarioResult:
        try:
            return self.run_scenario(scenario)
        except Exception as e:
            # Unexpected bugs still only take down their own scenario
            logger.error(
                f"Scenario crashed: {scenario.name}",
                operation="run_scenario",
                error=repr(e),
            )
            return ScenarioResult(
                scenario.name, ScenarioStatus.ERROR, repr(e), details={"error_type": type(e).__name__}
            )

    def run(self, scenarios: List[Scenario], report: Optional[RunReport] = None) -> RunReport:
        """Run all scenarios concurrently; results keep catalog order."""
        if report is None:
            transports = self.assertions.fetcher.transports
            report = RunReport(
                old_backend=str(transports["old"].backend),
                new_backend=str(transports["new"].backend),
            )

        logger.info(
            f"Running {len(scenarios)} scenarios",
            operation="run",
            context={"max_workers": self.max_workers},
        )
        start_time = time.time()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="proxydiff-scenario") as executor:
            results = list(executor.map(self._run_isolated, scenarios))

        report.results.extend(results)
        logger.info(
            "Run complete",
            operation="run",
            context=report.statistics(),
            duration_ms=(time.time() - start_time) * 1000,
        )
        return report
