"""
Integration tests: catalog scenarios through assertions, fetcher and runner
against fake backends, down to the written reports.
"""

import json
import logging
import time

import pytest
import requests

from proxydiff.comparison.diff_reporter import DiffReporter, summarize_failures
from proxydiff.config.settings import Settings
from proxydiff.scenarios.assertions import ScenarioAssertions
from proxydiff.scenarios.catalog import Scenario
from proxydiff.scenarios.runner import RunReport, ScenarioRunner, ScenarioStatus
from tests.fakes import CMS_PAGE, LEGACY_PAGE, FakeBackends

NOT_FOUND_PAGE = "<html><body><h1>Not Found</h1><p>The requested URL was not found on this server.</p></body></html>"

SHAREPOINT_STUB = "<html><body>" + "Microsoft FrontPage Server Extensions stub. " * 20 + "</body></html>"


@pytest.fixture
def pages():
    return {
        "old": {
            "/": (200, {}, CMS_PAGE),
            "/zonk": (404, {}, NOT_FOUND_PAGE),
            "/?foo7": (200, {}, LEGACY_PAGE),
            "/javascript-help": (200, {}, LEGACY_PAGE),
            "/_vti_bin/": (200, {}, SHAREPOINT_STUB),
            "/_vti_bin/?zonzon": (200, {}, SHAREPOINT_STUB),
            "/_vti_bin": (301, {"Location": "https://www.epfl.ch/_vti_bin/"}, "moved"),
            "/cgi-bin/": (403, {}, "<h1>Forbidden</h1>"),
        },
        "new": {
            "/": (200, {}, CMS_PAGE),
            "/zonk": (200, {}, CMS_PAGE),
            "/?foo7": (200, {}, LEGACY_PAGE),
            "/javascript-help": (200, {}, "<html><body>Help has moved elsewhere</body></html>"),
            "/_vti_bin/": (200, {}, SHAREPOINT_STUB),
            "/_vti_bin/?zonzon": (200, {}, CMS_PAGE),
            "/_vti_bin": (301, {"Location": "https://www.epfl.ch/_vti_bin/"}, "moved"),
            "/cgi-bin/": requests.exceptions.ConnectionError("connection refused"),
        },
    }


def _runner(settings, pages, max_workers=4):
    backends = FakeBackends(pages)
    assertions = ScenarioAssertions.from_settings(settings, session_factory=backends)
    return ScenarioRunner(assertions, max_workers=max_workers), backends


SCENARIOS = [
    Scenario("homepage", "same", ["/"], classify="cms"),
    Scenario("zonk", "different", ["/zonk"], classify="cms"),
    Scenario("foo7", "different", ["/?foo7"], classify="cms"),
    Scenario("javascript-help", "different", ["/javascript-help"], classify="cms"),
    Scenario("vti_bin", "same", ["/_vti_bin/", "/_vti_bin/?zonzon", "/_vti_bin"]),
    Scenario("cgi-bin", "different", ["/cgi-bin/"], classify="cms"),
    Scenario("csoldap", "same", ["/cgi-bin/csoldap"], pending=True),
]


@pytest.fixture
def report(settings, pages):
    runner, _ = _runner(settings, pages)
    return runner.run(SCENARIOS)


def _result(report, name):
    return next(r for r in report.results if r.name == name)


class TestRunOutcomes:
    def test_results_keep_catalog_order(self, report):
        assert [r.name for r in report.results] == [s.name for s in SCENARIOS]

    def test_backends_recorded(self, report):
        assert report.old_backend == "old@128.178.222.108:443"
        assert report.new_backend == "new@128.178.222.7:443"

    def test_homepage_and_zonk_pass(self, report):
        assert _result(report, "homepage").status == ScenarioStatus.PASS
        zonk = _result(report, "zonk")
        assert zonk.status == ScenarioStatus.PASS
        assert zonk.details["checked"] == [{"path": "/zonk", "status_code": 200}]

    def test_unchanged_page_fails_divergence(self, report):
        foo7 = _result(report, "foo7")

        assert foo7.status == ScenarioStatus.FAIL
        assert foo7.details["error_type"] == "DivergenceAssertionError"
        assert foo7.details["score"] == 1.0
        assert foo7.details["path"] == "/?foo7"

    def test_non_cms_page_fails_classification(self, report):
        result = _result(report, "javascript-help")

        assert result.status == ScenarioStatus.FAIL
        assert result.details["error_type"] == "ClassificationAssertionError"

    def test_multi_path_stops_at_first_failure(self, report):
        vti = _result(report, "vti_bin")

        assert vti.status == ScenarioStatus.FAIL
        assert vti.details["path"] == "/_vti_bin/?zonzon"
        assert vti.details["reason"] == "similarity"
        assert vti.details["new_body"] == CMS_PAGE
        assert vti.details["diff"]
        assert vti.details["checked"] == [{"path": "/_vti_bin/", "status_code": 200}]

    def test_unreachable_backend_is_error_not_failure(self, report):
        cgi = _result(report, "cgi-bin")

        assert cgi.status == ScenarioStatus.ERROR
        assert cgi.details["side"] == "new"
        assert cgi.details["error_type"] == "connectivity"
        assert "connection refused" in cgi.message

    def test_pending_not_fetched(self, settings, pages):
        runner, backends = _runner(settings, pages)
        report = runner.run([SCENARIOS[-1]])

        assert report.results[0].status == ScenarioStatus.PENDING
        assert report.results[0].message == "not implemented yet"
        assert backends.calls == []

    def test_assertion_failure_logged_once_as_warning(self, settings, pages, caplog):
        caplog.set_level(logging.DEBUG)
        runner, _ = _runner(settings, pages)

        runner.run([SCENARIOS[2]])

        entries = [json.loads(r.getMessage()) for r in caplog.records if r.name.startswith("proxydiff")]
        assert not [e for e in entries if e["level"] == "ERROR"]
        assert [e["message"] for e in entries if e["level"] == "WARNING"] == ["Scenario failed: foo7"]
        failed = next(e for e in entries if e["message"] == "Failed assert_divergent")
        assert failed["level"] == "INFO"
        assert failed["context"]["path"] == "/?foo7"

    def test_statistics(self, report):
        assert report.statistics() == {
            "total": 7,
            "passed": 2,
            "failed": 3,
            "errors": 1,
            "pending": 1,
        }
        assert report.succeeded is False

    def test_serial_run_matches_concurrent(self, settings, pages, report):
        runner, _ = _runner(settings, pages, max_workers=1)
        serial = runner.run(SCENARIOS)

        assert [(r.name, r.status) for r in serial.results] == [
            (r.name, r.status) for r in report.results
        ]


class TestIsolation:
    def test_unexpected_exception_only_errors_its_scenario(self, settings, pages):
        runner, _ = _runner(settings, pages)
        scenarios = [
            Scenario("unknown path", "same", ["/nowhere"]),
            Scenario("homepage", "same", ["/"], classify="cms"),
        ]

        report = runner.run(scenarios)

        crashed, homepage = report.results
        assert crashed.status == ScenarioStatus.ERROR
        assert crashed.details["error_type"] == "KeyError"
        assert homepage.status == ScenarioStatus.PASS

    def test_timeout_reported_as_timeout(self, settings, pages):
        pages["old"]["/"] = requests.exceptions.ReadTimeout("read timed out")
        runner, _ = _runner(settings, pages)

        (result,) = runner.run([SCENARIOS[0]]).results

        assert result.status == ScenarioStatus.ERROR
        assert result.details["side"] == "old"
        assert result.details["error_type"] == "timeout"

    def test_deadline_spans_every_path(self):
        settings = Settings(scenario_timeout=0.4, connect_timeout=0.1)
        paths = ["/a", "/b", "/c", "/d"]
        page = (200, {}, CMS_PAGE)
        backends = FakeBackends(
            {side: {path: page for path in paths} for side in ("old", "new")}, delay=0.25
        )
        runner = ScenarioRunner(ScenarioAssertions.from_settings(settings, session_factory=backends))

        start = time.monotonic()
        (result,) = runner.run([Scenario("slow", "same", paths)]).results
        elapsed = time.monotonic() - start

        assert result.status == ScenarioStatus.ERROR
        assert result.details["error_type"] == "timeout"
        assert result.details["path"] == "/b"
        assert result.details["checked"] == [{"path": "/a", "status_code": 200}]
        assert elapsed < 0.9
        assert {url for _, url, _ in backends.calls} == {
            "https://www.epfl.ch/a",
            "https://www.epfl.ch/b",
        }

    def test_all_passing_run_succeeds(self, settings, pages):
        runner, _ = _runner(settings, pages)
        report = runner.run([SCENARIOS[0], SCENARIOS[1], SCENARIOS[-1]])

        assert report.succeeded is True


class TestReports:
    def test_write_reports(self, report, tmp_path):
        json_path, md_path = DiffReporter(tmp_path / "out").write_reports(report)

        data = json.loads(json_path.read_text(encoding="utf-8"))
        assert data["statistics"]["total"] == 7
        assert [r["status"] for r in data["results"]][:3] == ["pass", "pass", "fail"]

        summary = md_path.read_text(encoding="utf-8")
        assert "# Differential Run Summary" in summary
        assert "**FAIL** vti_bin" in summary
        assert "### vti_bin (/_vti_bin/?zonzon)" in summary
        assert "```diff" in summary

    def test_summarize_failures(self, report):
        failures = summarize_failures(report.results)

        assert [f["name"] for f in failures] == ["foo7", "javascript-help", "vti_bin", "cgi-bin"]
        assert all("\n" not in f["message"] for f in failures)

    def test_empty_report(self, tmp_path):
        summary = DiffReporter(tmp_path).generate_markdown_summary(RunReport())
        assert "- **Scenarios:** 0" in summary
