"""
Command-line entry point for the differential harness.

    proxydiff run      - run the scenario catalog against both backends
    proxydiff compare  - one-off comparison of a single path
    proxydiff probe    - TLS-dial both backends and report

Exit status is 0 when every checked scenario passed, 1 on any failure or
error, 2 on configuration problems.
"""

import argparse
import sys
from typing import List, Optional

from proxydiff.api.dual_fetcher import create_fetcher
from proxydiff.comparison.diff_reporter import DiffReporter, summarize_failures
from proxydiff.config.settings import Settings, load_settings
from proxydiff.exceptions import ConfigurationError, FetchError, ScenarioAssertionError
from proxydiff.scenarios.assertions import ScenarioAssertions
from proxydiff.scenarios.catalog import EXPECT_DIFFERENT, EXPECT_SAME, load_catalog
from proxydiff.scenarios.runner import RunReport, ScenarioRunner
from proxydiff.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proxydiff",
        description="Compare how two backends serve the same site.",
    )
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every request")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the scenario catalog")
    run_parser.add_argument("--scenarios", help="Scenario catalog YAML (default: bundled catalog)")
    run_parser.add_argument("--output-dir", help="Write JSON and Markdown reports here")
    run_parser.add_argument("--max-workers", type=int, help="Scenarios run concurrently")

    compare_parser = subparsers.add_parser("compare", help="Compare a single path")
    compare_parser.add_argument("path", help="Path with optional query string, e.g. /?foo7")
    compare_parser.add_argument(
        "--expect", choices=[EXPECT_SAME, EXPECT_DIFFERENT], default=EXPECT_SAME
    )

    subparsers.add_parser("probe", help="TLS-dial both backends")

    return parser


def print_run_summary(report: RunReport) -> None:
    stats = report.statistics()
    print("\n" + "=" * 80)
    print(f"DIFFERENTIAL RUN: {report.old_backend} -> {report.new_backend}")
    print("=" * 80)
    for result in report.results:
        print(f"  [{result.status.value.upper():7}] {result.name}")
    print("-" * 80)
    print(
        f"Total: {stats['total']}  Passed: {stats['passed']}  Failed: {stats['failed']}  "
        f"Errors: {stats['errors']}  Pending: {stats['pending']}"
    )
    for failure in summarize_failures(report.results):
        print(f"\n  {failure['name']}: {failure['message']}")
    print("=" * 80 + "\n")


def command_run(settings: Settings, args: argparse.Namespace) -> int:
    scenarios = load_catalog(args.scenarios or settings.scenarios_file)
    assertions = ScenarioAssertions.from_settings(settings)
    runner = ScenarioRunner(assertions, max_workers=args.max_workers or settings.max_workers)

    report = runner.run(scenarios)
    print_run_summary(report)

    output_dir = args.output_dir or settings.output_dir
    if output_dir:
        DiffReporter(output_dir).write_reports(report)

    return EXIT_OK if report.succeeded else EXIT_FAILED


def command_compare(settings: Settings, args: argparse.Namespace) -> int:
    assertions = ScenarioAssertions.from_settings(settings)
    try:
        if args.expect == EXPECT_DIFFERENT:
            response = assertions.assert_divergent(args.path)
        else:
            response = assertions.assert_equivalent(args.path)
    except ScenarioAssertionError as e:
        print(f"FAIL {args.path}: {e}")
        return EXIT_FAILED
    except FetchError as e:
        print(f"ERROR {args.path}: {e}")
        return EXIT_FAILED

    verdict = assertions.classifier.classify(response)
    print(f"PASS {args.path}: status {response.status_code}, new response looks {verdict.value}")
    return EXIT_OK


def command_probe(settings: Settings, args: argparse.Namespace) -> int:
    fetcher = create_fetcher(settings)
    status = EXIT_OK
    for side, transport in fetcher.transports.items():
        try:
            tls_sock = transport.dial()
        except FetchError as e:
            print(f"  {side}: {e}")
            status = EXIT_FAILED
            continue
        with tls_sock:
            print(f"  {side}: {transport.backend} reachable, {tls_sock.version()} as {transport.logical_host}")
    return status


COMMANDS = {
    "run": command_run,
    "compare": command_compare,
    "probe": command_probe,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(args.verbose or settings.verbose)
    logger.debug(
        "Settings loaded",
        operation="startup",
        context=settings.to_dict(),
    )

    try:
        return COMMANDS[args.command](settings, args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
