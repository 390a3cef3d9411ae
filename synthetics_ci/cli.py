"""CLI entry point for running synthetic tests from CI."""

import argparse
import asyncio
import contextlib
import json
import logging
import os
import signal
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from synthetics_ci.api.client import DatadogApiClient
from synthetics_ci.config import (
    DEFAULT_COMMAND_CONFIG,
    DEFAULT_CONFIG_PATH,
    RunConfig,
    load_config_file,
    resolve_config,
)
from synthetics_ci.errors import ConfigurationError
from synthetics_ci.models.result import Summary
from synthetics_ci.models.suite import TestSpecification
from synthetics_ci.orchestrator import TestOrchestrator
from synthetics_ci.reporters.base import MultiReporter, Reporter
from synthetics_ci.reporters.default import DefaultReporter
from synthetics_ci.reporters.junit import JUnitReporter
from synthetics_ci.suite_loader import (
    get_suites,
    get_test_specifications,
    specifications_from_public_ids,
)


def cli_layer(args: argparse.Namespace) -> Mapping[str, Any]:
    """Configuration keys set by command-line flags (None when not given)."""
    return {
        "apiKey": args.api_key,
        "appKey": args.app_key,
        "configPath": args.config,
        "datadogSite": args.datadog_site,
        "failOnCriticalErrors": args.fail_on_critical_errors,
        "failOnTimeout": args.fail_on_timeout,
        "files": args.files or None,
        "publicIds": args.public_ids or None,
        "subdomain": args.subdomain,
        "testSearchQuery": args.search,
        "tunnel": args.tunnel,
        "variableStrings": args.variables or None,
    }


def load_specifications(
    config: RunConfig, env: Mapping[str, str], root: Path
) -> Sequence[TestSpecification]:
    """Resolve the tests to run from public IDs or suite files.

    In test search mode the orchestrator resolves the tests itself.
    """
    if config.public_ids:
        return specifications_from_public_ids(
            config.public_ids, config.global_overrides, env
        )
    if config.test_search_query:
        return []
    return get_test_specifications(
        get_suites(config.files, root), config.global_overrides, env
    )


def build_reporter(
    junit_report: str | None, run_name: str | None
) -> MultiReporter:
    """Create the reporters requested on the command line."""
    reporters: list[Reporter] = [DefaultReporter()]
    if junit_report:
        reporters.append(JUnitReporter(junit_report, run_name))
    return MultiReporter(reporters)


def format_output(summary: Summary) -> dict[str, Any]:
    """Format the run summary for JSON output."""
    return {
        "batch_id": summary.batch_id,
        "passed": summary.passed,
        "failed": summary.failed,
        "failed_non_blocking": summary.failed_non_blocking,
        "skipped": summary.skipped,
        "timed_out": summary.timed_out,
        "critical_errors": summary.critical_errors,
        "tests_not_found": sorted(summary.tests_not_found),
    }


async def run(
    cli_config: Mapping[str, Any],
    env: Mapping[str, str],
    root: Path,
    junit_report: str | None = None,
    run_name: str | None = None,
) -> int:
    """Run synthetic tests and return exit code."""
    log = logging.getLogger("synthetics_ci")

    config_path = cli_config.get("configPath")
    try:
        file_config = load_config_file(
            root / (config_path or DEFAULT_CONFIG_PATH),
            required=config_path is not None,
        )
        config = resolve_config(DEFAULT_COMMAND_CONFIG, file_config, env, cli_config)
        specifications = load_specifications(config, env, root)
    except ConfigurationError as e:
        log.error("%s", e)
        return 1

    log.info("Resolved %d test(s) to run", len(specifications))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        async with DatadogApiClient.from_config(config) as api:
            orchestrator = TestOrchestrator(
                api=api,
                config=config,
                reporter=build_reporter(junit_report, run_name),
                env=env,
                stop_event=stop_event,
            )
            outcome = await orchestrator.execute(specifications)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)

    if outcome.state != "ABORTED":
        print(json.dumps(format_output(outcome.summary), indent=2))

    return outcome.exit_code


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        description="Run synthetic tests and wait for their results"
    )
    parser.add_argument("--apiKey", dest="api_key", help="API key")
    parser.add_argument("--appKey", dest="app_key", help="Application key")
    parser.add_argument(
        "--config",
        help=f"Path to the configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--datadogSite", dest="datadog_site", help="Site to run the tests on"
    )
    parser.add_argument("--subdomain", help="Custom subdomain of the web application")
    parser.add_argument(
        "--files",
        "-f",
        action="append",
        help="Glob pattern of suite files (repeatable)",
    )
    parser.add_argument(
        "--public-id",
        "-p",
        dest="public_ids",
        action="append",
        help="Public ID of a test to run (repeatable)",
    )
    parser.add_argument("--search", "-s", help="Run the tests matching this query")
    parser.add_argument(
        "--tunnel",
        "-t",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run the tests through a tunnel",
    )
    parser.add_argument(
        "--failOnCriticalErrors",
        dest="fail_on_critical_errors",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Exit with code 1 on critical errors",
    )
    parser.add_argument(
        "--failOnTimeout",
        dest="fail_on_timeout",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Exit with code 1 when a result times out",
    )
    parser.add_argument(
        "--variable",
        "-v",
        dest="variables",
        action="append",
        help="Variable override as KEY=VALUE (repeatable)",
    )
    parser.add_argument(
        "--jUnitReport", "-j", dest="junit_report", help="Path of the JUnit XML report"
    )
    parser.add_argument("--runName", "-n", dest="run_name", help="Name of the run")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logs")
    return parser


def main() -> None:
    """CLI entry point."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(
        run(
            cli_config=cli_layer(args),
            env=os.environ,
            root=Path.cwd(),
            junit_report=args.junit_report,
            run_name=args.run_name,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
