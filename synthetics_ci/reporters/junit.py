"""JUnit XML reporter."""

import logging
import xml.etree.ElementTree as ET
from collections import Counter
from collections.abc import Sequence
from pathlib import Path

from synthetics_ci.models.api import (
    ApiOutcome,
    BrowserOutcome,
    BrowserStep,
    TestDefinition,
)
from synthetics_ci.models.result import Result, Summary
from synthetics_ci.models.suite import ExecutionRule
from synthetics_ci.reporters.base import Reporter, get_batch_url, get_result_url

log = logging.getLogger(__name__)

DEFAULT_RUN_NAME = "Undefined run"
DEFAULT_SUITE_NAME = "Undefined suite"
STAT_NAMES: Sequence[str] = (
    "allowfailures",
    "errors",
    "failures",
    "skipped",
    "tests",
    "warnings",
)


def get_default_stats() -> Counter[str]:
    """Zeroed stats carried by test suites and test cases."""
    return Counter(dict.fromkeys(STAT_NAMES, 0))


class JUnitReporter(Reporter):
    """Writes a JUnit XML report at the end of the run.

    One ``testsuite`` is created per suite file and one ``testcase`` per
    result. Step errors, browser errors and warnings become child elements of
    the test case so that CI systems can display them.
    """

    def __init__(self, destination: str | Path, run_name: str | None = None) -> None:
        destination = Path(destination)
        if destination.suffix != ".xml":
            destination = destination.with_name(f"{destination.name}.xml")
        self.destination = destination
        self.root = ET.Element("testsuites", name=run_name or DEFAULT_RUN_NAME)
        self.suites: dict[str, ET.Element] = {}
        self.suite_stats: dict[str, Counter[str]] = {}

    def test_trigger(
        self,
        test: TestDefinition,
        result_id: str,
        execution_rule: ExecutionRule,
        location: str,
    ) -> None:
        pass

    def result_received(self, result: Result, base_url: str) -> None:
        pass

    def result_end(self, result: Result, base_url: str) -> None:
        suite_name = result.test.suite or DEFAULT_SUITE_NAME
        if suite_name not in self.suites:
            self.suites[suite_name] = ET.SubElement(
                self.root, "testsuite", name=suite_name
            )
            self.suite_stats[suite_name] = get_default_stats()

        testcase, stats = self.build_testcase(result, base_url)
        self.suites[suite_name].append(testcase)

        suite_stats = self.suite_stats[suite_name]
        suite_stats.update(stats)
        _set_stats(self.suites[suite_name], suite_stats)

    def run_end(self, summary: Summary, base_url: str) -> None:
        attributes = {
            "batch_id": summary.batch_id or "",
            "batch_url": (
                get_batch_url(base_url, summary.batch_id) if summary.batch_id else ""
            ),
            "tests_critical_error": summary.critical_errors,
            "tests_failed": summary.failed,
            "tests_failed_non_blocking": summary.failed_non_blocking,
            "tests_not_found": len(summary.tests_not_found),
            "tests_passed": summary.passed,
            "tests_skipped": summary.skipped,
            "tests_timed_out": summary.timed_out,
        }
        for key, value in attributes.items():
            self.root.set(key, str(value))

        try:
            self.destination.parent.mkdir(parents=True, exist_ok=True)
            tree = ET.ElementTree(self.root)
            ET.indent(tree)
            tree.write(self.destination, encoding="utf-8", xml_declaration=True)
        except OSError as e:
            log.error("Unable to write JUnit report to %s: %s", self.destination, e)
            return

        log.info("JUnit XML report saved at %s", self.destination)

    def build_testcase(
        self, result: Result, base_url: str
    ) -> tuple[ET.Element, Counter[str]]:
        """Build the ``testcase`` element of a result and its stats."""
        stats = get_default_stats()
        testcase = ET.Element(
            "testcase",
            name=result.test.name or result.test.public_id,
            classname=result.test.suite or DEFAULT_SUITE_NAME,
            time=f"{(result.outcome.duration or 0) / 1000:.3f}",
            location=result.location,
            result_id=result.result_id,
            result_url=get_result_url(base_url, result),
            execution_rule=result.execution_rule,
        )

        match result.outcome:
            case BrowserOutcome(step_details=steps):
                for step in _flatten_steps(steps):
                    _add_browser_step(testcase, stats, step)
                if result.timed_out and result.outcome.failure is not None:
                    _add_error(
                        testcase, stats, "timeout", result.outcome.failure.message
                    )
            case ApiOutcome(steps=steps) if steps:
                stats["tests"] += len(steps)
                for api_step in steps:
                    if api_step.failure is None:
                        continue
                    if api_step.allow_failure:
                        _add_child(
                            testcase,
                            "allowed_error",
                            api_step.failure.message,
                            type=api_step.failure.code,
                            step=api_step.name,
                        )
                        stats["allowfailures"] += 1
                    else:
                        _add_error(
                            testcase,
                            stats,
                            api_step.failure.code,
                            api_step.failure.message,
                            step=api_step.name,
                        )
            case ApiOutcome(failure=failure):
                stats["tests"] += 1
                if failure is not None and not result.outcome.passed:
                    _add_error(testcase, stats, failure.code, failure.message)

        if result.execution_rule == "skipped":
            stats["skipped"] += 1

        _set_stats(testcase, stats)
        return testcase, stats


def _flatten_steps(steps: Sequence[BrowserStep]) -> Sequence[BrowserStep]:
    flattened: list[BrowserStep] = []
    for step in steps:
        flattened.append(step)
        flattened.extend(_flatten_steps(step.sub_test_step_details))
    return flattened


def _add_browser_step(
    testcase: ET.Element, stats: Counter[str], step: BrowserStep
) -> None:
    stats["tests"] += 1
    if step.skipped:
        stats["skipped"] += 1

    if step.error:
        if step.allow_failure:
            _add_child(
                testcase,
                "allowed_error",
                step.error,
                type=step.type,
                step=step.description,
            )
            stats["allowfailures"] += 1
        else:
            _add_error(testcase, stats, step.type, step.error, step=step.description)
            stats["failures"] += 1

    for browser_error in step.browser_errors:
        _add_child(
            testcase,
            "browser_error",
            browser_error.description,
            type=browser_error.type,
            name=browser_error.name,
            step=step.description,
        )
        stats["errors"] += 1

    for warning in step.warnings:
        _add_child(
            testcase,
            "warning",
            warning.message,
            type=warning.type,
            step=step.description,
        )
        stats["warnings"] += 1


def _add_error(
    testcase: ET.Element,
    stats: Counter[str],
    error_type: str,
    message: str,
    **attributes: str,
) -> None:
    _add_child(testcase, "error", message, type=error_type, **attributes)
    stats["errors"] += 1


def _add_child(parent: ET.Element, tag: str, text: str, **attributes: str) -> None:
    child = ET.SubElement(parent, tag, attributes)
    child.text = text


def _set_stats(element: ET.Element, stats: Counter[str]) -> None:
    for name in STAT_NAMES:
        element.set(name, str(stats[name]))
