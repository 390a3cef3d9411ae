"""Console reporter writing through the logging system."""

import logging
from collections.abc import Mapping

from synthetics_ci.models.api import ApiOutcome, BrowserOutcome, TestDefinition
from synthetics_ci.models.result import Result, Summary
from synthetics_ci.models.suite import ExecutionRule
from synthetics_ci.reporters.base import (
    Reporter,
    ResultStatus,
    get_batch_url,
    get_result_status,
    get_result_url,
)

STATUS_SYMBOLS: Mapping[ResultStatus, str] = {
    "passed": "✅",
    "failed": "❌",
    "failed_non_blocking": "⚠️",
    "timed_out": "⏱️",
    "skipped": "⏭️",
}


class DefaultReporter(Reporter):
    """Logs run progress and a final summary."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logging.getLogger("synthetics_ci")

    def test_trigger(
        self,
        test: TestDefinition,
        result_id: str,
        execution_rule: ExecutionRule,
        location: str,
    ) -> None:
        if execution_rule == "skipped":
            self.log.info("Skipped test %s (%s)", test.name, test.public_id)
            return
        self.log.info(
            "Triggered test %s (%s) on %s%s",
            test.name,
            test.public_id,
            location,
            " [non-blocking]" if execution_rule == "non_blocking" else "",
        )

    def result_received(self, result: Result, base_url: str) -> None:
        self.log.debug(
            "Received result %s for test %s", result.result_id, result.test.public_id
        )

    def result_end(self, result: Result, base_url: str) -> None:
        status = get_result_status(result)
        self.log.info(
            "%s %s (%s) on %s: %s",
            STATUS_SYMBOLS[status],
            result.test.name,
            result.test.public_id,
            result.location,
            status,
        )
        self.log.info("  Result URL: %s", get_result_url(base_url, result))

        if result.passed:
            return

        match result.outcome:
            case BrowserOutcome(step_details=steps):
                for step in steps:
                    if step.error and not step.allow_failure:
                        self.log.info(
                            "  Step '%s' failed: %s", step.description, step.error
                        )
            case ApiOutcome(steps=steps):
                for step in steps:
                    if step.failure is not None:
                        self.log.info(
                            "  Step '%s' failed: %s", step.name, step.failure.message
                        )

        if result.outcome.failure is not None:
            self.log.info(
                "  Failure: %s %s",
                result.outcome.failure.code,
                result.outcome.failure.message,
            )

    def run_end(self, summary: Summary, base_url: str) -> None:
        self.log.info("=" * 80)
        self.log.info("Test Results Summary:")
        self.log.info("=" * 80)
        self.log.info(
            "passed=%d failed=%d failed_non_blocking=%d skipped=%d "
            "timed_out=%d critical_errors=%d not_found=%d",
            summary.passed,
            summary.failed,
            summary.failed_non_blocking,
            summary.skipped,
            summary.timed_out,
            summary.critical_errors,
            len(summary.tests_not_found),
        )
        if summary.tests_not_found:
            self.log.info(
                "Tests not found: %s", ", ".join(sorted(summary.tests_not_found))
            )
        if summary.batch_id:
            self.log.info("Batch URL: %s", get_batch_url(base_url, summary.batch_id))
