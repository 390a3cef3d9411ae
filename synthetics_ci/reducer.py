"""Reduction of test results into run counters and the exit code."""

import logging
from dataclasses import dataclass, field

from synthetics_ci.config import RunConfig
from synthetics_ci.models.api import ApiOutcome, BrowserOutcome
from synthetics_ci.models.result import Result, Summary
from synthetics_ci.models.suite import TestSpecification

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class ResultReducer:
    """Owns the run summary; every counter update goes through it."""

    summary: Summary = field(default_factory=Summary)

    def reduce(self, result: Result) -> None:
        """Account for one received result.

        The timed-out counter is independent of the pass/fail counters: a
        result can count as both failed and timed out.
        """
        if result.timed_out:
            self.summary.timed_out += 1

        if result.outcome.unhealthy:
            self.summary.critical_errors += 1

        if result.execution_rule == "skipped":
            self.summary.skipped += 1
        elif result.passed:
            self.summary.passed += 1
        elif result.execution_rule == "non_blocking":
            self.summary.failed_non_blocking += 1
        else:
            self.summary.failed += 1

    def record_batch(self, batch_id: str) -> None:
        """Attach the triggered batch to the summary."""
        self.summary.batch_id = batch_id

    def record_skipped(self, specification: TestSpecification) -> None:
        """Account for a test that was not triggered because it is skipped."""
        log.debug("Test %s skipped", specification.public_id)
        self.summary.skipped += 1

    def record_not_found(self, public_id: str) -> None:
        """Account for a test the service does not know about."""
        self.summary.tests_not_found.add(public_id)

    def record_critical_error(self) -> None:
        """Account for a critical error that did not abort the run."""
        self.summary.critical_errors += 1


def has_result_passed(
    outcome: BrowserOutcome | ApiOutcome,
    *,
    timed_out: bool,
    fail_on_critical_errors: bool,
    fail_on_timeout: bool,
) -> bool:
    """Decide whether a result passes given the run's escalation flags."""
    if outcome.unhealthy and not fail_on_critical_errors:
        return True
    if timed_out and not fail_on_timeout:
        return True
    return outcome.passed


def get_exit_code(summary: Summary, config: RunConfig) -> int:
    """Compute the process exit code of a finished run.

    Non-blocking failures, skipped tests and tests not found never fail the
    run on their own. The escalation conditions are combined with OR.
    """
    if summary.failed > 0:
        return 1
    if summary.critical_errors > 0 and config.fail_on_critical_errors:
        return 1
    if summary.timed_out > 0 and config.fail_on_timeout:
        return 1
    return 0
