"""Reporter interface and helpers shared by reporters."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, TypeAlias

from synthetics_ci.models.api import TestDefinition
from synthetics_ci.models.result import Result, Summary
from synthetics_ci.models.suite import ExecutionRule

ResultStatus: TypeAlias = Literal[
    "passed", "failed", "failed_non_blocking", "timed_out", "skipped"
]


class Reporter(ABC):
    """Consumer of run events, called in the order events happen."""

    @abstractmethod
    def test_trigger(
        self,
        test: TestDefinition,
        result_id: str,
        execution_rule: ExecutionRule,
        location: str,
    ) -> None:
        """Report a test execution started (or skipped) by the trigger call."""

    @abstractmethod
    def result_received(self, result: Result, base_url: str) -> None:
        """Report a result as soon as it is complete."""

    @abstractmethod
    def result_end(self, result: Result, base_url: str) -> None:
        """Report a result once it has been accounted for in the summary."""

    @abstractmethod
    def run_end(self, summary: Summary, base_url: str) -> None:
        """Report the end of the run with the final summary."""


@dataclass(frozen=True)
class MultiReporter(Reporter):
    """Forwards every event to several reporters, in order."""

    reporters: Sequence[Reporter]

    def test_trigger(
        self,
        test: TestDefinition,
        result_id: str,
        execution_rule: ExecutionRule,
        location: str,
    ) -> None:
        for reporter in self.reporters:
            reporter.test_trigger(test, result_id, execution_rule, location)

    def result_received(self, result: Result, base_url: str) -> None:
        for reporter in self.reporters:
            reporter.result_received(result, base_url)

    def result_end(self, result: Result, base_url: str) -> None:
        for reporter in self.reporters:
            reporter.result_end(result, base_url)

    def run_end(self, summary: Summary, base_url: str) -> None:
        for reporter in self.reporters:
            reporter.run_end(summary, base_url)


def get_result_status(result: Result) -> ResultStatus:
    """Status of a result as displayed to users."""
    if result.execution_rule == "skipped":
        return "skipped"
    if result.passed:
        return "passed"
    if result.timed_out:
        return "timed_out"
    if result.execution_rule == "non_blocking":
        return "failed_non_blocking"
    return "failed"


def get_result_url(base_url: str, result: Result) -> str:
    """Link to a result in the web application."""
    return (
        f"{base_url}synthetics/details/{result.test.public_id}"
        f"/result/{result.result_id}"
    )


def get_batch_url(base_url: str, batch_id: str) -> str:
    """Link to a batch in the CI results explorer."""
    return f"{base_url}synthetics/explorer/ci?batchResultId={batch_id}"
