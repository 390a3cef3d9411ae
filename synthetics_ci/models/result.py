"""Models for test execution results and the run summary."""

from dataclasses import dataclass, field

from synthetics_ci.models.api import ApiOutcome, BrowserOutcome, TestDefinition
from synthetics_ci.models.suite import ExecutionRule


@dataclass(frozen=True, kw_only=True)
class Result:
    """Result of one (test, location) execution.

    ``passed`` already accounts for the run's escalation flags, so reporters
    and the reducer never re-derive it from the outcome.
    """

    test: TestDefinition
    result_id: str
    location: str
    passed: bool
    timed_out: bool
    outcome: BrowserOutcome | ApiOutcome
    execution_rule: ExecutionRule


@dataclass(kw_only=True)
class Summary:
    """Running counters of a run."""

    batch_id: str | None = None
    passed: int = 0
    failed: int = 0
    failed_non_blocking: int = 0
    skipped: int = 0
    timed_out: int = 0
    critical_errors: int = 0
    tests_not_found: set[str] = field(default_factory=set)
