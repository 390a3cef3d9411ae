"""Tests for reporter helpers."""

from unittest.mock import Mock, call

import pytest

from synthetics_ci.models.result import Summary
from synthetics_ci.reporters.base import MultiReporter, Reporter, get_result_status
from synthetics_ci.testing.factories import ResultFactory, TestDefinitionFactory


@pytest.mark.parametrize(
    ("passed", "timed_out", "execution_rule", "expected"),
    [
        (True, False, "blocking", "passed"),
        (False, False, "blocking", "failed"),
        (False, False, "non_blocking", "failed_non_blocking"),
        (False, True, "blocking", "timed_out"),
        (True, True, "blocking", "passed"),
        (True, False, "skipped", "skipped"),
    ],
)
def test_get_result_status(
    passed: bool, timed_out: bool, execution_rule: str, expected: str
) -> None:
    """Derives the displayed status from the result."""
    result = ResultFactory.build(
        passed=passed, timed_out=timed_out, execution_rule=execution_rule
    )

    assert get_result_status(result) == expected


def test_multi_reporter_forwards_events_in_order() -> None:
    """Forwards every event to each reporter."""
    first, second = Mock(spec=Reporter), Mock(spec=Reporter)
    manager = Mock()
    manager.attach_mock(first, "first")
    manager.attach_mock(second, "second")
    reporter = MultiReporter([first, second])
    test = TestDefinitionFactory.build()
    result = ResultFactory.build()
    summary = Summary()

    reporter.test_trigger(test, "111", "blocking", "aws:eu-central-1")
    reporter.result_received(result, "https://app.datadoghq.com/")
    reporter.result_end(result, "https://app.datadoghq.com/")
    reporter.run_end(summary, "https://app.datadoghq.com/")

    assert manager.mock_calls == [
        call.first.test_trigger(test, "111", "blocking", "aws:eu-central-1"),
        call.second.test_trigger(test, "111", "blocking", "aws:eu-central-1"),
        call.first.result_received(result, "https://app.datadoghq.com/"),
        call.second.result_received(result, "https://app.datadoghq.com/"),
        call.first.result_end(result, "https://app.datadoghq.com/"),
        call.second.result_end(result, "https://app.datadoghq.com/"),
        call.first.run_end(summary, "https://app.datadoghq.com/"),
        call.second.run_end(summary, "https://app.datadoghq.com/"),
    ]
