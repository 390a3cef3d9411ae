"""Tests for error taxonomy."""

import pytest

from synthetics_ci.config import RunConfig
from synthetics_ci.errors import (
    CRITICAL_ERROR_CODES,
    NON_CRITICAL_ERROR_CODES,
    ApiRequestError,
    CiError,
    CriticalError,
    classify_api_error,
    is_fatal,
)


def test_error_codes_are_disjoint() -> None:
    """No code is both critical and non-critical."""
    assert NON_CRITICAL_ERROR_CODES == {"NO_TESTS_TO_RUN"}
    assert not CRITICAL_ERROR_CODES & NON_CRITICAL_ERROR_CODES
    assert "POLL_RESULTS_FAILED" in CRITICAL_ERROR_CODES


def test_ci_error_str_includes_code() -> None:
    """Formats errors as code followed by message."""
    assert str(CiError("NO_TESTS_TO_RUN", "All tests are skipped")) == (
        "NO_TESTS_TO_RUN: All tests are skipped"
    )
    assert str(CiError("NO_TESTS_TO_RUN")) == "NO_TESTS_TO_RUN"


def test_critical_error_rejects_non_critical_code() -> None:
    """Refuses to build a critical error from a non-critical code."""
    with pytest.raises(ValueError, match="NO_TESTS_TO_RUN"):
        CriticalError("NO_TESTS_TO_RUN")  # type: ignore[arg-type]


def test_critical_error_is_ci_error() -> None:
    """Critical errors can be handled as any run error."""
    error = CriticalError("TRIGGER_TESTS_FAILED", "boom")

    assert isinstance(error, CiError)
    assert error.code == "TRIGGER_TESTS_FAILED"
    assert error.message == "boom"


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (401, "AUTHORIZATION_ERROR"),
        (403, "AUTHORIZATION_ERROR"),
        (500, "TRIGGER_TESTS_FAILED"),
        (502, "TRIGGER_TESTS_FAILED"),
        (None, "TRIGGER_TESTS_FAILED"),
    ],
)
def test_classify_api_error(status: int | None, expected: str) -> None:
    """Maps credential rejections to AUTHORIZATION_ERROR, others to the stage."""
    error = classify_api_error(
        ApiRequestError("request failed", status=status), "TRIGGER_TESTS_FAILED"
    )

    assert error.code == expected
    assert "request failed" in error.message


@pytest.mark.parametrize(
    ("error", "message"),
    [
        (RuntimeError("Unknown error"), "Unknown error"),
        (KeyError("data"), "'data'"),
        (RuntimeError(), "RuntimeError"),
    ],
)
def test_classify_unexpected_error(error: Exception, message: str) -> None:
    """Gives any other exception the stage's code."""
    classified = classify_api_error(error, "POLL_RESULTS_FAILED")

    assert classified.code == "POLL_RESULTS_FAILED"
    assert classified.message == message


def test_api_request_error_status_helpers() -> None:
    """Exposes not found and forbidden statuses."""
    assert ApiRequestError("x", status=404).is_not_found
    assert not ApiRequestError("x", status=404).is_forbidden
    assert ApiRequestError("x", status=403).is_forbidden
    assert not ApiRequestError("x").is_not_found


def test_is_fatal_follows_fail_on_critical_errors() -> None:
    """Only critical errors abort, and only when escalated."""
    critical = CriticalError("POLL_RESULTS_FAILED")
    non_critical = CiError("NO_TESTS_TO_RUN")

    assert is_fatal(critical, RunConfig(fail_on_critical_errors=True))
    assert not is_fatal(critical, RunConfig(fail_on_critical_errors=False))
    assert not is_fatal(non_critical, RunConfig(fail_on_critical_errors=True))
