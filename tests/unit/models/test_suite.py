"""Tests for suite models."""

from synthetics_ci.models.suite import TestOverrides, TestSpecification


def test_merged_with_prefers_other_keys() -> None:
    """Keys set in the other overrides win, unset keys are kept."""
    base = TestOverrides.model_validate(
        {"executionRule": "blocking", "pollingTimeout": 1000, "startUrl": "a"}
    )
    other = TestOverrides.model_validate({"pollingTimeout": 2000, "startUrl": "b"})

    merged = base.merged_with(other)

    assert merged.execution_rule == "blocking"
    assert merged.polling_timeout == 2000
    assert merged.model_dump(by_alias=True)["startUrl"] == "b"


def test_merged_with_replaces_variables_wholesale() -> None:
    """Merges override keys one level deep only."""
    base = TestOverrides(variables={"A": "1", "B": "2"})

    merged = base.merged_with(TestOverrides(variables={"A": "3"}))

    assert merged.variables == {"A": "3"}


def test_specification_is_inline_with_definition() -> None:
    """Only specifications carrying a body are inline."""
    assert not TestSpecification(public_id="abc-def-ghi").is_inline
    assert TestSpecification(public_id="suite#0", definition={"type": "api"}).is_inline
