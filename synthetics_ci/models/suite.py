"""Models for test suites and the test specifications expanded from them."""

from collections.abc import Mapping, Sequence
from typing import Any, Literal, TypeAlias

from pydantic import ConfigDict, Field

from synthetics_ci.models.base import Model

ExecutionRule: TypeAlias = Literal["blocking", "non_blocking", "skipped"]


class TestOverrides(Model):
    """Per-test configuration overrides.

    Keys other than the ones declared here (``startUrl``, ``deviceIds``,
    ``followRedirects``...) are kept as-is and forwarded to the trigger call.
    """

    __test__ = False

    model_config = ConfigDict(extra="allow")

    execution_rule: ExecutionRule | None = None
    locations: Sequence[str] | None = None
    variables: Mapping[str, str] | None = None
    polling_timeout: int | None = Field(
        default=None, description="Polling timeout in milliseconds"
    )

    def merged_with(self, other: "TestOverrides") -> "TestOverrides":
        """Return a copy where keys set in ``other`` win."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data.update(other.model_dump(by_alias=True, exclude_none=True))
        return TestOverrides.model_validate(data)


class TestSpecification(Model):
    """A test to run, identified by its public ID."""

    __test__ = False

    public_id: str
    suite: str | None = None
    overrides: TestOverrides = Field(default_factory=TestOverrides)
    definition: Mapping[str, Any] | None = Field(
        default=None,
        description="Inline test body; set when the test is not fetched remotely",
    )

    @property
    def is_inline(self) -> bool:
        """Whether the test is defined locally instead of referenced."""
        return self.definition is not None


class SuiteTest(Model):
    """Single entry of a suite file's ``tests`` list."""

    __test__ = False

    id: str | None = None
    config: Mapping[str, Any] = Field(default_factory=dict)


class SuiteContent(Model):
    """Body of a suite file."""

    tests: Sequence[SuiteTest] = Field(default_factory=list)
    config: Mapping[str, Any] = Field(
        default_factory=dict, description="Overrides applied to every test"
    )


class TestSuite(Model):
    """A suite file loaded from disk."""

    __test__ = False

    name: str
    content: SuiteContent
