"""Pydantic models for the test-execution service API."""

from collections.abc import Mapping, Sequence
from typing import Annotated, Any, Literal, TypeAlias, Union

from pydantic import BeforeValidator, ConfigDict, Discriminator, Field, Tag

from synthetics_ci.models.base import Model, WireModel
from synthetics_ci.models.suite import ExecutionRule

# Locations are sent as names but some payloads echo numeric datacenter IDs.
LocationId = Annotated[str, BeforeValidator(str)]


class CiOptions(WireModel):
    """CI options stored on a remote test."""

    execution_rule: ExecutionRule | None = Field(default=None, alias="executionRule")


class TestOptions(WireModel):
    """Subset of a remote test's options read by the runner."""

    __test__ = False

    ci: CiOptions | None = None
    device_ids: Sequence[str] = Field(default_factory=list)


class TestDefinition(WireModel):
    """Authoritative test definition returned by the service."""

    __test__ = False

    public_id: str
    name: str = ""
    type: Literal["api", "browser"] = "api"
    subtype: str | None = None
    locations: Sequence[str] = Field(default_factory=list)
    options: TestOptions = Field(default_factory=TestOptions)
    tags: Sequence[str] = Field(default_factory=list)
    message: str = ""
    suite: str | None = Field(
        default=None, description="Name of the local suite the test came from"
    )


class SearchResponse(WireModel):
    """Response from the test search API."""

    tests: Sequence[TestDefinition] = Field(default_factory=list)


class TunnelInfo(Model):
    """Connection details of a started tunnel, forwarded with each test."""

    host: str
    id: str
    private_key: str


class TriggerTest(WireModel):
    """Single test entry of a trigger request."""

    __test__ = False

    model_config = ConfigDict(extra="allow")

    public_id: str
    execution_rule: ExecutionRule = Field(default="blocking", alias="executionRule")
    locations: Sequence[str] = Field(default_factory=list)
    polling_timeout: int = Field(..., alias="pollingTimeout")
    variables: Mapping[str, str] | None = None
    tunnel: TunnelInfo | None = None
    local_test_definition: Mapping[str, Any] | None = None


class TriggerConfig(WireModel):
    """Batch trigger request."""

    tests: Sequence[TriggerTest]

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON body expected by the trigger endpoint."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TriggeredResult(WireModel):
    """One (test, location) execution started by a trigger call."""

    public_id: str
    result_id: str
    location: LocationId
    device: str | None = None


class Trigger(WireModel):
    """Response of a trigger call."""

    batch_id: str
    results: Sequence[TriggeredResult] = Field(default_factory=list)
    locations: Sequence[Mapping[str, Any]] = Field(default_factory=list)


BatchStatus: TypeAlias = Literal["in_progress", "success", "failed"]
BatchResultStatus: TypeAlias = Literal["in_progress", "passed", "failed", "skipped"]


class BatchResult(WireModel):
    """Progress of one result inside a batch."""

    result_id: str
    test_public_id: str
    status: BatchResultStatus
    location: LocationId = ""
    execution_rule: ExecutionRule | None = None
    timed_out: bool | None = None


class Batch(WireModel):
    """Server-side state of a triggered batch."""

    status: BatchStatus
    results: Sequence[BatchResult] = Field(default_factory=list)


class Failure(Model):
    """Failure reported by a result."""

    code: str
    message: str = ""


class Device(Model):
    """Browser device a result ran on."""

    id: str
    name: str = ""
    width: int = 0
    height: int = 0


class BrowserError(Model):
    """Error raised by the browser during a step."""

    name: str = ""
    description: str = ""
    type: str = ""


class StepWarning(Model):
    """Warning attached to a browser step."""

    message: str = ""
    type: str = ""


class BrowserStep(Model):
    """One step of a browser test result."""

    description: str = ""
    type: str = ""
    duration: float = 0
    url: str | None = None
    allow_failure: bool = False
    skipped: bool = False
    error: str | None = None
    browser_errors: Sequence[BrowserError] = Field(default_factory=list)
    warnings: Sequence[StepWarning] = Field(default_factory=list)
    sub_test_step_details: Sequence["BrowserStep"] = Field(default_factory=list)


class ApiStep(Model):
    """One request of a multistep API test result."""

    name: str = ""
    subtype: str = ""
    passed: bool = True
    allow_failure: bool = False
    failure: Failure | None = None


class BaseOutcome(Model):
    """Fields shared by every result shape."""

    passed: bool
    failure: Failure | None = None
    unhealthy: bool = False
    duration: float | None = None
    timings: Mapping[str, Any] | None = None


class BrowserOutcome(BaseOutcome):
    """Outcome of a browser test."""

    start_url: str = ""
    device: Device | None = None
    step_details: Sequence[BrowserStep] = Field(default_factory=list)


class ApiOutcome(BaseOutcome):
    """Outcome of an API test (single or multistep)."""

    steps: Sequence[ApiStep] = Field(default_factory=list)


def _outcome_kind(value: Any) -> str:
    if isinstance(value, Mapping):
        return "browser" if "stepDetails" in value else "api"
    return "browser" if isinstance(value, BrowserOutcome) else "api"


Outcome = Annotated[
    Union[
        Annotated[BrowserOutcome, Tag("browser")],
        Annotated[ApiOutcome, Tag("api")],
    ],
    Discriminator(_outcome_kind),
]


class PollResult(WireModel):
    """Full result returned by the poll API."""

    result_id: str = Field(..., alias="resultID")
    dc_id: int | None = None
    timestamp: float | None = None
    check: Mapping[str, Any] | None = None
    result: Outcome


class PollResultsResponse(WireModel):
    """Response from the poll API."""

    results: Sequence[PollResult] = Field(default_factory=list)
