"""Test orchestrator: fetch definitions, trigger a batch and collect results."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal, TypeAlias

from pydantic import ValidationError

from synthetics_ci.api.base import ApiClient
from synthetics_ci.config import RunConfig, get_app_base_url
from synthetics_ci.errors import (
    ApiRequestError,
    CiError,
    ConfigurationError,
    CriticalError,
    classify_api_error,
    is_fatal,
)
from synthetics_ci.models.api import (
    ApiOutcome,
    BatchResult,
    BrowserOutcome,
    Failure,
    PollResult,
    TestDefinition,
    Trigger,
    TriggerConfig,
    TriggeredResult,
    TriggerTest,
    TunnelInfo,
)
from synthetics_ci.models.result import Result, Summary
from synthetics_ci.models.suite import ExecutionRule, TestOverrides, TestSpecification
from synthetics_ci.reducer import ResultReducer, get_exit_code, has_result_passed
from synthetics_ci.reporters.base import Reporter
from synthetics_ci.suite_loader import specifications_from_public_ids
from synthetics_ci.tunnel import Tunnel, TunnelFactory

log = logging.getLogger(__name__)

MAX_TESTS_TO_TRIGGER = 100
MAX_POLL_ATTEMPTS = 3
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_FETCH_CONCURRENCY = 10

RunState: TypeAlias = Literal[
    "FETCHING_DEFINITIONS", "TRIGGERING", "POLLING", "DONE", "ABORTED"
]


@dataclass(frozen=True, kw_only=True)
class RunOutcome:
    """Final state of a run."""

    state: RunState
    summary: Summary
    results: Sequence[Result]
    exit_code: int


@dataclass(frozen=True, kw_only=True)
class TriggeredTest:
    """A test accepted for triggering, with its resolved execution rule."""

    __test__ = False

    test: TestDefinition
    execution_rule: ExecutionRule
    trigger_test: TriggerTest


@dataclass(kw_only=True)
class TestOrchestrator:
    """Orchestrates one run against the test-execution service.

    The run goes through FETCHING_DEFINITIONS, TRIGGERING and POLLING and ends
    DONE, or ABORTED on a configuration error or an escalated critical error.
    Results are streamed to the reporter and the reducer as soon as they are
    complete.
    """

    __test__ = False

    api: ApiClient
    config: RunConfig
    reporter: Reporter
    env: Mapping[str, str] = field(default_factory=dict)
    tunnel_factory: TunnelFactory | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    state: RunState = field(default="FETCHING_DEFINITIONS", init=False)

    async def execute(
        self, specifications: Sequence[TestSpecification]
    ) -> RunOutcome:
        """Run the given tests and return the final summary and exit code.

        Critical errors abort the run with exit code 1 when
        ``fail_on_critical_errors`` is set. Otherwise they are logged as a
        warning and the run ends with whatever was collected so far.

        Args:
            specifications: Tests to run, ignored in test search mode

        Returns:
            The final state, summary, results and exit code of the run

        """
        reducer = ResultReducer()
        results: list[Result] = []
        base_url = get_app_base_url(self.config)
        tunnel = self._create_tunnel()

        try:
            self.check_credentials()

            self.state = "FETCHING_DEFINITIONS"
            tests = await self.fetch_definitions(specifications, reducer)

            self.state = "TRIGGERING"
            triggered, trigger = await self.trigger(tests, reducer, tunnel)

            self.state = "POLLING"
            await self.wait_for_results(trigger, triggered, reducer, results)
        except CiError as e:
            if isinstance(e, CriticalError):
                reducer.record_critical_error()
            if is_fatal(e, self.config):
                log.error("%s", e)
                return self._abort(reducer, results)
            log.warning("%s", e)
        except ConfigurationError as e:
            log.error("%s", e)
            return self._abort(reducer, results)
        except asyncio.CancelledError:
            log.warning("Run interrupted, reporting %d result(s)", len(results))
            self.reporter.run_end(reducer.summary, base_url)
            raise
        finally:
            if tunnel is not None:
                await tunnel.stop()

        self.state = "DONE"
        self.reporter.run_end(reducer.summary, base_url)

        return RunOutcome(
            state=self.state,
            summary=reducer.summary,
            results=results,
            exit_code=get_exit_code(reducer.summary, self.config),
        )

    def check_credentials(self) -> None:
        """Fail early when the API cannot be authenticated against."""
        if not self.config.api_key.get_secret_value():
            raise CriticalError("MISSING_API_KEY", "API key is missing")
        if not self.config.app_key.get_secret_value():
            raise CriticalError("MISSING_APP_KEY", "Application key is missing")

    async def fetch_definitions(
        self,
        specifications: Sequence[TestSpecification],
        reducer: ResultReducer,
    ) -> Sequence[tuple[TestSpecification, TestDefinition]]:
        """Fetch the remote definition of every specification.

        Definitions are fetched concurrently but returned in specification
        order. Tests the service does not know are recorded as not found and
        dropped.

        Raises:
            CriticalError: If a definition cannot be fetched
            CiError: If no test is left to run

        """
        if self.config.test_search_query:
            specifications = await self.search_specifications(
                self.config.test_search_query
            )

        remote = [spec for spec in specifications if not spec.is_inline]
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def fetch(public_id: str) -> TestDefinition:
            async with semaphore:
                return await self.api.get_test(public_id)

        log.info("Fetching %d test definition(s)...", len(remote))
        fetched = await asyncio.gather(
            *(fetch(spec.public_id) for spec in remote), return_exceptions=True
        )
        definitions = {
            spec.public_id: definition
            for spec, definition in zip(remote, fetched, strict=True)
        }

        tests: list[tuple[TestSpecification, TestDefinition]] = []
        for spec in specifications:
            if spec.is_inline:
                tests.append((spec, inline_definition(spec)))
                continue

            definition = definitions[spec.public_id]
            if isinstance(definition, ApiRequestError) and definition.is_not_found:
                log.warning("Test %s not found", spec.public_id)
                reducer.record_not_found(spec.public_id)
                continue
            if isinstance(definition, Exception):
                raise classify_api_error(
                    definition, "UNAVAILABLE_TEST_CONFIG"
                ) from definition
            if isinstance(definition, BaseException):
                raise definition

            tests.append((spec, definition.model_copy(update={"suite": spec.suite})))

        if not tests:
            raise CiError("NO_TESTS_TO_RUN", "No test to run")

        return tests

    async def search_specifications(self, query: str) -> Sequence[TestSpecification]:
        """Build specifications from the tests matching a search query."""
        log.info("Searching tests with query '%s'", query)
        try:
            found = await self.api.search_tests(query)
        except Exception as e:
            if isinstance(e, ApiRequestError) and e.is_not_found:
                return []
            raise classify_api_error(e, "UNAVAILABLE_TEST_CONFIG") from e

        return specifications_from_public_ids(
            [test.public_id for test in found],
            self.config.global_overrides,
            self.env,
        )

    async def trigger(
        self,
        tests: Sequence[tuple[TestSpecification, TestDefinition]],
        reducer: ResultReducer,
        tunnel: Tunnel | None,
    ) -> tuple[Mapping[str, TriggeredTest], Trigger]:
        """Trigger all non-skipped tests in a single batch.

        Returns:
            The triggered tests keyed by public ID and the trigger response

        Raises:
            CriticalError: If the batch cannot be triggered
            CiError: If every test is skipped

        """
        triggered: dict[str, TriggeredTest] = {}
        for spec, test in tests:
            execution_rule = get_execution_rule(test, spec.overrides)
            if execution_rule == "skipped":
                self.reporter.test_trigger(test, "", execution_rule, "")
                reducer.record_skipped(spec)
                continue
            triggered[test.public_id] = TriggeredTest(
                test=test,
                execution_rule=execution_rule,
                trigger_test=build_trigger_test(
                    spec, test, execution_rule, self.config
                ),
            )

        if not triggered:
            raise CiError("NO_TESTS_TO_RUN", "All tests are skipped")

        if len(triggered) > MAX_TESTS_TO_TRIGGER:
            raise CriticalError(
                "TOO_MANY_TESTS_TO_TRIGGER",
                f"Cannot trigger more than {MAX_TESTS_TO_TRIGGER} tests "
                f"({len(triggered)} requested)",
            )

        trigger_tests = [entry.trigger_test for entry in triggered.values()]
        if self.config.tunnel:
            tunnel_info = await self.start_tunnel(tunnel, list(triggered))
            trigger_tests = [
                trigger_test.model_copy(update={"tunnel": tunnel_info})
                for trigger_test in trigger_tests
            ]

        try:
            trigger = await self.api.trigger_tests(TriggerConfig(tests=trigger_tests))
        except Exception as e:
            if isinstance(e, ApiRequestError) and e.is_not_found:
                raise CiError("NO_TESTS_TO_RUN", str(e)) from e
            raise classify_api_error(e, "TRIGGER_TESTS_FAILED") from e

        reducer.record_batch(trigger.batch_id)
        log.info("Triggered batch %s", trigger.batch_id)

        for triggered_result in trigger.results:
            entry = triggered.get(triggered_result.public_id)
            self.reporter.test_trigger(
                get_triggered_test(triggered, triggered_result.public_id),
                triggered_result.result_id,
                entry.execution_rule if entry else "blocking",
                triggered_result.location,
            )

        return triggered, trigger

    async def start_tunnel(
        self, tunnel: Tunnel | None, public_ids: Sequence[str]
    ) -> TunnelInfo:
        """Open the tunnel the triggered tests go through."""
        if tunnel is None:
            raise CriticalError("TUNNEL_START_FAILED", "No tunnel is available")

        try:
            presigned_url = await self.api.get_tunnel_presigned_url(public_ids)
        except Exception as e:
            raise classify_api_error(e, "UNAVAILABLE_TUNNEL_CONFIG") from e

        try:
            return await tunnel.start(presigned_url)
        except Exception as e:
            raise CriticalError("TUNNEL_START_FAILED", str(e)) from e

    async def wait_for_results(
        self,
        trigger: Trigger,
        triggered: Mapping[str, TriggeredTest],
        reducer: ResultReducer,
        results: list[Result],
    ) -> None:
        """Poll the batch until every result is received or the run times out.

        The deadline is the longest polling timeout among the triggered tests.
        Results still pending at the deadline are reported as timed out.

        Raises:
            CriticalError: If polling fails MAX_POLL_ATTEMPTS times in a row

        """
        loop = asyncio.get_running_loop()
        timeout = max(
            entry.trigger_test.polling_timeout for entry in triggered.values()
        )
        deadline = loop.time() + timeout / 1000
        pending: dict[str, TriggeredResult] = {
            result.result_id: result for result in trigger.results
        }
        failures = 0

        while pending:
            if self.stop_event.is_set():
                log.warning("Polling stopped with %d pending result(s)", len(pending))
                return

            remaining = deadline - loop.time()
            if remaining <= 0:
                log.warning("Polling timed out after %.1fs", timeout / 1000)
                for triggered_result in list(pending.values()):
                    self._emit(
                        results,
                        reducer,
                        triggered,
                        triggered_result,
                        timed_out_outcome(triggered, triggered_result),
                        batch_result=None,
                    )
                pending.clear()
                return

            await asyncio.sleep(min(self.poll_interval, remaining))

            completed: dict[str, BatchResult | None]
            try:
                batch = await self.api.get_batch(trigger.batch_id)
                if batch.status == "in_progress":
                    completed = {
                        batch_result.result_id: batch_result
                        for batch_result in batch.results
                        if batch_result.status != "in_progress"
                        and batch_result.result_id in pending
                    }
                else:
                    batch_results = {r.result_id: r for r in batch.results}
                    completed = {
                        result_id: batch_results.get(result_id)
                        for result_id in pending
                    }
                poll_results = (
                    await self.api.poll_results(list(completed)) if completed else []
                )
            except Exception as e:
                failures += 1
                log.warning(
                    "Failed to poll results (attempt %d/%d): %s",
                    failures,
                    MAX_POLL_ATTEMPTS,
                    e,
                )
                if failures >= MAX_POLL_ATTEMPTS:
                    raise classify_api_error(e, "POLL_RESULTS_FAILED") from e
                continue
            failures = 0

            received: dict[str, PollResult] = {r.result_id: r for r in poll_results}
            for result_id, batch_result in completed.items():
                if (poll_result := received.get(result_id)) is None:
                    continue
                self._emit(
                    results,
                    reducer,
                    triggered,
                    pending.pop(result_id),
                    poll_result.result,
                    batch_result=batch_result,
                )

            if batch.status != "in_progress":
                for triggered_result in list(pending.values()):
                    log.warning(
                        "No result received for %s", triggered_result.result_id
                    )
                    self._emit(
                        results,
                        reducer,
                        triggered,
                        triggered_result,
                        timed_out_outcome(triggered, triggered_result),
                        batch_result=None,
                    )
                pending.clear()

    def _emit(
        self,
        results: list[Result],
        reducer: ResultReducer,
        triggered: Mapping[str, TriggeredTest],
        triggered_result: TriggeredResult,
        outcome: BrowserOutcome | ApiOutcome,
        *,
        batch_result: BatchResult | None,
    ) -> None:
        entry = triggered.get(triggered_result.public_id)
        test = get_triggered_test(triggered, triggered_result.public_id)

        execution_rule: ExecutionRule = "blocking"
        if batch_result is not None and batch_result.execution_rule is not None:
            execution_rule = batch_result.execution_rule
        elif entry is not None:
            execution_rule = entry.execution_rule

        timed_out = bool(batch_result and batch_result.timed_out) or (
            outcome.failure is not None and outcome.failure.code == "TIMEOUT"
        )
        result = Result(
            test=test,
            result_id=triggered_result.result_id,
            location=triggered_result.location,
            passed=has_result_passed(
                outcome,
                timed_out=timed_out,
                fail_on_critical_errors=self.config.fail_on_critical_errors,
                fail_on_timeout=self.config.fail_on_timeout,
            ),
            timed_out=timed_out,
            outcome=outcome,
            execution_rule=execution_rule,
        )

        base_url = get_app_base_url(self.config)
        self.reporter.result_received(result, base_url)
        reducer.reduce(result)
        results.append(result)
        self.reporter.result_end(result, base_url)

    def _abort(self, reducer: ResultReducer, results: Sequence[Result]) -> RunOutcome:
        self.state = "ABORTED"
        return RunOutcome(
            state=self.state, summary=reducer.summary, results=results, exit_code=1
        )

    def _create_tunnel(self) -> Tunnel | None:
        if not self.config.tunnel or self.tunnel_factory is None:
            return None
        return self.tunnel_factory()


def get_execution_rule(
    test: TestDefinition, overrides: TestOverrides
) -> ExecutionRule:
    """Resolve the execution rule of a test.

    An override can only make a test less strict than its own rule allows:
    ``skipped`` wins over ``non_blocking``, which wins over ``blocking``.
    """
    test_rule = test.options.ci.execution_rule if test.options.ci else None
    if overrides.execution_rule is None:
        return test_rule or "blocking"

    less_strict_rules: Sequence[ExecutionRule] = ("skipped", "non_blocking")
    for rule in less_strict_rules:
        if rule in (overrides.execution_rule, test_rule):
            return rule
    return "blocking"


def build_trigger_test(
    spec: TestSpecification,
    test: TestDefinition,
    execution_rule: ExecutionRule,
    config: RunConfig,
) -> TriggerTest:
    """Build the trigger payload entry of a test from its overrides."""
    overrides = spec.overrides.model_dump(by_alias=True, exclude_none=True)
    overrides.pop("executionRule", None)
    locations = overrides.pop("locations", None)
    polling_timeout = overrides.pop("pollingTimeout", None)

    data = {
        **overrides,
        "public_id": test.public_id,
        "executionRule": execution_rule,
        "locations": locations if locations is not None else list(test.locations),
        "pollingTimeout": (
            polling_timeout if polling_timeout is not None else config.polling_timeout
        ),
    }
    if spec.definition is not None:
        data["local_test_definition"] = spec.definition
    return TriggerTest.model_validate(data)


def inline_definition(spec: TestSpecification) -> TestDefinition:
    """Build the definition of a test declared inline in a suite."""
    try:
        return TestDefinition.model_validate(
            {
                **(spec.definition or {}),
                "public_id": spec.public_id,
                "suite": spec.suite,
            }
        )
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid inline test {spec.public_id} in {spec.suite}: {e}"
        ) from e


def timed_out_outcome(
    triggered: Mapping[str, TriggeredTest], triggered_result: TriggeredResult
) -> BrowserOutcome | ApiOutcome:
    """Placeholder outcome of a result that never completed."""
    failure = Failure(code="TIMEOUT", message="Result timed out")
    entry = triggered.get(triggered_result.public_id)
    if entry is not None and entry.test.type == "browser":
        return BrowserOutcome(passed=False, failure=failure)
    return ApiOutcome(passed=False, failure=failure)


def get_triggered_test(
    triggered: Mapping[str, TriggeredTest], public_id: str
) -> TestDefinition:
    """Definition of a triggered test, or a bare one for unknown IDs."""
    if (entry := triggered.get(public_id)) is not None:
        return entry.test
    return TestDefinition(public_id=public_id)
