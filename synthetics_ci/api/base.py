"""Abstract base class for test-execution service clients."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from synthetics_ci.models.api import (
    Batch,
    PollResult,
    TestDefinition,
    Trigger,
    TriggerConfig,
)


class ApiClient(ABC):
    """Capabilities of the test-execution service used by the orchestrator.

    Implementations raise ``ApiRequestError`` for every failed request, with
    the HTTP status when the server answered and None for network failures.
    """

    @abstractmethod
    async def get_test(self, public_id: str) -> TestDefinition:
        """Fetch the authoritative definition of a test."""

    @abstractmethod
    async def search_tests(self, query: str) -> Sequence[TestDefinition]:
        """Return the tests matching a search query."""

    @abstractmethod
    async def trigger_tests(self, trigger_config: TriggerConfig) -> Trigger:
        """Trigger a batch of tests.

        Args:
            trigger_config: Tests to trigger with their overrides

        Returns:
            The batch ID and one entry per (test, location) execution

        """

    @abstractmethod
    async def get_batch(self, batch_id: str) -> Batch:
        """Get the current state of a batch."""

    @abstractmethod
    async def poll_results(self, result_ids: Sequence[str]) -> Sequence[PollResult]:
        """Get the full results for the given result IDs.

        Results that are not available yet are missing from the response.
        """

    @abstractmethod
    async def get_tunnel_presigned_url(self, public_ids: Sequence[str]) -> str:
        """Get the presigned URL used to open a tunnel for the given tests."""
