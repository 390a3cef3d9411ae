"""aiohttp client for the synthetics API."""

import json
import logging
from collections.abc import AsyncGenerator, Iterator, Mapping, Sequence
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from pydantic import ValidationError

from synthetics_ci.api.base import ApiClient
from synthetics_ci.config import RunConfig, get_api_base_url
from synthetics_ci.errors import ApiRequestError
from synthetics_ci.models.api import (
    Batch,
    PollResult,
    PollResultsResponse,
    SearchResponse,
    TestDefinition,
    Trigger,
    TriggerConfig,
)

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60)


@contextmanager
def parsing(description: str) -> Iterator[None]:
    """Report a response body that does not have the expected shape."""
    try:
        yield
    except (ValidationError, ValueError, KeyError, TypeError) as e:
        raise ApiRequestError(f"Unexpected response to {description}: {e}") from e


@dataclass(frozen=True, kw_only=True)
class DatadogApiClient(ApiClient):
    """Synthetics API client."""

    config: RunConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: RunConfig, api_base_url: str | None = None
    ) -> AsyncGenerator["DatadogApiClient", None]:
        """Create client with managed session lifecycle."""
        headers = {
            "DD-API-KEY": config.api_key.get_secret_value(),
            "DD-APPLICATION-KEY": config.app_key.get_secret_value(),
        }
        async with aiohttp.ClientSession(
            base_url=api_base_url or get_api_base_url(config),
            headers=headers,
            timeout=REQUEST_TIMEOUT,
        ) as session:
            yield cls(config=config, session=session)

    async def get_test(self, public_id: str) -> TestDefinition:
        """Fetch the authoritative definition of a test."""
        data = await self._request("GET", f"synthetics/tests/{public_id}")
        with parsing(f"get test {public_id}"):
            return TestDefinition.model_validate(data)

    async def search_tests(self, query: str) -> Sequence[TestDefinition]:
        """Return the tests matching a search query."""
        data = await self._request(
            "GET", "synthetics/tests/search", params={"text": query}
        )
        with parsing("test search"):
            return SearchResponse.model_validate(data).tests

    async def trigger_tests(self, trigger_config: TriggerConfig) -> Trigger:
        """Trigger a batch of tests."""
        log.info("Triggering %d test(s)", len(trigger_config.tests))
        data = await self._request(
            "POST", "synthetics/tests/trigger/ci", payload=trigger_config.to_payload()
        )
        with parsing("trigger"):
            return Trigger.model_validate(data)

    async def get_batch(self, batch_id: str) -> Batch:
        """Get the current state of a batch."""
        data = await self._request("GET", f"synthetics/ci/batch/{batch_id}")
        with parsing(f"get batch {batch_id}"):
            return Batch.model_validate(data["data"])

    async def poll_results(self, result_ids: Sequence[str]) -> Sequence[PollResult]:
        """Get the full results for the given result IDs."""
        data = await self._request(
            "GET",
            "synthetics/tests/poll_results",
            params={"result_ids": json.dumps(list(result_ids))},
        )
        with parsing("poll results"):
            return PollResultsResponse.model_validate(data).results

    async def get_tunnel_presigned_url(self, public_ids: Sequence[str]) -> str:
        """Get the presigned URL used to open a tunnel for the given tests."""
        data = await self._request(
            "GET",
            "synthetics/ci/tunnel",
            params=[("test_id", public_id) for public_id in public_ids],
        )
        url = data.get("url") if isinstance(data, Mapping) else None
        if not isinstance(url, str):
            raise ApiRequestError("Presigned URL not found in response")
        return url

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | Sequence[tuple[str, str]] | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            ApiRequestError: If the server answers with a non-2xx status, the
                request fails before getting an answer or the body is not JSON

        """
        try:
            async with self.session.request(
                method, url, params=params, json=payload, proxy=self.config.proxy.url
            ) as response:
                if not 200 <= response.status < 300:
                    text = await response.text()
                    raise ApiRequestError(
                        f"{method} {url} failed: {response.status} {text}",
                        status=response.status,
                    )
                with parsing(f"{method} {url}"):
                    return await response.json()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ApiRequestError(f"{method} {url} failed: {e}") from e
