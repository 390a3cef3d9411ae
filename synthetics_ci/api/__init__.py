"""Synthetics API client module."""

from synthetics_ci.api.base import ApiClient
from synthetics_ci.api.client import DatadogApiClient

__all__ = ["ApiClient", "DatadogApiClient"]
