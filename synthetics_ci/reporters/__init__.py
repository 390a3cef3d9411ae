"""Reporters of run progress and results."""

from synthetics_ci.reporters.base import MultiReporter, Reporter
from synthetics_ci.reporters.default import DefaultReporter
from synthetics_ci.reporters.junit import JUnitReporter

__all__ = ["DefaultReporter", "JUnitReporter", "MultiReporter", "Reporter"]
