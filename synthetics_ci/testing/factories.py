"""Test factories for generating test data."""

from polyfactory import Use
from polyfactory.factories import DataclassFactory
from polyfactory.factories.pydantic_factory import ModelFactory

from synthetics_ci.models.api import ApiOutcome, TestDefinition, TestOptions
from synthetics_ci.models.result import Result
from synthetics_ci.models.suite import TestOverrides, TestSpecification


class TestDefinitionFactory(ModelFactory[TestDefinition]):
    """Factory for API test definitions."""

    __test__ = False

    type = "api"
    subtype = None
    locations = Use(list[str])
    options = Use(TestOptions)
    tags = Use(list[str])
    suite = None


class TestSpecificationFactory(ModelFactory[TestSpecification]):
    """Factory for specifications of remote tests."""

    __test__ = False

    suite = None
    overrides = Use(TestOverrides)
    definition = None


class ResultFactory(DataclassFactory[Result]):
    """Factory for passed, blocking results of API tests."""

    __model__ = Result

    test = Use(TestDefinitionFactory.build)
    location = "aws:eu-central-1"
    passed = True
    timed_out = False
    outcome = Use(ApiOutcome, passed=True)
    execution_rule = "blocking"
