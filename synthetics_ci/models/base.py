"""Base model configuration for all data structures."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Model(BaseModel):
    """Base model for camelCase documents (config files, suites, results)."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class WireModel(BaseModel):
    """Base model for snake_case API payloads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)
