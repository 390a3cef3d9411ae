"""Discovery of suite files and expansion into test specifications."""

import json
import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import ValidationError

from synthetics_ci.config import resolve_locations
from synthetics_ci.errors import ConfigurationError
from synthetics_ci.models.suite import TestOverrides, TestSpecification, TestSuite

log = logging.getLogger(__name__)

T = TypeVar("T")

IGNORED_DIRECTORIES = frozenset(["node_modules"])


def get_suites(patterns: Sequence[str], root: Path) -> Iterator[TestSuite]:
    """Yield the suites found under ``root`` for the given glob patterns.

    Files are yielded in sorted order and only once even when several
    patterns match them. Every call re-reads the files.
    """
    for path in find_suite_files(patterns, root):
        yield load_suite(path, name=str(path.relative_to(root)))


def find_suite_files(patterns: Sequence[str], root: Path) -> Sequence[Path]:
    """Resolve glob patterns to suite files, skipping dependency folders."""
    found: set[Path] = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            relative_parts = path.relative_to(root).parts
            if IGNORED_DIRECTORIES.intersection(relative_parts):
                continue
            if path.is_file():
                found.add(path)
    return sorted(found)


def load_suite(path: Path, name: str | None = None) -> TestSuite:
    """Load a suite file.

    Raises:
        ConfigurationError: If the file cannot be read or is not a valid suite

    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Unable to read suite file {path}: {e}") from e

    try:
        content = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid suite file {path}: {e}") from e

    if content is None:
        raise ConfigurationError(f"Empty suite file: {path}")

    try:
        return TestSuite.model_validate({"name": name or str(path), "content": content})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid suite schema in {path}: {e}") from e


def get_test_specifications(
    suites: Iterable[TestSuite],
    global_overrides: TestOverrides,
    env: Mapping[str, str],
) -> Sequence[TestSpecification]:
    """Flatten suites into test specifications.

    Overrides are merged key-wise with the test's own ``config`` winning over
    the suite ``config``, which wins over the global overrides. Tests without
    an ``id`` are inline definitions and keep their ``config`` body.
    """
    specifications: list[TestSpecification] = []

    for suite in suites:
        suite_overrides = TestOverrides.model_validate(suite.content.config)

        for index, test in enumerate(suite.content.tests):
            test_overrides = TestOverrides.model_validate(test.config)
            overrides = global_overrides.merged_with(suite_overrides).merged_with(
                test_overrides
            )
            overrides = with_resolved_locations(
                overrides,
                test_locations=_first_set(
                    test_overrides.locations, suite_overrides.locations
                ),
                global_locations=global_overrides.locations,
                env=env,
            )

            if test.id is not None:
                specifications.append(
                    TestSpecification(
                        public_id=test.id, suite=suite.name, overrides=overrides
                    )
                )
                continue

            public_id = str(test.config.get("public_id") or f"{suite.name}#{index}")
            log.debug("Found inline test %s in suite %s", public_id, suite.name)
            specifications.append(
                TestSpecification(
                    public_id=public_id,
                    suite=suite.name,
                    overrides=overrides,
                    definition=test.config,
                )
            )

    return specifications


def specifications_from_public_ids(
    public_ids: Sequence[str],
    global_overrides: TestOverrides,
    env: Mapping[str, str],
) -> Sequence[TestSpecification]:
    """Build specifications for tests requested by public ID."""
    overrides = with_resolved_locations(
        global_overrides,
        test_locations=None,
        global_locations=global_overrides.locations,
        env=env,
    )
    return [
        TestSpecification(public_id=public_id, overrides=overrides)
        for public_id in dict.fromkeys(public_ids)
    ]


def with_resolved_locations(
    overrides: TestOverrides,
    *,
    test_locations: Sequence[str] | None,
    global_locations: Sequence[str] | None,
    env: Mapping[str, str],
) -> TestOverrides:
    """Return overrides whose locations follow test > environment > global."""
    locations = resolve_locations(test_locations, env, global_locations)
    return overrides.model_copy(update={"locations": locations})


def _first_set(*values: T | None) -> T | None:
    for value in values:
        if value is not None:
            return value
    return None
