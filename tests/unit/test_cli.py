"""Tests for CLI module."""

import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from synthetics_ci.cli import (
    build_parser,
    build_reporter,
    cli_layer,
    format_output,
    load_specifications,
    run,
)
from synthetics_ci.config import RunConfig
from synthetics_ci.models.result import Summary
from synthetics_ci.orchestrator import RunOutcome
from synthetics_ci.reporters.default import DefaultReporter
from synthetics_ci.reporters.junit import JUnitReporter


def test_cli_layer_maps_flags() -> None:
    """Maps command-line flags to configuration keys."""
    args = build_parser().parse_args(
        [
            "--apiKey",
            "api",
            "-p",
            "aaa-aaa-aaa",
            "-p",
            "bbb-bbb-bbb",
            "--failOnCriticalErrors",
            "--no-failOnTimeout",
            "-v",
            "ENV=prod",
            "--datadogSite",
            "datadoghq.eu",
        ]
    )

    layer = cli_layer(args)

    assert layer["apiKey"] == "api"
    assert layer["publicIds"] == ["aaa-aaa-aaa", "bbb-bbb-bbb"]
    assert layer["failOnCriticalErrors"] is True
    assert layer["failOnTimeout"] is False
    assert layer["variableStrings"] == ["ENV=prod"]
    assert layer["datadogSite"] == "datadoghq.eu"


def test_cli_layer_leaves_unset_flags_empty() -> None:
    """Leaves flags that were not given as None."""
    layer = cli_layer(build_parser().parse_args([]))

    assert all(value is None for value in layer.values())


def test_format_output() -> None:
    """Formats the summary for JSON output."""
    output = format_output(
        Summary(
            batch_id="batch-123",
            passed=2,
            failed=1,
            tests_not_found={"ccc-ccc-ccc", "bbb-bbb-bbb"},
        )
    )

    assert output == {
        "batch_id": "batch-123",
        "passed": 2,
        "failed": 1,
        "failed_non_blocking": 0,
        "skipped": 0,
        "timed_out": 0,
        "critical_errors": 0,
        "tests_not_found": ["bbb-bbb-bbb", "ccc-ccc-ccc"],
    }
    json.dumps(output)


def test_build_reporter_adds_junit_when_requested(tmp_path: Path) -> None:
    """Adds the JUnit reporter only when a report path is given."""
    default_only = build_reporter(None, None)
    with_junit = build_reporter(str(tmp_path / "junit.xml"), "Nightly")

    assert [type(r) for r in default_only.reporters] == [DefaultReporter]
    assert [type(r) for r in with_junit.reporters] == [DefaultReporter, JUnitReporter]


class TestLoadSpecifications:
    """Tests for load_specifications function."""

    def test_public_ids_win_over_suites(self, tmp_path: Path) -> None:
        """Runs the requested public IDs without reading suites."""
        (tmp_path / "e2e.synthetics.json").write_text("{not json")
        config = RunConfig(public_ids=["aaa-aaa-aaa"])

        specs = load_specifications(config, {}, tmp_path)

        assert [s.public_id for s in specs] == ["aaa-aaa-aaa"]

    def test_search_mode_defers_to_orchestrator(self, tmp_path: Path) -> None:
        """Returns no specification in test search mode."""
        config = RunConfig(test_search_query="tag:e2e")

        assert load_specifications(config, {}, tmp_path) == []

    def test_loads_suites(self, tmp_path: Path) -> None:
        """Reads suite files matching the configured patterns."""
        (tmp_path / "e2e.synthetics.json").write_text(
            json.dumps({"tests": [{"id": "aaa-aaa-aaa"}]})
        )

        specs = load_specifications(RunConfig(), {}, tmp_path)

        assert [(s.suite, s.public_id) for s in specs] == [
            ("e2e.synthetics.json", "aaa-aaa-aaa")
        ]


class TestRun:
    """Tests for run function."""

    @pytest.fixture
    def mock_client(self) -> Mock:
        """Create mock API client."""
        return Mock()

    @pytest.fixture
    def mock_context_manager(self, mock_client: Mock) -> AsyncMock:
        """Create mock async context manager that yields the client."""
        cm = AsyncMock()
        cm.__aenter__.return_value = mock_client
        cm.__aexit__.return_value = None
        return cm

    async def test_returns_one_on_configuration_error(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Returns 1 when an explicitly requested config file is missing."""
        with caplog.at_level(logging.ERROR):
            exit_code = await run(
                cli_config={"configPath": "missing.json"}, env={}, root=tmp_path
            )

        assert exit_code == 1
        assert "Config file not found" in caplog.text

    async def test_runs_orchestrator_and_prints_summary(
        self,
        tmp_path: Path,
        mock_context_manager: AsyncMock,
        mock_client: Mock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Resolves the configuration, runs the tests and prints the summary."""
        (tmp_path / "datadog-ci.json").write_text(
            json.dumps({"publicIds": ["aaa-aaa-aaa"], "failOnTimeout": False})
        )

        with (
            patch("synthetics_ci.cli.DatadogApiClient") as mock_client_cls,
            patch("synthetics_ci.cli.TestOrchestrator") as mock_orchestrator_cls,
        ):
            mock_client_cls.from_config.return_value = mock_context_manager
            mock_orchestrator = Mock()
            mock_orchestrator.execute = AsyncMock(
                return_value=RunOutcome(
                    state="DONE",
                    summary=Summary(batch_id="batch-123", passed=1),
                    results=[],
                    exit_code=0,
                )
            )
            mock_orchestrator_cls.return_value = mock_orchestrator

            exit_code = await run(
                cli_config={"apiKey": "api", "appKey": "app"},
                env={"DATADOG_SITE": "datadoghq.eu"},
                root=tmp_path,
            )

        assert exit_code == 0
        config = mock_client_cls.from_config.call_args.args[0]
        assert config.datadog_site == "datadoghq.eu"
        assert config.fail_on_timeout is False
        assert mock_orchestrator_cls.call_args.kwargs["api"] is mock_client
        specs = mock_orchestrator.execute.call_args.args[0]
        assert [s.public_id for s in specs] == ["aaa-aaa-aaa"]
        captured = capsys.readouterr()
        assert json.loads(captured.out)["passed"] == 1

    async def test_returns_exit_code_of_aborted_run(
        self,
        tmp_path: Path,
        mock_context_manager: AsyncMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Returns 1 without printing a summary when the run aborts."""
        with (
            patch("synthetics_ci.cli.DatadogApiClient") as mock_client_cls,
            patch("synthetics_ci.cli.TestOrchestrator") as mock_orchestrator_cls,
        ):
            mock_client_cls.from_config.return_value = mock_context_manager
            mock_orchestrator = Mock()
            mock_orchestrator.execute = AsyncMock(
                return_value=RunOutcome(
                    state="ABORTED", summary=Summary(), results=[], exit_code=1
                )
            )
            mock_orchestrator_cls.return_value = mock_orchestrator

            exit_code = await run(
                cli_config={"publicIds": ["aaa-aaa-aaa"]}, env={}, root=tmp_path
            )

        assert exit_code == 1
        assert capsys.readouterr().out == ""
