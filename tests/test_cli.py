"""Tests for the command line interface."""

import os
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from upscaler.cli import build_config, cli
from upscaler.config import Config, LogFormat


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    with patch.dict(os.environ, {}, clear=True):
        yield


@pytest.fixture
def fake_main() -> Generator[AsyncMock, None, None]:
    with patch("upscaler.cli.main", new_callable=AsyncMock) as main:
        main.return_value = 0
        yield main


@pytest.fixture
def fake_setup_logging() -> Generator[MagicMock, None, None]:
    with patch("upscaler.cli.setup_logging") as setup_logging:
        yield setup_logging


@pytest.mark.usefixtures("clean_env")
class TestCli:
    """Tests for the upscaler command."""

    def test_runs_workflow(
        self, runner: CliRunner, fake_main: AsyncMock, fake_setup_logging: MagicMock
    ) -> None:
        """Test that the manifest path and config reach main()."""
        result = runner.invoke(cli, ["-f", "deployment.yaml"])

        assert result.exit_code == 0
        config, path = fake_main.await_args.args
        assert path.name == "deployment.yaml"
        assert config == Config()
        fake_setup_logging.assert_called_once()

    def test_flags_override_environment(
        self, runner: CliRunner, fake_main: AsyncMock, fake_setup_logging: MagicMock
    ) -> None:
        with patch.dict(os.environ, {"UPSCALER_TARGET_REPLICAS": "5"}):
            result = runner.invoke(
                cli,
                [
                    "-f",
                    "deployment.yaml",
                    "--replicas",
                    "3",
                    "--timeout",
                    "120",
                    "--poll-interval",
                    "2",
                    "--default-namespace",
                    "models",
                    "--context",
                    "staging",
                    "--log-format",
                    "json",
                ],
            )

        assert result.exit_code == 0, result.output
        config = fake_main.await_args.args[0]
        assert config.target_replicas == 3
        assert config.timeout_seconds == 120
        assert config.poll_interval_seconds == 2
        assert config.default_namespace == "models"
        assert config.kube_context == "staging"
        assert config.log_format == LogFormat.JSON
        fake_setup_logging.assert_called_once_with(LogFormat.JSON, 20)

    def test_verbose_enables_debug(
        self, runner: CliRunner, fake_main: AsyncMock, fake_setup_logging: MagicMock
    ) -> None:
        runner.invoke(cli, ["-f", "deployment.yaml", "-v"])

        fake_setup_logging.assert_called_once_with(LogFormat.TEXT, 10)

    def test_failure_exit_code(
        self, runner: CliRunner, fake_main: AsyncMock, fake_setup_logging: MagicMock
    ) -> None:
        """Test that main()'s exit code becomes the process exit code."""
        fake_main.return_value = 1

        result = runner.invoke(cli, ["-f", "deployment.yaml"])

        assert result.exit_code == 1

    def test_filename_required(self, runner: CliRunner, fake_main: AsyncMock) -> None:
        result = runner.invoke(cli, [])

        assert result.exit_code == 2
        fake_main.assert_not_called()

    def test_invalid_configuration(
        self, runner: CliRunner, fake_main: AsyncMock, fake_setup_logging: MagicMock
    ) -> None:
        """Test that invalid settings fail before anything runs."""
        result = runner.invoke(cli, ["-f", "deployment.yaml", "--poll-interval", "60", "--timeout", "30"])

        assert result.exit_code == 1
        assert "POLL_INTERVAL" in result.output
        fake_main.assert_not_called()


@pytest.mark.usefixtures("clean_env")
class TestBuildConfig:
    """Tests for build_config."""

    def test_none_overrides_ignored(self) -> None:
        assert build_config(target_replicas=None, timeout_seconds=None) == Config()

    def test_invalid_environment(self) -> None:
        with patch.dict(os.environ, {"UPSCALER_POLL_INTERVAL": "fast"}):
            with pytest.raises(click.ClickException) as exc_info:
                build_config()

        assert "UPSCALER_POLL_INTERVAL" in exc_info.value.message
