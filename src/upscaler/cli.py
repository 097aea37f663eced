"""Lifecycle driver CLI (upscaler).

Usage:
    upscaler -f deployment.yaml                  # Run create/scale/delete
    upscaler -f deployment.yaml --replicas 3     # Scale to 3 replicas instead of 2
    upscaler -f deployment.json --log-format json

Flags override the UPSCALER_* environment variables read by Config.from_env().
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any

import click

from .config import Config, ConfigurationError, LogFormat
from .main import main, setup_logging


def build_config(**overrides: Any) -> Config:
    """Load configuration from the environment and apply CLI overrides.

    Raises:
        click.ClickException: If the resulting configuration is invalid.
    """
    try:
        config = Config.from_env()
        changes = {k: v for k, v in overrides.items() if v is not None}
        if changes:
            config = dataclasses.replace(config, **changes)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    return config


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-f",
    "--filename",
    "manifest_path",
    required=True,
    type=click.Path(path_type=Path, dir_okay=False),
    help="Path to the model deployment YAML or JSON file.",
)
@click.option("--replicas", type=int, default=None, help="Replica count for the scale step.")
@click.option(
    "--timeout", type=float, default=None, help="Convergence timeout per wait, in seconds."
)
@click.option(
    "--poll-interval", type=float, default=None, help="Seconds between status polls."
)
@click.option(
    "--default-namespace", default=None, help="Namespace used when the manifest has none."
)
@click.option("--kubeconfig", default=None, help="Path to the kubeconfig file.")
@click.option("--context", "kube_context", default=None, help="kubeconfig context to use.")
@click.option(
    "--log-format",
    type=click.Choice([f.value for f in LogFormat]),
    default=None,
    help="Log output format.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(
    manifest_path: Path,
    replicas: int | None,
    timeout: float | None,
    poll_interval: float | None,
    default_namespace: str | None,
    kubeconfig: str | None,
    kube_context: str | None,
    log_format: str | None,
    verbose: bool,
) -> None:
    """Create a deployment, wait for it, scale it, wait again, then delete it."""
    config = build_config(
        target_replicas=replicas,
        timeout_seconds=timeout,
        poll_interval_seconds=poll_interval,
        default_namespace=default_namespace,
        kubeconfig=kubeconfig,
        kube_context=kube_context,
        log_format=LogFormat(log_format) if log_format else None,
    )

    setup_logging(config.log_format, logging.DEBUG if verbose else logging.INFO)
    sys.exit(asyncio.run(main(config, manifest_path)))


def run() -> None:
    """Entry point for the upscaler console script."""
    cli()


if __name__ == "__main__":
    run()
