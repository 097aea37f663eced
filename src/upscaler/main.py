"""Process entry point for the lifecycle driver.

Wires the peripheral glue (configuration, logging, manifest loading,
cluster access) around the lifecycle core and maps every failure onto a
non-zero exit code. The core itself never exits the process.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from .config import Config, LogFormat
from .events import EventObserver, KubernetesEventSource
from .lifecycle import LifecycleOrchestrator
from .manifest_loader import ManifestDecodeError, load_manifest
from .store import KubernetesResourceStore, ResourceStore, TransportError, load_kube_config

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

# Attributes every LogRecord carries; anything else came in through extra={}
_STANDARD_RECORD_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
        "asctime",
    )
)


def _extra_fields(record: logging.LogRecord) -> dict[str, object]:
    return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_RECORD_ATTRS}


class JsonFormatter(logging.Formatter):
    """Format logs as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        log_data.update(_extra_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human readable lines with extra fields appended as key=value."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)s %(message)s", datefmt="%Y/%m/%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


def setup_logging(log_format: LogFormat = LogFormat.TEXT, level: int = logging.INFO) -> None:
    """Configure line-oriented logging on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if log_format == LogFormat.JSON else TextFormatter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from the Kubernetes client
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def default_store_factory(config: Config) -> tuple[ResourceStore, EventObserver]:
    """Build the Kubernetes-backed store and event observer."""
    load_kube_config(config.kubeconfig, config.kube_context)
    return KubernetesResourceStore(config), EventObserver(KubernetesEventSource())


StoreFactory = Callable[[Config], tuple[ResourceStore, EventObserver | None]]


async def main(
    config: Config,
    manifest_path: Path,
    store_factory: StoreFactory = default_store_factory,
) -> int:
    """Run the lifecycle workflow once.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    logger.info("Model deployment file path: %s", manifest_path)

    # Decode before any cluster interaction
    try:
        resource = load_manifest(manifest_path, config.default_namespace, config.api_version)
    except ManifestDecodeError as e:
        logger.error("Unable to load desired-state manifest", extra={"error": str(e)})
        return EXIT_FAILURE

    try:
        store, observer = store_factory(config)
    except TransportError as e:
        logger.error("Unable to get Kubernetes client", extra={"error": str(e)})
        return EXIT_FAILURE

    orchestrator = LifecycleOrchestrator(store, config, observer=observer)

    try:
        result = await orchestrator.run(resource)
    except Exception as e:
        logger.exception("Lifecycle workflow failed unexpectedly", extra={"error": str(e)})
        return EXIT_FAILURE

    if not result.success:
        error = result.error
        logger.error(
            "Lifecycle workflow aborted",
            extra={
                "resource": str(result.identity),
                "phase": result.phase.value,
                "step": error.step if error else None,
                "timeout": error.is_timeout if error else False,
                "duration_seconds": round(result.duration_seconds, 1),
            },
        )
        return EXIT_FAILURE

    logger.info(
        "Lifecycle workflow completed",
        extra={
            "resource": str(result.identity),
            "duration_seconds": round(result.duration_seconds, 1),
        },
    )
    return EXIT_OK
