"""Configuration management with validation.

All tunables of the lifecycle workflow live here. Nothing in the workflow
reads process-wide mutable state; a validated Config is passed explicitly
to the orchestrator at construction time.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum


class LogFormat(str, Enum):
    """Supported log output formats."""

    TEXT = "text"
    JSON = "json"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_TIMEOUT_SECONDS = 30 * 60  # cold-start provisioning can take tens of minutes
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 24 * 60 * 60

DEFAULT_POLL_INTERVAL_SECONDS = 5
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 300

DEFAULT_TARGET_REPLICAS = 2
MAX_TARGET_REPLICAS = 1000

DEFAULT_NAMESPACE = "default"

# SeldonDeployment custom resource coordinates
DEFAULT_CRD_GROUP = "machinelearning.seldon.io"
DEFAULT_CRD_VERSION = "v1"
DEFAULT_CRD_PLURAL = "seldondeployments"

# Input limits
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max manifest file

# Input validation patterns
VALID_NAMESPACE_PATTERN = r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$"
VALID_CRD_GROUP_PATTERN = r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$"
VALID_CRD_VERSION_PATTERN = r"^v[0-9]+((alpha|beta)[0-9]+)?$"
VALID_CRD_PLURAL_PATTERN = r"^[a-z][a-z0-9]*$"


@dataclass(frozen=True)
class Config:
    """Lifecycle driver configuration.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-workflow.
    """

    # Convergence
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    # Mutation
    target_replicas: int = DEFAULT_TARGET_REPLICAS

    # Resource addressing
    default_namespace: str = DEFAULT_NAMESPACE
    crd_group: str = DEFAULT_CRD_GROUP
    crd_version: str = DEFAULT_CRD_VERSION
    crd_plural: str = DEFAULT_CRD_PLURAL

    # Cluster access
    kubeconfig: str | None = None
    kube_context: str | None = None

    # Output
    log_format: LogFormat = LogFormat.TEXT

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        # Timing validation
        if not (MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS):
            errors.append(
                f"POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (MIN_TIMEOUT_SECONDS <= self.timeout_seconds <= MAX_TIMEOUT_SECONDS):
            errors.append(
                f"TIMEOUT must be between {MIN_TIMEOUT_SECONDS} and {MAX_TIMEOUT_SECONDS} seconds"
            )
        elif self.poll_interval_seconds >= self.timeout_seconds:
            errors.append(
                f"POLL_INTERVAL ({self.poll_interval_seconds}s) must be shorter than "
                f"TIMEOUT ({self.timeout_seconds}s)"
            )

        if not (0 <= self.target_replicas <= MAX_TARGET_REPLICAS):
            errors.append(f"TARGET_REPLICAS must be between 0 and {MAX_TARGET_REPLICAS}")

        # Addressing validation
        if not self.default_namespace:
            errors.append("DEFAULT_NAMESPACE is required")
        elif not re.match(VALID_NAMESPACE_PATTERN, self.default_namespace):
            errors.append(
                f"DEFAULT_NAMESPACE must match pattern {VALID_NAMESPACE_PATTERN}: "
                f"{self.default_namespace}"
            )

        if not re.match(VALID_CRD_GROUP_PATTERN, self.crd_group):
            errors.append(f"CRD_GROUP is not a valid API group: {self.crd_group}")
        if not re.match(VALID_CRD_VERSION_PATTERN, self.crd_version):
            errors.append(f"CRD_VERSION is not a valid API version: {self.crd_version}")
        if not re.match(VALID_CRD_PLURAL_PATTERN, self.crd_plural):
            errors.append(f"CRD_PLURAL is not a valid resource plural: {self.crd_plural}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def api_version(self) -> str:
        """Full apiVersion of the managed custom resource."""
        return f"{self.crd_group}/{self.crd_version}"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            UPSCALER_TIMEOUT: Convergence timeout in seconds (default: 1800)
            UPSCALER_POLL_INTERVAL: Seconds between status polls (default: 5)
            UPSCALER_TARGET_REPLICAS: Replica count for the scale step (default: 2)
            UPSCALER_DEFAULT_NAMESPACE: Namespace used when the manifest has none
            UPSCALER_CRD_GROUP: API group of the custom resource
            UPSCALER_CRD_VERSION: API version of the custom resource
            UPSCALER_CRD_PLURAL: Plural resource name of the custom resource
            UPSCALER_LOG_FORMAT: "text" or "json" (default: text)
            KUBECONFIG: Path to the kubeconfig file
            UPSCALER_KUBE_CONTEXT: kubeconfig context to use
        """

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_log_format(value: str | None) -> LogFormat:
            if not value:
                return LogFormat.TEXT
            try:
                return LogFormat(value.lower())
            except ValueError as e:
                valid = [f.value for f in LogFormat]
                raise ConfigurationError(f"UPSCALER_LOG_FORMAT must be one of {valid}: {value}") from e

        return cls(
            timeout_seconds=get_float("UPSCALER_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
            poll_interval_seconds=get_float(
                "UPSCALER_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS
            ),
            target_replicas=get_int("UPSCALER_TARGET_REPLICAS", DEFAULT_TARGET_REPLICAS),
            default_namespace=os.environ.get("UPSCALER_DEFAULT_NAMESPACE", DEFAULT_NAMESPACE),
            crd_group=os.environ.get("UPSCALER_CRD_GROUP", DEFAULT_CRD_GROUP),
            crd_version=os.environ.get("UPSCALER_CRD_VERSION", DEFAULT_CRD_VERSION),
            crd_plural=os.environ.get("UPSCALER_CRD_PLURAL", DEFAULT_CRD_PLURAL),
            kubeconfig=os.environ.get("KUBECONFIG") or None,
            kube_context=os.environ.get("UPSCALER_KUBE_CONTEXT") or None,
            log_format=get_log_format(os.environ.get("UPSCALER_LOG_FORMAT")),
        )
