"""Desired-state manifest loading with validation.

The manifest is read once at startup, before any store interaction. Any
problem with the file is reported as ManifestDecodeError so the process
can fail before touching the cluster.

SECURITY: File size is checked before reading to avoid loading huge
inputs into memory.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import MAX_MANIFEST_FILE_SIZE_BYTES
from .models import ManagedResource

logger = logging.getLogger(__name__)


class ManifestDecodeError(Exception):
    """Raised when the desired-state document cannot be loaded or decoded."""

    pass


def load_manifest(
    path: Path, default_namespace: str, api_version: str | None = None
) -> ManagedResource:
    """Load and validate a desired-state document from YAML or JSON.

    JSON is a subset of YAML, so both formats go through the same parser.

    Args:
        path: Path to the manifest file.
        default_namespace: Namespace substituted when the manifest has none.
        api_version: Expected apiVersion of the managed resource, if any.

    Returns:
        Validated resource, ready to be created.

    Raises:
        ManifestDecodeError: If the manifest cannot be read or fails validation.
    """
    if not path.exists():
        raise ManifestDecodeError(f"Manifest file not found: {path}")

    if not path.is_file():
        raise ManifestDecodeError(f"Manifest path is not a file: {path}")

    # SECURITY: Check file size before reading
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ManifestDecodeError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise ManifestDecodeError(
            f"Manifest file exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestDecodeError(f"Failed to read manifest file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ManifestDecodeError(f"Invalid YAML/JSON in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise ManifestDecodeError(f"Manifest must contain a mapping: {path}")

    try:
        resource = ManagedResource.model_validate(raw_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise ManifestDecodeError(f"Validation failed for {path}:\n{error_list}") from e

    if not resource.api_version or not resource.kind:
        raise ManifestDecodeError(f"Manifest must set apiVersion and kind: {path}")

    if api_version is not None and resource.api_version != api_version:
        raise ManifestDecodeError(
            f"Manifest apiVersion {resource.api_version} does not match the configured "
            f"resource {api_version}: {path}"
        )

    if not resource.metadata.name:
        raise ManifestDecodeError(f"Manifest must set metadata.name: {path}")

    if resource.metadata.uid:
        # uid is assigned by the server at creation time
        raise ManifestDecodeError(f"Manifest must not set metadata.uid: {path}")

    if not resource.metadata.namespace:
        resource = resource.with_namespace(default_namespace)

    logger.info(
        "Loaded manifest for %s %s/%s from %s",
        resource.kind,
        resource.metadata.namespace,
        resource.metadata.name,
        path,
    )
    return resource
