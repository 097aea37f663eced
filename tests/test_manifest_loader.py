"""Tests for desired-state manifest loading."""

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from upscaler.config import MAX_MANIFEST_FILE_SIZE_BYTES
from upscaler.manifest_loader import ManifestDecodeError, load_manifest


def _write_yaml(tmp_path: Path, data: Any, name: str = "deployment.yaml") -> Path:
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestLoadManifest:
    """Tests for load_manifest."""

    def test_load_yaml(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        """Test loading a YAML manifest."""
        path = _write_yaml(tmp_path, seldon_manifest)

        resource = load_manifest(path, "default")

        assert resource.kind == "SeldonDeployment"
        assert str(resource.identity) == "models/sklearn-iris"
        assert resource.identity.uid is None

    def test_load_json(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        """Test that JSON documents are accepted."""
        path = tmp_path / "deployment.json"
        path.write_text(json.dumps(seldon_manifest))

        resource = load_manifest(path, "default")

        assert resource.spec == seldon_manifest["spec"]

    def test_default_namespace_applied(
        self, tmp_path: Path, seldon_manifest: dict[str, Any]
    ) -> None:
        """Test that a manifest without namespace lands in the default one."""
        seldon_manifest["metadata"].pop("namespace")
        path = _write_yaml(tmp_path, seldon_manifest)

        resource = load_manifest(path, "default")

        assert resource.identity.namespace == "default"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(tmp_path / "missing.yaml", "default")

        assert "not found" in str(exc_info.value)

    def test_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(tmp_path, "default")

        assert "not a file" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "deployment.yaml"
        path.write_text("metadata: [unclosed")

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default")

        assert "Invalid YAML/JSON" in str(exc_info.value)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, ["a", "list"])

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default")

        assert "mapping" in str(exc_info.value)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "deployment.yaml"
        path.write_text("")

        with pytest.raises(ManifestDecodeError):
            load_manifest(path, "default")

    def test_missing_kind(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        seldon_manifest.pop("kind")
        path = _write_yaml(tmp_path, seldon_manifest)

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default")

        assert "kind" in str(exc_info.value)

    def test_matching_api_version(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        path = _write_yaml(tmp_path, seldon_manifest)

        resource = load_manifest(path, "default", "machinelearning.seldon.io/v1")

        assert resource.api_version == "machinelearning.seldon.io/v1"

    def test_api_version_mismatch(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        """Test that a manifest for another resource type is rejected up front."""
        seldon_manifest["apiVersion"] = "machinelearning.seldon.io/v1alpha2"
        path = _write_yaml(tmp_path, seldon_manifest)

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default", "machinelearning.seldon.io/v1")

        assert "does not match" in str(exc_info.value)

    def test_missing_name(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        seldon_manifest["metadata"].pop("name")
        path = _write_yaml(tmp_path, seldon_manifest)

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default")

        assert "metadata.name" in str(exc_info.value)

    def test_uid_rejected(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        """Test that a manifest cannot claim a server-assigned uid."""
        seldon_manifest["metadata"]["uid"] = "0f6c3a7e"
        path = _write_yaml(tmp_path, seldon_manifest)

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default")

        assert "uid" in str(exc_info.value)

    def test_validation_error_is_formatted(self, tmp_path: Path, seldon_manifest: dict[str, Any]) -> None:
        seldon_manifest["spec"] = "replicas: 2"
        path = _write_yaml(tmp_path, seldon_manifest)

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default")

        assert "Validation failed" in str(exc_info.value)
        assert "spec" in str(exc_info.value)

    def test_oversized_file(self, tmp_path: Path) -> None:
        """Test that the size limit is enforced before parsing."""
        path = tmp_path / "deployment.yaml"
        path.write_text("#" * (MAX_MANIFEST_FILE_SIZE_BYTES + 1))

        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest(path, "default")

        assert "maximum size" in str(exc_info.value)
