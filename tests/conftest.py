"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for kube_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))


class FakeClock:
    """Deterministic monotonic clock whose sleep() advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock for convergence tests that must not really sleep."""
    return FakeClock()


@pytest.fixture
def seldon_manifest() -> dict[str, Any]:
    """Minimal SeldonDeployment manifest."""
    return {
        "apiVersion": "machinelearning.seldon.io/v1",
        "kind": "SeldonDeployment",
        "metadata": {"name": "sklearn-iris", "namespace": "models"},
        "spec": {
            "name": "iris",
            "predictors": [
                {
                    "name": "default",
                    "replicas": 1,
                    "graph": {
                        "name": "classifier",
                        "implementation": "SKLEARN_SERVER",
                        "modelUri": "gs://seldon-models/sklearn/iris",
                    },
                }
            ],
        },
    }
