"""Pydantic models for the managed resource and its notifications.

These models provide:
1. Type-safe decoding of the desired-state document and API responses
2. Validation at the boundary (fail fast, fail loudly)
3. Lossless round-tripping: fields this driver does not know are kept
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Identity and State
# =============================================================================


class ResourceState(str, Enum):
    """Well-known values of status.state reported by the remote controller.

    The set is open-ended: the controller may report values not listed here,
    and those are carried through as plain strings.
    """

    UNSET = ""
    CREATING = "Creating"
    AVAILABLE = "Available"
    FAILED = "Failed"


@dataclass(frozen=True)
class ResourceIdentity:
    """Name, namespace and server-assigned uid of a managed resource."""

    name: str
    namespace: str
    uid: str | None = None

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


# =============================================================================
# Managed Resource
# =============================================================================


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata used by the driver."""

    model_config = {"extra": "allow", "populate_by_name": True}

    name: str | None = None
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = Field(None, alias="resourceVersion")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class ResourceStatus(BaseModel):
    """Observed status written by the remote controller."""

    model_config = {"extra": "allow"}

    # Plain string so unrecognised controller states are preserved verbatim
    state: str = ""

    @field_validator("state", mode="before")
    @classmethod
    def none_to_unset(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_observed(self) -> bool:
        """Whether the controller has reported any state yet."""
        return self.state != ResourceState.UNSET.value


class ManagedResource(BaseModel):
    """A declarative object whose lifecycle the driver controls."""

    model_config = {"extra": "allow", "populate_by_name": True}

    api_version: str | None = Field(None, alias="apiVersion")
    kind: str | None = None
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: dict[str, Any] = Field(default_factory=dict)
    status: ResourceStatus = Field(default_factory=ResourceStatus)

    @field_validator("metadata", "spec", "status", mode="before")
    @classmethod
    def none_to_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def identity(self) -> ResourceIdentity:
        """Identity of this resource.

        Raises:
            ValueError: If name or namespace is missing.
        """
        if not self.metadata.name or not self.metadata.namespace:
            raise ValueError("Resource identity requires metadata.name and metadata.namespace")
        return ResourceIdentity(
            name=self.metadata.name,
            namespace=self.metadata.namespace,
            uid=self.metadata.uid,
        )

    @property
    def state(self) -> str:
        """Current status.state (empty string when not yet observed)."""
        return self.status.state

    @property
    def replica_count(self) -> int | None:
        """Desired replica count from spec.replicas, if set."""
        replicas = self.spec.get("replicas")
        if replicas is None:
            return None
        return int(replicas)

    def with_replicas(self, replicas: int) -> ManagedResource:
        """Return a copy with spec.replicas set to the given count."""
        if replicas < 0:
            raise ValueError(f"replicas must be non-negative: {replicas}")
        spec = copy.deepcopy(self.spec)
        spec["replicas"] = replicas
        return self.model_copy(update={"spec": spec}, deep=True)

    def with_namespace(self, namespace: str) -> ManagedResource:
        """Return a copy placed in the given namespace."""
        metadata = self.metadata.model_copy(update={"namespace": namespace})
        return self.model_copy(update={"metadata": metadata}, deep=True)

    def to_manifest(self) -> dict[str, Any]:
        """Convert to an API request body.

        Status is dropped when the controller has not reported anything;
        the API server owns that subresource.
        """
        body = self.model_dump(by_alias=True, exclude_none=True)
        if not self.status.is_observed and not self.status.model_extra:
            body.pop("status", None)
        return body


# =============================================================================
# Convergence
# =============================================================================

StatusPredicate = Callable[[ResourceStatus], bool]


def state_is(state: ResourceState | str) -> StatusPredicate:
    """Build a predicate matching status.state exactly."""
    expected = state.value if isinstance(state, ResourceState) else state

    def predicate(status: ResourceStatus) -> bool:
        return status.state == expected

    predicate.__name__ = f"state_is_{expected or 'unset'}"
    return predicate


@dataclass(frozen=True)
class ConvergenceTarget:
    """What the convergence waiter waits for, and for how long.

    Attributes:
        predicate: Condition over the observed status.
        timeout_seconds: Total budget for the wait.
        poll_interval_seconds: Pause between two status reads.
        description: Human readable target used in logs and errors.
        report_progress: Log each observed non-matching state while waiting.
    """

    predicate: StatusPredicate
    timeout_seconds: float
    poll_interval_seconds: float
    description: str = "target state"
    report_progress: bool = True

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.poll_interval_seconds >= self.timeout_seconds:
            raise ValueError(
                f"poll_interval_seconds ({self.poll_interval_seconds}) must be shorter "
                f"than timeout_seconds ({self.timeout_seconds})"
            )

    @classmethod
    def for_state(
        cls,
        state: ResourceState,
        timeout_seconds: float,
        poll_interval_seconds: float,
        report_progress: bool = True,
    ) -> ConvergenceTarget:
        """Target matching a single status.state value."""
        return cls(
            predicate=state_is(state),
            timeout_seconds=timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
            description=f"state {state.value}",
            report_progress=report_progress,
        )


# =============================================================================
# Notifications
# =============================================================================


class NotificationEvent(BaseModel):
    """A single change notification about a managed resource.

    Ephemeral: produced by the event observer, logged, then discarded.
    """

    model_config = {"frozen": True}

    type: str = ""
    reason: str = ""
    message: str = ""
    subject_uid: str
    count: int | None = None
    timestamp: str | None = None
