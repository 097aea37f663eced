"""Lifecycle orchestrator: drive one resource through a fixed linear workflow.

Phases, strictly in order:

    Idle -> Created -> AvailableAfterCreate -> Scaled
         -> CreatingAfterScale -> AvailableAfterScale -> Deleted

Every step either succeeds or ends the workflow. There is no retry and no
rollback: a failure after creation leaves the resource in the cluster for
the operator to inspect and clean up.

Known limitation: the post-scale wait for Creating polls like every other
wait. A controller that passes through Creating faster than one poll
interval is never observed in that state and the step times out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TypeVar

from .config import Config
from .events import EventObserver, ObserverHandle
from .models import ConvergenceTarget, ManagedResource, ResourceIdentity, ResourceState
from .store import ResourceStore, StoreError
from .waiter import ConvergenceTimeoutError, ConvergenceWaiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LifecyclePhase(str, Enum):
    """Milestones of the lifecycle workflow."""

    IDLE = "Idle"
    CREATED = "Created"
    AVAILABLE_AFTER_CREATE = "AvailableAfterCreate"
    SCALED = "Scaled"
    CREATING_AFTER_SCALE = "CreatingAfterScale"
    AVAILABLE_AFTER_SCALE = "AvailableAfterScale"
    DELETED = "Deleted"


class LifecycleStepError(Exception):
    """A workflow step failed. Wraps the underlying store or timeout error."""

    def __init__(
        self,
        step: str,
        identity: ResourceIdentity,
        cause: StoreError | ConvergenceTimeoutError,
    ) -> None:
        self.step = step
        self.identity = identity
        self.cause = cause
        super().__init__(f"{step} failed for {identity}: {cause}")

    @property
    def is_timeout(self) -> bool:
        """True when the controller was too slow rather than rejecting the request."""
        return isinstance(self.cause, ConvergenceTimeoutError)


@dataclass
class LifecycleResult:
    """Outcome of one workflow run."""

    identity: ResourceIdentity
    phase: LifecyclePhase = LifecyclePhase.IDLE
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    error: LifecycleStepError | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the whole workflow completed."""
        return self.error is None and self.phase == LifecyclePhase.DELETED


class LifecycleOrchestrator:
    """Runs create, wait, scale, wait, delete against a ResourceStore.

    The event observer is started right after creation and left running;
    it is never joined or cancelled here.
    """

    def __init__(
        self,
        store: ResourceStore,
        config: Config,
        *,
        observer: EventObserver | None = None,
        waiter: ConvergenceWaiter | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            store: Resource store used for every read and write.
            config: Validated configuration (timeouts, target replicas).
            observer: Optional event observer; without one no events are logged.
            waiter: Optional waiter; defaults to one polling the same store.
        """
        self._store = store
        self._config = config
        self._observer = observer
        self._waiter = waiter if waiter is not None else ConvergenceWaiter(store)
        self._observer_handle: ObserverHandle | None = None

    @property
    def observer_handle(self) -> ObserverHandle | None:
        """Handle on the event observer thread, once started."""
        return self._observer_handle

    def _target(self, state: ResourceState, report_progress: bool = True) -> ConvergenceTarget:
        return ConvergenceTarget.for_state(
            state,
            timeout_seconds=self._config.timeout_seconds,
            poll_interval_seconds=self._config.poll_interval_seconds,
            report_progress=report_progress,
        )

    async def run(self, resource: ManagedResource) -> LifecycleResult:
        """Run the full workflow for a desired-state resource.

        Args:
            resource: Resource to create; must carry name and namespace.

        Returns:
            LifecycleResult with the last phase reached and any error.
        """
        result = LifecycleResult(identity=resource.identity)

        try:
            # Idle -> Created
            created = await self._step(
                "create", result.identity, lambda: self._store.create(resource)
            )
            result.identity = created.identity
            result.phase = LifecyclePhase.CREATED
            logger.info(
                "Resource has been created. Name: %s, namespace: %s",
                result.identity.name,
                result.identity.namespace,
                extra={"uid": result.identity.uid},
            )

            # Created -> AvailableAfterCreate
            self._start_observer(result.identity)
            await self._wait(result.identity, ResourceState.AVAILABLE, "wait for available")
            result.phase = LifecyclePhase.AVAILABLE_AFTER_CREATE
            logger.info("Resource is available", extra={"resource": str(result.identity)})

            # AvailableAfterCreate -> Scaled
            replicas = self._config.target_replicas
            await self._step("scale", result.identity, lambda: self._scale(result.identity, replicas))
            result.phase = LifecyclePhase.SCALED
            logger.info("Resource is scaling to %s replicas", replicas)

            # Scaled -> CreatingAfterScale
            # The resource is expected to still report Available here; do not log it
            await self._wait(
                result.identity, ResourceState.CREATING, "wait for creating", report_progress=False
            )
            result.phase = LifecyclePhase.CREATING_AFTER_SCALE

            # CreatingAfterScale -> AvailableAfterScale
            await self._wait(result.identity, ResourceState.AVAILABLE, "wait for available")
            result.phase = LifecyclePhase.AVAILABLE_AFTER_SCALE
            logger.info("Resource scaled with %s replicas", replicas)

            # AvailableAfterScale -> Deleted
            identity = result.identity
            await self._step(
                "delete", identity, lambda: self._store.delete(identity.name, identity.namespace)
            )
            result.phase = LifecyclePhase.DELETED
            logger.info("Resource has been deleted", extra={"resource": str(result.identity)})

        except LifecycleStepError as e:
            result.error = e
            logger.error(
                "Lifecycle step failed",
                extra={
                    "step": e.step,
                    "resource": str(e.identity),
                    "phase": result.phase.value,
                    "error": str(e.cause),
                    "error_type": type(e.cause).__name__,
                },
            )

        finally:
            result.end_time = datetime.now(UTC)

        return result

    async def _step(self, step: str, identity: ResourceIdentity, call: Callable[[], T]) -> T:
        """Run one blocking store step off the event loop."""
        loop = asyncio.get_running_loop()
        return await self._guard(step, identity, loop.run_in_executor(None, call))

    async def _wait(
        self,
        identity: ResourceIdentity,
        state: ResourceState,
        step: str,
        report_progress: bool = True,
    ) -> None:
        target = self._target(state, report_progress)
        await self._guard(step, identity, self._waiter.wait_until(identity, target))

    async def _guard(self, step: str, identity: ResourceIdentity, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except (StoreError, ConvergenceTimeoutError) as e:
            raise LifecycleStepError(step, identity, e) from e

    def _scale(self, identity: ResourceIdentity, replicas: int) -> ManagedResource:
        # Read-modify-write; a concurrent writer surfaces as ConflictError
        current = self._store.get(identity.name, identity.namespace)
        return self._store.update(current.with_replicas(replicas))

    def _start_observer(self, identity: ResourceIdentity) -> None:
        if self._observer is None:
            return
        if not identity.uid:
            logger.warning(
                "Created resource has no uid, not watching events",
                extra={"resource": str(identity)},
            )
            return
        self._observer_handle = self._observer.start(identity)
