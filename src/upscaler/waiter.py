"""Convergence waiter: poll the store until observed status matches a target.

The remote controller reconciles asynchronously, so after every mutation
the driver has to wait for status.state to catch up. The waiter reads the
resource, evaluates the target predicate, and sleeps between reads until
the predicate holds or the timeout budget is spent.

A failed read is never mistaken for "not converged yet": store errors
propagate immediately so a broken connection does not masquerade as a
slow controller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from .models import ConvergenceTarget, ManagedResource, ResourceIdentity
from .store import ResourceStore

logger = logging.getLogger(__name__)


class ConvergenceTimeoutError(Exception):
    """Raised when the target was not reached within the timeout budget."""

    def __init__(
        self,
        identity: ResourceIdentity,
        target: ConvergenceTarget,
        last_state: str,
        elapsed_seconds: float,
    ) -> None:
        self.identity = identity
        self.target = target
        self.last_state = last_state
        self.elapsed_seconds = elapsed_seconds
        observed = last_state or "<unset>"
        super().__init__(
            f"timeout waiting for {target.description} on {identity} "
            f"after {elapsed_seconds:.1f}s (timeout {target.timeout_seconds}s, "
            f"last observed state: {observed})"
        )


class ConvergenceWaiter:
    """Polls a ResourceStore until a ConvergenceTarget is satisfied."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the waiter.

        Args:
            store: Store to read the resource from.
            clock: Monotonic clock in seconds.
            sleep: Coroutine used to pause between polls.
        """
        self._store = store
        self._clock = clock
        self._sleep = sleep

    async def wait_until(
        self, identity: ResourceIdentity, target: ConvergenceTarget
    ) -> ManagedResource:
        """Wait until the resource status satisfies the target.

        Args:
            identity: Resource to watch.
            target: Predicate, timeout and poll interval.

        Returns:
            The first resource snapshot that satisfied the predicate.

        Raises:
            ConvergenceTimeoutError: If the deadline passes first.
            StoreError: If any read fails.
        """
        start = self._clock()
        deadline = start + target.timeout_seconds
        loop = asyncio.get_running_loop()
        polls = 0

        while True:
            # Store calls are blocking; keep them off the event loop thread
            resource = await loop.run_in_executor(
                None, self._store.get, identity.name, identity.namespace
            )
            polls += 1

            if target.predicate(resource.status):
                logger.debug(
                    "Resource reached %s",
                    target.description,
                    extra={"resource": str(identity), "polls": polls},
                )
                return resource

            # An empty state means the controller has not acted yet; stay quiet
            if target.report_progress and resource.status.is_observed:
                logger.info(
                    "%s is not in %s, current state: %s. Sleep for %s seconds",
                    identity,
                    target.description,
                    resource.state,
                    target.poll_interval_seconds,
                )

            await self._sleep(target.poll_interval_seconds)

            now = self._clock()
            if now >= deadline:
                raise ConvergenceTimeoutError(
                    identity=identity,
                    target=target,
                    last_state=resource.state,
                    elapsed_seconds=now - start,
                )
