"""Event observer: best-effort notification stream for a managed resource.

The observer subscribes to change notifications whose subject is one
specific resource uid (not its name, so events left behind by an earlier
resource with the same name are never replayed) and logs each one as it
arrives. It runs on its own daemon thread and is purely observational:
it never blocks, retries or fails the lifecycle workflow.

Concurrency contract:
- Started once, right after the resource is created
- Never joined on the workflow's success path; process exit ends it
- Subscription failures are logged and kept on the handle, never raised
- ObserverHandle.cancel() is available for callers that need a clean stop
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

from kubernetes import client, watch
from pydantic import ValidationError

from .models import NotificationEvent, ResourceIdentity

logger = logging.getLogger(__name__)

# Server-side watch timeout; the stream is re-opened when it expires so a
# pending cancel() is noticed at least this often
WATCH_TIMEOUT_SECONDS = 60

# Pause before re-opening a stream that ended, so a watch that keeps closing
# immediately does not turn into a request loop
RESUBSCRIBE_DELAY_SECONDS = 5.0

# Only newly added notifications are surfaced, repeated occurrences of an
# event arrive as MODIFIED with a bumped count and are skipped
SURFACED_WATCH_TYPES = frozenset({"ADDED"})


class EventSubscription(Protocol):
    """An open notification stream."""

    def __iter__(self) -> Iterator[Any]: ...

    def close(self) -> None: ...


class EventSource(Protocol):
    """Capability to subscribe to notifications about one subject."""

    def subscribe(self, namespace: str, subject_uid: str) -> EventSubscription: ...


class _WatchSubscription:
    """Iterable wrapper around a kubernetes watch stream."""

    def __init__(self, watcher: watch.Watch, stream: Iterable[Any]) -> None:
        self._watcher = watcher
        self._stream = stream

    def __iter__(self) -> Iterator[Any]:
        return iter(self._stream)

    def close(self) -> None:
        self._watcher.stop()


class KubernetesEventSource:
    """EventSource backed by a watch on core/v1 Events."""

    def __init__(
        self,
        api: client.CoreV1Api | None = None,
        timeout_seconds: int = WATCH_TIMEOUT_SECONDS,
    ) -> None:
        self._api = api if api is not None else client.CoreV1Api()
        self._timeout_seconds = timeout_seconds

    def subscribe(self, namespace: str, subject_uid: str) -> EventSubscription:
        watcher = watch.Watch()
        stream = watcher.stream(
            self._api.list_namespaced_event,
            namespace=namespace,
            field_selector=f"involvedObject.uid={subject_uid}",
            timeout_seconds=self._timeout_seconds,
        )
        return _WatchSubscription(watcher, stream)


def _field(obj: Any, attr: str, key: str) -> Any:
    """Read a field from either an API model object or a raw mapping."""
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, attr, None)


def to_notification(raw: Any, subject_uid: str) -> tuple[str | None, NotificationEvent] | None:
    """Convert one raw watch item into a NotificationEvent.

    Args:
        raw: Watch item ({"type": ..., "object": ...}).
        subject_uid: uid the subscription was filtered on.

    Returns:
        (event id, event) or None when the item is not a surfaced addition
        or does not belong to the subject.
    """
    if not isinstance(raw, dict):
        logger.warning("Ignoring malformed notification", extra={"payload_type": type(raw).__name__})
        return None

    if raw.get("type") not in SURFACED_WATCH_TYPES:
        return None

    obj = raw.get("object")
    if obj is None:
        return None

    involved = _field(obj, "involved_object", "involvedObject")
    involved_uid = _field(involved, "uid", "uid") if involved is not None else None
    if involved_uid is not None and involved_uid != subject_uid:
        # Field selector should make this impossible; guard against cross-talk anyway
        return None

    metadata = _field(obj, "metadata", "metadata")
    event_id = _field(metadata, "uid", "uid") if metadata is not None else None
    timestamp = _field(obj, "last_timestamp", "lastTimestamp") or _field(
        obj, "event_time", "eventTime"
    )

    try:
        event = NotificationEvent(
            type=_field(obj, "type", "type") or "",
            reason=_field(obj, "reason", "reason") or "",
            message=_field(obj, "message", "message") or "",
            subject_uid=subject_uid,
            count=_field(obj, "count", "count"),
            timestamp=str(timestamp) if timestamp is not None else None,
        )
    except ValidationError as e:
        logger.warning("Ignoring notification that failed validation", extra={"error": str(e)})
        return None
    return event_id, event


class ObserverHandle:
    """Handle on a running observer thread.

    Attributes:
        identity: Subject being observed.
        error: Subscription failure, if the observer stopped because of one.
        events_seen: Number of notifications surfaced so far.
    """

    def __init__(self, identity: ResourceIdentity) -> None:
        self.identity = identity
        self.error: Exception | None = None
        self.events_seen = 0
        self._cancelled = threading.Event()
        self._thread: threading.Thread | None = None
        self._subscription_lock = threading.Lock()
        self._subscription: EventSubscription | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait_cancelled(self, timeout: float) -> bool:
        """Block until cancelled or the timeout elapses. Returns True if cancelled."""
        return self._cancelled.wait(timeout)

    def cancel(self) -> None:
        """Ask the observer to stop. Takes effect on the next stream item or expiry."""
        self._cancelled.set()
        with self._subscription_lock:
            if self._subscription is not None:
                self._subscription.close()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _attach(self, subscription: EventSubscription | None) -> None:
        with self._subscription_lock:
            self._subscription = subscription
            # cancel() may have run between subscribe() and this call
            if subscription is not None and self._cancelled.is_set():
                subscription.close()


class EventObserver:
    """Surfaces notifications about one resource without blocking the workflow."""

    def __init__(
        self,
        source: EventSource,
        resubscribe_delay_seconds: float = RESUBSCRIBE_DELAY_SECONDS,
    ) -> None:
        if resubscribe_delay_seconds < 0:
            raise ValueError("resubscribe_delay_seconds must not be negative")
        self._source = source
        self._resubscribe_delay_seconds = resubscribe_delay_seconds

    def observe(
        self, identity: ResourceIdentity, handle: ObserverHandle | None = None
    ) -> Iterator[NotificationEvent]:
        """Lazily yield notifications about the given resource.

        The sequence is infinite until cancelled through the handle and
        cannot be restarted once exhausted. When the underlying stream
        expires it is re-opened after a short pause; notifications
        already yielded are not repeated.

        Raises:
            ValueError: If the identity has no uid yet.
        """
        if not identity.uid:
            raise ValueError(f"Cannot observe {identity} before it has a uid")

        handle = handle if handle is not None else ObserverHandle(identity)
        seen: set[str] = set()

        while not handle.cancelled:
            subscription = self._source.subscribe(identity.namespace, identity.uid)
            handle._attach(subscription)
            try:
                for raw in subscription:
                    if handle.cancelled:
                        break
                    converted = to_notification(raw, identity.uid)
                    if converted is None:
                        continue
                    event_id, event = converted
                    if event_id is not None:
                        if event_id in seen:
                            continue
                        seen.add(event_id)
                    yield event
            finally:
                handle._attach(None)
                subscription.close()

            handle.wait_cancelled(self._resubscribe_delay_seconds)

    def start(self, identity: ResourceIdentity) -> ObserverHandle:
        """Observe the resource on an independent daemon thread.

        Each notification is logged as it arrives. The returned handle is
        intentionally not joined by the workflow.
        """
        handle = ObserverHandle(identity)

        def run() -> None:
            try:
                for event in self.observe(identity, handle):
                    handle.events_seen += 1
                    logger.info(
                        "Event. Type: %s, Reason: %s, Message: %s",
                        event.type,
                        event.reason,
                        event.message,
                        extra={"resource": str(identity), "subject_uid": event.subject_uid},
                    )
            except Exception as e:
                # Observability is best-effort; keep the failure on the handle
                handle.error = e
                logger.error(
                    "Unable to watch events",
                    extra={"resource": str(identity), "error": str(e)},
                )

        thread = threading.Thread(target=run, name=f"event-observer-{identity.name}", daemon=True)
        handle._thread = thread
        thread.start()
        logger.debug("Event observer started", extra={"resource": str(identity)})
        return handle
