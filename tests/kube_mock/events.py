"""Mock event source with scripted notification streams.

Each subscribe() call hands out the next scripted stream. After its
items are exhausted a subscription blocks, like an idle watch, until it
is closed, unless the source was built with block_when_drained=False.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import Any

# Upper bound on how long an idle mock subscription blocks, so a test that
# forgets to cancel cannot hang the run
IDLE_BLOCK_SECONDS = 5.0


def watch_item(
    event_type: str = "Normal",
    reason: str = "Created",
    message: str = "created",
    *,
    subject_uid: str,
    event_uid: str | None = None,
    watch_type: str = "ADDED",
) -> dict[str, Any]:
    """Build a raw watch item as produced by a watch stream on core/v1 Events."""
    return {
        "type": watch_type,
        "object": {
            "type": event_type,
            "reason": reason,
            "message": message,
            "involvedObject": {"uid": subject_uid},
            "metadata": {"uid": event_uid or f"evt-{reason}-{message}"},
            "count": 1,
        },
    }


class MockSubscription:
    """A scripted subscription."""

    def __init__(
        self, items: list[Any], drained: threading.Event, *, block_when_drained: bool = True
    ) -> None:
        self._items = items
        self._drained = drained
        self._block_when_drained = block_when_drained
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> Iterator[Any]:
        for item in self._items:
            if self._closed.is_set():
                return
            yield item
        self._drained.set()
        if self._block_when_drained:
            self._closed.wait(IDLE_BLOCK_SECONDS)

    def close(self) -> None:
        self._closed.set()


class MockEventSource:
    """In-memory EventSource.

    Attributes:
        subscriptions: (namespace, subject_uid) of every subscribe() call.
        subscribed: Set once the first subscription is opened.
        drained: Set when a subscription has handed out all of its items.
    """

    def __init__(
        self,
        streams: list[list[Any]] | None = None,
        *,
        fail_subscribe: Exception | None = None,
        block_when_drained: bool = True,
    ) -> None:
        self._streams = [list(s) for s in streams or []]
        self._fail_subscribe = fail_subscribe
        self._block_when_drained = block_when_drained
        self.subscriptions: list[tuple[str, str]] = []
        self.opened: list[MockSubscription] = []
        self.subscribed = threading.Event()
        self.drained = threading.Event()

    def subscribe(self, namespace: str, subject_uid: str) -> MockSubscription:
        self.subscriptions.append((namespace, subject_uid))
        self.subscribed.set()
        if self._fail_subscribe is not None:
            raise self._fail_subscribe

        items = self._streams.pop(0) if self._streams else []
        subscription = MockSubscription(
            items, self.drained, block_when_drained=self._block_when_drained
        )
        self.opened.append(subscription)
        return subscription
