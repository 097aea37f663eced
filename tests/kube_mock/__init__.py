"""Kubernetes API Mock for Integration Testing.

This module provides in-memory stand-ins for the resource store and the
event source so the lifecycle workflow can be exercised without a cluster.

Key Features:
- In-memory resource state with server-assigned uid and resourceVersion
- Scripted controller behaviour: status.state sequences after create/update
- Call log in issue order for sequencing assertions
- Error injection per operation or on the Nth read
- Scripted notification streams that block like a real watch

Usage:
    from kube_mock import MockEventSource, MockResourceStore

    store = MockResourceStore(states_after_create=["Creating", "Available"])
    orchestrator = LifecycleOrchestrator(store, config)
    result = await orchestrator.run(resource)

    assert store.operations == ["create", "get", "get", ...]
"""

from .events import MockEventSource, watch_item
from .store import MockResourceStore, MockStoreCall

__all__ = [
    "MockEventSource",
    "MockResourceStore",
    "MockStoreCall",
    "watch_item",
]
