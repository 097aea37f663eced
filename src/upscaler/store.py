"""Resource store: typed CRUD access to the managed custom resource.

The lifecycle core only depends on the ResourceStore protocol. The
Kubernetes implementation below talks to the API server through the
CustomObjectsApi and translates API failures into the store error
taxonomy so callers never handle raw ApiException objects.

No retries happen at this layer. Retry policy belongs to the convergence
waiter, not to individual calls.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from pydantic import ValidationError
from urllib3.exceptions import HTTPError

from .config import Config
from .models import ManagedResource

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


class StoreError(Exception):
    """Base class for resource store failures.

    Carries enough context (operation and identity) to diagnose a failure
    from the log line alone.
    """

    def __init__(self, message: str, *, operation: str, name: str, namespace: str) -> None:
        self.operation = operation
        self.name = name
        self.namespace = namespace
        super().__init__(f"{operation} {namespace}/{name}: {message}")


class NotFoundError(StoreError):
    """The resource does not exist."""


class AlreadyExistsError(StoreError):
    """A resource with the same name already exists."""


class ConflictError(StoreError):
    """The resource was modified concurrently (stale resourceVersion)."""


class TransportError(StoreError):
    """Connectivity, authentication or unexpected API failure."""


class ResourceStore(Protocol):
    """Contract the lifecycle core consumes."""

    def get(self, name: str, namespace: str) -> ManagedResource: ...

    def create(self, resource: ManagedResource) -> ManagedResource: ...

    def update(self, resource: ManagedResource) -> ManagedResource: ...

    def delete(self, name: str, namespace: str) -> None: ...


def load_kube_config(kubeconfig: str | None = None, context: str | None = None) -> None:
    """Load cluster credentials.

    In-cluster service account configuration wins unless a kubeconfig file
    or context was requested explicitly.

    Raises:
        TransportError: If no usable configuration is found.
    """
    if kubeconfig is None and context is None:
        try:
            kube_config.load_incluster_config()
            logger.info("Using in-cluster configuration")
            return
        except ConfigException:
            logger.debug("Not running in a cluster, falling back to kubeconfig")

    try:
        kube_config.load_kube_config(config_file=kubeconfig, context=context)
    except (ConfigException, OSError) as e:
        raise TransportError(
            f"unable to load kubeconfig: {e}",
            operation="configure",
            name=context or "",
            namespace="",
        ) from e
    logger.info("Using kubeconfig", extra={"kubeconfig": kubeconfig, "context": context})


class KubernetesResourceStore:
    """ResourceStore backed by the Kubernetes CustomObjectsApi."""

    def __init__(self, config: Config, api: client.CustomObjectsApi | None = None) -> None:
        """Initialize the store.

        Args:
            config: Validated configuration providing the CRD coordinates.
            api: Optional pre-built API object (tests inject a mock here).
        """
        self._group = config.crd_group
        self._version = config.crd_version
        self._plural = config.crd_plural
        self._api = api if api is not None else client.CustomObjectsApi()

    def get(self, name: str, namespace: str) -> ManagedResource:
        with self._translate_errors("get", name, namespace):
            body = self._api.get_namespaced_custom_object(
                group=self._group,
                version=self._version,
                namespace=namespace,
                plural=self._plural,
                name=name,
            )
        return self._decode("get", name, namespace, body)

    def create(self, resource: ManagedResource) -> ManagedResource:
        identity = resource.identity
        with self._translate_errors(
            "create", identity.name, identity.namespace, conflict=AlreadyExistsError
        ):
            body = self._api.create_namespaced_custom_object(
                group=self._group,
                version=self._version,
                namespace=identity.namespace,
                plural=self._plural,
                body=resource.to_manifest(),
            )
        return self._decode("create", identity.name, identity.namespace, body)

    def update(self, resource: ManagedResource) -> ManagedResource:
        identity = resource.identity
        with self._translate_errors("update", identity.name, identity.namespace):
            body = self._api.replace_namespaced_custom_object(
                group=self._group,
                version=self._version,
                namespace=identity.namespace,
                plural=self._plural,
                name=identity.name,
                body=resource.to_manifest(),
            )
        return self._decode("update", identity.name, identity.namespace, body)

    def delete(self, name: str, namespace: str) -> None:
        with self._translate_errors("delete", name, namespace):
            self._api.delete_namespaced_custom_object(
                group=self._group,
                version=self._version,
                namespace=namespace,
                plural=self._plural,
                name=name,
            )

    @contextmanager
    def _translate_errors(
        self,
        operation: str,
        name: str,
        namespace: str,
        conflict: type[StoreError] = ConflictError,
    ) -> Iterator[None]:
        """Map API client failures onto the store error taxonomy."""
        try:
            yield
        except ApiException as e:
            error_cls: type[StoreError]
            if e.status == HTTP_NOT_FOUND:
                error_cls = NotFoundError
            elif e.status == HTTP_CONFLICT:
                error_cls = conflict
            else:
                error_cls = TransportError
            logger.debug(
                "API call failed",
                extra={"operation": operation, "status": e.status, "reason": e.reason},
            )
            raise error_cls(
                f"{e.status} {e.reason}", operation=operation, name=name, namespace=namespace
            ) from e
        except (HTTPError, OSError) as e:
            raise TransportError(
                f"{type(e).__name__}: {e}", operation=operation, name=name, namespace=namespace
            ) from e

    @staticmethod
    def _decode(operation: str, name: str, namespace: str, body: Any) -> ManagedResource:
        try:
            return ManagedResource.model_validate(body)
        except ValidationError as e:
            raise TransportError(
                f"unexpected response payload: {e}",
                operation=operation,
                name=name,
                namespace=namespace,
            ) from e

