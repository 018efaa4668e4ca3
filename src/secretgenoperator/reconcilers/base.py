"""Shared reconcile flow of the operator's custom resources."""

from __future__ import annotations

__all__ = ("CustomResourceReconciler",)

from typing import Any

import structlog
from kubernetes.client.exceptions import ApiException

from secretgenoperator.k8s import ObjectStore, is_not_found
from secretgenoperator.status import ReconcileResult, reconcile_with_status


class CustomResourceReconciler:
    """Reconcile one kind of custom resource by namespace and name.

    The resource is read fresh on every reconcile. A resource that no
    longer exists, or that is being deleted, is left alone: anything it
    owns is garbage-collected through owner references. Otherwise
    `reconcile_resource` runs with the generic status tracked and
    persisted on every exit path.

    Subclasses set ``api_version`` and ``kind`` and implement
    `reconcile_resource`.
    """

    api_version: str
    kind: str

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def reconcile(
        self, namespace: str, name: str, logger: Any | None = None
    ) -> ReconcileResult:
        if logger is None:
            logger = structlog.get_logger(__name__)

        body = self.get_resource(namespace, name)
        if body is None:
            return self.reconcile_missing(namespace, name, logger)
        if body["metadata"].get("deletionTimestamp"):
            return self.reconcile_deleting(body, logger)

        return reconcile_with_status(
            body=body,
            reconcile=lambda: self.reconcile_resource(body, logger),
            persist=self.persist_status,
        )

    def reconcile_resource(
        self, body: dict[str, Any], logger: Any
    ) -> ReconcileResult:
        raise NotImplementedError

    def reconcile_missing(
        self, namespace: str, name: str, logger: Any
    ) -> ReconcileResult:
        logger.info(f"{self.kind} {namespace}/{name} not found")
        return ReconcileResult()

    def reconcile_deleting(
        self, body: dict[str, Any], logger: Any
    ) -> ReconcileResult:
        return ReconcileResult()

    def get_resource(
        self, namespace: str, name: str
    ) -> dict[str, Any] | None:
        """Get the resource, or `None` if it does not exist."""
        try:
            return self.store.get(
                self.api_version, self.kind, namespace=namespace, name=name
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def persist_status(self, body: dict[str, Any]) -> None:
        self.store.update_status(body)
