"""Reconciler of SecretExports, which feeds the export registry."""

from __future__ import annotations

__all__ = ("SecretExportReconciler", "validate_export")

from typing import Any

import structlog
from kubernetes.client.exceptions import ApiException

from secretgenoperator.errors import TerminalReconcileError
from secretgenoperator.exports import (
    SecretExports,
    SecretExportsWarmedUp,
    static_to_namespaces,
)
from secretgenoperator.k8s import CARVEL_API_VERSION, ObjectStore, is_not_found
from secretgenoperator.reconcilers.base import CustomResourceReconciler
from secretgenoperator.status import ReconcileResult


def validate_export(export: dict[str, Any]) -> list[str]:
    """Validate the spec of a SecretExport.

    Returns
    -------
    errors : `list` of `str`
        Validation errors, empty if the spec is valid.
    """
    errors = []
    to_namespaces = static_to_namespaces(export)
    if not to_namespaces:
        errors.append("Expected to have at least one non-empty to namespace")
    for namespace in to_namespaces:
        if not namespace:
            errors.append("Expected to namespace to be non-empty")
    return errors


class SecretExportReconciler(CustomResourceReconciler):
    """Record SecretExports and the Secrets they export in the export
    registry.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        The object store.
    secret_exports : `secretgenoperator.exports.SecretExports`
        The registry to keep up to date.
    """

    api_version = CARVEL_API_VERSION
    kind = "SecretExport"

    def __init__(
        self,
        store: ObjectStore,
        secret_exports: SecretExports | SecretExportsWarmedUp,
    ) -> None:
        super().__init__(store)
        self.secret_exports = secret_exports

    def reconcile_missing(
        self, namespace: str, name: str, logger: Any
    ) -> ReconcileResult:
        logger.info(f"Unexporting deleted SecretExport {namespace}/{name}")
        self.secret_exports.unexport(
            {"metadata": {"namespace": namespace, "name": name}}
        )
        return ReconcileResult()

    def reconcile_deleting(
        self, body: dict[str, Any], logger: Any
    ) -> ReconcileResult:
        self.secret_exports.unexport(body)
        return ReconcileResult()

    def reconcile_resource(
        self, body: dict[str, Any], logger: Any
    ) -> ReconcileResult:
        status = body.setdefault("status", {})
        status.pop("observedSecretResourceVersion", None)

        errors = validate_export(body)
        if errors:
            self.secret_exports.unexport(body)
            raise TerminalReconcileError(
                "Validation errors:\n"
                + "\n".join(f"- {error}" for error in errors)
            )

        meta = body["metadata"]
        try:
            secret = self.store.get(
                "v1", "Secret", namespace=meta["namespace"], name=meta["name"]
            )
        except ApiException as e:
            if is_not_found(e):
                self.secret_exports.unexport(body)
                raise TerminalReconcileError("Missing exported secret") from e
            raise

        status["observedSecretResourceVersion"] = secret["metadata"].get(
            "resourceVersion", ""
        )
        self.secret_exports.export(body, secret)
        logger.info(
            f"Exported secret {meta['namespace']}/{meta['name']} to "
            f"{static_to_namespaces(body)}"
        )
        return ReconcileResult()

    def warm_up(self, logger: Any | None = None) -> None:
        """Record every existing SecretExport in the registry.

        Status is not written. Exports that fail are skipped, they are
        picked up again by their own reconcile.
        """
        if logger is None:
            logger = structlog.get_logger(__name__)

        logger.info("Running warm up")
        exports = self.store.list(self.api_version, self.kind)
        logger.info(f"Warming up with {len(exports)} exports")
        for export in exports:
            if export["metadata"].get("deletionTimestamp"):
                continue
            try:
                self.reconcile_resource(export, logger)
            except (TerminalReconcileError, ApiException) as e:
                meta = export["metadata"]
                logger.warning(
                    f"Skipping SecretExport {meta['namespace']}/"
                    f"{meta['name']} during warm up: {e}"
                )
        logger.info("Done running warm up")
