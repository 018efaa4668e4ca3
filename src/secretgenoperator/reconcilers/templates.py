"""Reconciler of SecretTemplates."""

from __future__ import annotations

__all__ = ("SecretTemplateReconciler",)

from typing import Any

from secretgenoperator.k8s import CARVEL_API_VERSION, ObjectStore
from secretgenoperator.reconcilers.base import CustomResourceReconciler
from secretgenoperator.secret import Secret, b64, create_or_update_secret
from secretgenoperator.serviceaccounts import ServiceAccountLoader
from secretgenoperator.status import ReconcileResult
from secretgenoperator.templating import materialize, resolve_input_resources


class SecretTemplateReconciler(CustomResourceReconciler):
    """Create a Secret from the input resources of a SecretTemplate.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        The object store, also used to read input resources of templates
        without a service account.
    sa_loader : `secretgenoperator.serviceaccounts.ServiceAccountLoader`
        Builds the stores of templates with a ``serviceAccountName``.
    """

    api_version = CARVEL_API_VERSION
    kind = "SecretTemplate"

    def __init__(
        self, store: ObjectStore, sa_loader: ServiceAccountLoader
    ) -> None:
        super().__init__(store)
        self.sa_loader = sa_loader

    def reconcile_resource(
        self, body: dict[str, Any], logger: Any
    ) -> ReconcileResult:
        spec = body.get("spec") or {}
        meta = body["metadata"]

        input_store = self.store
        if spec.get("serviceAccountName"):
            input_store = self.sa_loader.store_for(
                spec["serviceAccountName"], meta["namespace"]
            )

        inputs = resolve_input_resources(body, input_store)
        template = spec.get("template") or {}
        data = materialize(template, inputs)

        secret = Secret.new(body)
        secret.apply_template(
            {
                "metadata": template.get("metadata") or {},
                "type": template.get("type") or "Opaque",
            }
        )
        secret.body["data"] = {key: b64(value) for key, value in data.items()}
        create_or_update_secret(self.store, secret, logger=logger)

        body.setdefault("status", {})["secret"] = {"name": meta["name"]}
        return ReconcileResult()
