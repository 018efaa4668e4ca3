"""Reconcilers of the resources that request a copy of an exported
Secret: SecretImport, SecretRequest and SecretExportApproval.

The three kinds share one workflow and differ only in their API group and
kind, so a single reconciler class is instantiated once per kind.
"""

from __future__ import annotations

__all__ = (
    "NOT_OFFERED_MESSAGE",
    "REQUESTER_KINDS",
    "SecretRequesterReconciler",
    "validate_requester",
)

from typing import Any

from secretgenoperator.errors import (
    InternalInconsistencyError,
    TerminalReconcileError,
)
from secretgenoperator.exports import SecretExportsWarmedUp, SecretMatcher
from secretgenoperator.k8s import (
    CARVEL_API_VERSION,
    K14S_API_VERSION,
    ObjectStore,
)
from secretgenoperator.namespaces import (
    get_namespace_annotations,
    make_namespace_exclusion_check,
)
from secretgenoperator.reconcilers.base import CustomResourceReconciler
from secretgenoperator.secret import (
    Secret,
    create_or_update_secret,
    delete_associated_secret,
)
from secretgenoperator.status import ReconcileResult

NOT_OFFERED_MESSAGE = "Export was not offered/allowed"

REQUESTER_KINDS: tuple[tuple[str, str], ...] = (
    (CARVEL_API_VERSION, "SecretImport"),
    (K14S_API_VERSION, "SecretRequest"),
    (K14S_API_VERSION, "SecretExportApproval"),
)
"""API versions and kinds of the resources that request exported secrets."""


def validate_requester(body: dict[str, Any]) -> list[str]:
    errors = []
    if not (body.get("spec") or {}).get("fromNamespace"):
        errors.append(
            "Validating 'spec.fromNamespace': Expected to be non-empty"
        )
    return errors


class SecretRequesterReconciler(CustomResourceReconciler):
    """Copy an exported Secret into the namespace of the resource that
    requests it.

    The requester asks for the Secret with its own name in
    ``spec.fromNamespace``. If the export registry has exactly one such
    Secret offered to the requester's namespace it is copied into a
    Secret owned by the requester. If the export disappears the copy is
    deleted.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        The object store.
    secret_exports : `secretgenoperator.exports.SecretExportsWarmedUp`
        The export registry.
    api_version : `str`
        API version of the requester kind.
    kind : `str`
        The requester kind.
    """

    def __init__(
        self,
        store: ObjectStore,
        secret_exports: SecretExportsWarmedUp,
        *,
        api_version: str,
        kind: str,
    ) -> None:
        super().__init__(store)
        self.secret_exports = secret_exports
        self.api_version = api_version
        self.kind = kind

    def reconcile_resource(
        self, body: dict[str, Any], logger: Any
    ) -> ReconcileResult:
        errors = validate_requester(body)
        if errors:
            raise TerminalReconcileError(
                "Validation errors:\n"
                + "\n".join(f"- {error}" for error in errors)
            )

        meta = body["metadata"]
        matcher = SecretMatcher(
            to_namespace=meta["namespace"],
            from_name=meta["name"],
            from_namespace=body["spec"]["fromNamespace"],
            from_namespace_annotations=get_namespace_annotations(
                self.store, meta["namespace"], logger
            ),
        )
        ns_is_excluded = make_namespace_exclusion_check(self.store, logger)
        matched = self.secret_exports.matched_secrets_for_import(
            matcher, ns_is_excluded
        )

        if not matched:
            delete_associated_secret(
                self.store,
                namespace=meta["namespace"],
                name=meta["name"],
                logger=logger,
            )
            raise TerminalReconcileError(NOT_OFFERED_MESSAGE)
        if len(matched) > 1:
            raise InternalInconsistencyError(
                f"Internal inconsistency: expected to match exactly one "
                f"exported secret, but matched {len(matched)}"
            )

        secret = Secret.new(body)
        secret.apply_secret(matched[0])
        create_or_update_secret(self.store, secret, logger=logger)
        return ReconcileResult()
