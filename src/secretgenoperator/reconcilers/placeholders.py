"""Reconciler of placeholder image pull Secrets.

A user-created Secret annotated with
``secretgen.carvel.dev/image-pull-secret`` is filled with the combination
of every exported docker config Secret offered to its namespace. Since a
Secret has no status block, the reconcile outcome is written as JSON into
the ``secretgen.carvel.dev/status`` annotation.
"""

from __future__ import annotations

__all__ = (
    "PLACEHOLDER_ANNOTATION",
    "SECRET_STATUS_ANNOTATION",
    "WRONG_TYPE_MESSAGE",
    "PlaceholderSecretReconciler",
    "is_placeholder",
)

import copy
import json
from typing import Any

import structlog
from kubernetes.client.exceptions import ApiException

from secretgenoperator.dockerconfig import (
    DOCKER_CONFIG_JSON_TYPE,
    DockerConfigError,
    combine_docker_config_json,
)
from secretgenoperator.exports import SecretExportsWarmedUp, SecretMatcher
from secretgenoperator.k8s import ObjectStore, is_not_found
from secretgenoperator.namespaces import make_namespace_exclusion_check
from secretgenoperator.secret import b64
from secretgenoperator.status import (
    RECONCILE_FAILED,
    RECONCILE_SUCCEEDED,
    ReconcileResult,
)

PLACEHOLDER_ANNOTATION = "secretgen.carvel.dev/image-pull-secret"
"""Annotation marking a Secret as a placeholder for image pull secrets."""

SECRET_STATUS_ANNOTATION = "secretgen.carvel.dev/status"
"""Annotation holding the reconcile status of a placeholder Secret."""

WRONG_TYPE_MESSAGE = (
    f"Expected secret to have type={DOCKER_CONFIG_JSON_TYPE}, but did not"
)

COMBINE_RETRY_DELAY = 3.0
"""Delay, in seconds, before retrying a placeholder whose sources could
not be combined.
"""


def is_placeholder(secret: dict[str, Any]) -> bool:
    annotations = (secret.get("metadata") or {}).get("annotations") or {}
    return PLACEHOLDER_ANNOTATION in annotations


class PlaceholderSecretReconciler:
    """Fill placeholder Secrets with the exported image pull secrets
    matching their namespace.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        The object store.
    secret_exports : `secretgenoperator.exports.SecretExportsWarmedUp`
        The export registry.
    """

    kind = "Secret"

    def __init__(
        self, store: ObjectStore, secret_exports: SecretExportsWarmedUp
    ) -> None:
        self.store = store
        self.secret_exports = secret_exports

    def reconcile(
        self, namespace: str, name: str, logger: Any | None = None
    ) -> ReconcileResult:
        if logger is None:
            logger = structlog.get_logger(__name__)

        try:
            secret = self.store.get(
                "v1", "Secret", namespace=namespace, name=name
            )
        except ApiException as e:
            if is_not_found(e):
                return ReconcileResult()
            raise
        if secret["metadata"].get("deletionTimestamp"):
            return ReconcileResult()
        if not is_placeholder(secret):
            return ReconcileResult()

        logger.info(
            f"Reconciling secret {namespace}/{name} with annotation "
            f"{PLACEHOLDER_ANNOTATION}"
        )
        original = copy.deepcopy(secret)

        # The type of a Secret is immutable, so it is never changed here.
        if secret.get("type") != DOCKER_CONFIG_JSON_TYPE:
            status = {
                "conditions": [
                    {
                        "type": RECONCILE_FAILED,
                        "status": "True",
                        "message": WRONG_TYPE_MESSAGE,
                    }
                ]
            }
            self._update_secret(secret, status, original, logger)
            return ReconcileResult()

        matcher = SecretMatcher(
            to_namespace=namespace, secret_type=DOCKER_CONFIG_JSON_TYPE
        )
        ns_is_excluded = make_namespace_exclusion_check(self.store, logger)
        matched = self.secret_exports.matched_secrets_for_import(
            matcher, ns_is_excluded
        )

        try:
            data = combine_docker_config_json(matched)
        except DockerConfigError as e:
            logger.error(f"Combining secrets for {namespace}/{name}: {e}")
            return ReconcileResult(requeue_after=COMBINE_RETRY_DELAY)

        secret["data"] = {key: b64(value) for key, value in data.items()}
        status = {
            "conditions": [{"type": RECONCILE_SUCCEEDED, "status": "True"}]
        }
        secret_names = sorted(
            f"{s['metadata']['namespace']}/{s['metadata']['name']}"
            for s in matched
        )
        if secret_names:
            status["secretNames"] = secret_names
        self._update_secret(secret, status, original, logger)
        return ReconcileResult()

    def _update_secret(
        self,
        secret: dict[str, Any],
        status: dict[str, Any],
        original: dict[str, Any],
        logger: Any,
    ) -> None:
        encoded_status = json.dumps(status, separators=(",", ":"))
        annotations = secret["metadata"].setdefault("annotations", {})
        annotations[SECRET_STATUS_ANNOTATION] = encoded_status

        if secret == original:
            return

        meta = secret["metadata"]
        logger.info(
            f"Updating secret {meta['namespace']}/{meta['name']} with "
            f"status {encoded_status}"
        )
        self.store.update(secret)
