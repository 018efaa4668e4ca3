"""Reconciler of Passwords."""

from __future__ import annotations

__all__ = (
    "PASSWORD_SECRET_DEFAULT_KEY",
    "PASSWORD_SECRET_DEFAULT_TYPE",
    "PASSWORD_SECRET_KEY",
    "PasswordReconciler",
)

from collections.abc import Callable
from typing import Any

from kubernetes.client.exceptions import ApiException

from secretgenoperator.generateinputs import GenerateInputs
from secretgenoperator.k8s import K14S_API_VERSION, ObjectStore, is_not_found
from secretgenoperator.passwords import PasswordSpec, generate_password
from secretgenoperator.reconcilers.base import CustomResourceReconciler
from secretgenoperator.secret import Secret
from secretgenoperator.status import ReconcileResult

PASSWORD_SECRET_KEY = "value"
"""Name of the generated value, referenced as ``$(value)`` in templates."""

PASSWORD_SECRET_DEFAULT_TYPE = "kubernetes.io/basic-auth"

PASSWORD_SECRET_DEFAULT_KEY = "password"


class PasswordReconciler(CustomResourceReconciler):
    """Generate a random password into a Secret named like the Password.

    The Secret is only created once. An existing Secret is never
    regenerated, so deleting the Secret is the way to rotate the password.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        The object store.
    generator : callable, optional
        Generates a password from a
        `secretgenoperator.passwords.PasswordSpec`.
    """

    api_version = K14S_API_VERSION
    kind = "Password"

    def __init__(
        self,
        store: ObjectStore,
        *,
        generator: Callable[[PasswordSpec], str] = generate_password,
    ) -> None:
        super().__init__(store)
        self.generator = generator

    def reconcile_resource(
        self, body: dict[str, Any], logger: Any
    ) -> ReconcileResult:
        meta = body["metadata"]
        try:
            self.store.get(
                "v1", "Secret", namespace=meta["namespace"], name=meta["name"]
            )
        except ApiException as e:
            if not is_not_found(e):
                raise
        else:
            return ReconcileResult()

        spec = body.get("spec") or {}
        password = self.generator(PasswordSpec.from_spec(spec))

        secret = Secret.new(
            body, {PASSWORD_SECRET_KEY: password.encode("utf-8")}
        )
        default_template = {
            "type": PASSWORD_SECRET_DEFAULT_TYPE,
            "stringData": {
                PASSWORD_SECRET_DEFAULT_KEY: f"$({PASSWORD_SECRET_KEY})"
            },
        }
        secret.apply_templates(default_template, spec.get("secretTemplate"))
        GenerateInputs(spec).add(secret.metadata.setdefault("annotations", {}))

        self.store.create(secret.as_dict())
        logger.info(
            f"Created password secret {meta['namespace']}/{meta['name']}"
        )
        return ReconcileResult()
