"""Build Secrets owned by custom resources and write them to the cluster."""

from __future__ import annotations

__all__ = (
    "Secret",
    "b64",
    "create_or_update_secret",
    "decode_secret_field",
    "delete_associated_secret",
    "expand",
)

import base64
import re
from typing import Any

import kopf
import structlog
from kubernetes.client.exceptions import ApiException

from secretgenoperator.k8s import ObjectStore, is_already_exists, is_not_found

_VARIABLE_PATTERN = re.compile(r"\$\$|\$\(([^)]*)\)")

_KOPF_ANNOTATION_PREFIX = "kopf.zalando.org/"


def b64(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def decode_secret_field(value: str) -> bytes:
    return base64.b64decode(value)


def expand(value: str, variables: dict[str, str]) -> str:
    """Expand ``$(name)`` references in ``value``.

    Unknown references are left untouched and ``$$`` is an escaped
    ``$``, as in container environment variable expansion.
    """

    def replace(match: re.Match) -> str:
        if match.group(0) == "$$":
            return "$"
        name = match.group(1)
        return variables.get(name, match.group(0))

    return _VARIABLE_PATTERN.sub(replace, value)


class Secret:
    """A Secret being assembled for an owner resource.

    Parameters
    ----------
    body : `dict`
        The Secret resource.
    values : `dict`, optional
        Generated values (`bytes`), referenced by template ``data`` and
        ``stringData``.
    """

    def __init__(
        self, body: dict[str, Any], values: dict[str, bytes] | None = None
    ) -> None:
        self.body = body
        self.values = values or {}

    @classmethod
    def new(
        cls, owner: dict[str, Any], values: dict[str, bytes] | None = None
    ) -> Secret:
        """Create a Secret named and namespaced like ``owner``.

        The owner's labels and annotations are copied onto the Secret and
        an owner reference makes Kubernetes garbage-collect the Secret
        when the owner is deleted.
        """
        owner_meta = owner["metadata"]
        body: dict[str, Any] = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": owner_meta["name"],
                "namespace": owner_meta["namespace"],
                "labels": dict(owner_meta.get("labels") or {}),
                "annotations": {
                    k: v
                    for k, v in (owner_meta.get("annotations") or {}).items()
                    # kopf handler state of the owner
                    if not k.startswith(_KOPF_ANNOTATION_PREFIX)
                },
            },
        }
        kopf.adopt(body, owner=owner)
        return cls(body, values)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.body["metadata"]

    def as_dict(self) -> dict[str, Any]:
        return self.body

    def apply_templates(
        self,
        default_template: dict[str, Any],
        custom_template: dict[str, Any] | None = None,
    ) -> None:
        """Apply a default template and then, if set, a custom one."""
        self.apply_template(default_template)
        if custom_template is not None:
            self.apply_template(custom_template)

    def apply_template(self, template: dict[str, Any]) -> None:
        """Apply a secret template.

        Labels and annotations are merged, with the template winning on
        key collisions. ``type`` replaces the Secret type. ``data`` maps
        Secret keys to keys of the generated values and ``stringData``
        maps Secret keys to strings in which ``$(key)`` references to the
        generated values are expanded. If either is set, the Secret data
        is replaced rather than merged.

        Raises
        ------
        KeyError
            Raised if ``data`` references a value that does not exist.
        """
        metadata = template.get("metadata") or {}
        for field in ("annotations", "labels"):
            if metadata.get(field):
                self.metadata.setdefault(field, {}).update(metadata[field])

        if template.get("type"):
            self.body["type"] = template["type"]

        data_template = template.get("data") or {}
        string_data_template = template.get("stringData") or {}
        if not data_template and not string_data_template:
            return

        new_data = {}
        for data_key, value_key in data_template.items():
            if value_key not in self.values:
                raise KeyError(f"value for key '{value_key}' not found")
            new_data[data_key] = b64(self.values[value_key])

        variables = {
            k: v.decode("utf-8", errors="replace")
            for k, v in self.values.items()
        }
        for data_key, value in string_data_template.items():
            new_data[data_key] = b64(expand(value, variables))

        self.body["data"] = new_data

    def apply_secret(self, other: dict[str, Any]) -> None:
        """Fill in type and data from another Secret.

        Labels and annotations of ``other`` are added without overwriting
        the ones already on this Secret, so metadata set by users
        survives. Type and data are replaced.
        """
        other_meta = other.get("metadata") or {}
        for field in ("annotations", "labels"):
            existing = self.metadata.setdefault(field, {})
            for key, value in (other_meta.get(field) or {}).items():
                existing.setdefault(key, value)

        if other.get("type"):
            self.body["type"] = other["type"]
        self.body["data"] = dict(other.get("data") or {})

    def associate_existing_secret(self, other: dict[str, Any]) -> None:
        """Copy the UID and resource version of an existing Secret so that
        this Secret can replace it.
        """
        other_meta = other["metadata"]
        for field in ("uid", "resourceVersion"):
            if field in other_meta:
                self.metadata[field] = other_meta[field]


def create_or_update_secret(
    store: ObjectStore, secret: Secret, logger: Any | None = None
) -> dict[str, Any]:
    """Create a Secret, or update it if it already exists.

    The existing Secret is only replaced if its content differs, so that
    reconciling an unchanged resource does not write.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        The object store.
    secret : `Secret`
        The desired Secret.
    logger : `Any`, optional
        Logger to use for logging messages.

    Returns
    -------
    body : `dict`
        The Secret as stored in the cluster.

    Raises
    ------
    kubernetes.client.exceptions.ApiException
        Raised for any API error other than the Secret already existing.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)

    meta = secret.metadata
    try:
        created = store.create(secret.as_dict())
    except ApiException as e:
        if not is_already_exists(e):
            raise
    else:
        logger.info(f"Created secret {meta['namespace']}/{meta['name']}")
        return created

    existing = store.get(
        "v1", "Secret", namespace=meta["namespace"], name=meta["name"]
    )
    if _is_converged(secret.as_dict(), existing):
        return existing

    secret.associate_existing_secret(existing)
    updated = store.update(secret.as_dict())
    logger.info(f"Updated secret {meta['namespace']}/{meta['name']}")
    return updated


def delete_associated_secret(
    store: ObjectStore,
    *,
    namespace: str,
    name: str,
    logger: Any | None = None,
) -> None:
    """Delete a Secret previously created for a resource.

    A Secret that does not exist is not an error.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)

    try:
        store.delete("v1", "Secret", namespace=namespace, name=name)
    except ApiException as e:
        if is_not_found(e):
            return
        raise
    logger.info(f"Deleted associated secret {namespace}/{name}")


def _is_converged(desired: dict[str, Any], existing: dict[str, Any]) -> bool:
    desired_meta = desired["metadata"]
    existing_meta = existing.get("metadata") or {}
    if (desired.get("type") or "Opaque") != (existing.get("type") or "Opaque"):
        return False
    if (desired.get("data") or {}) != (existing.get("data") or {}):
        return False
    for field in ("labels", "annotations", "ownerReferences"):
        if (desired_meta.get(field) or {}) != (
            existing_meta.get(field) or {}
        ):
            return False
    return True
