"""Namespace opt-out from wildcard secret exports."""

from __future__ import annotations

__all__ = (
    "EXCLUDED_FROM_WILDCARD_ANNOTATION",
    "exclusion_changed",
    "get_namespace_annotations",
    "make_namespace_exclusion_check",
    "ns_has_exclusion_annotation",
)

from typing import Any

import structlog
from kubernetes.client.exceptions import ApiException

from secretgenoperator.exports import NamespaceExclusionCheck
from secretgenoperator.k8s import ObjectStore

EXCLUDED_FROM_WILDCARD_ANNOTATION = (
    "secretgen.carvel.dev/excluded-from-wildcard-matching"
)
"""Namespace annotation that opts the namespace out of wildcard exports.

Only the presence of the annotation matters, not its value.
"""


def ns_has_exclusion_annotation(namespace: dict[str, Any]) -> bool:
    annotations = (namespace.get("metadata") or {}).get("annotations") or {}
    return EXCLUDED_FROM_WILDCARD_ANNOTATION in annotations


def exclusion_changed(
    old: dict[str, Any] | None, new: dict[str, Any] | None
) -> bool:
    """Test whether a namespace change added or removed the exclusion
    annotation.

    A namespace seen for the first time (``old`` is `None`) or deleted
    (``new`` is `None`) is not a change: no resource in it can depend on
    the annotation yet, or any longer.
    """
    if old is None or new is None:
        return False
    return ns_has_exclusion_annotation(old) != ns_has_exclusion_annotation(
        new
    )


def make_namespace_exclusion_check(
    store: ObjectStore, logger: Any | None = None
) -> NamespaceExclusionCheck:
    """Make a check of the wildcard exclusion annotation bound to an
    object store and logger.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        Store used to read Namespaces.
    logger : `Any`, optional
        Logger for lookup failures.

    Returns
    -------
    check : callable
        Takes a namespace name and returns `True` if the namespace is
        excluded from wildcard matching. A namespace that cannot be read
        is treated as not excluded.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)

    def check(ns_name: str) -> bool:
        try:
            namespace = store.get(
                "v1", "Namespace", namespace=None, name=ns_name
            )
        except ApiException as e:
            logger.error(
                f"Called to check annotation on namespace {ns_name} but "
                f"couldn't find it: {e.reason}"
            )
            return False
        return ns_has_exclusion_annotation(namespace)

    return check


def get_namespace_annotations(
    store: ObjectStore, name: str, logger: Any | None = None
) -> dict[str, str]:
    """Get the annotations of a Namespace, or an empty `dict` if it
    cannot be read.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)

    try:
        namespace = store.get("v1", "Namespace", namespace=None, name=name)
    except ApiException as e:
        logger.warning(
            f"Could not read annotations of namespace {name}: {e.reason}"
        )
        return {}
    return dict((namespace.get("metadata") or {}).get("annotations") or {})
