"""In-memory registry of exported secrets.

The registry answers "which Secrets may be copied into namespace N?"
without calling the Kubernetes API. It is populated by the SecretExport
reconciler and queried by the SecretImport, SecretRequest,
SecretExportApproval and placeholder Secret reconcilers.
"""

from __future__ import annotations

__all__ = (
    "ALL_NAMESPACES",
    "WEIGHT_ANNOTATION",
    "ExportedSecret",
    "NamespaceExclusionCheck",
    "SecretExports",
    "SecretExportsWarmedUp",
    "SecretMatcher",
    "static_to_namespaces",
)

import copy
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from secretgenoperator.errors import InternalInconsistencyError

ALL_NAMESPACES = "*"
"""Target namespace that matches every namespace not opting out."""

WEIGHT_ANNOTATION = "secretgen.carvel.dev/weight"
"""Annotation on a SecretExport controlling its preference among matches."""

NamespaceExclusionCheck = Callable[[str], bool]
"""Returns whether a namespace is excluded from wildcard exports."""

logger = structlog.get_logger(__name__)


def static_to_namespaces(export: dict[str, Any]) -> list[str]:
    """Get the target namespaces listed in a SecretExport's spec.

    Returns ``spec.toNamespaces`` followed by ``spec.toNamespace`` if it
    is set.
    """
    spec = export.get("spec") or {}
    result = list(spec.get("toNamespaces") or [])
    if spec.get("toNamespace"):
        result.append(spec["toNamespace"])
    return result


@dataclass
class SecretMatcher:
    """Criteria for matching exported secrets."""

    to_namespace: str
    """Namespace the secret would be copied into."""

    secret_type: str | None = None
    """Only match secrets of this type."""

    subject: str | None = None
    """Reserved. Matching by subject is not supported, so a matcher with
    a subject never matches.
    """

    from_name: str | None = None
    from_namespace: str | None = None
    from_namespace_annotations: dict[str, str] = field(default_factory=dict)


class ExportedSecret:
    """A SecretExport together with the Secret it exports.

    Both objects are deep-copied so that later changes by callers do not
    leak into the registry.

    Raises
    ------
    secretgenoperator.errors.InternalInconsistencyError
        Raised if the export is missing its identity or if the export and
        secret identities differ.
    """

    def __init__(
        self, export: dict[str, Any], secret: dict[str, Any] | None
    ) -> None:
        if export is None:
            raise InternalInconsistencyError(
                "Internal inconsistency: nil export"
            )
        meta = export.get("metadata") or {}
        if not meta.get("namespace"):
            raise InternalInconsistencyError(
                "Internal inconsistency: missing export namespace"
            )
        if not meta.get("name"):
            raise InternalInconsistencyError(
                "Internal inconsistency: missing export name"
            )
        if secret is not None:
            secret_meta = secret["metadata"]
            if (
                meta["namespace"] != secret_meta.get("namespace")
                or meta["name"] != secret_meta.get("name")
            ):
                raise InternalInconsistencyError(
                    "Internal inconsistency: export and secret names do "
                    "not match"
                )
            secret = copy.deepcopy(secret)
        self.export = copy.deepcopy(export)
        self._secret = secret

    @property
    def key(self) -> str:
        meta = self.export["metadata"]
        return f"{meta['namespace']}/{meta['name']}"

    def secret(self) -> dict[str, Any]:
        return copy.deepcopy(self._secret)

    def matches(
        self,
        matcher: SecretMatcher,
        ns_is_excluded: NamespaceExclusionCheck,
    ) -> bool:
        if matcher.subject:
            logger.warning(
                "Matcher has a subject and will never match any secret"
            )
            return False

        secret_meta = self._secret["metadata"]
        if matcher.secret_type:
            if matcher.secret_type != self._secret.get("type"):
                return False
        if matcher.from_name:
            if matcher.from_name != secret_meta["name"]:
                return False
        if matcher.from_namespace:
            if matcher.from_namespace != secret_meta["namespace"]:
                return False

        return self._matches_namespace(matcher.to_namespace, ns_is_excluded)

    def _matches_namespace(
        self, ns_to_match: str, ns_is_excluded: NamespaceExclusionCheck
    ) -> bool:
        to_namespaces = static_to_namespaces(self.export)
        # An explicit entry always wins over the wildcard opt-out.
        if ns_to_match in to_namespaces:
            return True
        if ALL_NAMESPACES in to_namespaces:
            return not ns_is_excluded(ns_to_match)
        return False

    def sort_key(self, to_namespace: str) -> tuple[float, bool, bool, str]:
        """Sort key ordering matches from least to most preferred.

        Preference goes to a higher weight, then to a secret living in
        the target namespace, then to an exact (rather than wildcard)
        namespace match, and finally to the ``namespace/name`` order.
        """
        annotations = self.export["metadata"].get("annotations") or {}
        try:
            weight = float(annotations.get(WEIGHT_ANNOTATION, 0))
        except ValueError:
            # Invalid weights are ignored.
            weight = 0.0
        secret_meta = self._secret["metadata"]
        return (
            weight,
            secret_meta["namespace"] == to_namespace,
            to_namespace in static_to_namespaces(self.export),
            f"{secret_meta['namespace']}/{secret_meta['name']}",
        )


class SecretExports:
    """Concurrent in-memory cache of exported secrets.

    Records are keyed by ``namespace/name`` and guarded by a single lock.
    The lock is only held for in-memory work: matching snapshots the
    records and releases the lock before consulting the namespace
    exclusion check, which may call the Kubernetes API.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._exported_secrets: dict[str, ExportedSecret] = {}

    def export(self, export: dict[str, Any], secret: dict[str, Any]) -> None:
        """Record that ``secret`` is exported by ``export``."""
        if secret is None:
            raise InternalInconsistencyError(
                "Internal inconsistency: expected non-nil secret"
            )
        exported = ExportedSecret(export, secret)
        with self._lock:
            self._exported_secrets[exported.key] = exported

    def unexport(self, export: dict[str, Any]) -> None:
        """Forget the secret exported by ``export``."""
        exported = ExportedSecret(export, None)
        with self._lock:
            self._exported_secrets.pop(exported.key, None)

    def matched_secrets_for_import(
        self,
        matcher: SecretMatcher,
        ns_is_excluded: NamespaceExclusionCheck,
    ) -> list[dict[str, Any]]:
        """Get copies of the exported secrets matching ``matcher``.

        Parameters
        ----------
        matcher : `SecretMatcher`
            The matching criteria.
        ns_is_excluded : callable
            Returns whether a namespace opted out of wildcard exports.

        Returns
        -------
        secrets : `list` of `dict`
            Matching secrets, ordered from least to most preferred (see
            `ExportedSecret.sort_key`), so that the last one wins when
            they are merged.
        """
        with self._lock:
            candidates = list(self._exported_secrets.values())

        matched = [
            exported
            for exported in candidates
            if exported.matches(matcher, ns_is_excluded)
        ]
        matched.sort(key=lambda e: e.sort_key(matcher.to_namespace))
        return [exported.secret() for exported in matched]


class SecretExportsWarmedUp:
    """Registry wrapper that warms the registry up on first query.

    The registry starts empty. Until every existing SecretExport has been
    recorded, queries would report false "not exported" results, so
    ``warm_up_func`` runs exactly once, synchronously, before the first
    query is answered. Concurrent first queries wait for it.

    Parameters
    ----------
    delegate : `SecretExports`
        The registry.
    warm_up_func : callable, optional
        The warm-up routine. It can also be set later through the
        ``warm_up_func`` attribute, before the first query.
    """

    def __init__(
        self,
        delegate: SecretExports,
        warm_up_func: Callable[[], None] | None = None,
    ) -> None:
        self.delegate = delegate
        self.warm_up_func = warm_up_func
        self._warm_up_lock = threading.Lock()
        self._warmed_up = False

    def export(self, export: dict[str, Any], secret: dict[str, Any]) -> None:
        self.delegate.export(export, secret)

    def unexport(self, export: dict[str, Any]) -> None:
        self.delegate.unexport(export)

    def matched_secrets_for_import(
        self,
        matcher: SecretMatcher,
        ns_is_excluded: NamespaceExclusionCheck,
    ) -> list[dict[str, Any]]:
        self._warm_up_once()
        return self.delegate.matched_secrets_for_import(
            matcher, ns_is_excluded
        )

    def _warm_up_once(self) -> None:
        if self._warmed_up:
            return
        with self._warm_up_lock:
            if self._warmed_up:
                return
            try:
                if self.warm_up_func is not None:
                    self.warm_up_func()
            finally:
                self._warmed_up = True
