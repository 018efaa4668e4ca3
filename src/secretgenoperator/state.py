"""Configuration and constructed (cached) state as module-level
attributes.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from secretgenoperator.dispatch import Dispatcher
    from secretgenoperator.exports import SecretExportsWarmedUp
    from secretgenoperator.k8s import ObjectStore

request_timeout = float(os.environ.get("SECRETGEN_REQUEST_TIMEOUT", "30"))
"""Timeout, in seconds, applied to every Kubernetes API call."""

max_workers = int(os.environ.get("SECRETGEN_MAX_WORKERS", "10"))
"""Number of handler threads, and therefore of concurrent reconciles."""

retry_delay = float(os.environ.get("SECRETGEN_RETRY_DELAY", "10"))
"""Delay, in seconds, before a reconcile that failed transiently is
retried.
"""

template_poll_period = float(
    os.environ.get("SECRETGEN_TEMPLATE_POLL_PERIOD", "30")
)
"""Period, in seconds, at which SecretTemplates are re-evaluated.

Input resources of a SecretTemplate are not watched, so polling is the
fallback that picks up their changes.
"""

resync_period = float(os.environ.get("SECRETGEN_RESYNC_PERIOD", "300"))
"""Period, in seconds, of the periodic resync of sharing resources."""


store: ObjectStore | None = None
"""The object store built from the operator's own credentials."""

secret_exports: SecretExportsWarmedUp | None = None
"""Registry of exported secrets shared by all sharing reconcilers."""

dispatcher: Dispatcher | None = None
"""Dispatcher holding every reconciler, keyed by resource kind."""

export_names: set[tuple[str, str]] = set()
"""Namespaces and names of the known SecretExports.

A change to a Secret with one of these names triggers a reconcile of the
SecretExport that exports it.
"""

namespace_annotations: dict[str, dict[str, str]] = {}
"""Last seen annotations of each Namespace, to detect changes of the
wildcard exclusion annotation.
"""
