"""Kopf handlers reacting to SecretExports."""

__all__ = (
    "enqueue_export_dependents",
    "handle_secret_export_event",
    "reconcile_secret_export",
    "resync_secret_export",
)

from typing import Any

import kopf
from kubernetes.client.exceptions import ApiException

from .. import state
from ..dispatch import Dispatcher
from ..k8s import ObjectStore
from ..reconcilers.placeholders import is_placeholder
from ..reconcilers.requests import REQUESTER_KINDS
from ..status import RECONCILING
from .common import get_dispatcher, get_store

GROUP = "secretgen.carvel.dev"
VERSION = "v1alpha1"


@kopf.on.create(GROUP, VERSION, "secretexports")  # type: ignore[arg-type]
@kopf.on.update(GROUP, VERSION, "secretexports")  # type: ignore[arg-type]
@kopf.on.resume(GROUP, VERSION, "secretexports")  # type: ignore[arg-type]
def reconcile_secret_export(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Record a SecretExport and its Secret in the export registry."""
    get_dispatcher().handle("SecretExport", namespace, name, logger=logger)


@kopf.on.event(GROUP, VERSION, "secretexports")  # type: ignore[arg-type]
def handle_secret_export_event(
    *,
    event: dict[str, Any],
    body: dict[str, Any],
    namespace: str,
    name: str,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Track the names of SecretExports, unexport deleted ones and
    reconcile the resources that import from them.

    Parameters
    ----------
    event : `dict`
        The watch event. Its type is "ADDED", "MODIFIED", "DELETED" or
        `None` for objects listed when the watch starts.
    body : `dict`
        The SecretExport.
    namespace : `str`
        The namespace of the SecretExport.
    name : `str`
        The name of the SecretExport.
    logger : `Any`
        A logger instance for logging messages.
    kwargs : `Any`
        Additional keyword arguments, if any.
    """
    dispatcher = get_dispatcher()
    deleted = event["type"] == "DELETED"
    if deleted:
        state.export_names.discard((namespace, name))
        dispatcher.enqueue("SecretExport", [(namespace, name)], logger=logger)
    else:
        state.export_names.add((namespace, name))

    # Exports that are still reconciling change again once they are done.
    conditions = (body.get("status") or {}).get("conditions") or []
    if deleted or any(c.get("type") != RECONCILING for c in conditions):
        enqueue_export_dependents(
            dispatcher, get_store(), body, logger=logger
        )


@kopf.timer(  # type: ignore[arg-type]
    GROUP,
    VERSION,
    "secretexports",
    interval=state.resync_period,
    initial_delay=state.resync_period,
)
def resync_secret_export(
    *,
    body: dict[str, Any],
    namespace: str,
    name: str,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Periodically reconcile a SecretExport and its dependents."""
    dispatcher = get_dispatcher()
    dispatcher.handle("SecretExport", namespace, name, logger=logger)
    enqueue_export_dependents(dispatcher, get_store(), body, logger=logger)


def enqueue_export_dependents(
    dispatcher: Dispatcher,
    store: ObjectStore,
    export: dict[str, Any],
    *,
    logger: Any,
) -> None:
    """Reconcile the resources that may import from a SecretExport.

    These are the SecretImports, SecretRequests and SecretExportApprovals
    with the same name that name the export's namespace in
    ``spec.fromNamespace``, and every placeholder Secret.

    Parameters
    ----------
    dispatcher : `secretgenoperator.dispatch.Dispatcher`
        The dispatcher.
    store : `secretgenoperator.k8s.ObjectStore`
        The object store, used to list candidate dependents.
    export : `dict`
        The SecretExport.
    logger : `Any`
        A logger instance for logging messages.
    """
    meta = export["metadata"]
    for api_version, kind in REQUESTER_KINDS:
        try:
            requesters = store.list(api_version, kind)
        except ApiException:
            logger.exception(f"Failed fetching list of all {kind}s")
            continue
        keys = [
            (r["metadata"]["namespace"], r["metadata"]["name"])
            for r in requesters
            if r["metadata"]["name"] == meta["name"]
            and (r.get("spec") or {}).get("fromNamespace")
            == meta["namespace"]
        ]
        if keys:
            logger.info(f"Planning to reconcile {len(keys)} {kind}s")
        dispatcher.enqueue(kind, keys, logger=logger)

    try:
        secrets = store.list("v1", "Secret")
    except ApiException:
        logger.exception("Failed fetching list of all secrets")
        return
    keys = [
        (s["metadata"]["namespace"], s["metadata"]["name"])
        for s in secrets
        if is_placeholder(s)
    ]
    if keys:
        logger.info(f"Planning to reconcile {len(keys)} placeholder secrets")
    dispatcher.enqueue("Secret", keys, logger=logger)
