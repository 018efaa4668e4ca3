"""Kopf handler reacting to Namespaces."""

__all__ = ("handle_namespace_change",)

from typing import Any

import kopf
from kubernetes.client.exceptions import ApiException

from .. import state
from ..namespaces import exclusion_changed
from ..reconcilers.placeholders import is_placeholder
from ..reconcilers.requests import REQUESTER_KINDS

from .common import get_dispatcher, get_store


@kopf.on.event("", "v1", "namespaces")  # type: ignore[arg-type]
def handle_namespace_change(
    *,
    event: dict[str, Any],
    body: dict[str, Any],
    name: str,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Reconcile the importers in a namespace whose exclusion from
    wildcard exports changed.

    Parameters
    ----------
    event : `dict`
        The watch event, including its type.
    body : `dict`
        The Namespace.
    name : `str`
        The name of the Namespace.
    logger : `Any`
        A logger instance for logging messages.
    kwargs : `Any`
        Additional keyword arguments, if any.
    """
    if event["type"] == "DELETED":
        state.namespace_annotations.pop(name, None)
        return

    annotations = dict((body.get("metadata") or {}).get("annotations") or {})
    previous = state.namespace_annotations.get(name)
    state.namespace_annotations[name] = annotations
    if previous is None:
        return
    old = {"metadata": {"annotations": previous}}
    new = {"metadata": {"annotations": annotations}}
    if not exclusion_changed(old, new):
        return

    logger.info(f"Exclusion of namespace {name} from exports changed")
    dispatcher = get_dispatcher()
    store = get_store()
    for api_version, kind in REQUESTER_KINDS:
        try:
            requesters = store.list(api_version, kind, namespace=name)
        except ApiException:
            logger.exception(f"Failed fetching list of {kind}s in {name}")
            continue
        keys = [(name, r["metadata"]["name"]) for r in requesters]
        dispatcher.enqueue(kind, keys, logger=logger)

    try:
        secrets = store.list("v1", "Secret", namespace=name)
    except ApiException:
        logger.exception(f"Failed fetching list of secrets in {name}")
        return
    keys = [
        (name, s["metadata"]["name"]) for s in secrets if is_placeholder(s)
    ]
    dispatcher.enqueue("Secret", keys, logger=logger)
