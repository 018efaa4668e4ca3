"""Kopf handlers reacting to Secrets.

Secrets matter to the operator in three ways: as the source of a
SecretExport, as a copy or template output owned by one of the operator's
resources, and as placeholder image pull secrets.
"""

__all__ = ("handle_secret_change", "resync_placeholder_secret")

from typing import Any

import kopf

from .. import state
from ..k8s import CARVEL_API_VERSION
from ..reconcilers.placeholders import (
    PLACEHOLDER_ANNOTATION,
    is_placeholder,
)
from ..reconcilers.requests import REQUESTER_KINDS

from .common import get_dispatcher, owner_keys

OWNER_KINDS = (*REQUESTER_KINDS, (CARVEL_API_VERSION, "SecretTemplate"))
"""Kinds that own the Secrets they produce."""


@kopf.on.event("", "v1", "secrets")  # type: ignore[arg-type]
def handle_secret_change(
    *,
    event: dict[str, Any],
    body: dict[str, Any],
    namespace: str,
    name: str,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Reconcile the resources that depend on a Secret that changed.

    Parameters
    ----------
    event : `dict`
        The watch event, including its type.
    body : `dict`
        The Secret.
    namespace : `str`
        The namespace of the Secret.
    name : `str`
        The name of the Secret.
    logger : `Any`
        A logger instance for logging messages.
    kwargs : `Any`
        Additional keyword arguments, if any.
    """
    dispatcher = get_dispatcher()

    # The exported secret changed, so the export must be re-recorded.
    if (namespace, name) in state.export_names:
        dispatcher.enqueue("SecretExport", [(namespace, name)], logger=logger)

    # A copied or templated secret was changed or deleted by someone else.
    for api_version, kind in OWNER_KINDS:
        keys = owner_keys(body, api_version, kind)
        if keys:
            dispatcher.enqueue(kind, keys, logger=logger)

    if event["type"] != "DELETED" and is_placeholder(body):
        dispatcher.enqueue("Secret", [(namespace, name)], logger=logger)


@kopf.timer(  # type: ignore[arg-type]
    "",
    "v1",
    "secrets",
    annotations={PLACEHOLDER_ANNOTATION: kopf.PRESENT},
    interval=state.resync_period,
    initial_delay=state.resync_period,
)
def resync_placeholder_secret(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Periodically refill a placeholder Secret."""
    get_dispatcher().handle("Secret", namespace, name, logger=logger)
