"""Kopf handlers for the secretgen-operator."""

__all__ = (
    "configure",
    "handle_namespace_change",
    "handle_secret_change",
    "handle_secret_export_event",
    "poll_secret_template",
    "reconcile_password",
    "reconcile_secret_export",
    "reconcile_secret_export_approval",
    "reconcile_secret_import",
    "reconcile_secret_request",
    "reconcile_secret_template",
    "resync_placeholder_secret",
    "resync_secret_export",
    "resync_secret_export_approval",
    "resync_secret_import",
    "resync_secret_request",
    "stop_retries",
)

import threading
from typing import Any

import kopf

from .. import state
from ..startup import start_operator
from .exports import (
    handle_secret_export_event,
    reconcile_secret_export,
    resync_secret_export,
)
from .imports import (
    reconcile_secret_export_approval,
    reconcile_secret_import,
    reconcile_secret_request,
    resync_secret_export_approval,
    resync_secret_import,
    resync_secret_request,
)
from .namespaces import handle_namespace_change
from .passwords import reconcile_password
from .secrets import handle_secret_change, resync_placeholder_secret
from .templates import poll_secret_template, reconcile_secret_template

_retries_stopped = threading.Event()


@kopf.on.startup()
def configure(
    *, settings: kopf.OperatorSettings, logger: Any, **kwargs: Any
) -> None:
    """Configure kopf, build the reconcilers and start draining the retry
    queue before any handler runs.
    """
    settings.execution.max_workers = state.max_workers
    settings.networking.request_timeout = state.request_timeout
    dispatcher = start_operator(logger=logger)

    _retries_stopped.clear()
    threading.Thread(
        target=dispatcher.run_retries,
        args=(_retries_stopped,),
        name="secretgen-retries",
        daemon=True,
    ).start()


@kopf.on.cleanup()
def stop_retries(*, logger: Any, **kwargs: Any) -> None:
    _retries_stopped.set()
    logger.info("Stopped the retry queue")
