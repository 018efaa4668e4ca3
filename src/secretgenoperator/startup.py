"""Code intended to run on start-up, before running any handlers."""

__all__ = ("start_operator",)

from typing import Any

import structlog
from kubernetes.client.exceptions import ApiException

from secretgenoperator import state
from secretgenoperator.dispatch import Dispatcher
from secretgenoperator.exports import SecretExports, SecretExportsWarmedUp
from secretgenoperator.k8s import CARVEL_API_VERSION, ObjectStore
from secretgenoperator.reconcilers import (
    PasswordReconciler,
    PlaceholderSecretReconciler,
    SecretExportReconciler,
    SecretRequesterReconciler,
    SecretTemplateReconciler,
)
from secretgenoperator.reconcilers.requests import REQUESTER_KINDS
from secretgenoperator.serviceaccounts import ServiceAccountLoader


def start_operator(
    logger: Any | None = None, store: ObjectStore | None = None
) -> Dispatcher:
    """Start up the operator, building the export registry and the
    reconcilers shared by all handlers.

    Parameters
    ----------
    logger : `Any`, optional
        Logger to use for logging messages.
    store : `secretgenoperator.k8s.ObjectStore`, optional
        The object store. If not set, one is created with the operator's
        own credentials.

    Returns
    -------
    dispatcher : `secretgenoperator.dispatch.Dispatcher`
        The dispatcher, also stored as ``state.dispatcher``.
    """
    if logger is None:
        logger = structlog.get_logger(__name__)

    if store is None:
        store = ObjectStore(request_timeout=state.request_timeout)

    secret_exports = SecretExportsWarmedUp(SecretExports())
    export_reconciler = SecretExportReconciler(store, secret_exports)
    # The registry is filled from all existing exports before it answers
    # its first query.
    secret_exports.warm_up_func = lambda: export_reconciler.warm_up(logger)

    dispatcher = Dispatcher(retry_delay=state.retry_delay)
    dispatcher.register(export_reconciler.kind, export_reconciler)
    for api_version, kind in REQUESTER_KINDS:
        dispatcher.register(
            kind,
            SecretRequesterReconciler(
                store, secret_exports, api_version=api_version, kind=kind
            ),
        )
    dispatcher.register(
        "Secret", PlaceholderSecretReconciler(store, secret_exports)
    )
    dispatcher.register(
        "SecretTemplate",
        SecretTemplateReconciler(
            store,
            ServiceAccountLoader(store, request_timeout=state.request_timeout),
        ),
    )
    dispatcher.register("Password", PasswordReconciler(store))

    state.store = store
    state.secret_exports = secret_exports
    state.dispatcher = dispatcher

    _prime_export_names(store, logger)
    logger.info("Started secretgen operator")
    return dispatcher


def _prime_export_names(store: ObjectStore, logger: Any) -> None:
    """Add the names of existing SecretExports to ``state.export_names``."""
    try:
        exports = store.list(CARVEL_API_VERSION, "SecretExport")
    except ApiException:
        logger.exception("Failed fetching list of all SecretExports")
        return

    for export in exports:
        meta = export["metadata"]
        state.export_names.add((meta["namespace"], meta["name"]))
