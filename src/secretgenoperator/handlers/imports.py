"""Kopf handlers for SecretImports, SecretRequests and
SecretExportApprovals.
"""

__all__ = (
    "reconcile_secret_export_approval",
    "reconcile_secret_import",
    "reconcile_secret_request",
    "resync_secret_export_approval",
    "resync_secret_import",
    "resync_secret_request",
)

from typing import Any

import kopf

from .. import state

from .common import get_dispatcher

CARVEL_GROUP = "secretgen.carvel.dev"
K14S_GROUP = "secretgen.k14s.io"
VERSION = "v1alpha1"


@kopf.on.create(CARVEL_GROUP, VERSION, "secretimports")  # type: ignore[arg-type]
@kopf.on.update(CARVEL_GROUP, VERSION, "secretimports")  # type: ignore[arg-type]
@kopf.on.resume(CARVEL_GROUP, VERSION, "secretimports")  # type: ignore[arg-type]
def reconcile_secret_import(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Copy the exported Secret requested by a SecretImport.

    Parameters
    ----------
    namespace : `str`
        The namespace of the SecretImport.
    name : `str`
        The name of the SecretImport, which is also the name of the
        requested Secret.
    logger : `Any`
        A logger instance for logging messages.
    kwargs : `Any`
        Additional keyword arguments, if any.
    """
    get_dispatcher().handle("SecretImport", namespace, name, logger=logger)


@kopf.timer(  # type: ignore[arg-type]
    CARVEL_GROUP,
    VERSION,
    "secretimports",
    interval=state.resync_period,
    initial_delay=state.resync_period,
)
def resync_secret_import(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    get_dispatcher().handle("SecretImport", namespace, name, logger=logger)


@kopf.on.create(K14S_GROUP, VERSION, "secretrequests")  # type: ignore[arg-type]
@kopf.on.update(K14S_GROUP, VERSION, "secretrequests")  # type: ignore[arg-type]
@kopf.on.resume(K14S_GROUP, VERSION, "secretrequests")  # type: ignore[arg-type]
def reconcile_secret_request(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Copy the exported Secret requested by a SecretRequest."""
    get_dispatcher().handle("SecretRequest", namespace, name, logger=logger)


@kopf.timer(  # type: ignore[arg-type]
    K14S_GROUP,
    VERSION,
    "secretrequests",
    interval=state.resync_period,
    initial_delay=state.resync_period,
)
def resync_secret_request(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    get_dispatcher().handle("SecretRequest", namespace, name, logger=logger)


@kopf.on.create(  # type: ignore[arg-type]
    K14S_GROUP, VERSION, "secretexportapprovals"
)
@kopf.on.update(  # type: ignore[arg-type]
    K14S_GROUP, VERSION, "secretexportapprovals"
)
@kopf.on.resume(  # type: ignore[arg-type]
    K14S_GROUP, VERSION, "secretexportapprovals"
)
def reconcile_secret_export_approval(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Copy the exported Secret approved by a SecretExportApproval."""
    get_dispatcher().handle(
        "SecretExportApproval", namespace, name, logger=logger
    )


@kopf.timer(  # type: ignore[arg-type]
    K14S_GROUP,
    VERSION,
    "secretexportapprovals",
    interval=state.resync_period,
    initial_delay=state.resync_period,
)
def resync_secret_export_approval(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    get_dispatcher().handle(
        "SecretExportApproval", namespace, name, logger=logger
    )
