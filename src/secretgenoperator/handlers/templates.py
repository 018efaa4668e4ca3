"""Kopf handlers for SecretTemplates."""

__all__ = ("poll_secret_template", "reconcile_secret_template")

from typing import Any

import kopf

from .. import state
from .common import get_dispatcher

GROUP = "secretgen.carvel.dev"
VERSION = "v1alpha1"


@kopf.on.create(GROUP, VERSION, "secrettemplates")  # type: ignore[arg-type]
@kopf.on.update(GROUP, VERSION, "secrettemplates")  # type: ignore[arg-type]
@kopf.on.resume(GROUP, VERSION, "secrettemplates")  # type: ignore[arg-type]
def reconcile_secret_template(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Render the Secret of a SecretTemplate.

    Parameters
    ----------
    namespace : `str`
        The namespace of the SecretTemplate.
    name : `str`
        The name of the SecretTemplate.
    logger : `Any`
        A logger instance for logging messages.
    kwargs : `Any`
        Additional keyword arguments, if any.
    """
    get_dispatcher().handle("SecretTemplate", namespace, name, logger=logger)


@kopf.timer(  # type: ignore[arg-type]
    GROUP,
    VERSION,
    "secrettemplates",
    interval=state.template_poll_period,
    initial_delay=state.template_poll_period,
)
def poll_secret_template(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Re-render a SecretTemplate to pick up changes of its input
    resources, which are not watched.
    """
    get_dispatcher().handle("SecretTemplate", namespace, name, logger=logger)
