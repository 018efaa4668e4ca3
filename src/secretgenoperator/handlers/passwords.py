"""Kopf handlers for Passwords."""

__all__ = ("reconcile_password",)

from typing import Any

import kopf

from .common import get_dispatcher

GROUP = "secretgen.k14s.io"
VERSION = "v1alpha1"


@kopf.on.create(GROUP, VERSION, "passwords")  # type: ignore[arg-type]
@kopf.on.update(GROUP, VERSION, "passwords")  # type: ignore[arg-type]
@kopf.on.resume(GROUP, VERSION, "passwords")  # type: ignore[arg-type]
def reconcile_password(
    *, namespace: str, name: str, logger: Any, **kwargs: Any
) -> None:
    """Generate the Secret of a Password if it does not exist yet."""
    get_dispatcher().handle("Password", namespace, name, logger=logger)
