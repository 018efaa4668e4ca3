"""Helpers shared by the kopf handlers."""

__all__ = ("get_dispatcher", "get_store", "owner_keys")

from typing import Any

from .. import state
from ..dispatch import Dispatcher
from ..k8s import ObjectStore


def get_dispatcher() -> Dispatcher:
    if state.dispatcher is None:
        raise RuntimeError("The operator has not been started")
    return state.dispatcher


def get_store() -> ObjectStore:
    if state.store is None:
        raise RuntimeError("The operator has not been started")
    return state.store


def owner_keys(
    body: dict[str, Any], api_version: str, kind: str
) -> list[tuple[str, str]]:
    """Get the namespaced names of the owners of ``body`` with the given
    API version and kind.
    """
    meta = body.get("metadata") or {}
    return [
        (meta["namespace"], ref["name"])
        for ref in meta.get("ownerReferences") or []
        if ref.get("apiVersion") == api_version and ref.get("kind") == kind
    ]
