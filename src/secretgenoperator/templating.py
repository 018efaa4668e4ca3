"""Resolution and materialization of SecretTemplates."""

from __future__ import annotations

__all__ = ("materialize", "resolve_input_resources")

import base64
import binascii
from typing import Any

import structlog

from secretgenoperator.errors import JSONPathError, TemplateError
from secretgenoperator.jsonpath import evaluate
from secretgenoperator.k8s import ObjectStore

logger = structlog.get_logger(__name__)


def resolve_input_resources(
    secret_template: dict[str, Any], store: ObjectStore
) -> dict[str, Any]:
    """Fetch the input resources of a SecretTemplate.

    Input resources are resolved in the order they are listed. The
    ``ref.name`` of each input may be a ``$( )`` expression over the
    inputs resolved before it, so that, for example, a Secret named in
    a ConfigMap can be read.

    Parameters
    ----------
    secret_template : `dict`
        The SecretTemplate resource.
    store : `secretgenoperator.k8s.ObjectStore`
        Store used to fetch the inputs; a store acting as the template's
        service account if it names one.

    Returns
    -------
    inputs : `dict`
        The input resources keyed by their alias.

    Raises
    ------
    secretgenoperator.errors.JSONPathError
        Raised if the name of an input cannot be evaluated.
    kubernetes.client.exceptions.ApiException
        Raised if an input cannot be read.
    """
    namespace = secret_template["metadata"]["namespace"]
    spec = secret_template.get("spec") or {}

    resolved: dict[str, Any] = {}
    for input_resource in spec.get("inputResources") or []:
        alias = input_resource["name"]
        ref = input_resource["ref"]
        try:
            name = evaluate(ref["name"], resolved)
        except JSONPathError as e:
            raise JSONPathError(
                f"Resolving name of input resource '{alias}': {e}"
            ) from e

        resolved[alias] = store.get(
            ref["apiVersion"], ref["kind"], namespace=namespace, name=name
        )
        logger.debug(
            f"Resolved input resource {alias} to {ref['kind']} "
            f"{namespace}/{name}"
        )
    return resolved


def materialize(
    template: dict[str, Any], inputs: dict[str, Any]
) -> dict[str, bytes]:
    """Evaluate the ``data`` and ``stringData`` of a SecretTemplate's
    ``spec.template``.

    ``data`` expressions must evaluate to base64 text, as found in the
    ``data`` of a Secret, and are decoded. ``stringData`` expressions are
    used as is and win over ``data`` keys of the same name.

    Parameters
    ----------
    template : `dict`
        The ``spec.template`` of the SecretTemplate.
    inputs : `dict`
        The resolved input resources (see `resolve_input_resources`).

    Returns
    -------
    data : `dict`
        The Secret data, not base64 encoded.

    Raises
    ------
    secretgenoperator.errors.TemplateError
        Raised if any expression fails. No partial result is returned.
    """
    result: dict[str, bytes] = {}

    for key, expression in (template.get("data") or {}).items():
        try:
            value = evaluate(expression, inputs)
        except JSONPathError as e:
            raise TemplateError("data", key, str(e)) from e
        try:
            result[key] = base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise TemplateError(
                "data", key, f"Decoding base64 value: {e}"
            ) from e

    for key, expression in (template.get("stringData") or {}).items():
        try:
            result[key] = evaluate(expression, inputs).encode("utf-8")
        except JSONPathError as e:
            raise TemplateError("stringData", key, str(e)) from e

    return result
