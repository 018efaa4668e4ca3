"""Combine ``kubernetes.io/dockerconfigjson`` Secrets."""

from __future__ import annotations

__all__ = (
    "DOCKER_CONFIG_JSON_KEY",
    "DOCKER_CONFIG_JSON_TYPE",
    "DockerConfigError",
    "combine_docker_config_json",
)

import json
from typing import Any

from secretgenoperator.errors import SecretgenError
from secretgenoperator.secret import decode_secret_field

DOCKER_CONFIG_JSON_KEY = ".dockerconfigjson"
"""Secret data key holding the docker config."""

DOCKER_CONFIG_JSON_TYPE = "kubernetes.io/dockerconfigjson"
"""Secret type of docker config secrets."""


class DockerConfigError(SecretgenError):
    """Raised when a docker config secret cannot be parsed or combined."""


def combine_docker_config_json(
    secrets: list[dict[str, Any]]
) -> dict[str, bytes]:
    """Combine several docker config Secrets into the data of a single
    Secret.

    Parameters
    ----------
    secrets : `list` of `dict`
        Secrets ordered from least to most preferred. When two Secrets
        have credentials for the same server, the later one wins.
        Secrets without a ``.dockerconfigjson`` payload are skipped.

    Returns
    -------
    data : `dict`
        Secret data (not base64 encoded) with a single
        ``.dockerconfigjson`` key.

    Raises
    ------
    DockerConfigError
        Raised if a payload is not a valid docker config.
    """
    combined: dict[str, dict[str, str]] = {}

    for secret in secrets:
        encoded = (secret.get("data") or {}).get(DOCKER_CONFIG_JSON_KEY)
        if not encoded:
            continue

        meta = secret.get("metadata") or {}
        try:
            auths = _parse_auths(decode_secret_field(encoded))
        except (ValueError, TypeError) as e:
            raise DockerConfigError(
                f"Unmarshaling secret '{meta.get('namespace')}/"
                f"{meta.get('name')}': {e}"
            ) from e

        for server, auth in auths.items():
            combined[server] = auth

    encoded_combined = json.dumps(
        {"auths": combined}, sort_keys=True, separators=(",", ":")
    )
    return {DOCKER_CONFIG_JSON_KEY: encoded_combined.encode("utf-8")}


def _parse_auths(payload: bytes) -> dict[str, dict[str, str]]:
    config = json.loads(payload)
    if not isinstance(config, dict):
        raise ValueError("expected a JSON object")
    auths = config.get("auths") or {}
    if not isinstance(auths, dict):
        raise ValueError("expected 'auths' to be an object")

    result = {}
    for server, auth in auths.items():
        if not isinstance(auth, dict):
            raise ValueError(f"expected auth for '{server}' to be an object")
        result[server] = {
            "username": _string_field(auth, "username"),
            "password": _string_field(auth, "password"),
            "auth": _string_field(auth, "auth"),
        }
    return result


def _string_field(auth: dict[str, Any], name: str) -> str:
    value = auth.get(name) or ""
    if not isinstance(value, str):
        raise ValueError(f"expected '{name}' to be a string")
    return value
