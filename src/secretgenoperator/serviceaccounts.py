"""Object stores authenticated as a service account.

A SecretTemplate may name a service account whose permissions are used to
read its input resources, so that users cannot read resources through
the operator that they could not read themselves.
"""

from __future__ import annotations

__all__ = ("SA_TOKEN_TYPE", "ServiceAccountLoader")

import base64
import os
from pathlib import Path

import kubernetes
import structlog
from kubernetes.client.exceptions import ApiException

from secretgenoperator.errors import ServiceAccountError
from secretgenoperator.k8s import ObjectStore

SA_TOKEN_TYPE = "kubernetes.io/service-account-token"

ROOT_CA_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/ca.crt")

logger = structlog.get_logger(__name__)


class ServiceAccountLoader:
    """Build object stores that authenticate with a service account's
    token.

    Parameters
    ----------
    store : `secretgenoperator.k8s.ObjectStore`
        Store used to read service accounts and their token secrets.
    request_timeout : `float`, optional
        Timeout of the API calls made by the stores that are built.
    root_ca_file : `pathlib.Path`, optional
        CA bundle of the API server.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        request_timeout: float | None = None,
        root_ca_file: Path = ROOT_CA_FILE,
    ) -> None:
        self.store = store
        self.request_timeout = request_timeout
        self.root_ca_file = root_ca_file

    def store_for(self, name: str, namespace: str) -> ObjectStore:
        """Get an object store acting as service account
        ``namespace/name``.

        Raises
        ------
        secretgenoperator.errors.ServiceAccountError
            Raised if the operator is not running in a cluster or if the
            service account token cannot be found.
        """
        configuration = self.configuration_for(name, namespace)
        return ObjectStore(
            kubernetes.client.ApiClient(configuration),
            request_timeout=self.request_timeout,
        )

    def configuration_for(
        self, name: str, namespace: str
    ) -> kubernetes.client.Configuration:
        host = os.environ.get("KUBERNETES_SERVICE_HOST", "")
        port = os.environ.get("KUBERNETES_SERVICE_PORT", "")
        if not host or not port:
            raise ServiceAccountError(
                "Unable to load in-cluster configuration, "
                "KUBERNETES_SERVICE_HOST and KUBERNETES_SERVICE_PORT must "
                "be defined"
            )

        token = self.service_account_token(name, namespace)

        if not self.root_ca_file.is_file():
            raise ServiceAccountError(
                f"Expected to load root CA config from {self.root_ca_file}"
            )

        if ":" in host:
            # IPv6 address
            host = f"[{host}]"
        configuration = kubernetes.client.Configuration()
        configuration.host = f"https://{host}:{port}"
        configuration.ssl_ca_cert = str(self.root_ca_file)
        configuration.api_key = {"authorization": token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
        return configuration

    def service_account_token(self, name: str, namespace: str) -> str:
        """Read the token of a service account from its first secret."""
        try:
            service_account = self.store.get(
                "v1", "ServiceAccount", namespace=namespace, name=name
            )
        except ApiException as e:
            raise ServiceAccountError(
                f"unable to fetch service account {namespace}:{name} : "
                f"{e.reason}"
            ) from e

        secret_refs = service_account.get("secrets") or []
        if not secret_refs:
            raise ServiceAccountError(
                f"no secrets found for service account {name}"
            )

        # Only the first token secret is used.
        secret_name = secret_refs[0]["name"]
        try:
            secret = self.store.get(
                "v1", "Secret", namespace=namespace, name=secret_name
            )
        except ApiException as e:
            raise ServiceAccountError(
                f"failed to fetch secret {secret_name}: {e.reason}"
            ) from e

        if secret.get("type") != SA_TOKEN_TYPE:
            raise ServiceAccountError(
                f"secret {secret_name} is not of type {SA_TOKEN_TYPE}"
            )
        token = (secret.get("data") or {}).get("token")
        if token is None:
            raise ServiceAccountError(
                f"secret {secret_name} does not contain token"
            )
        logger.debug(
            f"Loaded token of service account {namespace}/{name} from "
            f"secret {secret_name}"
        )
        return base64.b64decode(token).decode("utf-8")
