"""Helpers for interacting with Kubernetes APIs."""

__all__ = (
    "CARVEL_API_VERSION",
    "CUSTOM_RESOURCE_PLURALS",
    "K14S_API_VERSION",
    "ObjectStore",
    "create_k8sclient",
    "is_already_exists",
    "is_not_found",
)

import json
from typing import Any

import kubernetes
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient

CARVEL_API_VERSION = "secretgen.carvel.dev/v1alpha1"
"""API version of SecretExport, SecretImport and SecretTemplate."""

K14S_API_VERSION = "secretgen.k14s.io/v1alpha1"
"""API version of SecretRequest, SecretExportApproval and Password."""

CUSTOM_RESOURCE_PLURALS: dict[tuple[str, str], str] = {
    (CARVEL_API_VERSION, "SecretExport"): "secretexports",
    (CARVEL_API_VERSION, "SecretImport"): "secretimports",
    (CARVEL_API_VERSION, "SecretTemplate"): "secrettemplates",
    (K14S_API_VERSION, "SecretRequest"): "secretrequests",
    (K14S_API_VERSION, "SecretExportApproval"): "secretexportapprovals",
    (K14S_API_VERSION, "Password"): "passwords",
}
"""Plural names of the custom resources managed by the operator."""


def create_k8sclient() -> kubernetes.client:
    """Get a Kubernetes client configured with available cluster
    authentication.

    If in-cluster authentication is available, that is used. Otherwise
    this function falls-back to using a kubectl config file, which is
    appropriate for development.
    """
    try:
        kubernetes.config.load_incluster_config()
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
    return kubernetes.client


def is_not_found(error: BaseException) -> bool:
    """Test whether an error is a Kubernetes API ``404 Not Found``."""
    return isinstance(error, ApiException) and error.status == 404


def is_already_exists(error: BaseException) -> bool:
    """Test whether an error is a Kubernetes API ``409 AlreadyExists``
    (or ``Conflict``).
    """
    return isinstance(error, ApiException) and error.status == 409


class ObjectStore:
    """Read and write Kubernetes resources as raw ``dict`` bodies.

    Core resources (Secrets, Namespaces, ServiceAccounts) go through
    ``CoreV1Api``, the operator's own custom resources through
    ``CustomObjectsApi`` and any other kind through the dynamic client.
    Every call carries the configured request timeout.

    Errors are raised as `kubernetes.client.exceptions.ApiException`; use
    `is_not_found` and `is_already_exists` to tell them apart.

    Parameters
    ----------
    api_client : `kubernetes.client.ApiClient`, optional
        The API client to use. If not set, a client using the default
        configuration is created (see `create_k8sclient`).
    request_timeout : `float`, optional
        Timeout, in seconds, of each API call.
    """

    def __init__(
        self,
        api_client: kubernetes.client.ApiClient | None = None,
        *,
        request_timeout: float | None = None,
    ) -> None:
        if api_client is None:
            api_client = create_k8sclient().ApiClient()
        self.api_client = api_client
        self.request_timeout = request_timeout
        self._core_api = kubernetes.client.CoreV1Api(api_client)
        self._custom_api = kubernetes.client.CustomObjectsApi(api_client)
        self._dynamic_client: Any = None

    def get(
        self, api_version: str, kind: str, *, namespace: str | None, name: str
    ) -> dict[str, Any]:
        """Get a resource.

        Parameters
        ----------
        api_version : `str`
            The ``apiVersion`` of the resource, such as ``v1``.
        kind : `str`
            The ``kind`` of the resource, such as ``Secret``.
        namespace : `str` or `None`
            The namespace of the resource, `None` for cluster-scoped kinds.
        name : `str`
            The name of the resource.

        Returns
        -------
        body : `dict`
            The Kubernetes resource.
        """
        opts = self._opts()
        if api_version == "v1" and kind == "Secret":
            result = self._core_api.read_namespaced_secret(
                name=name, namespace=namespace, **opts
            )
        elif api_version == "v1" and kind == "Namespace":
            result = self._core_api.read_namespace(name=name, **opts)
        elif api_version == "v1" and kind == "ServiceAccount":
            result = self._core_api.read_namespaced_service_account(
                name=name, namespace=namespace, **opts
            )
        elif (api_version, kind) in CUSTOM_RESOURCE_PLURALS:
            group, version = api_version.split("/")
            result = self._custom_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=CUSTOM_RESOURCE_PLURALS[(api_version, kind)],
                name=name,
                **opts,
            )
        else:
            resource = self._dynamic().resources.get(
                api_version=api_version, kind=kind
            )
            return resource.get(
                name=name,
                namespace=namespace,
                _request_timeout=self.request_timeout,
            ).to_dict()
        return self._decode(result)

    def list(
        self, api_version: str, kind: str, *, namespace: str | None = None
    ) -> list[dict[str, Any]]:
        """List resources of a kind, in one namespace or in all of them.

        The ``apiVersion`` and ``kind`` fields, which the API omits from
        list items, are filled in.
        """
        opts = self._opts()
        if api_version == "v1" and kind == "Secret":
            if namespace is None:
                result = self._core_api.list_secret_for_all_namespaces(**opts)
            else:
                result = self._core_api.list_namespaced_secret(
                    namespace=namespace, **opts
                )
        elif (api_version, kind) in CUSTOM_RESOURCE_PLURALS:
            group, version = api_version.split("/")
            plural = CUSTOM_RESOURCE_PLURALS[(api_version, kind)]
            if namespace is None:
                result = self._custom_api.list_cluster_custom_object(
                    group=group, version=version, plural=plural, **opts
                )
            else:
                result = self._custom_api.list_namespaced_custom_object(
                    group=group,
                    version=version,
                    namespace=namespace,
                    plural=plural,
                    **opts,
                )
        else:
            raise ValueError(f"Listing {api_version} {kind} is not supported")

        items = self._decode(result)["items"]
        for item in items:
            item.setdefault("apiVersion", api_version)
            item.setdefault("kind", kind)
        return items

    def create(self, body: dict[str, Any]) -> dict[str, Any]:
        """Create a resource from its body."""
        api_version, kind, namespace, name = self._identity(body)
        opts = self._opts()
        if api_version == "v1" and kind == "Secret":
            result = self._core_api.create_namespaced_secret(
                namespace=namespace, body=body, **opts
            )
        else:
            group, version, plural = self._custom_parts(api_version, kind)
            result = self._custom_api.create_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                body=body,
                **opts,
            )
        return self._decode(result)

    def update(self, body: dict[str, Any]) -> dict[str, Any]:
        """Replace a resource.

        The body's ``metadata.resourceVersion`` is used for optimistic
        concurrency; a stale version fails with ``409 Conflict``.
        """
        api_version, kind, namespace, name = self._identity(body)
        opts = self._opts()
        if api_version == "v1" and kind == "Secret":
            result = self._core_api.replace_namespaced_secret(
                name=name, namespace=namespace, body=body, **opts
            )
        else:
            group, version, plural = self._custom_parts(api_version, kind)
            result = self._custom_api.replace_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
                body=body,
                **opts,
            )
        return self._decode(result)

    def update_status(self, body: dict[str, Any]) -> dict[str, Any]:
        """Replace the ``status`` subresource of a custom resource."""
        api_version, kind, namespace, name = self._identity(body)
        group, version, plural = self._custom_parts(api_version, kind)
        result = self._custom_api.replace_namespaced_custom_object_status(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=body,
            **self._opts(),
        )
        return self._decode(result)

    def delete(
        self, api_version: str, kind: str, *, namespace: str, name: str
    ) -> None:
        """Delete a resource."""
        opts = self._opts()
        if api_version == "v1" and kind == "Secret":
            self._core_api.delete_namespaced_secret(
                name=name, namespace=namespace, **opts
            )
        else:
            group, version, plural = self._custom_parts(api_version, kind)
            self._custom_api.delete_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
                **opts,
            )

    def _opts(self) -> dict[str, Any]:
        return {
            "_preload_content": False,
            "_request_timeout": self.request_timeout,
        }

    def _dynamic(self) -> Any:
        # Discovery hits the API, so the dynamic client is built lazily.
        if self._dynamic_client is None:
            self._dynamic_client = DynamicClient(self.api_client)
        return self._dynamic_client

    @staticmethod
    def _decode(result: Any) -> dict[str, Any]:
        return json.loads(result.data)

    @staticmethod
    def _identity(body: dict[str, Any]) -> tuple[str, str, str, str]:
        metadata = body["metadata"]
        return (
            body["apiVersion"],
            body["kind"],
            metadata["namespace"],
            metadata["name"],
        )

    @staticmethod
    def _custom_parts(api_version: str, kind: str) -> tuple[str, str, str]:
        try:
            plural = CUSTOM_RESOURCE_PLURALS[(api_version, kind)]
        except KeyError:
            raise ValueError(
                f"Writing {api_version} {kind} is not supported"
            ) from None
        group, version = api_version.split("/")
        return group, version, plural
