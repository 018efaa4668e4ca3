"""Shared fixtures: an in-memory stand-in for the Kubernetes API."""

from __future__ import annotations

import copy
import itertools
from typing import Any

import pytest
from kubernetes.client.exceptions import ApiException


class FakeObjectStore:
    """In-memory implementation of `secretgenoperator.k8s.ObjectStore`.

    Errors are raised as `ApiException` with the status the API server
    would use, and every body is deep-copied in and out.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str | None, str], dict] = {}
        self.writes: list[tuple[str, str, str | None, str]] = []
        self._versions = itertools.count(1)

    def add(self, body: dict[str, Any]) -> dict[str, Any]:
        """Add an object without recording a write."""
        body = copy.deepcopy(body)
        meta = body["metadata"]
        meta.setdefault("uid", f"uid-{meta['name']}")
        meta["resourceVersion"] = str(next(self._versions))
        self.objects[self._key_of(body)] = body
        return copy.deepcopy(body)

    def get(
        self,
        api_version: str,
        kind: str,
        *,
        namespace: str | None,
        name: str,
    ) -> dict[str, Any]:
        key = (api_version, kind, namespace, name)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self.objects[key])

    def list(
        self,
        api_version: str,
        kind: str,
        *,
        namespace: str | None = None,
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(body)
            for (v, k, ns, _), body in sorted(
                self.objects.items(), key=lambda item: str(item[0])
            )
            if v == api_version
            and k == kind
            and (namespace is None or ns == namespace)
        ]

    def create(self, body: dict[str, Any]) -> dict[str, Any]:
        key = self._key_of(body)
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        self.writes.append(("create", *key[1:]))
        return self.add(body)

    def update(self, body: dict[str, Any]) -> dict[str, Any]:
        key = self._key_of(body)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        current = self.objects[key]
        version = body["metadata"].get("resourceVersion")
        if version and version != current["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        self.writes.append(("update", *key[1:]))
        body = copy.deepcopy(body)
        if "status" in current:
            body["status"] = current["status"]
        body["metadata"]["uid"] = current["metadata"]["uid"]
        return self.add(body)

    def update_status(self, body: dict[str, Any]) -> dict[str, Any]:
        key = self._key_of(body)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        self.writes.append(("update_status", *key[1:]))
        current = self.objects[key]
        current["status"] = copy.deepcopy(body.get("status"))
        current["metadata"]["resourceVersion"] = str(next(self._versions))
        return copy.deepcopy(current)

    def delete(
        self, api_version: str, kind: str, *, namespace: str, name: str
    ) -> None:
        key = (api_version, kind, namespace, name)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        self.writes.append(("delete", kind, namespace, name))
        del self.objects[key]

    @staticmethod
    def _key_of(body: dict[str, Any]) -> tuple[str, str, str | None, str]:
        meta = body["metadata"]
        return (
            body["apiVersion"],
            body["kind"],
            meta.get("namespace"),
            meta["name"],
        )


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()

