"""Tests for the SecretTemplate reconciler."""

from __future__ import annotations

import base64
from typing import Any

import pytest
import yaml

from secretgenoperator.dispatch import Dispatcher
from secretgenoperator.errors import TemplateError
from secretgenoperator.k8s import CARVEL_API_VERSION
from secretgenoperator.reconcilers import SecretTemplateReconciler
from secretgenoperator.serviceaccounts import ServiceAccountLoader
from secretgenoperator.status import ReconcileResult

MANIFESTS = """
apiVersion: secretgen.carvel.dev/v1alpha1
kind: SecretTemplate
metadata:
  name: db-dsn
  namespace: apps
  labels:
    team: data
spec:
  inputResources:
  - name: db
    ref:
      apiVersion: v1
      kind: Secret
      name: db-root
  template:
    metadata:
      labels:
        kind: dsn
      annotations:
        owner: data-team
    stringData:
      dsn: postgres://$(.db.data.user)@db
    data:
      password: $(.db.data.password)
---
apiVersion: v1
kind: Secret
metadata:
  name: db-root
  namespace: apps
data:
  user: cm9vdA==
  password: czNjcmV0
"""


@pytest.fixture
def reconciler(store: Any) -> SecretTemplateReconciler:
    for manifest in yaml.safe_load_all(MANIFESTS):
        store.add(manifest)
    return SecretTemplateReconciler(store, ServiceAccountLoader(store))


def get_template(store: Any) -> dict[str, Any]:
    return store.get(
        CARVEL_API_VERSION, "SecretTemplate", namespace="apps", name="db-dsn"
    )


def test_renders_secret(
    store: Any, reconciler: SecretTemplateReconciler
) -> None:
    result = reconciler.reconcile("apps", "db-dsn")

    assert result == ReconcileResult()
    secret = store.get("v1", "Secret", namespace="apps", name="db-dsn")
    assert secret["type"] == "Opaque"
    assert secret["metadata"]["labels"] == {"team": "data", "kind": "dsn"}
    assert secret["metadata"]["annotations"] == {"owner": "data-team"}
    assert secret["metadata"]["ownerReferences"][0]["kind"] == (
        "SecretTemplate"
    )
    assert base64.b64decode(secret["data"]["password"]) == b"s3cret"
    # The dsn embeds the user as evaluated, still base64 encoded.
    assert base64.b64decode(secret["data"]["dsn"]) == b"postgres://cm9vdA==@db"

    status = get_template(store)["status"]
    assert status["secret"] == {"name": "db-dsn"}
    assert status["conditions"] == [
        {"type": "ReconcileSucceeded", "status": "True"}
    ]


def test_rerender_without_changes_does_not_write(
    store: Any, reconciler: SecretTemplateReconciler
) -> None:
    reconciler.reconcile("apps", "db-dsn")
    store.writes.clear()

    reconciler.reconcile("apps", "db-dsn")

    assert store.writes == []


def test_handle_converged_template(
    store: Any, reconciler: SecretTemplateReconciler
) -> None:
    dispatcher = Dispatcher(retry_delay=10)
    dispatcher.register("SecretTemplate", reconciler)
    dispatcher.handle("SecretTemplate", "apps", "db-dsn")
    store.writes.clear()

    dispatcher.handle("SecretTemplate", "apps", "db-dsn")

    assert store.writes == []
    assert dispatcher.pending_retries() == {}


def test_picks_up_input_changes(
    store: Any, reconciler: SecretTemplateReconciler
) -> None:
    reconciler.reconcile("apps", "db-dsn")
    source = store.get("v1", "Secret", namespace="apps", name="db-root")
    source["data"]["password"] = "bmV3"
    store.update(source)

    reconciler.reconcile("apps", "db-dsn")

    secret = store.get("v1", "Secret", namespace="apps", name="db-dsn")
    assert base64.b64decode(secret["data"]["password"]) == b"new"


def test_template_error_is_recorded(
    store: Any, reconciler: SecretTemplateReconciler
) -> None:
    template = get_template(store)
    template["spec"]["template"]["data"]["password"] = "$(.db.data.nope)"
    store.update(template)
    store.writes.clear()

    with pytest.raises(TemplateError):
        reconciler.reconcile("apps", "db-dsn")

    assert store.writes == [
        ("update_status", "SecretTemplate", "apps", "db-dsn")
    ]
    condition = get_template(store)["status"]["conditions"][0]
    assert condition["type"] == "ReconcileFailed"
    assert condition["message"] == (
        "Templating data key 'password': nope is not found"
    )
