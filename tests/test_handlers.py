"""Tests for the operator start-up and the kopf handlers."""

from __future__ import annotations

from typing import Any

import kopf
import pytest

from secretgenoperator import state
from secretgenoperator.dispatch import Dispatcher
from secretgenoperator.handlers.common import owner_keys
from secretgenoperator.handlers.exports import (
    handle_secret_export_event,
    reconcile_secret_export,
)
from secretgenoperator.handlers.namespaces import handle_namespace_change
from secretgenoperator.handlers.secrets import handle_secret_change
from secretgenoperator.k8s import CARVEL_API_VERSION
from secretgenoperator.namespaces import EXCLUDED_FROM_WILDCARD_ANNOTATION
from secretgenoperator.startup import start_operator
from secretgenoperator.status import ReconcileResult


class RecordingDispatcher:
    def __init__(self) -> None:
        self.enqueued: list[tuple[str, list[tuple[str, str]]]] = []

    def enqueue(self, kind: str, keys: Any, logger: Any = None) -> None:
        keys = list(keys)
        if keys:
            self.enqueued.append((kind, keys))


class NullLogger:
    def info(self, message: str) -> None:
        pass

    def exception(self, message: str) -> None:
        pass


@pytest.fixture
def dispatcher(
    store: Any, monkeypatch: pytest.MonkeyPatch
) -> RecordingDispatcher:
    dispatcher = RecordingDispatcher()
    monkeypatch.setattr(state, "dispatcher", dispatcher)
    monkeypatch.setattr(state, "store", store)
    monkeypatch.setattr(state, "export_names", set())
    monkeypatch.setattr(state, "namespace_annotations", {})
    return dispatcher


def make_export() -> dict[str, Any]:
    return {
        "apiVersion": CARVEL_API_VERSION,
        "kind": "SecretExport",
        "metadata": {"namespace": "ns1", "name": "creds"},
        "spec": {"toNamespace": "*"},
        "status": {
            "conditions": [{"type": "ReconcileSucceeded", "status": "True"}]
        },
    }


def make_import(namespace: str, from_namespace: str = "ns1") -> dict:
    return {
        "apiVersion": CARVEL_API_VERSION,
        "kind": "SecretImport",
        "metadata": {"namespace": namespace, "name": "creds"},
        "spec": {"fromNamespace": from_namespace},
    }


def test_owner_keys() -> None:
    body = {
        "metadata": {
            "namespace": "ns",
            "name": "creds",
            "ownerReferences": [
                {
                    "apiVersion": CARVEL_API_VERSION,
                    "kind": "SecretImport",
                    "name": "creds",
                },
                {"apiVersion": "v1", "kind": "ConfigMap", "name": "other"},
            ],
        }
    }
    assert owner_keys(body, CARVEL_API_VERSION, "SecretImport") == [
        ("ns", "creds")
    ]
    assert owner_keys(body, CARVEL_API_VERSION, "SecretTemplate") == []


def test_start_operator(store: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(state, "dispatcher", None)
    monkeypatch.setattr(state, "store", None)
    monkeypatch.setattr(state, "secret_exports", None)
    monkeypatch.setattr(state, "export_names", set())
    store.add(make_export())

    dispatcher = start_operator(store=store)

    assert state.dispatcher is dispatcher
    assert state.store is store
    assert state.export_names == {("ns1", "creds")}
    for kind in (
        "SecretExport",
        "SecretImport",
        "SecretRequest",
        "SecretExportApproval",
        "Secret",
        "SecretTemplate",
        "Password",
    ):
        assert dispatcher.reconciler(kind) is not None


def test_secret_export_event(
    store: Any, dispatcher: RecordingDispatcher
) -> None:
    store.add(make_import("ns2"))
    store.add(make_import("ns3", from_namespace="elsewhere"))
    store.add(
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "namespace": "ns4",
                "name": "pull",
                "annotations": {
                    "secretgen.carvel.dev/image-pull-secret": ""
                },
            },
        }
    )
    export = make_export()

    handle_secret_export_event(
        event={"type": "ADDED"},
        body=export,
        namespace="ns1",
        name="creds",
        logger=NullLogger(),
    )

    assert state.export_names == {("ns1", "creds")}
    assert dispatcher.enqueued == [
        ("SecretImport", [("ns2", "creds")]),
        ("Secret", [("ns4", "pull")]),
    ]


def test_secret_export_deleted(
    store: Any, dispatcher: RecordingDispatcher
) -> None:
    state.export_names.add(("ns1", "creds"))

    handle_secret_export_event(
        event={"type": "DELETED"},
        body=make_export(),
        namespace="ns1",
        name="creds",
        logger=NullLogger(),
    )

    assert state.export_names == set()
    assert ("SecretExport", [("ns1", "creds")]) in dispatcher.enqueued


def test_secret_change(store: Any, dispatcher: RecordingDispatcher) -> None:
    state.export_names.add(("ns1", "creds"))

    handle_secret_change(
        event={"type": "MODIFIED"},
        body={"metadata": {"namespace": "ns1", "name": "creds"}},
        namespace="ns1",
        name="creds",
        logger=NullLogger(),
    )
    handle_secret_change(
        event={"type": "DELETED"},
        body={
            "metadata": {
                "namespace": "ns2",
                "name": "creds",
                "ownerReferences": [
                    {
                        "apiVersion": CARVEL_API_VERSION,
                        "kind": "SecretImport",
                        "name": "creds",
                    }
                ],
            }
        },
        namespace="ns2",
        name="creds",
        logger=NullLogger(),
    )

    assert dispatcher.enqueued == [
        ("SecretExport", [("ns1", "creds")]),
        ("SecretImport", [("ns2", "creds")]),
    ]


def test_namespace_exclusion_change(
    store: Any, dispatcher: RecordingDispatcher
) -> None:
    store.add(make_import("ns2"))
    namespace = {"metadata": {"name": "ns2"}}

    handle_namespace_change(
        event={"type": None}, body=namespace, name="ns2", logger=NullLogger()
    )
    assert dispatcher.enqueued == []

    # Unrelated annotation changes are ignored.
    namespace["metadata"]["annotations"] = {"team": "data"}
    handle_namespace_change(
        event={"type": "MODIFIED"},
        body=namespace,
        name="ns2",
        logger=NullLogger(),
    )
    assert dispatcher.enqueued == []

    namespace["metadata"]["annotations"] = {
        EXCLUDED_FROM_WILDCARD_ANNOTATION: ""
    }
    handle_namespace_change(
        event={"type": "MODIFIED"},
        body=namespace,
        name="ns2",
        logger=NullLogger(),
    )
    assert dispatcher.enqueued == [("SecretImport", [("ns2", "creds")])]


def test_failed_secret_export_event_enqueues_dependents(
    store: Any, dispatcher: RecordingDispatcher
) -> None:
    store.add(make_import("ns2"))
    export = make_export()
    export["status"]["conditions"] = [
        {
            "type": "ReconcileFailed",
            "status": "True",
            "message": "Missing exported secret",
        }
    ]

    handle_secret_export_event(
        event={"type": "MODIFIED"},
        body=export,
        namespace="ns1",
        name="creds",
        logger=NullLogger(),
    )

    assert ("SecretImport", [("ns2", "creds")]) in dispatcher.enqueued


def test_reconciling_secret_export_event_waits(
    store: Any, dispatcher: RecordingDispatcher
) -> None:
    store.add(make_import("ns2"))
    export = make_export()
    export["status"]["conditions"] = [
        {"type": "Reconciling", "status": "True"}
    ]

    handle_secret_export_event(
        event={"type": "MODIFIED"},
        body=export,
        namespace="ns1",
        name="creds",
        logger=NullLogger(),
    )

    assert dispatcher.enqueued == []


def test_secret_export_transient_error_is_retried_by_kopf(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    class TimingOutReconciler:
        def reconcile(
            self, namespace: str, name: str, logger: Any = None
        ) -> ReconcileResult:
            raise ConnectionError("timed out")

    dispatcher = Dispatcher(retry_delay=10)
    dispatcher.register("SecretExport", TimingOutReconciler())
    monkeypatch.setattr(state, "dispatcher", dispatcher)

    with pytest.raises(kopf.TemporaryError) as excinfo:
        reconcile_secret_export(
            namespace="ns1", name="creds", logger=NullLogger()
        )
    assert excinfo.value.delay == 10
