"""Tests for the secretgenoperator.serviceaccounts module."""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any

import pytest

from secretgenoperator.errors import ServiceAccountError
from secretgenoperator.serviceaccounts import (
    SA_TOKEN_TYPE,
    ServiceAccountLoader,
)


@pytest.fixture
def root_ca_file(tmp_path: Path) -> Path:
    path = tmp_path / "ca.crt"
    path.write_text("-----BEGIN CERTIFICATE-----\n")
    return path


@pytest.fixture
def in_cluster(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
    monkeypatch.setenv("KUBERNETES_SERVICE_PORT", "443")


def add_service_account(
    store: Any,
    *,
    secret_type: str = SA_TOKEN_TYPE,
    data: dict[str, str] | None = None,
) -> None:
    store.add(
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"namespace": "apps", "name": "reader"},
            "secrets": [{"name": "reader-token"}],
        }
    )
    if data is None:
        data = {"token": base64.b64encode(b"t0ken").decode()}
    store.add(
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"namespace": "apps", "name": "reader-token"},
            "type": secret_type,
            "data": data,
        }
    )


def test_configuration(
    store: Any, root_ca_file: Path, in_cluster: None
) -> None:
    add_service_account(store)
    loader = ServiceAccountLoader(store, root_ca_file=root_ca_file)

    configuration = loader.configuration_for("reader", "apps")

    assert configuration.host == "https://10.0.0.1:443"
    assert configuration.ssl_ca_cert == str(root_ca_file)
    assert configuration.api_key == {"authorization": "t0ken"}
    assert configuration.api_key_prefix == {"authorization": "Bearer"}


def test_configuration_ipv6(
    store: Any,
    root_ca_file: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "fd00::1")
    monkeypatch.setenv("KUBERNETES_SERVICE_PORT", "6443")
    add_service_account(store)
    loader = ServiceAccountLoader(store, root_ca_file=root_ca_file)

    configuration = loader.configuration_for("reader", "apps")

    assert configuration.host == "https://[fd00::1]:6443"


def test_not_in_cluster(
    store: Any, root_ca_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
    monkeypatch.delenv("KUBERNETES_SERVICE_PORT", raising=False)
    loader = ServiceAccountLoader(store, root_ca_file=root_ca_file)

    with pytest.raises(ServiceAccountError) as excinfo:
        loader.store_for("reader", "apps")
    assert "Unable to load in-cluster configuration" in str(excinfo.value)


def test_missing_root_ca(
    store: Any, tmp_path: Path, in_cluster: None
) -> None:
    add_service_account(store)
    loader = ServiceAccountLoader(store, root_ca_file=tmp_path / "missing")

    with pytest.raises(ServiceAccountError) as excinfo:
        loader.configuration_for("reader", "apps")
    assert "Expected to load root CA config" in str(excinfo.value)


def test_missing_service_account(store: Any) -> None:
    loader = ServiceAccountLoader(store)

    with pytest.raises(ServiceAccountError) as excinfo:
        loader.service_account_token("reader", "apps")
    assert str(excinfo.value) == (
        "unable to fetch service account apps:reader : Not Found"
    )


def test_service_account_without_secrets(store: Any) -> None:
    store.add(
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"namespace": "apps", "name": "reader"},
        }
    )
    loader = ServiceAccountLoader(store)

    with pytest.raises(ServiceAccountError) as excinfo:
        loader.service_account_token("reader", "apps")
    assert str(excinfo.value) == "no secrets found for service account reader"


def test_token_secret_wrong_type(store: Any) -> None:
    add_service_account(store, secret_type="Opaque")
    loader = ServiceAccountLoader(store)

    with pytest.raises(ServiceAccountError) as excinfo:
        loader.service_account_token("reader", "apps")
    assert str(excinfo.value) == (
        f"secret reader-token is not of type {SA_TOKEN_TYPE}"
    )


def test_token_secret_without_token(store: Any) -> None:
    add_service_account(store, data={})
    loader = ServiceAccountLoader(store)

    with pytest.raises(ServiceAccountError) as excinfo:
        loader.service_account_token("reader", "apps")
    assert str(excinfo.value) == "secret reader-token does not contain token"
