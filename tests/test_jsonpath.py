"""Tests for the secretgenoperator.jsonpath module."""

from __future__ import annotations

import pytest

from secretgenoperator.errors import JSONPathError
from secretgenoperator.jsonpath import evaluate, split_canonical, to_canonical


@pytest.mark.parametrize(
    "expression,expected",
    [
        ("", ""),
        ("plain text", "plain text"),
        ("$(.value)", "{.value}"),
        ("prefix-$(.value)-suffix", "prefix-{.value}-suffix"),
        ("$(.a)$(.b)", "{.a}{.b}"),
        ("$($(foo))", "{{foo}}"),
        (
            "$(.spec.ports[?(@.protocol=='TCP')])",
            "{.spec.ports[?(@.protocol=='TCP')]}",
        ),
        ("$(.items[(@.length-1)])", "{.items[(@.length-1)]}"),
        ("$(.data.foo?())()-)", "{.data.foo?()}()-)"),
        ("foo$(", "foo$("),
        ("foo)", "foo)"),
        ("(.value)", "(.value)"),
        ("$.value", "$.value"),
    ],
)
def test_to_canonical(expression: str, expected: str) -> None:
    assert to_canonical(expression) == expected


def test_split_canonical() -> None:
    assert split_canonical("a-{.b}-c{.d}") == [
        (False, "a-"),
        (True, ".b"),
        (False, "-c"),
        (True, ".d"),
    ]
    assert split_canonical("text") == [(False, "text")]


def test_split_canonical_unclosed() -> None:
    with pytest.raises(JSONPathError):
        split_canonical("{.a")


def test_evaluate_string() -> None:
    values = {"creds": {"data": {"password": "c2VjcmV0"}}}
    assert evaluate("$(.creds.data.password)", values) == "c2VjcmV0"
    assert (
        evaluate("pw=$(.creds.data.password);", values) == "pw=c2VjcmV0;"
    )


def test_evaluate_without_expression() -> None:
    assert evaluate("just text", {}) == "just text"


def test_evaluate_non_string_values() -> None:
    values = {
        "svc": {
            "spec": {
                "port": 5432,
                "enabled": True,
                "selector": {"app": "db"},
            }
        }
    }
    assert evaluate("$(.svc.spec.port)", values) == "5432"
    assert evaluate("$(.svc.spec.enabled)", values) == "true"
    assert evaluate("$(.svc.spec.selector)", values) == '{"app":"db"}'


def test_evaluate_multiple_results() -> None:
    values = {"cm": {"data": {"a": "x", "b": "y"}}}
    assert evaluate("$(.cm.data.*)", values) == "x y"


def test_evaluate_missing_field() -> None:
    values = {"creds": {"data": {"password": "c2VjcmV0"}}}
    with pytest.raises(JSONPathError) as excinfo:
        evaluate("$(.creds.data.username)", values)
    assert str(excinfo.value) == "username is not found"

    with pytest.raises(JSONPathError) as excinfo:
        evaluate("$(.missing.data)", values)
    assert str(excinfo.value) == "missing is not found"


def test_evaluate_parse_error() -> None:
    with pytest.raises(JSONPathError):
        evaluate("$(.a[)", {"a": [1]})


def test_evaluate_filter() -> None:
    values = {
        "svc": {
            "spec": {
                "ports": [
                    {"name": "dns", "protocol": "UDP", "port": 53},
                    {"name": "http", "protocol": "TCP", "port": 80},
                ]
            }
        }
    }
    assert (
        evaluate("$(.svc.spec.ports[?(@.protocol=='TCP')].port)", values)
        == "80"
    )
    assert (
        evaluate("$(.svc.spec.ports[?(@.protocol=='SCTP')].port)", values)
        == ""
    )


def test_evaluate_escaped_dot() -> None:
    values = {"cm": {"data": {"tls.crt": "CERT", "tls.key": "KEY"}}}
    assert evaluate(r"$(.cm.data.tls\.crt)", values) == "CERT"
    assert (
        evaluate(r"$(.cm.data.tls\.crt)/$(.cm.data.tls\.key)", values)
        == "CERT/KEY"
    )

    with pytest.raises(JSONPathError) as excinfo:
        evaluate(r"$(.cm.data.ca\.crt)", values)
    assert str(excinfo.value) == "ca.crt is not found"


def test_evaluate_index() -> None:
    values = {"a": {"items": ["x", "y"]}}
    assert evaluate("$(.a.items[1])", values) == "y"

    with pytest.raises(JSONPathError) as excinfo:
        evaluate("$(.a.items[5])", values)
    assert str(excinfo.value) == (
        "array index out of bounds: index 5, length 2"
    )
