import re

import pytest

from faultguard.common.errors import (
    AppError,
    Kind,
    Severity,
    authentication_error,
    authorization_error,
    business_logic_error,
    data_store_error,
    network_error,
    new_error_id,
    validation_error,
)


def test_app_error_includes_metadata_in_str():
    err = AppError("boom", Kind.NETWORK, Severity.CRITICAL)
    message = str(err)
    assert "CRITICAL" in message and "NETWORK" in message
    assert err.severity is Severity.CRITICAL
    assert err.kind is Kind.NETWORK
    assert err.message == "boom"


def test_app_error_defaults_to_unknown_medium():
    err = AppError("plain")
    assert err.kind is Kind.UNKNOWN
    assert err.severity is Severity.MEDIUM
    assert err.code is None and err.details is None


@pytest.mark.parametrize(
    "factory, kind, severity",
    [
        (validation_error, Kind.VALIDATION, Severity.LOW),
        (authentication_error, Kind.AUTHENTICATION, Severity.HIGH),
        (authorization_error, Kind.AUTHORIZATION, Severity.HIGH),
        (network_error, Kind.NETWORK, Severity.MEDIUM),
        (data_store_error, Kind.DATA_STORE, Severity.HIGH),
        (business_logic_error, Kind.BUSINESS_LOGIC, Severity.MEDIUM),
    ],
)
def test_factories_fix_kind_and_severity(factory, kind, severity):
    err = factory("msg", "CODE", {"field": "x"})
    assert err.kind is kind
    assert err.severity is severity
    assert err.code == "CODE"
    assert err.details == {"field": "x"}


def test_error_id_format_and_immutability():
    err = validation_error("bad")
    assert re.fullmatch(r"err_\d{13}_[0-9a-z]{9}", err.id)
    original_id = err.id

    with pytest.raises(AttributeError):
        err.id = "other"
    with pytest.raises(AttributeError):
        err.kind = Kind.NETWORK
    with pytest.raises(AttributeError):
        err.severity = Severity.CRITICAL

    assert err.id == original_id


def test_new_error_ids_differ():
    assert new_error_id() != new_error_id()


def test_severity_is_ordered():
    assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
    assert max([Severity.MEDIUM, Severity.CRITICAL, Severity.LOW]) is Severity.CRITICAL
    assert Severity.HIGH.is_durable and Severity.CRITICAL.is_durable
    assert not Severity.MEDIUM.is_durable


def test_to_dict_produces_report_envelope():
    err = data_store_error("db down", "DB_DOWN", {"table": "orders"})
    payload = err.to_dict(url="https://shop.example/orders", user_agent="tests")

    assert set(payload) == {"id", "kind", "severity", "message", "code", "details", "timestamp", "stack", "context"}
    assert payload["kind"] == "data_store"
    assert payload["severity"] == "high"
    assert payload["context"] == {"url": "https://shop.example/orders", "userAgent": "tests"}
    # never raised, so there is no traceback yet
    assert payload["stack"] is None


def test_app_error_is_raisable():
    with pytest.raises(AppError) as caught:
        raise network_error("offline")
    assert caught.value.kind is Kind.NETWORK
