from dataclasses import replace
from datetime import timedelta

import pytest

from faultguard.common.classifier import extract_error_info
from faultguard.common.errors import (
    AppError,
    Kind,
    Severity,
    data_store_error,
    network_error,
    utc_now,
    validation_error,
)
from faultguard.ops.log_store import BoundedErrorLog


def _record(fault):
    return extract_error_info(fault)


def test_capacity_keeps_most_recent_entries():
    log = BoundedErrorLog(capacity=2)
    records = [_record(f"fault {i}") for i in range(5)]
    for record in records:
        log.append(record)

    entries = log.snapshot()
    assert len(entries) == 2
    assert [e.id for e in entries] == [records[3].id, records[4].id]


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        BoundedErrorLog(capacity=0)


def test_append_creates_handled_unreported_entry():
    log = BoundedErrorLog(capacity=5)
    entry = log.append(_record(network_error("x")))
    assert entry.handled is True
    assert entry.reported_to_service is False
    assert entry.kind is Kind.NETWORK


def test_snapshot_is_isolated_from_store():
    log = BoundedErrorLog(capacity=5)
    log.append(_record("a"))

    snapshot = log.snapshot()
    snapshot.clear()
    assert len(log) == 1

    copy = log.snapshot()[0]
    copy.reported_to_service = True
    assert log.snapshot()[0].reported_to_service is False


def test_mark_reported():
    log = BoundedErrorLog(capacity=1)
    entry = log.append(_record("first"))
    assert log.mark_reported(entry) is True
    assert log.snapshot()[0].reported_to_service is True

    log.append(_record("second"))
    # evicted entries cannot be marked
    assert log.mark_reported(entry) is False


def test_mark_reported_targets_the_exact_entry_for_shared_ids():
    log = BoundedErrorLog(capacity=5)
    record = _record("same fault")
    first = log.append(record)
    log.append(record)

    log.mark_reported(first)

    assert [entry.reported_to_service for entry in log.snapshot()] == [True, False]


def test_stats_match_inserted_distribution():
    log = BoundedErrorLog(capacity=10)
    faults = [
        validation_error("a"),
        validation_error("b"),
        network_error("c"),
        data_store_error("d"),
        AppError("e", Kind.BUSINESS_LOGIC, Severity.CRITICAL),
    ]
    for fault in faults:
        log.append(_record(fault))

    stats = log.stats()
    assert stats.total == 5
    assert stats.by_kind == {"validation": 2, "network": 1, "data_store": 1, "business_logic": 1}
    assert stats.by_severity == {"low": 2, "medium": 1, "high": 1, "critical": 1}
    assert stats.recent_last_hour == 5


def test_stats_recent_window_excludes_old_entries():
    log = BoundedErrorLog(capacity=10)
    old = replace(_record("old"), timestamp=utc_now() - timedelta(hours=2))
    log.append(old)
    log.append(_record("new"))

    stats = log.stats()
    assert stats.total == 2
    assert stats.recent_last_hour == 1


def test_clear_empties_log():
    log = BoundedErrorLog(capacity=3)
    log.append(_record("a"))
    log.clear()
    assert log.snapshot() == []
    assert log.stats().total == 0
