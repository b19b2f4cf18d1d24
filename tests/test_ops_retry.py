import threading

import pytest

from faultguard.common.errors import network_error, validation_error
from faultguard.ops.retry import RetryCoordinator, TicketState
from faultguard.ops.scheduling import ManualScheduler


@pytest.fixture
def coordinator(scheduler):
    return RetryCoordinator(scheduler, max_attempts=3, base_delay_ms=1000)


def test_register_creates_ticket_at_attempt_zero(coordinator, scheduler):
    fault = network_error("offline")
    ticket = coordinator.register("err_1", fault)

    assert ticket.attempt == 0
    assert ticket.state is TicketState.SCHEDULED
    assert "err_1" in coordinator
    assert scheduler.pending_timers == 1
    assert scheduler.delays == [1.0]


def test_backoff_progression_until_exhausted(coordinator, scheduler):
    coordinator.register("err_1", network_error("offline"))

    assert scheduler.advance(1.0) == 1
    assert coordinator.get("err_1").attempt == 1
    assert scheduler.advance(1.0) == 1
    assert coordinator.get("err_1").attempt == 2
    assert scheduler.advance(2.0) == 1

    # third re-check hits max_attempts and discards the ticket
    assert "err_1" not in coordinator
    assert len(coordinator) == 0
    assert scheduler.pending_timers == 0
    assert scheduler.delays == [1.0, 1.0, 2.0]


def test_no_fire_before_delay(coordinator, scheduler):
    coordinator.register("err_1", network_error("offline"))
    assert scheduler.advance(0.999) == 0
    assert coordinator.get("err_1").attempt == 0


def test_reclassification_mid_sequence_abandons_ticket(scheduler):
    verdicts = {"retryable": True}

    def policy(error, attempt, max_attempts):
        return verdicts["retryable"] and attempt < max_attempts

    coordinator = RetryCoordinator(scheduler, max_attempts=5, base_delay_ms=100, policy=policy)
    coordinator.register("err_1", object())

    scheduler.advance(0.1)
    assert coordinator.get("err_1").attempt == 1

    verdicts["retryable"] = False
    scheduler.advance(0.1)
    assert coordinator.get("err_1") is None
    assert scheduler.pending_timers == 0


def test_non_retryable_fault_is_dropped_on_first_check(coordinator, scheduler):
    coordinator.register("err_1", validation_error("bad"))
    scheduler.advance(1.0)
    assert coordinator.active() == []


def test_duplicate_registration_keeps_single_ticket(coordinator, scheduler):
    fault = network_error("offline")
    first = coordinator.register("err_1", fault)
    second = coordinator.register("err_1", fault)

    assert first is second
    assert scheduler.pending_timers == 1


def test_delay_for_doubles_per_attempt():
    coordinator = RetryCoordinator(ManualScheduler(), max_attempts=5, base_delay_ms=500)
    assert [coordinator.delay_for(a) for a in range(5)] == [0.5, 0.5, 1.0, 2.0, 4.0]


def test_failing_scheduler_abandons_ticket():
    class BrokenScheduler(ManualScheduler):
        def call_later(self, delay, callback):
            raise RuntimeError("no timers")

    coordinator = RetryCoordinator(BrokenScheduler(), max_attempts=3, base_delay_ms=100)
    ticket = coordinator.register("err_1", network_error("offline"))

    assert ticket.state is TicketState.ABANDONED
    assert len(coordinator) == 0


def test_active_returns_copies(coordinator):
    coordinator.register("err_1", network_error("offline"))
    snapshot = coordinator.active()
    snapshot[0].attempt = 99
    assert coordinator.get("err_1").attempt == 0


def test_readers_wait_for_attempt_bump_and_verdict(scheduler):
    seen_during_policy = []
    reader_results = []

    def policy(error, attempt, max_attempts):
        reader = threading.Thread(target=lambda: reader_results.append(coordinator.active()))
        reader.start()
        reader.join(timeout=0.05)
        # the reader is blocked until the verdict is recorded
        seen_during_policy.append(reader.is_alive())
        readers.append(reader)
        return attempt < max_attempts

    readers = []
    coordinator = RetryCoordinator(scheduler, max_attempts=3, base_delay_ms=100, policy=policy)
    coordinator.register("err_1", object())

    scheduler.advance(0.1)
    for reader in readers:
        reader.join(timeout=1.0)

    assert seen_during_policy == [True]
    assert [ticket.attempt for ticket in reader_results[0]] == [1]
