import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..common.classifier import should_retry
from ..common.errors import utc_now
from ..interfaces import IScheduler

logger = logging.getLogger(__name__)


class TicketState(Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    ABANDONED = "abandoned"


@dataclass
class RetryTicket:
    error_id: str
    error: Any = field(repr=False)
    attempt: int = 0
    first_seen_at: datetime = field(default_factory=utc_now)
    state: TicketState = TicketState.PENDING


class RetryCoordinator:
    """
    Tracks retry eligibility per fault. Each timer fire bumps the attempt and
    re-runs the eligibility policy; an eligible ticket is re-armed with
    exponential backoff, an ineligible one is discarded.

    The coordinator decides whether and when a fault may be retried. It never
    re-invokes the failing operation.
    """

    def __init__(
        self,
        scheduler: IScheduler,
        max_attempts: int,
        base_delay_ms: float,
        policy: Callable[[Any, int, int], bool] = should_retry,
    ):
        self.scheduler = scheduler
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.policy = policy
        self._tickets: Dict[str, RetryTicket] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._tickets)

    def __contains__(self, error_id: str) -> bool:
        return error_id in self._tickets

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before the re-check that follows `attempt`."""
        if attempt <= 0:
            return self.base_delay_ms / 1000.0
        return self.base_delay_ms * (2 ** (attempt - 1)) / 1000.0

    def register(self, error_id: str, error: Any) -> RetryTicket:
        with self._lock:
            existing = self._tickets.get(error_id)
            if existing is not None:
                return existing
            ticket = RetryTicket(error_id=error_id, error=error)
            self._tickets[error_id] = ticket

        self._arm(ticket)
        logger.debug("Retry ticket %s registered", error_id)
        return ticket

    def get(self, error_id: str) -> Optional[RetryTicket]:
        with self._lock:
            ticket = self._tickets.get(error_id)
            return replace(ticket) if ticket else None

    def active(self) -> List[RetryTicket]:
        with self._lock:
            return [replace(ticket) for ticket in self._tickets.values()]

    def _arm(self, ticket: RetryTicket) -> None:
        delay = self.delay_for(ticket.attempt)
        try:
            self.scheduler.call_later(delay, lambda: self._on_timer(ticket.error_id))
        except Exception as exc:
            self._abandon(ticket, f"scheduler failed: {exc}")
            return
        with self._lock:
            if ticket.state is not TicketState.ABANDONED:
                ticket.state = TicketState.SCHEDULED

    def _abandon(self, ticket: RetryTicket, reason: str) -> None:
        with self._lock:
            ticket.state = TicketState.ABANDONED
            self._tickets.pop(ticket.error_id, None)
        logger.debug("Retry ticket %s abandoned after attempt %d: %s", ticket.error_id, ticket.attempt, reason)

    def _on_timer(self, error_id: str) -> None:
        # attempt bump and verdict form one step under the lock
        with self._lock:
            ticket = self._tickets.get(error_id)
            if ticket is None:
                return
            ticket.attempt += 1
            eligible = self.policy(ticket.error, ticket.attempt, self.max_attempts)
            if not eligible:
                ticket.state = TicketState.ABANDONED
                self._tickets.pop(error_id, None)
            attempt = ticket.attempt

        if not eligible:
            reason = "attempts exhausted" if attempt >= self.max_attempts else "no longer retryable"
            logger.debug("Retry ticket %s abandoned after attempt %d: %s", error_id, attempt, reason)
            return

        logger.debug(
            "Retry ticket %s still eligible at attempt %d, next check in %.2fs",
            error_id,
            attempt,
            self.delay_for(attempt),
        )
        self._arm(ticket)
