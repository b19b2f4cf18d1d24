import random
import string
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import total_ordering
from typing import Any, Dict, Optional

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_error_id() -> str:
    """
    err_<epoch-millis>_<9 base36 chars>. Collisions inside the same millisecond
    are possible but unlikely.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"err_{int(time.time() * 1000)}_{suffix}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_stack(exc: BaseException) -> Optional[str]:
    if exc.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


class Kind(Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NETWORK = "network"
    DATA_STORE = "data_store"
    BUSINESS_LOGIC = "business_logic"
    UNKNOWN = "unknown"


_SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


@total_ordering
class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    @property
    def is_durable(self) -> bool:
        return self.rank >= Severity.HIGH.rank


class AppError(Exception):
    """
    Domain-specific error that carries kind + severity metadata so the handler
    can decide how to log, present and retry it.
    """

    def __init__(
        self,
        message: str,
        kind: Kind = Kind.UNKNOWN,
        severity: Severity = Severity.MEDIUM,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self._id = new_error_id()
        self._kind = kind
        self._severity = severity
        self.message = message
        self.code = code
        self.details = details
        self.timestamp = utc_now()

    @property
    def id(self) -> str:
        return self._id

    @property
    def kind(self) -> Kind:
        return self._kind

    @property
    def severity(self) -> Severity:
        return self._severity

    def __str__(self) -> str:
        base = super().__str__()
        return f"[{self.severity.name}/{self.kind.name}] {base}"

    def to_dict(self, url: str = "", user_agent: str = "") -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "stack": format_stack(self),
            "context": {"url": url, "userAgent": user_agent},
        }


def validation_error(message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError(message, Kind.VALIDATION, Severity.LOW, code, details)


def authentication_error(message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError(message, Kind.AUTHENTICATION, Severity.HIGH, code, details)


def authorization_error(message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError(message, Kind.AUTHORIZATION, Severity.HIGH, code, details)


def network_error(message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError(message, Kind.NETWORK, Severity.MEDIUM, code, details)


def data_store_error(message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError(message, Kind.DATA_STORE, Severity.HIGH, code, details)


def business_logic_error(message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError(message, Kind.BUSINESS_LOGIC, Severity.MEDIUM, code, details)


@dataclass(frozen=True)
class StructuredError:
    """
    Normalized, serializable record of one handled fault.
    """

    id: str
    kind: Kind
    severity: Severity
    message: str
    timestamp: datetime
    context: Dict[str, Any] = field(default_factory=dict)
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    stack: Optional[str] = None
    original_error: Any = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "stack": self.stack,
            "context": {
                "url": self.context.get("url", ""),
                "userAgent": self.context.get("user_agent", ""),
            },
        }


@dataclass
class LogEntry:
    error: StructuredError
    handled: bool = True
    reported_to_service: bool = False

    @property
    def id(self) -> str:
        return self.error.id

    @property
    def kind(self) -> Kind:
        return self.error.kind

    @property
    def severity(self) -> Severity:
        return self.error.severity

    @property
    def timestamp(self) -> datetime:
        return self.error.timestamp

    def to_dict(self) -> Dict[str, Any]:
        record = self.error.to_dict()
        record["context"] = {**self.error.context}
        record["userId"] = self.error.user_id
        record["handled"] = self.handled
        record["reportedToService"] = self.reported_to_service
        return record
