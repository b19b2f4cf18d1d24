"""
Normalization of arbitrary faults into StructuredError records, plus the
category predicates and the retry-eligibility rule.

All predicates are pure and tolerant: they accept None, exceptions, mappings
or arbitrary objects and never raise.
"""
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Dict, Optional

import requests

from .context import OccurrenceSite, current_site
from .errors import (
    AppError,
    Kind,
    Severity,
    StructuredError,
    format_stack,
    new_error_id,
    utc_now,
)

UNKNOWN_MESSAGE = "Unknown error occurred"

MESSAGES: Dict[str, Dict[str, str]] = {
    "es": {
        "network": "Problema de conexión. Por favor, verifica tu conexión a internet.",
        "validation": "Los datos ingresados no son válidos. Por favor, revisa la información.",
        "auth": "Tu sesión ha expirado. Por favor, inicia sesión nuevamente.",
        "generic": "Ha ocurrido un error inesperado. Por favor, intenta de nuevo.",
        "forbidden": "No tienes permisos para realizar esta acción.",
        "invalid_data": "Los datos enviados no son válidos.",
        "server": "Error del servidor. Por favor, intenta de nuevo más tarde.",
    },
    "en": {
        "network": "Connection problem. Please check your internet connection.",
        "validation": "The data you entered is not valid. Please review the information.",
        "auth": "Your session has expired. Please sign in again.",
        "generic": "An unexpected error occurred. Please try again.",
        "forbidden": "You do not have permission to perform this action.",
        "invalid_data": "The submitted data is not valid.",
        "server": "Server error. Please try again later.",
    },
}
DEFAULT_LOCALE = "es"

_NETWORK_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)
_AUTH_KINDS = (Kind.AUTHENTICATION, Kind.AUTHORIZATION)


def field_value(value: Any, name: str) -> Any:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get(name)
    try:
        return getattr(value, name, None)
    except Exception:
        return None


def _kind_of(value: Any) -> Optional[Kind]:
    kind = field_value(value, "kind")
    if isinstance(kind, Kind):
        return kind
    if isinstance(kind, str):
        try:
            return Kind(kind)
        except ValueError:
            return None
    return None


def _name_of(value: Any) -> Optional[str]:
    name = field_value(value, "name")
    if isinstance(name, str):
        return name
    if isinstance(value, BaseException):
        return type(value).__name__
    return None


def _message_of(value: Any) -> str:
    message = field_value(value, "message")
    if isinstance(message, str):
        return message
    if isinstance(value, BaseException):
        return str(value)
    return ""


def status_of(value: Any) -> Optional[int]:
    """HTTP-like status: `status`, then `status_code`, then `response.status_code`."""
    for candidate in (
        field_value(value, "status"),
        field_value(value, "status_code"),
        field_value(field_value(value, "response"), "status_code"),
    ):
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int):
            return candidate
    return None


def is_app_error(value: Any) -> bool:
    return isinstance(value, AppError)


def is_network_error(value: Any) -> bool:
    if isinstance(value, _NETWORK_EXCEPTIONS):
        return True
    message = _message_of(value)
    return (
        _kind_of(value) is Kind.NETWORK
        or _name_of(value) == "NetworkError"
        or field_value(value, "code") == "NETWORK_ERROR"
        or ("fetch" in message and "failed" in message)
    )


def is_validation_error(value: Any) -> bool:
    return (
        _kind_of(value) is Kind.VALIDATION
        or _name_of(value) == "ValidationError"
        or field_value(value, "code") == "VALIDATION_ERROR"
    )


def is_auth_error(value: Any) -> bool:
    return (
        _kind_of(value) in _AUTH_KINDS
        or "auth" in _message_of(value)
        or status_of(value) in (401, 403)
    )


def get_user_friendly_message(value: Any, locale: str = DEFAULT_LOCALE) -> str:
    if is_app_error(value):
        return value.message

    catalog = MESSAGES.get(locale, MESSAGES[DEFAULT_LOCALE])
    if is_network_error(value):
        return catalog["network"]
    if is_validation_error(value):
        return catalog["validation"]
    if is_auth_error(value):
        return catalog["auth"]
    return catalog["generic"]


def should_retry(value: Any, attempt: int, max_attempts: int) -> bool:
    """
    Single source of retry eligibility. Validation and auth faults are always
    fatal; network faults and 5xx statuses are retryable until max_attempts.
    """
    if attempt >= max_attempts:
        return False
    if is_validation_error(value) or is_auth_error(value):
        return False
    if is_network_error(value):
        return True
    status = status_of(value)
    return status is not None and 500 <= status < 600


def _base_context(site: OccurrenceSite) -> Dict[str, Any]:
    return {"url": site.url, "user_agent": site.user_agent}


def extract_error_info(value: Any, site: Optional[OccurrenceSite] = None) -> StructuredError:
    """
    Normalize any value into a StructuredError. The occurrence site is captured
    at extraction time, so re-extracting a known error refreshes its timestamp
    and location while keeping its id, kind, severity and message.
    """
    site = site or current_site()
    timestamp = utc_now()

    if isinstance(value, AppError):
        return StructuredError(
            id=value.id,
            kind=value.kind,
            severity=value.severity,
            message=value.message,
            code=value.code,
            details=value.details,
            timestamp=timestamp,
            stack=format_stack(value),
            context=_base_context(site),
            original_error=value,
        )

    if isinstance(value, StructuredError):
        return replace(value, timestamp=timestamp, context={**value.context, **_base_context(site)})

    if isinstance(value, BaseException):
        return StructuredError(
            id=new_error_id(),
            kind=Kind.UNKNOWN,
            severity=Severity.MEDIUM,
            message=str(value),
            timestamp=timestamp,
            stack=format_stack(value),
            context=_base_context(site),
            original_error=value,
        )

    message = field_value(value, "message")
    stack = field_value(value, "stack")
    if isinstance(message, str) and isinstance(stack, str):
        return StructuredError(
            id=new_error_id(),
            kind=Kind.UNKNOWN,
            severity=Severity.MEDIUM,
            message=message,
            timestamp=timestamp,
            stack=stack,
            context=_base_context(site),
            original_error=value,
        )

    if isinstance(value, str):
        details = None
    elif isinstance(value, Mapping):
        details = dict(value)
    elif value is None or isinstance(value, (int, float, bool)):
        details = None
    else:
        details = {"value": repr(value)}

    return StructuredError(
        id=new_error_id(),
        kind=Kind.UNKNOWN,
        severity=Severity.MEDIUM,
        message=value if isinstance(value, str) else UNKNOWN_MESSAGE,
        details=details,
        timestamp=timestamp,
        context=_base_context(site),
    )
