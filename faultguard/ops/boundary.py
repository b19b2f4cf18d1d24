"""
Caller-side helpers built on ErrorHandler: an error boundary for code blocks,
component-scoped handling with a retryable last operation, API status mapping
and per-field form errors.
"""
import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..common.classifier import DEFAULT_LOCALE, MESSAGES, field_value, status_of
from ..common.errors import (
    AppError,
    StructuredError,
    authentication_error,
    authorization_error,
    data_store_error,
    validation_error,
)
from .handler import ErrorHandler

logger = logging.getLogger(__name__)


class ErrorBoundary:
    """
    Context manager that catches a failure inside its block, routes it through
    the handler and suppresses it. The caller checks `has_error` / `error` to
    render a fallback.

        with ErrorBoundary(handler, level="section") as boundary:
            render_section()
        if boundary.has_error:
            render_fallback(boundary.error)
    """

    def __init__(
        self,
        handler: ErrorHandler,
        level: str = "component",
        on_error: Optional[Callable[[StructuredError], Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.handler = handler
        self.level = level
        self.on_error = on_error
        self.context = context or {}
        self.error: Optional[StructuredError] = None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def error_id(self) -> Optional[str]:
        return self.error.id if self.error else None

    def reset(self) -> None:
        self.error = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None or not issubclass(exc_type, Exception):
            return False

        self.error = self.handler.handle(
            exc,
            {
                "component": "ErrorBoundary",
                "action": "Component Error",
                "level": self.level,
                "error_boundary": True,
                **self.context,
            },
        )
        if self.on_error is not None:
            self.on_error(self.error)
        return True


def with_error_boundary(
    handler: ErrorHandler,
    fallback: Optional[Callable[[StructuredError], Any]] = None,
    level: str = "component",
):
    """
    Decorator form of ErrorBoundary: on failure the wrapped function returns
    fallback(error), or None without a fallback.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            boundary = ErrorBoundary(handler, level=level, context={"function": func.__qualname__})
            with boundary:
                return func(*args, **kwargs)
            return fallback(boundary.error) if fallback else None

        return wrapper

    return decorator


class ErrorScope:
    """
    Fault handling bound to one component. Remembers the current error and the
    last operation run through it, so the operation can be retried explicitly.
    """

    def __init__(
        self,
        handler: ErrorHandler,
        component: str = "UnknownComponent",
        enable_retry: bool = True,
        max_retries: int = 3,
        on_error: Optional[Callable[[StructuredError], Any]] = None,
    ):
        self.handler = handler
        self.component = component
        self.enable_retry = enable_retry
        self.max_retries = max_retries
        self.on_error = on_error
        self.current_error: Optional[StructuredError] = None
        self.retry_count = 0
        self._last_operation: Optional[Callable[[], Any]] = None

    @property
    def is_error(self) -> bool:
        return self.current_error is not None

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "total": len(self.handler.get_error_log()),
            "recent": self.handler.get_error_stats().recent_last_hour,
        }

    def clear_error(self) -> None:
        self.current_error = None
        self.retry_count = 0

    def handle(self, fault: Any, context: Optional[Dict[str, Any]] = None) -> StructuredError:
        error = self.handler.handle(fault, {"component": self.component, **(context or {})})
        self.current_error = error
        if self.on_error is not None:
            self.on_error(error)
        return error

    def run(self, operation: Callable[[], Any], context: Optional[Dict[str, Any]] = None) -> Any:
        """Run operation; on failure handle it and return None."""
        if self.enable_retry:
            self._last_operation = operation
        try:
            result = operation()
        except Exception as exc:
            self.handle(exc, {"action": "Async Operation", **(context or {})})
            return None
        if self.current_error is not None:
            self.clear_error()
        return result

    async def run_async(self, operation: Callable[[], Awaitable[Any]], context: Optional[Dict[str, Any]] = None) -> Any:
        if self.enable_retry:
            self._last_operation = operation
        try:
            result = await operation()
        except Exception as exc:
            self.handle(exc, {"action": "Async Operation", **(context or {})})
            return None
        if self.current_error is not None:
            self.clear_error()
        return result

    def _can_retry(self) -> bool:
        return self._last_operation is not None and self.enable_retry and self.retry_count < self.max_retries

    def retry_last_operation(self) -> None:
        if not self._can_retry():
            return
        operation = self._last_operation
        if inspect.iscoroutinefunction(operation):
            raise TypeError("last operation is a coroutine function; use retry_last_operation_async()")

        self.retry_count += 1
        attempt = self.retry_count
        try:
            operation()
        except Exception as exc:
            self.handle(exc, {"action": "Retry Operation", "retry_attempt": attempt})
            return
        self.clear_error()

    async def retry_last_operation_async(self) -> None:
        if not self._can_retry():
            return
        self.retry_count += 1
        attempt = self.retry_count
        try:
            result = self._last_operation()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self.handle(exc, {"action": "Retry Operation", "retry_attempt": attempt})
            return
        self.clear_error()


class ApiErrorScope(ErrorScope):
    """
    ErrorScope that maps HTTP-like failures onto the taxonomy before handling.
    `on_auth_expired` runs when a 401 is seen (e.g. to redirect to login).
    """

    def __init__(self, handler: ErrorHandler, on_auth_expired: Optional[Callable[[], Any]] = None, locale: Optional[str] = None, **kwargs):
        super().__init__(handler, **kwargs)
        self.on_auth_expired = on_auth_expired
        locale = locale or handler.presenter.config.locale
        self.messages = MESSAGES.get(locale, MESSAGES[DEFAULT_LOCALE])

    def classify(self, fault: Any) -> Any:
        """Translate a raw API failure into an AppError, or return it unchanged."""
        status = status_of(fault)
        message = field_value(fault, "message")
        if not isinstance(message, str) and isinstance(fault, BaseException):
            message = str(fault)

        if status == 401 or (isinstance(message, str) and "Unauthorized" in message):
            return authentication_error(self.messages["auth"], "AUTH_EXPIRED")
        if status == 403:
            return authorization_error(self.messages["forbidden"], "FORBIDDEN")
        if status in (400, 422):
            details = field_value(fault, "details")
            return validation_error(
                message if isinstance(message, str) and message else self.messages["invalid_data"],
                "VALIDATION_ERROR",
                details if isinstance(details, dict) else None,
            )
        if status is not None and status >= 500:
            return data_store_error(self.messages["server"], "SERVER_ERROR")
        return fault

    def handle_api_error(self, fault: Any, context: Optional[Dict[str, Any]] = None) -> StructuredError:
        mapped = self.classify(fault)
        if isinstance(mapped, AppError) and mapped.code == "AUTH_EXPIRED" and self.on_auth_expired is not None:
            self.on_auth_expired()
        return self.handle(mapped, {**(context or {}), "action": "API Call"})


class FormErrorScope(ErrorScope):
    """ErrorScope for one form; collects per-field messages from a fault's details."""

    def __init__(self, handler: ErrorHandler, form_name: str, **kwargs):
        kwargs.setdefault("component", f"Form_{form_name}")
        super().__init__(handler, **kwargs)
        self.form_name = form_name
        self.field_errors: Dict[str, str] = {}

    def set_field_error(self, field: str, message: str) -> None:
        self.field_errors[field] = message

    def clear_field_error(self, field: str) -> None:
        self.field_errors.pop(field, None)

    def clear_all_field_errors(self) -> None:
        self.field_errors = {}

    def handle_form_error(self, fault: Any, context: Optional[Dict[str, Any]] = None) -> StructuredError:
        details = field_value(fault, "details")
        if isinstance(details, dict):
            for field, message in details.items():
                self.set_field_error(field, str(message))

        return self.handle(fault, {"action": "Form Submission", "form_name": self.form_name, **(context or {})})
