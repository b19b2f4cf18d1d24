import asyncio
import functools
import inspect
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from ..common.classifier import UNKNOWN_MESSAGE, extract_error_info, should_retry
from ..common.errors import Kind, LogEntry, Severity, StructuredError, new_error_id, utc_now
from ..config import AppConfig, ErrorHandlerConfig, FeedbackConfig
from ..http.client import RequestsHttpClient
from ..http.reporter import ErrorReporter
from ..interfaces import IFaultChannels, IFeedbackSurface, IHttpClient, IScheduler
from .feedback import FeedbackPresenter, LoggingFeedbackSurface
from .interceptors import HostFaultChannels
from .log_store import BoundedErrorLog, ErrorStats
from .logger import SEVERITY_LEVELS, SEVERITY_MARKERS
from .retry import RetryCoordinator, RetryTicket
from .scheduling import AsyncioScheduler, ThreadScheduler

logger = logging.getLogger(__name__)

GLOBAL_COMPONENT = "Global"
UNCAUGHT_ACTION = "Uncaught Error"
UNHANDLED_ASYNC_ACTION = "Unhandled Rejection"


def default_scheduler() -> IScheduler:
    try:
        return AsyncioScheduler(asyncio.get_running_loop())
    except RuntimeError:
        return ThreadScheduler()


class ErrorHandler:
    """
    Central entry point for faults. `handle` normalizes a fault and then, in
    order, logs it, dispatches a report, presents feedback and registers it for
    retry, each step gated by the config.

    `handle` never raises: a failing collaborator is logged at debug level and
    skipped. Instances share no state with each other.
    """

    def __init__(
        self,
        config: Optional[ErrorHandlerConfig] = None,
        *,
        scheduler: Optional[IScheduler] = None,
        feedback_surface: Optional[IFeedbackSurface] = None,
        feedback_config: Optional[FeedbackConfig] = None,
        http_client: Optional[IHttpClient] = None,
        fault_channels: Optional[IFaultChannels] = None,
        dev_mode: bool = False,
    ):
        self.config = config or ErrorHandlerConfig()
        self.dev_mode = dev_mode
        self.scheduler = scheduler or default_scheduler()
        self.presenter = FeedbackPresenter(feedback_surface or LoggingFeedbackSurface(), feedback_config)
        self._log = BoundedErrorLog(self.config.max_log_entries)
        self.retries = RetryCoordinator(
            self.scheduler,
            max_attempts=self.config.retry_attempts,
            base_delay_ms=self.config.retry_delay,
        )

        self.reporter: Optional[ErrorReporter] = None
        if self.config.reporting_endpoint:
            self.reporter = ErrorReporter(http_client or RequestsHttpClient(), self.config.reporting_endpoint)

        self.fault_channels = fault_channels
        if fault_channels is not None:
            fault_channels.subscribe(self._on_uncaught, self._on_unhandled_async)

    # -- main entry point -------------------------------------------------

    def handle(self, fault: Any, context: Optional[Dict[str, Any]] = None) -> StructuredError:
        error = self._process(fault, context)

        entry: Optional[LogEntry] = None
        if self.config.enable_logging:
            entry = self._guard("log", self._log_error, error)

        if self.config.enable_reporting and self.reporter is not None:
            self._guard("report", self._dispatch_report, error, entry)

        if self.config.enable_user_feedback:
            self._guard("feedback", self.presenter.present, error, fault)

        if self.config.enable_retry:
            self._guard("retry", self._queue_retry, error, fault)

        return error

    def _guard(self, step: str, fn: Callable, *args) -> Any:
        try:
            return fn(*args)
        except Exception as exc:
            logger.debug("Error handler step '%s' failed: %s", step, exc)
            return None

    def _process(self, fault: Any, context: Optional[Dict[str, Any]]) -> StructuredError:
        try:
            error = extract_error_info(fault)
        except Exception as exc:
            logger.debug("Could not extract fault info: %s", exc)
            error = StructuredError(
                id=new_error_id(),
                kind=Kind.UNKNOWN,
                severity=Severity.MEDIUM,
                message=UNKNOWN_MESSAGE,
                timestamp=utc_now(),
                original_error=fault,
            )

        if not context:
            return error

        merged = {**error.context, **context}
        return replace(error, context=merged, user_id=context.get("user_id", error.user_id))

    def _log_error(self, error: StructuredError) -> LogEntry:
        entry = self._log.append(error)

        if self.dev_mode:
            level = SEVERITY_LEVELS.get(error.severity, logging.ERROR)
            logger.log(
                level,
                "%s Error [%s] - %s: %s | details=%s context=%s",
                SEVERITY_MARKERS.get(error.severity, "[?]"),
                error.kind.value,
                error.id,
                error.message,
                error.details,
                error.context,
            )
            if error.stack:
                logger.debug("Stack for %s:\n%s", error.id, error.stack)
        return entry

    def _dispatch_report(self, error: StructuredError, entry: Optional[LogEntry]) -> None:
        reporter = self.reporter

        def _delivered(ok: bool) -> None:
            if ok and entry is not None:
                self._log.mark_reported(entry)

        self.scheduler.spawn(lambda: reporter.send(error), on_done=_delivered)

    def _queue_retry(self, error: StructuredError, fault: Any) -> None:
        if should_retry(fault, 0, self.config.retry_attempts):
            self.retries.register(error.id, fault)

    # -- ambient channels -------------------------------------------------

    def _on_uncaught(self, fault: Any, location: Dict[str, Any]) -> None:
        self.handle(fault, {"component": GLOBAL_COMPONENT, "action": UNCAUGHT_ACTION, **location})

    def _on_unhandled_async(self, fault: Any, extra: Dict[str, Any]) -> None:
        self.handle(fault, {"component": GLOBAL_COMPONENT, "action": UNHANDLED_ASYNC_ACTION, **extra})

    # -- queries ----------------------------------------------------------

    def get_error_log(self) -> List[LogEntry]:
        return self._log.snapshot()

    def clear_error_log(self) -> None:
        self._log.clear()

    def get_error_stats(self) -> ErrorStats:
        return self._log.stats()

    def active_retries(self) -> List[RetryTicket]:
        return self.retries.active()

    # -- diagnostics ------------------------------------------------------

    def log_info(self, message: str, details: Optional[Dict[str, Any]] = None, context: Optional[Dict[str, Any]] = None) -> None:
        self._diagnostic(logging.INFO, "Info", message, details, context)

    def log_warning(self, message: str, details: Optional[Dict[str, Any]] = None, context: Optional[Dict[str, Any]] = None) -> None:
        self._diagnostic(logging.WARNING, "Warning", message, details, context)

    def _diagnostic(self, level: int, label: str, message: str, details, context) -> None:
        if not self.dev_mode:
            return
        try:
            logger.log(level, "%s: %s | details=%s context=%s", label, message, details, context)
        except Exception:
            pass

    # -- wrappers ---------------------------------------------------------

    def create_async_wrapper(self, fn: Callable, context: Optional[Dict[str, Any]] = None) -> Callable:
        """
        Wrap `fn` so its failures pass through `handle` before the original
        exception is re-raised unchanged. Coroutine functions get an async
        wrapper, anything else a sync one that also observes an awaitable result.
        """
        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await fn(*args, **kwargs)
                except Exception as exc:
                    self.handle(exc, context)
                    raise

            return async_wrapper

        async def _observe(awaitable):
            try:
                return await awaitable
            except Exception as exc:
                self.handle(exc, context)
                raise

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                result = fn(*args, **kwargs)
            except Exception as exc:
                self.handle(exc, context)
                raise
            # Lambdas, partials and objects with an async __call__ hand back an awaitable.
            if inspect.isawaitable(result):
                return _observe(result)
            return result

        return wrapper

    def close(self) -> None:
        if self.fault_channels is not None:
            self.fault_channels.unsubscribe()
        client = getattr(self.reporter, "client", None)
        if client is not None and hasattr(client, "close"):
            client.close()


def build_handler(
    config: AppConfig,
    *,
    scheduler: Optional[IScheduler] = None,
    feedback_surface: Optional[IFeedbackSurface] = None,
    fault_channels: Optional[IFaultChannels] = None,
    http_client: Optional[IHttpClient] = None,
    install_hooks: bool = True,
) -> ErrorHandler:
    """
    Build the process-wide handler from an AppConfig. Call once at startup and
    pass the instance to the code that needs it.

    Unless `fault_channels` is given or `install_hooks` is False, the handler
    subscribes to the process hooks (sys, threading and, when called inside a
    running loop, asyncio). `close()` restores them.
    """
    if fault_channels is None and install_hooks:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        fault_channels = HostFaultChannels(loop=loop)

    timeout = (config.transport.timeout.connect, config.transport.timeout.read)
    return ErrorHandler(
        config.handler,
        scheduler=scheduler,
        feedback_surface=feedback_surface,
        feedback_config=config.feedback,
        http_client=http_client or RequestsHttpClient(timeout=timeout),
        fault_channels=fault_channels,
        dev_mode=config.dev_mode,
    )
