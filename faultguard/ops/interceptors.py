"""
Adapter between the host runtime's ambient fault channels and the handler.

Uncaught exceptions arrive through sys.excepthook and threading.excepthook,
unhandled asyncio failures through the loop's exception handler. Previous hooks
keep running after ours.
"""
import asyncio
import logging
import sys
import threading
import traceback
from typing import Any, Callable, Dict, Optional

from ..interfaces import IFaultChannels

logger = logging.getLogger(__name__)


def source_location(tb) -> Dict[str, Any]:
    """url/line/column of the innermost frame of a traceback, if any."""
    if tb is None:
        return {}
    frames = traceback.extract_tb(tb)
    if not frames:
        return {}
    frame = frames[-1]
    location = {"url": frame.filename, "line": frame.lineno}
    column = getattr(frame, "colno", None)
    if column is not None:
        location["column"] = column
    return location


class HostFaultChannels(IFaultChannels):
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, include_threads: bool = True):
        self.loop = loop
        self.include_threads = include_threads
        self._on_uncaught: Optional[Callable] = None
        self._on_unhandled_async: Optional[Callable] = None
        self._previous_excepthook = None
        self._previous_threading_hook = None
        self._previous_loop_handler = None
        self.installed = False

    def subscribe(self, on_uncaught, on_unhandled_async) -> None:
        if self.installed:
            self.unsubscribe()

        self._on_uncaught = on_uncaught
        self._on_unhandled_async = on_unhandled_async

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook

        if self.include_threads:
            self._previous_threading_hook = threading.excepthook
            threading.excepthook = self._threading_excepthook

        if self.loop is not None:
            self._previous_loop_handler = self.loop.get_exception_handler()
            self.loop.set_exception_handler(self._loop_exception_handler)

        self.installed = True

    def unsubscribe(self) -> None:
        if not self.installed:
            return
        if sys.excepthook == self._excepthook:
            sys.excepthook = self._previous_excepthook
        if self.include_threads and threading.excepthook == self._threading_excepthook:
            threading.excepthook = self._previous_threading_hook
        if self.loop is not None:
            self.loop.set_exception_handler(self._previous_loop_handler)
        self.installed = False

    def _notify(self, callback: Optional[Callable], fault: Any, context: Dict[str, Any]) -> None:
        if callback is None:
            return
        try:
            callback(fault, context)
        except Exception as exc:
            logger.debug("Fault channel callback failed: %s", exc)

    def _excepthook(self, exc_type, exc_value, exc_traceback) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            self._notify(self._on_uncaught, exc_value, source_location(exc_traceback))
        if self._previous_excepthook is not None:
            self._previous_excepthook(exc_type, exc_value, exc_traceback)

    def _threading_excepthook(self, args) -> None:
        if args.exc_type is not SystemExit:
            context = source_location(args.exc_traceback)
            if args.thread is not None:
                context["thread"] = args.thread.name
            self._notify(self._on_uncaught, args.exc_value, context)
        if self._previous_threading_hook is not None:
            self._previous_threading_hook(args)

    def _loop_exception_handler(self, loop, context: Dict[str, Any]) -> None:
        fault = context.get("exception") or context.get("message")
        extra: Dict[str, Any] = {}
        task = context.get("task") or context.get("future")
        if task is not None:
            extra["task"] = repr(task)
        if context.get("message"):
            extra["loop_message"] = context["message"]
        self._notify(self._on_unhandled_async, fault, extra)

        if self._previous_loop_handler is not None:
            self._previous_loop_handler(loop, context)
        else:
            loop.default_exception_handler(context)
