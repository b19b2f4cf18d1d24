from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class IHttpClient(ABC):
    @abstractmethod
    def request(self, method: str, url: str, **kwargs) -> Any:
        pass


class IScheduler(ABC):
    """
    Deferred execution used for report dispatch and retry timers.
    """

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], Any]) -> Any:
        """Run callback after `delay` seconds."""
        pass

    @abstractmethod
    def spawn(self, task: Callable[[], Any], on_done: Optional[Callable[[Any], Any]] = None) -> None:
        """Run task in the background; on_done receives its result if it succeeds."""
        pass


class IFeedbackSurface(ABC):
    @abstractmethod
    def show(self, message: str, description: Optional[str] = None, duration: int = 5000) -> None:
        pass


class IFaultChannels(ABC):
    """
    Registration capability for the host's ambient fault channels.
    """

    @abstractmethod
    def subscribe(
        self,
        on_uncaught: Callable[[BaseException, dict], Any],
        on_unhandled_async: Callable[[Any, dict], Any],
    ) -> None:
        pass

    @abstractmethod
    def unsubscribe(self) -> None:
        pass
