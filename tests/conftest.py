import pytest

from faultguard.config import ErrorHandlerConfig, FeedbackConfig
from faultguard.interfaces import IFaultChannels, IFeedbackSurface
from faultguard.ops.handler import ErrorHandler
from faultguard.ops.scheduling import ManualScheduler


class RecordingFeedbackSurface(IFeedbackSurface):
    def __init__(self, should_raise: bool = False):
        self.calls = []
        self.should_raise = should_raise

    def show(self, message, description=None, duration=5000):
        self.calls.append({"message": message, "description": description, "duration": duration})
        if self.should_raise:
            raise RuntimeError("surface unavailable")


class StubResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code


class StubHttpClient:
    def __init__(self, response=None, exception=None):
        self.response = response or StubResponse()
        self.exception = exception
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exception:
            raise self.exception
        return self.response


class FakeFaultChannels(IFaultChannels):
    def __init__(self):
        self.on_uncaught = None
        self.on_unhandled_async = None
        self.unsubscribed = False

    def subscribe(self, on_uncaught, on_unhandled_async):
        self.on_uncaught = on_uncaught
        self.on_unhandled_async = on_unhandled_async

    def unsubscribe(self):
        self.unsubscribed = True


@pytest.fixture
def handler_config():
    return ErrorHandlerConfig(
        enable_logging=True,
        enable_reporting=False,
        max_log_entries=50,
        enable_user_feedback=True,
        enable_retry=True,
        retry_attempts=2,
        retry_delay=100,
    )


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def feedback():
    return RecordingFeedbackSurface()


@pytest.fixture
def make_handler(handler_config, scheduler, feedback):
    def _make(**overrides):
        config = overrides.pop("config", handler_config)
        options = {
            "scheduler": scheduler,
            "feedback_surface": feedback,
            "feedback_config": FeedbackConfig(locale="en"),
        }
        options.update(overrides)
        return ErrorHandler(config, **options)

    return _make


@pytest.fixture
def handler(make_handler):
    return make_handler()
