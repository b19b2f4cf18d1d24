import logging
from typing import Any, Optional

from ..common.classifier import get_user_friendly_message
from ..common.errors import StructuredError
from ..config import FeedbackConfig
from ..interfaces import IFeedbackSurface

logger = logging.getLogger(__name__)


class LoggingFeedbackSurface(IFeedbackSurface):
    """
    Default surface for processes without a UI: notices go to the log.
    """

    def __init__(self, name: str = "faultguard.feedback"):
        self.logger = logging.getLogger(name)

    def show(self, message: str, description: Optional[str] = None, duration: int = 5000) -> None:
        if description:
            self.logger.warning("%s: %s (%dms)", message, description, duration)
        else:
            self.logger.info("%s (%dms)", message, duration)


class FeedbackPresenter:
    """
    Chooses the message and presentation for a handled fault. High and critical
    severities get a durable titled notice, the rest a brief transient one.
    """

    def __init__(self, surface: IFeedbackSurface, config: Optional[FeedbackConfig] = None):
        self.surface = surface
        self.config = config or FeedbackConfig()

    def present(self, error: StructuredError, fault: Any = None) -> None:
        message = get_user_friendly_message(fault if fault is not None else error, self.config.locale)
        if error.severity.is_durable:
            self.surface.show(
                self.config.durable_title,
                description=message,
                duration=self.config.durable_duration,
            )
        else:
            self.surface.show(message, duration=self.config.transient_duration)
