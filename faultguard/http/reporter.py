import logging
from typing import Any, Dict

from ..common.errors import StructuredError, utc_now
from ..interfaces import IHttpClient

logger = logging.getLogger(__name__)


def build_report_payload(error: StructuredError) -> Dict[str, Any]:
    """
    Body sent to the reporting sink: the serialized error plus where and when
    it was reported.
    """
    envelope = error.to_dict()
    return {
        "error": envelope,
        "userAgent": envelope["context"]["userAgent"],
        "url": envelope["context"]["url"],
        "timestamp": utc_now().isoformat(),
    }


class ErrorReporter:
    """
    Best-effort client for the remote reporting sink. `send` never raises:
    it returns True on a 2xx response and False on anything else.
    """

    def __init__(self, client: IHttpClient, endpoint: str):
        self.client = client
        self.endpoint = endpoint

    def send(self, error: StructuredError) -> bool:
        try:
            payload = build_report_payload(error)
            response = self.client.request(
                "POST",
                self.endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except Exception as exc:
            logger.debug("Failed to report error %s: %s", error.id, exc)
            return False

        status = getattr(response, "status_code", None)
        if isinstance(status, int) and 200 <= status < 300:
            return True

        logger.debug("Reporting sink rejected error %s with status %s", error.id, status)
        return False
