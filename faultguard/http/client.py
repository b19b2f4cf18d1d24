from typing import Optional, Tuple

import requests

from faultguard.interfaces import IHttpClient


class RequestsHttpClient(IHttpClient):
    """
    Thin adapter over requests.Session that satisfies IHttpClient and applies a
    default (connect, read) timeout to every call.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: Tuple[float, float] = (5.0, 10.0)):
        self.session = session or requests.Session()
        self.timeout = timeout

    def request(self, method: str, url: str, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return self.session.request(method=method, url=url, **kwargs)

    def close(self):
        self.session.close()
