import platform
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional

DEFAULT_USER_AGENT = f"faultguard/0.1 Python/{platform.python_version()} ({platform.system()})"


@dataclass(frozen=True)
class OccurrenceSite:
    """Where a fault was observed: the request URL and the client identity."""

    url: str = ""
    user_agent: str = DEFAULT_USER_AGENT


_current_site: ContextVar[Optional[OccurrenceSite]] = ContextVar("faultguard_site", default=None)


def current_site() -> OccurrenceSite:
    return _current_site.get() or OccurrenceSite()


@contextmanager
def bind_site(url: str, user_agent: Optional[str] = None) -> Iterator[OccurrenceSite]:
    """
    Bind the occurrence site for the current task/thread. Faults extracted
    inside the block carry this url/user agent in their context.
    """
    site = OccurrenceSite(url=url, user_agent=user_agent or DEFAULT_USER_AGENT)
    token = _current_site.set(site)
    try:
        yield site
    finally:
        _current_site.reset(token)
