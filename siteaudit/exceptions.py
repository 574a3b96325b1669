"""Exception hierarchy for the crawl-and-render pipeline.

Only :class:`SeedResolutionError` is fatal to an audit. Everything else is
caught at the scheduler or renderer boundary and turned into an error
PageRecord, a degraded field, or zero discovered links.
"""

import asyncio
import re
from typing import Optional

from playwright.async_api import TimeoutError as PlaywrightTimeout

_CONNECTION_ERROR_RE = re.compile(
    r"Target page, context or browser has been closed"
    r"|Target closed"
    r"|Browser has been closed"
    r"|Connection closed"
    r"|ECONNRESET"
    r"|socket hang up"
    r"|disconnected",
    re.IGNORECASE,
)


class CrawlError(Exception):
    """Base class for every error raised by the crawl pipeline."""


class SeedResolutionError(CrawlError):
    """The entry URL could not be resolved, so no crawl context exists."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Could not resolve seed URL {url}: {reason}")
        self.url = url
        self.reason = reason


class RenderError(CrawlError):
    """A browser render of a single page failed."""


class SessionError(RenderError):
    """The browser session was lost or could not be launched."""


class RenderTimeoutError(SessionError):
    """A navigation, evaluation or whole render exceeded its timeout."""


class ContentTypeError(RenderError):
    """The URL does not serve HTML and cannot be rendered."""

    def __init__(self, url: str, content_type: str, status_code: int = 0) -> None:
        super().__init__(f"Not HTML ({content_type or 'unknown'}): {url}")
        self.url = url
        self.content_type = content_type
        self.status_code = status_code


class ExtractionStepError(CrawlError):
    """A single in-page extraction step failed."""

    def __init__(self, step: str, cause: Optional[BaseException] = None) -> None:
        message = f"Extraction step '{step}' failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.step = step
        self.cause = cause


class LinkDiscoveryError(CrawlError):
    """Links could not be discovered for a page."""


def is_connection_error(exc: BaseException) -> bool:
    """Return True if *exc* means the browser session is no longer usable."""
    if isinstance(exc, SessionError):
        return True
    if isinstance(exc, (asyncio.TimeoutError, PlaywrightTimeout, ConnectionError)):
        return True
    return bool(_CONNECTION_ERROR_RE.search(str(exc)))


def as_session_error(exc: BaseException, action: str) -> SessionError:
    """Wrap a driver exception into the matching SessionError subclass."""
    if isinstance(exc, SessionError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, PlaywrightTimeout)):
        return RenderTimeoutError(f"Timed out during {action}")
    return SessionError(f"Browser session lost during {action}: {exc}")
