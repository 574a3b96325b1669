"""Browser session management on top of Playwright.

One :class:`BrowserSessionManager` owns at most one browser process and one
reusable page for a whole crawl. Callers receive the page handle, never the
browser. The session moves through::

    UNINITIALIZED -> LAUNCHING -> READY -> {DEGRADED -> READY | DISCONNECTED} -> CLOSED

A ``disconnected`` event from the driver only moves READY to DEGRADED; the
state is settled after a debounce window by probing the page. Confirmed
failures tear everything down and the next :meth:`acquire_page` relaunches
from scratch. When a whole relaunch cycle fails the browser is marked
unavailable and stays that way until the session is closed.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

from playwright.async_api import async_playwright, Browser, Page

from siteaudit.exceptions import SessionError, as_session_error, is_connection_error
from siteaudit.modules.technical_audit.scripts import LIVENESS_SCRIPT

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    READY = "ready"
    DEGRADED = "degraded"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class PlaywrightDriver:
    """Launch Chromium and open pages through Playwright."""

    def __init__(
        self,
        headless: bool = True,
        launch_args: Optional[list[str]] = None,
        viewport: Optional[dict[str, int]] = None,
    ) -> None:
        self._headless = headless
        self._launch_args = launch_args or list(DEFAULT_LAUNCH_ARGS)
        self._viewport = viewport or dict(DEFAULT_VIEWPORT)
        self._playwright: Any = None

    async def launch(self) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self._headless,
            args=self._launch_args,
        )

    async def new_page(self, browser: Browser, user_agent: str) -> Page:
        return await browser.new_page(user_agent=user_agent, viewport=self._viewport)

    async def shutdown(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


# ---------------------------------------------------------------------------
# BrowserSessionManager
# ---------------------------------------------------------------------------

class BrowserSessionManager:
    """Single-flight owner of the crawl's browser session.

    Usage::

        async with BrowserSessionManager(user_agent="SiteAuditBot/1.0") as session:
            page = await session.acquire_page()
            if await session.verify_healthy():
                await page.goto(url)
    """

    def __init__(
        self,
        driver: Optional[Any] = None,
        user_agent: str = "SiteAuditBot/1.0",
        launch_attempts: int = 3,
        launch_backoff: float = 1.0,
        launch_timeout: float = 30.0,
        disconnect_debounce: float = 0.5,
        health_timeout: float = 5.0,
        evaluate_timeout: float = 15.0,
    ) -> None:
        self._driver = driver or PlaywrightDriver()
        self._user_agent = user_agent
        self._launch_attempts = max(1, launch_attempts)
        self._launch_backoff = launch_backoff
        self._launch_timeout = launch_timeout
        self._debounce = disconnect_debounce
        self._health_timeout = health_timeout
        self._evaluate_timeout = evaluate_timeout

        self._state = SessionState.UNINITIALIZED
        self._browser: Any = None
        self._page: Any = None
        self._page_usable = False
        self._generation = 0
        self._unavailable = False

    @classmethod
    def from_config(cls, config: Any, driver: Optional[Any] = None) -> "BrowserSessionManager":
        return cls(
            driver=driver or PlaywrightDriver(headless=config.headless),
            user_agent=config.user_agent,
            launch_attempts=config.launch_attempts,
            launch_backoff=config.launch_backoff,
            launch_timeout=config.navigation_timeout,
            disconnect_debounce=config.disconnect_debounce,
            health_timeout=config.health_timeout,
            evaluate_timeout=config.evaluate_timeout,
        )

    async def __aenter__(self) -> "BrowserSessionManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def available(self) -> bool:
        """False once the browser could not be launched, or after close()."""
        return not self._unavailable and self._state is not SessionState.CLOSED

    @property
    def generation(self) -> int:
        """Incremented every time a fresh page handle is issued."""
        return self._generation

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def acquire_page(self) -> Page:
        """Return a healthy page, reusing the current one when it answers a liveness check.

        Raises:
            SessionError: If the session is closed, or the browser cannot be
                launched within the configured attempts (then or in an
                earlier cycle).
        """
        if self._state is SessionState.CLOSED:
            raise SessionError("Browser session is closed")
        if self._unavailable:
            raise SessionError("Browser is unavailable after a failed launch cycle")
        if self._state is SessionState.DEGRADED:
            await self._resolve_degraded()
        if self._state is SessionState.READY and self._page_usable and await self._is_alive():
            return self._page
        await self._relaunch()
        return self._page

    async def verify_healthy(self) -> bool:
        """Cheap liveness check; call it again before every risky step."""
        if self._state is SessionState.DEGRADED:
            return await self._resolve_degraded()
        if self._state is not SessionState.READY:
            return False
        if await self._is_alive():
            return True
        logger.warning("Browser session failed its liveness check")
        self._state = SessionState.DISCONNECTED
        return False

    async def require_healthy(self, action: str) -> None:
        """Raise SessionError unless the session passes verify_healthy()."""
        if not await self.verify_healthy():
            raise SessionError(f"Browser session lost before {action}")

    async def run(self, awaitable: Any, action: str, timeout: Optional[float] = None) -> Any:
        """Await a driver call under a hard timeout.

        Connection-class failures and timeouts are raised as SessionError /
        RenderTimeoutError; any other exception propagates unchanged.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout or self._evaluate_timeout)
        except Exception as exc:
            if is_connection_error(exc):
                raise as_session_error(exc, action) from exc
            raise

    async def evaluate(self, page: Page, script: str, arg: Any = None, action: str = "evaluate") -> Any:
        """Evaluate *script* in *page* with the session's timeout discipline."""
        return await self.run(page.evaluate(script, arg), action)

    def mark_page_unusable(self) -> None:
        """Force the next acquire_page() to issue a fresh handle."""
        self._page_usable = False

    async def reset(self) -> None:
        """Tear the session down after a confirmed failure."""
        if self._state is SessionState.CLOSED:
            return
        await self._teardown()
        self._state = SessionState.DISCONNECTED

    async def close(self) -> None:
        """Close page, browser and driver. Safe to call more than once."""
        if self._state is SessionState.CLOSED:
            return
        await self._teardown()
        try:
            await self._driver.shutdown()
        except Exception as exc:
            logger.debug("Error shutting down browser driver: %s", exc)
        self._state = SessionState.CLOSED
        logger.info("Browser session closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_disconnected(self, browser: Any) -> None:
        if browser is not self._browser:
            return
        if self._state is SessionState.READY:
            logger.warning("Browser reported a disconnect; verifying")
            self._state = SessionState.DEGRADED

    async def _resolve_degraded(self) -> bool:
        if self._debounce > 0:
            await asyncio.sleep(self._debounce)
        if self._state is not SessionState.DEGRADED:
            return self._state is SessionState.READY
        if await self._is_alive():
            logger.info("Browser disconnect was transient; session is ready")
            self._state = SessionState.READY
            return True
        logger.warning("Browser disconnect confirmed")
        self._state = SessionState.DISCONNECTED
        return False

    async def _is_alive(self) -> bool:
        if self._browser is None or self._page is None:
            return False
        try:
            if not self._browser.is_connected():
                return False
            result = await asyncio.wait_for(
                self._page.evaluate(LIVENESS_SCRIPT), timeout=self._health_timeout
            )
        except Exception as exc:
            logger.debug("Liveness check failed: %s", exc)
            return False
        return result == 2

    async def _relaunch(self) -> None:
        await self._teardown()
        last_error: Optional[BaseException] = None
        for attempt in range(self._launch_attempts):
            self._state = SessionState.LAUNCHING
            try:
                await self._launch_once()
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Browser launch attempt %d/%d failed: %s",
                    attempt + 1, self._launch_attempts, exc,
                )
                await self._teardown()
                if attempt < self._launch_attempts - 1:
                    await asyncio.sleep(self._launch_backoff * (2 ** attempt))
                continue
            self._state = SessionState.READY
            return

        self._state = SessionState.DISCONNECTED
        self._unavailable = True
        logger.error(
            "Browser could not be launched after %d attempts; continuing without it",
            self._launch_attempts,
        )
        raise SessionError(
            f"Browser failed to launch after {self._launch_attempts} attempts: {last_error}"
        )

    async def _launch_once(self) -> None:
        browser = await asyncio.wait_for(self._driver.launch(), timeout=self._launch_timeout)
        self._browser = browser
        browser.on("disconnected", lambda *_: self._on_disconnected(browser))

        page = await asyncio.wait_for(
            self._driver.new_page(browser, self._user_agent), timeout=self._launch_timeout
        )
        self._page = page

        # One-page smoke test before declaring the session ready.
        await asyncio.wait_for(page.goto("about:blank"), timeout=self._health_timeout)
        result = await asyncio.wait_for(page.evaluate(LIVENESS_SCRIPT), timeout=self._health_timeout)
        if result != 2:
            raise SessionError(f"Browser smoke test returned {result!r}")

        self._page_usable = True
        self._generation += 1
        logger.info("Browser session ready (page generation %d)", self._generation)

    async def _teardown(self) -> None:
        page, browser = self._page, self._browser
        self._page = None
        self._browser = None
        self._page_usable = False
        if page is not None:
            try:
                await asyncio.wait_for(page.close(), timeout=self._health_timeout)
            except Exception as exc:
                logger.debug("Error closing page: %s", exc)
        if browser is not None:
            try:
                await asyncio.wait_for(browser.close(), timeout=self._health_timeout)
            except Exception as exc:
                logger.debug("Error closing browser: %s", exc)
