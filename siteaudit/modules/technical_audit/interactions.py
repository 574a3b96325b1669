"""Content expansion: surface lazy-loaded and collapsed content before extraction."""

import asyncio
import logging
from typing import Any

from siteaudit.exceptions import SessionError
from siteaudit.modules.technical_audit.scripts import (
    CLICK_LOAD_MORE_SCRIPT,
    EXPAND_ACCORDIONS_SCRIPT,
    REVEAL_TABS_SCRIPT,
    SCROLL_SCRIPT,
)

logger = logging.getLogger(__name__)


class ContentExpander:
    """Bounded routine of scrolls and clicks run against a rendered page.

    Every round re-checks session health first; a lost session raises
    SessionError and aborts the render. A round whose script merely throws
    is logged and counted as having done nothing.
    """

    def __init__(
        self,
        session: Any,
        scroll_rounds: int = 3,
        scroll_wait_ms: int = 1000,
        load_more_rounds: int = 3,
        load_more_wait_ms: int = 2000,
        tab_limit: int = 5,
        tab_wait_ms: int = 1500,
        accordion_rounds: int = 2,
        accordion_limit: int = 10,
        accordion_wait_ms: int = 1500,
        final_scroll_wait_ms: int = 2000,
    ) -> None:
        self._session = session
        self._scroll_rounds = scroll_rounds
        self._scroll_wait_ms = scroll_wait_ms
        self._load_more_rounds = load_more_rounds
        self._load_more_wait_ms = load_more_wait_ms
        self._tab_limit = tab_limit
        self._tab_wait_ms = tab_wait_ms
        self._accordion_rounds = accordion_rounds
        self._accordion_limit = accordion_limit
        self._accordion_wait_ms = accordion_wait_ms
        self._final_scroll_wait_ms = final_scroll_wait_ms

    @classmethod
    def from_config(cls, session: Any, config: Any) -> "ContentExpander":
        return cls(
            session,
            scroll_rounds=config.scroll_rounds,
            scroll_wait_ms=config.scroll_wait_ms,
            load_more_rounds=config.load_more_rounds,
            load_more_wait_ms=config.load_more_wait_ms,
            tab_limit=config.tab_limit,
            tab_wait_ms=config.tab_wait_ms,
            accordion_rounds=config.accordion_rounds,
            accordion_limit=config.accordion_limit,
            accordion_wait_ms=config.accordion_wait_ms,
            final_scroll_wait_ms=config.final_scroll_wait_ms,
        )

    async def expand(self, page: Any) -> dict[str, int]:
        """Run every expansion round against *page*.

        Returns:
            Dict with scrolls, load_more_clicks, tabs and accordions counts.

        Raises:
            SessionError: If the browser session is lost between rounds.
        """
        stats = {"scrolls": 0, "load_more_clicks": 0, "tabs": 0, "accordions": 0}

        for i in range(self._scroll_rounds):
            await self._step(page, SCROLL_SCRIPT, None, f"scroll round {i + 1}")
            stats["scrolls"] += 1
            await self._pause(self._scroll_wait_ms)

        for i in range(self._load_more_rounds):
            clicked = await self._step(page, CLICK_LOAD_MORE_SCRIPT, None, f"load-more round {i + 1}")
            if not clicked:
                break
            stats["load_more_clicks"] += clicked
            await self._pause(self._load_more_wait_ms)

        if self._tab_limit > 0:
            stats["tabs"] = await self._step(page, REVEAL_TABS_SCRIPT, self._tab_limit, "tab reveal")
            if stats["tabs"]:
                await self._pause(self._tab_wait_ms)

        for i in range(self._accordion_rounds):
            clicked = await self._step(
                page, EXPAND_ACCORDIONS_SCRIPT, self._accordion_limit, f"accordion round {i + 1}"
            )
            if not clicked:
                break
            stats["accordions"] += clicked
            await self._pause(self._accordion_wait_ms)

        await self._step(page, SCROLL_SCRIPT, None, "final scroll")
        await self._pause(self._final_scroll_wait_ms)

        logger.debug("Content expansion: %s", stats)
        return stats

    async def _step(self, page: Any, script: str, arg: Any, action: str) -> int:
        await self._session.require_healthy(action)
        try:
            result = await self._session.evaluate(page, script, arg, action=action)
        except SessionError:
            raise
        except Exception as exc:
            logger.warning("Content expansion step '%s' failed: %s", action, exc)
            return 0
        try:
            return int(result or 0)
        except (TypeError, ValueError):
            return 0

    @staticmethod
    async def _pause(wait_ms: int) -> None:
        if wait_ms > 0:
            await asyncio.sleep(wait_ms / 1000)
