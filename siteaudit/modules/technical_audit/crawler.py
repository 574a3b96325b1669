"""Breadth-first crawl scheduler.

Pops tasks from a FIFO frontier, hands each URL to the page extractor and
feeds the same-domain links it returns back into the frontier. Two sets of
canonical keys keep the crawl free of duplicates: ``visited`` (already
popped) and ``queued`` (waiting in the frontier).
"""

import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Iterable, Optional
from urllib.parse import urlsplit

from siteaudit.exceptions import LinkDiscoveryError
from siteaudit.models.crawl import CrawlContext, CrawlTask, PageRecord
from siteaudit.modules.issues.consolidator import IssueConsolidator
from siteaudit.modules.issues.rules import DEFAULT_PAGE_RULES, PageRule, evaluate_page
from siteaudit.utils.urls import canonicalize_url, extract_host, is_binary_asset, is_same_domain

logger = logging.getLogger(__name__)

LinkDiscoverer = Callable[[str], Awaitable[list[str]]]


class CrawlScheduler:
    """Single-flight BFS over one site.

    Usage::

        scheduler = CrawlScheduler(extractor, context, max_pages=20, max_depth=3)
        pages = await scheduler.crawl("https://example.com/")
    """

    def __init__(
        self,
        extractor: Any,
        context: CrawlContext,
        max_pages: int = 50,
        max_depth: int = 3,
        max_links_per_page: int = 20,
        link_discoverer: Optional[LinkDiscoverer] = None,
        consolidator: Optional[IssueConsolidator] = None,
        page_rules: Iterable[PageRule] = DEFAULT_PAGE_RULES,
        max_duration: Optional[float] = None,
        disallowed_paths: Iterable[str] = (),
    ) -> None:
        self._extractor = extractor
        self._context = context
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.max_links_per_page = max_links_per_page
        self._link_discoverer = link_discoverer
        self._consolidator = consolidator
        self._page_rules = tuple(page_rules)
        self._max_duration = max_duration
        self._disallowed = [p for p in disallowed_paths if p]

        self._frontier: deque[CrawlTask] = deque()
        self._visited: set[str] = set()
        self._queued: set[str] = set()
        self._pages: list[PageRecord] = []
        self._linked: set[str] = set()
        self._complete = False

    @property
    def visited(self) -> frozenset[str]:
        return frozenset(self._visited)

    @property
    def pages(self) -> list[PageRecord]:
        return list(self._pages)

    @property
    def linked(self) -> frozenset[str]:
        """Canonical keys of every same-site link seen on a crawled page."""
        return frozenset(self._linked)

    @property
    def complete(self) -> bool:
        """True when the last crawl reached every same-site page it found a link to."""
        return self._complete

    def canonical(self, url: str, base: Optional[str] = None) -> str:
        return canonicalize_url(url, self._context, base)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def crawl(self, seed: str) -> list[PageRecord]:
        """Crawl from *seed* and return PageRecords in BFS pop order."""
        self._frontier.clear()
        self._visited.clear()
        self._queued.clear()
        self._linked.clear()
        self._pages = []

        self._enqueue(self.canonical(seed), 0)
        start = time.monotonic()

        while self._frontier and len(self._pages) < self.max_pages:
            if self._max_duration is not None and time.monotonic() - start >= self._max_duration:
                logger.warning(
                    "Crawl time budget of %.0fs exhausted with %d URLs still queued",
                    self._max_duration, len(self._frontier),
                )
                break

            task = self._frontier.popleft()
            self._queued.discard(task.url)
            if task.depth > self.max_depth or task.url in self._visited:
                logger.debug("Discarding %s (depth=%d)", task.url, task.depth)
                continue
            if self._is_disallowed(task.url):
                logger.debug("Skipping disallowed URL: %s", task.url)
                continue
            self._visited.add(task.url)

            record = await self._extract(task)
            self._pages.append(record)
            logger.info(
                "[%d/%d] Crawled %s (status=%s depth=%d)",
                len(self._pages), self.max_pages, task.url, record.status_code, task.depth,
            )

            # A redirect target is the same page as far as the crawl is concerned.
            if record.final_url and record.final_url != task.url:
                self._visited.add(self.canonical(record.final_url))

            self._collect_findings(record)

            if task.depth < self.max_depth:
                links = await self._links_for(record)
                added = self._enqueue_links(links, record.final_url or task.url, task.depth + 1)
                if added:
                    logger.debug("Queued %d new URLs from %s", added, task.url)
            else:
                self._linked.update(self._same_site_keys(record.links, record.final_url or task.url))

        self._complete = all(
            key in self._visited or self._is_disallowed(key) or is_binary_asset(key)
            for key in self._linked | {t.url for t in self._frontier}
        )

        elapsed = time.monotonic() - start
        logger.info("Crawl complete: %d pages in %.1fs", len(self._pages), elapsed)
        return list(self._pages)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _extract(self, task: CrawlTask) -> PageRecord:
        try:
            return await self._extractor.extract(task.url, task.depth)
        except Exception as exc:
            logger.warning("Extraction failed for %s: %s", task.url, exc)
            return PageRecord.error_record(task.url, task.depth, str(exc) or type(exc).__name__)

    async def _links_for(self, record: PageRecord) -> list[str]:
        if record.links or record.error is not None or self._link_discoverer is None:
            return list(record.links)
        try:
            return await self._link_discoverer(record.final_url or record.url)
        except LinkDiscoveryError as exc:
            logger.warning("No links discovered for %s: %s", record.url, exc)
            return []

    def _collect_findings(self, record: PageRecord) -> None:
        if self._consolidator is None:
            return
        self._consolidator.consolidate_all(evaluate_page(record, self._page_rules))

    # ------------------------------------------------------------------
    # Frontier
    # ------------------------------------------------------------------

    def _enqueue(self, key: str, depth: int) -> bool:
        if key in self._visited or key in self._queued:
            return False
        self._frontier.append(CrawlTask(url=key, depth=depth))
        self._queued.add(key)
        return True

    def _same_site_keys(self, links: Iterable[str], base: str) -> list[str]:
        keys = []
        for link in links:
            key = self.canonical(link, base)
            if urlsplit(key).scheme not in ("http", "https"):
                continue
            if is_same_domain(extract_host(key), self._context.preferred_host):
                keys.append(key)
        return keys

    def _enqueue_links(self, links: Iterable[str], base: str, depth: int) -> int:
        added = 0
        for key in self._same_site_keys(links, base):
            self._linked.add(key)
            if added >= self.max_links_per_page or is_binary_asset(key):
                continue
            if self._enqueue(key, depth):
                added += 1
        return added

    def _is_disallowed(self, url: str) -> bool:
        """Check if *url* path is blocked by robots.txt."""
        if not self._disallowed:
            return False
        path = urlsplit(url).path or "/"
        return any(path.startswith(pattern) for pattern in self._disallowed)
