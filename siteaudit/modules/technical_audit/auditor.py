"""End-to-end site audit: resolve, crawl, render, consolidate."""

import asyncio
import logging
import time
from typing import Any, Optional

from siteaudit.config import CrawlConfig
from siteaudit.exceptions import SeedResolutionError
from siteaudit.models.audit import AuditResult
from siteaudit.models.crawl import CrawlContext
from siteaudit.modules.issues.consolidator import IssueConsolidator
from siteaudit.modules.issues.site_wide import site_wide_findings
from siteaudit.modules.technical_audit.crawler import CrawlScheduler
from siteaudit.modules.technical_audit.diagnostics import analyze_crawl
from siteaudit.modules.technical_audit.http_client import HttpClient
from siteaudit.modules.technical_audit.renderer import PageExtractor
from siteaudit.modules.technical_audit.session import BrowserSessionManager
from siteaudit.utils.urls import base_url, normalize_url

logger = logging.getLogger(__name__)


class SiteAuditor:
    """Orchestrate a full crawl-and-render audit for one site.

    Usage::

        auditor = SiteAuditor(load_config())
        result = await auditor.run_full_audit("https://example.com")
    """

    def __init__(
        self,
        config: CrawlConfig,
        driver: Optional[Any] = None,
        http_client: Optional[HttpClient] = None,
    ) -> None:
        self._config = config
        self._driver = driver
        self._http = http_client

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run_full_audit(self, url: Optional[str] = None) -> AuditResult:
        """Run every stage and return the audit result.

        Raises:
            SeedResolutionError: If the entry URL cannot be resolved.
            ValueError: If no entry URL is given or configured.
        """
        seed = url or self._config.entry_url
        if not seed:
            raise ValueError("No entry URL given and none configured.")
        seed = normalize_url(seed)

        owns_http = self._http is None
        http = self._http or HttpClient(
            user_agent=self._config.user_agent,
            request_timeout=self._config.request_timeout,
            max_redirects=self._config.max_redirects,
        )
        try:
            return await self._audit(seed, http)
        finally:
            if owns_http:
                await http.close()

    async def _audit(self, seed: str, http: HttpClient) -> AuditResult:
        config = self._config
        start = time.monotonic()
        logger.info("Starting site audit for %s", seed)

        # --- Stage 1: Seed resolution ---
        redirect = await http.follow_redirects(seed)
        final_url = normalize_url(redirect.final_url)
        context = CrawlContext.from_url(final_url)
        if not context.preferred_host:
            raise SeedResolutionError(seed, f"no host in resolved URL {final_url}")
        origin = base_url(final_url)

        # --- Stage 2: robots.txt and sitemap ---
        robots_data, sitemap_data = await asyncio.gather(
            http.check_robots_txt(origin),
            http.check_sitemap(origin),
        )
        hints = robots_data.get("sitemaps", [])
        if hints and not sitemap_data.get("found"):
            sitemap_data = await http.check_sitemap(origin, hints)

        # --- Stage 3: Crawl ---
        consolidator = IssueConsolidator()
        session = None
        if config.browser_enabled:
            session = BrowserSessionManager.from_config(config, driver=self._driver)
        else:
            logger.info("Browser rendering disabled; using plain HTTP for every page")

        try:
            extractor = PageExtractor(session, http, context, config)
            scheduler = CrawlScheduler(
                extractor,
                context,
                max_pages=config.max_pages,
                max_depth=config.max_depth,
                max_links_per_page=config.max_links_per_page,
                link_discoverer=http.discover_links,
                consolidator=consolidator,
                max_duration=config.max_duration,
                disallowed_paths=robots_data.get("disallowed_paths", []) if config.respect_robots else (),
            )
            pages = await scheduler.crawl(final_url)
        finally:
            if session is not None:
                await session.close()

        # --- Stage 4: Site-wide findings ---
        consolidator.consolidate_all(
            site_wide_findings(
                pages,
                robots_data,
                sitemap_data,
                site_url=final_url,
                redirect_chain=redirect.chain,
                context=context,
                linked=scheduler.linked,
                crawl_complete=scheduler.complete,
            )
        )
        issues = consolidator.finalize()

        # --- Stage 5: Diagnostics ---
        elapsed = round(time.monotonic() - start, 2)
        diagnostics = analyze_crawl(pages, elapsed)

        logger.info(
            "Audit complete for %s: %d pages, %d issues in %.1fs",
            context.preferred_host, len(pages), len(issues), elapsed,
        )
        return AuditResult(
            seed_url=seed,
            final_url=final_url,
            redirect_chain=redirect.chain,
            context=context,
            pages=tuple(pages),
            issues=issues,
            diagnostics=diagnostics,
            robots_data=robots_data,
            sitemap_data=sitemap_data,
            elapsed_seconds=elapsed,
        )

