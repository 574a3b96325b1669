"""Page extraction: render one URL in the shared browser and build its PageRecord.

The render protocol runs a fixed sequence against a single page, checking
session health before each step:

1. navigate and wait for the initial document
2. capture the initial markup
3. install performance observers
4. expand lazy and collapsed content
5. capture the rendered markup
6. extract images, links, headings, structured data and metrics from the
   live document
7. poll the title until it stops changing
8. reset the page to ``about:blank``

Lost sessions and timeouts retry the whole render against a fresh session.
Content-level failures skip straight to a plain HTTP fetch.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional

import aiohttp

from siteaudit.exceptions import (
    ContentTypeError,
    ExtractionStepError,
    RenderError,
    RenderTimeoutError,
    SessionError,
)
from siteaudit.models.crawl import (
    CrawlContext,
    PageMetrics,
    PageRecord,
    RenderingStats,
    TechnicalChecks,
)
from siteaudit.modules.technical_audit.http_client import is_html_content_type
from siteaudit.modules.technical_audit.interactions import ContentExpander
from siteaudit.modules.technical_audit.scripts import (
    EXTRACT_HEADINGS_SCRIPT,
    EXTRACT_IMAGES_SCRIPT,
    EXTRACT_LINKS_SCRIPT,
    EXTRACT_STRUCTURED_DATA_SCRIPT,
    PERF_OBSERVER_INIT_SCRIPT,
    PERF_OBSERVER_SCRIPT,
    READ_METRICS_SCRIPT,
)
from siteaudit.utils.html_parsing import analyze_structured_data, parse_html, visible_text
from siteaudit.utils.text_processing import (
    calculate_rendering_percentage,
    clean_text,
    extract_keyword_phrases,
)
from siteaudit.utils.urls import extract_host, is_same_domain

logger = logging.getLogger(__name__)

BLANK_URL = "about:blank"


def _keyword_sources(title: str, h1: Iterable[str], meta: str, h2: Iterable[str]) -> list[str]:
    return [title, *h1, meta, *list(h2)[:5]]


def _count_missing_alt(images: list[dict[str, Any]]) -> int:
    return sum(
        1 for img in images
        if img.get("kind", "img") == "img" and not (img.get("alt") or "").strip()
    )


class PageExtractor:
    """Turn a URL into a :class:`PageRecord`, rendering it when possible.

    Usage::

        extractor = PageExtractor(session, http, context, config)
        record = await extractor.extract("https://example.com/", depth=0)
    """

    def __init__(
        self,
        session: Optional[Any],
        http: Any,
        context: CrawlContext,
        config: Any,
        expander: Optional[ContentExpander] = None,
        keyword_extractor: Callable[[Iterable[str]], list[str]] = extract_keyword_phrases,
    ) -> None:
        self._session = session
        self._http = http
        self._context = context
        self._config = config
        self._expander = expander
        if self._expander is None and session is not None:
            self._expander = ContentExpander.from_config(session, config)
        self._keyword_extractor = keyword_extractor
        self._collector_generation = -1

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def extract(self, url: str, depth: int = 0) -> PageRecord:
        """Render *url*, retrying on session loss, and fall back to HTTP.

        Never raises for page-level faults: the worst case is an error
        record from the fallback path.
        """
        if self._session is None:
            return await self.fetch_fallback(url, depth)
        if not self._session.available:
            return await self.fetch_fallback(url, depth, render_error="Browser unavailable")

        attempts = self._config.render_attempts
        last_error: Optional[RenderError] = None
        for attempt in range(1, attempts + 1):
            try:
                return await self.render(url, depth)
            except SessionError as exc:
                last_error = exc
                if not self._session.available:
                    logger.warning("Browser unavailable, using HTTP fallback for %s: %s", url, exc)
                    break
                logger.warning(
                    "Render attempt %d/%d for %s lost the browser session: %s",
                    attempt, attempts, url, exc,
                )
                await self._session.reset()
                if attempt < attempts:
                    await asyncio.sleep(self._config.render_backoff * (2 ** (attempt - 1)))
            except RenderError as exc:
                last_error = exc
                logger.warning("Render failed for %s, using HTTP fallback: %s", url, exc)
                break
        else:
            logger.error("Render retries exhausted for %s after %d attempts", url, attempts)

        return await self.fetch_fallback(url, depth, render_error=str(last_error))

    async def render(self, url: str, depth: int = 0) -> PageRecord:
        """Run the render protocol once under the whole-render timeout.

        Raises:
            SessionError: The browser session was lost.
            RenderTimeoutError: The render exceeded ``render_timeout``.
            ContentTypeError: The URL does not serve HTML.
            RenderError: Navigation failed for a non-connection reason.
        """
        if self._session is None:
            raise SessionError("No browser session configured")
        try:
            return await asyncio.wait_for(
                self._render_once(url, depth), timeout=self._config.render_timeout
            )
        except asyncio.TimeoutError:
            self._session.mark_page_unusable()
            raise RenderTimeoutError(
                f"Render of {url} exceeded {self._config.render_timeout}s"
            ) from None

    # ------------------------------------------------------------------
    # Render protocol
    # ------------------------------------------------------------------

    async def _render_once(self, url: str, depth: int) -> PageRecord:
        session = self._session
        page = await session.acquire_page()
        tech_task = asyncio.ensure_future(self._http.technical_checks(url))
        degraded: list[str] = []
        try:
            await self._ensure_collectors(page)

            # 1. navigate
            await session.require_healthy("navigation")
            t0 = time.monotonic()
            response = await self._navigate(page, url)
            load_time_ms = int((time.monotonic() - t0) * 1000)
            status_code = response.status if response is not None else 0
            content_type = ""
            if response is not None:
                content_type = (response.headers or {}).get("content-type", "")
            if not is_html_content_type(content_type):
                raise ContentTypeError(url, content_type, status_code)
            final_url = page.url or url

            # 2. initial snapshot
            initial_html = await self._step("initial_html", lambda: page.content(), "", degraded)

            # 3. performance observers (no-op when the init script already ran)
            await self._step(
                "performance_observer",
                lambda: page.evaluate(PERF_OBSERVER_SCRIPT),
                None,
                degraded,
            )

            # 4. content expansion
            if self._expander is not None:
                await self._expander.expand(page)

            # 5. rendered snapshot
            rendered_html = await self._step("rendered_html", lambda: page.content(), "", degraded)

            # 6. live-document extraction
            images = await self._step(
                "images", lambda: page.evaluate(EXTRACT_IMAGES_SCRIPT), [], degraded
            )
            links = await self._step(
                "links", lambda: page.evaluate(EXTRACT_LINKS_SCRIPT), [], degraded
            )
            headings = await self._step(
                "headings", lambda: page.evaluate(EXTRACT_HEADINGS_SCRIPT), None, degraded
            )
            structured = await self._step(
                "structured_data",
                lambda: page.evaluate(EXTRACT_STRUCTURED_DATA_SCRIPT),
                None,
                degraded,
            )
            metrics_ms = self._config.metrics_wait_ms
            raw_metrics = await self._step(
                "metrics",
                lambda: page.evaluate(READ_METRICS_SCRIPT, metrics_ms),
                None,
                degraded,
                timeout=self._config.evaluate_timeout + metrics_ms / 1000,
            )

            # 7. stable title
            title = await self._stable_title(page, degraded)

            technical = await self._join_technical(tech_task, url)
        except BaseException:
            if not tech_task.done():
                tech_task.cancel()
            raise
        finally:
            # 8. reset for the next URL
            await self._reset_page(page)

        return self._build_rendered_record(
            url=url,
            depth=depth,
            final_url=final_url,
            status_code=status_code,
            content_type=content_type,
            load_time_ms=load_time_ms,
            initial_html=initial_html,
            rendered_html=rendered_html,
            images=images,
            links=links,
            headings=headings,
            structured=structured,
            raw_metrics=raw_metrics,
            title=title,
            technical=technical,
            degraded=degraded,
        )

    async def _ensure_collectors(self, page: Any) -> None:
        """Register the performance observers once per page handle."""
        generation = self._session.generation
        if self._collector_generation == generation:
            return
        try:
            await self._session.run(
                page.add_init_script(PERF_OBSERVER_INIT_SCRIPT), "observer install"
            )
        except SessionError:
            raise
        except Exception as exc:
            logger.warning("Could not register performance observers: %s", exc)
            return
        self._collector_generation = generation

    async def _navigate(self, page: Any, url: str) -> Any:
        nav_timeout = self._config.navigation_timeout
        try:
            return await self._session.run(
                page.goto(url, wait_until="domcontentloaded", timeout=int(nav_timeout * 1000)),
                f"navigation to {url}",
                # Leave room for the driver to report its own timeout first.
                timeout=nav_timeout + 5,
            )
        except SessionError:
            raise
        except Exception as exc:
            raise RenderError(f"Navigation to {url} failed: {exc}") from exc

    async def _step(
        self,
        name: str,
        call: Callable[[], Awaitable[Any]],
        default: Any,
        degraded: list[str],
        timeout: Optional[float] = None,
    ) -> Any:
        """Run one in-page step; a failing step degrades to *default*.

        Session loss is not a step failure and propagates as SessionError.
        """
        await self._session.require_healthy(name)
        try:
            return await self._session.run(call(), name, timeout=timeout)
        except SessionError:
            raise
        except Exception as exc:
            err = ExtractionStepError(name, exc)
            logger.warning("%s; using an empty value", err)
            degraded.append(err.step)
            return default

    async def _stable_title(self, page: Any, degraded: list[str]) -> Optional[str]:
        """Poll the title until two consecutive samples agree.

        Returns the stable value, otherwise the last non-empty sample, or
        None when the title could not be read at all. A title that settles
        on an empty string keeps the last non-empty sample.
        """
        polls = max(1, self._config.title_polls)
        interval = self._config.title_poll_interval_ms / 1000
        previous: Optional[str] = None
        last_non_empty = ""
        for i in range(polls):
            sample = await self._step("title", lambda: page.title(), None, degraded)
            if sample is None:
                return last_non_empty or None
            sample = clean_text(sample)
            if sample:
                last_non_empty = sample
            if previous is not None and sample == previous:
                return sample or last_non_empty
            previous = sample
            if i < polls - 1 and interval > 0:
                await asyncio.sleep(interval)
        logger.debug("Title never stabilized; using last value %r", last_non_empty)
        return last_non_empty

    async def _join_technical(self, task: "asyncio.Future[Any]", url: str) -> TechnicalChecks:
        try:
            return await task
        except Exception as exc:
            logger.warning("Technical checks failed for %s: %s", url, exc)
            return TechnicalChecks()

    async def _reset_page(self, page: Any) -> None:
        try:
            await asyncio.wait_for(page.goto(BLANK_URL), timeout=self._config.health_timeout)
        except Exception as exc:
            logger.warning("Could not reset page after render, requesting a fresh one: %s", exc)
            self._session.mark_page_unusable()

    # ------------------------------------------------------------------
    # Fallback path
    # ------------------------------------------------------------------

    async def fetch_fallback(
        self,
        url: str,
        depth: int = 0,
        render_error: Optional[str] = None,
    ) -> PageRecord:
        """Plain HTTP fetch plus markup parse, with no in-page steps."""
        try:
            fetched = await self._http.fetch_page(url)
        except ContentTypeError as exc:
            logger.info("Skipping non-HTML URL %s (%s)", url, exc.content_type)
            return PageRecord.error_record(
                url,
                depth,
                str(exc),
                status_code=exc.status_code,
                content_type=exc.content_type,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Fallback fetch failed for %s: %s", url, exc)
            return PageRecord.error_record(
                url, depth, f"Fetch failed: {str(exc) or type(exc).__name__}"
            )

        final_url = fetched["final_url"]
        parsed = parse_html(fetched["html"], final_url)
        technical = await self._http.technical_checks(final_url)
        text_length = len(parsed["text"])
        status_code = fetched["status_code"]

        return PageRecord(
            url=url,
            depth=depth,
            final_url=final_url,
            status_code=status_code,
            load_time_ms=fetched["load_time_ms"],
            content_type=fetched["content_type"],
            rendered=False,
            title=parsed["title"],
            meta_description=parsed["meta_description"],
            canonical_url=parsed["canonical_url"],
            robots_meta=parsed["robots_meta"],
            has_viewport=parsed["has_viewport"],
            h1_headings=tuple(parsed["h1"]),
            h2_headings=tuple(parsed["h2"]),
            heading_count=parsed["heading_count"],
            word_count=parsed["word_count"],
            image_count=len(parsed["images"]),
            images_missing_alt=_count_missing_alt(parsed["images"]),
            links=tuple(parsed["links"]),
            keywords=self._keywords(
                status_code, parsed["title"], parsed["h1"], parsed["meta_description"], parsed["h2"]
            ),
            og_tags=tuple(parsed["og_tags"]),
            twitter_tags=tuple(parsed["twitter_tags"]),
            insecure_resources=tuple(parsed["insecure_resources"]),
            rendering=RenderingStats(initial_length=text_length, rendered_length=text_length),
            schema=analyze_structured_data(parsed["structured_data"], parsed["microdata_types"]),
            technical=technical,
            render_error=render_error,
            **self._link_counts(parsed["links"]),
        )

    # ------------------------------------------------------------------
    # Record assembly
    # ------------------------------------------------------------------

    def _keywords(
        self, status_code: int, title: str, h1: Iterable[str], meta: str, h2: Iterable[str]
    ) -> tuple[str, ...]:
        if not 200 <= status_code < 400:
            return ()
        return tuple(self._keyword_extractor(_keyword_sources(title, h1, meta, h2)))

    def _link_counts(self, links: Iterable[str]) -> dict[str, int]:
        internal = external = 0
        for href in links:
            if is_same_domain(extract_host(href), self._context.preferred_host):
                internal += 1
            else:
                external += 1
        return {"internal_link_count": internal, "external_link_count": external}

    def _build_rendered_record(
        self,
        url: str,
        depth: int,
        final_url: str,
        status_code: int,
        content_type: str,
        load_time_ms: int,
        initial_html: str,
        rendered_html: str,
        images: list[dict[str, Any]],
        links: list[dict[str, Any]],
        headings: Optional[dict[str, Any]],
        structured: Optional[dict[str, Any]],
        raw_metrics: Optional[dict[str, Any]],
        title: Optional[str],
        technical: TechnicalChecks,
        degraded: list[str],
    ) -> PageRecord:
        parsed = parse_html(rendered_html or initial_html, final_url)

        hrefs: list[str] = []
        for link in links or []:
            href = link.get("href") if isinstance(link, dict) else link
            if href and href not in hrefs:
                hrefs.append(href)

        if headings:
            h1 = tuple(clean_text(h) for h in headings.get("h1", []))
            h2 = tuple(clean_text(h) for h in headings.get("h2", []))
            heading_count = int(headings.get("total", len(h1) + len(h2)))
        else:
            h1, h2, heading_count = (), (), 0

        if structured:
            schema = analyze_structured_data(
                structured.get("blocks", []), structured.get("microdata", [])
            )
        else:
            schema = analyze_structured_data(())

        if "initial_html" in degraded or "rendered_html" in degraded:
            # One snapshot is missing, so the two cannot be compared.
            rendering = RenderingStats()
        else:
            initial_length = len(visible_text(initial_html))
            rendered_length = len(parsed["text"])
            percentage, is_high = calculate_rendering_percentage(initial_length, rendered_length)
            rendering = RenderingStats(
                initial_length=initial_length,
                rendered_length=rendered_length,
                percentage=percentage,
                is_high=is_high,
            )

        final_title = title if title is not None else parsed["title"]
        images = images or []

        return PageRecord(
            url=url,
            depth=depth,
            final_url=final_url,
            status_code=status_code,
            load_time_ms=load_time_ms,
            content_type=content_type,
            rendered=True,
            title=final_title,
            meta_description=parsed["meta_description"],
            canonical_url=parsed["canonical_url"],
            robots_meta=parsed["robots_meta"],
            has_viewport=parsed["has_viewport"],
            h1_headings=h1,
            h2_headings=h2,
            heading_count=heading_count,
            word_count=parsed["word_count"],
            image_count=len(images),
            images_missing_alt=_count_missing_alt(images),
            links=tuple(hrefs),
            keywords=self._keywords(
                status_code, final_title, h1, parsed["meta_description"], h2
            ),
            og_tags=tuple(parsed["og_tags"]),
            twitter_tags=tuple(parsed["twitter_tags"]),
            insecure_resources=tuple(parsed["insecure_resources"]),
            metrics=PageMetrics.from_mapping(raw_metrics),
            rendering=rendering,
            schema=schema,
            technical=technical,
            degraded_fields=tuple(degraded),
            **self._link_counts(hrefs),
        )
