"""Plain HTTP collaborator for the audit pipeline.

Resolves the seed redirect chain, serves the non-rendering fallback fetch,
discovers links when a render produced none, and runs the robots.txt,
sitemap, response-header and compression checks.
"""

import asyncio
import logging
import time
from typing import Any, Optional
from urllib.parse import urljoin
from xml.etree import ElementTree as ET

import aiohttp

from siteaudit.exceptions import ContentTypeError, LinkDiscoveryError, SeedResolutionError
from siteaudit.models.crawl import RedirectResult, TechnicalChecks
from siteaudit.utils.html_parsing import parse_html

logger = logging.getLogger(__name__)

_REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
_HTML_TYPES = ("text/html", "application/xhtml+xml")
_MAX_SITEMAP_FILES = 10
_MAX_SITEMAP_URLS = 1000

# TechnicalChecks field -> response header
_SECURITY_HEADERS = {
    "hsts": "Strict-Transport-Security",
    "csp": "Content-Security-Policy",
    "x_frame_options": "X-Frame-Options",
    "x_content_type_options": "X-Content-Type-Options",
    "referrer_policy": "Referrer-Policy",
}


def _local_tag(tag: str) -> str:
    return tag.split("}")[-1] if "}" in tag else tag


def _product_token(agent: str) -> str:
    """``SiteAuditBot/1.0 (+https://x)`` -> ``siteauditbot``."""
    token = agent.strip().split("/", 1)[0].strip()
    return token.split()[0].lower() if token else ""


def is_html_content_type(content_type: str) -> bool:
    """True for HTML content types; an empty header is given the benefit of the doubt."""
    if not content_type:
        return True
    lowered = content_type.lower()
    return any(t in lowered for t in _HTML_TYPES)


class HttpClient:
    """Async HTTP client sharing one aiohttp session across calls.

    Usage::

        async with HttpClient(user_agent="SiteAuditBot/1.0") as http:
            redirect = await http.follow_redirects("http://example.com/")
            page = await http.fetch_page(redirect.final_url)
    """

    def __init__(
        self,
        user_agent: str = "SiteAuditBot/1.0",
        request_timeout: float = 15.0,
        max_redirects: int = 5,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._max_redirects = max_redirects
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Create or reuse the underlying aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent},
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Redirect resolution
    # ------------------------------------------------------------------

    async def _redirect_hop(self, url: str) -> tuple[int, Optional[str]]:
        session = await self._ensure_session()
        async with session.head(url, allow_redirects=False, ssl=False) as resp:
            status, location = resp.status, resp.headers.get("Location")
        if status in (405, 501):
            # Some servers refuse HEAD; fall back to a GET without reading the body.
            async with session.get(url, allow_redirects=False, ssl=False) as resp:
                status, location = resp.status, resp.headers.get("Location")
        return status, location

    async def follow_redirects(self, url: str) -> RedirectResult:
        """Follow HTTP redirects from *url* without fetching bodies.

        Raises:
            SeedResolutionError: On any network failure along the chain.
        """
        chain = [url]
        current = url
        for _ in range(self._max_redirects):
            try:
                status, location = await self._redirect_hop(current)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                raise SeedResolutionError(url, str(exc) or type(exc).__name__) from exc

            if status not in _REDIRECT_STATUSES or not location:
                break
            next_url = urljoin(current, location)
            if next_url in chain:
                logger.warning("Redirect loop detected at %s", next_url)
                break
            chain.append(next_url)
            current = next_url
        else:
            logger.warning("Stopped following redirects after %d hops from %s", self._max_redirects, url)

        if len(chain) > 1:
            logger.info("Seed %s redirects to %s (%d hops)", url, current, len(chain) - 1)
        return RedirectResult(final_url=current, chain=tuple(chain))

    # ------------------------------------------------------------------
    # Page fetch (fallback path)
    # ------------------------------------------------------------------

    async def fetch_page(self, url: str) -> dict[str, Any]:
        """GET *url* following redirects and return its HTML.

        Returns:
            Dict with url, final_url, status_code, content_type, html,
            load_time_ms and headers.

        Raises:
            ContentTypeError: When the response is not HTML.
            aiohttp.ClientError / asyncio.TimeoutError: On network failure.
        """
        session = await self._ensure_session()
        t0 = time.monotonic()
        async with session.get(url, allow_redirects=True, ssl=False) as resp:
            content_type = resp.headers.get("Content-Type", "")
            if not is_html_content_type(content_type):
                raise ContentTypeError(url, content_type, resp.status)
            html = await resp.text(errors="replace")
            return {
                "url": url,
                "final_url": str(resp.url),
                "status_code": resp.status,
                "content_type": content_type,
                "html": html,
                "load_time_ms": int((time.monotonic() - t0) * 1000),
                "headers": dict(resp.headers),
            }

    async def discover_links(self, url: str) -> list[str]:
        """Fetch *url* and return the absolute hrefs found in its markup.

        Raises:
            LinkDiscoveryError: When the page cannot be fetched or is not HTML.
        """
        try:
            page = await self.fetch_page(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ContentTypeError, ValueError) as exc:
            raise LinkDiscoveryError(f"Link discovery failed for {url}: {exc}") from exc
        return parse_html(page["html"], page["final_url"])["links"]

    # ------------------------------------------------------------------
    # Technical checks
    # ------------------------------------------------------------------

    async def check_response_headers(self, url: str) -> dict[str, Any]:
        """Best-effort HTTP version plus the security and caching headers of *url*."""
        session = await self._ensure_session()
        async with session.head(url, allow_redirects=True, ssl=False) as resp:
            headers = resp.headers
            final_scheme = resp.url.scheme
        alt_svc = headers.get("Alt-Svc", "").lower()
        if "h3" in alt_svc:
            version = "http/3"
        elif final_scheme == "https":
            version = "http/2"
        else:
            version = "http/1.1"
        result: dict[str, Any] = {
            "http_version": version,
            "cache_control": headers.get("Cache-Control", "").strip(),
        }
        for field_name, header in _SECURITY_HEADERS.items():
            result[field_name] = header in headers
        return result

    async def check_compression(self, url: str) -> dict[str, bool]:
        session = await self._ensure_session()
        headers = {"Accept-Encoding": "gzip, deflate, br"}
        async with session.head(url, headers=headers, allow_redirects=True, ssl=False) as resp:
            encoding = resp.headers.get("Content-Encoding", "").lower()
        return {
            "gzip": "gzip" in encoding or "deflate" in encoding,
            "brotli": "br" in encoding,
        }

    async def technical_checks(self, url: str) -> TechnicalChecks:
        """Run the response-header and compression checks in parallel."""
        headers, compression = await asyncio.gather(
            self.check_response_headers(url),
            self.check_compression(url),
            return_exceptions=True,
        )
        fields: dict[str, Any] = {}
        if isinstance(headers, BaseException):
            logger.warning("Header check failed for %s: %s", url, headers)
        else:
            fields.update(headers, headers_checked=True)
        if isinstance(compression, BaseException):
            logger.warning("Compression check failed for %s: %s", url, compression)
        else:
            fields.update(compression, compression_checked=True)
        return TechnicalChecks(**fields)

    # ------------------------------------------------------------------
    # robots.txt
    # ------------------------------------------------------------------

    def _group_applies(self, agents: Optional[set[str]]) -> bool:
        if agents is None:
            return True
        return "*" in agents or _product_token(self._user_agent) in agents

    async def check_robots_txt(self, origin: str) -> dict[str, Any]:
        """Fetch and parse robots.txt at *origin* (``scheme://host``)."""
        url = origin.rstrip("/") + "/robots.txt"
        result: dict[str, Any] = {
            "url": url,
            "exists": False,
            "disallowed_paths": [],
            "sitemaps": [],
            "crawl_delay": None,
        }
        try:
            session = await self._ensure_session()
            async with session.get(url, ssl=False) as resp:
                if resp.status != 200:
                    logger.info("robots.txt not found at %s (status %d)", url, resp.status)
                    return result
                text = await resp.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Error fetching robots.txt: %s", exc)
            result["error"] = str(exc) or type(exc).__name__
            return result

        result["exists"] = True
        # Consecutive User-agent lines share one group; rules before any
        # User-agent line apply to everyone.
        group_agents: Optional[set[str]] = None
        previous_was_agent = False
        for raw_line in text.splitlines():
            line = raw_line.split("#")[0].strip()
            if not line or ":" not in line:
                continue
            key, value = line.split(":", 1)
            key = key.strip().lower()
            value = value.strip()
            if key == "user-agent":
                if not previous_was_agent or group_agents is None:
                    group_agents = set()
                group_agents.add(_product_token(value))
                previous_was_agent = True
                continue
            previous_was_agent = False
            if key == "disallow" and self._group_applies(group_agents):
                if value:
                    result["disallowed_paths"].append(value)
            elif key == "sitemap":
                if value:
                    result["sitemaps"].append(value)
            elif key == "crawl-delay" and self._group_applies(group_agents):
                try:
                    result["crawl_delay"] = float(value)
                except ValueError:
                    pass

        logger.info(
            "robots.txt: %d disallowed, %d sitemaps",
            len(result["disallowed_paths"]),
            len(result["sitemaps"]),
        )
        return result

    # ------------------------------------------------------------------
    # Sitemap
    # ------------------------------------------------------------------

    async def check_sitemap(self, origin: str, hints: Optional[list[str]] = None) -> dict[str, Any]:
        """Look for an XML sitemap at the usual locations plus any *hints*.

        *hints* are sitemap URLs announced in robots.txt. The page URLs
        listed are kept under ``urls`` (up to a fixed cap).
        """
        result: dict[str, Any] = {
            "found": False,
            "total_urls": 0,
            "sitemaps": [],
            "urls": [],
            "errors": [],
        }
        base = origin.rstrip("/")
        candidates = list(hints or []) + [f"{base}/sitemap.xml", f"{base}/sitemap_index.xml"]
        seen: set[str] = set()
        for sm_url in candidates:
            if result["found"]:
                break
            await self._parse_sitemap(sm_url, result, seen)

        logger.info("Sitemap: %d URLs found across %d sitemaps", result["total_urls"], len(result["sitemaps"]))
        return result

    async def _parse_sitemap(self, url: str, result: dict[str, Any], seen: set[str], depth: int = 0) -> None:
        """Parse a sitemap or sitemap index, recursing at most two levels."""
        if depth > 2 or url in seen or len(seen) >= _MAX_SITEMAP_FILES:
            return
        seen.add(url)
        try:
            session = await self._ensure_session()
            async with session.get(url, ssl=False) as resp:
                if resp.status != 200:
                    return
                xml_text = await resp.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            result["errors"].append(f"Error fetching {url}: {exc}")
            return

        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as exc:
            result["errors"].append(f"XML parse error for {url}: {exc}")
            return

        tag = _local_tag(root.tag)
        if tag == "sitemapindex":
            result["sitemaps"].append(url)
            result["found"] = True
            for el in root.iter():
                if _local_tag(el.tag) == "loc" and el.text:
                    await self._parse_sitemap(el.text.strip(), result, seen, depth + 1)
        elif tag == "urlset":
            result["sitemaps"].append(url)
            result["found"] = True
            for url_el in root:
                if _local_tag(url_el.tag) != "url":
                    continue
                result["total_urls"] += 1
                loc = next((c.text for c in url_el if _local_tag(c.tag) == "loc" and c.text), None)
                if loc and len(result["urls"]) < _MAX_SITEMAP_URLS:
                    result["urls"].append(loc.strip())
