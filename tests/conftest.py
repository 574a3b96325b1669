"""Shared pytest fixtures for Site Audit tests.

The fake driver below stands in for Playwright: it models a small site
graph, answers the in-page scripts the extractor evaluates and can
simulate a browser disconnect on demand.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure project root is on sys.path so 'siteaudit' is importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from siteaudit.exceptions import ContentTypeError  # noqa: E402
from siteaudit.modules.technical_audit import scripts  # noqa: E402

BLANK = "about:blank"


def build_html(entry: dict) -> str:
    """Render a fake page entry to markup."""
    head = [f"<title>{entry['title']}</title>"]
    if entry["meta"]:
        head.append(f'<meta name="description" content="{entry["meta"]}">')
    head.append('<meta name="viewport" content="width=device-width, initial-scale=1">')
    head.append(f'<link rel="canonical" href="{entry["url"]}">')
    for block in entry["schema_blocks"]:
        head.append(f'<script type="application/ld+json">{block}</script>')
    body = [f"<h1>{h}</h1>" for h in entry["h1"]]
    body += [f"<h2>{h}</h2>" for h in entry["h2"]]
    body.append("<p>" + " ".join(["content"] * entry["words"]) + "</p>")
    body += [f'<a href="{link}">link</a>' for link in entry["links"]]
    body += [f'<img src="{img["src"]}" alt="{img.get("alt") or ""}">' for img in entry["images"]]
    return "<html><head>" + "".join(head) + "</head><body>" + "".join(body) + "</body></html>"


class FakeSite:
    """In-memory site graph shared by the fake browser and the mock HTTP client."""

    def __init__(self) -> None:
        self.pages: dict[str, dict] = {}
        self.failing_scripts: set[str] = set()
        self.disconnect_on: dict[str, str] = {}
        self.fail_reset_once = False
        self.failing_content_calls = 0
        self.navigations: list[str] = []

    def add_page(
        self,
        url: str,
        title: str = "Example page title for the fake site",
        meta: str = "",
        h1: tuple = ("Main heading",),
        h2: tuple = (),
        links: tuple = (),
        images: tuple = (),
        status: int = 200,
        content_type: str = "text/html; charset=utf-8",
        titles: tuple = (),
        words: int = 50,
        metrics: dict = None,
        schema_blocks: tuple = (),
    ) -> dict:
        entry = {
            "url": url,
            "title": title,
            "meta": meta,
            "h1": list(h1),
            "h2": list(h2),
            "links": list(links),
            "images": [dict(img) for img in images],
            "status": status,
            "content_type": content_type,
            "titles": list(titles) or [title],
            "words": words,
            "metrics": metrics or {},
            "schema_blocks": list(schema_blocks),
        }
        entry["html"] = build_html(entry)
        self.pages[url] = entry
        return entry


class FakeResponse:
    def __init__(self, status: int, content_type: str) -> None:
        self.status = status
        self.headers = {"content-type": content_type}


class FakePage:
    def __init__(self, browser: "FakeBrowser", site: FakeSite) -> None:
        self.browser = browser
        self.site = site
        self.url = BLANK
        self.closed = False
        self.init_scripts: list[str] = []
        self._entry = None
        self._titles: list[str] = []

    def _check(self) -> None:
        if not self.browser.connected or self.closed:
            raise Exception("Target page, context or browser has been closed")

    async def goto(self, url, wait_until=None, timeout=None):
        self._check()
        if url == BLANK:
            if self.site.fail_reset_once and self.url != BLANK:
                self.site.fail_reset_once = False
                raise Exception("reset navigation failed")
            self.url = BLANK
            self._entry = None
            return None
        self.site.navigations.append(url)
        self.url = url
        self._entry = self.site.pages.get(url)
        if self._entry is None:
            return FakeResponse(404, "text/html")
        self._titles = list(self._entry["titles"])
        return FakeResponse(self._entry["status"], self._entry["content_type"])

    async def content(self):
        self._check()
        if self.site.failing_content_calls > 0:
            self.site.failing_content_calls -= 1
            raise Exception("snapshot failed")
        return self._entry["html"] if self._entry else "<html></html>"

    async def title(self):
        self._check()
        if not self._titles:
            return ""
        if len(self._titles) > 1:
            return self._titles.pop(0)
        return self._titles[0]

    async def add_init_script(self, script):
        self._check()
        self.init_scripts.append(script)

    async def evaluate(self, script, arg=None):
        self._check()
        if script == scripts.LIVENESS_SCRIPT:
            return 2
        entry = self._entry or {}
        if self.disconnect_on.get(self.url) == script:
            del self.disconnect_on[self.url]
            self.browser.disconnect()
            raise Exception("Target closed")
        if script in self.site.failing_scripts:
            raise Exception("page script crashed")
        if script == scripts.SCROLL_SCRIPT:
            return 1000
        if script in (scripts.CLICK_LOAD_MORE_SCRIPT, scripts.REVEAL_TABS_SCRIPT, scripts.EXPAND_ACCORDIONS_SCRIPT):
            return 0
        if script == scripts.PERF_OBSERVER_SCRIPT:
            return True
        if script == scripts.EXTRACT_IMAGES_SCRIPT:
            return [dict(img, kind=img.get("kind", "img")) for img in entry.get("images", [])]
        if script == scripts.EXTRACT_LINKS_SCRIPT:
            return [{"href": link, "text": "link"} for link in entry.get("links", [])]
        if script == scripts.EXTRACT_HEADINGS_SCRIPT:
            h1, h2 = entry.get("h1", []), entry.get("h2", [])
            return {"h1": list(h1), "h2": list(h2), "total": len(h1) + len(h2)}
        if script == scripts.EXTRACT_STRUCTURED_DATA_SCRIPT:
            return {"blocks": list(entry.get("schema_blocks", [])), "microdata": []}
        if script == scripts.READ_METRICS_SCRIPT:
            return dict(entry.get("metrics", {}))
        return None

    @property
    def disconnect_on(self) -> dict:
        return self.site.disconnect_on

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.connected = True
        self.closed = False
        self._handlers: dict[str, list] = {}

    def on(self, event, handler):
        self._handlers.setdefault(event, []).append(handler)

    def is_connected(self):
        return self.connected

    def disconnect(self):
        self.connected = False
        for handler in self._handlers.get("disconnected", []):
            handler(self)

    async def close(self):
        self.closed = True
        self.connected = False


class FakeDriver:
    """Driver adapter with the same surface as PlaywrightDriver."""

    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.launches = 0
        self.fail_launches = 0
        self.browsers: list[FakeBrowser] = []
        self.pages: list[FakePage] = []
        self.shutdown_calls = 0

    async def launch(self):
        self.launches += 1
        if self.fail_launches > 0:
            self.fail_launches -= 1
            raise Exception("browser failed to start")
        browser = FakeBrowser(self.site)
        self.browsers.append(browser)
        return browser

    async def new_page(self, browser, user_agent):
        page = FakePage(browser, self.site)
        self.pages.append(page)
        return page

    async def shutdown(self):
        self.shutdown_calls += 1


@pytest.fixture()
def fake_site():
    """An empty site graph; tests add pages with ``add_page``."""
    return FakeSite()


@pytest.fixture()
def fake_driver(fake_site):
    """A Playwright stand-in browsing ``fake_site``."""
    return FakeDriver(fake_site)


@pytest.fixture()
def fast_config():
    """A CrawlConfig with every wait, backoff and debounce set to zero."""
    from siteaudit.config import CrawlConfig

    return CrawlConfig(
        max_pages=10,
        max_depth=3,
        launch_backoff=0,
        disconnect_debounce=0,
        render_backoff=0,
        render_timeout=10,
        scroll_rounds=1,
        scroll_wait_ms=0,
        load_more_rounds=1,
        load_more_wait_ms=0,
        tab_wait_ms=0,
        accordion_rounds=1,
        accordion_wait_ms=0,
        final_scroll_wait_ms=0,
        title_polls=5,
        title_poll_interval_ms=0,
        metrics_wait_ms=0,
    )


@pytest.fixture()
def mock_http_client(fake_site):
    """Return a mock HttpClient that serves ``fake_site`` over "plain HTTP"."""
    from siteaudit.models.crawl import RedirectResult, TechnicalChecks

    async def _fetch_page(url):
        entry = fake_site.pages.get(url)
        if entry is None:
            return {
                "url": url, "final_url": url, "status_code": 404,
                "content_type": "text/html", "html": "<html><title>Not found</title></html>",
                "load_time_ms": 5, "headers": {},
            }
        if "html" not in entry["content_type"]:
            raise ContentTypeError(url, entry["content_type"], entry["status"])
        return {
            "url": url, "final_url": url, "status_code": entry["status"],
            "content_type": entry["content_type"], "html": entry["html"],
            "load_time_ms": 5, "headers": {},
        }

    async def _follow_redirects(url):
        return RedirectResult(final_url=url, chain=(url,))

    client = MagicMock()
    client.fetch_page = AsyncMock(side_effect=_fetch_page)
    client.follow_redirects = AsyncMock(side_effect=_follow_redirects)
    client.technical_checks = AsyncMock(return_value=TechnicalChecks(
        http_version="http/2", compression_checked=True, gzip=True, brotli=True,
    ))
    client.discover_links = AsyncMock(return_value=[])
    client.check_robots_txt = AsyncMock(return_value={
        "url": "", "exists": True, "disallowed_paths": [], "sitemaps": [], "crawl_delay": None,
    })
    client.check_sitemap = AsyncMock(return_value={
        "found": True, "total_urls": 3, "sitemaps": ["sitemap.xml"], "errors": [],
    })
    client.close = AsyncMock()
    return client
