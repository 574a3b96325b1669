"""Typed records produced while crawling a site."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional
from urllib.parse import urlsplit

from siteaudit.utils.urls import get_root_domain


@dataclass(frozen=True)
class CrawlTask:
    """One entry of the crawl frontier."""

    url: str
    depth: int


@dataclass(frozen=True)
class CrawlContext:
    """Host preferences derived once from the redirect-resolved entry URL.

    Every same-domain decision made during a crawl is taken against this
    context, even when pages live on a sibling subdomain.
    """

    preferred_host: str
    preferred_scheme: str
    root_domain: str

    @classmethod
    def from_url(cls, url: str) -> "CrawlContext":
        parts = urlsplit(url)
        host = (parts.hostname or "").lower().rstrip(".")
        scheme = (parts.scheme or "https").lower()
        return cls(
            preferred_host=host,
            preferred_scheme=scheme,
            root_domain=get_root_domain(host),
        )

    @property
    def preferred_protocol(self) -> str:
        """Scheme in ``"https:"`` form."""
        return f"{self.preferred_scheme}:"

    def to_dict(self) -> dict[str, str]:
        return {
            "preferred_host": self.preferred_host,
            "preferred_protocol": self.preferred_protocol,
            "root_domain": self.root_domain,
        }


@dataclass(frozen=True)
class RedirectResult:
    """Terminal URL and the full chain of URLs visited to reach it."""

    final_url: str
    chain: tuple[str, ...] = ()

    @property
    def redirected(self) -> bool:
        return len(self.chain) > 1


@dataclass(frozen=True)
class PageMetrics:
    """Paint, layout-shift and blocking-time signals collected in-page.

    All values are milliseconds except ``cls``, which is unitless.
    ``None`` means the signal was not observed.
    """

    lcp: Optional[float] = None
    fcp: Optional[float] = None
    cls: Optional[float] = None
    tbt: Optional[float] = None
    fid: Optional[float] = None
    ttfb: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Optional[dict[str, Any]]) -> "PageMetrics":
        if not data:
            return cls()

        def _num(key: str, digits: int = 0) -> Optional[float]:
            value = data.get(key)
            if value is None or isinstance(value, bool):
                return None
            try:
                number = float(value)
            except (TypeError, ValueError):
                return None
            if number < 0:
                return None
            return round(number, digits) if digits else round(number)

        return cls(
            lcp=_num("lcp"),
            fcp=_num("fcp"),
            cls=_num("cls", 3),
            tbt=_num("tbt"),
            fid=_num("fid"),
            ttfb=_num("ttfb"),
        )


@dataclass(frozen=True)
class RenderingStats:
    """How much of the page only exists after script execution."""

    initial_length: int = 0
    rendered_length: int = 0
    percentage: float = 0.0
    is_high: bool = False


@dataclass(frozen=True)
class SchemaInfo:
    """Structured-data summary for a page."""

    has_schema: bool = False
    types: tuple[str, ...] = ()
    has_identity_schema: bool = False
    identity_type: Optional[str] = None
    missing_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class TechnicalChecks:
    """Results of the HTTP checks run alongside rendering.

    The header fields are only meaningful when ``headers_checked`` is set.
    """

    http_version: str = ""
    compression_checked: bool = False
    gzip: bool = False
    brotli: bool = False
    headers_checked: bool = False
    hsts: bool = False
    csp: bool = False
    x_frame_options: bool = False
    x_content_type_options: bool = False
    referrer_policy: bool = False
    cache_control: str = ""

    @property
    def compression_enabled(self) -> bool:
        return self.gzip or self.brotli


@dataclass(frozen=True)
class PageRecord:
    """Everything learned about one crawled URL.

    Created exactly once per attempted URL and never updated afterwards.
    Failed fetches and renders produce a record with ``error`` set.
    """

    url: str
    depth: int = 0
    final_url: str = ""
    status_code: int = 0
    load_time_ms: int = 0
    content_type: str = ""
    rendered: bool = False
    title: str = ""
    meta_description: str = ""
    canonical_url: str = ""
    robots_meta: str = ""
    has_viewport: bool = False
    h1_headings: tuple[str, ...] = ()
    h2_headings: tuple[str, ...] = ()
    heading_count: int = 0
    word_count: int = 0
    image_count: int = 0
    images_missing_alt: int = 0
    internal_link_count: int = 0
    external_link_count: int = 0
    links: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    og_tags: tuple[str, ...] = ()
    twitter_tags: tuple[str, ...] = ()
    insecure_resources: tuple[str, ...] = ()
    metrics: PageMetrics = field(default_factory=PageMetrics)
    rendering: RenderingStats = field(default_factory=RenderingStats)
    schema: SchemaInfo = field(default_factory=SchemaInfo)
    technical: TechnicalChecks = field(default_factory=TechnicalChecks)
    degraded_fields: tuple[str, ...] = ()
    render_error: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def error_record(
        cls,
        url: str,
        depth: int,
        error: str,
        status_code: int = 0,
        content_type: str = "",
        final_url: str = "",
        load_time_ms: int = 0,
    ) -> "PageRecord":
        return cls(
            url=url,
            depth=depth,
            final_url=final_url or url,
            status_code=status_code,
            content_type=content_type,
            load_time_ms=load_time_ms,
            error=error,
        )

    @property
    def title_length(self) -> int:
        return len(self.title)

    @property
    def h1_count(self) -> int:
        return len(self.h1_headings)

    @property
    def is_success(self) -> bool:
        """True for pages that loaded without error and with a 2xx/3xx status."""
        return self.error is None and 200 <= self.status_code < 400

    @property
    def uses_https(self) -> bool:
        return urlsplit(self.final_url or self.url).scheme == "https"

    @property
    def has_noindex(self) -> bool:
        return "noindex" in self.robots_meta.lower()

    @property
    def has_nofollow(self) -> bool:
        return "nofollow" in self.robots_meta.lower()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["title_length"] = self.title_length
        data["h1_count"] = self.h1_count
        data["technical"]["compression_enabled"] = self.technical.compression_enabled
        return data
