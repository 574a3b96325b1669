"""Cross-page findings computed once the crawl has finished."""

from collections import defaultdict
from typing import Any, Iterable, Optional, Sequence

from siteaudit.models.crawl import CrawlContext, PageRecord
from siteaudit.models.issue import Category, Finding, Severity
from siteaudit.utils.text_processing import clean_text
from siteaudit.utils.urls import canonicalize_url, extract_host, get_preferred_url, is_same_domain, normalize_url


def _duplicates(pages: Iterable[PageRecord], attr: str) -> list[tuple[str, list[str]]]:
    groups: dict[str, list[str]] = defaultdict(list)
    for page in pages:
        if not page.is_success:
            continue
        value = clean_text(getattr(page, attr)).lower()
        if value:
            groups[value].append(page.url)
    return [(value, urls) for value, urls in groups.items() if len(urls) > 1]


def find_duplicate_titles(pages: Iterable[PageRecord]) -> list[Finding]:
    findings = []
    for value, urls in _duplicates(pages, "title"):
        findings.append(Finding(
            category=Category.ON_PAGE,
            severity=Severity.MEDIUM,
            message="Duplicate title tags",
            details=f'"{value}" is used on {len(urls)} pages; keep it on {get_preferred_url(urls)}',
            fix="Write a unique title tag for each page",
            affected_pages=tuple(urls),
        ))
    return findings


def find_duplicate_meta_descriptions(pages: Iterable[PageRecord]) -> list[Finding]:
    findings = []
    for value, urls in _duplicates(pages, "meta_description"):
        findings.append(Finding(
            category=Category.ON_PAGE,
            severity=Severity.MEDIUM,
            message="Duplicate meta descriptions",
            details=f"{len(urls)} pages share one meta description; keep it on {get_preferred_url(urls)}",
            fix="Write a unique meta description for each page",
            affected_pages=tuple(urls),
        ))
    return findings


def find_broken_pages(pages: Iterable[PageRecord]) -> list[Finding]:
    broken = [p for p in pages if p.error is not None or p.status_code >= 400]
    if not broken:
        return []
    statuses = sorted({str(p.status_code) if p.status_code else "error" for p in broken})
    return [Finding(
        category=Category.TECHNICAL,
        severity=Severity.HIGH,
        message="Broken pages detected",
        details=f"{len(broken)} pages failed to load (status: {', '.join(statuses)})",
        fix="Fix or redirect the failing URLs and update links that point to them",
        affected_pages=tuple(p.url for p in broken),
    )]


def find_robots_issues(robots_data: Optional[dict[str, Any]], site_url: str) -> list[Finding]:
    if not robots_data or robots_data.get("exists") or robots_data.get("error"):
        return []
    return [Finding(
        category=Category.TECHNICAL,
        severity=Severity.LOW,
        message="robots.txt not found",
        details=robots_data.get("url"),
        fix="Publish a robots.txt that references the XML sitemap",
        affected_pages=(site_url,),
    )]


def find_sitemap_issues(sitemap_data: Optional[dict[str, Any]], site_url: str) -> list[Finding]:
    if sitemap_data is None or sitemap_data.get("found"):
        return []
    return [Finding(
        category=Category.TECHNICAL,
        severity=Severity.MEDIUM,
        message="XML sitemap not found",
        details="; ".join(sitemap_data.get("errors", [])) or None,
        fix="Generate an XML sitemap and reference it from robots.txt",
        affected_pages=(site_url,),
    )]


def find_redirect_chain(chain: Sequence[str]) -> list[Finding]:
    if len(chain) <= 2:
        return []
    return [Finding(
        category=Category.TECHNICAL,
        severity=Severity.MEDIUM,
        message="Redirect chain detected",
        details=f"{len(chain) - 1} redirects: {' -> '.join(chain)}",
        fix="Point the entry URL straight at its final destination",
        affected_pages=(chain[0],),
    )]


def find_duplicate_url_variants(pages: Iterable[PageRecord], context: CrawlContext) -> list[Finding]:
    """Group same-site URL spellings that canonicalize to the same page.

    Spellings come from the crawled URLs and every internal link, so a page
    linked as both ``http://a.test/x`` and ``https://www.a.test/x`` shows
    up here even though it was crawled once.
    """
    groups: dict[str, set[str]] = defaultdict(set)
    for page in pages:
        base = page.final_url or page.url
        for raw in (page.url, *page.links):
            spelling = normalize_url(raw, base)
            if not is_same_domain(extract_host(spelling), context.preferred_host):
                continue
            groups[canonicalize_url(spelling, context)].add(spelling)

    findings = []
    for variants in groups.values():
        if len(variants) < 2:
            continue
        ordered = sorted(variants)
        findings.append(Finding(
            category=Category.TECHNICAL,
            severity=Severity.LOW,
            message="Duplicate URL variants",
            details=f"{len(ordered)} spellings of {get_preferred_url(ordered)}",
            fix="Link to one spelling and 301-redirect the others to it",
            affected_pages=tuple(ordered),
        ))
    return findings


def find_orphan_pages(
    pages: Iterable[PageRecord],
    sitemap_urls: Iterable[str],
    context: CrawlContext,
    linked: Optional[Iterable[str]] = None,
) -> list[Finding]:
    """Sitemap URLs that no crawled page links to.

    Only meaningful for a crawl that reached every page it found a link to;
    callers are expected to skip this otherwise.
    """
    pages = list(pages)
    if linked is None:
        linked = (
            canonicalize_url(link, context, p.final_url or p.url) for p in pages for link in p.links
        )
    reached = set(linked)
    for page in pages[:1]:
        reached.add(canonicalize_url(page.url, context))
        if page.final_url:
            reached.add(canonicalize_url(page.final_url, context))

    orphans: list[str] = []
    for url in sitemap_urls:
        key = canonicalize_url(url, context)
        if not is_same_domain(extract_host(key), context.preferred_host):
            continue
        if key not in reached and key not in orphans:
            orphans.append(key)
    if not orphans:
        return []
    return [Finding(
        category=Category.TECHNICAL,
        severity=Severity.MEDIUM,
        message="Orphan pages detected",
        details=f"{len(orphans)} sitemap URLs have no incoming internal links",
        fix="Link to these pages from related content or the navigation",
        affected_pages=tuple(orphans),
    )]


def site_wide_findings(
    pages: Iterable[PageRecord],
    robots_data: Optional[dict[str, Any]] = None,
    sitemap_data: Optional[dict[str, Any]] = None,
    site_url: str = "",
    redirect_chain: Sequence[str] = (),
    context: Optional[CrawlContext] = None,
    linked: Optional[Iterable[str]] = None,
    crawl_complete: bool = False,
) -> list[Finding]:
    """Every cross-page finding for a finished crawl.

    Orphan pages are only reported when *crawl_complete* is set, since a
    truncated crawl has not seen every link.
    """
    pages = list(pages)
    if context is None and site_url:
        context = CrawlContext.from_url(site_url)
    findings = [
        *find_broken_pages(pages),
        *find_duplicate_titles(pages),
        *find_duplicate_meta_descriptions(pages),
        *find_robots_issues(robots_data, site_url),
        *find_sitemap_issues(sitemap_data, site_url),
        *find_redirect_chain(redirect_chain),
    ]
    if context is not None:
        findings.extend(find_duplicate_url_variants(pages, context))
        if crawl_complete and sitemap_data and sitemap_data.get("found"):
            findings.extend(find_orphan_pages(pages, sitemap_data.get("urls", []), context, linked))
    return findings
