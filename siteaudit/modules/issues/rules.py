"""Per-page finding rules.

Each rule is a plain function ``PageRecord -> list[Finding]``. Rules are
independent of the crawl and can be swapped or extended by passing a
different rule list to the scheduler.
"""

import logging
from typing import Callable, Iterable, Optional

from siteaudit.models.crawl import PageRecord
from siteaudit.models.issue import Category, Finding, Severity
from siteaudit.utils.urls import normalize_url

logger = logging.getLogger(__name__)

PageRule = Callable[[PageRecord], list[Finding]]

TITLE_MIN_LENGTH = 30
TITLE_MAX_LENGTH = 60
META_MIN_LENGTH = 120
META_MAX_LENGTH = 160
THIN_CONTENT_WORDS = 300
SLOW_LOAD_MS = 3000
URL_MAX_LENGTH = 100

# metric -> (label, needs-improvement bound, poor bound, unit)
METRIC_THRESHOLDS: dict[str, tuple[str, float, float, str]] = {
    "lcp": ("LCP", 2500, 4000, "ms"),
    "cls": ("CLS", 0.1, 0.25, ""),
    "fid": ("FID", 100, 300, "ms"),
    "tbt": ("TBT", 200, 600, "ms"),
    "fcp": ("FCP", 1800, 3000, "ms"),
    "ttfb": ("TTFB", 800, 1800, "ms"),
}


def _finding(
    page: PageRecord,
    category: Category,
    severity: Severity,
    message: str,
    details: Optional[str] = None,
    fix: Optional[str] = None,
) -> Finding:
    return Finding(
        category=category,
        severity=severity,
        message=message,
        details=details,
        fix=fix,
        affected_pages=(page.url,),
    )


# ---------------------------------------------------------------------------
# On-page
# ---------------------------------------------------------------------------

def check_title(page: PageRecord) -> list[Finding]:
    length = page.title_length
    if length == 0:
        return [_finding(
            page, Category.ON_PAGE, Severity.HIGH, "Missing title tag",
            fix="Add a unique, descriptive title tag",
        )]
    if length < TITLE_MIN_LENGTH:
        return [_finding(
            page, Category.ON_PAGE, Severity.MEDIUM, "Title tag too short",
            details=f"Title is {length} characters",
            fix=f"Expand the title to {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters",
        )]
    if length > TITLE_MAX_LENGTH:
        return [_finding(
            page, Category.ON_PAGE, Severity.LOW, "Title tag too long",
            details=f"Title is {length} characters",
            fix=f"Shorten the title to at most {TITLE_MAX_LENGTH} characters",
        )]
    return []


def check_meta_description(page: PageRecord) -> list[Finding]:
    length = len(page.meta_description)
    if length == 0:
        return [_finding(
            page, Category.ON_PAGE, Severity.HIGH, "Missing meta description",
            fix="Add a compelling meta description (120-160 characters)",
        )]
    if length < META_MIN_LENGTH:
        return [_finding(
            page, Category.ON_PAGE, Severity.MEDIUM, "Meta description too short",
            details=f"Meta description is {length} characters",
            fix=f"Expand the meta description to {META_MIN_LENGTH}-{META_MAX_LENGTH} characters",
        )]
    if length > META_MAX_LENGTH:
        return [_finding(
            page, Category.ON_PAGE, Severity.LOW, "Meta description too long",
            details=f"Meta description is {length} characters",
            fix=f"Trim the meta description to at most {META_MAX_LENGTH} characters",
        )]
    return []


def check_h1(page: PageRecord) -> list[Finding]:
    if "headings" in page.degraded_fields:
        return []
    if page.h1_count == 0:
        return [_finding(
            page, Category.ON_PAGE, Severity.HIGH, "Missing H1 heading",
            fix="Add a single, descriptive H1 heading",
        )]
    if page.h1_count > 1:
        return [_finding(
            page, Category.ON_PAGE, Severity.MEDIUM, "Multiple H1 headings",
            details=f"{page.h1_count} H1 headings found",
            fix="Keep one H1 per page and demote the others to H2",
        )]
    return []


def check_canonical(page: PageRecord) -> list[Finding]:
    if not page.canonical_url:
        return [_finding(
            page, Category.ON_PAGE, Severity.MEDIUM, "Missing canonical tag",
            fix='Add <link rel="canonical"> pointing at the preferred URL',
        )]
    own = normalize_url(page.final_url or page.url)
    if normalize_url(page.canonical_url) != own:
        return [_finding(
            page, Category.ON_PAGE, Severity.LOW, "Canonical points to a different URL",
            details=f"Canonical is {page.canonical_url}",
            fix="Confirm the canonical target is intentional",
        )]
    return []


def check_social_tags(page: PageRecord) -> list[Finding]:
    findings = []
    if not page.og_tags:
        findings.append(_finding(
            page, Category.ON_PAGE, Severity.LOW, "Missing Open Graph tags",
            fix="Add og:title, og:description and og:image meta tags",
        ))
    if not page.twitter_tags:
        findings.append(_finding(
            page, Category.ON_PAGE, Severity.LOW, "Missing Twitter Card tags",
            fix="Add twitter:card, twitter:title and twitter:description meta tags",
        ))
    return findings


# ---------------------------------------------------------------------------
# Content and accessibility
# ---------------------------------------------------------------------------

def check_thin_content(page: PageRecord) -> list[Finding]:
    if page.word_count >= THIN_CONTENT_WORDS:
        return []
    return [_finding(
        page, Category.CONTENT, Severity.MEDIUM, "Thin content",
        details=f"Page has only {page.word_count} words",
        fix=f"Expand content to at least {THIN_CONTENT_WORDS} words or consolidate with related pages",
    )]


def check_image_alt(page: PageRecord) -> list[Finding]:
    if page.images_missing_alt <= 0:
        return []
    return [_finding(
        page, Category.ACCESSIBILITY, Severity.MEDIUM, "Images missing alt text",
        details=f"{page.images_missing_alt} of {page.image_count} images have no alt text",
        fix="Describe every meaningful image in its alt attribute",
    )]


# ---------------------------------------------------------------------------
# Technical
# ---------------------------------------------------------------------------

def check_viewport(page: PageRecord) -> list[Finding]:
    if page.has_viewport:
        return []
    return [_finding(
        page, Category.TECHNICAL, Severity.HIGH, "Missing viewport meta tag",
        fix='Add <meta name="viewport" content="width=device-width, initial-scale=1">',
    )]


def check_robots_meta(page: PageRecord) -> list[Finding]:
    findings = []
    if page.has_noindex:
        findings.append(_finding(
            page, Category.TECHNICAL, Severity.HIGH, "Page is set to noindex",
            details=f"robots meta: {page.robots_meta}",
            fix="Remove noindex if the page should appear in search results",
        ))
    if page.has_nofollow:
        findings.append(_finding(
            page, Category.TECHNICAL, Severity.MEDIUM, "Page is set to nofollow",
            details=f"robots meta: {page.robots_meta}",
            fix="Remove nofollow so crawlers can follow the page's links",
        ))
    return findings


def check_http_version(page: PageRecord) -> list[Finding]:
    if page.technical.http_version != "http/1.1":
        return []
    return [_finding(
        page, Category.TECHNICAL, Severity.LOW, "Server does not support HTTP/2",
        fix="Enable HTTP/2 (and HTTPS) on the web server or CDN",
    )]


def check_compression(page: PageRecord) -> list[Finding]:
    tech = page.technical
    if not tech.compression_checked:
        return []
    if not tech.compression_enabled:
        return [_finding(
            page, Category.TECHNICAL, Severity.MEDIUM, "No compression enabled",
            fix="Enable gzip or brotli compression for HTML responses",
        )]
    if tech.gzip and not tech.brotli:
        return [_finding(
            page, Category.TECHNICAL, Severity.LOW, "Brotli compression not enabled",
            fix="Serve brotli to clients that accept it",
        )]
    return []


def check_structured_data(page: PageRecord) -> list[Finding]:
    if "structured_data" in page.degraded_fields:
        return []
    schema = page.schema
    if not schema.has_schema:
        return [_finding(
            page, Category.TECHNICAL, Severity.MEDIUM, "No structured data",
            fix="Add JSON-LD structured data describing the page",
        )]
    if not schema.has_identity_schema:
        return [_finding(
            page, Category.TECHNICAL, Severity.MEDIUM, "No identity schema",
            details=f"Found types: {', '.join(schema.types)}",
            fix="Add an Organization or Person schema",
        )]
    if schema.missing_fields:
        return [_finding(
            page, Category.TECHNICAL, Severity.LOW, "Incomplete identity schema",
            details=f"{schema.identity_type} is missing: {', '.join(schema.missing_fields)}",
            fix="Fill in the missing identity schema properties",
        )]
    return []


def check_https(page: PageRecord) -> list[Finding]:
    if page.uses_https:
        return []
    return [_finding(
        page, Category.TECHNICAL, Severity.HIGH, "Site not using HTTPS",
        fix="Serve every page over HTTPS and redirect plain HTTP to it",
    )]


# field -> (header name, severity); HSTS only applies to HTTPS responses.
SECURITY_HEADERS: dict[str, tuple[str, Severity]] = {
    "hsts": ("HSTS", Severity.MEDIUM),
    "x_frame_options": ("X-Frame-Options", Severity.LOW),
    "x_content_type_options": ("X-Content-Type-Options", Severity.LOW),
    "csp": ("Content-Security-Policy", Severity.LOW),
    "referrer_policy": ("Referrer-Policy", Severity.LOW),
}


def check_security_headers(page: PageRecord) -> list[Finding]:
    tech = page.technical
    if not tech.headers_checked:
        return []
    findings = []
    for field, (header, severity) in SECURITY_HEADERS.items():
        if getattr(tech, field) or (field == "hsts" and not page.uses_https):
            continue
        findings.append(_finding(
            page, Category.TECHNICAL, severity, f"Missing {header} header",
            fix=f"Send the {header} response header",
        ))
    return findings


def check_cache_control(page: PageRecord) -> list[Finding]:
    tech = page.technical
    if not tech.headers_checked or tech.cache_control:
        return []
    return [_finding(
        page, Category.TECHNICAL, Severity.MEDIUM, "Missing Cache-Control header",
        fix="Set Cache-Control so browsers and CDNs can cache the page",
    )]


def check_mixed_content(page: PageRecord) -> list[Finding]:
    if not page.uses_https or not page.insecure_resources:
        return []
    count = len(page.insecure_resources)
    sample = ", ".join(page.insecure_resources[:3])
    return [_finding(
        page, Category.TECHNICAL, Severity.MEDIUM, "Mixed content detected",
        details=f"{count} resource(s) loaded over HTTP: {sample}",
        fix="Load every subresource over HTTPS",
    )]


def check_url_length(page: PageRecord) -> list[Finding]:
    url = page.final_url or page.url
    if len(url) <= URL_MAX_LENGTH:
        return []
    return [_finding(
        page, Category.TECHNICAL, Severity.LOW, "URL too long",
        details=f"URL is {len(url)} characters",
        fix=f"Keep URLs under {URL_MAX_LENGTH} characters",
    )]


_SNAPSHOT_FIELDS = ("initial_html", "rendered_html")


def check_rendering(page: PageRecord) -> list[Finding]:
    if not page.rendered or any(f in page.degraded_fields for f in _SNAPSHOT_FIELDS):
        return []
    pct = page.rendering.percentage
    if pct > 150:
        severity = Severity.HIGH
    elif pct > 100:
        severity = Severity.MEDIUM
    elif pct > 50:
        severity = Severity.LOW
    else:
        return []
    return [_finding(
        page, Category.TECHNICAL, severity, "JavaScript-dependent content",
        details=f"{pct:g}% more content after script execution",
        fix="Server-render the primary content so it is present in the initial HTML",
    )]


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

def check_load_time(page: PageRecord) -> list[Finding]:
    if page.load_time_ms <= SLOW_LOAD_MS:
        return []
    return [_finding(
        page, Category.PERFORMANCE, Severity.MEDIUM, "Slow page load",
        details=f"Document loaded in {page.load_time_ms} ms",
        fix="Reduce server response time and render-blocking resources",
    )]


def check_core_metrics(page: PageRecord) -> list[Finding]:
    findings = []
    for name, (label, needs_work, poor, unit) in METRIC_THRESHOLDS.items():
        value = getattr(page.metrics, name)
        if value is None or value <= needs_work:
            continue
        if value > poor:
            severity, message = Severity.HIGH, f"Poor {label}"
        else:
            severity, message = Severity.MEDIUM, f"{label} needs improvement"
        findings.append(_finding(
            page, Category.PERFORMANCE, severity, message,
            details=f"{label} is {value:g}{unit} (target {needs_work:g}{unit})",
        ))
    return findings


DEFAULT_PAGE_RULES: tuple[PageRule, ...] = (
    check_title,
    check_meta_description,
    check_h1,
    check_canonical,
    check_social_tags,
    check_thin_content,
    check_image_alt,
    check_viewport,
    check_robots_meta,
    check_http_version,
    check_compression,
    check_structured_data,
    check_https,
    check_security_headers,
    check_cache_control,
    check_mixed_content,
    check_url_length,
    check_rendering,
    check_load_time,
    check_core_metrics,
)


def evaluate_page(page: PageRecord, rules: Iterable[PageRule] = DEFAULT_PAGE_RULES) -> list[Finding]:
    """Run every rule against *page*; error and non-2xx/3xx pages yield nothing.

    A rule that raises is logged and skipped.
    """
    if not page.is_success:
        return []
    findings: list[Finding] = []
    for rule in rules:
        try:
            findings.extend(rule(page))
        except Exception as exc:
            logger.warning("Rule %s failed for %s: %s", getattr(rule, "__name__", rule), page.url, exc)
    return findings
