"""URL canonicalization and domain matching.

All functions here are pure: the same input always produces the same
output, and :func:`normalize_url` / :func:`canonicalize_url` are
idempotent. Root-domain resolution is a heuristic built on a short list of
multi-part public suffixes, not a full public-suffix-list lookup.
"""

from __future__ import annotations

import ipaddress
import re
from typing import TYPE_CHECKING, Iterable, Optional
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

if TYPE_CHECKING:
    from siteaudit.models.crawl import CrawlContext

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_PORTS = {"http": 80, "https": 443}
_DUPLICATE_SLASHES = re.compile(r"/{2,}")
_WHITESPACE = re.compile(r"\s")

_MULTI_PART_SUFFIXES = frozenset({
    "co.uk", "org.uk", "ac.uk", "gov.uk",
    "com.au", "net.au", "org.au",
    "co.jp", "co.nz", "co.za", "co.in",
    "com.br", "com.mx", "com.tr", "com.sg",
})

_NON_NAVIGABLE_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:", "sms:")

_BINARY_EXTENSIONS = frozenset({
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico", ".bmp",
    ".tif", ".tiff", ".avif", ".mp3", ".mp4", ".m4a", ".avi", ".mov", ".wmv",
    ".webm", ".wav", ".ogg", ".zip", ".rar", ".gz", ".tgz", ".tar", ".7z",
    ".exe", ".dmg", ".msi", ".apk", ".doc", ".docx", ".xls", ".xlsx", ".ppt",
    ".pptx", ".csv", ".css", ".js", ".json", ".xml", ".txt", ".woff",
    ".woff2", ".ttf", ".eot",
})


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _encode_whitespace(value: str) -> str:
    return _WHITESPACE.sub(lambda m: quote(m.group(0)), value)


def _normalize_path(path: str) -> str:
    path = _encode_whitespace(_DUPLICATE_SLASHES.sub("/", path))
    if not path:
        return "/"
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def normalize_url(url: str, base: Optional[str] = None) -> str:
    """Normalize *url* to a comparable key.

    Relative references are resolved against *base* first. Scheme and host
    are lower-cased, default ports and fragments are dropped, duplicate
    slashes collapse, whitespace in the path and query is
    percent-encoded, and a single trailing slash is removed except on the
    root path. Scheme-less input such as ``example.com/about`` is treated
    as https. Input that cannot be parsed is returned stripped but
    otherwise unchanged.

    Args:
        url: Absolute or relative URL.
        base: Optional base URL for resolving relative references.

    Returns:
        The normalized URL string.
    """
    raw = (url or "").strip()
    try:
        if base:
            raw = urljoin(base, raw)
        parts = urlsplit(raw)
        if not parts.scheme and not parts.netloc:
            if raw.startswith("/") or not raw:
                # Relative path with nothing to resolve against.
                return urlunsplit(("", "", _normalize_path(parts.path), _encode_whitespace(parts.query), ""))
            parts = urlsplit("https://" + raw)
        elif not parts.scheme:
            parts = urlsplit("https:" + raw)

        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS:
            return raw
        host = (parts.hostname or "").rstrip(".")
        port = parts.port
    except ValueError:
        return raw

    if not host:
        return raw
    if ":" in host:
        host = f"[{host}]"

    netloc = host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"
    userinfo = parts.netloc.rpartition("@")[0]
    if userinfo:
        netloc = f"{userinfo}@{netloc}"

    query = _encode_whitespace(parts.query)
    return urlunsplit((scheme, netloc, _normalize_path(parts.path), query, ""))


def _sort_query(query: str) -> str:
    pairs = [p for p in query.split("&") if p]
    return "&".join(sorted(pairs, key=lambda p: p.split("=", 1)[0]))


def canonicalize_url(
    url: str,
    context: "CrawlContext",
    base: Optional[str] = None,
) -> str:
    """Normalize *url* and apply the crawl's host preferences.

    Links to the www / non-www twin of the preferred host are rewritten to
    the preferred host and scheme, so ``http://a.test/x`` and
    ``https://www.a.test/x`` share one key when the crawl settled on
    ``https://www.a.test``. Other subdomains keep their own host. Query
    parameters are sorted by name.
    """
    normalized = normalize_url(url, base)
    try:
        parts = urlsplit(normalized)
        host = parts.hostname or ""
        port = parts.port
    except ValueError:
        return normalized
    if parts.scheme not in _DEFAULT_PORTS or not host:
        return normalized

    scheme = parts.scheme
    netloc = parts.netloc
    if port is None and "@" not in netloc and is_www_variant(host, context.preferred_host):
        scheme = context.preferred_scheme
        netloc = context.preferred_host

    return urlunsplit((scheme, netloc, parts.path, _sort_query(parts.query), ""))


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------

def _clean_host(host: str) -> str:
    host = (host or "").strip().lower().rstrip(".")
    if "://" in host:
        host = urlsplit(host).hostname or ""
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.strip("[]")


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def get_root_domain(host: str) -> str:
    """Return the registrable root of *host* (``en.shop.example.co.uk`` -> ``example.co.uk``)."""
    host = _clean_host(host)
    if not host or _is_ip(host):
        return host
    labels = [label for label in host.split(".") if label]
    if len(labels) <= 2:
        return ".".join(labels)
    if ".".join(labels[-2:]) in _MULTI_PART_SUFFIXES:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def _within(host: str, root: str) -> bool:
    return bool(root) and (host == root or host.endswith("." + root))


def is_same_domain(host_a: str, host_b: str) -> bool:
    """True if the hosts are equal or one sits under the other's root domain.

    ``en.example.com`` and ``example.com`` are the same domain, as are
    ``blog.example.com`` and ``www.example.com``.
    """
    a = _clean_host(host_a)
    b = _clean_host(host_b)
    if not a or not b:
        return False
    if a == b:
        return True
    return _within(a, get_root_domain(b)) or _within(b, get_root_domain(a))


def is_www_variant(host_a: str, host_b: str) -> bool:
    """True if the hosts only differ by a leading ``www.``."""
    a = _clean_host(host_a)
    b = _clean_host(host_b)
    return bool(a) and a.removeprefix("www.") == b.removeprefix("www.")


def extract_host(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def base_url(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


# ---------------------------------------------------------------------------
# Variant selection and link filters
# ---------------------------------------------------------------------------

def get_preferred_url(urls: Iterable[str]) -> Optional[str]:
    """Pick the preferred URL among variants of the same page.

    https beats http, a www host beats a bare one, and the shortest URL
    wins the remaining ties. Returns None for an empty input.
    """
    candidates = [u for u in urls if u]
    if not candidates:
        return None

    def _rank(url: str) -> tuple[int, int, int]:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        return (
            0 if parts.scheme == "https" else 1,
            0 if host.startswith("www.") else 1,
            len(url),
        )

    return min(candidates, key=_rank)


def is_navigable_href(href: str) -> bool:
    """False for anchors, javascript:, mailto:, tel: and similar hrefs."""
    href = (href or "").strip()
    if not href:
        return False
    return not href.lower().startswith(_NON_NAVIGABLE_PREFIXES)


def is_binary_asset(url: str) -> bool:
    """True if *url* points at a file extension that is not an HTML page."""
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return False
    return "." + last.rsplit(".", 1)[-1] in _BINARY_EXTENSIONS
