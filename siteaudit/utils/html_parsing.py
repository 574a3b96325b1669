"""Markup parsing with BeautifulSoup and structured-data analysis."""

import json
import logging
import re
from typing import Any, Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from siteaudit.models.crawl import SchemaInfo
from siteaudit.utils.text_processing import clean_text, count_words
from siteaudit.utils.urls import is_navigable_href

logger = logging.getLogger(__name__)

_IDENTITY_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "Organization": ("name", "url"),
    "Person": ("name",),
}

_INVISIBLE_TAGS = ("script", "style", "noscript", "template", "svg")
_JSON_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)

# Tags whose src (or href, for <link>) is fetched as a subresource.
_SUBRESOURCE_TAGS = ("img", "script", "iframe", "source", "video", "audio", "embed")
_NAVIGATIONAL_RELS = frozenset({"canonical", "alternate", "next", "prev", "author", "shortlink"})
_CSS_URL = re.compile(r"url\(\s*[\"']?(http://[^\"')\s]+)", re.I)


def visible_text(html: str) -> str:
    """Return the human-visible text of *html* with whitespace collapsed."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_INVISIBLE_TAGS):
        tag.decompose()
    return clean_text(soup.get_text(separator=" "))


def _social_tags(soup: BeautifulSoup, prefix: str) -> list[str]:
    """Names of the non-empty ``og:*`` / ``twitter:*`` meta tags, in document order."""
    found: list[str] = []
    for tag in soup.find_all("meta"):
        name = (tag.get("property") or tag.get("name") or "").strip().lower()
        if name.startswith(prefix) and (tag.get("content") or "").strip() and name not in found:
            found.append(name)
    return found


def _insecure_resources(soup: BeautifulSoup) -> list[str]:
    """Subresources referenced with an explicit ``http://`` URL."""
    found: list[str] = []

    def _add(value: Optional[str]) -> None:
        value = (value or "").strip()
        if value.lower().startswith("http://") and value not in found:
            found.append(value)

    for tag in soup.find_all(_SUBRESOURCE_TAGS):
        _add(tag.get("src"))
    for tag in soup.find_all("link", href=True):
        rel = {r.lower() for r in (tag.get("rel") or [])}
        if rel and not rel & _NAVIGATIONAL_RELS:
            _add(tag["href"])
    for tag in soup.find_all(style=True):
        for match in _CSS_URL.finditer(tag["style"]):
            _add(match.group(1))
    for tag in soup.find_all("style"):
        for match in _CSS_URL.finditer(tag.get_text()):
            _add(match.group(1))
    return found


def parse_html(html: str, page_url: str) -> dict[str, Any]:
    """Extract SEO signals from raw markup.

    Used by the non-rendering fallback path and to read head metadata from
    the rendered snapshot.

    Args:
        html: Page markup.
        page_url: URL the markup was served from, for resolving links.

    Returns:
        Dict with title, meta_description, canonical_url, robots_meta,
        has_viewport, h1/h2 text, heading_count, text, word_count, links,
        images, structured_data blocks, the Open Graph and Twitter tag
        names present, and insecure (``http://``) subresource URLs.
    """
    soup = BeautifulSoup(html or "", "html.parser")

    title_tag = soup.find("title")
    title = clean_text(title_tag.get_text()) if title_tag else ""

    meta_desc = ""
    md_tag = soup.find("meta", attrs={"name": re.compile(r"^description$", re.I)})
    if md_tag:
        meta_desc = clean_text(md_tag.get("content", "") or "")

    canonical_url = ""
    for link_tag in soup.find_all("link", href=True):
        rel = [r.lower() for r in (link_tag.get("rel") or [])]
        if "canonical" in rel:
            canonical_url = urljoin(page_url, link_tag["href"].strip())
            break

    robots_meta = ""
    rm_tag = soup.find("meta", attrs={"name": re.compile(r"^robots$", re.I)})
    if rm_tag:
        robots_meta = rm_tag.get("content", "") or ""

    has_viewport = soup.find("meta", attrs={"name": re.compile(r"^viewport$", re.I)}) is not None

    h1_tags = [clean_text(h.get_text()) for h in soup.find_all("h1")]
    h2_tags = [clean_text(h.get_text()) for h in soup.find_all("h2")]
    heading_count = len(soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]))

    structured_data = [
        tag.string or tag.get_text() or ""
        for tag in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)})
    ]
    microdata_types = [
        tag.get("itemtype", "") for tag in soup.find_all(attrs={"itemtype": True})
    ]

    links: list[str] = []
    seen_links: set[str] = set()
    for a_tag in soup.find_all("a", href=True):
        href = a_tag["href"].strip()
        if not is_navigable_href(href):
            continue
        abs_href = urljoin(page_url, href)
        if abs_href not in seen_links:
            seen_links.add(abs_href)
            links.append(abs_href)

    images: list[dict[str, str]] = []
    seen_images: set[str] = set()
    for img in soup.find_all("img"):
        src = img.get("src", "") or img.get("data-src", "")
        if not src:
            continue
        abs_src = urljoin(page_url, src)
        if abs_src in seen_images:
            continue
        seen_images.add(abs_src)
        images.append({"src": abs_src, "alt": img.get("alt", "") or ""})

    og_tags = _social_tags(soup, "og:")
    twitter_tags = _social_tags(soup, "twitter:")
    insecure = _insecure_resources(soup)

    for tag in soup(_INVISIBLE_TAGS):
        tag.decompose()
    text = clean_text(soup.get_text(separator=" "))

    return {
        "title": title,
        "meta_description": meta_desc,
        "canonical_url": canonical_url,
        "robots_meta": robots_meta,
        "has_viewport": has_viewport,
        "h1": h1_tags,
        "h2": h2_tags,
        "heading_count": heading_count,
        "text": text,
        "word_count": count_words(text),
        "links": links,
        "images": images,
        "structured_data": structured_data,
        "microdata_types": microdata_types,
        "og_tags": og_tags,
        "twitter_tags": twitter_tags,
        "insecure_resources": insecure,
    }


# ---------------------------------------------------------------------------
# Structured data
# ---------------------------------------------------------------------------

def _iter_schema_nodes(data: Any) -> Iterable[dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_schema_nodes(item)
    elif isinstance(data, dict):
        if "@graph" in data:
            yield from _iter_schema_nodes(data["@graph"])
        if "@type" in data:
            yield data


def _type_names(node: dict[str, Any]) -> list[str]:
    raw = node.get("@type")
    values = raw if isinstance(raw, list) else [raw]
    return [str(v).rsplit("/", 1)[-1] for v in values if v]


def _identity_url(node: dict[str, Any]) -> Any:
    if node.get("url"):
        return node["url"]
    same_as = node.get("sameAs")
    if isinstance(same_as, list):
        return same_as[0] if same_as else None
    return same_as


def analyze_structured_data(
    blocks: Iterable[str],
    microdata_types: Iterable[str] = (),
) -> SchemaInfo:
    """Summarize JSON-LD blocks and microdata item types.

    An Organization schema needs ``name`` and ``url`` and a Person schema
    needs ``name`` to count as a complete identity schema.
    """
    types: dict[str, None] = {}
    identity_type: Optional[str] = None
    missing: tuple[str, ...] = ()

    for block in blocks:
        cleaned = _JSON_COMMENT.sub("", block or "").strip()
        if not cleaned:
            continue
        try:
            data = json.loads(cleaned)
        except ValueError as exc:
            logger.debug("Skipping invalid JSON-LD block: %s", exc)
            continue
        for node in _iter_schema_nodes(data):
            for name in _type_names(node):
                types.setdefault(name, None)
                if identity_type is None and name in _IDENTITY_REQUIRED_FIELDS:
                    identity_type = name
                    present = {"name": node.get("name"), "url": _identity_url(node)}
                    missing = tuple(
                        f for f in _IDENTITY_REQUIRED_FIELDS[name] if not present.get(f)
                    )

    for itemtype in microdata_types:
        for value in str(itemtype).split():
            name = value.rstrip("/").rsplit("/", 1)[-1]
            if not name:
                continue
            types.setdefault(name, None)
            if identity_type is None and name in _IDENTITY_REQUIRED_FIELDS:
                identity_type = name

    return SchemaInfo(
        has_schema=bool(types),
        types=tuple(types),
        has_identity_schema=identity_type is not None,
        identity_type=identity_type,
        missing_fields=missing,
    )
