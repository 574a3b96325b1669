"""Tests for URL normalization, canonicalization and domain matching."""

import pytest

from siteaudit.models.crawl import CrawlContext
from siteaudit.utils.urls import (
    canonicalize_url,
    get_preferred_url,
    get_root_domain,
    is_binary_asset,
    is_navigable_href,
    is_same_domain,
    normalize_url,
)


class TestNormalizeUrl:
    """normalize_url should produce one stable key per page."""

    @pytest.mark.parametrize("raw, expected", [
        ("HTTPS://Example.COM/About/", "https://example.com/About"),
        ("https://example.com:443/", "https://example.com/"),
        ("http://example.com:80/a", "http://example.com/a"),
        ("http://example.com:8080/a", "http://example.com:8080/a"),
        ("https://example.com/a#section", "https://example.com/a"),
        ("https://example.com//a///b/", "https://example.com/a/b"),
        ("https://example.com", "https://example.com/"),
        ("https://example.com/?b=2&a=1", "https://example.com/?b=2&a=1"),
        ("example.com/about", "https://example.com/about"),
        ("https://a.test/about /", "https://a.test/about%20"),
        ("https://a.test/a b", "https://a.test/a%20b"),
    ])
    def test_normalization_rules(self, raw, expected):
        assert normalize_url(raw) == expected

    @pytest.mark.parametrize("raw", [
        "HTTPS://Example.COM/About/",
        "https://example.com:443//x//y/#frag",
        "example.com",
        "/relative/path/",
        "mailto:someone@example.com",
        "https://[::1]:8443/a/",
        "http://user:pw@Example.com/a/",
        "https://a.test/about /",
        "https://a.test/about #frag",
        "https://a.test/?q= #frag",
        "/ /",
        "",
    ])
    def test_idempotent(self, raw):
        once = normalize_url(raw)
        assert normalize_url(once) == once, "normalize_url is not idempotent for " + repr(raw)

    def test_resolves_against_base(self):
        assert normalize_url("../b/", "https://example.com/a/c") == "https://example.com/b"
        assert normalize_url("#top", "https://example.com/page") == "https://example.com/page"

    def test_non_http_scheme_returned_unchanged(self):
        assert normalize_url("mailto:a@b.c") == "mailto:a@b.c"


class TestCanonicalizeUrl:
    """canonicalize_url applies the crawl's host preferences."""

    def test_www_twin_rewritten_to_preferred_host(self):
        ctx = CrawlContext.from_url("https://www.a.test/")
        assert canonicalize_url("http://a.test/x/", ctx) == "https://www.a.test/x"

    def test_other_subdomain_keeps_host(self):
        ctx = CrawlContext.from_url("https://www.a.test/")
        assert canonicalize_url("https://en.a.test/x", ctx) == "https://en.a.test/x"

    def test_query_sorted_by_key(self):
        ctx = CrawlContext.from_url("https://a.test/")
        assert canonicalize_url("https://a.test/s?z=1&a=2", ctx) == "https://a.test/s?a=2&z=1"

    def test_idempotent(self):
        ctx = CrawlContext.from_url("https://www.a.test/")
        once = canonicalize_url("HTTP://A.test:80//p/?b=1&a=2#f", ctx)
        assert canonicalize_url(once, ctx) == once


class TestDomains:
    """Root-domain heuristic and relaxed same-domain matching."""

    @pytest.mark.parametrize("host, root", [
        ("www.example.com", "example.com"),
        ("en.shop.example.com", "example.com"),
        ("example.com", "example.com"),
        ("www.example.co.uk", "example.co.uk"),
        ("192.168.0.1", "192.168.0.1"),
    ])
    def test_root_domain(self, host, root):
        assert get_root_domain(host) == root

    def test_locale_subdomain_is_same_domain(self):
        assert is_same_domain("en.example.com", "example.com")
        assert is_same_domain("example.com", "en.example.com")
        assert is_same_domain("blog.example.com", "www.example.com")

    def test_different_domains(self):
        assert not is_same_domain("example.org", "example.com")
        assert not is_same_domain("notexample.com", "example.com")
        assert not is_same_domain("", "example.com")

    def test_context_from_redirected_url(self):
        ctx = CrawlContext.from_url("https://www.a.test/")
        assert ctx.preferred_host == "www.a.test"
        assert ctx.preferred_protocol == "https:"
        assert ctx.root_domain == "a.test"


class TestLinkFilters:
    def test_preferred_url(self):
        urls = ["http://example.com/a", "https://example.com/a", "https://www.example.com/a"]
        assert get_preferred_url(urls) == "https://www.example.com/a"
        assert get_preferred_url([]) is None

    @pytest.mark.parametrize("href, ok", [
        ("/about", True),
        ("#top", False),
        ("javascript:void(0)", False),
        ("mailto:a@b.c", False),
        ("tel:123", False),
        ("", False),
    ])
    def test_navigable_href(self, href, ok):
        assert is_navigable_href(href) is ok

    @pytest.mark.parametrize("url, binary", [
        ("https://a.test/file.pdf", True),
        ("https://a.test/img/logo.PNG", True),
        ("https://a.test/about", False),
        ("https://a.test/v1.2/page", False),
        ("https://a.test/", False),
    ])
    def test_binary_asset(self, url, binary):
        assert is_binary_asset(url) is binary
