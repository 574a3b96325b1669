"""Crawl-and-render pipeline: HTTP client, browser session, extractor, scheduler."""

from siteaudit.modules.technical_audit.http_client import HttpClient
from siteaudit.modules.technical_audit.session import (
    BrowserSessionManager,
    PlaywrightDriver,
    SessionState,
)
from siteaudit.modules.technical_audit.interactions import ContentExpander
from siteaudit.modules.technical_audit.renderer import PageExtractor
from siteaudit.modules.technical_audit.crawler import CrawlScheduler
from siteaudit.modules.technical_audit.diagnostics import analyze_crawl
from siteaudit.modules.technical_audit.auditor import SiteAuditor

__all__ = [
    "HttpClient",
    "BrowserSessionManager",
    "PlaywrightDriver",
    "SessionState",
    "ContentExpander",
    "PageExtractor",
    "CrawlScheduler",
    "analyze_crawl",
    "SiteAuditor",
]
