"""Typed records shared across the crawl pipeline."""

from siteaudit.models.crawl import (
    CrawlTask,
    CrawlContext,
    RedirectResult,
    PageMetrics,
    RenderingStats,
    SchemaInfo,
    TechnicalChecks,
    PageRecord,
)
from siteaudit.models.issue import (
    Severity,
    Category,
    Finding,
    Issue,
    ConsolidatedIssues,
)
from siteaudit.models.audit import (
    CrawlDiagnostics,
    AuditResult,
)

__all__ = [
    "CrawlTask",
    "CrawlContext",
    "RedirectResult",
    "PageMetrics",
    "RenderingStats",
    "SchemaInfo",
    "TechnicalChecks",
    "PageRecord",
    "Severity",
    "Category",
    "Finding",
    "Issue",
    "ConsolidatedIssues",
    "CrawlDiagnostics",
    "AuditResult",
]
