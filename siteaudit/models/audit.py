"""Top-level audit output."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from siteaudit.models.crawl import CrawlContext, PageRecord
from siteaudit.models.issue import ConsolidatedIssues


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class CrawlDiagnostics:
    """Health summary of a finished crawl."""

    status: str
    pages_found: int = 0
    pages_successful: int = 0
    pages_failed: int = 0
    rendered_pages: int = 0
    js_dependent_pages: int = 0
    average_load_time_ms: float = 0.0
    pages_per_second: float = 0.0
    problems: tuple[str, ...] = ()
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "pages_found": self.pages_found,
            "pages_successful": self.pages_successful,
            "pages_failed": self.pages_failed,
            "rendered_pages": self.rendered_pages,
            "js_dependent_pages": self.js_dependent_pages,
            "average_load_time_ms": self.average_load_time_ms,
            "pages_per_second": self.pages_per_second,
            "problems": list(self.problems),
            "message": self.message,
        }


@dataclass(frozen=True)
class AuditResult:
    """Pages and consolidated issues for one audited site."""

    seed_url: str
    final_url: str
    redirect_chain: tuple[str, ...]
    context: CrawlContext
    pages: tuple[PageRecord, ...]
    issues: ConsolidatedIssues
    diagnostics: CrawlDiagnostics
    robots_data: dict[str, Any] = field(default_factory=dict)
    sitemap_data: dict[str, Any] = field(default_factory=dict)
    elapsed_seconds: float = 0.0
    timestamp: str = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "seed_url": self.seed_url,
            "final_url": self.final_url,
            "redirect_chain": list(self.redirect_chain),
            "context": self.context.to_dict(),
            "timestamp": self.timestamp,
            "elapsed_seconds": self.elapsed_seconds,
            "pages": [p.to_dict() for p in self.pages],
            "issues": self.issues.to_dict(),
            "diagnostics": self.diagnostics.to_dict(),
            "robots_data": self.robots_data,
            "sitemap_data": self.sitemap_data,
        }
