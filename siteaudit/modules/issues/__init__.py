"""Finding rules and the issue consolidation engine."""

from siteaudit.modules.issues.consolidator import (
    ISSUE_PATTERNS,
    IssueConsolidator,
    consolidate_findings,
    normalize_message,
)
from siteaudit.modules.issues.rules import DEFAULT_PAGE_RULES, PageRule, evaluate_page
from siteaudit.modules.issues.site_wide import site_wide_findings

__all__ = [
    "ISSUE_PATTERNS",
    "IssueConsolidator",
    "consolidate_findings",
    "normalize_message",
    "DEFAULT_PAGE_RULES",
    "PageRule",
    "evaluate_page",
    "site_wide_findings",
]
