"""Issue consolidation: merge equivalent findings into prioritized issues.

Findings are keyed by ``(category, normalized message)``. Equivalent
findings union their affected pages, keep the highest severity and keep
the first non-empty details and fix text. The result does not depend on
the order findings arrive in, apart from the tie-break between issues of
equal priority, which follows first appearance.
"""

import logging
import re
from typing import Iterable, Optional

from siteaudit.models.issue import Category, ConsolidatedIssues, Finding, Issue

logger = logging.getLogger(__name__)

# (pattern, key). First match wins; patterns are matched case-insensitively
# against the stripped message.
ISSUE_PATTERNS: list[tuple[str, str]] = [
    (r"^(title tag too short|page title too short|title too short|short title)", "title-too-short"),
    (r"^(title tag too long|page title too long|title too long|long title)", "title-too-long"),
    (r"^(missing title|title tag missing|missing page title|no title)", "title-missing"),
    (r"^(meta description too short|short meta description)", "meta-too-short"),
    (r"^(meta description too long|long meta description)", "meta-too-long"),
    (r"^(missing meta description|meta description missing|no meta description)", "meta-missing"),
    (r"^duplicate meta description", "meta-duplicate"),
    (r"^duplicate (title|page title)", "title-duplicate"),
    (r"^(missing h1|no h1|h1 (tag )?missing)", "h1-missing"),
    (r"^(multiple h1|more than one h1)", "h1-multiple"),
    (r"^(images? missing alt|missing alt text|images? without alt)", "alt-missing"),
    (r"^(no structured data|missing (schema|structured data))", "schema-missing"),
    (r"^(no identity schema|missing (organization|identity) schema)", "identity-schema-missing"),
    (r"^incomplete identity schema", "identity-schema-incomplete"),
    (r"^mixed content", "mixed-content"),
    (r"^(site not using https|no https)", "https-missing"),
    (r"^(missing hsts|hsts header missing)", "hsts-missing"),
    (r"^(missing cache-control|no cache-control)", "cache-control-missing"),
    (r"^redirect chain", "redirect-chain"),
    (r"^url too long", "url-too-long"),
    (r"^(duplicate url variants|url variants)", "url-variants"),
    (r"^orphan pages?", "orphan-pages"),
    (r"^(no compression|compression not enabled|missing compression)", "no-compression"),
    (r"^(brotli compression not enabled|no brotli)", "no-brotli"),
    (r"^(missing canonical|canonical tag missing|no canonical)", "canonical-missing"),
    (r"^canonical (url )?points to a different", "canonical-mismatch"),
    (r"^(missing open graph|no open graph)", "open-graph-missing"),
    (r"^(missing twitter card|no twitter card)", "twitter-card-missing"),
    (r"^(slow lcp|poor lcp|lcp needs improvement|largest contentful paint)", "lcp-slow"),
    (r"^(high tbt|poor tbt|tbt needs improvement|total blocking time)", "tbt-high"),
    (r"^(slow fcp|poor fcp|fcp needs improvement|first contentful paint)", "fcp-slow"),
    (r"^(poor cls|cls needs improvement|cumulative layout shift)", "cls-high"),
    (r"^(slow fid|poor fid|fid needs improvement|first input delay)", "fid-slow"),
    (r"^(slow ttfb|poor ttfb|ttfb needs improvement|time to first byte)", "ttfb-slow"),
    (r"^(thin content|page has only|word count)", "content-thin"),
]

_COMPILED_PATTERNS = [(re.compile(p, re.IGNORECASE), key) for p, key in ISSUE_PATTERNS]
_WHITESPACE = re.compile(r"\s+")


def normalize_message(message: str) -> str:
    """Map a finding message to its equivalence key.

    Known phrasings collapse to a fixed slug (``"Page title too short"`` and
    ``"Title tag too short"`` both become ``title-too-short``). Anything
    else is lowercased with whitespace collapsed.
    """
    text = _WHITESPACE.sub(" ", message or "").strip()
    for pattern, key in _COMPILED_PATTERNS:
        if pattern.search(text):
            return key
    return text.lower()


class _IssueBuilder:
    """Mutable accumulator behind one Issue until the engine is finalized."""

    __slots__ = ("key", "category", "severity", "message", "details", "fix", "pages", "occurrences")

    def __init__(self, key: str, finding: Finding) -> None:
        self.key = key
        self.category = finding.category
        self.severity = finding.severity
        self.message = finding.message
        self.details = finding.details or None
        self.fix = finding.fix or None
        # dict keys as an insertion-ordered set
        self.pages: dict[str, None] = dict.fromkeys(finding.affected_pages)
        self.occurrences = 1

    def merge(self, finding: Finding) -> None:
        for page in finding.affected_pages:
            self.pages.setdefault(page, None)
        if finding.severity.rank > self.severity.rank:
            self.severity = finding.severity
        if not self.details and finding.details:
            self.details = finding.details
        if not self.fix and finding.fix:
            self.fix = finding.fix
        self.occurrences += 1

    def build(self) -> Issue:
        return Issue(
            key=self.key,
            category=self.category,
            severity=self.severity,
            message=self.message,
            details=self.details,
            fix=self.fix,
            affected_pages=tuple(sorted(self.pages)),
            occurrences=self.occurrences,
        )


class IssueConsolidator:
    """Reduce a stream of findings to one issue per equivalence key.

    Usage::

        engine = IssueConsolidator()
        engine.consolidate(Finding("On-page", "High", "Missing meta description",
                                   affected_pages=("https://a.test/",)))
        issues = engine.finalize()
    """

    def __init__(self) -> None:
        self._builders: dict[tuple[Category, str], _IssueBuilder] = {}
        self._result: Optional[ConsolidatedIssues] = None

    def __len__(self) -> int:
        return len(self._builders)

    @staticmethod
    def key_for(finding: Finding) -> tuple[Category, str]:
        return finding.category, normalize_message(finding.message)

    def consolidate(self, finding: Finding) -> None:
        """Merge one finding into the engine.

        Raises:
            RuntimeError: If the engine has already been finalized.
        """
        if self._result is not None:
            raise RuntimeError("Cannot consolidate findings after finalize()")
        key = self.key_for(finding)
        builder = self._builders.get(key)
        if builder is None:
            self._builders[key] = _IssueBuilder(key[1], finding)
        else:
            builder.merge(finding)

    def consolidate_all(self, findings: Iterable[Finding]) -> None:
        for finding in findings:
            self.consolidate(finding)

    def finalize(self) -> ConsolidatedIssues:
        """Freeze the engine and return issues ordered by priority.

        Issues of equal priority keep the order in which their key was
        first seen. Calling it again returns the same result.
        """
        if self._result is not None:
            return self._result

        issues = [builder.build() for builder in self._builders.values()]
        # sorted() is stable, so equal priorities keep insertion order.
        ordered = tuple(sorted(issues, key=lambda issue: -issue.priority))

        by_category: dict[Category, tuple[Issue, ...]] = {}
        for category in Category:
            members = tuple(i for i in ordered if i.category is category)
            if members:
                by_category[category] = members

        self._result = ConsolidatedIssues(issues=ordered, by_category=by_category)
        logger.info(
            "Consolidated %d findings into %d issues",
            sum(b.occurrences for b in self._builders.values()),
            len(ordered),
        )
        return self._result


def consolidate_findings(findings: Iterable[Finding]) -> ConsolidatedIssues:
    """One-shot helper: consolidate *findings* and finalize."""
    engine = IssueConsolidator()
    engine.consolidate_all(findings)
    return engine.finalize()
