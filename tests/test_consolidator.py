"""Tests for the issue consolidation engine."""

import itertools

import pytest

from siteaudit.models.issue import Category, Finding, Severity
from siteaudit.modules.issues.consolidator import (
    IssueConsolidator,
    consolidate_findings,
    normalize_message,
)


def _finding(message, severity="Medium", category="On-page", pages=("https://a.test/",), **kw):
    return Finding(category=category, severity=severity, message=message, affected_pages=pages, **kw)


def _snapshot(result):
    """Order-insensitive view of a consolidated result."""
    return {
        (i.category, i.key): (i.severity, i.affected_pages)
        for i in result.issues
    }


class TestNormalizeMessage:
    @pytest.mark.parametrize("message, key", [
        ("Title tag too short", "title-too-short"),
        ("Page title too short (12 chars)", "title-too-short"),
        ("Missing meta description", "meta-missing"),
        ("missing meta description", "meta-missing"),
        ("Thin content", "content-thin"),
        ("Page has only 120 words", "content-thin"),
        ("Poor LCP", "lcp-slow"),
        ("LCP needs improvement", "lcp-slow"),
        ("Duplicate title tags", "title-duplicate"),
        ("Mixed content detected", "mixed-content"),
        ("Site not using HTTPS", "https-missing"),
        ("Missing HSTS header", "hsts-missing"),
        ("Missing Open Graph tags", "open-graph-missing"),
        ("Redirect chain detected", "redirect-chain"),
        ("Duplicate URL variants", "url-variants"),
        ("Orphan pages detected", "orphan-pages"),
    ])
    def test_known_phrasings(self, message, key):
        assert normalize_message(message) == key

    def test_unknown_message_lowercased_and_collapsed(self):
        assert normalize_message("  Something   Odd\nHere ") == "something odd here"


class TestConsolidation:
    """Merge rule, ordering and freezing."""

    def test_duplicate_missing_meta_merges(self):
        engine = IssueConsolidator()
        engine.consolidate(_finding("Missing meta description", "High", pages=("https://a.test/",)))
        engine.consolidate(_finding("missing meta description", "High", pages=("https://a.test/about",)))
        result = engine.finalize()

        assert len(result) == 1
        issue = result.issues[0]
        assert issue.category is Category.ON_PAGE
        assert set(issue.affected_pages) == {"https://a.test/", "https://a.test/about"}
        assert issue.occurrences == 2

    def test_different_phrasings_collapse(self):
        result = consolidate_findings([
            _finding("Title tag too short", pages=("https://a.test/1",)),
            _finding("Page title too short", pages=("https://a.test/2",)),
        ])
        assert len(result) == 1
        assert result.issues[0].key == "title-too-short"
        assert result.issues[0].message == "Title tag too short"

    def test_same_message_different_category_stays_separate(self):
        result = consolidate_findings([
            _finding("Thin content", category="Content"),
            _finding("Thin content", category="On-page"),
        ])
        assert len(result) == 2

    def test_severity_is_maximum(self):
        result = consolidate_findings([
            _finding("Poor LCP", "Low", category="Performance", pages=("https://a.test/1",)),
            _finding("LCP needs improvement", "High", category="Performance", pages=("https://a.test/2",)),
            _finding("Poor LCP", "Medium", category="Performance", pages=("https://a.test/3",)),
        ])
        assert result.issues[0].severity is Severity.HIGH

    def test_first_non_empty_details_and_fix_kept(self):
        result = consolidate_findings([
            _finding("Missing H1 heading"),
            _finding("Missing H1 heading", details="first details", fix="first fix"),
            _finding("Missing H1 heading", details="second details", fix="second fix"),
        ])
        issue = result.issues[0]
        assert issue.details == "first details"
        assert issue.fix == "first fix"

    def test_idempotent_page_union(self):
        finding = _finding("Missing meta description", pages=("https://a.test/",))
        engine = IssueConsolidator()
        engine.consolidate(finding)
        engine.consolidate(finding)
        issue = engine.finalize().issues[0]
        assert issue.affected_pages == ("https://a.test/",)

    def test_priority_order_with_insertion_tiebreak(self):
        result = consolidate_findings([
            _finding("Low one", "Low"),
            _finding("Medium one", "Medium"),
            _finding("High one", "High"),
            _finding("Medium two", "Medium"),
            _finding("High two", "High"),
        ])
        assert [i.message for i in result.issues] == [
            "High one", "High two", "Medium one", "Medium two", "Low one",
        ]
        assert [i.priority for i in result.issues] == [10, 10, 5, 5, 2]

    def test_category_partitions(self):
        result = consolidate_findings([
            _finding("Missing viewport meta tag", "High", category="Technical"),
            _finding("Missing H1 heading", "High"),
            _finding("Slow page load", "Medium", category="Performance"),
            _finding("No structured data", "Medium", category="Technical"),
        ])
        assert set(result.by_category) == {Category.TECHNICAL, Category.ON_PAGE, Category.PERFORMANCE}
        technical = [i.message for i in result.by_category[Category.TECHNICAL]]
        assert technical == ["Missing viewport meta tag", "No structured data"]
        assert sum(len(v) for v in result.by_category.values()) == len(result)

    def test_finalize_freezes(self):
        engine = IssueConsolidator()
        engine.consolidate(_finding("Missing H1 heading"))
        first = engine.finalize()
        assert engine.finalize() is first
        with pytest.raises(RuntimeError):
            engine.consolidate(_finding("Missing H1 heading"))

    def test_category_and_severity_parsing(self):
        finding = Finding(category="on-page", severity="high", message="x")
        assert finding.category is Category.ON_PAGE
        assert finding.severity is Severity.HIGH
        with pytest.raises(ValueError):
            Finding(category="Marketing", severity="High", message="x")


class TestCommutativity:
    """The merged result must not depend on arrival order."""

    FINDINGS = [
        _finding("Missing meta description", "Medium", pages=("https://a.test/",)),
        _finding("missing meta description", "High", pages=("https://a.test/about",)),
        _finding("Title tag too short", "Medium", pages=("https://a.test/",)),
        _finding("Page title too short", "Low", pages=("https://a.test/blog",)),
        _finding("Poor LCP", "High", category="Performance", pages=("https://a.test/",)),
        _finding("Missing meta description", "Low", pages=("https://a.test/",)),
    ]

    def test_every_permutation_gives_same_issues(self):
        expected = _snapshot(consolidate_findings(self.FINDINGS))
        for perm in itertools.permutations(self.FINDINGS):
            got = _snapshot(consolidate_findings(perm))
            assert got == expected, "Order-dependent result for permutation " + str(
                [f.message for f in perm]
            )

    def test_expected_merged_values(self):
        snap = _snapshot(consolidate_findings(self.FINDINGS))
        assert snap[(Category.ON_PAGE, "meta-missing")] == (
            Severity.HIGH, ("https://a.test/", "https://a.test/about"),
        )
        assert snap[(Category.ON_PAGE, "title-too-short")] == (
            Severity.MEDIUM, ("https://a.test/", "https://a.test/blog"),
        )
