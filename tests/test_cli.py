"""Tests for the Typer CLI."""

import json

from typer.testing import CliRunner

from siteaudit.cli import app
from siteaudit.exceptions import SeedResolutionError
from siteaudit.models.audit import AuditResult, CrawlDiagnostics
from siteaudit.models.crawl import CrawlContext, PageRecord
from siteaudit.models.issue import Finding
from siteaudit.modules.issues.consolidator import consolidate_findings

runner = CliRunner()


def _result(url):
    issues = consolidate_findings([
        Finding(category="On-page", severity="High", message="Missing meta description",
                affected_pages=(url,)),
    ])
    return AuditResult(
        seed_url=url,
        final_url=url,
        redirect_chain=(url,),
        context=CrawlContext.from_url(url),
        pages=(PageRecord(url=url, final_url=url, status_code=200, word_count=42),),
        issues=issues,
        diagnostics=CrawlDiagnostics(status="success", pages_found=1, pages_successful=1,
                                     message="Crawled 1 pages successfully"),
        elapsed_seconds=0.1,
    )


class FakeAuditor:
    """Stands in for SiteAuditor; records the config it was built with."""

    configs = []
    error = None

    def __init__(self, config, *args, **kwargs):
        FakeAuditor.configs.append(config)

    async def run_full_audit(self, url=None):
        if FakeAuditor.error is not None:
            raise FakeAuditor.error
        return _result(url)


def _patch_auditor(monkeypatch, error=None):
    import siteaudit.modules.technical_audit.auditor as auditor_module

    FakeAuditor.configs = []
    FakeAuditor.error = error
    monkeypatch.setattr(auditor_module, "SiteAuditor", FakeAuditor)


class TestCli:
    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "audit" in result.output
        assert "show-config" in result.output

    def test_show_config(self, tmp_path):
        cfg = tmp_path / "settings.yaml"
        cfg.write_text("crawl:\n  max_pages: 9\n", encoding="utf-8")
        result = runner.invoke(app, ["show-config", "--config", str(cfg)])
        assert result.exit_code == 0, result.output
        assert "max_pages" in result.output
        assert "9" in result.output

    def test_unknown_tier_exits_with_error(self, tmp_path):
        result = runner.invoke(app, [
            "audit", "https://a.test/", "--tier", "enterprise",
            "--config", str(tmp_path / "missing.yaml"),
        ])
        assert result.exit_code == 1
        assert "Unknown tier" in result.output

    def test_audit_writes_json(self, tmp_path, monkeypatch):
        _patch_auditor(monkeypatch)
        out = tmp_path / "out" / "audit.json"

        result = runner.invoke(app, [
            "audit", "https://a.test/", "--tier", "starter", "--no-browser",
            "--config", str(tmp_path / "missing.yaml"), "--output", str(out),
        ])

        assert result.exit_code == 0, result.output
        assert "Audit complete" in result.output
        config = FakeAuditor.configs[0]
        assert config.max_pages == 3
        assert config.max_depth == 2
        assert config.browser_enabled is False
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["final_url"] == "https://a.test/"
        assert data["issues"]["issues"][0]["key"] == "meta-missing"

    def test_explicit_limits_beat_tier(self, tmp_path, monkeypatch):
        _patch_auditor(monkeypatch)
        result = runner.invoke(app, [
            "audit", "https://a.test/", "--tier", "starter", "--max-pages", "8",
            "--config", str(tmp_path / "missing.yaml"),
        ])
        assert result.exit_code == 0, result.output
        assert FakeAuditor.configs[0].max_pages == 8

    def test_seed_failure_exits_with_error(self, tmp_path, monkeypatch):
        _patch_auditor(monkeypatch, error=SeedResolutionError("https://nope.test/", "refused"))
        result = runner.invoke(app, [
            "audit", "https://nope.test/", "--config", str(tmp_path / "missing.yaml"),
        ])
        assert result.exit_code == 1
        assert "Could not resolve seed URL" in result.output
