"""Integration tests for Site Audit.

Covers package imports, the shipped settings file, CLI help smoke tests
and syntax validation of every Python file in the project.
"""

import ast
import importlib
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Project root (conftest.py already puts it on sys.path)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent


# ===========================================================================
# 1. Module imports
# ===========================================================================
class TestModuleImports:
    """All packages should be importable and export their public classes."""

    @pytest.mark.parametrize("module_path,names", [
        ("siteaudit", ["__version__"]),
        ("siteaudit.config", ["CrawlConfig", "load_config", "tier_limits"]),
        ("siteaudit.models", ["PageRecord", "CrawlContext", "Finding", "Issue", "AuditResult"]),
        ("siteaudit.modules.technical_audit", [
            "HttpClient", "BrowserSessionManager", "PageExtractor", "CrawlScheduler", "SiteAuditor",
        ]),
        ("siteaudit.modules.issues", ["IssueConsolidator", "normalize_message", "evaluate_page"]),
    ])
    def test_module_importable(self, module_path, names):
        mod = importlib.import_module(module_path)
        for name in names:
            assert hasattr(mod, name), (
                "Name " + name + " not found in " + module_path
            )

    def test_exceptions_hierarchy(self):
        from siteaudit import exceptions as exc

        assert issubclass(exc.RenderTimeoutError, exc.SessionError)
        assert issubclass(exc.SessionError, exc.RenderError)
        assert issubclass(exc.ContentTypeError, exc.RenderError)
        assert not issubclass(exc.ContentTypeError, exc.SessionError)
        assert issubclass(exc.SeedResolutionError, exc.CrawlError)


# ===========================================================================
# 2. Settings YAML
# ===========================================================================
class TestSettingsYaml:
    """The shipped configuration file should load cleanly."""

    def test_settings_parseable(self):
        import yaml
        settings_path = PROJECT_ROOT / "config" / "settings.yaml"
        assert settings_path.exists(), "config/settings.yaml not found"
        with open(settings_path) as fh:
            config = yaml.safe_load(fh)
        for section in ("crawl", "http", "browser", "render", "logging"):
            assert section in config, (
                "Missing config section: " + section
            )

    def test_settings_match_defaults(self, monkeypatch):
        from siteaudit.config import CrawlConfig, load_config

        for name in ("SITEAUDIT_ENTRY_URL", "SITEAUDIT_MAX_PAGES", "SITEAUDIT_MAX_DEPTH", "SITEAUDIT_USER_AGENT"):
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)
        cfg = load_config(str(PROJECT_ROOT / "config" / "settings.yaml"), env_path=None)
        assert cfg == CrawlConfig()


# ===========================================================================
# 3. CLI commands (smoke test via CliRunner)
# ===========================================================================
class TestCLICommands:
    """CLI help should work for all registered commands."""

    def _get_runner_and_app(self):
        from typer.testing import CliRunner
        from siteaudit.cli import app
        return CliRunner(), app

    @pytest.mark.parametrize("command", ["audit", "show-config"])
    def test_command_help(self, command):
        runner, cli_app = self._get_runner_and_app()
        result = runner.invoke(cli_app, [command, "--help"])
        assert result.exit_code == 0, (
            "Command '" + command + "' --help failed with exit code "
            + str(result.exit_code) + ": " + result.output
        )


# ===========================================================================
# 4. All Python files syntax validation
# ===========================================================================
class TestAllPythonFilesSyntax:
    """Every .py file in siteaudit/ and tests/ should pass ast.parse."""

    def _collect_python_files(self):
        files = []
        for directory in ("siteaudit", "tests"):
            base = PROJECT_ROOT / directory
            if base.exists():
                for py_file in base.rglob("*.py"):
                    if "__pycache__" in py_file.parts:
                        continue
                    files.append(py_file)
        return sorted(files)

    def test_all_python_files_parse(self):
        py_files = self._collect_python_files()
        assert len(py_files) > 0, "No Python files found"
        errors = []
        for py_file in py_files:
            try:
                ast.parse(py_file.read_text(encoding="utf-8"))
            except SyntaxError as exc:
                rel = py_file.relative_to(PROJECT_ROOT)
                errors.append(str(rel) + ": " + str(exc))
        if errors:
            msg = "Python syntax errors found in " + str(len(errors)) + " files:\n"
            msg += "\n".join(errors[:20])
            pytest.fail(msg)


# ===========================================================================
# 5. Key packages importable
# ===========================================================================
class TestRequirementsInstallable:
    """Key packages from requirements.txt should be importable."""

    @pytest.mark.parametrize("package", [
        "aiohttp",
        "bs4",
        "playwright",
        "typer",
        "rich",
        "yaml",
        "dotenv",
    ])
    def test_package_importable(self, package):
        importlib.import_module(package)
