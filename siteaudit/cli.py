"""Typer CLI application for Site Audit.

Provides ``audit`` to crawl, render and audit a site and ``show-config``
to print the effective configuration.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from siteaudit.config import DEFAULT_CONFIG_PATH, CrawlConfig, load_config, tier_limits
from siteaudit.exceptions import SeedResolutionError
from siteaudit.models.audit import AuditResult

console = Console()
app = typer.Typer(
    name="siteaudit",
    help="Site Audit -- crawl, render and audit a website for SEO issues.",
    add_completion=False,
    no_args_is_help=True,
)

_SEVERITY_STYLES = {"High": "red", "Medium": "yellow", "Low": "cyan"}
_STATUS_STYLES = {"success": "green", "partial": "yellow", "failed": "red"}


def _setup_logging(verbose: bool = False, level_name: str = "INFO") -> None:
    """Configure logging level and format."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context."""
    return asyncio.run(coro)


def _build_config(
    config_path: str,
    tier: Optional[str],
    max_pages: Optional[int],
    max_depth: Optional[int],
    user_agent: Optional[str],
    no_browser: bool,
) -> CrawlConfig:
    overrides: dict = {}
    if tier:
        overrides.update(tier_limits(tier))
    if max_pages is not None:
        overrides["max_pages"] = max_pages
    if max_depth is not None:
        overrides["max_depth"] = max_depth
    if user_agent:
        overrides["user_agent"] = user_agent
    if no_browser:
        overrides["browser_enabled"] = False
    return load_config(config_path, **overrides)


def _print_result(result: AuditResult) -> None:
    """Pretty-print an audit result using Rich."""
    diag = result.diagnostics
    counts = result.issues.count_by_severity()
    status_style = _STATUS_STYLES.get(diag.status, "white")
    summary = (
        f"[bold]{result.final_url}[/bold]\n"
        f"Crawl status: [{status_style}]{diag.status}[/{status_style}] -- {diag.message}\n"
        f"Pages: {diag.pages_found} ({diag.pages_successful} ok, {diag.pages_failed} failed, "
        f"{diag.rendered_pages} rendered)\n"
        f"Issues: [red]{counts['High']} high[/red], [yellow]{counts['Medium']} medium[/yellow], "
        f"[cyan]{counts['Low']} low[/cyan]\n"
        f"Elapsed: {result.elapsed_seconds}s"
    )
    if result.redirect_chain and len(result.redirect_chain) > 1:
        summary += "\nRedirects: " + " -> ".join(result.redirect_chain)
    console.print(Panel(summary, title="Audit Summary"))

    if diag.problems:
        for problem in diag.problems:
            console.print(f"[yellow]\u26a0[/yellow] {problem}")

    table = Table(title="Issues", show_header=True, header_style="bold magenta")
    table.add_column("Severity", min_width=8)
    table.add_column("Category", style="cyan", min_width=12)
    table.add_column("Issue", min_width=30)
    table.add_column("Pages", justify="right", width=6)
    table.add_column("Details", max_width=50)
    for issue in result.issues:
        style = _SEVERITY_STYLES.get(issue.severity.value, "white")
        table.add_row(
            f"[{style}]{issue.severity.value}[/{style}]",
            issue.category.value,
            issue.message,
            str(issue.page_count),
            (issue.details or "")[:80],
        )
    console.print(table)

    pages_table = Table(title="Pages", show_header=True, header_style="bold magenta")
    pages_table.add_column("#", style="dim", width=4)
    pages_table.add_column("URL", min_width=40)
    pages_table.add_column("Status", width=7)
    pages_table.add_column("Depth", justify="right", width=5)
    pages_table.add_column("Words", justify="right", width=7)
    pages_table.add_column("Load ms", justify="right", width=8)
    pages_table.add_column("Mode", width=9)
    for idx, page in enumerate(result.pages, 1):
        if page.error:
            status = f"[red]{page.status_code or 'ERR'}[/red]"
        elif page.status_code >= 400:
            status = f"[red]{page.status_code}[/red]"
        else:
            status = f"[green]{page.status_code}[/green]"
        mode = "rendered" if page.rendered else "http"
        if page.degraded_fields:
            mode += "*"
        pages_table.add_row(
            str(idx), page.url, status, str(page.depth),
            str(page.word_count), str(page.load_time_ms), mode,
        )
    console.print(pages_table)


# ------------------------------------------------------------------
# audit
# ------------------------------------------------------------------
@app.command()
def audit(
    url: str = typer.Argument(..., help="Site to audit (e.g. https://example.com)."),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", "-p", help="Maximum pages to crawl."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", "-d", help="Maximum link depth."),
    user_agent: Optional[str] = typer.Option(None, "--user-agent", help="User-Agent header to send."),
    tier: Optional[str] = typer.Option(None, "--tier", "-t", help="Budget preset: starter, standard or advanced."),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to settings YAML."),
    no_browser: bool = typer.Option(False, "--no-browser", help="Skip rendering; fetch pages over plain HTTP."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON result to this file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Crawl, render and audit a website."""
    try:
        cfg = _build_config(config, tier, max_pages, max_depth, user_agent, no_browser)
    except ValueError as exc:
        console.print(f"[red]\u2718 {exc}[/red]")
        raise typer.Exit(code=1)

    _setup_logging(verbose, cfg.log_level)
    console.print(Panel(f"[bold cyan]Site Audit: {url}[/bold cyan]"))

    from siteaudit.modules.technical_audit.auditor import SiteAuditor

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        progress.add_task(description="Crawling and rendering pages...", total=None)
        try:
            result = _run_async(SiteAuditor(cfg).run_full_audit(url))
        except (SeedResolutionError, ValueError) as exc:
            progress.stop()
            console.print(f"[red]\u2718 {exc}[/red]")
            raise typer.Exit(code=1)

    _print_result(result)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(result.to_dict(), indent=2, default=str), encoding="utf-8")
        console.print(f"Results written to [bold]{output}[/bold]")

    console.print("[green]\u2714[/green] Audit complete.")


# ------------------------------------------------------------------
# show-config
# ------------------------------------------------------------------
@app.command("show-config")
def show_config(
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to settings YAML."),
) -> None:
    """Print the effective configuration."""
    try:
        cfg = load_config(config)
    except ValueError as exc:
        console.print(f"[red]\u2718 {exc}[/red]")
        raise typer.Exit(code=1)

    table = Table(title="Effective Configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan", min_width=25)
    table.add_column("Value", min_width=20)
    for key, value in cfg.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
