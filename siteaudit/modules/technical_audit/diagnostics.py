"""Crawl health diagnostics."""

from typing import Iterable

from siteaudit.models.audit import CrawlDiagnostics
from siteaudit.models.crawl import PageRecord


def analyze_crawl(pages: Iterable[PageRecord], elapsed_seconds: float) -> CrawlDiagnostics:
    """Summarize how well a crawl went.

    Status is ``success`` when at least one page succeeded and fewer than
    half failed, ``partial`` when some pages succeeded, ``failed`` when
    none did.
    """
    pages = list(pages)
    successful = [p for p in pages if p.is_success]
    failed = len(pages) - len(successful)
    rendered = sum(1 for p in pages if p.rendered)
    js_dependent = sum(1 for p in pages if p.rendering.is_high)

    load_times = [p.load_time_ms for p in successful if p.load_time_ms > 0]
    avg_load = round(sum(load_times) / len(load_times), 1) if load_times else 0.0
    pages_per_second = round(len(pages) / elapsed_seconds, 2) if elapsed_seconds > 0 else 0.0

    if successful and failed < len(pages) / 2:
        status = "success"
    elif successful:
        status = "partial"
    else:
        status = "failed"

    problems: list[str] = []
    if not pages:
        problems.append("No pages were crawled")
    elif not successful:
        problems.append("Every crawled page failed to load")
    elif failed:
        problems.append(f"{failed} of {len(pages)} pages failed to load")
    if pages and rendered == 0:
        problems.append("No page was rendered in a browser; results come from raw HTML")
    elif rendered < len(pages):
        problems.append(f"{len(pages) - rendered} pages fell back to raw HTML")
    if len(pages) == 1:
        problems.append("Only the start page was crawled; no internal links were followed")
    if js_dependent:
        problems.append(f"{js_dependent} pages depend heavily on JavaScript for their content")

    message = {
        "success": f"Crawled {len(successful)} pages successfully",
        "partial": f"Crawled {len(successful)} of {len(pages)} pages",
        "failed": "The crawl did not produce any usable page",
    }[status]

    return CrawlDiagnostics(
        status=status,
        pages_found=len(pages),
        pages_successful=len(successful),
        pages_failed=failed,
        rendered_pages=rendered,
        js_dependent_pages=js_dependent,
        average_load_time_ms=avg_load,
        pages_per_second=pages_per_second,
        problems=tuple(problems),
        message=message,
    )
