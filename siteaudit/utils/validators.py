"""Input validation for crawl configuration."""

from urllib.parse import urlparse


def validate_url(url: str) -> tuple[bool, str]:
    """Validate a crawl entry URL.

    Args:
        url: The URL to validate.

    Returns:
        Tuple of (is_valid, error_message).  error_message is empty on success.
    """
    if not url or not isinstance(url, str):
        return False, "URL is empty or not a string."
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        return False, f"URL parse error: {exc}"
    if parsed.scheme not in ("http", "https"):
        return False, f"Invalid scheme: {parsed.scheme!r}. Must be http or https."
    hostname = parsed.hostname or ""
    if not hostname or len(hostname) > 253:
        return False, "URL has no valid hostname."
    return True, ""


def validate_crawl_limits(max_pages: int, max_depth: int) -> tuple[bool, str]:
    """Validate page and depth budgets.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not isinstance(max_pages, int) or max_pages < 1:
        return False, f"max_pages must be a positive integer, got {max_pages!r}."
    if not isinstance(max_depth, int) or max_depth < 0:
        return False, f"max_depth must be a non-negative integer, got {max_depth!r}."
    return True, ""
