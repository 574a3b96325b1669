"""Site Audit -- crawl, render and audit a website for SEO issues."""

__version__ = "0.1.0"
