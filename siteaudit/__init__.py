"""Site Audit - sitemap-driven website audit orchestrator."""

__version__ = "1.0.0"
