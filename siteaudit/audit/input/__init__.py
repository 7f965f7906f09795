"""URL input providers."""

from .sitemap_provider import SitemapProvider, load_urls_from_sitemap

__all__ = ["SitemapProvider", "load_urls_from_sitemap"]
