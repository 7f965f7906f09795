"""Helpers shared by the input layer and the CLI."""

from .url_filter import compile_patterns, filter_urls, is_http_url

__all__ = ["compile_patterns", "filter_urls", "is_http_url"]
