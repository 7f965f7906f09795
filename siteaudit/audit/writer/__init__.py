"""Artifact persistence and run summary aggregation."""

from .json_writer import JsonWriter, url_slug
from .summary import build_summary, stat_block

__all__ = ["JsonWriter", "build_summary", "stat_block", "url_slug"]
