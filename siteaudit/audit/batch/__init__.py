"""Batch mode: many independent single-URL audits across worker tasks."""

from .processor import BatchProcessor

__all__ = ["BatchProcessor"]
