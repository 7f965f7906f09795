"""Data models for the audit engine."""

from .batch import BatchJob, BatchProgress, BatchReport, BatchResult, BatchStatistics
from .config import AuditOptions, BrowserEngine, PoolOptions, RedirectPolicy, DEFAULT_AUDITS, KNOWN_AUDITS, KNOWN_BUDGETS
from .context import AuditContext, EngineFootprint, SCHEMA_VERSION, failure_result
from .redirect import RedirectHop, RedirectInfo, RedirectStatistics, RedirectType

__all__ = [
    "AuditContext",
    "AuditOptions",
    "BatchJob",
    "BatchProgress",
    "BatchReport",
    "BatchResult",
    "BatchStatistics",
    "BrowserEngine",
    "EngineFootprint",
    "DEFAULT_AUDITS",
    "KNOWN_AUDITS",
    "KNOWN_BUDGETS",
    "PoolOptions",
    "RedirectHop",
    "RedirectInfo",
    "RedirectPolicy",
    "RedirectStatistics",
    "RedirectType",
    "SCHEMA_VERSION",
    "failure_result",
]
