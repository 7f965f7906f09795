"""Audit engine for SiteAudit.

This package provides the browser page pool, redirect detection, the
audit queue with retry and rate limiting, the per-page audits and the JSON
artifact writer.
"""

from .audits import Audit, SafeAudit, build_audits
from .batch import BatchProcessor
from .capture import BrowserFactory, BrowserPool, PageHandle, PlaywrightPage, ResponseInfo
from .events import AuditEvent, EventBus
from .exceptions import (
    ArtifactWriteError,
    BatchCancelledError,
    BrowserPoolError,
    ConfigurationError,
    PoolClosedError,
    SiteAuditError,
    SitemapError,
)
from .input import SitemapProvider, load_urls_from_sitemap
from .models import AuditContext, AuditOptions, PoolOptions, RedirectPolicy
from .queue import AuditQueue, RequestRateLimiter, make_run_id
from .redirects import RedirectHandler
from .utils import filter_urls
from .writer import JsonWriter

__all__ = [
    # Core
    'AuditQueue',
    'BrowserPool',
    'BrowserFactory',
    'RedirectHandler',
    'RequestRateLimiter',
    'JsonWriter',
    'BatchProcessor',
    'EventBus',
    'AuditEvent',

    # Pages
    'PageHandle',
    'PlaywrightPage',
    'ResponseInfo',

    # Audits
    'Audit',
    'SafeAudit',
    'build_audits',

    # Models
    'AuditContext',
    'AuditOptions',
    'PoolOptions',
    'RedirectPolicy',

    # Input
    'SitemapProvider',
    'load_urls_from_sitemap',
    'filter_urls',
    'make_run_id',

    # Errors
    'SiteAuditError',
    'BrowserPoolError',
    'PoolClosedError',
    'ArtifactWriteError',
    'SitemapError',
    'ConfigurationError',
    'BatchCancelledError',
]
