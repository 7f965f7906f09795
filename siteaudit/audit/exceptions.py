"""Exception hierarchy for the audit engine."""


class SiteAuditError(Exception):
    """Base class for all audit engine errors."""
    pass


class BrowserPoolError(SiteAuditError):
    """Raised when the browser cannot be launched or a page cannot be created."""
    pass


class PoolClosedError(BrowserPoolError):
    """Raised when a disposed pool is asked for a page.

    Page attempts failing with this error are not retried: the run is
    being torn down.
    """
    pass


class ArtifactWriteError(SiteAuditError):
    """Raised when a page artifact cannot be persisted."""
    pass


class SitemapError(SiteAuditError):
    """Raised when a sitemap cannot be fetched or parsed."""
    pass


class ConfigurationError(SiteAuditError):
    """Raised for invalid configuration values."""
    pass


class BatchCancelledError(SiteAuditError):
    """Raised for jobs that were dropped because the batch was cancelled."""
    pass
