"""Audit queue orchestration and request throttling."""

from .audit_queue import AuditQueue, make_run_id
from .rate_limiter import RequestRateLimiter, backoff_delay_ms

__all__ = ["AuditQueue", "RequestRateLimiter", "backoff_delay_ms", "make_run_id"]
