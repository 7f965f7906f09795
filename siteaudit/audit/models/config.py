"""Pydantic models for audit run configuration.

These models are the options surface consumed by the audit queue, the
browser pool and the redirect handler. They carry no behavior beyond
validation.
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


KNOWN_AUDITS = ["http", "perf", "seo", "a11y", "content_weight", "mobile", "content_quality"]
# content_quality is opt-in
DEFAULT_AUDITS = ["http", "perf", "seo", "a11y", "content_weight", "mobile"]
KNOWN_BUDGETS = ["default", "ecommerce", "corporate", "blog"]


class RedirectPolicy(str, Enum):
    """What to do with a URL whose navigation ends somewhere else."""
    FOLLOW = "follow"    # Audit the resolved final URL
    SKIP = "skip"        # Emit PageSkipped and audit nothing


class BrowserEngine(str, Enum):
    """Browser engines supported by Playwright."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class AuditOptions(BaseModel):
    """Options controlling one audit run."""

    concurrency: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Number of worker loops sharing the URL list"
    )

    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries per page after the first failed attempt"
    )

    base_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Base retry delay; attempt n waits base * 2^(n-1)"
    )

    delay_between_requests_ms: int = Field(
        default=0,
        ge=0,
        description="Minimum spacing between page attempts"
    )

    max_requests_per_second: Optional[int] = Field(
        default=None,
        ge=1,
        description="Ceiling on attempts started in any rolling second"
    )

    redirect_policy: RedirectPolicy = Field(
        default=RedirectPolicy.FOLLOW,
        description="Audit the redirect target or skip redirected URLs"
    )

    max_redirect_hops: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum HTTP redirect hops recorded per URL"
    )

    enabled_audits: List[str] = Field(
        default_factory=lambda: list(DEFAULT_AUDITS),
        description="Audits to run, in pipeline order"
    )

    performance_budget: str = Field(
        default="default",
        description="Named performance budget used by the perf audit"
    )

    navigation_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=300000,
        description="Navigation timeout for the http audit"
    )

    screenshots: bool = Field(
        default=False,
        description="Capture a full-page screenshot per page"
    )

    axe_source: Optional[Path] = Field(
        default=None,
        description="Path to axe.min.js for the accessibility audit"
    )

    @field_validator('enabled_audits')
    @classmethod
    def validate_audits(cls, v: List[str]) -> List[str]:
        """Reject unknown audit names and drop duplicates, keeping order."""
        unknown = [name for name in v if name not in KNOWN_AUDITS]
        if unknown:
            raise ValueError(
                f"Unknown audits: {', '.join(unknown)}. "
                f"Valid audits: {', '.join(KNOWN_AUDITS)}"
            )
        seen = []
        for name in v:
            if name not in seen:
                seen.append(name)
        return seen

    @field_validator('performance_budget')
    @classmethod
    def validate_budget(cls, v: str) -> str:
        v = v.lower()
        if v not in KNOWN_BUDGETS:
            raise ValueError(f"performance_budget must be one of: {', '.join(KNOWN_BUDGETS)}")
        return v


class PoolOptions(BaseModel):
    """Options for the browser page pool."""

    engine: BrowserEngine = Field(default=BrowserEngine.CHROMIUM, description="Browser engine")
    headless: bool = Field(default=True, description="Run browser without a window")

    max_pages: int = Field(
        default=10,
        ge=1,
        le=64,
        description="Ceiling on simultaneously busy page handles"
    )

    prewarm: int = Field(default=2, ge=0, description="Idle handles created at start")
    idle_floor: int = Field(default=2, ge=0, description="Idle handles kept by the reaper")

    reap_interval_s: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between idle reaper sweeps"
    )

    stale_after_s: float = Field(
        default=300.0,
        gt=0,
        description="Busy handles older than this are force-closed"
    )

    acquire_poll_s: float = Field(
        default=0.1,
        gt=0,
        description="Sleep between acquisition attempts when at capacity"
    )
