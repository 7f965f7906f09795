"""Per-page audit context and the JSON result schema built from it.

An ``AuditContext`` is created for every page attempt, filled in by the
audit pipeline and serialized once with :meth:`AuditContext.build_result`.
Each audit owns its own slots; none reads another audit's fields.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .redirect import RedirectInfo

if TYPE_CHECKING:
    from ..capture.page import PageHandle
    from ..events import EventBus


SCHEMA_VERSION = "1.0.0"


@dataclass(frozen=True)
class EngineFootprint:
    """Wall-clock duration and peak RSS of one page attempt."""
    task_duration_ms: int
    peak_rss_bytes: Optional[int] = None
    cpu_user_ms: Optional[int] = None
    cpu_system_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpuUserMs": self.cpu_user_ms,
            "cpuSystemMs": self.cpu_system_ms,
            "peakRssBytes": self.peak_rss_bytes,
            "taskDurationMs": self.task_duration_ms,
        }


@dataclass
class AuditContext:
    """Mutable result slots for one page attempt."""
    url: str
    page: "PageHandle"
    run_id: str
    events: Optional["EventBus"] = None
    redirect: Optional[RedirectInfo] = None
    started_at: datetime = field(default_factory=datetime.utcnow)

    # http
    status_code: Optional[int] = None
    headers: Optional[Dict[str, str]] = None
    response_time_ms: Optional[int] = None
    navigation_error: Optional[str] = None
    ssl: Optional[Dict[str, Any]] = None

    # timings
    ttfb_ms: Optional[float] = None
    fcp_ms: Optional[float] = None
    lcp_ms: Optional[float] = None
    dcl_ms: Optional[float] = None
    load_end_ms: Optional[float] = None

    # per-domain result blobs
    performance: Optional[Dict[str, Any]] = None
    performance_budget: Optional[Dict[str, Any]] = None
    seo: Optional[Dict[str, Any]] = None
    a11y: Optional[Dict[str, Any]] = None
    content_weight: Optional[Dict[str, Any]] = None
    mobile: Optional[Dict[str, Any]] = None
    content_quality: Optional[Dict[str, Any]] = None

    console_errors: List[str] = field(default_factory=list)
    screenshot_path: Optional[str] = None
    engine_footprint: Optional[EngineFootprint] = None
    audit_errors: Dict[str, str] = field(default_factory=dict)

    def build_result(self, finished_at: Optional[datetime] = None) -> Dict[str, Any]:
        """Serialize the context to the per-page artifact schema."""
        finished_at = finished_at or datetime.utcnow()
        chain = [hop.to_dict() for hop in self.redirect.chain] if self.redirect else []

        result = {
            "schemaVersion": SCHEMA_VERSION,
            "runId": self.run_id,
            "url": self.url,
            "http": {
                "statusCode": self.status_code,
                "headers": self.headers,
                "redirectedFrom": self.redirect.original_url if self.redirect else None,
                "redirectType": self.redirect.type.value if self.redirect else None,
                "redirectCount": len(chain),
                "redirectChain": chain,
                "responseTimeMs": self.response_time_ms,
                "navigationError": self.navigation_error,
                "ssl": self.ssl,
            },
            "perf": {
                "ttfbMs": self.ttfb_ms,
                "fcpMs": self.fcp_ms,
                "lcpMs": self.lcp_ms,
                "domContentLoadedMs": self.dcl_ms,
                "loadEventEndMs": self.load_end_ms,
                "engine": self.engine_footprint.to_dict() if self.engine_footprint else None,
            },
            "performance": self.performance,
            "performanceBudget": self.performance_budget,
            "seo": self.seo,
            "contentWeight": self.content_weight,
            "mobile": self.mobile,
            "contentQuality": self.content_quality,
            "a11y": self.a11y,
            "consoleErrors": list(self.console_errors),
            "screenshotPath": self.screenshot_path,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": finished_at.isoformat(),
        }

        if self.audit_errors:
            result["auditErrors"] = dict(self.audit_errors)

        return result


def failure_result(
    url: str,
    run_id: str,
    error: str,
    started_at: datetime,
    finished_at: Optional[datetime] = None
) -> Dict[str, Any]:
    """Minimal artifact for a URL whose attempts were all exhausted.

    Every metric is null so the summary counts the page as crashed.
    """
    finished_at = finished_at or datetime.utcnow()
    return {
        "schemaVersion": SCHEMA_VERSION,
        "runId": run_id,
        "url": url,
        "http": {"statusCode": None, "headers": None},
        "perf": {
            "ttfbMs": None,
            "fcpMs": None,
            "lcpMs": None,
            "domContentLoadedMs": None,
            "loadEventEndMs": None,
            "engine": {
                "cpuUserMs": None,
                "cpuSystemMs": None,
                "peakRssBytes": None,
                "taskDurationMs": None,
            },
        },
        "a11y": None,
        "consoleErrors": [],
        "screenshotPath": None,
        "startedAt": started_at.isoformat(),
        "finishedAt": finished_at.isoformat(),
        "error": error,
    }
