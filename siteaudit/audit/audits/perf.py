"""Performance audit: Core Web Vitals timings, score, grade and budget."""

from typing import Any, Dict, List, Optional

from ..models.context import AuditContext
from .base import Audit, grade_for
from .budgets import PerformanceBudget, get_budget


LCP_GOOD_MS = 2500.0
LCP_POOR_MS = 4000.0
FCP_GOOD_MS = 1800.0
FCP_POOR_MS = 3000.0
CLS_GOOD = 0.1
CLS_POOR = 0.25
TTFB_GOOD_MS = 800.0
TTFB_POOR_MS = 1800.0

# (metric, issue type, good, poor, deduction when poor, deduction when needs work)
SCORING = [
    ("lcp", "lcp-slow", LCP_GOOD_MS, LCP_POOR_MS, 40, 20),
    ("fcp", "fcp-slow", FCP_GOOD_MS, FCP_POOR_MS, 30, 15),
    ("cls", "cls-high", CLS_GOOD, CLS_POOR, 15, 8),
    ("ttfb", "ttfb-slow", TTFB_GOOD_MS, TTFB_POOR_MS, 15, 8),
]

LABELS = {
    "lcp": "Largest Contentful Paint",
    "fcp": "First Contentful Paint",
    "cls": "Cumulative Layout Shift",
    "ttfb": "Time to First Byte",
}

TIMING_SCRIPT = """
() => {
    const nav = performance.getEntriesByType('navigation')[0] || {};
    const fcp = performance.getEntriesByName('first-contentful-paint')[0];
    const lcp = performance.getEntriesByType('largest-contentful-paint').slice(-1)[0];
    const fp = performance.getEntriesByName('first-paint')[0];
    let cls = 0;
    try {
        cls = performance.getEntriesByType('layout-shift')
            .reduce((acc, e) => acc + (e.hadRecentInput ? 0 : e.value), 0);
    } catch (e) {}
    return {
        ttfb: nav.responseStart || null,
        fcp: fcp ? fcp.startTime : null,
        lcp: lcp ? lcp.startTime : null,
        dcl: nav.domContentLoadedEventEnd || null,
        loadEnd: nav.loadEventEnd || null,
        cls: cls,
        firstPaint: fp ? fp.startTime : null,
        redirectTime: nav.redirectEnd ? nav.redirectEnd - nav.redirectStart : 0,
        dnsTime: nav.domainLookupEnd ? nav.domainLookupEnd - nav.domainLookupStart : 0,
        connectTime: nav.connectEnd ? nav.connectEnd - nav.connectStart : 0,
    };
}
"""


def _num(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _round(value: Optional[float]) -> Optional[int]:
    return None if value is None else int(round(value))


def analyze_metrics(metrics: Dict[str, Optional[float]]) -> Dict[str, Any]:
    """Score, grade and issue list for measured Web Vitals."""
    score = 100
    issues: List[Dict[str, Any]] = []

    for metric, issue_type, good, poor, poor_penalty, warn_penalty in SCORING:
        value = metrics.get(metric)
        if value is None:
            continue
        if value > poor:
            severity, penalty = "error", poor_penalty
        elif value > good:
            severity, penalty = "warning", warn_penalty
        else:
            continue
        score -= penalty
        shown = f"{value:.3f}" if metric == "cls" else f"{round(value)}ms"
        issues.append({
            "type": issue_type,
            "severity": severity,
            "message": f"{LABELS[metric]} is {shown}; target is {good:g}{'' if metric == 'cls' else 'ms'}",
            "value": value,
            "threshold": good,
        })

    score = max(score, 0)
    return {"score": score, "grade": grade_for(score), "issues": issues}


class PerfAudit(Audit):
    """Collects navigation and paint timings from the Performance API."""

    name = "perf"

    def __init__(self, budget: str = "default"):
        self.budget: PerformanceBudget = get_budget(budget)

    async def run(self, ctx: AuditContext) -> None:
        data = await ctx.page.evaluate(TIMING_SCRIPT) or {}

        ctx.ttfb_ms = _num(data.get("ttfb"))
        ctx.fcp_ms = _num(data.get("fcp"))
        ctx.lcp_ms = _num(data.get("lcp"))
        ctx.dcl_ms = _num(data.get("dcl"))
        ctx.load_end_ms = _num(data.get("loadEnd"))
        cls = _num(data.get("cls")) or 0.0

        metrics = {"lcp": ctx.lcp_ms, "fcp": ctx.fcp_ms, "cls": cls, "ttfb": ctx.ttfb_ms}
        result = analyze_metrics(metrics)
        result["coreWebVitals"] = {
            "largestContentfulPaint": _round(ctx.lcp_ms),
            "firstContentfulPaint": _round(ctx.fcp_ms),
            "cumulativeLayoutShift": cls,
            "timeToFirstByte": _round(ctx.ttfb_ms),
        }
        result["metrics"] = {
            "domContentLoaded": _round(ctx.dcl_ms),
            "loadComplete": _round(ctx.load_end_ms),
            "firstPaint": _round(_num(data.get("firstPaint"))),
            "redirectTime": _round(_num(data.get("redirectTime"))),
            "dnsTime": _round(_num(data.get("dnsTime"))),
            "connectTime": _round(_num(data.get("connectTime"))),
        }

        ctx.performance = result
        ctx.performance_budget = self.budget.evaluate(metrics)
