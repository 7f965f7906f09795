"""Run summary aggregation.

Pure functions folding the list of written page results into the run
summary document. Pages missing a field simply do not contribute to that
field's statistic; an all-missing metric produces a zero-count block with
null aggregates.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.context import SCHEMA_VERSION


SCORE_BUCKETS = [
    ("A (90-100)", 90, 101),
    ("B (80-89)", 80, 90),
    ("C (70-79)", 70, 80),
    ("D (60-69)", 60, 70),
    ("F (0-59)", -math.inf, 60),
]


def round_half_up(value: float) -> int:
    """Round .5 away from zero, unlike Python's banker's rounding."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    n = len(ordered)
    mid = n // 2
    if n % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def stat_block(values: Iterable[Any], unit: str) -> Dict[str, Any]:
    """count/avg/median/min/max for the numeric entries of ``values``."""
    numbers = [
        float(v) for v in values
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    ]
    if not numbers:
        return {"count": 0, "avg": None, "median": None, "min": None, "max": None, "unit": unit}

    return {
        "count": len(numbers),
        "avg": round_half_up(sum(numbers) / len(numbers)),
        "median": round_half_up(median(numbers)),
        "min": round_half_up(min(numbers)),
        "max": round_half_up(max(numbers)),
        "unit": unit,
    }


def format_duration(duration: timedelta) -> str:
    total_seconds = int(duration.total_seconds())
    minutes, seconds = divmod(total_seconds, 60)
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def _get(page: Dict[str, Any], *path: str) -> Any:
    value: Any = page
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _bump(counter: Dict[str, int], key: str) -> None:
    counter[key] = counter.get(key, 0) + 1


def http_status_stats(pages: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Partition pages into successful, redirect, error and crashed buckets.

    A 3xx page is a redirect, never an error: the queue audits the redirect
    target, so the navigation itself succeeded.
    """
    successful = redirects = errors = crashed = 0
    breakdown: Dict[str, int] = {}

    for page in pages:
        status = _get(page, "http", "statusCode")

        if not isinstance(status, int):
            crashed += 1
            _bump(breakdown, "crashed")
        elif 200 <= status < 300:
            successful += 1
            _bump(breakdown, str(status))
        elif 300 <= status < 400:
            redirects += 1
            if status == 301:
                _bump(breakdown, "301 (Permanent Redirect)")
            elif status == 302:
                _bump(breakdown, "302 (Temporary Redirect)")
            else:
                _bump(breakdown, "3xx (Other Redirects)")
        elif status >= 400:
            errors += 1
            if status == 404:
                _bump(breakdown, "404 (Not Found)")
            elif status < 500:
                _bump(breakdown, "4xx (Client Error)")
            else:
                _bump(breakdown, "5xx (Server Error)")
        else:
            # 1xx final statuses do not happen in practice
            crashed += 1
            _bump(breakdown, "crashed")

    total = len(pages)
    success_rate = round_half_up((successful + redirects) / total * 100) if total else 0

    return {
        "total": total,
        "successful": successful,
        "redirects": redirects,
        "errors": errors,
        "crashed": crashed,
        "successRate": success_rate,
        "httpStatusBreakdown": breakdown,
    }


def violation_stats(pages: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    total = 0
    by_impact: Dict[str, int] = {}

    for page in pages:
        for violation in _get(page, "a11y", "violations") or []:
            total += 1
            impact = violation.get("impact") if isinstance(violation, dict) else None
            _bump(by_impact, str(impact) if impact else "unknown")

    avg = f"{total / len(pages):.1f}" if pages else "0"
    return {"total": total, "byImpact": by_impact, "avgPerPage": avg}


def _score_distribution(scores: List[float]) -> Dict[str, int]:
    return {
        label: sum(1 for s in scores if low <= s < high)
        for label, low, high in SCORE_BUCKETS
    }


def performance_stats(pages: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    scores: List[float] = []
    issues_by_type: Dict[str, int] = {}

    for page in pages:
        result = page.get("performance")
        if not isinstance(result, dict):
            continue
        score = result.get("score")
        if isinstance(score, (int, float)):
            scores.append(score)
        for issue in result.get("issues") or []:
            issue_type = issue.get("type")
            if issue_type:
                _bump(issues_by_type, issue_type)

    return {
        "totalPagesWithPerf": len(scores),
        "averageScore": round_half_up(sum(scores) / len(scores)) if scores else 0,
        "scoreDistribution": _score_distribution(scores),
        "issuesByType": issues_by_type,
    }


def seo_stats(pages: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    scores: List[float] = []
    categories: Dict[str, Dict[str, int]] = {
        "title": {},
        "description": {},
        "headings": {},
        "images": {},
    }
    total_issues = 0

    for page in pages:
        result = page.get("seo")
        if not isinstance(result, dict):
            continue
        score = result.get("score")
        if isinstance(score, (int, float)):
            scores.append(score)

        for issue in result.get("issues") or []:
            issue_type = issue.get("type")
            if not issue_type:
                continue
            total_issues += 1
            if "title" in issue_type:
                _bump(categories["title"], issue_type)
            elif "description" in issue_type:
                _bump(categories["description"], issue_type)
            elif "h1" in issue_type:
                _bump(categories["headings"], issue_type)
            elif "image" in issue_type:
                _bump(categories["images"], issue_type)

    return {
        "totalPagesWithSeo": len(scores),
        "averageScore": round_half_up(sum(scores) / len(scores)) if scores else 0,
        "scoreDistribution": _score_distribution(scores),
        "issuesByCategory": categories,
        "totalIssues": total_issues,
    }


def timing_stats(pages: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "ttfb": stat_block((_get(p, "perf", "ttfbMs") for p in pages), "ms"),
        "fcp": stat_block((_get(p, "perf", "fcpMs") for p in pages), "ms"),
        "lcp": stat_block((_get(p, "perf", "lcpMs") for p in pages), "ms"),
        "domContentLoaded": stat_block((_get(p, "perf", "domContentLoadedMs") for p in pages), "ms"),
    }


def engine_stats(pages: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "taskDuration": stat_block((_get(p, "perf", "engine", "taskDurationMs") for p in pages), "ms"),
        "peakRss": stat_block((_get(p, "perf", "engine", "peakRssBytes") for p in pages), "bytes"),
    }


def build_summary(
    pages: Sequence[Dict[str, Any]],
    run_id: str,
    started_at: datetime,
    finished_at: Optional[datetime] = None
) -> Dict[str, Any]:
    """Fold page results into the run summary document."""
    finished_at = finished_at or datetime.utcnow()
    duration = finished_at - started_at

    return {
        "schemaVersion": SCHEMA_VERSION,
        "runId": run_id,
        "startedAt": started_at.isoformat(),
        "finishedAt": finished_at.isoformat(),
        "duration": {
            "totalMs": int(duration.total_seconds() * 1000),
            "formatted": format_duration(duration),
        },
        "pages": http_status_stats(pages),
        "violations": violation_stats(pages),
        "performance": performance_stats(pages),
        "seo": seo_stats(pages),
        "legacyPerf": timing_stats(pages),
        "engine": engine_stats(pages),
        "urls": [p.get("url") for p in pages],
    }
