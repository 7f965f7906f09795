"""Content weight audit: transferred bytes per resource type."""

from typing import Any, Dict, List

from ..models.context import AuditContext
from .base import Audit


LARGE_RESOURCE_BYTES = 500 * 1024
SLOW_RESOURCE_MS = 2000

RESOURCES_SCRIPT = """
() => performance.getEntriesByType('resource').map(e => ({
    url: e.name,
    type: e.initiatorType,
    size: e.transferSize || e.encodedBodySize || 0,
    duration: e.duration,
}))
"""

NAVIGATION_SIZE_SCRIPT = """
() => {
    const nav = performance.getEntriesByType('navigation')[0];
    return nav ? (nav.transferSize || nav.encodedBodySize || 0) : 0;
}
"""

TYPE_GROUPS = {
    "script": "script",
    "link": "stylesheet",
    "css": "stylesheet",
    "img": "image",
    "image": "image",
    "font": "font",
    "fetch": "xhr",
    "xmlhttprequest": "xhr",
    "video": "media",
    "audio": "media",
}


def summarize_resources(entries: List[Dict[str, Any]], document_bytes: int = 0) -> Dict[str, Any]:
    by_type: Dict[str, Dict[str, int]] = {}
    large: List[Dict[str, Any]] = []
    slow: List[Dict[str, Any]] = []
    total = document_bytes

    if document_bytes:
        by_type["document"] = {"count": 1, "bytes": document_bytes}

    for entry in entries:
        size = int(entry.get("size") or 0)
        duration = float(entry.get("duration") or 0)
        group = TYPE_GROUPS.get(str(entry.get("type") or "").lower(), "other")

        bucket = by_type.setdefault(group, {"count": 0, "bytes": 0})
        bucket["count"] += 1
        bucket["bytes"] += size
        total += size

        if size > LARGE_RESOURCE_BYTES:
            large.append({"url": entry.get("url"), "type": group, "bytes": size})
        if duration > SLOW_RESOURCE_MS:
            slow.append({"url": entry.get("url"), "type": group, "durationMs": round(duration)})

    return {
        "totalBytes": total,
        "requestCount": len(entries) + (1 if document_bytes else 0),
        "byType": by_type,
        "largeResources": sorted(large, key=lambda r: r["bytes"], reverse=True),
        "slowResources": sorted(slow, key=lambda r: r["durationMs"], reverse=True),
    }


class ContentWeightAudit(Audit):
    name = "content_weight"

    async def run(self, ctx: AuditContext) -> None:
        entries = await ctx.page.evaluate(RESOURCES_SCRIPT) or []
        document_bytes = await ctx.page.evaluate(NAVIGATION_SIZE_SCRIPT) or 0
        ctx.content_weight = summarize_resources(entries, int(document_bytes))
