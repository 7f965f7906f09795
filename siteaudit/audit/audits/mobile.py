"""Mobile friendliness audit."""

from typing import Any, Dict, List

from ..models.context import AuditContext
from .base import Audit, grade_for


MIN_TOUCH_TARGET_PX = 48
MIN_FONT_SIZE_PX = 12

MOBILE_SCRIPT = """
([minTarget, minFont]) => {
    const viewport = document.querySelector('meta[name="viewport"]');
    const content = viewport ? viewport.getAttribute('content') || '' : null;
    const targets = Array.from(document.querySelectorAll('a, button, input, select, textarea, [role=button]'))
        .filter(el => {
            const r = el.getBoundingClientRect();
            return r.width > 0 && r.height > 0 && (r.width < minTarget || r.height < minTarget);
        }).length;
    let smallText = 0;
    document.querySelectorAll('p, span, a, li, td, label').forEach(el => {
        if (!el.textContent || !el.textContent.trim()) return;
        const size = parseFloat(getComputedStyle(el).fontSize);
        if (size && size < minFont) smallText += 1;
    });
    return {
        viewport: content,
        smallTouchTargets: targets,
        smallFonts: smallText,
        horizontalScroll: document.documentElement.scrollWidth > window.innerWidth,
    };
}
"""


def analyze_mobile(data: Dict[str, Any]) -> Dict[str, Any]:
    issues: List[Dict[str, Any]] = []
    score = 100

    viewport = data.get("viewport")
    if viewport is None:
        issues.append({"type": "viewport-missing", "severity": "error", "message": "No viewport meta tag"})
        score -= 30
    elif "width=device-width" not in viewport.replace(" ", ""):
        issues.append({
            "type": "viewport-not-responsive",
            "severity": "warning",
            "message": f"Viewport does not use width=device-width: {viewport}",
        })
        score -= 15

    targets = data.get("smallTouchTargets") or 0
    if targets:
        issues.append({
            "type": "touch-targets-small",
            "severity": "warning",
            "message": f"{targets} touch target(s) smaller than {MIN_TOUCH_TARGET_PX}px",
            "count": targets,
        })
        score -= min(20, targets * 2)

    fonts = data.get("smallFonts") or 0
    if fonts:
        issues.append({
            "type": "font-size-small",
            "severity": "warning",
            "message": f"{fonts} text element(s) below {MIN_FONT_SIZE_PX}px",
            "count": fonts,
        })
        score -= min(20, fonts)

    if data.get("horizontalScroll"):
        issues.append({"type": "horizontal-scroll", "severity": "warning", "message": "Content is wider than the viewport"})
        score -= 10

    score = max(score, 0)
    return {
        "score": score,
        "grade": grade_for(score),
        "viewport": viewport,
        "smallTouchTargets": targets,
        "smallFonts": fonts,
        "issues": issues,
    }


class MobileAudit(Audit):
    name = "mobile"

    async def run(self, ctx: AuditContext) -> None:
        data = await ctx.page.evaluate(MOBILE_SCRIPT, [MIN_TOUCH_TARGET_PX, MIN_FONT_SIZE_PX]) or {}
        ctx.mobile = analyze_mobile(data)
