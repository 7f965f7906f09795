"""SEO audit: meta tags, heading structure and image alt text."""

from typing import Any, Dict, List

from ..models.context import AuditContext
from .base import Audit, grade_for


TITLE_MIN = 30
TITLE_MAX = 60
DESCRIPTION_MIN = 120
DESCRIPTION_MAX = 160

EXTRACT_SCRIPT = """
() => {
    const meta = (sel) => {
        const el = document.querySelector(sel);
        return el ? el.getAttribute('content') : null;
    };
    const og = {};
    document.querySelectorAll('meta[property^="og:"]').forEach(el => {
        og[el.getAttribute('property').slice(3)] = el.getAttribute('content');
    });
    const twitter = {};
    document.querySelectorAll('meta[name^="twitter:"]').forEach(el => {
        twitter[el.getAttribute('name').slice(8)] = el.getAttribute('content');
    });
    const canonical = document.querySelector('link[rel="canonical"]');
    const texts = (sel) => Array.from(document.querySelectorAll(sel))
        .map(el => (el.textContent || '').trim());
    const images = Array.from(document.querySelectorAll('img'));
    return {
        title: document.title || null,
        description: meta('meta[name="description"]'),
        canonical: canonical ? canonical.getAttribute('href') : null,
        openGraph: og,
        twitterCard: twitter,
        h1: texts('h1'),
        h2: texts('h2'),
        h3: texts('h3'),
        images: images.length,
        missingAlt: images.filter(img => !img.hasAttribute('alt')).length,
        emptyAlt: images.filter(img => img.hasAttribute('alt') && img.getAttribute('alt').trim() === '').length,
    };
}
"""


def _issue(issue_type: str, severity: str, message: str) -> Dict[str, str]:
    return {"type": issue_type, "severity": severity, "message": message}


def analyze_seo(data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn extracted page data into issues, score and grade."""
    issues: List[Dict[str, str]] = []
    heading_issues: List[Dict[str, str]] = []
    score = 100

    title = (data.get("title") or "").strip()
    if not title:
        issues.append(_issue("title-missing", "error", "Page has no <title>"))
        score -= 25
    elif len(title) < TITLE_MIN:
        issues.append(_issue("title-short", "warning", f"Title is {len(title)} characters; aim for {TITLE_MIN}-{TITLE_MAX}"))
    elif len(title) > TITLE_MAX:
        issues.append(_issue("title-long", "warning", f"Title is {len(title)} characters; aim for {TITLE_MIN}-{TITLE_MAX}"))

    description = (data.get("description") or "").strip()
    if not description:
        issues.append(_issue("description-missing", "error", "Page has no meta description"))
        score -= 20
    elif len(description) < DESCRIPTION_MIN:
        issues.append(_issue(
            "description-short", "warning",
            f"Meta description is {len(description)} characters; aim for {DESCRIPTION_MIN}-{DESCRIPTION_MAX}"
        ))
    elif len(description) > DESCRIPTION_MAX:
        issues.append(_issue(
            "description-long", "warning",
            f"Meta description is {len(description)} characters; aim for {DESCRIPTION_MIN}-{DESCRIPTION_MAX}"
        ))

    h1 = data.get("h1") or []
    if not h1:
        heading_issues.append(_issue("h1-missing", "error", "Page has no <h1>"))
        score -= 20
    elif len(h1) > 1:
        heading_issues.append(_issue("h1-multiple", "warning", f"Page has {len(h1)} <h1> elements"))
        score -= 10
    issues.extend(heading_issues)

    total_images = data.get("images") or 0
    missing_alt = data.get("missingAlt") or 0
    empty_alt = data.get("emptyAlt") or 0
    if missing_alt:
        issues.append(_issue("image-alt-missing", "error", f"{missing_alt} image(s) without alt attribute"))
    if empty_alt:
        issues.append(_issue("image-alt-empty", "warning", f"{empty_alt} image(s) with empty alt text"))
    if total_images:
        score -= round((missing_alt + empty_alt * 0.5) / total_images * 35)

    score = max(score, 0)
    return {
        "score": score,
        "grade": grade_for(score),
        "metaTags": {
            "title": title or None,
            "description": description or None,
            "canonical": data.get("canonical"),
            "openGraph": data.get("openGraph") or {},
            "twitterCard": data.get("twitterCard") or {},
        },
        "headings": {
            "h1": h1,
            "h2": data.get("h2") or [],
            "h3": data.get("h3") or [],
            "issues": heading_issues,
        },
        "images": {
            "total": total_images,
            "missingAlt": missing_alt,
            "emptyAlt": empty_alt,
        },
        "issues": issues,
    }


class SeoAudit(Audit):
    name = "seo"

    async def run(self, ctx: AuditContext) -> None:
        data = await ctx.page.evaluate(EXTRACT_SCRIPT) or {}
        ctx.seo = analyze_seo(data)
