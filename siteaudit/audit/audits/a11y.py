"""Accessibility audit.

Runs axe-core when a local copy of ``axe.min.js`` is configured. Without
it, a small set of built-in DOM rules is evaluated instead so the summary
still has violations to aggregate.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.context import AuditContext
from .base import Audit

logger = logging.getLogger(__name__)


AXE_RUN_SCRIPT = """
async () => {
    const results = await axe.run(document, { resultTypes: ['violations'] });
    return {
        violations: results.violations.map(v => ({
            id: v.id,
            impact: v.impact,
            help: v.help,
            helpUrl: v.helpUrl,
            nodes: v.nodes.length,
        })),
        passes: results.passes.length,
        incomplete: results.incomplete.length,
    };
}
"""

BUILTIN_RULES_SCRIPT = """
() => {
    const violations = [];
    const images = Array.from(document.querySelectorAll('img:not([alt])'));
    if (images.length) {
        violations.push({ id: 'image-alt', impact: 'critical',
            help: 'Images must have alternate text', nodes: images.length });
    }
    const inputs = Array.from(document.querySelectorAll(
        'input:not([type=hidden]):not([type=submit]):not([type=button]), select, textarea'
    )).filter(el => {
        if (el.getAttribute('aria-label') || el.getAttribute('aria-labelledby')) return false;
        if (el.id && document.querySelector(`label[for="${el.id}"]`)) return false;
        return !el.closest('label');
    });
    if (inputs.length) {
        violations.push({ id: 'label', impact: 'critical',
            help: 'Form elements must have labels', nodes: inputs.length });
    }
    if (!document.documentElement.getAttribute('lang')) {
        violations.push({ id: 'html-has-lang', impact: 'serious',
            help: '<html> element must have a lang attribute', nodes: 1 });
    }
    return { violations: violations, passes: null, incomplete: null };
}
"""


class A11yAudit(Audit):
    """axe-core or built-in accessibility checks."""

    name = "a11y"

    def __init__(self, axe_source: Optional[Path] = None):
        self.axe_source = Path(axe_source) if axe_source else None
        self._axe_script: Optional[str] = None

    def _load_axe(self) -> Optional[str]:
        if self.axe_source is None:
            return None
        if self._axe_script is None:
            self._axe_script = self.axe_source.read_text(encoding="utf-8")
        return self._axe_script

    async def run(self, ctx: AuditContext) -> None:
        axe = self._load_axe()
        if axe:
            await ctx.page.add_script(axe)
            data = await ctx.page.evaluate(AXE_RUN_SCRIPT) or {}
            engine = "axe-core"
        else:
            data = await ctx.page.evaluate(BUILTIN_RULES_SCRIPT) or {}
            engine = "builtin"

        violations: List[Dict[str, Any]] = data.get("violations") or []
        logger.debug(f"{len(violations)} a11y violations on {ctx.url} ({engine})")
        ctx.a11y = {
            "engine": engine,
            "violations": violations,
            "passes": data.get("passes"),
            "incomplete": data.get("incomplete"),
        }
