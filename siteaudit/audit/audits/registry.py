"""Builds the per-page audit pipeline from audit names."""

from typing import Callable, Dict, List, Optional, Sequence

from ..models.config import AuditOptions
from .a11y import A11yAudit
from .base import Audit, SafeAudit
from .content_quality import ContentQualityAudit
from .content_weight import ContentWeightAudit
from .http import HttpAudit
from .mobile import MobileAudit
from .perf import PerfAudit
from .seo import SeoAudit


AUDIT_FACTORIES: Dict[str, Callable[[AuditOptions], Audit]] = {
    "http": lambda o: HttpAudit(navigation_timeout_ms=o.navigation_timeout_ms),
    "perf": lambda o: PerfAudit(budget=o.performance_budget),
    "seo": lambda o: SeoAudit(),
    "a11y": lambda o: A11yAudit(axe_source=o.axe_source),
    "content_weight": lambda o: ContentWeightAudit(),
    "mobile": lambda o: MobileAudit(),
    "content_quality": lambda o: ContentQualityAudit(),
}


def build_audits(
    names: Optional[Sequence[str]] = None,
    options: Optional[AuditOptions] = None
) -> List[Audit]:
    """Instantiate audits in pipeline order.

    ``http`` always runs first when enabled since it loads the page. Every
    non-critical audit is wrapped in :class:`SafeAudit`.

    Raises:
        ValueError: If a name has no registered audit
    """
    options = options or AuditOptions()
    names = list(names) if names is not None else list(options.enabled_audits)

    unknown = [n for n in names if n not in AUDIT_FACTORIES]
    if unknown:
        raise ValueError(f"Unknown audits: {', '.join(unknown)}")

    if "http" in names:
        names = ["http"] + [n for n in names if n != "http"]

    audits: List[Audit] = []
    for name in dict.fromkeys(names):
        audit = AUDIT_FACTORIES[name](options)
        audits.append(audit if audit.critical else SafeAudit(audit))
    return audits
