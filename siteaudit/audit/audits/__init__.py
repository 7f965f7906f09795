"""Per-page audits run by the audit queue."""

from .a11y import A11yAudit
from .base import Audit, SafeAudit, grade_for
from .budgets import BUDGETS, BudgetThreshold, PerformanceBudget, get_budget
from .content_quality import ContentQualityAudit, analyze_content_quality
from .content_weight import ContentWeightAudit
from .http import HttpAudit
from .mobile import MobileAudit
from .perf import PerfAudit
from .registry import AUDIT_FACTORIES, build_audits
from .seo import SeoAudit

__all__ = [
    "A11yAudit",
    "AUDIT_FACTORIES",
    "Audit",
    "BUDGETS",
    "BudgetThreshold",
    "ContentQualityAudit",
    "ContentWeightAudit",
    "HttpAudit",
    "MobileAudit",
    "PerfAudit",
    "PerformanceBudget",
    "SafeAudit",
    "SeoAudit",
    "analyze_content_quality",
    "build_audits",
    "get_budget",
    "grade_for",
]
