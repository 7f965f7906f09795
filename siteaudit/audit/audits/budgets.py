"""Named performance budgets and budget compliance scoring."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .base import grade_for


@dataclass(frozen=True)
class BudgetThreshold:
    good: float
    needs_work: float
    max: float
    unit: str = "ms"
    weight: float = 1.0

    def score(self, value: float) -> float:
        """0-100 score: flat 100 up to ``good``, linear to 70 at
        ``needs_work``, linear to 30 at ``max``, then exponential decay."""
        if value <= self.good:
            return 100.0
        if value <= self.needs_work:
            return 100.0 - (value - self.good) / (self.needs_work - self.good) * 30.0
        if value <= self.max:
            return 70.0 - (value - self.needs_work) / (self.max - self.needs_work) * 40.0
        excess = value - self.max
        return min(30.0, max(0.0, 30.0 * math.exp(-excess / self.max)))

    def status(self, value: float) -> str:
        if value <= self.good:
            return "good"
        if value <= self.needs_work:
            return "needs-improvement"
        if value <= self.max:
            return "poor"
        return "failing"


@dataclass(frozen=True)
class PerformanceBudget:
    name: str
    description: str
    thresholds: Dict[str, BudgetThreshold] = field(default_factory=dict)

    def evaluate(self, metrics: Dict[str, Optional[float]]) -> Dict[str, Any]:
        """Score every measured metric against this budget."""
        results: Dict[str, Any] = {}
        weighted_total = 0.0
        weight_sum = 0.0

        for metric, threshold in self.thresholds.items():
            value = metrics.get(metric)
            if value is None:
                continue
            score = threshold.score(value)
            weighted_total += score * threshold.weight
            weight_sum += threshold.weight
            results[metric] = {
                "value": value,
                "score": round(score, 1),
                "status": threshold.status(value),
                "threshold": {
                    "good": threshold.good,
                    "needsWork": threshold.needs_work,
                    "max": threshold.max,
                },
                "unit": threshold.unit,
                "passes": value <= threshold.max,
            }

        overall = weighted_total / weight_sum if weight_sum else 100.0
        return {
            "budget": self.name,
            "metrics": results,
            "overallScore": round(overall, 1),
            "grade": grade_for(overall),
            "passes": all(r["passes"] for r in results.values()),
        }


BUDGETS: Dict[str, PerformanceBudget] = {
    "default": PerformanceBudget(
        name="default",
        description="Web Vitals baseline for all websites",
        thresholds={
            "lcp": BudgetThreshold(2500, 4000, 6000),
            "fcp": BudgetThreshold(1800, 3000, 4500),
            "cls": BudgetThreshold(0.1, 0.25, 0.5, unit="score"),
            "inp": BudgetThreshold(200, 500, 1000),
            "ttfb": BudgetThreshold(800, 1800, 3000),
            "tbt": BudgetThreshold(200, 600, 1500),
        },
    ),
    "ecommerce": PerformanceBudget(
        name="ecommerce",
        description="Strict thresholds for shopping and checkout flows",
        thresholds={
            "lcp": BudgetThreshold(2000, 3000, 4000, weight=1.2),
            "fcp": BudgetThreshold(1500, 2500, 3500, weight=1.1),
            "cls": BudgetThreshold(0.05, 0.1, 0.25, unit="score", weight=1.3),
            "inp": BudgetThreshold(150, 300, 500, weight=1.2),
            "ttfb": BudgetThreshold(600, 1200, 2000, weight=1.1),
            "tbt": BudgetThreshold(150, 350, 600, weight=1.2),
        },
    ),
    "corporate": PerformanceBudget(
        name="corporate",
        description="Balanced thresholds for business websites",
        thresholds={
            "lcp": BudgetThreshold(2500, 4000, 5500),
            "fcp": BudgetThreshold(1800, 3000, 4000),
            "cls": BudgetThreshold(0.1, 0.25, 0.4, unit="score"),
            "inp": BudgetThreshold(200, 500, 800),
            "ttfb": BudgetThreshold(800, 1800, 2500),
            "tbt": BudgetThreshold(200, 600, 1200),
        },
    ),
    "blog": PerformanceBudget(
        name="blog",
        description="Relaxed thresholds for content sites",
        thresholds={
            "lcp": BudgetThreshold(3000, 4500, 6000, weight=0.9),
            "fcp": BudgetThreshold(2000, 3500, 5000, weight=0.9),
            "cls": BudgetThreshold(0.1, 0.25, 0.5, unit="score", weight=1.1),
            "inp": BudgetThreshold(300, 600, 1000, weight=0.8),
            "ttfb": BudgetThreshold(1000, 2000, 3500, weight=0.9),
            "tbt": BudgetThreshold(300, 800, 1500, weight=0.8),
        },
    ),
}


def get_budget(name: str) -> PerformanceBudget:
    """Budget by name; unknown names fall back to ``default``."""
    return BUDGETS.get(name.lower(), BUDGETS["default"])
