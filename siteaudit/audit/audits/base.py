"""Audit capability contract.

An audit is a named unit of per-page work. It receives the shared
:class:`AuditContext` and fills in its own result slots; it never reads
slots owned by another audit.
"""

import logging
from abc import ABC, abstractmethod

from ..models.context import AuditContext

logger = logging.getLogger(__name__)


class Audit(ABC):
    """Base class for page audits."""

    name: str = "audit"

    # Critical audits are not wrapped in SafeAudit; their failure fails the
    # page attempt and triggers a retry.
    critical: bool = False

    @abstractmethod
    async def run(self, ctx: AuditContext) -> None:
        """Populate this audit's fields on ``ctx``. May raise."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class SafeAudit(Audit):
    """Wraps an audit so its failure is recorded instead of raised.

    The error message is stored in ``ctx.audit_errors[name]`` and sibling
    audits keep running.
    """

    def __init__(self, inner: Audit):
        self.inner = inner
        self.name = inner.name
        self.critical = False

    async def run(self, ctx: AuditContext) -> None:
        try:
            await self.inner.run(ctx)
        except Exception as e:
            logger.warning(f"Audit '{self.name}' failed for {ctx.url}: {e}")
            ctx.audit_errors[self.name] = str(e)


def grade_for(score: float) -> str:
    """Letter grade for a 0-100 score."""
    if score >= 90:
        return "A"
    if score >= 80:
        return "B"
    if score >= 70:
        return "C"
    if score >= 60:
        return "D"
    return "F"
