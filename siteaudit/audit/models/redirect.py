"""Redirect detection records and run-scoped redirect statistics."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Set

from pydantic import BaseModel, ConfigDict, Field


class RedirectType(str, Enum):
    """How a redirect was discovered."""
    HTTP = "http_redirect"
    JAVASCRIPT = "javascript_redirect"
    META = "meta_redirect"


class RedirectHop(BaseModel):
    """One 3xx hop in an HTTP redirect chain."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_url: str = Field(alias="from", description="URL that answered with a redirect")
    to_url: str = Field(alias="to", description="Location header value")
    status: int = Field(description="3xx status code of the hop")

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.from_url, "to": self.to_url, "status": self.status}


class RedirectInfo(BaseModel):
    """A detected redirect from an original URL to its final destination."""

    model_config = ConfigDict(frozen=True)

    original_url: str
    final_url: str
    status_code: int = Field(description="Last 3xx status, or 200 for meta/script redirects")
    type: RedirectType
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    chain: List[RedirectHop] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalUrl": self.original_url,
            "finalUrl": self.final_url,
            "statusCode": self.status_code,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "chain": [hop.to_dict() for hop in self.chain],
        }


class RedirectStatistics:
    """Append-only record of the redirects detected during one run."""

    def __init__(self):
        self.redirects: List[RedirectInfo] = []
        self.redirected_urls: Set[str] = set()
        self.skipped_urls: Set[str] = set()

    def add(self, info: RedirectInfo) -> None:
        self.redirects.append(info)
        self.redirected_urls.add(info.original_url)

    def mark_skipped(self, url: str) -> None:
        self.skipped_urls.add(url)

    def was_redirected(self, url: str) -> bool:
        return url in self.redirected_urls

    def count_by_type(self, redirect_type: RedirectType) -> int:
        return sum(1 for r in self.redirects if r.type == redirect_type)

    @property
    def total(self) -> int:
        return len(self.redirects)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRedirects": self.total,
            "httpRedirects": self.count_by_type(RedirectType.HTTP),
            "javascriptRedirects": self.count_by_type(RedirectType.JAVASCRIPT),
            "metaRedirects": self.count_by_type(RedirectType.META),
            "redirectedUrls": sorted(self.redirected_urls),
            "redirects": [r.to_dict() for r in self.redirects],
            "skippedUrls": sorted(self.skipped_urls),
        }
