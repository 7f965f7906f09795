"""HTTP audit: navigates to the page and records response metadata.

This is the audit that loads the page for the rest of the pipeline, so it
is critical: a navigation failure propagates and fails the attempt.
"""

import logging
import time
from typing import Dict, Optional

from ..capture.page import ResponseInfo
from ..models.context import AuditContext
from ..redirects import same_location
from .base import Audit

logger = logging.getLogger(__name__)


RECORDED_HEADERS = (
    "content-type",
    "server",
    "x-frame-options",
    "x-content-type-options",
    "strict-transport-security",
    "content-security-policy",
    "x-xss-protection",
    "referrer-policy",
    "location",
    "cache-control",
    "expires",
    "etag",
    "last-modified",
    "content-encoding",
    "content-length",
)

SSL_INFO_SCRIPT = """
() => ({ protocol: location.protocol, isSecure: location.protocol === 'https:' })
"""


def filter_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {
        name: headers[name]
        for name in RECORDED_HEADERS
        if headers.get(name)
    }


class HttpAudit(Audit):
    """Loads the page and records status, headers, timing and TLS use."""

    name = "http"
    critical = True

    def __init__(self, navigation_timeout_ms: int = 30000, wait_until: str = "networkidle"):
        self.navigation_timeout_ms = navigation_timeout_ms
        self.wait_until = wait_until

    async def run(self, ctx: AuditContext) -> None:
        page = ctx.page
        document: Optional[ResponseInfo] = None

        def on_response(response: ResponseInfo) -> None:
            nonlocal document
            if document is None and same_location(response.url, ctx.url):
                document = response

        unsubscribe = page.on_response(on_response)
        start = time.perf_counter()
        try:
            final = await page.goto(ctx.url, wait_until=self.wait_until, timeout_ms=self.navigation_timeout_ms)
        except Exception as e:
            ctx.response_time_ms = int((time.perf_counter() - start) * 1000)
            ctx.navigation_error = str(e)
            raise
        finally:
            unsubscribe()

        ctx.response_time_ms = int((time.perf_counter() - start) * 1000)

        response = document or final
        if response is not None:
            ctx.status_code = response.status
            ctx.headers = filter_headers(response.headers)

        if page.url.startswith("https://"):
            try:
                ctx.ssl = await page.evaluate(SSL_INFO_SCRIPT)
            except Exception as e:
                logger.debug(f"Could not read TLS info for {ctx.url}: {e}")
                ctx.ssl = {"protocol": "https:", "isSecure": True}
