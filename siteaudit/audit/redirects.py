"""Redirect detection for queued URLs.

The handler navigates once to the original URL and reports where the page
really ended up: through an HTTP 3xx chain, a ``<meta http-equiv="refresh">``
tag, or a ``window.location`` assignment in inline script. Script detection
is a plain text scan of inline ``<script>`` sources for a quoted absolute
http(s) URL; relative targets and computed URLs are not detected.

Detection is advisory. Navigation failures and evaluation errors are logged
and treated as "no redirect".
"""

import asyncio
import logging
import re
from typing import List, Optional
from urllib.parse import urldefrag, urljoin

from .capture.page import PageHandle, ResponseInfo
from .events import EventBus, PageRedirected
from .models.config import RedirectPolicy
from .models.redirect import RedirectHop, RedirectInfo, RedirectStatistics, RedirectType

logger = logging.getLogger(__name__)


META_REFRESH_PATTERN = re.compile(r"\d+\s*;\s*url\s*=\s*(.+)", re.IGNORECASE)
SCRIPT_REDIRECT_MARKERS = (
    "window.location.href",
    "window.location.replace",
    "window.location =",
)
QUOTED_ABSOLUTE_URL = re.compile(r"""["'](https?://[^"']+)["']""", re.IGNORECASE)

META_REFRESH_SCRIPT = """
() => {
    const meta = document.querySelector('meta[http-equiv="refresh" i]');
    return meta ? meta.getAttribute('content') : null;
}
"""

INLINE_SCRIPTS_SCRIPT = """
() => Array.from(document.querySelectorAll('script:not([src])'))
    .map(s => s.textContent || '')
"""


def same_location(a: str, b: str) -> bool:
    """Compare URLs ignoring fragments and a trailing slash."""
    a = urldefrag(a)[0].rstrip("/")
    b = urldefrag(b)[0].rstrip("/")
    return a == b


def parse_meta_refresh(content: Optional[str], base_url: str) -> Optional[str]:
    """Extract the absolute target of a meta refresh ``content`` value."""
    if not content:
        return None
    match = META_REFRESH_PATTERN.search(content)
    if not match:
        return None
    target = match.group(1).strip().strip("'\"").strip()
    if not target:
        return None
    return urljoin(base_url, target)


def find_script_redirect(scripts: List[str]) -> Optional[str]:
    """Return the first quoted absolute URL following a location assignment."""
    for text in scripts:
        for marker in SCRIPT_REDIRECT_MARKERS:
            index = text.find(marker)
            if index < 0:
                continue
            match = QUOTED_ABSOLUTE_URL.search(text, index + len(marker))
            if match:
                return match.group(1)
    return None


class RedirectHandler:
    """Detects redirects and keeps the run's redirect statistics."""

    def __init__(
        self,
        policy: RedirectPolicy = RedirectPolicy.FOLLOW,
        max_redirects_to_follow: int = 5,
        navigation_timeout_ms: int = 10000,
        settle_timeout_s: float = 2.0
    ):
        """Initialize the handler.

        Args:
            policy: Whether redirected URLs are audited at their target or skipped
            max_redirects_to_follow: Maximum hops recorded per chain
            navigation_timeout_ms: Timeout for the detection navigation
            settle_timeout_s: How long to wait for a 2xx response after DOM-ready
        """
        self.policy = policy
        self.max_redirects_to_follow = max_redirects_to_follow
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_timeout_s = settle_timeout_s
        self.statistics = RedirectStatistics()

    async def detect(
        self,
        page: PageHandle,
        url: str,
        events: Optional[EventBus] = None
    ) -> Optional[RedirectInfo]:
        """Navigate to ``url`` and return redirect metadata, or None."""
        chain: List[RedirectHop] = []
        last_status: Optional[int] = None
        got_success = asyncio.Event()

        def on_response(response: ResponseInfo) -> None:
            nonlocal last_status
            if 300 <= response.status < 400 and response.location:
                if len(chain) < self.max_redirects_to_follow:
                    chain.append(RedirectHop(
                        from_url=response.url,
                        to_url=urljoin(response.url, response.location),
                        status=response.status,
                    ))
                last_status = response.status
            elif 200 <= response.status < 300:
                got_success.set()

        info: Optional[RedirectInfo] = None
        unsubscribe = page.on_response(on_response)
        try:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout_ms=self.navigation_timeout_ms)
            except Exception as e:
                logger.debug(f"Redirect detection navigation failed for {url}: {e}")
                return None

            try:
                await asyncio.wait_for(got_success.wait(), timeout=self.settle_timeout_s)
            except asyncio.TimeoutError:
                pass

            final_url = page.url
            if chain or not same_location(final_url, url):
                info = RedirectInfo(
                    original_url=url,
                    final_url=final_url,
                    status_code=last_status or 302,
                    type=RedirectType.HTTP,
                    chain=list(chain),
                )

            meta_target = parse_meta_refresh(await page.evaluate(META_REFRESH_SCRIPT), page.url)
            if meta_target and not same_location(meta_target, url):
                info = RedirectInfo(
                    original_url=url,
                    final_url=meta_target,
                    status_code=200,
                    type=RedirectType.META,
                )

            if info is None:
                script_target = find_script_redirect(await page.evaluate(INLINE_SCRIPTS_SCRIPT) or [])
                if script_target and not same_location(script_target, url):
                    info = RedirectInfo(
                        original_url=url,
                        final_url=script_target,
                        status_code=200,
                        type=RedirectType.JAVASCRIPT,
                    )

        except Exception as e:
            logger.warning(f"Redirect detection failed for {url}: {e}")
        finally:
            try:
                unsubscribe()
            except Exception as e:
                logger.debug(f"Failed to remove response listener: {e}")

        if info is not None:
            self.statistics.add(info)
            logger.info(f"Redirect detected ({info.type.value}): {url} -> {info.final_url}")
            if events is not None:
                events.emit(PageRedirected(url=url, final_url=info.final_url, info=info))

        return info

    def should_skip(self, info: Optional[RedirectInfo]) -> bool:
        """True when the policy says redirected URLs are not audited."""
        return info is not None and self.policy == RedirectPolicy.SKIP

    def summary(self) -> dict:
        return {
            "redirectHandling": {
                "enabled": True,
                "policy": self.policy.value,
                "maxRedirectsToFollow": self.max_redirects_to_follow,
                "statistics": self.statistics.to_dict(),
            }
        }
