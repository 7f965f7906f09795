"""Shared test fixtures and configuration for SiteAudit tests."""

import pytest
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin
import sys

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from siteaudit.audit.capture.page import BLANK_URL, ResponseInfo
from siteaudit.audit.models.config import AuditOptions, PoolOptions
from siteaudit.audit.redirects import INLINE_SCRIPTS_SCRIPT, META_REFRESH_SCRIPT


class FakeSite:
    """In-memory website served to FakePage instances.

    ``redirects`` maps a URL to ``(status, location)``; ``failures`` holds
    how many more navigations to a URL raise before it loads.
    """

    def __init__(self):
        self.statuses: Dict[str, int] = {}
        self.redirects: Dict[str, Tuple[int, str]] = {}
        self.meta_refresh: Dict[str, str] = {}
        self.inline_scripts: Dict[str, List[str]] = {}
        self.failures: Dict[str, int] = {}
        self.console: Dict[str, List[Tuple[str, str]]] = {}
        self.script_results: Dict[str, Any] = {}
        self.navigations: List[str] = []

    def fail(self, url: str, times: int) -> None:
        self.failures[url] = times


class FakePage:
    """PageHandle implementation backed by a FakeSite."""

    def __init__(self, site: FakeSite):
        self.site = site
        self._url = BLANK_URL
        self._closed = False
        self._response_listeners: List[Callable[[ResponseInfo], None]] = []
        self._console_listeners: List[Callable[[str, str], None]] = []
        self.reset_count = 0
        self.fail_reset = False
        self.scripts_added: List[str] = []

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url: str, wait_until: str = "load", timeout_ms: int = 30000) -> Optional[ResponseInfo]:
        if self._closed:
            raise RuntimeError("Target page has been closed")
        if url == BLANK_URL:
            self._url = BLANK_URL
            return None

        self.site.navigations.append(url)
        remaining = self.site.failures.get(url, 0)
        if remaining > 0:
            self.site.failures[url] = remaining - 1
            raise RuntimeError(f"net::ERR_CONNECTION_RESET at {url}")

        current = url
        hops = 0
        while current in self.site.redirects and hops < 20:
            status, location = self.site.redirects[current]
            self._respond(ResponseInfo(url=current, status=status, headers={"location": location}))
            current = urljoin(current, location)
            hops += 1

        final = ResponseInfo(
            url=current,
            status=self.site.statuses.get(current, 200),
            headers={"content-type": "text/html", "server": "fake"},
        )
        self._respond(final)
        self._url = current

        for kind, text in self.site.console.get(current, []):
            for listener in list(self._console_listeners):
                listener(kind, text)
        return final

    def _respond(self, response: ResponseInfo) -> None:
        for listener in list(self._response_listeners):
            listener(response)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == META_REFRESH_SCRIPT:
            return self.site.meta_refresh.get(self._url)
        if script == INLINE_SCRIPTS_SCRIPT:
            return self.site.inline_scripts.get(self._url, [])
        return self.site.script_results.get(script)

    async def content(self) -> str:
        return "<html></html>"

    async def add_script(self, source: str) -> None:
        self.scripts_added.append(source)

    def on_response(self, callback):
        self._response_listeners.append(callback)
        return lambda: self._response_listeners.remove(callback)

    def on_console(self, callback):
        self._console_listeners.append(callback)
        return lambda: self._console_listeners.remove(callback)

    async def screenshot(self, path: str) -> None:
        Path(path).write_bytes(b"\x89PNG")

    async def reset(self) -> None:
        self.reset_count += 1
        if self.fail_reset:
            raise RuntimeError("reset failed")
        self._url = BLANK_URL

    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        self._closed = True


@pytest.fixture
def fake_site():
    """Empty fake website; every URL answers 200 unless configured."""
    return FakeSite()


@pytest.fixture
def fake_page(fake_site):
    """A single FakePage on the fake website."""
    return FakePage(fake_site)


@pytest.fixture
def created_pages():
    return []


@pytest.fixture
def page_factory(fake_site, created_pages):
    """Coroutine creating FakePage handles, recording each one."""
    async def factory():
        page = FakePage(fake_site)
        created_pages.append(page)
        return page
    return factory


@pytest.fixture
def pool_options():
    """Small pool without pre-warming and with a fast acquire poll."""
    return PoolOptions(max_pages=4, prewarm=0, idle_floor=0, reap_interval_s=60, acquire_poll_s=0.01)


@pytest.fixture
def audit_options():
    """Options for queue tests: http audit only, no throttling."""
    return AuditOptions(concurrency=2, max_retries=2, enabled_audits=["http"])


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
