"""Typed page capability used by the queue, the redirect handler and audits.

The core never touches a Playwright object directly. It talks to a
``PageHandle``: the handful of navigation and evaluation operations the
audits need. ``PlaywrightPage`` is the production implementation; tests
provide their own fakes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from playwright.async_api import BrowserContext, Page, Response, ConsoleMessage

logger = logging.getLogger(__name__)


BLANK_URL = "about:blank"


@dataclass
class ResponseInfo:
    """Library-neutral view of an HTTP response."""
    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("location")


ResponseCallback = Callable[[ResponseInfo], None]
ConsoleCallback = Callable[[str, str], None]


@runtime_checkable
class PageHandle(Protocol):
    """Operations an isolated browsing context exposes to the audit core."""

    @property
    def url(self) -> str: ...

    async def goto(
        self,
        url: str,
        wait_until: str = "load",
        timeout_ms: int = 30000
    ) -> Optional[ResponseInfo]: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def content(self) -> str: ...

    async def add_script(self, source: str) -> None: ...

    def on_response(self, callback: ResponseCallback) -> Callable[[], None]: ...

    def on_console(self, callback: ConsoleCallback) -> Callable[[], None]: ...

    async def screenshot(self, path: str) -> None: ...

    async def reset(self) -> None: ...

    def is_closed(self) -> bool: ...

    async def close(self) -> None: ...


def _to_response_info(response: Response) -> ResponseInfo:
    return ResponseInfo(
        url=response.url,
        status=response.status,
        headers={k.lower(): v for k, v in response.headers.items()},
    )


class PlaywrightPage:
    """PageHandle backed by a Playwright page in its own browser context."""

    def __init__(self, context: BrowserContext, page: Page):
        self._context = context
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(
        self,
        url: str,
        wait_until: str = "load",
        timeout_ms: int = 30000
    ) -> Optional[ResponseInfo]:
        response = await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        if response is None:
            return None
        return _to_response_info(response)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def content(self) -> str:
        return await self._page.content()

    async def add_script(self, source: str) -> None:
        await self._page.add_script_tag(content=source)

    def on_response(self, callback: ResponseCallback) -> Callable[[], None]:
        def handler(response: Response) -> None:
            callback(_to_response_info(response))

        self._page.on("response", handler)
        return lambda: self._page.remove_listener("response", handler)

    def on_console(self, callback: ConsoleCallback) -> Callable[[], None]:
        def handler(message: ConsoleMessage) -> None:
            callback(message.type, message.text)

        self._page.on("console", handler)
        return lambda: self._page.remove_listener("console", handler)

    async def screenshot(self, path: str) -> None:
        await self._page.screenshot(path=path, full_page=True)

    async def reset(self) -> None:
        """Blank the page and drop cookies set by the previous audit."""
        await self._page.goto(BLANK_URL, timeout=5000)
        await self._context.clear_cookies()

    def is_closed(self) -> bool:
        return self._page.is_closed()

    async def close(self) -> None:
        try:
            if not self._page.is_closed():
                await self._page.close()
        finally:
            await self._context.close()
