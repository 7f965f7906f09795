"""Browser capture layer: Playwright launch, page handles and the page pool.

Usage:
    from siteaudit.audit.capture import BrowserPool

    pool = BrowserPool()
    await pool.start()
    async with pool.page() as page:
        await page.goto("https://example.com")
    await pool.close()
"""

from .browser_factory import BrowserConfig, BrowserFactory
from .browser_pool import BrowserPool
from .page import BLANK_URL, PageHandle, PlaywrightPage, ResponseInfo

__all__ = [
    "BLANK_URL",
    "BrowserConfig",
    "BrowserFactory",
    "BrowserPool",
    "PageHandle",
    "PlaywrightPage",
    "ResponseInfo",
]
