"""Browser launch and page creation on top of Playwright.

The factory owns the Playwright driver and one browser process. Every page
it hands out lives in its own browser context so cookies and storage never
leak between audited URLs.
"""

import logging
from typing import Any, Dict, Optional

from playwright.async_api import Browser, Playwright, async_playwright

from ..exceptions import BrowserPoolError
from ..models.config import BrowserEngine
from .page import PlaywrightPage

logger = logging.getLogger(__name__)


class BrowserConfig:
    """Configuration for browser launch and context setup."""

    def __init__(
        self,
        engine: str = BrowserEngine.CHROMIUM.value,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        ignore_https_errors: bool = False,
        locale: Optional[str] = None,
        **kwargs
    ):
        """Initialize browser configuration.

        Args:
            engine: Browser engine to use (chromium, firefox, webkit)
            headless: Run browser in headless mode
            viewport: Viewport size dict with 'width' and 'height'
            user_agent: Custom User-Agent string
            extra_headers: Additional HTTP headers for all requests
            ignore_https_errors: Ignore SSL/TLS certificate errors
            locale: Locale for the browser context
        """
        self.engine = engine
        self.headless = headless
        self.viewport = viewport or {'width': 1366, 'height': 768}
        self.user_agent = user_agent
        self.extra_headers = extra_headers or {}
        self.ignore_https_errors = ignore_https_errors
        self.locale = locale
        self.extra_options = kwargs

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options = {'headless': self.headless}
        options.update(self.extra_options)
        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options = {}

        if self.viewport:
            options['viewport'] = self.viewport

        if self.user_agent:
            options['user_agent'] = self.user_agent

        if self.extra_headers:
            options['extra_http_headers'] = self.extra_headers

        if self.ignore_https_errors:
            options['ignore_https_errors'] = True

        if self.locale:
            options['locale'] = self.locale

        return options


class BrowserFactory:
    """Starts one browser process and opens isolated pages on it."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.pages_created = 0

    async def start(self) -> None:
        """Start Playwright and launch the browser.

        Raises:
            BrowserPoolError: If the driver or the browser cannot be started
        """
        if self.playwright is not None:
            logger.warning("Browser factory already started")
            return

        logger.info(f"Starting browser factory with engine: {self.config.engine}")

        try:
            self.playwright = await async_playwright().start()

            if self.config.engine == BrowserEngine.FIREFOX.value:
                browser_type = self.playwright.firefox
            elif self.config.engine == BrowserEngine.WEBKIT.value:
                browser_type = self.playwright.webkit
            else:
                browser_type = self.playwright.chromium

            self.browser = await browser_type.launch(**self.config.to_browser_options())
            logger.info(f"Browser launched (headless={self.config.headless})")

        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self.stop()
            raise BrowserPoolError(f"Failed to launch {self.config.engine}: {e}") from e

    async def stop(self) -> None:
        """Close the browser and the Playwright driver."""
        logger.info("Stopping browser factory")

        try:
            if self.browser:
                await self.browser.close()
            if self.playwright:
                await self.playwright.stop()
        except Exception as e:
            logger.error(f"Error stopping browser factory: {e}")
        finally:
            self.browser = None
            self.playwright = None

    async def new_page(self) -> PlaywrightPage:
        """Open a page in a fresh browser context.

        Raises:
            BrowserPoolError: If the factory is not started or creation fails
        """
        if not self.browser:
            raise BrowserPoolError("Browser factory not started. Call start() first.")

        try:
            context = await self.browser.new_context(**self.config.to_context_options())
            page = await context.new_page()
        except Exception as e:
            logger.error(f"Failed to create page: {e}")
            raise BrowserPoolError(f"Failed to create page: {e}") from e

        self.pages_created += 1
        logger.debug(f"Created page #{self.pages_created}")
        return PlaywrightPage(context, page)

    @property
    def is_running(self) -> bool:
        if self.browser is None:
            return False
        return self.browser.is_connected()

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(engine={self.config.engine}, "
            f"headless={self.config.headless}, "
            f"running={self.is_running}, "
            f"pages={self.pages_created})"
        )
