"""
Rendered page fetcher for the local backend.

Uses Playwright Chromium with automation indicators hidden, blocks the
configured resource types and waits for late-rendered content.
"""

import asyncio
import os
from typing import Optional, Tuple
from playwright.async_api import async_playwright, Browser, BrowserContext, Route
import logging

from .fetch import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'

HIDE_AUTOMATION_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined
    });
    Object.defineProperty(navigator, 'languages', {
        get: () => ['fr-FR', 'fr']
    });
"""


class StealthCrawler:
    """
    Playwright-backed rendered fetch.

    The browser is started lazily on first use and shared by every
    rendered request until close().
    """

    def __init__(self, timeout: float = 30.0, headless: bool = True, min_body_length: int = 100):
        """
        Initialize the stealth crawler.

        Args:
            timeout: Navigation timeout in seconds
            headless: Run browser in headless mode
            min_body_length: Shorter bodies are treated as blocked pages
        """
        self.timeout = timeout
        self.headless = headless
        self.min_body_length = min_body_length
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._playwright = None
        self._lock = asyncio.Lock()

    async def _init_browser(self):
        """Initialize browser and context if not already done."""
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return

            self._playwright = await async_playwright().start()
            chromium_path = self._playwright.chromium.executable_path
            if not chromium_path or not os.path.exists(chromium_path):
                await self._cleanup()
                raise FetchError("Chromium browser not found. Run: playwright install chromium")

            logger.debug("Launching Chromium browser...")
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    '--disable-blink-features=AutomationControlled',
                    '--disable-dev-shm-usage',
                    '--no-sandbox',
                    '--disable-gpu',
                ],
                handle_sigint=False,
                handle_sigterm=False,
                handle_sighup=False,
            )
            self._context = await self._browser.new_context(
                viewport={'width': 1920, 'height': 1080},
                user_agent=USER_AGENT,
                locale='fr-FR',
                timezone_id='Europe/Paris',
                extra_http_headers={
                    'Accept-Language': 'fr-FR,fr;q=0.9,en;q=0.8',
                    'Upgrade-Insecure-Requests': '1',
                },
            )
            await self._context.add_init_script(HIDE_AUTOMATION_SCRIPT)

    async def _cleanup(self):
        """Clean up browser resources with timeouts to prevent hanging."""
        cleanup_timeout = 2.0

        for name, closer in (
            ('context', self._context.close if self._context else None),
            ('browser', self._browser.close if self._browser else None),
            ('playwright', self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await asyncio.wait_for(closer(), timeout=cleanup_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Closing {name} timed out, forcing cleanup")
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")

        self._context = None
        self._browser = None
        self._playwright = None

    async def fetch(
        self,
        url: str,
        wait_ms: int = 0,
        wait_selector: Optional[str] = None,
        blocked_resource_types: Tuple[str, ...] = (),
    ) -> str:
        """
        Fetch a URL with a real browser and return the rendered HTML.

        Raises:
            FetchError: Navigation failed, error status or short body
        """
        await self._init_browser()
        page = await self._context.new_page()
        blocked = set(blocked_resource_types)

        async def block(route: Route):
            if route.request.resource_type in blocked:
                await route.abort()
            else:
                await route.continue_()

        try:
            if blocked:
                await page.route('**/*', block)

            try:
                response = await page.goto(
                    url,
                    wait_until='domcontentloaded',
                    timeout=int(self.timeout * 1000)
                )
            except Exception as e:
                raise FetchError(f"Navigation failed for {url}: {e}") from e

            if response and response.status >= 400:
                raise FetchError(f"HTTP {response.status} for {url}", status_code=response.status)

            if wait_selector:
                try:
                    await page.wait_for_selector(wait_selector, timeout=8000)
                except Exception as e:
                    logger.debug(f"Selector {wait_selector} not found: {e}")

            if wait_ms:
                await asyncio.sleep(wait_ms / 1000)

            content = await page.content()
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Error closing page: {e}")

        if len(content) < self.min_body_length:
            raise FetchError(f"Body too short ({len(content)} chars) for {url}, likely blocked")
        return content

    async def close(self):
        """Close the browser and cleanup resources."""
        await self._cleanup()

    async def __aenter__(self):
        await self._init_browser()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self._cleanup()
