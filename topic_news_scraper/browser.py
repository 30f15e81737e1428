from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from fake_useragent import UserAgent
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from topic_news_scraper.config import BrowserSettings
from topic_news_scraper.errors import ProxyUnavailable
from topic_news_scraper.proxy import ProxySource


logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 800}
LOCALE = "en-US"
TIMEZONE_ID = "America/New_York"

_MOBILE_MARKERS = ("mobile", "android", "iphone", "ipad", "tablet", "phone")

# Hide navigator.webdriver, the most common automation tell.
STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {
  get: () => false,
});
"""

_ua_source: Optional[UserAgent] = None


def is_desktop_user_agent(ua: Optional[str]) -> bool:
    if not ua:
        return False
    ua_l = ua.lower()
    return not any(m in ua_l for m in _MOBILE_MARKERS)


def _fake_user_agent() -> str:
    global _ua_source
    if _ua_source is None:
        _ua_source = UserAgent()
    return _ua_source.random


def random_user_agent(source: Optional[Callable[[], str]] = None) -> str:
    """Pick random user agents until a desktop one comes up."""

    source = source or _fake_user_agent
    while True:
        ua = source()
        if is_desktop_user_agent(ua):
            return ua


@dataclass
class BrowserSession:
    identity: str
    proxy: Optional[str]
    page: Page


async def _close_quietly(what: str, close: Callable[[], Awaitable[None]]) -> None:
    try:
        await close()
    except Exception:
        logger.warning("Failed to close %s", what, exc_info=True)


class BrowserSessionFactory:
    """Opens one throwaway headless Chromium session per scrape."""

    def __init__(
        self,
        proxy_source: Optional[ProxySource] = None,
        settings: Optional[BrowserSettings] = None,
        *,
        identity_source: Optional[Callable[[], str]] = None,
    ) -> None:
        self._proxy_source = proxy_source
        self._settings = settings or BrowserSettings()
        self._identity_source = identity_source

    async def _try_proxy(self) -> Optional[str]:
        if self._proxy_source is None or not self._proxy_source.enabled:
            return None
        try:
            return await self._proxy_source.fetch_proxy()
        except ProxyUnavailable as e:
            logger.info("No proxy available, continuing without one: %s", e)
            return None

    @asynccontextmanager
    async def open(self) -> AsyncIterator[BrowserSession]:
        """Launch the browser and yield a ready page.

        Everything launched here is closed when the block exits, whatever
        the reason.
        """

        identity = random_user_agent(self._identity_source)
        proxy = await self._try_proxy()

        async with AsyncExitStack() as stack:
            pw = await async_playwright().start()
            stack.push_async_callback(_close_quietly, "playwright", pw.stop)

            browser = await pw.chromium.launch(headless=self._settings.headless)
            stack.push_async_callback(_close_quietly, "browser", browser.close)

            context = await browser.new_context(
                user_agent=identity,
                is_mobile=False,
                locale=LOCALE,
                viewport=VIEWPORT,
                timezone_id=TIMEZONE_ID,
                proxy={"server": proxy} if proxy else None,
            )
            stack.push_async_callback(_close_quietly, "browser context", context.close)

            await context.add_init_script(STEALTH_SCRIPT)
            page = await context.new_page()

            logger.info("Browser session opened (proxy=%s) user agent: %s", proxy or "none", identity)
            try:
                yield BrowserSession(identity=identity, proxy=proxy, page=page)
            finally:
                logger.info("Closing browser session")

    async def resolve_redirect(self, url: str) -> str:
        """Follow redirects from ``url`` in a fresh session and return where it lands.

        Falls back to ``url`` itself when navigation fails.
        """

        timeout_ms = self._settings.redirect_timeout_seconds * 1000
        async with self.open() as session:
            try:
                await session.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                return session.page.url
            except PlaywrightError as e:
                logger.warning("Error resolving redirect for %s: %s", url, e)
                return url
