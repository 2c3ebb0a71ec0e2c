"""Playwright browser session shared by the UI intents.

One Chromium context per run. UI intents navigate, fill and click through
``session.page``; ``settle`` is the fixed delay inserted after actions whose
effect the page applies asynchronously.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page, async_playwright

from ..pipeline import ContentTarget

logger = logging.getLogger(__name__)


async def is_visible(locator: Locator) -> bool:
    """Visibility check that treats a detached or missing element as hidden."""
    try:
        return await locator.is_visible()
    except PlaywrightError:
        return False


class BrowserSession:
    """A Playwright page plus the helpers the UI intents share."""

    def __init__(self, page: Page, *, settle_seconds: float = 1.0) -> None:
        self._page = page
        self._settle_seconds = settle_seconds

    @property
    def page(self) -> Page:
        return self._page

    @classmethod
    @asynccontextmanager
    async def launch(
        cls,
        *,
        headless: bool = True,
        settle_seconds: float = 1.0,
    ) -> AsyncIterator[BrowserSession]:
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=headless)
            context = await browser.new_context()
            try:
                page = await context.new_page()
                yield cls(page, settle_seconds=settle_seconds)
            finally:
                await context.close()
                await browser.close()

    async def goto(self, url: str) -> None:
        await self._page.goto(url, wait_until='domcontentloaded')

    async def settle(self, seconds: float | None = None) -> None:
        delay = self._settle_seconds if seconds is None else seconds
        await self._page.wait_for_timeout(delay * 1000)

    async def adopt_cookies(self, cookies: list[dict[str, str]]) -> None:
        """Install cookies obtained over the API into the browser context."""
        if cookies:
            await self._page.context.add_cookies(cookies)

    async def fetch(self, target: ContentTarget) -> str | None:
        """Load ``target.url`` in the browser and read one element's text."""
        try:
            await self.goto(target.url)
            if target.selector:
                locator = self._page.locator(target.selector).first
                if not await is_visible(locator):
                    return None
                return await locator.inner_text()
            return await self._page.content()
        except PlaywrightError as exc:
            logger.debug('%s not loadable yet: %s', target.url, exc)
            return None

    async def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self._page.screenshot(path=str(path), full_page=True)
        return path
