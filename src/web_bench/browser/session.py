"""Shared headless browser for one benchmark run."""

from __future__ import annotations

import logging
from types import TracebackType

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from web_bench.bench.errors import FatalSetupError
from web_bench.config import BrowserSettings

logger = logging.getLogger(__name__)


class BrowserSession:
    """Launches Chromium once; pages are created per task by the provider."""

    def __init__(self, settings: BrowserSettings) -> None:
        self.settings = settings
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def browser(self) -> Browser:
        if self._browser is None:
            raise RuntimeError("Browser session is not started.")
        return self._browser

    async def start(self) -> BrowserSession:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.headless,
            )
        except PlaywrightError as error:
            await self.stop()
            raise FatalSetupError(f"Cannot launch browser: {error}") from error
        logger.info("Launched Chromium %s", self._browser.version)
        return self

    async def stop(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as error:
                logger.warning("Browser close failed: %s", error)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> BrowserSession:
        return await self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.stop()
