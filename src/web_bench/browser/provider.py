"""Page provider: one isolated browser context and page per task."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from playwright.async_api import BrowserContext, Page

from web_bench.bench.contracts import CancellationToken
from web_bench.bench.models import PageInfo, Target
from web_bench.browser.session import BrowserSession

logger = logging.getLogger(__name__)

DOM_ELEMENT_COUNT_SCRIPT = "() => document.getElementsByTagName('*').length"


@dataclass(slots=True)
class PageHandle:
    context: BrowserContext
    page: Page


class PlaywrightPageProvider:
    """Navigates a fresh page to each target origin."""

    def __init__(self, session: BrowserSession, *, navigation_timeout_ms: int) -> None:
        self.session = session
        self.navigation_timeout_ms = navigation_timeout_ms

    async def acquire(self) -> PageHandle:
        settings = self.session.settings
        context = await self.session.browser.new_context(
            ignore_https_errors=settings.ignore_https_errors,
            user_agent=settings.user_agent,
        )
        try:
            page = await context.new_page()
        except BaseException:
            await context.close()
            raise
        page.set_default_timeout(self.navigation_timeout_ms)
        return PageHandle(context=context, page=page)

    async def load(
        self,
        handle: PageHandle,
        target: Target,
        cancel: CancellationToken,
    ) -> PageInfo:
        cancel.raise_if_cancelled()
        await handle.page.goto(
            target.origin,
            wait_until="domcontentloaded",
            timeout=self.navigation_timeout_ms,
        )
        cancel.raise_if_cancelled()
        dom_elements = await handle.page.evaluate(DOM_ELEMENT_COUNT_SCRIPT)
        return PageInfo(dom_element_count=int(dom_elements) if dom_elements is not None else None)

    async def release(self, handle: PageHandle) -> None:
        await handle.page.close()
        await handle.context.close()

    async def force_release(self, handle: PageHandle) -> None:
        # Closing the context tears down every page in it, hung ones included.
        logger.debug("Force-closing browser context")
        await handle.context.close()
