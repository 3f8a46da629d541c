"""
Browser integration module for the peakauth package.

This module provides the headless browser seam used by the login flow:

- ``BrowserEngine`` / ``BrowserHandle``: the swappable port. The login flow
  only needs to launch an instance, open a page with a custom user agent and
  close the instance again. Pages follow the Playwright async ``Page``
  surface (goto, wait_for_selector, fill, click, wait_for_load_state,
  query_selector, on, remove_listener), so a fake page can stand in for tests.
- ``PlaywrightEngine``: the production adapter on top of ``playwright.async_api``.
- ``BrowserSessionController``: owns one browser instance per login attempt and
  guarantees it is released exactly once on every exit path.
"""

# Standard library imports
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

# Third-party imports
from playwright.async_api import Browser, Playwright, async_playwright

# Local imports
from peakauth.core.config import Config
from peakauth.core.errors import LaunchFailure
from peakauth.utils.logger import get_logger

logger = get_logger(__name__)


class BrowserHandle(ABC):
    """A launched browser instance."""

    @abstractmethod
    async def new_page(self, user_agent: Optional[str] = None) -> Any:
        """Open a fresh context and page, returning the page."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the instance and every page it owns."""
        pass


class BrowserEngine(ABC):
    """Factory for browser instances."""

    @abstractmethod
    async def launch(
        self,
        headless: bool = True,
        executable_path: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> BrowserHandle:
        """
        Launch a browser instance.

        Args:
            headless: Run without a visible window
            executable_path: Custom browser binary, or None for the bundled one
            timeout: Launch timeout in milliseconds

        Returns:
            A handle for the launched instance
        """
        pass


class PlaywrightBrowserHandle(BrowserHandle):
    """Browser handle backed by a Playwright Chromium instance."""

    def __init__(self, playwright: Playwright, browser: Browser):
        self._playwright = playwright
        self._browser = browser

    async def new_page(self, user_agent: Optional[str] = None):
        context = await self._browser.new_context(user_agent=user_agent)
        return await context.new_page()

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightEngine(BrowserEngine):
    """Launches Chromium through Playwright."""

    async def launch(
        self,
        headless: bool = True,
        executable_path: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> BrowserHandle:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=headless,
                executable_path=executable_path or None,
                timeout=timeout
            )
        except BaseException:
            await playwright.stop()
            raise
        return PlaywrightBrowserHandle(playwright, browser)


class BrowserSessionController:
    """
    Owns the browser resource for one login attempt.

    ``acquire`` launches the instance and ``release`` closes it. Callers should
    use the ``session()`` context manager, which releases exactly once whether
    the block succeeds, fails, or is cancelled.
    """

    def __init__(self, config: Config, engine: Optional[BrowserEngine] = None):
        self._config = config
        self._engine = engine or PlaywrightEngine()

    async def acquire(self) -> BrowserHandle:
        """
        Launch a browser instance.

        Returns:
            The launched handle

        Raises:
            LaunchFailure: If the instance could not be launched; not retried
        """
        browser_config = self._config.browser
        logger.debug(
            "Launching browser",
            extra={"context": {
                "headless": browser_config.headless,
                "executable_path": browser_config.executable_path or "bundled",
                "launch_timeout": browser_config.launch_timeout,
            }}
        )
        try:
            handle = await self._engine.launch(
                headless=browser_config.headless,
                executable_path=browser_config.executable_path,
                timeout=browser_config.launch_timeout
            )
        except Exception as e:
            logger.error(f"Failed to launch browser: {str(e)}")
            raise LaunchFailure(f"Failed to launch browser: {str(e)}") from e

        logger.debug("Browser launched")
        return handle

    async def release(self, handle: BrowserHandle) -> None:
        """Close the browser instance. Close errors are logged, not raised."""
        try:
            await handle.close()
            logger.debug("Browser closed")
        except Exception as e:
            logger.warning(f"Error closing browser: {str(e)}")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserHandle]:
        """Acquire a browser for the duration of the block."""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            await self.release(handle)
