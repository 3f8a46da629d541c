"""
Form Interaction Driver for the platform's web login page.

This module drives the login form: navigate, dismiss the cookie banner, fill
the credentials and submit. Fields whose markup has drifted over time are
located through priority-ordered ``SelectorCandidate`` lists, evaluated by
``first_match``; the candidate lists live in ``peakauth.core.immutables``.
"""

# Standard library imports
from typing import Any, Awaitable, Callable, Optional, Sequence

# Third-party imports
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

# Local imports
from peakauth.auth.tracker import NetworkCompletionTracker
from peakauth.core.codex import Credentials, SelectorCandidate
from peakauth.core.config import Config
from peakauth.core.errors import FieldNotFoundFailure
from peakauth.core.immutables import (
    COOKIE_CONSENT_SELECTOR, PASSWORD_SELECTORS, SUBMIT_SELECTORS, USERNAME_SELECTOR
)
from peakauth.utils.logger import get_logger

logger = get_logger(__name__)

ElementAction = Callable[[Any], Awaitable[None]]

# Navigation, network idle, cookie banner, username, password and submit each
# take one share; the rest of the login timeout is left for the platform to respond.
PRE_SUBMIT_SHARES = 8


async def first_match(
    page: Any,
    candidates: Sequence[SelectorCandidate],
    action: ElementAction,
    timeout: int,
    field_name: str = "element"
) -> SelectorCandidate:
    """
    Run ``action`` on the first candidate that becomes visible.

    Each candidate gets its own ``timeout`` (ms), so the total wait is bounded
    by ``len(candidates) * timeout``.

    Args:
        page: Page to search
        candidates: Selector candidates in priority order
        action: Coroutine function applied to the matched element
        timeout: Per-candidate wait in milliseconds
        field_name: Name used in log and error messages

    Returns:
        The candidate that matched

    Raises:
        FieldNotFoundFailure: If no candidate matched; the error names every selector tried
    """
    for candidate in candidates:
        try:
            element = await page.wait_for_selector(candidate.selector, state="visible", timeout=timeout)
        except PlaywrightError as e:
            logger.debug(f"No {field_name} at {candidate.selector}: {str(e)}")
            continue
        if element is None:
            continue

        await action(element)
        logger.debug(f"Used {field_name} selector {candidate.selector}")
        return candidate

    selectors = [candidate.selector for candidate in candidates]
    raise FieldNotFoundFailure(
        f"Could not find {field_name}; tried: {', '.join(selectors)}",
        selectors=selectors
    )


class FormInteractionDriver:
    """Fills and submits the platform's login form."""

    def __init__(self, config: Config):
        self._config = config

    async def perform_login(
        self,
        page: Any,
        credentials: Credentials,
        tracker: Optional[NetworkCompletionTracker] = None
    ) -> None:
        """
        Execute the login form steps on ``page``.

        Args:
            page: A fresh page from the browser session
            credentials: Username and password to enter
            tracker: Tracker to notify on submission; it also performs the
                post-submit error banner check

        Raises:
            FieldNotFoundFailure: If the username, password or submit control is missing
        """
        await self._navigate(page)
        await self._dismiss_cookie_consent(page)
        await self._fill_username(page, credentials.username)

        await first_match(
            page,
            PASSWORD_SELECTORS,
            lambda element: element.fill(credentials.password),
            self._step_timeout(self._config.browser.selector_timeout, len(PASSWORD_SELECTORS)),
            field_name="password field"
        )

        async def submit(element: Any) -> None:
            if tracker is not None:
                tracker.mark_submitted()
            await element.click()

        await first_match(
            page,
            SUBMIT_SELECTORS,
            submit,
            self._step_timeout(self._config.browser.selector_timeout, len(SUBMIT_SELECTORS)),
            field_name="submit control"
        )
        logger.info("Login form submitted")

        await self._wait_for_settle(page)
        if tracker is not None:
            await tracker.check_error_banner()

    def _step_timeout(self, timeout: int, candidates: int = 1) -> int:
        # Every pre-submit step, a whole candidate list counting as one step,
        # gets at most 1/PRE_SUBMIT_SHARES of the overall login timeout.
        return min(timeout, self._config.timeouts.web_auth // (PRE_SUBMIT_SHARES * candidates))

    async def _navigate(self, page: Any) -> None:
        login_url = self._config.urls.login_url
        logger.info(f"Navigating to {login_url}")
        try:
            await page.goto(
                login_url,
                wait_until="domcontentloaded",
                timeout=self._step_timeout(self._config.timeouts.default)
            )
        except PlaywrightTimeoutError:
            logger.debug("Login page still loading, continuing")

        try:
            await page.wait_for_load_state(
                "networkidle",
                timeout=self._step_timeout(self._config.timeouts.page_load)
            )
        except PlaywrightTimeoutError:
            # The form is usually interactive long before background requests go quiet.
            logger.debug("Login page did not reach network idle, continuing")

    async def _dismiss_cookie_consent(self, page: Any) -> None:
        try:
            button = await page.wait_for_selector(
                COOKIE_CONSENT_SELECTOR,
                state="visible",
                timeout=self._step_timeout(self._config.timeouts.element_wait)
            )
            if button is not None:
                await button.click()
                logger.debug("Cookie consent dismissed")
        except PlaywrightError:
            logger.debug("No cookie consent banner")

    async def _fill_username(self, page: Any, username: str) -> None:
        try:
            field = await page.wait_for_selector(
                USERNAME_SELECTOR,
                state="visible",
                timeout=self._step_timeout(self._config.timeouts.element_wait)
            )
        except PlaywrightError as e:
            raise FieldNotFoundFailure(
                f"Could not find username field {USERNAME_SELECTOR}: {str(e)}",
                selectors=[USERNAME_SELECTOR]
            ) from e
        if field is None:
            raise FieldNotFoundFailure(
                f"Could not find username field {USERNAME_SELECTOR}",
                selectors=[USERNAME_SELECTOR]
            )
        await field.fill(username)

    async def _wait_for_settle(self, page: Any) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=self._config.browser.page_wait_timeout)
        except PlaywrightTimeoutError:
            logger.debug("Page still busy after submission")
