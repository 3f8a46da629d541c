"""
Network completion tracking for the browser login flow.

The platform issues its access token as a side effect of the web login form,
so the login flow learns the outcome by watching the page rather than by
calling an API. ``NetworkCompletionTracker`` subscribes to the page's request,
response and script-error events, polls the rendered page for inline error
banners once the form is submitted, and runs one overall timer. Every source
produces a ``SignalResult`` that is applied at a single point; the tracker
settles exactly once, with the intercepted token and user id or with a
``LoginError``.

State machine::

    LISTENING --(token and user id recorded)--> SUCCEEDED
    LISTENING --(failure signal)--------------> FAILED
    LISTENING --(overall timeout)-------------> FAILED

Signals arriving after settlement are ignored.
"""

# Standard library imports
import asyncio
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Set, Tuple
from urllib.parse import urlparse

# Third-party imports
from playwright.async_api import Error as PlaywrightError

# Local imports
from peakauth.core.codex import AuthToken, InterceptedSignal, TrackerState, token_from_payload
from peakauth.core.config import Config
from peakauth.core.errors import (
    IncompleteDataFailure, InvalidCredentialsFailure, LoginError, TimeoutFailure
)
from peakauth.core.immutables import (
    API_PATH_MARKERS, CREDENTIAL_FAILURE_PHRASES, ERROR_BANNER_SELECTORS,
    PAGE_ERROR_AUTH_TERMS, TOKEN_PATH, USER_PATH
)
from peakauth.utils.browser_utils import render_curl
from peakauth.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SignalResult:
    """What one observed event contributes to the login outcome."""
    token: Optional[AuthToken] = None
    user_id: Optional[str] = None
    failure: Optional[LoginError] = None

    @property
    def is_empty(self) -> bool:
        return self.token is None and self.user_id is None and self.failure is None


IGNORED = SignalResult()


def contains_credential_failure(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in CREDENTIAL_FAILURE_PHRASES)


def mentions_auth_failure(text: str) -> bool:
    lowered = text.lower()
    return any(term in lowered for term in PAGE_ERROR_AUTH_TERMS)


def _path(url: str) -> str:
    return urlparse(url).path.rstrip("/")


class NetworkCompletionTracker:
    """
    Aggregates network and DOM signals of one login attempt into one outcome.

    Usage::

        tracker = NetworkCompletionTracker(page, config)
        tracker.start()
        try:
            ...  # drive the form, calling tracker.mark_submitted() on submit
            signal = await tracker.wait()
        finally:
            tracker.stop()
    """

    def __init__(self, page: Any, config: Config):
        self._page = page
        self._config = config
        self._signal = InterceptedSignal()
        self._state = TrackerState.LISTENING
        self._submitted = False
        self._outcome: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._handler_tasks: Set[asyncio.Task] = set()
        self._listeners: List[Tuple[str, Callable]] = []

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def submitted(self) -> bool:
        return self._submitted

    @property
    def signal(self) -> InterceptedSignal:
        """A copy of the signals recorded so far."""
        return replace(self._signal)

    def start(self) -> None:
        """Subscribe to page events and start the overall timer."""
        if self._outcome is not None:
            raise RuntimeError("Tracker already started")

        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()

        self._listen("request", self._on_request)
        self._listen("response", self._on_response)
        self._listen("pageerror", self._on_page_error)
        if self._config.debug.log_browser:
            self._listen("console", self._on_console)

        self._timer = loop.call_later(self._config.login_timeout, self._on_timeout)
        logger.debug(
            "Network completion tracker listening",
            extra={"context": {"timeout_ms": self._config.timeouts.web_auth}}
        )

    def mark_submitted(self) -> None:
        """Record that the form was submitted and start polling for error banners."""
        if self._submitted or self._state.is_settled:
            return
        self._submitted = True
        self._poll_task = asyncio.create_task(self._poll_error_banner())

    async def check_error_banner(self) -> bool:
        """
        Check the page for an inline credential error right now.

        Returns:
            True if a banner was found and the tracker settled as a failure
        """
        if not self._submitted or self._state.is_settled:
            return False
        result = await self._inspect_error_banner()
        self._apply(result)
        return result.failure is not None

    def fail(self, error: LoginError) -> None:
        """Settle as a failure from outside the tracker, e.g. a form interaction error."""
        self._apply(SignalResult(failure=error))

    async def wait(self) -> InterceptedSignal:
        """
        Wait for settlement.

        Returns:
            The complete intercepted signal (token and user id)

        Raises:
            LoginError: The failure the tracker settled with
        """
        if self._outcome is None:
            raise RuntimeError("Tracker has not been started")
        return await self._outcome

    def stop(self) -> None:
        """Unsubscribe from the page and cancel every timer and pending task."""
        self._teardown()
        for event, handler in self._listeners:
            try:
                self._page.remove_listener(event, handler)
            except Exception as e:
                logger.debug(f"Could not remove {event} listener: {str(e)}")
        self._listeners.clear()
        if self._outcome is not None and not self._outcome.done():
            self._outcome.cancel()

    # Settlement

    def _apply(self, result: SignalResult) -> None:
        if result.is_empty:
            return
        if self._state.is_settled:
            logger.debug("Ignoring signal received after settlement")
            return

        if result.failure is not None:
            self._settle(TrackerState.FAILED, result.failure)
            return

        if result.token is not None:
            self._signal.token = result.token
        if result.user_id is not None:
            self._signal.user_id = result.user_id

        if self._signal.is_complete:
            self._settle(TrackerState.SUCCEEDED)

    def _settle(self, state: TrackerState, error: Optional[LoginError] = None) -> None:
        self._state = state
        self._teardown()

        if error is not None:
            logger.warning(f"Login attempt failed: {str(error)}")
        else:
            logger.info("Authentication data intercepted", extra={"context": {"user_id": self._signal.user_id}})

        if self._outcome is None or self._outcome.done():
            return
        if error is not None:
            self._outcome.set_exception(error)
        else:
            self._outcome.set_result(replace(self._signal))

    def _teardown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        current = asyncio.current_task()
        pending = list(self._handler_tasks)
        if self._poll_task is not None:
            pending.append(self._poll_task)
            self._poll_task = None
        for task in pending:
            if task is not current and not task.done():
                task.cancel()
        self._handler_tasks.clear()

    def _on_timeout(self) -> None:
        self._timer = None
        if self._state.is_settled:
            return
        timeout_ms = self._config.timeouts.web_auth
        if self._signal.has_progress:
            missing = self._signal.missing()
            error = IncompleteDataFailure(
                f"Authentication data incomplete after {timeout_ms} ms: missing {', '.join(missing)}",
                missing=missing
            )
        else:
            error = TimeoutFailure(f"Login did not complete within {timeout_ms} ms")
        self._apply(SignalResult(failure=error))

    # Event handlers

    def _listen(self, event: str, handler: Callable) -> None:
        self._page.on(event, handler)
        self._listeners.append((event, handler))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    def _on_request(self, request: Any) -> None:
        # Diagnostic only; requests never gate completion.
        url = request.url
        if not self._config.debug.log_network or not any(marker in url for marker in API_PATH_MARKERS):
            return
        try:
            curl = render_curl(request.method, url, request.headers, request.post_data)
        except Exception as e:
            logger.debug(f"Could not render intercepted request {url}: {str(e)}")
            return
        logger.debug(f"Intercepted API request\n{curl}")

    def _on_response(self, response: Any) -> None:
        if self._state.is_settled:
            return
        self._spawn(self._handle_response(response))

    async def _handle_response(self, response: Any) -> None:
        self._apply(await self._classify_response(response))

    def _on_page_error(self, error: Any) -> None:
        message = getattr(error, "message", None) or str(error)
        logger.debug(f"Page script error: {message}")
        if mentions_auth_failure(message):
            self._apply(SignalResult(failure=LoginError(f"Page reported an authentication error: {message}")))

    def _on_console(self, message: Any) -> None:
        logger.debug(f"Browser console: {getattr(message, 'text', message)}")

    # Response classification

    async def _classify_response(self, response: Any) -> SignalResult:
        url = response.url
        status = response.status
        path = _path(url)

        if path.endswith(TOKEN_PATH):
            return await self._classify_token_response(response, url, status)
        if path.endswith(USER_PATH):
            return await self._classify_user_response(response, url, status)
        if self._submitted and self._is_generic_auth_failure(url, status):
            return SignalResult(failure=InvalidCredentialsFailure(
                f"Platform rejected the login at {path or url}", status_code=status
            ))
        return IGNORED

    async def _classify_token_response(self, response: Any, url: str, status: int) -> SignalResult:
        logger.debug("Intercepted token response", extra={"context": {"status": status, "url": url}})

        if status == 401:
            return SignalResult(failure=InvalidCredentialsFailure(
                "Token request rejected: invalid credentials", status_code=status
            ))
        if 400 <= status < 500 and self._config.urls.is_platform_url(url):
            return SignalResult(failure=InvalidCredentialsFailure(
                "Token request rejected by the platform", status_code=status
            ))
        if not 200 <= status < 300:
            logger.warning(f"Token response failed with status {status}")
            return IGNORED

        payload = await self._read_json(response)
        if not isinstance(payload, dict):
            return IGNORED
        try:
            token = token_from_payload(payload.get("token"), self._config.default_token_lifetime)
        except ValueError as e:
            logger.warning(f"Ignoring unusable token response: {str(e)}")
            return IGNORED
        if token is None:
            logger.debug("No access token in token response")
            return IGNORED

        logger.info(
            "Intercepted auth token",
            extra={"context": {"token_type": token.token_type, "expires_at": token.expires_at.isoformat()}}
        )
        return SignalResult(token=token)

    async def _classify_user_response(self, response: Any, url: str, status: int) -> SignalResult:
        logger.debug("Intercepted user response", extra={"context": {"status": status, "url": url}})

        if not 200 <= status < 300:
            if self._submitted and self._is_generic_auth_failure(url, status):
                return SignalResult(failure=InvalidCredentialsFailure(
                    "User profile request rejected", status_code=status
                ))
            logger.debug(f"User response failed with status {status}")
            return IGNORED

        payload = await self._read_json(response)
        user = payload.get("user") if isinstance(payload, dict) else None
        user_id = user.get("userId") if isinstance(user, dict) else None
        if user_id is None or isinstance(user_id, bool) or str(user_id).strip() == "":
            logger.debug("No user id in user response")
            return IGNORED

        return SignalResult(user_id=str(user_id).strip())

    def _is_generic_auth_failure(self, url: str, status: int) -> bool:
        if not 400 <= status < 500 or not self._config.urls.is_platform_url(url):
            return False
        if status in (401, 403):
            return True
        return any(marker in urlparse(url).path for marker in API_PATH_MARKERS)

    async def _read_json(self, response: Any) -> Any:
        try:
            return await response.json()
        except Exception as e:
            logger.warning(
                "Failed to parse response as JSON",
                extra={"context": {"url": response.url, "status": response.status, "error": str(e)}}
            )
            return None

    # Error banner polling

    async def _poll_error_banner(self) -> None:
        interval = self._config.browser.error_poll_interval / 1000
        while not self._state.is_settled:
            await asyncio.sleep(interval)
            if self._state.is_settled:
                return
            self._apply(await self._inspect_error_banner())

    async def _inspect_error_banner(self) -> SignalResult:
        for candidate in ERROR_BANNER_SELECTORS:
            try:
                element = await self._page.query_selector(candidate.selector)
                if element is None or not await element.is_visible():
                    continue
                text = ((await element.text_content()) or "").strip()
            except PlaywrightError as e:
                logger.debug(f"Error banner check on {candidate.selector} failed: {str(e)}")
                continue

            if candidate.requires_keywords and not contains_credential_failure(text):
                if text:
                    logger.debug(f"Ignoring non-credential banner text: {text}")
                continue
            return SignalResult(failure=InvalidCredentialsFailure(f"Login failed: {text or 'Invalid credentials'}"))
        return IGNORED
