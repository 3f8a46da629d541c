"""Shared fixtures: a scripted fake of the Playwright page surface and fast configs."""

import asyncio
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from peakauth.core.codex import AuthToken, Session, User, utcnow
from peakauth.core.config import Config
from peakauth.integrations.browser import BrowserEngine, BrowserHandle

API = "https://tpapi.trainingpeaks.com"
TOKEN_URL = f"{API}/users/v3/token"
USER_URL = f"{API}/users/v3/user"


class FakeElement:
    def __init__(
        self,
        text: str = "",
        visible: bool = True,
        on_click: Optional[Callable[[], None]] = None,
        fill_error: Optional[Exception] = None
    ):
        self.text = text
        self.visible = visible
        self.on_click = on_click
        self.fill_error = fill_error
        self.value: Optional[str] = None
        self.clicks = 0

    async def fill(self, value: str) -> None:
        if self.fill_error is not None:
            raise self.fill_error
        self.value = value

    async def click(self) -> None:
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()

    async def is_visible(self) -> bool:
        return self.visible

    async def text_content(self) -> str:
        return self.text


class FakeRequest:
    def __init__(self, url: str, method: str = "GET", headers: Optional[Dict[str, str]] = None, post_data=None):
        self.url = url
        self.method = method
        self.headers = headers or {}
        self.post_data = post_data


class FakeResponse:
    def __init__(self, url: str, status: int = 200, body: Any = None):
        self.url = url
        self.status = status
        self.status_text = "OK" if status < 400 else "Error"
        self.body = body

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def json(self) -> Any:
        if self.body is None:
            raise ValueError("No JSON body")
        return self.body


class FakePage:
    """
    Minimal stand-in for a Playwright page.

    ``elements`` maps selectors to elements; ``wait_for_selector`` raises
    Playwright's TimeoutError for missing or hidden elements. With ``slow``
    set, every failing wait first sleeps for its full timeout, and navigation
    and load-state waits always do, the way a real unresponsive page behaves.
    """

    def __init__(self, elements: Optional[Dict[str, FakeElement]] = None):
        self.elements: Dict[str, FakeElement] = elements or {}
        self.listeners: Dict[str, List[Callable]] = {}
        self.visited: List[str] = []
        self.waited_selectors: List[str] = []
        self.goto_error: Optional[Exception] = None
        self.slow = False
        self.wait_timeouts: List[Optional[float]] = []

    def on(self, event: str, handler: Callable) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable) -> None:
        self.listeners.get(event, []).remove(handler)

    def emit(self, event: str, payload: Any) -> None:
        for handler in list(self.listeners.get(event, [])):
            handler(payload)

    def respond(self, url: str, status: int = 200, body: Any = None) -> None:
        self.emit("request", FakeRequest(url, method="POST" if url == TOKEN_URL else "GET"))
        self.emit("response", FakeResponse(url, status, body))

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[float] = None):
        self.visited.append(url)
        if self.slow:
            await self._time_out(timeout)
        if self.goto_error is not None:
            raise self.goto_error

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: Optional[float] = None):
        self.waited_selectors.append(selector)
        self.wait_timeouts.append(timeout)
        element = self.elements.get(selector)
        if element is None or not element.visible:
            if self.slow:
                await asyncio.sleep((timeout or 0) / 1000)
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return element

    async def query_selector(self, selector: str):
        return self.elements.get(selector)

    async def wait_for_load_state(self, state: str = "load", timeout: Optional[float] = None) -> None:
        if self.slow:
            await self._time_out(timeout)

    async def _time_out(self, timeout: Optional[float]) -> None:
        await asyncio.sleep((timeout or 0) / 1000)
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")


class FakeBrowserHandle(BrowserHandle):
    def __init__(self, page: FakePage):
        self.page = page
        self.close_count = 0
        self.user_agents: List[Optional[str]] = []

    async def new_page(self, user_agent: Optional[str] = None):
        self.user_agents.append(user_agent)
        return self.page

    async def close(self) -> None:
        self.close_count += 1


class FakeBrowserEngine(BrowserEngine):
    def __init__(self, page: FakePage, launch_error: Optional[Exception] = None):
        self.handle = FakeBrowserHandle(page)
        self.launch_error = launch_error
        self.launches = 0

    async def launch(self, headless: bool = True, executable_path: Optional[str] = None, timeout=None):
        self.launches += 1
        if self.launch_error is not None:
            raise self.launch_error
        return self.handle


def login_form(on_submit: Optional[Callable[[], None]] = None) -> Dict[str, FakeElement]:
    """Elements of the current login page markup."""
    return {
        '[data-cy="username"]': FakeElement(),
        '[data-cy="password"]': FakeElement(),
        "#btnSubmit": FakeElement(on_click=on_submit),
    }


def make_session(access_token: str = "AT1", refresh_token: Optional[str] = "RT1", expires_in: timedelta = timedelta(hours=1)):
    token = AuthToken(
        access_token=access_token,
        token_type="Bearer",
        expires_at=utcnow() + expires_in,
        refresh_token=refresh_token,
    )
    return Session(token=token, user=User(id="555", display_name="athlete1"))


@pytest.fixture
def config():
    """Config with short timeouts so failing waits return quickly."""
    return Config.build(
        timeouts={"web_auth": 2000, "element_wait": 10, "default": 100},
        browser={"selector_timeout": 10, "page_wait_timeout": 10, "error_poll_interval": 20},
        refresh={"cooldown_base": 30000, "max_backoff": 100000},
    )


@pytest.fixture
def page():
    return FakePage()
