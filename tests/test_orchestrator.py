"""End-to-end login attempts against a fake browser."""

import asyncio

import pytest

from conftest import TOKEN_URL, USER_URL, FakeBrowserEngine, FakeElement, FakePage, login_form
from peakauth.auth.orchestrator import LoginOrchestrator
from peakauth.core.codex import Credentials
from peakauth.core.config import Config
from peakauth.core.errors import (
    FieldNotFoundFailure, IncompleteDataFailure, InvalidCredentialsFailure, LaunchFailure,
    LoginError, TimeoutFailure
)
from peakauth.integrations.browser import BrowserSessionController
from peakauth.integrations.storage import InMemorySessionStorage

CREDENTIALS = Credentials("athlete1", "pw")


def build(config, page, launch_error=None):
    engine = FakeBrowserEngine(page, launch_error=launch_error)
    storage = InMemorySessionStorage()
    orchestrator = LoginOrchestrator(
        config,
        storage,
        controller=BrowserSessionController(config, engine=engine)
    )
    return orchestrator, engine, storage


def page_responding(*responses):
    """A login page whose submit button triggers the given (url, status, body) responses."""
    page = FakePage()

    def submit():
        for url, status, body in responses:
            page.respond(url, status, body)

    page.elements.update(login_form(on_submit=submit))
    return page


class TestLogin:
    @pytest.mark.asyncio
    async def test_successful_login(self, config):
        page = page_responding(
            (TOKEN_URL, 200, {"token": {"access_token": "AT1", "refresh_token": "RT1"}}),
            (USER_URL, 200, {"user": {"userId": 555}}),
        )
        orchestrator, engine, storage = build(config, page)

        session = await orchestrator.login(CREDENTIALS)

        assert session.token.access_token == "AT1"
        assert session.token.refresh_token == "RT1"
        assert session.user.id == "555"
        assert session.user.display_name == "athlete1"
        assert await storage.get() == session
        assert engine.handle.close_count == 1
        assert engine.handle.user_agents[0].startswith("Mozilla/5.0")
        assert all(not handlers for handlers in page.listeners.values())

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, config):
        page = page_responding((TOKEN_URL, 401, {"message": "invalid"}))
        orchestrator, engine, storage = build(config, page)

        with pytest.raises(InvalidCredentialsFailure):
            await orchestrator.login(CREDENTIALS)

        assert await storage.get() is None
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_timeout_when_nothing_arrives(self):
        config = Config.build(
            timeouts={"web_auth": 50, "element_wait": 10},
            browser={"selector_timeout": 10, "page_wait_timeout": 10, "error_poll_interval": 20},
        )
        page = page_responding()
        orchestrator, engine, storage = build(config, page)
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(TimeoutFailure) as exc_info:
            await orchestrator.login(CREDENTIALS)

        assert not isinstance(exc_info.value, InvalidCredentialsFailure)
        assert loop.time() - started >= 0.045
        assert await storage.get() is None
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_incomplete_data(self):
        config = Config.build(
            timeouts={"web_auth": 50, "element_wait": 10},
            browser={"selector_timeout": 10, "page_wait_timeout": 10, "error_poll_interval": 20},
        )
        page = page_responding((TOKEN_URL, 200, {"token": {"access_token": "AT1"}}))
        orchestrator, engine, _ = build(config, page)

        with pytest.raises(IncompleteDataFailure):
            await orchestrator.login(CREDENTIALS)
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_error_banner_after_submit(self, config):
        page = page_responding()
        page.elements[".validation-summary-errors"] = FakeElement("Invalid username or password")
        orchestrator, engine, _ = build(config, page)

        with pytest.raises(InvalidCredentialsFailure):
            await orchestrator.login(CREDENTIALS)
        assert engine.handle.close_count == 1


class TestResourceRelease:
    @pytest.mark.asyncio
    async def test_missing_field_releases_browser(self, config):
        page = FakePage({'[data-cy="username"]': FakeElement()})
        orchestrator, engine, _ = build(config, page)

        with pytest.raises(FieldNotFoundFailure):
            await orchestrator.login(CREDENTIALS)
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, config):
        elements = login_form()
        elements['[data-cy="username"]'] = FakeElement(fill_error=RuntimeError("target closed"))
        orchestrator, engine, _ = build(config, FakePage(elements))

        with pytest.raises(LoginError, match="target closed") as exc_info:
            await orchestrator.login(CREDENTIALS)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_launch_failure(self, config):
        orchestrator, engine, _ = build(config, FakePage(), launch_error=RuntimeError("no chromium"))

        with pytest.raises(LaunchFailure, match="no chromium"):
            await orchestrator.login(CREDENTIALS)

        assert engine.launches == 1
        assert engine.handle.close_count == 0

    @pytest.mark.asyncio
    async def test_cancellation_releases_browser(self, config):
        orchestrator, engine, _ = build(config, page_responding())

        task = asyncio.create_task(orchestrator.login(CREDENTIALS))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_listener_failure_releases_browser(self, config):
        class BrokenEventsPage(FakePage):
            def on(self, event, handler):
                if event == "pageerror":
                    raise RuntimeError("page closed")
                super().on(event, handler)

        page = BrokenEventsPage(login_form())
        orchestrator, engine, storage = build(config, page)

        with pytest.raises(LoginError, match="page closed") as exc_info:
            await orchestrator.login(CREDENTIALS)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert all(not handlers for handlers in page.listeners.values())
        assert page.visited == []
        assert await storage.get() is None
        assert engine.handle.close_count == 1


# ---------------------------------------------------------------------------
# Session persistence
# ---------------------------------------------------------------------------

class FailingStorage(InMemorySessionStorage):
    async def set(self, session):
        raise OSError("disk full")


class TestPersistence:
    @pytest.mark.asyncio
    async def test_storage_failure_is_wrapped(self, config):
        page = page_responding(
            (TOKEN_URL, 200, {"token": {"access_token": "AT1", "refresh_token": "RT1"}}),
            (USER_URL, 200, {"user": {"userId": 555}}),
        )
        engine = FakeBrowserEngine(page)
        orchestrator = LoginOrchestrator(
            config,
            FailingStorage(),
            controller=BrowserSessionController(config, engine=engine)
        )

        with pytest.raises(LoginError, match="Failed to persist session: disk full") as exc_info:
            await orchestrator.login(CREDENTIALS)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert engine.handle.close_count == 1


# ---------------------------------------------------------------------------
# Unresponsive pages
# ---------------------------------------------------------------------------

def scaled_config():
    """Production timeout ratios at a hundredth of the scale."""
    return Config.build(
        timeouts={"web_auth": 300, "default": 300, "element_wait": 50},
        browser={"selector_timeout": 50, "page_wait_timeout": 50, "error_poll_interval": 20},
    )


class TestSlowPages:
    @pytest.mark.asyncio
    async def test_missing_username_is_reported_before_login_timeout(self):
        page = FakePage()
        page.slow = True
        orchestrator, engine, _ = build(scaled_config(), page)

        with pytest.raises(FieldNotFoundFailure) as exc_info:
            await orchestrator.login(CREDENTIALS)

        assert exc_info.value.selectors == ('[data-cy="username"]',)
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_missing_password_is_reported_before_login_timeout(self):
        page = FakePage({'[data-cy="username"]': FakeElement()})
        page.slow = True
        orchestrator, engine, _ = build(scaled_config(), page)

        with pytest.raises(FieldNotFoundFailure) as exc_info:
            await orchestrator.login(CREDENTIALS)

        assert '[data-cy="password"]' in exc_info.value.selectors
        assert engine.handle.close_count == 1

    @pytest.mark.asyncio
    async def test_slow_page_still_logs_in(self):
        page = page_responding(
            (TOKEN_URL, 200, {"token": {"access_token": "AT1"}}),
            (USER_URL, 200, {"user": {"userId": 555}}),
        )
        page.slow = True
        orchestrator, engine, _ = build(scaled_config(), page)

        session = await orchestrator.login(CREDENTIALS)

        assert session.user.id == "555"
        assert engine.handle.close_count == 1
