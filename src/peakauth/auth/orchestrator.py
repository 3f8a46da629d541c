"""
Login Orchestrator.

Runs one authentication attempt: launch a browser, drive the login form
while the completion tracker listens, turn the tracker's outcome into a
``Session`` and persist it. The browser is released on every exit path
before any error reaches the caller.
"""

# Standard library imports
import asyncio
from typing import Optional

# Local imports
from peakauth.auth.form_driver import FormInteractionDriver
from peakauth.auth.tracker import NetworkCompletionTracker
from peakauth.core.codex import Credentials, Session, User
from peakauth.core.config import Config
from peakauth.core.errors import LoginError
from peakauth.integrations.browser import BrowserSessionController
from peakauth.integrations.storage import SessionStorage
from peakauth.utils.browser_utils import generate_user_agent
from peakauth.utils.logger import get_logger

logger = get_logger(__name__)


class LoginOrchestrator:
    """Sequences the browser session, form driver and completion tracker."""

    def __init__(
        self,
        config: Config,
        storage: SessionStorage,
        controller: Optional[BrowserSessionController] = None,
        driver: Optional[FormInteractionDriver] = None
    ):
        self._config = config
        self._storage = storage
        self._controller = controller or BrowserSessionController(config)
        self._driver = driver or FormInteractionDriver(config)

    async def login(self, credentials: Credentials) -> Session:
        """
        Authenticate with the web login form.

        Args:
            credentials: Username and password

        Returns:
            The new session, already persisted to storage

        Raises:
            LoginError: Any failure of the attempt; see ``peakauth.core.errors``
        """
        if not isinstance(credentials, Credentials):
            raise TypeError("credentials must be a Credentials instance")

        logger.info("Starting browser login", extra={"context": {"username": credentials.username}})

        async with self._controller.session() as handle:
            try:
                page = await handle.new_page(user_agent=generate_user_agent())
            except LoginError:
                raise
            except Exception as e:
                raise LoginError(f"Failed to open login page: {str(e)}") from e

            tracker = NetworkCompletionTracker(page, self._config)
            driver_task: Optional[asyncio.Task] = None
            try:
                tracker.start()
                driver_task = asyncio.create_task(self._drive(page, credentials, tracker))
                signal = await tracker.wait()
            except LoginError:
                raise
            except Exception as e:
                raise LoginError(f"Login attempt failed: {str(e)}") from e
            finally:
                tracker.stop()
                if driver_task is not None:
                    if not driver_task.done():
                        driver_task.cancel()
                    await asyncio.gather(driver_task, return_exceptions=True)

        session = Session(
            token=signal.token,
            user=User(id=signal.user_id, display_name=credentials.username)
        )
        try:
            await self._storage.set(session)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to persist session: {str(e)}")
            raise LoginError(f"Failed to persist session: {str(e)}") from e

        logger.info("Login successful", extra={"context": {"user_id": session.user.id}})
        return session

    async def _drive(self, page, credentials: Credentials, tracker: NetworkCompletionTracker) -> None:
        try:
            await self._driver.perform_login(page, credentials, tracker)
        except asyncio.CancelledError:
            raise
        except LoginError as e:
            tracker.fail(e)
        except Exception as e:
            logger.error(f"Unexpected error during form interaction: {str(e)}")
            error = LoginError(f"Form interaction failed: {str(e)}")
            error.__cause__ = e
            tracker.fail(error)
