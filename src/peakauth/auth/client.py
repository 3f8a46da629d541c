"""
High-level authentication client.

``PeakAuthClient`` wires the login orchestrator, the refresh coordinator and
session storage together behind one object, which is what most callers use.
"""

# Standard library imports
from typing import Dict, Optional

# Local imports
from peakauth.auth.orchestrator import LoginOrchestrator
from peakauth.auth.refresh import TokenRefreshCoordinator
from peakauth.core.codex import AuthToken, Credentials, Session, User
from peakauth.core.config import Config
from peakauth.core.errors import CleanupFailure
from peakauth.integrations.browser import BrowserEngine, BrowserSessionController
from peakauth.integrations.http_client import AiohttpClient, HttpClient
from peakauth.integrations.storage import InMemorySessionStorage, SessionStorage
from peakauth.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


class PeakAuthClient:
    """
    Authentication facade for the platform.

    Example::

        async with PeakAuthClient(Config.load_from_env()) as client:
            await client.login(Credentials("athlete", "secret"))
            headers = await client.authorization_header()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        storage: Optional[SessionStorage] = None,
        http_client: Optional[HttpClient] = None,
        browser_engine: Optional[BrowserEngine] = None
    ):
        self.config = config or Config()
        configure_logging(self.config.logging, debug=self.config.debug.enabled)

        self.storage = storage or InMemorySessionStorage()
        self._owns_http = http_client is None
        self.http_client = http_client or AiohttpClient(self.config)

        self._orchestrator = LoginOrchestrator(
            self.config,
            self.storage,
            controller=BrowserSessionController(self.config, engine=browser_engine)
        )
        self._refresher = TokenRefreshCoordinator(self.config, self.http_client, self.storage)

    async def __aenter__(self) -> "PeakAuthClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def login(self, credentials: Credentials) -> Session:
        """
        Log in through the web form and store the new session.

        Raises:
            LoginError: If the attempt fails; check ``retryable`` before retrying
        """
        session = await self._orchestrator.login(credentials)
        self._refresher.reset()
        return session

    async def logout(self) -> None:
        """Forget the stored session. Never raises; cleanup errors are only logged."""
        try:
            await self.storage.clear()
        except Exception as e:
            failure = CleanupFailure(f"Failed to clear session storage: {str(e)}")
            logger.warning(str(failure))
        self._refresher.reset()
        logger.info("Logged out")

    async def ensure_valid_token(self) -> Optional[AuthToken]:
        return await self._refresher.ensure_valid_token()

    async def is_authenticated(self) -> bool:
        return await self.ensure_valid_token() is not None

    async def get_session(self) -> Optional[Session]:
        return await self.storage.get()

    async def get_current_user(self) -> Optional[User]:
        session = await self.storage.get()
        return session.user if session else None

    async def authorization_header(self) -> Dict[str, str]:
        """Return the Authorization header for API calls, or an empty dict when not logged in."""
        token = await self.ensure_valid_token()
        if token is None:
            return {}
        return {"Authorization": token.authorization_value()}

    async def close(self) -> None:
        if self._owns_http:
            await self.http_client.close()
