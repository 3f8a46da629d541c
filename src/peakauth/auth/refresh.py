"""
Token Refresh Coordinator.

Keeps the stored access token valid after login. ``ensure_valid_token``
returns the current token while it is comfortably valid and otherwise
refreshes it against the platform's refresh endpoint. At most one refresh
runs at a time: callers arriving while a refresh is in flight join it and
receive the same result.

Failed refreshes back off exponentially. The cooldown is measured from the
last attempt and grows with the number of consecutive failures::

    cooldown = min(cooldown_base * 2 ** (failures - 1), max_backoff)

The failure counter resets on the first successful refresh. Refresh failures
never raise out of ``ensure_valid_token``; callers see ``None`` instead.
"""

# Standard library imports
import asyncio
import time
from typing import Callable, Dict, Optional

# Local imports
from peakauth.core.codex import AuthToken, Session, token_from_payload
from peakauth.core.config import Config
from peakauth.core.errors import RefreshFailure
from peakauth.core.immutables import API_HEADERS
from peakauth.integrations.http_client import HttpClient
from peakauth.integrations.storage import SessionStorage
from peakauth.utils.logger import get_logger

logger = get_logger(__name__)


class TokenRefreshCoordinator:
    """Single-flight refresh of the stored token with cooldown between failures."""

    def __init__(
        self,
        config: Config,
        http_client: HttpClient,
        storage: SessionStorage,
        clock: Callable[[], float] = time.monotonic
    ):
        self._config = config
        self._http = http_client
        self._storage = storage
        self._clock = clock

        self._in_flight: Optional[asyncio.Task] = None
        self._last_attempt: Optional[float] = None
        self._failure_count = 0

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def refresh_in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def current_cooldown(self) -> float:
        """Cooldown in seconds implied by the current failure count."""
        if self._failure_count <= 0:
            return 0.0
        refresh_config = self._config.refresh
        cooldown_ms = min(
            refresh_config.cooldown_base * 2 ** (self._failure_count - 1),
            refresh_config.max_backoff
        )
        return cooldown_ms / 1000

    def cooldown_remaining(self) -> float:
        """Seconds until another refresh attempt is allowed."""
        if self._last_attempt is None:
            return 0.0
        return max(0.0, self._last_attempt + self.current_cooldown() - self._clock())

    def reset(self) -> None:
        """Forget failures and cooldown, e.g. after logout. An in-flight refresh is left to finish."""
        self._last_attempt = None
        self._failure_count = 0

    async def ensure_valid_token(self) -> Optional[AuthToken]:
        """
        Return a token that is valid right now, refreshing it if needed.

        Returns:
            The current or refreshed token, or None when there is no session,
            the token cannot be refreshed, or refreshing failed
        """
        session = await self._storage.get()
        if session is None or session.token is None:
            return None

        token = session.token
        if not token.needs_refresh(self._config.refresh_window):
            return token

        if self._in_flight is not None:
            logger.debug("Joining in-flight token refresh")
            return await asyncio.shield(self._in_flight)

        if not token.is_refreshable:
            logger.debug("Token is due for refresh but has no refresh token")
            return None

        remaining = self.cooldown_remaining()
        if remaining > 0:
            logger.debug(
                "Token refresh in cooldown",
                extra={"context": {"remaining_s": round(remaining, 1), "failures": self._failure_count}}
            )
            return None if token.is_expired() else token

        # No await between the check above and this assignment.
        task = asyncio.create_task(self._refresh(session))
        self._in_flight = task
        return await asyncio.shield(task)

    async def _refresh(self, session: Session) -> Optional[AuthToken]:
        try:
            return await self._run_refresh(session.token)
        finally:
            if self._in_flight is asyncio.current_task():
                self._in_flight = None

    async def _run_refresh(self, token: AuthToken) -> Optional[AuthToken]:
        self._last_attempt = self._clock()
        try:
            new_token = await self._request_refresh(token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failure_count += 1
            logger.warning(
                f"Token refresh failed: {str(e)}",
                extra={"context": {
                    "failures": self._failure_count,
                    "cooldown_s": self.current_cooldown(),
                }}
            )
            return None

        self._failure_count = 0
        await self._write_back(token, new_token)

        logger.info(
            "Token refreshed",
            extra={"context": {"expires_at": new_token.expires_at.isoformat()}}
        )
        return new_token

    async def _request_refresh(self, token: AuthToken) -> AuthToken:
        url = self._config.urls.refresh_url
        response = await self._http.post(
            url,
            body={"refreshToken": token.refresh_token},
            headers=self._headers()
        )
        if not response.ok:
            raise RefreshFailure(
                f"Refresh request rejected: {response.status_text or 'no reason given'}",
                status_code=response.status
            )

        data = response.data if isinstance(response.data, dict) else {}
        try:
            new_token = token_from_payload(
                data.get("token"),
                self._config.default_token_lifetime,
                previous=token
            )
        except ValueError as e:
            raise RefreshFailure(f"Refresh response carried an unusable token: {str(e)}") from e
        if new_token is None:
            raise RefreshFailure("Refresh response carried no access token", status_code=response.status)
        return new_token

    async def _write_back(self, refreshed: AuthToken, new_token: AuthToken) -> None:
        try:
            current = await self._storage.get()
            if current is None or not _same_token(current.token, refreshed):
                logger.info("Stored session changed during refresh; keeping the stored session")
                return
            await self._storage.set(current.with_token(new_token))
        except Exception as e:
            logger.error(f"Failed to store refreshed token: {str(e)}")

    def _headers(self) -> Dict[str, str]:
        app_url = self._config.urls.app_url.rstrip("/")
        return {**API_HEADERS, "origin": app_url, "referer": f"{app_url}/"}


def _same_token(a: Optional[AuthToken], b: AuthToken) -> bool:
    return a is not None and a.access_token == b.access_token and a.refresh_token == b.refresh_token
