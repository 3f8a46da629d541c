"""
HTTP client integration for direct platform API calls.

The refresh coordinator talks to the platform through the ``HttpClient``
port. ``AiohttpClient`` is the production adapter: it returns every response,
including non-2xx ones, as an ``HttpResponse`` and only raises on transport
errors (``aiohttp.ClientError`` / ``asyncio.TimeoutError``).
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from peakauth.core.config import Config
from peakauth.utils.browser_utils import render_curl
from peakauth.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class HttpResponse:
    """Response returned by an HttpClient."""
    status: int
    status_text: str = ""
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpClient(ABC):
    """Minimal asynchronous HTTP port."""

    @abstractmethod
    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        pass

    @abstractmethod
    async def post(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> HttpResponse:
        pass

    async def close(self) -> None:
        """Release any pooled connections."""
        return None


class AiohttpClient(HttpClient):
    """HttpClient backed by a lazily created ``aiohttp.ClientSession``."""

    def __init__(self, config: Config, session: Optional[aiohttp.ClientSession] = None):
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=config.timeouts.api_auth / 1000)

    async def __aenter__(self) -> "AiohttpClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        return await self._request("GET", url, headers=headers)

    async def post(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> HttpResponse:
        return await self._request("POST", url, body=body, headers=headers)

    async def _request(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None
    ) -> HttpResponse:
        if self._config.debug.log_network:
            logger.debug(f"HTTP request\n{render_curl(method, url, headers, body)}")

        kwargs: Dict[str, Any] = {"headers": headers or {}}
        if body is not None:
            if isinstance(body, (str, bytes)):
                kwargs["data"] = body
            else:
                kwargs["json"] = body

        session = self._get_session()
        async with session.request(method, url, **kwargs) as response:
            text = await response.text()
            try:
                data = json.loads(text) if text else None
            except ValueError:
                data = text

            logger.debug(
                "HTTP response",
                extra={"context": {"method": method, "url": url, "status": response.status}}
            )
            return HttpResponse(
                status=response.status,
                status_text=response.reason or "",
                data=data,
                headers=dict(response.headers)
            )

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
