"""
Shared aiohttp plumbing for the HTTP collaborators.

Both the status API client and the bridge service proof builder issue JSON
GET requests through :class:`JsonHttpClient`, which owns a lazily created
session, applies an optional shared :class:`RateLimiter` and maps HTTP and
connection failures onto the aggbridge error taxonomy.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from ..errors import AggBridgeError, StatusApiError, create_transport_error
from ..logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Spaces requests so at most ``max_per_second`` start each second."""

    def __init__(self, max_per_second: float):
        if max_per_second <= 0:
            raise ValueError("max_per_second must be positive")
        self.min_interval = 1.0 / max_per_second
        self._lock: Optional[asyncio.Lock] = None
        self._next_slot = 0.0

    async def acquire(self) -> None:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            wait = self._next_slot - now
            if wait > 0:
                await asyncio.sleep(wait)
                now = loop.time()
            self._next_slot = max(now, self._next_slot) + self.min_interval


class JsonHttpClient:
    """Base class for JSON-over-HTTP collaborators."""

    def __init__(
        self,
        request_timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.request_timeout = request_timeout
        self.session = session
        self.rate_limiter = rate_limiter
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self._owns_session and self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None

    def _rejection(self, url: str, status: int, body: str) -> AggBridgeError:
        """Error for a 4xx answer that retrying will not fix."""
        return StatusApiError(
            f"Request to '{url}' rejected: HTTP {status}: {body[:200]}",
            endpoint=url,
            status_code=status,
        )

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        session = await self._get_session()
        try:
            async with session.get(
                url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                if response.status == 429 or response.status >= 500:
                    raise create_transport_error(url, response.status)
                if response.status >= 400:
                    raise self._rejection(url, response.status, await response.text())
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise StatusApiError(
                        f"Response from '{url}' is not valid JSON",
                        endpoint=url,
                        status_code=response.status,
                        cause=e,
                    ) from e
        except aiohttp.ClientError as e:
            logger.debug(f"Request to {url} failed: {e}")
            raise create_transport_error(
                url, message=f"Request to '{url}' failed: {e}", cause=e
            ) from e
        except asyncio.TimeoutError as e:
            raise create_transport_error(
                url,
                message=f"Request to '{url}' timed out after {self.request_timeout}s",
                cause=e,
            ) from e
