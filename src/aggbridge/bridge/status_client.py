"""
Transaction status API client.

Queries ``GET {base_url}/transactions/{network}?userAddress=...`` and turns
the returned rows into :class:`StatusRecord` objects. Rows the client cannot
interpret are skipped with a warning so one malformed entry does not hide the
rest of a user's transactions.
"""

from typing import Any, List, Optional

import aiohttp

from ..errors import StatusApiError
from ..logging import get_logger
from .bridge_types import StatusRecord
from .collaborators import StatusSource
from .config import StatusApiConfig
from .http import JsonHttpClient, RateLimiter

logger = get_logger(__name__)

_LIST_KEYS = ("result", "data", "transactions")


class TransactionStatusClient(JsonHttpClient, StatusSource):
    """aiohttp client for the bridge transaction status API."""

    def __init__(
        self,
        config: Optional[StatusApiConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.config = config or StatusApiConfig()
        self.config.validate()
        super().__init__(
            request_timeout=self.config.request_timeout,
            session=session,
            rate_limiter=rate_limiter
            or RateLimiter(self.config.max_requests_per_second),
        )
        logger.info(
            f"Initialized status client for {self.config.network.value} "
            f"at {self.config.base_url}"
        )

    @property
    def transactions_url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/transactions/{self.config.network.value}"

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers[self.config.api_key_header] = self.config.api_key
        return headers

    async def fetch_transactions(self, user_address: str) -> List[StatusRecord]:
        url = self.transactions_url
        data = await self._get_json(
            url, params={"userAddress": user_address}, headers=self._headers()
        )
        return self._parse_rows(url, data)

    def _parse_rows(self, url: str, data: Any) -> List[StatusRecord]:
        rows = data
        if isinstance(data, dict):
            rows = next(
                (data[key] for key in _LIST_KEYS if isinstance(data.get(key), list)),
                None,
            )
        if not isinstance(rows, list):
            raise StatusApiError(
                f"Unexpected status API payload from '{url}'",
                endpoint=url,
                metadata={"payload_type": type(data).__name__},
            )

        records = []
        for row in rows:
            try:
                records.append(StatusRecord.from_api(row))
            except StatusApiError as e:
                logger.warning(f"Skipping status row: {e.message}")
        return records
