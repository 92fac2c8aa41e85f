"""
Position feed data source.
Downloads the raw ';'-delimited vehicle position payload over HTTP.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from ...core.resource_manager import ResourceManager
from ...exceptions import FeedFetchError

logger = logging.getLogger(__name__)


class PositionFeedSource:
    """HTTP client for the vehicle position feed using the shared connection pool"""

    def __init__(self, resource_manager: ResourceManager, url: str,
                 timeout_seconds: float = 30, user_agent: str = "BusTrackerApp/1.0"):
        self.resource_manager = resource_manager
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.headers = {
            'User-Agent': user_agent,
            'Accept': 'text/csv, text/plain, */*',
        }
        self.last_status: Optional[int] = None

    async def fetch_payload(self) -> str:
        """
        Fetch the raw feed body.

        Raises:
            FeedFetchError: On connection failure, timeout or a non-200 status
        """
        session = await self.resource_manager.get_http_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with session.get(self.url, headers=self.headers, timeout=timeout) as response:
                self.last_status = response.status
                if response.status != 200:
                    raise FeedFetchError(f"Feed returned HTTP {response.status}", status=response.status)
                return await response.text(errors="replace")
        except asyncio.TimeoutError as e:
            raise FeedFetchError(f"Feed request timed out after {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(f"Feed request failed: {e}") from e
