# bustracker/core/resource_manager.py
import asyncio
import logging
import os
from typing import Dict, Optional

import aiohttp
import psutil

from .config import detect_cpu_cores

logger = logging.getLogger(__name__)


class ResourceManager:
    """Owns the shared HTTP connection pool and reports process resource usage"""

    def __init__(self, request_timeout_seconds: int = 30, max_connections: Optional[int] = None):
        self.request_timeout_seconds = request_timeout_seconds
        self.cpu_cores = detect_cpu_cores()
        self.max_connections = max_connections or max(10, self.cpu_cores * 10)
        self.connection_pool: Optional[aiohttp.ClientSession] = None
        self._http_lock = asyncio.Lock()

    async def get_http_session(self) -> aiohttp.ClientSession:
        """Get managed HTTP session with connection pooling"""
        async with self._http_lock:
            if self.connection_pool is None or self.connection_pool.closed:
                timeout = aiohttp.ClientTimeout(total=self.request_timeout_seconds)
                connector = aiohttp.TCPConnector(limit=self.max_connections)
                self.connection_pool = aiohttp.ClientSession(timeout=timeout, connector=connector)
            return self.connection_pool

    async def close(self):
        async with self._http_lock:
            if self.connection_pool is not None and not self.connection_pool.closed:
                await self.connection_pool.close()
            self.connection_pool = None

    async def stop(self):
        await self.close()

    def snapshot(self) -> Dict[str, float]:
        """Lightweight memory/CPU snapshot of the current process"""
        process = psutil.Process(os.getpid())
        return {
            "rss_mb": process.memory_info().rss / (1024 * 1024),
            "cpu_percent": psutil.cpu_percent(interval=0.0),
        }

    def log_resource_usage(self):
        try:
            stats = self.snapshot()
        except psutil.Error as e:
            logger.debug(f"Resource snapshot unavailable: {e}")
            return
        logger.debug(f"Process usage: rss={stats['rss_mb']:.1f}MB cpu={stats['cpu_percent']:.1f}%")
