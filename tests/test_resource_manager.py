from __future__ import annotations

import pytest

from bustracker.core.config import ApplicationConfig, detect_cpu_cores
from bustracker.core.resource_manager import ResourceManager


def test_pool_size_scales_with_detected_cores() -> None:
    cores = detect_cpu_cores()
    manager = ResourceManager()

    assert cores >= 1
    assert manager.cpu_cores == cores
    assert manager.max_connections == max(10, cores * 10)
    assert ApplicationConfig().max_concurrent_requests == cores * 2


def test_snapshot_reports_memory_and_cpu() -> None:
    stats = ResourceManager().snapshot()

    assert stats["rss_mb"] > 0
    assert stats["cpu_percent"] >= 0


@pytest.mark.asyncio
async def test_http_session_is_shared_until_closed() -> None:
    manager = ResourceManager(request_timeout_seconds=5, max_connections=4)
    first = await manager.get_http_session()
    second = await manager.get_http_session()

    assert first is second
    await manager.close()
    assert first.closed

    reopened = await manager.get_http_session()
    assert reopened is not first
    await manager.stop()
