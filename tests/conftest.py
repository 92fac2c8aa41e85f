from __future__ import annotations

from datetime import datetime, timedelta
from math import pi

import pytest
import pytest_asyncio
import pytz

from bustracker.data.models.position import PositionSample, StopLocation
from bustracker.services.database_service import DatabaseService
from bustracker.utils.geo import EARTH_RADIUS_METERS

NOW = datetime(2026, 3, 2, 15, 0, 0, tzinfo=pytz.utc)
STOP = StopLocation(code="S1", latitude=-19.9167, longitude=-43.9378, name="Praca Sete")

METERS_PER_DEGREE_LAT = EARTH_RADIUS_METERS * pi / 180


def north_of(stop: StopLocation, meters: float) -> tuple[float, float]:
    """A point ``meters`` due north of the stop (exact under the Haversine formula)."""
    return stop.latitude + meters / METERS_PER_DEGREE_LAT, stop.longitude


def sample(vehicle: str, meters: float, seconds_ago: float, line: str = "42", stop: StopLocation = STOP,
           now: datetime = NOW) -> PositionSample:
    lat, lon = north_of(stop, meters)
    return PositionSample(
        timestamp=now - timedelta(seconds=seconds_ago),
        line_number=line,
        vehicle_number=vehicle,
        latitude=lat,
        longitude=lon,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest_asyncio.fixture
async def store(tmp_path):
    service = DatabaseService(tmp_path / "positions.db")
    await service.initialize()
    try:
        yield service
    finally:
        await service.close()


@pytest_asyncio.fixture
async def seeded_store(store):
    """Store with stop S1 served by line 42 (external id 9042) and stop S2 served by nothing."""
    await store.upsert_line("9042", "42", "Centro - Savassi")
    await store.upsert_line("9101", "5101", "Estacao Diamante")
    await store.upsert_stop(STOP.code, STOP.latitude, STOP.longitude, STOP.name)
    await store.upsert_stop("S2", -19.93, -43.95, "Lonely stop")
    await store.link_line_stop("9042", STOP.code, sequence=3)
    return store
