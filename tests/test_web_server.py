from __future__ import annotations

from datetime import datetime

import pytest
import pytest_asyncio
import pytz
from aiohttp.test_utils import TestClient, TestServer

from bustracker.api.web_server import WebServer
from bustracker.core.config import ApplicationConfig
from bustracker.services.prediction_service import PredictionService
from conftest import STOP, sample


@pytest_asyncio.fixture
async def client(seeded_store):
    service = PredictionService(seeded_store)
    server = WebServer(ApplicationConfig(), service)
    test_client = TestClient(TestServer(server.create_app()))
    await test_client.start_server()
    try:
        yield test_client
    finally:
        await test_client.close()


@pytest.mark.asyncio
async def test_missing_parameters_are_rejected(client) -> None:
    resp = await client.get("/api/bus/prediction", params={"stopCode": STOP.code})

    assert resp.status == 400
    assert "error" in await resp.json()


@pytest.mark.asyncio
async def test_unknown_stop_is_404(client) -> None:
    resp = await client.get("/api/bus/prediction", params={"stopCode": "NOPE", "lineNum": "42"})

    assert resp.status == 404
    assert await resp.json() == {"error": "Stop not found."}


@pytest.mark.asyncio
async def test_line_not_serving_stop_is_400(client) -> None:
    resp = await client.get("/api/bus/prediction", params={"stopCode": STOP.code, "lineNum": "5101"})

    assert resp.status == 400
    assert (await resp.json())["error"] == f"Line 5101 does not serve stop {STOP.code}."


@pytest.mark.asyncio
async def test_no_vehicle_is_empty_result(client) -> None:
    resp = await client.get("/api/bus/prediction", params={"stopCode": STOP.code, "lineNum": "42"})

    assert resp.status == 200
    assert await resp.json() == {"line": "42", "vehicle": "", "distanceMeters": 0, "etaMinutes": 0}


@pytest.mark.asyncio
async def test_prediction_payload(client, seeded_store) -> None:
    # the endpoint predicts against the wall clock
    now = datetime.now(pytz.utc)
    await seeded_store.append_positions([
        sample("A", 900, 60, now=now), sample("A", 300, 5, now=now),
        sample("B", 2500, 60, now=now), sample("B", 2000, 5, now=now),
    ])

    resp = await client.get("/api/bus/prediction", params={"stopCode": STOP.code, "lineNum": "42"})

    assert resp.status == 200
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    body = await resp.json()
    assert body == {
        "line": "42",
        "vehicle": "A",
        "distanceMeters": 360,
        "etaMinutes": 2,
        "secondClosest": {"line": "42", "vehicle": "B", "distanceMeters": 2700, "etaMinutes": 16},
    }


@pytest.mark.asyncio
async def test_health(client) -> None:
    resp = await client.get("/health")

    assert resp.status == 200
    body = await resp.json()
    assert body["status"] == "ok"
    assert "predictions" in body
