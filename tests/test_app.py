import json
import socket
import time
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from services.relay import build_default_relay
from settings import get_settings

OBS_VALUES = [1500000000, 0.5, 1.2, 2.0, 180, 3, 1013.2, 22.5, 55.0, 1000, 3.1, 200, 0.0, 0, 0, 0, 12.6, 1]


@pytest.fixture
def api_client(monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv("LISTEN_ADDRESS", "127.0.0.1:0")
    monkeypatch.setenv("INFLUX_URL", "http://influx.test")
    monkeypatch.setenv("INFLUX_ORG", "home")
    monkeypatch.setenv("INFLUX_TOKEN", "secret")
    monkeypatch.setenv("INFLUX_BUCKET", "weather")
    monkeypatch.setenv("NOOP", "true")
    get_settings.cache_clear()
    build_default_relay.cache_clear()

    app = create_app()
    with TestClient(app) as client:
        yield client

    build_default_relay.cache_clear()
    get_settings.cache_clear()


def _poll_stats(client: TestClient, condition, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    last_payload: dict | None = None
    while time.monotonic() < deadline:
        response = client.get("/stats")
        assert response.status_code == 200
        payload = response.json()
        last_payload = payload
        if condition(payload):
            return payload
        time.sleep(0.05)
    pytest.fail(f"Relay stats never satisfied condition: {last_payload}")


def test_health_reports_running_relay(api_client: TestClient) -> None:
    _poll_stats(api_client, lambda payload: payload["running"])

    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "running": True}


def test_stats_count_received_packets(api_client: TestClient) -> None:
    relay = build_default_relay()
    payload = json.dumps({"type": "obs_st", "serial_number": "ST-1", "obs": [OBS_VALUES]}).encode()

    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
        sender.sendto(payload, relay.address)
        sender.sendto(b'{"type":"hub_status"}', relay.address)

    stats = _poll_stats(
        api_client,
        lambda body: body["deliveries_skipped"] == 1 and body["reports_ignored"] == 1,
    )

    assert stats["packets_received"] == 2
    assert stats["points_delivered"] == 0
    assert stats["noop"] is True
    assert stats["listen_address"] == "127.0.0.1:0"


def test_lifespan_stops_relay_and_clears_cache(monkeypatch) -> None:
    monkeypatch.setenv("LISTEN_ADDRESS", "127.0.0.1:0")
    monkeypatch.setenv("INFLUX_URL", "http://influx.test")
    monkeypatch.setenv("INFLUX_ORG", "home")
    monkeypatch.setenv("INFLUX_TOKEN", "secret")
    monkeypatch.setenv("INFLUX_BUCKET", "weather")
    get_settings.cache_clear()
    build_default_relay.cache_clear()

    app = create_app()
    with TestClient(app):
        relay_during = build_default_relay()

    assert relay_during.running is False
    assert relay_during.stop_reason == "application shutdown"

    relay_after = build_default_relay()
    try:
        assert relay_after is not relay_during
    finally:
        relay_after.close()
        build_default_relay.cache_clear()
        get_settings.cache_clear()


def test_root_points_to_health(api_client: TestClient) -> None:
    response = api_client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requests_after_shutdown_see_the_stopped_relay(monkeypatch) -> None:
    monkeypatch.setenv("LISTEN_ADDRESS", "127.0.0.1:0")
    monkeypatch.setenv("INFLUX_URL", "http://influx.test")
    monkeypatch.setenv("INFLUX_ORG", "home")
    monkeypatch.setenv("INFLUX_TOKEN", "secret")
    monkeypatch.setenv("INFLUX_BUCKET", "weather")
    get_settings.cache_clear()
    build_default_relay.cache_clear()

    app = create_app()
    client = TestClient(app)
    with client:
        served = app.state.relay
    try:
        response = client.get("/stats")

        assert response.status_code == 200
        assert response.json()["running"] is False
        assert response.json()["stop_reason"] == "application shutdown"
        assert build_default_relay.cache_info().currsize == 0
    finally:
        build_default_relay.cache_clear()
        get_settings.cache_clear()
