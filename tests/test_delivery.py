from __future__ import annotations

import logging
from typing import List

import httpx
import pytest

from models.points import DataPoint
from services.delivery import DeliveryClient, build_endpoint
from settings import Settings


def _settings(**overrides) -> Settings:
    values = {
        "influx_url": "http://influx.test:8086",
        "influx_org": "home",
        "influx_token": "secret-token",
        "influx_bucket": "weather",
    }
    values.update(overrides)
    return Settings(**values)


def _point(bucket: str = "weather") -> DataPoint:
    return DataPoint(
        name="weather",
        bucket=bucket,
        tags={"station": "ST-1"},
        fields={"temp": "22.50", "battery": "2.61"},
        timestamp=1500000000,
    )


@pytest.fixture()
def requests() -> List[httpx.Request]:
    return []


def _client(settings: Settings, requests: List[httpx.Request], status_code: int = 204) -> DeliveryClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"message": "nope"} if status_code >= 400 else None)

    return DeliveryClient(settings, transport=httpx.MockTransport(handler))


def test_endpoint_carries_org_and_precision() -> None:
    endpoint = build_endpoint(_settings())

    assert endpoint.path == "/api/v2/write"
    assert endpoint.params["org"] == "home"
    assert endpoint.params["precision"] == "s"
    assert "bucket" not in endpoint.params


def test_write_posts_line_protocol(requests: List[httpx.Request]) -> None:
    client = _client(_settings(), requests)
    try:
        assert client.write(_point()) is True
    finally:
        client.close()

    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert request.url.host == "influx.test"
    assert request.url.path == "/api/v2/write"
    assert request.url.params["org"] == "home"
    assert request.url.params["precision"] == "s"
    assert request.url.params["bucket"] == "weather"
    assert request.headers["authorization"] == "Token secret-token"
    assert request.headers["content-type"] == "text/plain; charset=utf-8"
    assert request.headers["accept"] == "application/json"
    assert request.content == b"weather,station=ST-1 battery=2.61,temp=22.50 1500000000"


def test_bucket_is_set_per_point(requests: List[httpx.Request]) -> None:
    client = _client(_settings(), requests)
    try:
        client.write(_point(bucket="wind"))
        client.write(_point(bucket="weather"))
    finally:
        client.close()

    assert [request.url.params["bucket"] for request in requests] == ["wind", "weather"]
    assert all(request.url.params.get_list("bucket") == [request.url.params["bucket"]] for request in requests)


def test_error_status_is_logged_and_not_retried(requests: List[httpx.Request], caplog) -> None:
    client = _client(_settings(), requests, status_code=401)

    with caplog.at_level(logging.ERROR):
        try:
            assert client.write(_point()) is False
        finally:
            client.close()

    assert len(requests) == 1
    records = [record for record in caplog.records if record.name == "services.delivery"]
    assert any(getattr(record, "status_code", None) == 401 for record in records)


def test_transport_failure_returns_false(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = DeliveryClient(_settings(), transport=httpx.MockTransport(handler))
    with caplog.at_level(logging.ERROR):
        try:
            assert client.write(_point()) is False
        finally:
            client.close()

    assert any("Failed to post data" in record.getMessage() for record in caplog.records)


def test_token_is_not_logged_in_verbose_mode(requests: List[httpx.Request], caplog) -> None:
    client = _client(_settings(verbose=True), requests)

    with caplog.at_level(logging.INFO):
        try:
            client.write(_point())
        finally:
            client.close()

    assert any("Posting data to InfluxDB" in record.getMessage() for record in caplog.records)
    assert all("secret-token" not in record.getMessage() for record in caplog.records)
    assert "secret-token" not in repr(_settings())
