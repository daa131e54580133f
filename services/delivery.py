"""HTTP delivery of data points to the time-series database."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from models.points import DataPoint
from settings import (
    HTTP_CONNECT_TIMEOUT,
    HTTP_IDLE_CONN_TIMEOUT,
    HTTP_MAX_CONNS_PER_HOST,
    HTTP_MAX_IDLE_CONNS,
    Settings,
)

WRITE_PRECISION = "s"


def build_endpoint(settings: Settings) -> httpx.URL:
    """Resolve ``base_url + api_path`` with the static write parameters."""
    url = httpx.URL(settings.influx_url + settings.influx_api_path)
    return url.copy_merge_params({"org": settings.influx_org, "precision": WRITE_PRECISION})


class DeliveryClient:
    """Posts one line protocol record per request over a pooled client.

    A single instance is shared by every dispatch task.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.endpoint = build_endpoint(settings)
        self._logger = logger or logging.getLogger(__name__)
        self._client = httpx.Client(
            headers={
                "Authorization": f"Token {settings.influx_token}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(settings.http_timeout, connect=HTTP_CONNECT_TIMEOUT),
            limits=httpx.Limits(
                max_connections=HTTP_MAX_CONNS_PER_HOST,
                max_keepalive_connections=HTTP_MAX_IDLE_CONNS,
                keepalive_expiry=HTTP_IDLE_CONN_TIMEOUT,
            ),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def url_for(self, bucket: str) -> httpx.URL:
        if not bucket:
            return self.endpoint
        return self.endpoint.copy_set_param("bucket", bucket)

    def write(self, point: DataPoint) -> bool:
        """Deliver ``point``; failures are logged and reported as ``False``."""
        line = point.marshal()
        url = self.url_for(point.bucket)
        if self.settings.verbose:
            self._logger.info("Posting data to InfluxDB: %s", line, extra={"url": str(url)})

        try:
            response = self._client.post(
                url,
                content=line.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
            )
        except httpx.HTTPError as exc:
            self._logger.error(
                "Failed to post data to InfluxDB",
                extra={"url": self.settings.influx_url, "error": repr(exc)},
            )
            return False

        if response.status_code >= 400:
            self._logger.error(
                "InfluxDB returned error status %s: %s",
                response.reason_phrase,
                response.text.strip(),
                extra={"status_code": response.status_code, "bucket": point.bucket},
            )
            return False

        if self.settings.verbose:
            self._logger.info(
                "Successfully posted data to InfluxDB",
                extra={"status_code": response.status_code},
            )
        return True
