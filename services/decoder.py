"""Decode station reports into data points."""

from __future__ import annotations

import logging
from typing import Optional

from models.observations import (
    OBSERVATION_FIELD_COUNT,
    RAPID_WIND_FIELD_COUNT,
    Observation,
    RapidWind,
)
from models.points import DataPoint
from models.reports import ObservationReport, RapidWindReport, parse_report
from services.meteorology import DewPointError, dew_point
from settings import Settings

MEASUREMENT_NAME = "weather"
STATION_TAG = "station"


class DecodeError(ValueError):
    """Raised when a payload cannot be turned into a report."""


class InsufficientDataError(DecodeError):
    """Raised when a report carries fewer numeric slots than its type needs."""


class ReportDecoder:
    """Maps raw report payloads onto :class:`DataPoint` objects.

    ``decode`` returns ``None`` for report kinds that are deliberately not
    forwarded; that is a normal outcome, not a failure.
    """

    def __init__(self, settings: Settings, logger: Optional[logging.Logger] = None) -> None:
        self.settings = settings
        self._logger = logger or logging.getLogger(__name__)

    def decode(self, payload: bytes, remote_addr: Optional[str] = None) -> Optional[DataPoint]:
        try:
            report = parse_report(payload)
        except ValueError as exc:
            raw = payload.decode("utf-8", errors="replace")
            raise DecodeError(
                f"could not decode {len(payload)} bytes from {remote_addr or 'unknown'}: "
                f"{exc}: {raw}"
            ) from exc

        point = DataPoint(bucket=self.settings.influx_bucket)

        if isinstance(report, ObservationReport):
            self._apply_observation(report, point)
        elif isinstance(report, RapidWindReport):
            if not self.settings.rapid_wind:
                return None
            self._apply_rapid_wind(report, point)
            if self.settings.influx_bucket_rapid_wind:
                point.bucket = self.settings.influx_bucket_rapid_wind
        else:
            # hub_status, evt_precip, evt_strike and unknown kinds are not forwarded.
            return None

        return point

    def _apply_observation(self, report: ObservationReport, point: DataPoint) -> None:
        values = report.values
        if len(values) < OBSERVATION_FIELD_COUNT:
            raise InsufficientDataError(
                f"parsing observation: expected {OBSERVATION_FIELD_COUNT} fields, "
                f"got {len(values)}"
            )
        observation = Observation.from_values(values)
        if self.settings.debug:
            self._logger.debug(
                "OBS_ST %s precipitation=%s",
                observation,
                observation.precipitation_label,
                extra={"report_type": report.type},
            )

        dew = self._dew_point(observation)

        point.name = MEASUREMENT_NAME
        point.timestamp = observation.timestamp
        point.tags[STATION_TAG] = report.serial_number
        point.fields.update(
            {
                "battery": f"{observation.battery:.2f}",
                "dew_point": f"{dew:.2f}",
                "humidity": f"{observation.relative_humidity:.2f}",
                "illuminance": f"{observation.illuminance:d}",
                "p": f"{observation.station_pressure:.2f}",
                "precipitation": f"{observation.precipitation_accumulation:.2f}",
                "precipitation_type": f"{observation.precipitation_type:d}",
                "solar_radiation": f"{observation.solar_radiation:d}",
                "strike_count": f"{observation.strike_count:d}",
                "strike_distance": f"{observation.strike_avg_distance:d}",
                "temp": f"{observation.air_temperature:.2f}",
                "uv": f"{observation.uv:.2f}",
                "wind_avg": f"{observation.wind_avg:.2f}",
                "wind_direction": f"{observation.wind_direction:d}",
                "wind_gust": f"{observation.wind_gust:.2f}",
                "wind_lull": f"{observation.wind_lull:.2f}",
            }
        )

    def _apply_rapid_wind(self, report: RapidWindReport, point: DataPoint) -> None:
        values = report.values
        if len(values) != RAPID_WIND_FIELD_COUNT:
            raise InsufficientDataError(
                f"parsing rapid wind: expected {RAPID_WIND_FIELD_COUNT} fields, "
                f"got {len(values)}"
            )
        sample = RapidWind.from_values(values)
        if self.settings.debug:
            self._logger.debug("RAPID_WIND %s", sample, extra={"report_type": report.type})

        point.name = MEASUREMENT_NAME
        point.timestamp = sample.timestamp
        point.tags[STATION_TAG] = report.serial_number
        point.fields.update(
            {
                "rapid_wind_speed": f"{sample.wind_speed:.2f}",
                "rapid_wind_direction": f"{sample.wind_direction:d}",
            }
        )

    def _dew_point(self, observation: Observation) -> float:
        try:
            return dew_point(observation.air_temperature, observation.relative_humidity)
        except DewPointError as exc:
            self._logger.warning(
                "Dew point calculation failed for temp=%s humidity=%s: %s",
                observation.air_temperature,
                observation.relative_humidity,
                exc,
            )
            return 0.0
