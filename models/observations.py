"""Typed station observations built from fixed-position report arrays."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence

OBSERVATION_FIELD_COUNT = 18
RAPID_WIND_FIELD_COUNT = 3


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class PrecipitationType(IntEnum):
    none = 0
    rain = 1
    hail = 2
    rain_hail = 3

    @property
    def display(self) -> str:
        return "rain+hail" if self is PrecipitationType.rain_hail else self.name

    @classmethod
    def label(cls, code: int) -> str:
        try:
            return cls(code).display
        except ValueError:
            return "unknown"


@dataclass(slots=True)
class Observation:
    """A full ``obs_st`` sample."""

    timestamp: int
    wind_lull: float
    wind_avg: float
    wind_gust: float
    wind_direction: int
    wind_sample_interval: int
    station_pressure: float
    air_temperature: float
    relative_humidity: float
    illuminance: int
    uv: float
    solar_radiation: int
    precipitation_accumulation: float
    precipitation_type: int
    strike_avg_distance: int
    strike_count: int
    battery: float
    interval: int

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "Observation":
        if len(values) < OBSERVATION_FIELD_COUNT:
            raise ValueError(
                f"expected {OBSERVATION_FIELD_COUNT} fields, got {len(values)}"
            )
        return cls(
            timestamp=int(values[0]),
            wind_lull=values[1],
            wind_avg=values[2],
            wind_gust=values[3],
            wind_direction=round_half_away(values[4]),
            wind_sample_interval=round_half_away(values[5]),
            station_pressure=values[6],
            air_temperature=values[7],
            relative_humidity=values[8],
            illuminance=round_half_away(values[9]),
            uv=values[10],
            solar_radiation=round_half_away(values[11]),
            precipitation_accumulation=values[12],
            precipitation_type=round_half_away(values[13]),
            strike_avg_distance=round_half_away(values[14]),
            strike_count=round_half_away(values[15]),
            battery=values[16],
            interval=round_half_away(values[17]),
        )

    @property
    def precipitation_label(self) -> str:
        return PrecipitationType.label(self.precipitation_type)


@dataclass(slots=True)
class RapidWind:
    """A high-frequency ``rapid_wind`` sample."""

    timestamp: int
    wind_speed: float
    wind_direction: int

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "RapidWind":
        if len(values) != RAPID_WIND_FIELD_COUNT:
            raise ValueError(
                f"expected {RAPID_WIND_FIELD_COUNT} fields, got {len(values)}"
            )
        return cls(
            timestamp=int(values[0]),
            wind_speed=values[1],
            wind_direction=round_half_away(values[2]),
        )
