"""Derived meteorological quantities."""

from __future__ import annotations

import math

# Magnus coefficients (Sonntag 1990), valid roughly from -45 to 60 C.
_MAGNUS_B = 17.62
_MAGNUS_C = 243.12


class DewPointError(ValueError):
    """Raised when dew point cannot be derived from the given inputs."""


def dew_point(temperature_c: float, relative_humidity: float) -> float:
    """Return the dew point in degrees Celsius."""
    if not math.isfinite(temperature_c) or not math.isfinite(relative_humidity):
        raise DewPointError("temperature and humidity must be finite")
    if relative_humidity <= 0 or relative_humidity > 100:
        raise DewPointError(
            f"relative humidity {relative_humidity} is outside (0, 100]"
        )
    if temperature_c <= -_MAGNUS_C:
        raise DewPointError(f"temperature {temperature_c} is below the formula range")

    gamma = math.log(relative_humidity / 100.0) + (
        _MAGNUS_B * temperature_c / (_MAGNUS_C + temperature_c)
    )
    return _MAGNUS_C * gamma / (_MAGNUS_B - gamma)
