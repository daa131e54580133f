from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 10.0

_BASE_URL_ENV = "RELAY_API_BASE_URL"
_TIMEOUT_ENV = "RELAY_API_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT


def _read_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    return CLIConfig(base_url=url.rstrip("/"), timeout=timeout)
