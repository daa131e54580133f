from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlparse


DEFAULT_LISTEN_ADDRESS = ":50222"
DEFAULT_INFLUX_URL = "https://localhost:8086"
DEFAULT_INFLUX_API_PATH = "/api/v2/write"
DEFAULT_BUFFER = 10240
DEFAULT_TIMEOUT = 10.0
DEFAULT_DISPATCH_WORKERS = 16

HTTP_MAX_IDLE_CONNS = 100
HTTP_MAX_CONNS_PER_HOST = 10
HTTP_IDLE_CONN_TIMEOUT = 90.0
HTTP_CONNECT_TIMEOUT = 5.0

_LISTEN_ADDRESS_ENV = "LISTEN_ADDRESS"
_INFLUX_URL_ENV = "INFLUX_URL"
_INFLUX_API_PATH_ENV = "INFLUX_API_PATH"
_INFLUX_ORG_ENV = "INFLUX_ORG"
_INFLUX_TOKEN_ENV = "INFLUX_TOKEN"
_INFLUX_BUCKET_ENV = "INFLUX_BUCKET"
_INFLUX_BUCKET_RAPID_WIND_ENV = "INFLUX_BUCKET_RAPID_WIND"
_BUFFER_ENV = "BUFFER"
_VERBOSE_ENV = "VERBOSE"
_DEBUG_ENV = "DEBUG"
_RAW_UDP_ENV = "RAW_UDP"
_NOOP_ENV = "NOOP"
_RAPID_WIND_ENV = "RAPID_WIND"
_DISPATCH_WORKERS_ENV = "DISPATCH_WORKERS"
_HTTP_TIMEOUT_ENV = "HTTP_TIMEOUT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}


class SettingsError(ValueError):
    """Raised when the relay configuration is incomplete or malformed."""


@dataclass(frozen=True)
class Settings:
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    influx_url: str = DEFAULT_INFLUX_URL
    influx_api_path: str = DEFAULT_INFLUX_API_PATH
    influx_org: str = ""
    influx_token: str = field(default="", repr=False)
    influx_bucket: str = ""
    influx_bucket_rapid_wind: Optional[str] = None
    buffer_size: int = DEFAULT_BUFFER
    verbose: bool = False
    debug: bool = False
    raw_udp: bool = False
    noop: bool = False
    rapid_wind: bool = False
    dispatch_workers: int = DEFAULT_DISPATCH_WORKERS
    http_timeout: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.debug and not self.verbose:
            object.__setattr__(self, "verbose", True)

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level

    def validate(self) -> "Settings":
        """Check every setting and raise a single error listing all problems."""
        problems: list[str] = []

        if not self.influx_url:
            problems.append("INFLUX_URL is required")
        else:
            parsed = urlparse(self.influx_url)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                problems.append(f"INFLUX_URL is not a valid URL: {self.influx_url!r}")
        if not self.influx_org:
            problems.append("INFLUX_ORG is required")
        if not self.influx_token:
            problems.append("INFLUX_TOKEN is required")
        if not self.influx_bucket:
            problems.append("INFLUX_BUCKET is required")
        if self.listen_address and ":" not in self.listen_address:
            problems.append("LISTEN_ADDRESS must include port (e.g., ':50222')")
        if self.buffer_size <= 0:
            problems.append("Buffer size must be greater than 0")
        if self.dispatch_workers <= 0:
            problems.append("Dispatch worker count must be greater than 0")
        if self.http_timeout <= 0:
            problems.append("HTTP timeout must be greater than 0")

        if problems:
            raise SettingsError(
                f"configuration validation failed: {'; '.join(problems)}"
            )
        return self


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
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


def _read_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in _TRUTHY


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _settings_from_env() -> Settings:
    return Settings(
        listen_address=_read_str_env(_LISTEN_ADDRESS_ENV, DEFAULT_LISTEN_ADDRESS),
        influx_url=_read_str_env(_INFLUX_URL_ENV, DEFAULT_INFLUX_URL),
        influx_api_path=_read_str_env(_INFLUX_API_PATH_ENV, DEFAULT_INFLUX_API_PATH),
        influx_org=_read_str_env(_INFLUX_ORG_ENV, ""),
        influx_token=_read_str_env(_INFLUX_TOKEN_ENV, ""),
        influx_bucket=_read_str_env(_INFLUX_BUCKET_ENV, ""),
        influx_bucket_rapid_wind=_read_optional_env(_INFLUX_BUCKET_RAPID_WIND_ENV, None),
        buffer_size=_read_int_env(_BUFFER_ENV, DEFAULT_BUFFER),
        verbose=_read_bool_env(_VERBOSE_ENV),
        debug=_read_bool_env(_DEBUG_ENV),
        raw_udp=_read_bool_env(_RAW_UDP_ENV),
        noop=_read_bool_env(_NOOP_ENV),
        rapid_wind=_read_bool_env(_RAPID_WIND_ENV),
        dispatch_workers=_read_int_env(_DISPATCH_WORKERS_ENV, DEFAULT_DISPATCH_WORKERS),
        http_timeout=_read_float_env(_HTTP_TIMEOUT_ENV, DEFAULT_TIMEOUT),
        log_level=_read_log_level("INFO"),
    )


def load_settings(**overrides: Any) -> Settings:
    """Layer explicit values (``None`` means "not given") over the environment."""
    base = _settings_from_env()
    given = {key: value for key, value in overrides.items() if value is not None}
    if not given:
        return base
    return replace(base, **given)


@lru_cache
def get_settings() -> Settings:
    return _settings_from_env()
