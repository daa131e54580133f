"""Pydantic schemas for the status API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    running: bool = Field(..., description="Whether the UDP receive loop is active.")


class RelayStatsResponse(BaseModel):
    """Counters accumulated since the relay started."""

    listen_address: str
    running: bool
    noop: bool
    rapid_wind: bool
    packets_received: int = Field(..., ge=0)
    read_errors: int = Field(..., ge=0)
    reports_ignored: int = Field(..., ge=0)
    decode_errors: int = Field(..., ge=0)
    points_delivered: int = Field(..., ge=0)
    delivery_failures: int = Field(..., ge=0)
    deliveries_skipped: int = Field(..., ge=0)
    faults: int = Field(..., ge=0)
    in_flight: int = Field(..., ge=0)
    stop_reason: Optional[str] = None
