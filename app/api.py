"""HTTP route definitions for the status API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from app.schemas import HealthResponse, RelayStatsResponse
from services.relay import RelayService

router = APIRouter()


def get_relay(request: Request) -> RelayService:
    """The relay the lifespan started; it outlives shutdown so late requests see it stopped."""
    return request.app.state.relay


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(relay: RelayService = Depends(get_relay)) -> HealthResponse:
    return HealthResponse(running=relay.running)


@router.get(
    "/stats",
    response_model=RelayStatsResponse,
    summary="Counters describing packets received, decoded and delivered.",
)
async def relay_stats(relay: RelayService = Depends(get_relay)) -> RelayStatsResponse:
    return RelayStatsResponse(
        listen_address=relay.settings.listen_address,
        running=relay.running,
        noop=relay.settings.noop,
        rapid_wind=relay.settings.rapid_wind,
        in_flight=relay.dispatcher.in_flight(),
        stop_reason=relay.stop_reason,
        **relay.stats.snapshot(),
    )


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for relay status."}
