from __future__ import annotations
from contextlib import asynccontextmanager
from threading import Thread
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.relay import CancellationToken, build_default_relay


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    relay = build_default_relay()
    application.state.relay = relay
    token = CancellationToken()
    worker = Thread(target=relay.run, args=(token,), name="relay", daemon=True)
    worker.start()
    try:
        yield
    finally:
        token.cancel("application shutdown")
        worker.join(timeout=relay.read_timeout * 2)
        build_default_relay.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Tempest Relay",
        description="Relays WeatherFlow Tempest UDP broadcasts to InfluxDB.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
