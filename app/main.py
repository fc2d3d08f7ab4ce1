from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from prometheus_client import CollectorRegistry

from app.api import router
from app.collector import MeterCollector
from logging_config import configure_logging
from services.reader import build_default_reader


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    reader = build_default_reader(app.state.device)
    registry = CollectorRegistry()
    registry.register(MeterCollector(reader))
    app.state.reader = reader
    app.state.registry = registry
    try:
        yield
    finally:
        reader.shutdown()
        build_default_reader.cache_clear()


def create_app(device: Optional[str] = None) -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Energy Exporter",
        description="Prometheus exporter for smart meter telegrams read over a serial port.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.device = device
    app.include_router(router)
    return app

app = create_app()
