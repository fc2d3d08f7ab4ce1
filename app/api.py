"""HTTP route definitions for the exporter."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from app.schemas import ReadResult, ReadStatus
from services.reader import MeterReader

METRICS_PATH = "/metrics"

router = APIRouter()


def get_reader(request: Request) -> MeterReader:
    return request.app.state.reader


def get_registry(request: Request) -> CollectorRegistry:
    return request.app.state.registry


# Plain ``def`` handlers run in the threadpool; a scrape blocks on the serial read.
@router.get(
    METRICS_PATH,
    summary="Prometheus exposition of the current meter totals.",
    response_class=Response,
)
def metrics(registry: CollectorRegistry = Depends(get_registry)) -> Response:
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


@router.get(
    "/reading",
    response_model=ReadResult,
    summary="Read one telegram from the meter and return the parsed totals.",
)
def read_meter(reader: MeterReader = Depends(get_reader)) -> ReadResult:
    result = reader.read()
    if result.status is ReadStatus.unavailable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=result.reason or "Meter reading unavailable.",
        )
    return result


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": f"Metrics are served at {METRICS_PATH}."}
