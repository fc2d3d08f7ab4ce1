"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ReadStatus(str, Enum):
    """Outcome of a single read cycle against the meter."""

    ok = "ok"
    unavailable = "unavailable"


class ReadingPayload(BaseModel):
    """Cumulative meter totals captured from one telegram."""

    timestamp: datetime
    electricity_low: float = Field(..., description="Low tariff electricity, kWh.")
    electricity_normal: float = Field(..., description="Normal tariff electricity, kWh.")
    gas: float = Field(..., description="Gas, m3.")


class ReadResult(BaseModel):
    """Result of one read-frame-assemble cycle."""

    status: ReadStatus
    reading: Optional[ReadingPayload] = None
    reason: Optional[str] = None
    elapsed_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from open to release."
    )
