"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Reading:
    """Cumulative meter totals parsed from one complete telegram."""

    timestamp: datetime
    electricity_low: float = 0.0
    electricity_normal: float = 0.0
    gas: float = 0.0
