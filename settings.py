from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_SERIAL_PORT_ENV = "METER_SERIAL_PORT"
_BAUD_RATE_ENV = "METER_BAUD_RATE"
_PARITY_ENV = "METER_PARITY"
_READ_TIMEOUT_ENV = "METER_READ_TIMEOUT"
_LINE_QUEUE_SIZE_ENV = "METER_LINE_QUEUE_SIZE"
_LISTEN_ADDR_ENV = "EXPORTER_LISTEN_ADDR"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_VALID_PARITIES = {"N", "E", "O", "M", "S"}


@dataclass(frozen=True)
class Settings:
    serial_port: str
    baud_rate: int
    parity: str
    read_timeout: float
    line_queue_size: int
    listen_addr: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_positive_int(name: str, default: int) -> int:
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


def _read_positive_float(name: str, default: float) -> float:
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


def _read_parity(default: str) -> str:
    candidate = _read_str_env(_PARITY_ENV, default).upper()[:1]
    return candidate if candidate in _VALID_PARITIES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        serial_port=_read_str_env(_SERIAL_PORT_ENV, "/dev/ttyUSB0"),
        baud_rate=_read_positive_int(_BAUD_RATE_ENV, 115200),
        parity=_read_parity("N"),
        read_timeout=_read_positive_float(_READ_TIMEOUT_ENV, 5.0),
        line_queue_size=_read_positive_int(_LINE_QUEUE_SIZE_ENV, 100),
        listen_addr=_read_str_env(_LISTEN_ADDR_ENV, ":8080"),
        log_level=_read_log_level("INFO"),
    )
