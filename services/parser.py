"""Field extraction and reading assembly for meter telegrams."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Dict, Sequence

from models.records import Reading

# OBIS code prefix -> Reading attribute
FIELD_PREFIXES: Dict[str, str] = {
    "1-0:1.8.1": "electricity_low",
    "1-0:1.8.2": "electricity_normal",
    "0-1:24.2.1": "gas",
}

_VALUE_PATTERN = re.compile(r".+\(([0-9.]+)[^0-9.)]+")


class EmptyTelegramError(ValueError):
    """Raised when a telegram closes without any data lines."""


def read_value(line: str) -> float:
    """Return the parenthesized decimal carried by ``line``, or 0.0.

    The value is a run of digits and dots directly after an opening
    parenthesis and followed by a unit suffix, e.g. ``(001427.007*kWh)``.
    Groups that are not followed by a unit, such as the timestamp in
    ``(180630193501S)(01354.810*m3)``, lose to the later decimal group.
    """
    match = _VALUE_PATTERN.search(line)
    if match is None:
        return 0.0
    try:
        return float(match.group(1))
    except ValueError:
        return 0.0


def field_for(line: str) -> str | None:
    for prefix, field_name in FIELD_PREFIXES.items():
        if line.startswith(prefix):
            return field_name
    return None


def assemble_reading(lines: Sequence[str]) -> Reading:
    """Build a :class:`Reading` from the data lines of one telegram."""
    if not lines:
        raise EmptyTelegramError("Telegram contained no data lines.")

    values: Dict[str, float] = {}
    for line in lines:
        field_name = field_for(line)
        if field_name is not None:
            values[field_name] = read_value(line)

    return Reading(timestamp=datetime.now(timezone.utc), **values)
