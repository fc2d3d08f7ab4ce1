from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_result(payload: Dict[str, Any]) -> None:
    echo_heading("Meter Reading")
    echo_key_values(
        [
            ("status", payload.get("status")),
            ("elapsed_ms", payload.get("elapsed_ms")),
        ]
    )

    reading = payload.get("reading") or {}
    typer.echo()
    echo_heading("Totals")
    if reading:
        echo_key_values(
            [
                ("timestamp", reading.get("timestamp")),
                ("electricity_low", reading.get("electricity_low")),
                ("electricity_normal", reading.get("electricity_normal")),
                ("gas", reading.get("gas")),
            ]
        )
    else:
        typer.echo(f"No reading available: {payload.get('reason') or 'unknown reason'}")
