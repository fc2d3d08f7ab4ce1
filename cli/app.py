from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer
import uvicorn

from app.main import create_app
from app.schemas import ReadStatus
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_result
from logging_config import configure_logging
from services.reader import build_default_reader


@dataclass
class CLIState:
    config: CLIConfig


app = typer.Typer(
    help="Smart meter telegram reader and Prometheus exporter.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    port: Optional[str] = typer.Option(
        None,
        "--port",
        help="Serial port of the meter (defaults to METER_SERIAL_PORT env or /dev/ttyUSB0).",
    ),
    addr: Optional[str] = typer.Option(
        None,
        "--addr",
        help="Metric server listen address (defaults to EXPORTER_LISTEN_ADDR env or :8080).",
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Exporter base URL used by 'fetch' (defaults to the listen address).",
    ),
) -> None:
    """Entry point for the CLI."""
    try:
        config = load_config(port=port, addr=addr, base_url=base_url)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--addr") from exc
    ctx.obj = CLIState(config=config)


@app.command("serve")
def serve_command(ctx: typer.Context) -> None:
    """Run the metrics server; every scrape reads one telegram from the meter."""
    state = _get_state(ctx)
    configure_logging()
    typer.echo(f"Running metric server on {state.config.addr}")
    typer.echo(f"Reading meter data from {state.config.port}")
    uvicorn.run(
        create_app(device=state.config.port),
        host=state.config.host,
        port=state.config.listen_port,
        log_config=None,
    )


@app.command("read")
def read_command(ctx: typer.Context) -> None:
    """Read a single telegram directly from the serial port."""
    state = _get_state(ctx)
    configure_logging()
    reader = build_default_reader(state.config.port)
    try:
        result = reader.read()
    finally:
        reader.shutdown()
        build_default_reader.cache_clear()

    render_result(result.model_dump(mode="json"))
    if result.status is not ReadStatus.ok:
        raise typer.Exit(code=1)


@app.command("fetch")
def fetch_command(
    ctx: typer.Context,
    raw: bool = typer.Option(
        False,
        "--raw/--no-raw",
        help="Print the raw Prometheus exposition instead of the parsed reading.",
    ),
) -> None:
    """Query a running exporter over HTTP."""
    state = _get_state(ctx)
    client = ApiClient(state.config)
    ctx.call_on_close(client.close)
    if raw:
        typer.echo(client.get_metrics(), nl=False)
        return
    render_result(client.get_reading())
