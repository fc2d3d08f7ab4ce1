from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from settings import get_settings

DEFAULT_HOST = "0.0.0.0"

_BASE_URL_ENV = "EXPORTER_BASE_URL"


@dataclass(frozen=True)
class CLIConfig:
    port: str
    addr: str
    base_url: str

    @property
    def host(self) -> str:
        return parse_listen_addr(self.addr)[0]

    @property
    def listen_port(self) -> int:
        return parse_listen_addr(self.addr)[1]


def parse_listen_addr(addr: str) -> Tuple[str, int]:
    """Split ``host:port`` (host optional, as in ``:8080``) into its parts."""
    host, sep, port = addr.strip().rpartition(":")
    if not sep:
        raise ValueError(f"Listen address {addr!r} must be of the form [host]:port.")
    try:
        parsed = int(port)
    except ValueError as exc:
        raise ValueError(f"Listen address {addr!r} has an invalid port.") from exc
    if not 0 < parsed < 65536:
        raise ValueError(f"Listen address {addr!r} has an out of range port.")
    return host.strip("[]") or DEFAULT_HOST, parsed


def _default_base_url(addr: str) -> str:
    host, port = parse_listen_addr(addr)
    if host == DEFAULT_HOST:
        host = "localhost"
    return f"http://{host}:{port}"


def load_config(
    port: Optional[str] = None,
    addr: Optional[str] = None,
    base_url: Optional[str] = None,
) -> CLIConfig:
    settings = get_settings()
    listen_addr = addr or settings.listen_addr
    parse_listen_addr(listen_addr)
    url = base_url or os.getenv(_BASE_URL_ENV) or _default_base_url(listen_addr)
    return CLIConfig(
        port=port or settings.serial_port,
        addr=listen_addr,
        base_url=url.rstrip("/"),
    )
