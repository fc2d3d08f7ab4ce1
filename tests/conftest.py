from __future__ import annotations

import threading
from typing import Callable, Iterable, List, Optional

import pytest

from stream.line_source import LineSource

TELEGRAM = [
    "/ISK5\\2M550T-1012",
    "",
    "1-3:0.2.8(50)",
    "0-0:1.0.0(180630194016S)",
    "1-0:1.8.1(001581.123*kWh)",
    "1-0:1.8.2(001427.007*kWh)",
    "0-0:96.14.0(0002)",
    "0-1:24.2.1(180630193501S)(01354.810*m3)",
    "!7D2E",
]


class FakeSerial:
    """In-memory stand-in for ``serial.Serial`` fed from a list of lines."""

    def __init__(
        self,
        lines: Iterable[str],
        error: Optional[BaseException] = None,
    ) -> None:
        self._pending: List[bytes] = [f"{line}\r\n".encode("utf-8") for line in lines]
        self._error = error
        self.reads = 0
        self.close_calls = 0
        self.cancel_calls = 0

    def readline(self) -> bytes:
        self.reads += 1
        if self._pending:
            return self._pending.pop(0)
        if self._error is not None:
            raise self._error
        return b""

    def cancel_read(self) -> None:
        self.cancel_calls += 1

    def close(self) -> None:
        self.close_calls += 1


class BlockingSerial(FakeSerial):
    """Like ``serial.Serial`` on a live port: after the queued lines, reads block.

    A blocked ``readline`` returns ``b""`` once ``cancel_read`` is called, or
    when ``block_timeout`` elapses, the way pyserial honours its timeout.
    """

    def __init__(self, lines: Iterable[str], block_timeout: float = 5.0) -> None:
        super().__init__(lines)
        self.block_timeout = block_timeout
        self._cancelled = threading.Event()

    def readline(self) -> bytes:
        self.reads += 1
        if self._pending:
            return self._pending.pop(0)
        self._cancelled.wait(self.block_timeout)
        return b""

    def cancel_read(self) -> None:
        super().cancel_read()
        self._cancelled.set()


@pytest.fixture()
def telegram_lines() -> List[str]:
    return list(TELEGRAM)


@pytest.fixture()
def make_source() -> Callable[..., tuple[LineSource, List[FakeSerial]]]:
    """Build a source whose every session opens a fresh FakeSerial."""

    def factory(
        lines: Iterable[str],
        device: str = "/dev/fake",
        error: Optional[BaseException] = None,
    ) -> tuple[LineSource, List[FakeSerial]]:
        lines = list(lines)
        handles: List[FakeSerial] = []

        def opener() -> FakeSerial:
            handle = FakeSerial(lines, error=error)
            handles.append(handle)
            return handle

        return LineSource(device=device, opener=opener), handles

    return factory


@pytest.fixture()
def make_blocking_source() -> Callable[..., tuple[LineSource, List[BlockingSerial]]]:
    """Build a source whose sessions block after their lines, like a live meter."""

    def factory(
        lines: Iterable[str],
        device: str = "/dev/live",
        block_timeout: float = 5.0,
    ) -> tuple[LineSource, List[BlockingSerial]]:
        lines = list(lines)
        handles: List[BlockingSerial] = []

        def opener() -> BlockingSerial:
            handle = BlockingSerial(lines, block_timeout=block_timeout)
            handles.append(handle)
            return handle

        return LineSource(device=device, read_timeout=block_timeout, opener=opener), handles

    return factory
