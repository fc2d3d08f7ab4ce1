from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, Iterator, Optional

import serial

from settings import get_settings

logger = logging.getLogger(__name__)

SerialOpener = Callable[[], Any]


class StreamUnavailableError(RuntimeError):
    """Raised when the serial device cannot be opened."""


class LineSession:
    """One open serial handle, read as trimmed text lines.

    The session is not replayable; open a new one for the next cycle.
    """

    def __init__(self, handle: Any, device: str) -> None:
        self._handle = handle
        self.device = device
        self._closed = False
        self._cancelled = False
        self._close_lock = Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def lines(self) -> Iterator[str]:
        """Yield lines until a read fails, times out, or the session is stopped."""
        while not (self._closed or self._cancelled):
            try:
                raw = self._handle.readline()
            except (serial.SerialException, OSError) as exc:
                if self._cancelled:
                    return
                logger.warning(
                    "Serial read failed",
                    extra={"port": self.device, "reason": str(exc)},
                )
                return
            # a cancelled read returns whatever it had, usually nothing
            if self._cancelled:
                return
            if not raw:
                logger.warning(
                    "Serial read timed out",
                    extra={"port": self.device, "reason": "timeout"},
                )
                return
            yield raw.decode("utf-8", errors="replace").strip()

    def cancel(self) -> None:
        """Stop the line sequence and interrupt a blocked read where supported."""
        self._cancelled = True
        cancel_read = getattr(self._handle, "cancel_read", None)
        if cancel_read is None or self._closed:
            return
        try:
            cancel_read()
        except (serial.SerialException, OSError) as exc:
            logger.debug("Cancelling read failed", extra={"port": self.device, "reason": str(exc)})

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._handle.close()


class LineSource:
    """Opens fresh serial sessions against a configured device."""

    def __init__(
        self,
        device: str,
        baud_rate: int = 115200,
        parity: str = serial.PARITY_NONE,
        read_timeout: float = 5.0,
        opener: Optional[SerialOpener] = None,
    ) -> None:
        self.device = device
        self.baud_rate = baud_rate
        self.parity = parity
        self.read_timeout = read_timeout
        self._opener = opener or self._open_serial

    @contextmanager
    def open(self) -> Iterator[LineSession]:
        try:
            handle = self._opener()
        except (serial.SerialException, OSError, ValueError) as exc:
            raise StreamUnavailableError(
                f"Unable to open serial device {self.device!r}: {exc}"
            ) from exc

        session = LineSession(handle, self.device)
        try:
            yield session
        finally:
            session.close()

    def _open_serial(self) -> serial.Serial:
        return serial.Serial(
            port=self.device,
            baudrate=self.baud_rate,
            parity=self.parity,
            bytesize=serial.EIGHTBITS,
            stopbits=serial.STOPBITS_ONE,
            timeout=self.read_timeout,
        )


@lru_cache
def build_default_source(device: Optional[str] = None) -> LineSource:
    settings = get_settings()
    return LineSource(
        device=settings.serial_port if device is None else device,
        baud_rate=settings.baud_rate,
        parity=settings.parity,
        read_timeout=settings.read_timeout,
    )
