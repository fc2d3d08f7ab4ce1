"""Per-scrape read pipeline from the serial line stream to a single reading."""

from __future__ import annotations

import logging
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from threading import Event, Lock
from typing import Dict, Optional

from app.schemas import ReadingPayload, ReadResult, ReadStatus
from models.records import Reading
from services.framer import TelegramFramer
from settings import get_settings
from stream.line_source import LineSession, LineSource, StreamUnavailableError, build_default_source

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()
_PUT_POLL_SECONDS = 0.1

_device_locks: Dict[str, Lock] = {}
_device_locks_guard = Lock()


def device_lock(device: str) -> Lock:
    """Return the lock that serializes read cycles for ``device``."""
    with _device_locks_guard:
        lock = _device_locks.get(device)
        if lock is None:
            lock = _device_locks[device] = Lock()
        return lock


class MeterReader:
    """Runs one read-frame-assemble cycle per :meth:`read` call.

    Each cycle opens a fresh session, pumps lines into a bounded queue on one
    worker, frames them on a second worker and hands the first reading back
    to the caller. The session is released before :meth:`read` returns.
    """

    def __init__(self, source: LineSource, queue_size: int = 100) -> None:
        if queue_size <= 0:
            raise ValueError("queue_size must be positive.")
        self.source = source
        self.queue_size = queue_size
        self.executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="meter-reader")
        self._lock = device_lock(source.device)

    def read(self) -> ReadResult:
        """Read one reading; concurrent calls for the same device run one at a time."""
        with self._lock:
            return self._read_once()

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _read_once(self) -> ReadResult:
        start_time = time.perf_counter()
        reading: Optional[Reading] = None
        reason: Optional[str] = None

        try:
            with self.source.open() as session:
                reading = self._run_pipeline(session)
        except StreamUnavailableError as exc:
            reason = str(exc)

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        if reading is None:
            reason = reason or "Stream ended before a complete telegram was read."
            logger.warning(
                "Reading unavailable",
                extra={
                    "port": self.source.device,
                    "status": ReadStatus.unavailable.value,
                    "reason": reason,
                    "elapsed_ms": elapsed_ms,
                },
            )
            return ReadResult(status=ReadStatus.unavailable, reason=reason, elapsed_ms=elapsed_ms)

        logger.info(
            "Reading collected",
            extra={
                "port": self.source.device,
                "status": ReadStatus.ok.value,
                "elapsed_ms": elapsed_ms,
            },
        )
        return ReadResult(
            status=ReadStatus.ok,
            reading=ReadingPayload(
                timestamp=reading.timestamp,
                electricity_low=reading.electricity_low,
                electricity_normal=reading.electricity_normal,
                gas=reading.gas,
            ),
            elapsed_ms=elapsed_ms,
        )

    def _run_pipeline(self, session: LineSession) -> Optional[Reading]:
        lines: queue.Queue[object] = queue.Queue(maxsize=self.queue_size)
        stop = Event()
        pump = self.executor.submit(self._pump_lines, session, lines, stop)
        framing = self.executor.submit(self._frame_lines, lines)
        try:
            return framing.result()
        finally:
            stop.set()
            session.cancel()
            pump.result()

    def _pump_lines(self, session: LineSession, lines: queue.Queue[object], stop: Event) -> None:
        line_count = 0
        try:
            for line in session.lines():
                if not self._offer(lines, line, stop):
                    break
                line_count += 1
        finally:
            self._offer(lines, _END_OF_STREAM, stop)
            logger.debug(
                "Line pump finished",
                extra={"port": session.device, "line_count": line_count},
            )

    @staticmethod
    def _offer(lines: queue.Queue[object], item: object, stop: Event) -> bool:
        # blocks while the queue is full, until the consumer is done
        while not stop.is_set():
            try:
                lines.put(item, timeout=_PUT_POLL_SECONDS)
            except queue.Full:
                continue
            return True
        return False

    @staticmethod
    def _frame_lines(lines: queue.Queue[object]) -> Optional[Reading]:
        framer = TelegramFramer()
        while True:
            line = lines.get()
            if line is _END_OF_STREAM:
                return None
            reading = framer.feed(line)  # type: ignore[arg-type]
            if reading is not None:
                return reading


@lru_cache
def build_default_reader(device: Optional[str] = None) -> MeterReader:
    """Factory that wires the reader to the configured serial device."""
    settings = get_settings()
    source = build_default_source(device)
    return MeterReader(source=source, queue_size=settings.line_queue_size)
