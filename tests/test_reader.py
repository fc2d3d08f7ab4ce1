import logging
import queue
import threading
import time

import pytest
import serial

from app.schemas import ReadStatus
from services.reader import MeterReader, build_default_reader, device_lock
from stream.line_source import LineSource


@pytest.fixture()
def readers():
    created = []

    def factory(source: LineSource, queue_size: int = 100) -> MeterReader:
        reader = MeterReader(source=source, queue_size=queue_size)
        created.append(reader)
        return reader

    yield factory
    for reader in created:
        reader.shutdown()


def test_read_returns_reading_and_releases_session(make_source, readers, telegram_lines) -> None:
    source, handles = make_source(telegram_lines)
    reader = readers(source)

    result = reader.read()

    assert result.status is ReadStatus.ok
    assert result.reason is None
    assert result.reading is not None
    assert result.reading.electricity_low == 1581.123
    assert result.reading.electricity_normal == 1427.007
    assert result.reading.gas == 1354.81
    assert isinstance(result.elapsed_ms, int)
    assert len(handles) == 1
    assert handles[0].close_calls == 1


def test_read_stops_after_first_telegram(make_source, readers, telegram_lines) -> None:
    second = [line.replace("001581.123", "009999.999") for line in telegram_lines]
    source, handles = make_source(telegram_lines + second)
    reader = readers(source)

    result = reader.read()

    assert result.reading is not None
    assert result.reading.electricity_low == 1581.123
    assert handles[0].close_calls == 1


def test_read_skips_empty_telegram(make_source, readers, telegram_lines) -> None:
    source, _ = make_source(["/ISK5\\2M550T-1012", "!0000"] + telegram_lines)
    reader = readers(source)

    result = reader.read()

    assert result.status is ReadStatus.ok
    assert result.reading is not None
    assert result.reading.gas == 1354.81


def test_stream_timeout_before_telegram_is_unavailable(make_source, readers, telegram_lines) -> None:
    source, handles = make_source(telegram_lines[:-1])
    reader = readers(source)

    result = reader.read()

    assert result.status is ReadStatus.unavailable
    assert result.reading is None
    assert "Stream ended" in (result.reason or "")
    assert handles[0].close_calls == 1


def test_read_error_is_scoped_to_the_call(make_source, readers, telegram_lines) -> None:
    source, handles = make_source(
        telegram_lines[:3], error=serial.SerialException("device reports readiness to read but returned no data")
    )
    reader = readers(source)

    first = reader.read()
    second = reader.read()

    assert first.status is ReadStatus.unavailable
    assert second.status is ReadStatus.unavailable
    assert [handle.close_calls for handle in handles] == [1, 1]


def test_open_failure_is_unavailable(readers) -> None:
    def opener():
        raise serial.SerialException("could not open port /dev/missing")

    reader = readers(LineSource(device="/dev/missing", opener=opener))

    result = reader.read()

    assert result.status is ReadStatus.unavailable
    assert "/dev/missing" in (result.reason or "")


def test_small_queue_applies_backpressure(make_source, readers, telegram_lines) -> None:
    noise = [f"0-0:96.13.0({index})" for index in range(50)]
    source, _ = make_source(noise + telegram_lines)
    reader = readers(source, queue_size=1)

    result = reader.read()

    assert result.status is ReadStatus.ok
    assert result.reading is not None
    assert result.reading.electricity_normal == 1427.007


def test_pump_blocks_while_queue_is_full(make_source, readers) -> None:
    noise = [f"0-0:96.13.0({index})" for index in range(50)]
    source, handles = make_source(noise)
    reader = readers(source, queue_size=2)
    lines: queue.Queue[object] = queue.Queue(maxsize=2)
    stop = threading.Event()

    with source.open() as session:
        pump = threading.Thread(target=reader._pump_lines, args=(session, lines, stop))
        pump.start()
        time.sleep(0.3)

        # two lines queued, one more read and held while waiting for room
        assert lines.full()
        assert handles[0].reads == 3
        assert pump.is_alive()

        assert lines.get() == "0-0:96.13.0(0)"
        time.sleep(0.3)
        assert handles[0].reads == 4

        stop.set()
        pump.join(timeout=1)
        assert not pump.is_alive()

    assert handles[0].close_calls == 1


def test_read_interrupts_blocked_serial_read(make_blocking_source, readers, telegram_lines, caplog) -> None:
    source, handles = make_blocking_source(telegram_lines, block_timeout=5.0)
    reader = readers(source)

    with caplog.at_level(logging.DEBUG):
        result = reader.read()

    assert result.status is ReadStatus.ok
    assert result.reading is not None
    assert result.reading.gas == 1354.81
    assert result.elapsed_ms is not None and result.elapsed_ms < 1000
    assert handles[0].cancel_calls == 1
    assert handles[0].close_calls == 1
    warnings = [record for record in caplog.records if record.levelno >= logging.WARNING]
    assert warnings == []


def test_read_stops_with_unread_lines_pending(make_blocking_source, readers, telegram_lines) -> None:
    source, handles = make_blocking_source(telegram_lines + telegram_lines, block_timeout=5.0)
    reader = readers(source, queue_size=1)

    result = reader.read()

    assert result.status is ReadStatus.ok
    assert result.elapsed_ms is not None and result.elapsed_ms < 1000
    assert handles[0].reads < 2 * len(telegram_lines)
    assert handles[0].close_calls == 1


def test_genuine_timeout_is_logged(make_blocking_source, readers, telegram_lines, caplog) -> None:
    source, handles = make_blocking_source(telegram_lines[:-1], block_timeout=0.05)
    reader = readers(source)

    with caplog.at_level(logging.WARNING):
        result = reader.read()

    assert result.status is ReadStatus.unavailable
    messages = [
        record.getMessage() for record in caplog.records if record.name == "stream.line_source"
    ]
    assert messages == ["Serial read timed out"]
    assert handles[0].close_calls == 1


def test_invalid_queue_size_rejected(make_source) -> None:
    source, _ = make_source([])

    with pytest.raises(ValueError):
        MeterReader(source=source, queue_size=0)


def test_readers_for_same_device_share_lock(make_source, readers) -> None:
    source_a, _ = make_source([], device="/dev/shared")
    source_b, _ = make_source([], device="/dev/shared")
    source_c, _ = make_source([], device="/dev/other")

    assert readers(source_a)._lock is readers(source_b)._lock
    assert readers(source_c)._lock is not device_lock("/dev/shared")


def test_concurrent_reads_are_serialized(readers, telegram_lines) -> None:
    active = 0
    peak = 0
    guard = threading.Lock()

    class SlowSerial:
        def __init__(self) -> None:
            self._pending = [f"{line}\r\n".encode() for line in telegram_lines]

        def readline(self) -> bytes:
            time.sleep(0.01)
            return self._pending.pop(0) if self._pending else b""

        def close(self) -> None:
            nonlocal active
            with guard:
                active -= 1

    def opener() -> SlowSerial:
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        return SlowSerial()

    reader_one = readers(LineSource(device="/dev/serialized", opener=opener))
    reader_two = readers(LineSource(device="/dev/serialized", opener=opener))
    results = []

    threads = [
        threading.Thread(target=lambda r=reader: results.append(r.read()))
        for reader in (reader_one, reader_one, reader_two)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(results) == 3
    assert all(result.status is ReadStatus.ok for result in results)
    assert peak == 1


def test_build_default_reader_uses_settings(monkeypatch) -> None:
    from settings import get_settings
    from stream.line_source import build_default_source

    monkeypatch.setenv("METER_SERIAL_PORT", "/dev/ttyAMA0")
    monkeypatch.setenv("METER_LINE_QUEUE_SIZE", "7")
    caches = (get_settings, build_default_source, build_default_reader)
    for cache in caches:
        cache.cache_clear()

    reader = build_default_reader()
    try:
        assert reader.source.device == "/dev/ttyAMA0"
        assert reader.queue_size == 7
        assert build_default_reader("/dev/ttyUSB1").source.device == "/dev/ttyUSB1"
    finally:
        reader.shutdown()
        build_default_reader("/dev/ttyUSB1").shutdown()
        for cache in caches:
            cache.cache_clear()
