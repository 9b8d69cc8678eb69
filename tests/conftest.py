import threading
import time

import pytest
import serial

from database.frame_database import FrameDatabase
from sniffer.serial_session import SessionConfig


class FakeSerial:
    """In-memory stand-in for serial.Serial, fed by the test"""

    def __init__(self, *args, **kwargs):
        self.kwargs = kwargs
        self.is_open = True
        self.written = bytearray()
        self.fail_reads = False
        self.fail_writes = False
        self._rx = bytearray()
        self._lock = threading.Lock()

    def feed(self, data: bytes):
        with self._lock:
            self._rx.extend(data)

    @property
    def in_waiting(self):
        if self.fail_reads:
            raise serial.SerialException("device disconnected")
        with self._lock:
            return len(self._rx)

    def read(self, size=1):
        if self.fail_reads:
            raise serial.SerialException("device disconnected")
        with self._lock:
            data = bytes(self._rx[:size])
            del self._rx[:size]
            return data

    def write(self, data):
        if self.fail_writes:
            raise serial.SerialException("write failed")
        self.written.extend(data)
        return len(data)

    def flush(self):
        pass

    def close(self):
        self.is_open = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@pytest.fixture
def fake_serial():
    return FakeSerial()


@pytest.fixture
def fast_config():
    """Session settings with short delays so tests run quickly"""
    return SessionConfig(
        port="/dev/ttyTEST",
        config_line_delay=0,
        handshake_timeout=1.0,
        inactivity_timeout=5.0,
        handshake_poll=0.01,
        listen_poll=0.01,
        simulation_period=0.01,
    )


@pytest.fixture
def database(tmp_path):
    db = FrameDatabase(str(tmp_path / "frames.db"))
    yield db
    db.close()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout elapses"""
    def _wait(predicate, timeout=3.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait
