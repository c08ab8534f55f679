from __future__ import annotations

import io
import json
import logging
import threading
from typing import Iterator

import pytest
import serial

from coords import Degrees
from theskyx import (
    TheSkyXClient,
    TheSkyXDevice,
    TheSkyXIncompleteWriteError,
    TheSkyXProtocolError,
    TheSkyXState,
    TheSkyXTimeoutError,
    theskyx_url,
)
from theskyx.dummy_server import TheSkyXDummyServer, TheSkyXDummyState, TheSkyXDummyTcpServer
from theskyx.protocol import TheSkyXConstants, rotate_script, state_script

LOGGER = logging.getLogger("tests.theskyx.client")

STATE_REPLY = b'{"Longitude": -71, "Latitude": 42, "RotatorAngle": 1.5, "PointingAt": {"Alt": 30, "Az": 90}}|'
BUSY_REPLY = b"TypeError: A Rotator command is already in progress. Error = 206.|"


class FakeTransport:
    def __init__(self, replies: bytes) -> None:
        self._rx = io.BytesIO(replies)
        self.sent: list[bytes] = []
        self.closed = False

    def write(self, payload: bytes) -> None:
        self.sent.append(payload)

    def read(self, size: int = 1) -> bytes:
        return self._rx.read(size)

    def close(self) -> None:
        self.closed = True


class FakePort:
    def __init__(self, rx: bytes = b"", short_write: int = 0) -> None:
        self._rx = bytearray(rx)
        self._short_write = short_write
        self.timeout = None
        self.written = bytearray()
        self.closed = False

    @property
    def in_waiting(self) -> int:
        return len(self._rx)

    def feed(self, data: bytes) -> None:
        self._rx += data

    def read(self, size: int = 1) -> bytes:
        # empty means the read timed out
        data = bytes(self._rx[:size])
        del self._rx[:size]
        return data

    def write(self, data: bytes) -> int:
        count = len(data) - self._short_write
        self.written += data[:count]
        return count

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def dummy_server() -> Iterator[tuple[TheSkyXDummyServer, int]]:
    handler = TheSkyXDummyServer()
    server = TheSkyXDummyTcpServer(handler, port=0)
    port = server.bind()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    LOGGER.info("STEP dummy server port=%s", port)
    try:
        yield handler, port
    finally:
        server.close()
        thread.join(timeout=2.0)


def test_get_state_sends_state_script() -> None:
    transport = FakeTransport(STATE_REPLY)
    client = TheSkyXClient(transport)
    state = client.get_state()
    assert transport.sent == [state_script().encode("utf-8")]
    assert state.rotator_angle == 1.5
    assert state.pointing_at.az == 90.0


def test_rotate_sends_angle() -> None:
    transport = FakeTransport(STATE_REPLY)
    client = TheSkyXClient(transport)
    state = client.rotate(Degrees(1.5))
    assert transport.sent == [rotate_script(Degrees(1.5)).encode("utf-8")]
    assert isinstance(state, TheSkyXState)


def test_protocol_error_leaves_connection_usable() -> None:
    client = TheSkyXClient(FakeTransport(BUSY_REPLY + STATE_REPLY))
    with pytest.raises(TheSkyXProtocolError) as excinfo:
        client.rotate(Degrees(10.0))
    assert excinfo.value.is_rotator_busy()
    assert client.get_state().latitude == 42.0


def test_context_manager_closes_transport() -> None:
    transport = FakeTransport(b"")
    with TheSkyXClient(transport) as client:
        assert client.device is transport
    assert transport.closed


def test_url() -> None:
    assert theskyx_url("10.0.0.5", 3041) == "socket://10.0.0.5:3041"
    assert theskyx_url() == f"socket://{TheSkyXConstants.DEFAULT_HOST}:{TheSkyXConstants.DEFAULT_PORT}"


def test_device_incomplete_write(monkeypatch: pytest.MonkeyPatch) -> None:
    port = FakePort(short_write=2)
    monkeypatch.setattr(serial, "serial_for_url", lambda url, timeout=None: port)
    device = TheSkyXDevice("socket://example:3040")
    with pytest.raises(TheSkyXIncompleteWriteError) as excinfo:
        device.write(b"abcdef")
    assert (excinfo.value.written, excinfo.value.expected) == (4, 6)


def test_device_reads_only_what_is_available(monkeypatch: pytest.MonkeyPatch) -> None:
    port = FakePort(rx=b"abc")
    monkeypatch.setattr(serial, "serial_for_url", lambda url, timeout=None: port)
    with TheSkyXDevice("socket://example:3040") as device:
        assert device.read(0) == b""
        assert device.read(512) == b"abc"
        with pytest.raises(TheSkyXTimeoutError):
            device.read(512)
    assert port.closed


def test_device_timeout_keeps_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    port = FakePort(rx=STATE_REPLY)
    monkeypatch.setattr(serial, "serial_for_url", lambda url, timeout=None: port)
    with TheSkyXClient(TheSkyXDevice("socket://example:3040", timeout_s=0.5)) as client:
        assert client.get_state().latitude == 42.0
        with pytest.raises(TheSkyXTimeoutError):
            client.get_state()
        port.feed(STATE_REPLY)
        assert client.get_state().rotator_angle == 1.5


def test_dummy_handler_replies() -> None:
    handler = TheSkyXDummyServer(TheSkyXDummyState(rotator_angle=5.0, busy_replies=1))
    busy = handler.handle_script(rotate_script(Degrees(6.0)))
    assert busy.endswith("Error = 206.|")
    reply = handler.handle_script(rotate_script(Degrees(-10.0)))
    assert reply.endswith("|")
    assert json.loads(reply[:-1])["RotatorAngle"] == 350.0
    assert "Error = " in handler.handle_script("nonsense")


def test_client_against_dummy_server(dummy_server: tuple[TheSkyXDummyServer, int]) -> None:
    handler, port = dummy_server
    with TheSkyXClient.connect("127.0.0.1", port, timeout_s=2.0) as client:
        state = client.get_state()
        assert state.longitude == -71.0
        assert state.latitude == 42.0
        assert state.rotator_angle == 0.0

        state = client.rotate(Degrees(370.0))
        assert state.rotator_angle == pytest.approx(10.0)

        handler.state.busy_replies = 1
        with pytest.raises(TheSkyXProtocolError) as excinfo:
            client.rotate(Degrees(20.0))
        assert excinfo.value.error_number == 206

        state = client.rotate(Degrees(20.0))
        assert state.rotator_angle == pytest.approx(20.0)
