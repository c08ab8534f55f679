from __future__ import annotations

import dataclasses
import json
import logging
import re
import socket
import threading
from typing import Optional

from coords import Degrees, wrap_deg
from lib.logging_setup import setup_logging

from .models import TheSkyXAltAz, TheSkyXState
from .protocol import TheSkyXConstants

LOGGER = logging.getLogger("theskyx.dummy")


class TheSkyXDummyConstants:
    HOST = "127.0.0.1"
    PORT = TheSkyXConstants.DEFAULT_PORT
    BACKLOG = 1
    BUFFER_SIZE = 1024
    ENCODING = TheSkyXConstants.ENCODING
    DECODE_ERRORS = "replace"
    PACKET_END_BYTES = TheSkyXConstants.PACKET_END.encode(ENCODING)
    STATE_MARKER = "JSON.stringify(ret)"
    ROTATE_PATTERN = re.compile(r"rotatorGotoPositionAngle\(([^)]*)\)")
    ROTATOR_BUSY_ERROR = 206
    BAD_SCRIPT_ERROR = 1
    DEFAULT_LONGITUDE = -71.0
    DEFAULT_LATITUDE = 42.0
    DEFAULT_ALT = 45.0
    DEFAULT_AZ = 180.0
    DEFAULT_ROTATOR_ANGLE = 0.0
    SOCKET_TRUE = 1


@dataclasses.dataclass
class TheSkyXDummyState:
    longitude: float = TheSkyXDummyConstants.DEFAULT_LONGITUDE
    latitude: float = TheSkyXDummyConstants.DEFAULT_LATITUDE
    alt: float = TheSkyXDummyConstants.DEFAULT_ALT
    az: float = TheSkyXDummyConstants.DEFAULT_AZ
    rotator_angle: float = TheSkyXDummyConstants.DEFAULT_ROTATOR_ANGLE
    busy_replies: int = 0

    def snapshot(self) -> TheSkyXState:
        return TheSkyXState(
            longitude=Degrees(self.longitude),
            latitude=Degrees(self.latitude),
            rotator_angle=Degrees(self.rotator_angle),
            pointing_at=TheSkyXAltAz(alt=Degrees(self.alt), az=Degrees(self.az)),
        )


def format_error(message: str, error_number: int) -> str:
    return f"{message}{TheSkyXConstants.ERROR_LEAD}{TheSkyXConstants.ERROR_MARKER}{error_number}{TheSkyXConstants.ERROR_END}"


class TheSkyXDummyServer:
    """Answers the scripts `TheSkyXClient` sends, against an in-memory state.

    Set `state.busy_replies` to have the next rotate scripts refused with
    TheSkyX's rotator-busy error.
    """

    def __init__(self, state: Optional[TheSkyXDummyState] = None, logger: Optional[logging.Logger] = None) -> None:
        self.state = state or TheSkyXDummyState()
        self.lock = threading.Lock()
        self.log = logger or LOGGER

    def handle_script(self, script: str) -> str:
        with self.lock:
            match = TheSkyXDummyConstants.ROTATE_PATTERN.search(script)
            if match is not None:
                if self.state.busy_replies > 0:
                    self.state.busy_replies -= 1
                    return self._reply(
                        format_error(f"TypeError: {TheSkyXConstants.ROTATOR_BUSY_MESSAGE}", TheSkyXDummyConstants.ROTATOR_BUSY_ERROR)
                    )
                try:
                    angle = float(match.group(1))
                except ValueError:
                    return self._reply(
                        format_error(f"TypeError: bad position angle {match.group(1)!r}", TheSkyXDummyConstants.BAD_SCRIPT_ERROR)
                    )
                self.state.rotator_angle = wrap_deg(angle)
            if TheSkyXDummyConstants.STATE_MARKER in script:
                return self._reply(json.dumps(self.state.snapshot().to_json()))
            return self._reply(format_error("SyntaxError: unsupported script", TheSkyXDummyConstants.BAD_SCRIPT_ERROR))

    @staticmethod
    def _reply(body: str) -> str:
        return f"{body}{TheSkyXConstants.TERMINATOR}"


class TheSkyXDummyTcpServer:
    def __init__(
        self,
        handler: TheSkyXDummyServer,
        *,
        host: str = TheSkyXDummyConstants.HOST,
        port: int = TheSkyXDummyConstants.PORT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.handler = handler
        self.host = host
        self.port = port
        self.log = logger or logging.getLogger("theskyx.tcp")
        self._socket: Optional[socket.socket] = None

    def bind(self) -> int:
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, TheSkyXDummyConstants.SOCKET_TRUE)
        srv.bind((self.host, self.port))
        srv.listen(TheSkyXDummyConstants.BACKLOG)
        self._socket = srv
        self.port = srv.getsockname()[1]
        self.log.info("Dummy server listening on %s:%s", self.host, self.port)
        return self.port

    def serve_forever(self) -> None:
        if self._socket is None:
            self.bind()
        srv = self._socket
        with srv:
            while True:
                try:
                    conn, addr = srv.accept()
                except OSError:
                    self.log.info("Dummy server stopped")
                    return
                self.log.info("Client connected: %s", addr)
                thread = threading.Thread(target=self._handle_client, args=(conn,), daemon=True)
                thread.start()

    def close(self) -> None:
        if self._socket is None:
            return
        try:
            # wakes a thread blocked in accept()
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            self.log.debug("shutdown on idle listener", exc_info=True)
        self._socket.close()

    def _handle_client(self, conn: socket.socket) -> None:
        with conn:
            buf = bytearray()
            while True:
                try:
                    data = conn.recv(TheSkyXDummyConstants.BUFFER_SIZE)
                except OSError:
                    return
                if not data:
                    return
                buf.extend(data)
                while True:
                    idx = buf.find(TheSkyXDummyConstants.PACKET_END_BYTES)
                    if idx < 0:
                        break
                    end = idx + len(TheSkyXDummyConstants.PACKET_END_BYTES)
                    raw = bytes(buf[:end])
                    del buf[:end]
                    self._handle_raw(conn, raw)

    def _handle_raw(self, conn: socket.socket, raw: bytes) -> None:
        script = raw.decode(TheSkyXDummyConstants.ENCODING, errors=TheSkyXDummyConstants.DECODE_ERRORS)
        self.log.debug("rx script=%r", script)
        response = self.handler.handle_script(script)
        self.log.debug("tx response=%r", response)
        conn.sendall(response.encode(TheSkyXDummyConstants.ENCODING))


def run_dummy_server(
    host: str = TheSkyXDummyConstants.HOST,
    port: int = TheSkyXDummyConstants.PORT,
) -> None:
    server = TheSkyXDummyTcpServer(TheSkyXDummyServer(), host=host, port=port)
    server.serve_forever()


if __name__ == "__main__":
    setup_logging()
    run_dummy_server()
