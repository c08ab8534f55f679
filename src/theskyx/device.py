from __future__ import annotations

import logging
import threading
from typing import Optional

import serial

from .protocol import TheSkyXConstants, TheSkyXIncompleteWriteError, TheSkyXTimeoutError


def theskyx_url(host: str = TheSkyXConstants.DEFAULT_HOST, port: int = TheSkyXConstants.DEFAULT_PORT) -> str:
    return TheSkyXConstants.URL_TEMPLATE.format(host=host, port=port)


class TheSkyXDevice:
    """Byte transport to TheSkyX, opened through a pyserial URL.

    `socket://host:port` is the usual form. `read` returns whatever is
    already available (at least one byte, blocking for it), so stream
    decoders layered on top never wait for more than the peer has sent.
    A read timeout raises `TheSkyXTimeoutError` rather than returning an
    empty read, which readers above would take for end of data.
    """

    def __init__(self, url: str, timeout_s: Optional[float] = None, name: str = "theskyx.device") -> None:
        self.log = logging.getLogger(name)
        self.lock = threading.Lock()
        self.url = url
        try:
            self.log.info("Opening %s (timeout=%s)", url, timeout_s)
            self.port = serial.serial_for_url(url, timeout=timeout_s)
            self.log.info("Connection %s opened", url)
        except Exception:
            self.log.exception("Failed to open %s", url)
            raise

    def __enter__(self) -> "TheSkyXDevice":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        with self.lock:
            try:
                self.port.close()
            except serial.SerialException:
                self.log.warning("Error closing %s", self.url, exc_info=True)
            else:
                self.log.info("Connection %s closed", self.url)

    def write(self, payload: bytes) -> None:
        with self.lock:
            self.log.debug("TX %r", payload)
            written = self.port.write(payload)
            self.port.flush()
        if written != len(payload):
            raise TheSkyXIncompleteWriteError(written or 0, len(payload))

    def read(self, size: int = 1) -> bytes:
        if size == 0:
            return b""
        available = self.port.in_waiting
        count = max(1, available if size < 0 else min(size, available))
        data = self.port.read(count)
        if not data:
            self.log.debug("RX timeout after %ss", self.port.timeout)
            raise TheSkyXTimeoutError(self.port.timeout)
        return data
