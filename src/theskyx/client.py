from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from coords import Degrees

from .device import TheSkyXDevice, theskyx_url
from .models import TheSkyXState
from .protocol import TheSkyXConstants, TheSkyXResponseReader, rotate_script, state_script


class TheSkyXTransport(Protocol):
    def write(self, payload: bytes) -> None:
        raise NotImplementedError

    def read(self, size: int = 1) -> bytes:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class TheSkyXClient:
    """Script client for TheSkyX's TCP server.

    One exchange at a time: each call writes a script and decodes the reply
    before returning. Protocol errors raised by TheSkyX leave the connection
    usable.

    Usage:
        with TheSkyXClient.connect("localhost", 3040) as tsx:
            state = tsx.get_state()
            state = tsx.rotate(Degrees(state.rotator_angle + 0.5))
    """

    def __init__(self, device: TheSkyXTransport, logger: Optional[logging.Logger] = None) -> None:
        self.device = device
        self.log = logger or logging.getLogger("theskyx.client")
        self._responses = TheSkyXResponseReader(device, logger=self.log.getChild("response"))

    @classmethod
    def connect(
        cls,
        host: str = TheSkyXConstants.DEFAULT_HOST,
        port: int = TheSkyXConstants.DEFAULT_PORT,
        timeout_s: Optional[float] = None,
    ) -> "TheSkyXClient":
        return cls(TheSkyXDevice(theskyx_url(host, port), timeout_s=timeout_s))

    def __enter__(self) -> "TheSkyXClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.device.close()

    def get_state(self) -> TheSkyXState:
        return TheSkyXState.from_json(self._exchange(state_script()))

    def rotate(self, angle: Degrees) -> TheSkyXState:
        self.log.debug("rotate angle=%s", float(angle))
        return TheSkyXState.from_json(self._exchange(rotate_script(angle)))

    def _exchange(self, script: str) -> Any:
        self.device.write(script.encode(TheSkyXConstants.ENCODING))
        return self._responses.read_response()
