from .client import TheSkyXClient, TheSkyXTransport
from .device import TheSkyXDevice, theskyx_url
from .models import TheSkyXAltAz, TheSkyXState
from .protocol import (
    TheSkyXConstants,
    TheSkyXDecodeError,
    TheSkyXError,
    TheSkyXIncompleteWriteError,
    TheSkyXProtocolError,
    TheSkyXResponseReader,
    TheSkyXTimeoutError,
    TheSkyXTransportError,
)

__all__ = [
    "TheSkyXAltAz",
    "TheSkyXClient",
    "TheSkyXConstants",
    "TheSkyXDecodeError",
    "TheSkyXDevice",
    "TheSkyXError",
    "TheSkyXIncompleteWriteError",
    "TheSkyXProtocolError",
    "TheSkyXResponseReader",
    "TheSkyXState",
    "TheSkyXTimeoutError",
    "TheSkyXTransport",
    "TheSkyXTransportError",
    "theskyx_url",
]
