from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from readers import ByteSource, ConcatReader, LookaheadReader

from .json_stream import JsonStreamError, TheSkyXJsonDecoder


class TheSkyXConstants:
    DEFAULT_HOST = "localhost"
    DEFAULT_PORT = 3040
    URL_TEMPLATE = "socket://{host}:{port}"
    ENCODING = "utf-8"
    TERMINATOR = "|"
    OBJECT_START = "{"
    ERROR_LEAD = " "
    ERROR_MARKER = "Error = "
    ERROR_END = "."
    DIGIT_MIN = "0"
    DIGIT_MAX = "9"
    ERROR_BASE = 10
    ROTATOR_BUSY_MESSAGE = "A Rotator command is already in progress."
    SCRIPT_HEADER = "/* Java Script */"
    PACKET_START = "/* Socket Start Packet */"
    PACKET_END = "/* Socket End Packet */"


class TheSkyXError(Exception):
    pass


class TheSkyXTransportError(TheSkyXError):
    pass


class TheSkyXIncompleteWriteError(TheSkyXTransportError):
    def __init__(self, written: int, expected: int) -> None:
        super().__init__(f"incomplete write: {written} of {expected} bytes")
        self.written = written
        self.expected = expected


class TheSkyXTimeoutError(TheSkyXTransportError):
    def __init__(self, timeout_s: Optional[float]) -> None:
        super().__init__(f"no data within {timeout_s}s")
        self.timeout_s = timeout_s


class TheSkyXDecodeError(TheSkyXError):
    pass


class TheSkyXProtocolError(TheSkyXError):
    """Error reported by TheSkyX itself.

    `error_number` is None when the reply ended before its error code.
    """

    def __init__(self, message: str, error_number: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_number = error_number

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"TheSkyXProtocolError(message={self.message!r}, error_number={self.error_number!r})"

    def is_rotator_busy(self) -> bool:
        return self.message.endswith(TheSkyXConstants.ROTATOR_BUSY_MESSAGE)


STATE_SCRIPT_BODY = """var ret = {}
sky6StarChart.DocumentProperty(1);
ret.Longitude = sky6StarChart.DocPropOut;

sky6StarChart.DocumentProperty(0);
ret.Latitude = sky6StarChart.DocPropOut;

ret.RotatorAngle = ccdsoftCamera.rotatorPositionAngle();

sky6RASCOMTele.GetAzAlt();
ret.PointingAt = {
    Alt: sky6RASCOMTele.dAlt,
    Az: sky6RASCOMTele.dAz
}

JSON.stringify(ret)"""


def build_script(body: str) -> str:
    return (
        f"\n{TheSkyXConstants.SCRIPT_HEADER}\n"
        f"{TheSkyXConstants.PACKET_START}\n"
        f"{body}\n"
        f"{TheSkyXConstants.PACKET_END}\n"
    )


def state_script() -> str:
    return build_script(STATE_SCRIPT_BODY)


def rotate_script(angle: float) -> str:
    return build_script(f"ccdsoftCamera.rotatorGotoPositionAngle({float(angle)!r});\n{STATE_SCRIPT_BODY}")


class ErrorCodeScan(Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    END_OF_DATA = "end_of_data"


def _is_digit(char: str) -> bool:
    return TheSkyXConstants.DIGIT_MIN <= char <= TheSkyXConstants.DIGIT_MAX


def scan_error_code(reader: LookaheadReader) -> tuple[ErrorCodeScan, Optional[int], int]:
    """Look for `" Error = <digits>."` at the reader's position without consuming.

    Returns the scan result, the parsed code on a match, and the width of
    the matched candidate.
    """
    offset = len(TheSkyXConstants.ERROR_LEAD)
    for expected in TheSkyXConstants.ERROR_MARKER:
        char = reader.peek(offset)
        if char is None:
            return ErrorCodeScan.END_OF_DATA, None, offset
        if char != expected:
            return ErrorCodeScan.MISMATCH, None, offset
        offset += 1
    digits_start = offset
    while True:
        char = reader.peek(offset)
        if char is None:
            return ErrorCodeScan.END_OF_DATA, None, offset
        if not _is_digit(char):
            break
        offset += 1
    if offset == digits_start or char != TheSkyXConstants.ERROR_END:
        return ErrorCodeScan.MISMATCH, None, offset
    digits = "".join(reader.peek(i) for i in range(digits_start, offset))
    return ErrorCodeScan.MATCH, int(digits, TheSkyXConstants.ERROR_BASE), offset + 1


def consume_error(reader: LookaheadReader) -> TheSkyXProtocolError:
    message: list[str] = []
    while True:
        char = reader.peek(0)
        if char is None:
            return TheSkyXProtocolError("".join(message))
        if char == TheSkyXConstants.ERROR_LEAD:
            result, code, width = scan_error_code(reader)
            if result is ErrorCodeScan.END_OF_DATA:
                return TheSkyXProtocolError("".join(message))
            if result is ErrorCodeScan.MATCH:
                for _ in range(width):
                    reader.read()
                return TheSkyXProtocolError("".join(message), code)
        message.append(reader.read())


def consume_tail(reader: LookaheadReader) -> bool:
    """Discard up to and including the packet terminator.

    Returns False if the data ended first.
    """
    while True:
        char = reader.read()
        if char is None:
            return False
        if char == TheSkyXConstants.TERMINATOR:
            return True


class TheSkyXResponseReader:
    """Decodes TheSkyX replies from one connection, one per call.

    Bytes read past a reply's terminator are kept in front of the source
    for the next call.
    """

    def __init__(self, source: ByteSource, logger: Optional[logging.Logger] = None) -> None:
        self._source: ByteSource = source
        self.log = logger or logging.getLogger("theskyx.response")

    @property
    def source(self) -> ByteSource:
        return self._source

    def read_response(self) -> Any:
        head = LookaheadReader(self._source)
        first = head.peek(0)
        if first is None:
            raise TheSkyXTransportError("end of data before response")
        if first != TheSkyXConstants.OBJECT_START:
            error = consume_error(head)
            self._finish(head, self._source)
            self.log.debug("rx error number=%s message=%r", error.error_number, error.message)
            raise error
        stream = ConcatReader(head.buffered(), self._source)
        decoder = TheSkyXJsonDecoder(stream)
        try:
            value = decoder.decode()
        except JsonStreamError as exc:
            self._finish_after(decoder, stream)
            raise TheSkyXDecodeError(f"bad response payload: {exc}") from exc
        self._finish_after(decoder, stream)
        self.log.debug("rx value=%r", value)
        return value

    def _finish_after(self, decoder: TheSkyXJsonDecoder, stream: ConcatReader) -> None:
        rest = ConcatReader(decoder.buffered(), stream)
        self._finish(LookaheadReader(rest), rest)

    def _finish(self, reader: LookaheadReader, stream: ByteSource) -> None:
        if not consume_tail(reader):
            self.log.debug("rx ended before terminator %r", TheSkyXConstants.TERMINATOR)
        self._source = ConcatReader(reader.buffered(), stream)
