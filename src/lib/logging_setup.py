from __future__ import annotations

import logging
from typing import Union


class LoggingConstants:
    NAME_WIDTH = 24
    FORMAT_TEMPLATE = "%(asctime)s.%(msecs)03d [%(levelname)-7s] %(name)-{width}s %(message)s"
    DATE_FORMAT = "%H:%M:%S"
    DEFAULT_LEVEL = logging.INFO


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level {level!r}")
    return value


def setup_logging(level: Union[int, str] = LoggingConstants.DEFAULT_LEVEL) -> None:
    format_str = LoggingConstants.FORMAT_TEMPLATE.format(width=LoggingConstants.NAME_WIDTH)
    logging.basicConfig(level=resolve_level(level), format=format_str, datefmt=LoggingConstants.DATE_FORMAT)
