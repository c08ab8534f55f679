from .concat import ByteSource, ConcatReader
from .lookahead import LookaheadConstants, LookaheadReader

__all__ = [
    "ByteSource",
    "ConcatReader",
    "LookaheadConstants",
    "LookaheadReader",
]
