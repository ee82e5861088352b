"""DSMR P1 telegram framing, validation and decoding."""

from p1_exporter.dsmr.crc import crc16, validate
from p1_exporter.dsmr.decoder import MBUS_TABLE, OBIS_TABLE, decode, encode_telegram
from p1_exporter.dsmr.errors import (
    ChecksumMismatch,
    CounterRegression,
    DsmrError,
    FramingError,
    ParseError,
)
from p1_exporter.dsmr.models import DecodeResult, ObisLine, RawFrame, Reading, ReadingKind
from p1_exporter.dsmr.reader import FrameReader, read_frames

__all__ = [
    "MBUS_TABLE",
    "OBIS_TABLE",
    "ChecksumMismatch",
    "CounterRegression",
    "DecodeResult",
    "DsmrError",
    "FrameReader",
    "FramingError",
    "ObisLine",
    "ParseError",
    "RawFrame",
    "Reading",
    "ReadingKind",
    "crc16",
    "decode",
    "encode_telegram",
    "read_frames",
    "validate",
]
