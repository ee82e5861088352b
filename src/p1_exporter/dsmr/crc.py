"""CRC16 validation of P1 telegrams."""

from p1_exporter.dsmr.errors import ChecksumMismatch
from p1_exporter.dsmr.models import RawFrame


def crc16(data: bytes) -> int:
    """CRC-16/ARC (reflected polynomial 0xA001, initial value 0)."""
    crc = 0
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc


def format_crc(data: bytes) -> str:
    """Return the checksum of ``data`` as the 4 uppercase hex digits used in trailers."""
    return f"{crc16(data):04X}"


def validate(frame: RawFrame) -> bytes:
    """Check the frame trailer and return the body (``/`` through ``!``).

    Raises:
        ChecksumMismatch: the computed CRC differs from the trailer.
    """
    body = frame.body
    actual = format_crc(body)
    if actual != frame.checksum.upper():
        raise ChecksumMismatch(frame.checksum, actual)
    return body
