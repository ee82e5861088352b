"""Decode validated P1 telegrams into OBIS lines and readings.

A telegram body looks like::

    /ISK5\\2M550T-1012

    1-3:0.2.8(50)
    0-0:1.0.0(230101120000W)
    1-0:1.8.1(001581.123*kWh)
    ...
    0-1:24.2.1(230101115500W)(01234.567*m3)
    !

Each data line is an OBIS code followed by one or more ``(...)`` groups.
Only the codes in :data:`OBIS_TABLE`, plus the M-Bus codes in
:data:`MBUS_TABLE` for the channel that carries each device type, become
readings. Every other code is kept as a parsed line and otherwise ignored,
so firmware that adds fields does not break decoding.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from p1_exporter.dsmr.crc import format_crc
from p1_exporter.dsmr.errors import ParseError
from p1_exporter.dsmr.models import DecodeResult, ObisLine, ObisValue, Reading, ReadingKind


_LINE_RE = re.compile(r"(?P<code>\d+-\d+:\d+\.\d+\.\d+)(?P<groups>(?:\([^()]*\))+)")
_GROUP_RE = re.compile(r"\(([^()]*)\)")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_TIMESTAMP_RE = re.compile(r"\d{12}[SW]")

# Dutch local time: S = summer (CEST), W = winter (CET)
_DST_OFFSETS = {
    "S": timezone(timedelta(hours=2)),
    "W": timezone(timedelta(hours=1)),
}

TIMESTAMP_CODE = "0-0:1.0.0"


@dataclass(frozen=True)
class ObisSpec:
    """How to turn one OBIS line into a reading."""

    kind: ReadingKind
    unit: str | None  # expected unit suffix; None when the meter sends a bare number
    tariff: int | None = None
    value_index: int = 0
    timestamp_index: int | None = None


OBIS_TABLE: dict[str, ObisSpec] = {
    "1-0:1.7.0": ObisSpec(ReadingKind.POWER_CONSUMED, "kW"),
    "1-0:2.7.0": ObisSpec(ReadingKind.POWER_PRODUCED, "kW"),
    "1-0:1.8.1": ObisSpec(ReadingKind.ENERGY_CONSUMED_TOTAL, "kWh", tariff=1),
    "1-0:1.8.2": ObisSpec(ReadingKind.ENERGY_CONSUMED_TOTAL, "kWh", tariff=2),
    "1-0:2.8.1": ObisSpec(ReadingKind.ENERGY_PRODUCED_TOTAL, "kWh", tariff=1),
    "1-0:2.8.2": ObisSpec(ReadingKind.ENERGY_PRODUCED_TOTAL, "kWh", tariff=2),
    "0-0:96.14.0": ObisSpec(ReadingKind.ACTIVE_TARIFF, None),
}

# M-Bus devices hang off channels 0-1 .. 0-4. A 0-n:24.1.0 line announces the
# device type on channel n; the specs for that type then apply to channel n.
MBUS_DEVICE_TYPE_CODE = "24.1.0"
GAS_DEVICE_TYPE = 3

MBUS_TABLE: dict[int, dict[str, ObisSpec]] = {
    GAS_DEVICE_TYPE: {
        "24.2.1": ObisSpec(
            ReadingKind.GAS_CONSUMED_TOTAL, "m3", value_index=1, timestamp_index=0
        ),
    },
}

# Older meters omit the device type lines; their gas meter sits on channel 1
DEFAULT_MBUS_DEVICES = {1: GAS_DEVICE_TYPE}

_MBUS_CODE_RE = re.compile(r"0-(?P<channel>\d+):(?P<suffix>\d+\.\d+\.\d+)")


def parse_timestamp(raw: str) -> datetime:
    """Parse a ``YYMMDDhhmmssX`` telegram timestamp into an aware datetime."""
    if not _TIMESTAMP_RE.fullmatch(raw):
        raise ValueError(f"invalid timestamp {raw!r}")
    naive = datetime.strptime(raw[:12], "%y%m%d%H%M%S")
    return naive.replace(tzinfo=_DST_OFFSETS[raw[12]])


def _parse_value(raw: str) -> ObisValue:
    number_text, _, unit = raw.partition("*")
    number = float(number_text) if _NUMBER_RE.fullmatch(number_text) else None
    return ObisValue(raw=raw, number=number, unit=unit or None)


def parse_lines(body: bytes) -> tuple[str, list[ObisLine], list[ParseError]]:
    """Split a telegram body into its header and OBIS lines.

    Returns the header (without the leading ``/``), the parsed lines in frame
    order, and a ParseError for every line that is not ``code(...)``.
    """
    header = ""
    lines: list[ObisLine] = []
    errors: list[ParseError] = []

    offset = 0
    for number, raw_line in enumerate(body.splitlines(keepends=True), start=1):
        line_offset = offset
        offset += len(raw_line)
        text = raw_line.decode("ascii", errors="replace").strip()

        if not text or text == "!":
            continue
        if number == 1 and text.startswith("/"):
            header = text[1:]
            continue

        match = _LINE_RE.fullmatch(text)
        if match is None:
            errors.append(ParseError(number, line_offset, text, "not an OBIS line"))
            continue
        values = tuple(_parse_value(g) for g in _GROUP_RE.findall(match.group("groups")))
        lines.append(ObisLine(match.group("code"), values, number, line_offset))

    return header, lines, errors


def _to_reading(line: ObisLine, spec: ObisSpec, telegram_ts: datetime | None) -> Reading:
    """Apply ``spec`` to ``line``; raises ParseError describing the first problem."""

    def fail(reason: str) -> ParseError:
        text = line.code + "".join(f"({v.raw})" for v in line.values)
        return ParseError(line.line_number, line.offset, text, reason)

    if spec.value_index >= len(line.values):
        raise fail(f"expected at least {spec.value_index + 1} value group(s)")
    value = line.values[spec.value_index]
    if value.number is None:
        raise fail(f"malformed number {value.raw!r}")
    if value.unit != spec.unit:
        raise fail(f"unit {value.unit!r} does not match expected {spec.unit!r}")
    if spec.kind is ReadingKind.ACTIVE_TARIFF and not value.number.is_integer():
        raise fail(f"tariff index {value.raw!r} is not an integer")

    timestamp = telegram_ts
    if spec.timestamp_index is not None:
        try:
            timestamp = parse_timestamp(line.values[spec.timestamp_index].raw)
        except ValueError as exc:
            raise fail(str(exc)) from exc

    return Reading(
        kind=spec.kind,
        value=value.number,
        unit=value.unit or "",
        timestamp=timestamp,
        tariff=spec.tariff,
    )


def mbus_devices(lines: Iterable[ObisLine]) -> dict[int, int]:
    """Map M-Bus channel to device type from the ``0-n:24.1.0`` lines.

    Falls back to :data:`DEFAULT_MBUS_DEVICES` when the telegram announces no
    devices at all.
    """
    devices: dict[int, int] = {}
    for line in lines:
        match = _MBUS_CODE_RE.fullmatch(line.code)
        if match is None or match.group("suffix") != MBUS_DEVICE_TYPE_CODE:
            continue
        if line.values and line.values[0].number is not None:
            devices[int(match.group("channel"))] = int(line.values[0].number)
    return devices or dict(DEFAULT_MBUS_DEVICES)


def mbus_table(devices: dict[int, int]) -> dict[str, ObisSpec]:
    """Expand :data:`MBUS_TABLE` into full OBIS codes for the given channels."""
    table: dict[str, ObisSpec] = {}
    for channel, device_type in sorted(devices.items()):
        for suffix, spec in MBUS_TABLE.get(device_type, {}).items():
            table[f"0-{channel}:{suffix}"] = spec
    return table


def decode(body: bytes, table: dict[str, ObisSpec] | None = None) -> DecodeResult:
    """Decode a checksum-validated telegram body.

    Lines that fail to decode are reported in ``errors`` and do not stop the
    remaining lines from being decoded. M-Bus readings are looked up by the
    device type each channel announces, so a gas meter is found on whichever
    channel it was installed; entries in ``table`` take precedence.
    """
    header, lines, errors = parse_lines(body)
    table = {**mbus_table(mbus_devices(lines)), **(OBIS_TABLE if table is None else table)}
    result = DecodeResult(header=header, lines=lines, errors=errors)

    for line in lines:
        if line.code == TIMESTAMP_CODE and line.values:
            try:
                result.timestamp = parse_timestamp(line.values[0].raw)
            except ValueError as exc:
                result.errors.append(
                    ParseError(line.line_number, line.offset, line.code, str(exc))
                )
            break

    for line in lines:
        spec = table.get(line.code)
        if spec is None:
            continue
        try:
            result.readings.append(_to_reading(line, spec, result.timestamp))
        except ParseError as exc:
            result.errors.append(exc)

    result.errors.sort(key=lambda e: e.line_number)
    return result


def encode_telegram(lines: Iterable[str], header: str = "XMX5LGBBFG1012463663") -> bytes:
    """Build a complete telegram, checksum trailer included, from data lines.

    Mostly useful for feeding synthetic telegrams to the reader and decoder.
    """
    text = f"/{header}\r\n\r\n" + "".join(f"{line}\r\n" for line in lines) + "!"
    body = text.encode("ascii")
    return body + format_crc(body).encode("ascii") + b"\r\n"
