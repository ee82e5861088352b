from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from p1_exporter.dsmr.errors import ParseError

# Length of "!XXXX\r\n"
TRAILER_LENGTH = 7


@dataclass(frozen=True)
class RawFrame:
    """One complete telegram as it came off the wire: ``/`` .. ``!XXXX\\r\\n``."""

    data: bytes

    @property
    def body(self) -> bytes:
        """Bytes covered by the checksum, from ``/`` up to and including ``!``."""
        return self.data[: -TRAILER_LENGTH + 1]

    @property
    def checksum(self) -> str:
        """The 4 hex digits of the trailer."""
        return self.data[-TRAILER_LENGTH + 1 : -2].decode("ascii", errors="replace")


@dataclass(frozen=True)
class ObisValue:
    """One ``(...)`` group of an OBIS line."""

    raw: str
    number: float | None = None
    unit: str | None = None


@dataclass(frozen=True)
class ObisLine:
    code: str
    values: tuple[ObisValue, ...]
    line_number: int = 0
    offset: int = 0  # byte offset of the line within the frame


class ReadingKind(Enum):
    POWER_CONSUMED = "power_consumed"
    POWER_PRODUCED = "power_produced"
    ENERGY_CONSUMED_TOTAL = "energy_consumed_total"
    ENERGY_PRODUCED_TOTAL = "energy_produced_total"
    ACTIVE_TARIFF = "active_tariff"
    GAS_CONSUMED_TOTAL = "gas_consumed_total"


@dataclass(frozen=True)
class Reading:
    """A semantic measurement decoded from a telegram."""

    kind: ReadingKind
    value: float
    unit: str  # unit as sent by the meter (kW, kWh, m3 or "" for the tariff index)
    timestamp: datetime | None = None
    tariff: int | None = None  # 1 or 2 for per-tariff energy totals


@dataclass
class DecodeResult:
    """Everything recovered from one validated telegram."""

    header: str = ""
    timestamp: datetime | None = None
    lines: list[ObisLine] = field(default_factory=list)
    readings: list[Reading] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
