"""Process-wide metric state fed by decoded telegrams."""

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType

from p1_exporter.dsmr.errors import CounterRegression
from p1_exporter.dsmr.models import Reading, ReadingKind

logger = logging.getLogger(__name__)

GAUGE = "gauge"
COUNTER = "counter"

# Tariff 1 is the night/weekend ("dal") tariff, tariff 2 the day ("normaal") tariff
TARIFF_LABELS = {1: "low", 2: "high"}

# Relative tolerance when comparing counter values
COUNTER_TOLERANCE = 1e-9

LabelSet = tuple[tuple[str, str], ...]
MetricKey = tuple[str, LabelSet]


@dataclass(frozen=True)
class MetricDef:
    """Exported metric for one reading kind."""

    name: str
    type: str
    documentation: str
    scale: float = 1.0  # factor from the meter's unit to the exported unit


METRICS: dict[ReadingKind, MetricDef] = {
    ReadingKind.POWER_CONSUMED: MetricDef(
        "p1_power_consumed_watts", GAUGE, "Power consumed", scale=1000.0
    ),
    ReadingKind.POWER_PRODUCED: MetricDef(
        "p1_power_produced_watts", GAUGE, "Power produced", scale=1000.0
    ),
    ReadingKind.ENERGY_CONSUMED_TOTAL: MetricDef(
        "p1_power_consumed_watts_total", COUNTER, "Total consumed power", scale=1000.0
    ),
    ReadingKind.ENERGY_PRODUCED_TOTAL: MetricDef(
        "p1_power_produced_watts_total", COUNTER, "Total produced power", scale=1000.0
    ),
    ReadingKind.ACTIVE_TARIFF: MetricDef("p1_active_tariff", GAUGE, "Active tariff"),
    ReadingKind.GAS_CONSUMED_TOTAL: MetricDef(
        "p1_gas_consumed_cubic_meters_total", COUNTER, "Total consumed natural gas"
    ),
}


def tariff_label(tariff: int) -> str:
    return TARIFF_LABELS.get(tariff, str(tariff))


@dataclass(frozen=True)
class MetricValue:
    name: str
    labels: LabelSet
    type: str
    value: float
    documentation: str = ""


@dataclass(frozen=True)
class IngestStats:
    """Health counters for the ingestion pipeline."""

    frames_applied: int = 0
    frames_dropped: Mapping[str, int] = field(default_factory=dict)
    line_errors: int = 0
    counter_regressions: int = 0


@dataclass(frozen=True)
class Snapshot:
    """Immutable point-in-time view of the metric state."""

    values: Mapping[MetricKey, MetricValue] = field(
        default_factory=lambda: MappingProxyType({})
    )
    stats: IngestStats = field(default_factory=IngestStats)
    updated_at: datetime | None = None
    telegram_timestamp: datetime | None = None

    def get(self, name: str, **labels: str) -> float | None:
        """Return the value of ``name`` with exactly ``labels``, or None if absent."""
        item = self.values.get((name, tuple(sorted(labels.items()))))
        return item.value if item is not None else None

    def current_tariff(self) -> str | None:
        """Label of the tariff the meter reports as active."""
        index = self.get(METRICS[ReadingKind.ACTIVE_TARIFF].name)
        if index is None:
            return None
        return tariff_label(int(index))


class MetricAggregator:
    """Owns the metric state and applies decoded frames to it.

    Each call to :meth:`apply` builds the next state on the side and publishes
    it as a new :class:`Snapshot` under the lock, so readers see all readings
    of a frame or none of them. The lock is only held for the swap, never
    while a reader renders a snapshot.
    """

    def __init__(self, tolerance: float = COUNTER_TOLERANCE) -> None:
        self._tolerance = tolerance
        self._lock = threading.Lock()
        self._snapshot = Snapshot()

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def apply(
        self,
        readings: Iterable[Reading],
        telegram_timestamp: datetime | None = None,
        line_errors: int = 0,
    ) -> list[CounterRegression]:
        """Apply all readings of one frame as a single update.

        Gauges are overwritten. Counters only move forward; a reading below the
        stored value is rejected, logged and returned as a CounterRegression.
        ``line_errors`` is the number of lines of the frame that failed to decode.
        """
        regressions: list[CounterRegression] = []
        with self._lock:
            current = self._snapshot
            values = dict(current.values)
            for reading in readings:
                regression = self._apply_one(values, reading)
                if regression is not None:
                    logger.warning("Counter regression: %s", regression)
                    regressions.append(regression)

            stats = current.stats
            self._snapshot = Snapshot(
                values=MappingProxyType(values),
                stats=replace(
                    stats,
                    frames_applied=stats.frames_applied + 1,
                    line_errors=stats.line_errors + line_errors,
                    counter_regressions=stats.counter_regressions + len(regressions),
                ),
                updated_at=datetime.now(timezone.utc),
                telegram_timestamp=telegram_timestamp or current.telegram_timestamp,
            )
        return regressions

    def record_dropped(self, reason: str) -> None:
        """Count a frame that never reached :meth:`apply`."""
        with self._lock:
            current = self._snapshot
            dropped = dict(current.stats.frames_dropped)
            dropped[reason] = dropped.get(reason, 0) + 1
            self._snapshot = replace(
                current, stats=replace(current.stats, frames_dropped=MappingProxyType(dropped))
            )

    def _apply_one(
        self, values: dict[MetricKey, MetricValue], reading: Reading
    ) -> CounterRegression | None:
        metric = METRICS.get(reading.kind)
        if metric is None:
            return None
        labels: LabelSet = ()
        if reading.tariff is not None:
            labels = (("tariff", tariff_label(reading.tariff)),)
        key = (metric.name, labels)
        value = reading.value * metric.scale

        previous = values.get(key)
        if metric.type == COUNTER and previous is not None:
            slack = self._tolerance * max(1.0, abs(previous.value))
            if value < previous.value - slack:
                return CounterRegression(metric.name, labels, previous.value, value)

        values[key] = MetricValue(
            name=metric.name,
            labels=labels,
            type=metric.type,
            value=value,
            documentation=metric.documentation,
        )
        return None
