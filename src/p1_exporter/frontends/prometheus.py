"""Prometheus frontend: renders the metric snapshot in the text exposition format."""

import logging
from collections.abc import Callable, Iterator
from typing import Any

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from p1_exporter.backends.base import Backend
from p1_exporter.frontends.base import Frontend
from p1_exporter.state import COUNTER, Snapshot

logger = logging.getLogger(__name__)


class SnapshotCollector(Collector):
    """Builds metric families from a fresh snapshot on every scrape.

    Metrics the meter has not reported yet are left out rather than exported
    as zero.
    """

    def __init__(self, source: Callable[[], Snapshot]) -> None:
        self._source = source

    def describe(self) -> list[Metric]:
        # Families depend on what the meter has sent so far
        return []

    def collect(self) -> Iterator[Metric]:
        snapshot = self._source()

        families: dict[str, Metric] = {}
        for (name, labels), item in snapshot.values.items():
            family = families.get(name)
            if family is None:
                label_names = [key for key, _ in labels]
                if item.type == COUNTER:
                    family = CounterMetricFamily(name, item.documentation, labels=label_names)
                else:
                    family = GaugeMetricFamily(name, item.documentation, labels=label_names)
                families[name] = family
            family.add_metric([value for _, value in labels], item.value)
        yield from families.values()

        stats = snapshot.stats
        frames = CounterMetricFamily(
            "p1_exporter_frames_total", "Telegrams processed, by outcome", labels=["result"]
        )
        frames.add_metric(["applied"], stats.frames_applied)
        for reason, count in sorted(stats.frames_dropped.items()):
            frames.add_metric([reason], count)
        yield frames
        yield CounterMetricFamily(
            "p1_exporter_line_errors_total",
            "Telegram lines that failed to decode",
            value=stats.line_errors,
        )
        yield CounterMetricFamily(
            "p1_exporter_counter_regressions_total",
            "Counter readings rejected because they went backwards",
            value=stats.counter_regressions,
        )


def status(snapshot: Snapshot) -> dict[str, Any]:
    """Build the JSON status document served at ``/``."""
    stats = snapshot.stats
    return {
        "frames_applied": stats.frames_applied,
        "frames_dropped": dict(stats.frames_dropped),
        "line_errors": stats.line_errors,
        "counter_regressions": stats.counter_regressions,
        "updated_at": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
        "telegram_timestamp": (
            snapshot.telegram_timestamp.isoformat() if snapshot.telegram_timestamp else None
        ),
        "current_tariff": snapshot.current_tariff(),
    }


class PrometheusFrontend(Frontend):
    """Serves ``/metrics`` for Prometheus scrapes."""

    def __init__(self, backend: Backend, config: dict) -> None:
        super().__init__(backend)
        self._path: str = config.get("path", "/metrics")
        self._registry = CollectorRegistry()
        self._collector = SnapshotCollector(backend.get_snapshot)
        self._registry.register(self._collector)
        self._publishing = True
        self._router = self._build_router()

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def get_router(self) -> APIRouter:
        return self._router

    async def start(self) -> None:
        if not self._publishing:
            self._registry.register(self._collector)
            self._publishing = True
        logger.info("Serving Prometheus metrics at %s", self._path)

    async def stop(self) -> None:
        # Scrapes during shutdown get an empty exposition instead of stale data
        if self._publishing:
            self._registry.unregister(self._collector)
            self._publishing = False
        logger.info("Stopped serving Prometheus metrics")

    def _build_router(self) -> APIRouter:
        router = APIRouter()
        backend = self._backend
        registry = self._registry

        @router.get(self._path)
        async def metrics():
            """Prometheus text exposition of the latest snapshot."""
            return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

        @router.get("/")
        async def index():
            """Ingestion status."""
            return status(backend.get_snapshot())

        return router
