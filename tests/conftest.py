"""Shared test fixtures."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from p1_exporter.backends.base import Backend
from p1_exporter.dsmr.crc import validate
from p1_exporter.dsmr.decoder import decode, encode_telegram
from p1_exporter.dsmr.models import RawFrame
from p1_exporter.frontends.prometheus import PrometheusFrontend
from p1_exporter.state import MetricAggregator, Snapshot

# A DSMR 5 telegram as sent by a Landis+Gyr E350, trimmed to the interesting lines
SAMPLE_LINES = [
    "1-3:0.2.8(50)",
    "0-0:1.0.0(230101120000W)",
    "0-0:96.1.1(4530303034303031353934373534343134)",
    "1-0:1.8.1(001581.123*kWh)",
    "1-0:1.8.2(001435.706*kWh)",
    "1-0:2.8.1(000000.000*kWh)",
    "1-0:2.8.2(000012.500*kWh)",
    "0-0:96.14.0(0002)",
    "1-0:1.7.0(00.245*kW)",
    "1-0:2.7.0(00.000*kW)",
    "0-0:96.7.21(00004)",
    "1-0:99.97.0(1)(0-0:96.7.19)(180319093512W)(0000000210*s)",
    "1-0:32.7.0(230.1*V)",
    "0-1:24.1.0(003)",
    "0-1:24.2.1(230101115500W)(01234.567*m3)",
]


class MockBackend(Backend):
    """A backend serving snapshots from an in-memory aggregator."""

    def __init__(self, aggregator: MetricAggregator | None = None) -> None:
        self.aggregator = aggregator or MetricAggregator()

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    def get_snapshot(self) -> Snapshot:
        return self.aggregator.snapshot()


@pytest.fixture
def sample_lines() -> list[str]:
    return list(SAMPLE_LINES)


@pytest.fixture
def telegram(sample_lines) -> bytes:
    return encode_telegram(sample_lines)


@pytest.fixture
def populated_aggregator(telegram):
    aggregator = MetricAggregator()
    result = decode(validate(RawFrame(telegram)))
    aggregator.apply(result.readings, result.timestamp)
    return aggregator


@pytest.fixture
def mock_backend(populated_aggregator):
    return MockBackend(populated_aggregator)


@pytest.fixture
def empty_backend():
    return MockBackend()


@pytest.fixture
def client(mock_backend):
    """FastAPI test client with a Prometheus frontend (no lifespan)."""
    frontend = PrometheusFrontend(mock_backend, {"path": "/metrics"})
    test_app = FastAPI()
    test_app.include_router(frontend.get_router())
    with TestClient(test_app) as c:
        yield c
