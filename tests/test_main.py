"""Tests for the application wiring and CLI."""

import sys
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from p1_exporter.config import load_config
from p1_exporter.main import build_parser, create_app, run


def test_parser_defaults():
    args = build_parser().parse_args(["--p1-address", "10.0.0.5:23"])
    assert args.p1_address == "10.0.0.5:23"
    assert args.address is None
    assert args.config is None
    assert args.log_level == "INFO"


def test_app_lifespan_starts_and_stops_backend(mock_backend):
    config = load_config(p1_address="10.0.0.5:23")

    with patch("p1_exporter.main.create_backend", return_value=mock_backend) as create:
        with patch.object(mock_backend, "stop", wraps=mock_backend.stop) as stop:
            with TestClient(create_app(config)) as client:
                resp = client.get("/metrics")
                assert resp.status_code == 200
                assert "# TYPE p1_power_consumed_watts gauge" in resp.text
            stop.assert_called_once()

    create.assert_called_once()
    (backend_config,) = create.call_args.args
    assert backend_config.type == "p1"
    assert backend_config.p1.host == "10.0.0.5"
    assert backend_config.p1.reconnect_delay == 5.0


def test_run_requires_a_p1_reader(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["p1-exporter"])
    with pytest.raises(SystemExit):
        run()


def test_run_rejects_bad_address(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["p1-exporter", "--p1-address", "nohost"])
    with pytest.raises(SystemExit):
        run()


def test_run_starts_uvicorn(monkeypatch):
    monkeypatch.setattr(
        sys, "argv", ["p1-exporter", "-p", "10.0.0.5:23", "-a", "0.0.0.0:9100"]
    )
    with patch("p1_exporter.main.uvicorn.run") as uvicorn_run:
        run()

    uvicorn_run.assert_called_once()
    assert uvicorn_run.call_args.kwargs == {"host": "0.0.0.0", "port": 9100}
