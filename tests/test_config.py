"""Tests for configuration loading."""

import textwrap

import pytest

from p1_exporter.config import P1Config, PrometheusFrontendConfig, load_config, parse_address


def test_load_full_config(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
        server:
          host: "0.0.0.0"
          port: 9100
        frontend:
          type: prometheus
          prometheus:
            path: /p1
        backend:
          type: p1
          p1:
            host: "10.0.0.5"
            port: 8088
            reconnect_delay: 2.5
            read_timeout: 0
            max_frame_size: 4096
    """)
    )

    config = load_config(config_file)
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 9100
    assert config.frontend.type == "prometheus"
    assert config.frontend.prometheus.path == "/p1"
    assert config.backend.type == "p1"
    assert config.backend.p1 is not None
    assert config.backend.p1.host == "10.0.0.5"
    assert config.backend.p1.port == 8088
    assert config.backend.p1.reconnect_delay == 2.5
    assert config.backend.p1.read_timeout == 0
    assert config.backend.p1.max_frame_size == 4096


def test_load_minimal_config(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
        backend:
          p1:
            host: "10.0.0.5"
    """)
    )

    config = load_config(config_file)
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 4545
    assert config.frontend.type == "prometheus"
    assert config.frontend.prometheus.path == "/metrics"
    assert config.backend.type == "p1"
    assert config.backend.p1.port == 23
    assert config.backend.p1.reconnect_delay == 5.0
    assert config.backend.p1.max_frame_size == 8192


def test_empty_file(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("")

    config = load_config(config_file)
    assert config.backend.p1 is None


def test_env_var_substitution(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_P1_HOST", "p1-bridge.lan")

    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
        backend:
          p1:
            host: "${TEST_P1_HOST}"
    """)
    )

    config = load_config(config_file)
    assert config.backend.p1.host == "p1-bridge.lan"


def test_env_var_missing_raises(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
        backend:
          p1:
            host: "${NONEXISTENT_VAR_12345}"
    """)
    )

    with pytest.raises(ValueError, match="NONEXISTENT_VAR_12345"):
        load_config(config_file)


def test_invalid_port(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
        server:
          port: 70000
    """)
    )

    with pytest.raises(Exception, match="port must be between 1 and 65535"):
        load_config(config_file)


@pytest.mark.parametrize(
    "field, value, message",
    [
        ("reconnect_delay", 0, "reconnect_delay must be positive"),
        ("read_timeout", -1, "read_timeout must not be negative"),
        ("max_frame_size", 10, "max_frame_size must be at least 64 bytes"),
        ("port", 0, "port must be between 1 and 65535"),
    ],
)
def test_invalid_p1_settings(field, value, message):
    with pytest.raises(ValueError, match=message):
        P1Config(host="10.0.0.5", **{field: value})


def test_invalid_metrics_path():
    with pytest.raises(ValueError, match="path must start with"):
        PrometheusFrontendConfig(path="metrics")


def test_cli_addresses_without_file():
    config = load_config(address="0.0.0.0:9999", p1_address="192.168.1.20:2000")
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 9999
    assert config.backend.p1.host == "192.168.1.20"
    assert config.backend.p1.port == 2000


def test_cli_addresses_override_file(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        textwrap.dedent("""\
        server:
          port: 8000
        backend:
          p1:
            host: "10.0.0.5"
            reconnect_delay: 1.0
    """)
    )

    config = load_config(config_file, p1_address="10.0.0.6:23")
    assert config.server.port == 8000
    assert config.backend.p1.host == "10.0.0.6"
    assert config.backend.p1.reconnect_delay == 1.0


def test_parse_address():
    assert parse_address("127.0.0.1:4545") == ("127.0.0.1", 4545)
    assert parse_address("[::1]:4545") == ("::1", 4545)
    assert parse_address("meter.lan:23") == ("meter.lan", 23)
    with pytest.raises(ValueError, match="HOST:PORT"):
        parse_address("127.0.0.1")
    with pytest.raises(ValueError, match="HOST:PORT"):
        parse_address(":80")
