import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


def _substitute_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        env_val = os.environ.get(var_name)
        if env_val is None:
            raise ValueError(f"Environment variable {var_name!r} is not set")
        return env_val

    return re.sub(r"\$\{([^}]+)}", replacer, value)


def _walk_and_substitute(obj: object) -> object:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_substitute(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_substitute(item) for item in obj]
    return obj


def parse_address(value: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``) into its parts."""
    host, sep, port = value.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"address must be HOST:PORT, got {value!r}")
    return host.strip("[]"), int(port)


def _check_port(v: int) -> int:
    if not 0 < v < 65536:
        raise ValueError("port must be between 1 and 65535")
    return v


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 4545

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return _check_port(v)


class PrometheusFrontendConfig(BaseModel):
    path: str = "/metrics"

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("path must start with '/'")
        return v


class FrontendConfig(BaseModel):
    type: str = "prometheus"
    prometheus: PrometheusFrontendConfig = Field(default_factory=PrometheusFrontendConfig)


class P1Config(BaseModel):
    host: str
    port: int = 23
    reconnect_delay: float = 5.0
    read_timeout: float = 10.0  # 0 disables the stall check
    max_frame_size: int = 8192

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        return _check_port(v)

    @field_validator("reconnect_delay")
    @classmethod
    def validate_reconnect_delay(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("reconnect_delay must be positive")
        return v

    @field_validator("read_timeout")
    @classmethod
    def validate_read_timeout(cls, v: float) -> float:
        if v < 0:
            raise ValueError("read_timeout must not be negative")
        return v

    @field_validator("max_frame_size")
    @classmethod
    def validate_max_frame_size(cls, v: int) -> int:
        if v < 64:
            raise ValueError("max_frame_size must be at least 64 bytes")
        return v


class BackendConfig(BaseModel):
    type: str = "p1"
    p1: P1Config | None = None


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    frontend: FrontendConfig = Field(default_factory=FrontendConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)


def load_config(
    path: str | Path | None = None,
    address: str | None = None,
    p1_address: str | None = None,
) -> AppConfig:
    """Load and validate configuration from a YAML file.

    ``address`` and ``p1_address`` (``HOST:PORT``) take precedence over the
    file; without a file they are the whole configuration.
    """
    raw: dict = {}
    if path is not None:
        path = Path(path)
        with path.open() as f:
            raw = yaml.safe_load(f) or {}
        raw = _walk_and_substitute(raw)

    if address is not None:
        host, port = parse_address(address)
        raw["server"] = {**(raw.get("server") or {}), "host": host, "port": port}
    if p1_address is not None:
        host, port = parse_address(p1_address)
        backend = raw.get("backend") or {}
        backend["p1"] = {**(backend.get("p1") or {}), "host": host, "port": port}
        raw["backend"] = backend

    return AppConfig.model_validate(raw)
