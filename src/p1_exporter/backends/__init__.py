"""Backend registry: ``backend.type`` picks the class and its config section."""

from p1_exporter.backends.base import Backend
from p1_exporter.backends.p1 import P1Backend
from p1_exporter.config import BackendConfig

_BACKENDS: dict[str, type[Backend]] = {
    "p1": P1Backend,
}


def create_backend(config: BackendConfig) -> Backend:
    """Build the backend named by ``config.type`` from the section of the same name."""
    cls = _BACKENDS.get(config.type)
    if cls is None:
        raise ValueError(
            f"Unknown backend type: {config.type!r}. Available: {', '.join(_BACKENDS)}"
        )
    section = getattr(config, config.type, None)
    if section is None:
        raise ValueError(f"Backend {config.type!r} is selected but not configured")
    return cls(section.model_dump())
