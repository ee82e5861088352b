"""Frontend registry: ``frontend.type`` picks the class and its config section."""

from p1_exporter.backends.base import Backend
from p1_exporter.config import FrontendConfig
from p1_exporter.frontends.base import Frontend
from p1_exporter.frontends.prometheus import PrometheusFrontend

_FRONTENDS: dict[str, type[Frontend]] = {
    "prometheus": PrometheusFrontend,
}


def create_frontend(config: FrontendConfig, backend: Backend) -> Frontend:
    """Build the frontend named by ``config.type`` on top of ``backend``."""
    cls = _FRONTENDS.get(config.type)
    if cls is None:
        raise ValueError(
            f"Unknown frontend type: {config.type!r}. Available: {', '.join(_FRONTENDS)}"
        )
    return cls(backend, getattr(config, config.type).model_dump())
