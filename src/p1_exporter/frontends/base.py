"""Abstract base class for the HTTP surfaces that publish the metric snapshot."""

from abc import ABC, abstractmethod

from fastapi import APIRouter

from p1_exporter.backends.base import Backend


class Frontend(ABC):
    """Publishes the backend's latest snapshot through FastAPI routes."""

    def __init__(self, backend: Backend) -> None:
        self._backend = backend

    @abstractmethod
    def get_router(self) -> APIRouter:
        """Return the routes to mount on the application."""

    @abstractmethod
    async def start(self) -> None:
        """Begin publishing."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop publishing; routes keep answering but carry no meter data."""
