from abc import ABC, abstractmethod

from p1_exporter.state import Snapshot


class Backend(ABC):
    """Abstract base class for meter data backends."""

    @abstractmethod
    async def start(self) -> None:
        """Start the backend (e.g., begin reading telegrams)."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop the backend and clean up resources."""

    @abstractmethod
    def get_snapshot(self) -> Snapshot:
        """Return the latest metric snapshot."""
