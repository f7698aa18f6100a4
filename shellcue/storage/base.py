# shellcue/storage/base.py
"""
Storage backend contract.
"""
from abc import ABC, abstractmethod

from shellcue.learning.state import LearnedState


class StorageBackend(ABC):
    """
    Durable store for learned state.

    Implementations must apply record_delta additively and atomically: counts
    are added to what is stored, timestamps merge by min/max, and a failed call
    leaves the store unchanged.  Failures raise StorageError.
    """

    @abstractmethod
    def load_all(self) -> LearnedState:
        """Read the complete stored state."""

    @abstractmethod
    def record_delta(self, delta: LearnedState) -> None:
        """Add a session's increments to the store."""

    def flush(self) -> None:
        """Make committed writes durable.  No-op for stores that commit synchronously."""

    @abstractmethod
    def clear(self) -> None:
        """Delete everything stored."""

    def close(self) -> None:
        """Release resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
