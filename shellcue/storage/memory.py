# shellcue/storage/memory.py
"""
In-memory storage backend, for tests and sessions that opt out of persistence.
"""
import threading

from shellcue.learning.state import LearnedState
from shellcue.storage.base import StorageBackend


class InMemoryBackend(StorageBackend):
    """Keeps learned state in a process-local LearnedState.  One instance may be shared by several engines."""

    def __init__(self, max_history_rows: int = 1000):
        self._state = LearnedState()
        self._max_history_rows = max_history_rows
        self._lock = threading.Lock()

    def load_all(self) -> LearnedState:
        with self._lock:
            return self._state.copy()

    def record_delta(self, delta: LearnedState) -> None:
        with self._lock:
            self._state.merge(delta)
            if len(self._state.history) > self._max_history_rows:
                self._state.history = self._state.history[-self._max_history_rows:]

    def clear(self) -> None:
        with self._lock:
            self._state = LearnedState()
