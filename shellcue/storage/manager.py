# shellcue/storage/manager.py
"""
Persistence manager: moves learned increments between memory and a backend.

Learning calls only touch in-memory state.  A background daemon thread
flushes the accumulated delta on a timer (or earlier when enough commands
were recorded), then reloads from the store so that writes made by other
shell sessions eventually become visible.  Storage faults are logged and
retried; they never propagate to the suggestion path.
"""
import json
import threading
import time
from pathlib import Path
from typing import Optional, Union

from shellcue.constants import APP_VERSION, AUTO_SAVE_INTERVAL, FLUSH_AFTER_COMMANDS, MAX_WRITE_RETRIES
from shellcue.exceptions import ConfigurationError, StorageError
from shellcue.learning.graph import UsageGraph
from shellcue.learning.history import CommandHistory
from shellcue.learning.sequences import SequencePredictor
from shellcue.learning.state import LearnedState, utc_now
from shellcue.learning.workflows import WorkflowLearner
from shellcue.storage.base import StorageBackend
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)

EXPORT_FORMAT_VERSION = 1


class PersistenceManager:
    """Owns durability of the usage graph, history, sequence and workflow models."""

    def __init__(
        self,
        backend: StorageBackend,
        graph: UsageGraph,
        history: CommandHistory,
        sequences: SequencePredictor,
        workflows: WorkflowLearner,
        auto_save_interval: float = AUTO_SAVE_INTERVAL,
        flush_after_commands: int = FLUSH_AFTER_COMMANDS,
        max_retries: int = MAX_WRITE_RETRIES,
        retry_delay: float = 0.05,
    ):
        if backend is None:
            raise ConfigurationError("PersistenceManager requires a storage backend")
        self.backend = backend
        self._components = (graph, history, sequences, workflows)
        self._graph = graph
        self._history = history
        self._sequences = sequences
        self._workflows = workflows
        self.auto_save_interval = auto_save_interval
        self.flush_after_commands = flush_after_commands
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        # Serializes flushes; never taken by the suggestion path
        self._flush_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._recorded_since_flush = 0
        self.failed_flushes = 0
        self.last_flush: Optional[float] = None

    # Loading

    def load(self) -> bool:
        """Initial load of all learned state, history included."""
        state = self._read_store()
        if state is None:
            return False
        self._apply(state)
        self._history.load(state.history)
        logger.info(
            f"Loaded learned data: {len(state.commands)} commands, "
            f"{len(state.arguments)} arguments, {len(state.history)} history records"
        )
        return True

    def refresh(self) -> bool:
        """Reload counts from the store, keeping unflushed increments."""
        state = self._read_store()
        if state is None:
            return False
        self._apply(state)
        return True

    def _read_store(self) -> Optional[LearnedState]:
        try:
            return self.backend.load_all()
        except StorageError as e:
            logger.error(f"Could not read learned data, continuing with in-memory state: {e}")
            return None

    def _apply(self, state: LearnedState) -> None:
        self._graph.load_state(state)
        self._sequences.load_state(state)
        self._workflows.load_state(state)

    # Flushing

    def collect_delta(self) -> LearnedState:
        delta = LearnedState()
        for component in self._components:
            delta.merge(component.collect_delta())
        return delta

    def flush(self) -> bool:
        """
        Write pending increments to the backend.

        Returns:
            True when nothing is pending afterwards, False if the write was deferred
        """
        with self._flush_lock:
            parts = [(component, component.collect_delta()) for component in self._components]
            delta = LearnedState()
            for _, part in parts:
                delta.merge(part)
            if delta.is_empty():
                return True

            for attempt in range(1, self.max_retries + 1):
                try:
                    self.backend.record_delta(delta)
                    break
                except StorageError as e:
                    if not e.retryable or attempt == self.max_retries:
                        self.failed_flushes += 1
                        logger.warning(f"Flush failed after {attempt} attempt(s), deferring: {e}")
                        return False
                    logger.debug(f"Store busy, retrying flush (attempt {attempt}): {e}")
                    time.sleep(self.retry_delay * (2 ** (attempt - 1)))

            for component, part in parts:
                component.mark_persisted(part)
            self._recorded_since_flush = 0
            self.last_flush = time.time()
            logger.debug(
                f"Flushed {len(delta.commands)} command(s), {len(delta.history)} history record(s)"
            )

        self.refresh()
        return True

    def notify_recorded(self) -> None:
        """Called after each learned command; wakes the flusher when enough piled up."""
        self._recorded_since_flush += 1
        if self._recorded_since_flush >= self.flush_after_commands:
            self._wake.set()

    # Background thread

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="shellcue-flusher", daemon=True)
        self._thread.start()
        logger.debug(f"Background flusher started (interval {self.auto_save_interval}s)")

    def _run(self) -> None:
        while not self._stop.is_set():
            self._wake.wait(self.auto_save_interval)
            self._wake.clear()
            if self._stop.is_set():
                break
            try:
                self.flush()
            except Exception as e:
                # Keep the flusher alive whatever happens
                logger.exception(f"Unexpected error in background flush: {e}")

    def stop(self, flush: bool = True, timeout: float = 5.0) -> None:
        """Stop the flusher and optionally write what is pending."""
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        if flush:
            self.flush()
            try:
                self.backend.flush()
            except StorageError as e:
                logger.warning(f"Final checkpoint failed: {e}")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # Management operations

    def export_data(self, path: Union[str, Path]) -> Path:
        """Write all learned data to a JSON file."""
        path = Path(path)
        self.flush()
        try:
            state = self.backend.load_all()
        except StorageError as e:
            logger.warning(f"Exporting in-memory state, store unreadable: {e}")
            state = self._graph.to_state()
            state.history = self._history.get_recent()[::-1]
        state.merge(self.collect_delta())

        document = {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_by": f"shellcue {APP_VERSION}",
            "exported_at": utc_now().isoformat(),
            "data": state.to_dict(),
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        logger.info(f"Exported learned data to {path}")
        return path

    def import_data(self, path: Union[str, Path], merge: bool = True) -> LearnedState:
        """
        Load learned data from a JSON export.

        Args:
            path: The export file
            merge: Add to existing data (True) or replace it (False)

        Returns:
            The imported state

        Raises:
            StorageError: When the file cannot be read or parsed
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
            state = LearnedState.from_dict(document.get("data", document))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Cannot import {path}: {e}") from e

        if not merge:
            self.clear()
        self.backend.record_delta(state)
        self.refresh()
        self._history.load(self.backend.load_all().history)
        logger.info(f"Imported learned data from {path} ({'merged' if merge else 'replaced'})")
        return state

    def clear(self) -> None:
        """Forget everything, in memory and in the store."""
        with self._flush_lock:
            self._graph.clear()
            self._history.clear()
            self._sequences.clear()
            self._workflows.clear()
            self.backend.clear()
