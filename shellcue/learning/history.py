# shellcue/learning/history.py
"""
Bounded in-memory command history.
"""
import threading
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from shellcue.learning.state import ExecutionRecord, LearnedState, utc_now
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class HistoryStatistics:
    """Aggregates derived from the history window."""
    total_commands: int = 0
    max_size: int = 0
    unique_commands: int = 0
    successful_commands: int = 0
    failed_commands: int = 0
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None
    most_common_command: Optional[str] = None
    most_common_command_count: int = 0

    @property
    def success_rate(self) -> float:
        if self.total_commands == 0:
            return 0.0
        return self.successful_commands / self.total_commands


class CommandHistory:
    """Ring buffer of the most recent execution records."""

    def __init__(self, max_size: int = 100):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._entries = deque(maxlen=max_size)
        self._pending: List[ExecutionRecord] = []
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def add_record(self, record: ExecutionRecord) -> None:
        with self._lock:
            self._entries.append(record)
            self._pending.append(record)

    def add(
        self,
        command: str,
        full_line: str,
        args: Sequence[str],
        success: bool,
        working_directory: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> ExecutionRecord:
        """
        Append an execution record.

        Args:
            command: The verb that was executed
            full_line: The complete command line
            args: The command arguments
            success: Whether the command succeeded
            working_directory: Directory the command ran in
            timestamp: When it ran (defaults to now)

        Returns:
            The stored record
        """
        record = ExecutionRecord(
            command=command,
            full_line=full_line or command,
            args=tuple(args or ()),
            success=success,
            timestamp=timestamp or utc_now(),
            working_directory=working_directory,
        )
        self.add_record(record)
        return record

    def get_recent(self, count: Optional[int] = None) -> List[ExecutionRecord]:
        """Most recent records, newest first."""
        with self._lock:
            entries = list(self._entries)
        entries.reverse()
        return entries if count is None else entries[:max(0, count)]

    def get_for_command(self, command: str, count: Optional[int] = None) -> List[ExecutionRecord]:
        matches = [record for record in self.get_recent() if record.command == command]
        return matches if count is None else matches[:max(0, count)]

    def get_most_recent(self) -> Optional[ExecutionRecord]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._pending.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_statistics(self) -> HistoryStatistics:
        entries = self.get_recent()
        stats = HistoryStatistics(total_commands=len(entries), max_size=self._max_size)
        if not entries:
            return stats

        counts = Counter(record.command for record in entries)
        stats.unique_commands = len(counts)
        stats.successful_commands = sum(1 for record in entries if record.success)
        stats.failed_commands = stats.total_commands - stats.successful_commands
        stats.oldest_entry = min(record.timestamp for record in entries)
        stats.newest_entry = max(record.timestamp for record in entries)
        stats.most_common_command, stats.most_common_command_count = counts.most_common(1)[0]
        return stats

    # Persistence hooks

    def collect_delta(self) -> LearnedState:
        with self._lock:
            return LearnedState(history=list(self._pending))

    def mark_persisted(self, delta: LearnedState) -> None:
        persisted = set(delta.history)
        with self._lock:
            self._pending = [record for record in self._pending if record not in persisted]

    def load(self, records: Iterable[ExecutionRecord]) -> None:
        """Seed the window with stored records in stored order, keeping unflushed ones last."""
        with self._lock:
            pending = list(self._pending)
            pending_set = set(pending)
            self._entries.clear()
            for record in records:
                if record not in pending_set:
                    self._entries.append(record)
            self._entries.extend(pending)
        logger.debug(f"History loaded with {len(self._entries)} records")
