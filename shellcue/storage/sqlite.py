# shellcue/storage/sqlite.py
"""
SQLite storage backend.

The database runs in WAL mode with a busy timeout so several shell sessions
can share one file.  Each delta is written in a single BEGIN IMMEDIATE
transaction of additive upserts, so concurrent writers never lose each
other's increments and a crash rolls back the partial write.
"""
import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Optional, Union

from shellcue.constants import BUSY_TIMEOUT_MS, MAX_HISTORY_ROWS, HISTORY_RETENTION_DAYS, SCHEMA_VERSION
from shellcue.exceptions import StorageError
from shellcue.learning.state import (
    ArgumentRow, CountStat, ExecutionRecord, LearnedState, TimedStat, from_epoch, to_epoch,
)
from shellcue.storage.base import StorageBackend
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS commands (
    command TEXT PRIMARY KEY,
    total_usage_count INTEGER NOT NULL DEFAULT 0,
    first_seen REAL NOT NULL,
    last_used REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS arguments (
    command TEXT NOT NULL,
    argument TEXT NOT NULL,
    usage_count INTEGER NOT NULL DEFAULT 0,
    first_seen REAL NOT NULL,
    last_used REAL NOT NULL,
    is_flag INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (command, argument)
);
CREATE TABLE IF NOT EXISTS co_occurrences (
    command TEXT NOT NULL,
    argument TEXT NOT NULL,
    co_occurred_with TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (command, argument, co_occurred_with)
);
CREATE TABLE IF NOT EXISTS parameter_values (
    command TEXT NOT NULL,
    parameter TEXT NOT NULL,
    value TEXT NOT NULL,
    usage_count INTEGER NOT NULL DEFAULT 0,
    first_seen REAL NOT NULL,
    last_used REAL NOT NULL,
    PRIMARY KEY (command, parameter, value)
);
CREATE TABLE IF NOT EXISTS command_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    command TEXT NOT NULL,
    command_line TEXT NOT NULL,
    arguments TEXT NOT NULL,
    success INTEGER NOT NULL,
    timestamp REAL NOT NULL,
    working_directory TEXT
);
CREATE INDEX IF NOT EXISTS idx_command_history_timestamp ON command_history (timestamp);
CREATE TABLE IF NOT EXISTS command_sequences (
    prev_command TEXT NOT NULL,
    next_command TEXT NOT NULL,
    frequency INTEGER NOT NULL DEFAULT 0,
    first_seen REAL NOT NULL,
    last_seen REAL NOT NULL,
    PRIMARY KEY (prev_command, next_command)
);
CREATE TABLE IF NOT EXISTS workflow_transitions (
    from_command TEXT NOT NULL,
    to_command TEXT NOT NULL,
    frequency INTEGER NOT NULL DEFAULT 0,
    total_time_delta REAL NOT NULL DEFAULT 0,
    first_seen REAL NOT NULL,
    last_seen REAL NOT NULL,
    PRIMARY KEY (from_command, to_command)
);
CREATE TABLE IF NOT EXISTS workflows (
    steps TEXT PRIMARY KEY,
    occurrences INTEGER NOT NULL DEFAULT 0,
    total_duration REAL NOT NULL DEFAULT 0,
    first_seen REAL NOT NULL,
    last_seen REAL NOT NULL
);
"""

_TABLES = (
    "commands", "arguments", "co_occurrences", "parameter_values", "command_history",
    "command_sequences", "workflow_transitions", "workflows",
)

_UPSERT_COMMAND = """
INSERT INTO commands (command, total_usage_count, first_seen, last_used) VALUES (?, ?, ?, ?)
ON CONFLICT (command) DO UPDATE SET
    total_usage_count = total_usage_count + excluded.total_usage_count,
    first_seen = MIN(first_seen, excluded.first_seen),
    last_used = MAX(last_used, excluded.last_used)
"""

_UPSERT_ARGUMENT = """
INSERT INTO arguments (command, argument, usage_count, first_seen, last_used, is_flag) VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT (command, argument) DO UPDATE SET
    usage_count = usage_count + excluded.usage_count,
    first_seen = MIN(first_seen, excluded.first_seen),
    last_used = MAX(last_used, excluded.last_used)
"""

_UPSERT_CO_OCCURRENCE = """
INSERT INTO co_occurrences (command, argument, co_occurred_with, count) VALUES (?, ?, ?, ?)
ON CONFLICT (command, argument, co_occurred_with) DO UPDATE SET
    count = count + excluded.count
"""

_UPSERT_PARAMETER_VALUE = """
INSERT INTO parameter_values (command, parameter, value, usage_count, first_seen, last_used) VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT (command, parameter, value) DO UPDATE SET
    usage_count = usage_count + excluded.usage_count,
    first_seen = MIN(first_seen, excluded.first_seen),
    last_used = MAX(last_used, excluded.last_used)
"""

_UPSERT_SEQUENCE = """
INSERT INTO command_sequences (prev_command, next_command, frequency, first_seen, last_seen) VALUES (?, ?, ?, ?, ?)
ON CONFLICT (prev_command, next_command) DO UPDATE SET
    frequency = frequency + excluded.frequency,
    first_seen = MIN(first_seen, excluded.first_seen),
    last_seen = MAX(last_seen, excluded.last_seen)
"""

_UPSERT_TRANSITION = """
INSERT INTO workflow_transitions (from_command, to_command, frequency, total_time_delta, first_seen, last_seen)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT (from_command, to_command) DO UPDATE SET
    frequency = frequency + excluded.frequency,
    total_time_delta = total_time_delta + excluded.total_time_delta,
    first_seen = MIN(first_seen, excluded.first_seen),
    last_seen = MAX(last_seen, excluded.last_seen)
"""

_UPSERT_WORKFLOW = """
INSERT INTO workflows (steps, occurrences, total_duration, first_seen, last_seen) VALUES (?, ?, ?, ?, ?)
ON CONFLICT (steps) DO UPDATE SET
    occurrences = occurrences + excluded.occurrences,
    total_duration = total_duration + excluded.total_duration,
    first_seen = MIN(first_seen, excluded.first_seen),
    last_seen = MAX(last_seen, excluded.last_seen)
"""


def _storage_error(action: str, error: sqlite3.Error) -> StorageError:
    message = str(error).lower()
    retryable = isinstance(error, sqlite3.OperationalError) and ("locked" in message or "busy" in message)
    return StorageError(f"SQLite {action} failed: {error}", retryable=retryable)


class SQLiteBackend(StorageBackend):
    """Learned state in a single SQLite database file."""

    def __init__(
        self,
        path: Union[str, Path],
        busy_timeout_ms: int = BUSY_TIMEOUT_MS,
        max_history_rows: int = MAX_HISTORY_ROWS,
        history_retention_days: int = HISTORY_RETENTION_DAYS,
        history_load_limit: Optional[int] = None,
    ):
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self.max_history_rows = max_history_rows
        self.history_retention_days = history_retention_days
        self.history_load_limit = history_load_limit or max_history_rows
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        # Caller holds the lock
        if self._conn is not None:
            return self._conn
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create database directory {self.path.parent}: {e}") from e
        conn = None
        try:
            conn = sqlite3.connect(
                str(self.path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._ensure_schema(conn)
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise _storage_error("open", e) from e
        self._conn = conn
        logger.debug(f"Opened learned-data database at {self.path}")
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            logger.warning(
                f"Database schema version {version} is newer than supported version {SCHEMA_VERSION}"
            )
        conn.executescript(_SCHEMA)
        if version < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")

    def load_all(self) -> LearnedState:
        with self._lock:
            conn = self._connection()
            try:
                return self._read(conn)
            except sqlite3.Error as e:
                raise _storage_error("read", e) from e

    def _read(self, conn: sqlite3.Connection) -> LearnedState:
        state = LearnedState()
        # A read transaction gives a consistent snapshot across tables
        conn.execute("BEGIN")
        try:
            for command, count, first, last in conn.execute(
                "SELECT command, total_usage_count, first_seen, last_used FROM commands"
            ):
                state.commands[command] = CountStat(count, from_epoch(first), from_epoch(last))

            for command, argument, count, first, last, is_flag in conn.execute(
                "SELECT command, argument, usage_count, first_seen, last_used, is_flag FROM arguments"
            ):
                state.arguments[(command, argument)] = ArgumentRow(
                    count, from_epoch(first), from_epoch(last), bool(is_flag)
                )

            for command, argument, other, count in conn.execute(
                "SELECT command, argument, co_occurred_with, count FROM co_occurrences"
            ):
                state.co_occurrences[(command, argument, other)] = count

            for command, parameter, value, count, first, last in conn.execute(
                "SELECT command, parameter, value, usage_count, first_seen, last_used FROM parameter_values"
            ):
                state.parameter_values[(command, parameter, value)] = CountStat(
                    count, from_epoch(first), from_epoch(last)
                )

            rows = conn.execute(
                "SELECT command, command_line, arguments, success, timestamp, working_directory "
                "FROM command_history ORDER BY id DESC LIMIT ?",
                (self.history_load_limit,),
            ).fetchall()
            for command, line, arguments, success, timestamp, cwd in reversed(rows):
                state.history.append(ExecutionRecord(
                    command=command,
                    full_line=line,
                    args=tuple(json.loads(arguments)),
                    success=bool(success),
                    timestamp=from_epoch(timestamp),
                    working_directory=cwd,
                ))

            for prev, nxt, count, first, last in conn.execute(
                "SELECT prev_command, next_command, frequency, first_seen, last_seen FROM command_sequences"
            ):
                state.sequences[(prev, nxt)] = CountStat(count, from_epoch(first), from_epoch(last))

            for src, dst, count, total, first, last in conn.execute(
                "SELECT from_command, to_command, frequency, total_time_delta, first_seen, last_seen "
                "FROM workflow_transitions"
            ):
                state.transitions[(src, dst)] = TimedStat(count, from_epoch(first), from_epoch(last), total)

            for steps, count, total, first, last in conn.execute(
                "SELECT steps, occurrences, total_duration, first_seen, last_seen FROM workflows"
            ):
                state.workflows[tuple(json.loads(steps))] = TimedStat(
                    count, from_epoch(first), from_epoch(last), total
                )
        finally:
            conn.execute("COMMIT")
        return state

    def record_delta(self, delta: LearnedState) -> None:
        if delta.is_empty():
            return
        with self._lock:
            conn = self._connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise _storage_error("write", e) from e
            try:
                self._write(conn, delta)
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise _storage_error("write", e) from e

    def _write(self, conn: sqlite3.Connection, delta: LearnedState) -> None:
        conn.executemany(_UPSERT_COMMAND, [
            (verb, s.count, to_epoch(s.first_seen), to_epoch(s.last_used))
            for verb, s in delta.commands.items()
        ])
        conn.executemany(_UPSERT_ARGUMENT, [
            (verb, arg, s.count, to_epoch(s.first_seen), to_epoch(s.last_used), int(s.is_flag))
            for (verb, arg), s in delta.arguments.items()
        ])
        conn.executemany(_UPSERT_CO_OCCURRENCE, [
            (verb, arg, other, count) for (verb, arg, other), count in delta.co_occurrences.items()
        ])
        conn.executemany(_UPSERT_PARAMETER_VALUE, [
            (verb, flag, value, s.count, to_epoch(s.first_seen), to_epoch(s.last_used))
            for (verb, flag, value), s in delta.parameter_values.items()
        ])
        conn.executemany(_UPSERT_SEQUENCE, [
            (prev, nxt, s.count, to_epoch(s.first_seen), to_epoch(s.last_used))
            for (prev, nxt), s in delta.sequences.items()
        ])
        conn.executemany(_UPSERT_TRANSITION, [
            (src, dst, s.count, s.total_seconds, to_epoch(s.first_seen), to_epoch(s.last_used))
            for (src, dst), s in delta.transitions.items()
        ])
        conn.executemany(_UPSERT_WORKFLOW, [
            (json.dumps(list(steps)), s.count, s.total_seconds, to_epoch(s.first_seen), to_epoch(s.last_used))
            for steps, s in delta.workflows.items()
        ])
        if delta.history:
            conn.executemany(
                "INSERT INTO command_history "
                "(command, command_line, arguments, success, timestamp, working_directory) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (r.command, r.full_line, json.dumps(list(r.args)), int(r.success),
                     to_epoch(r.timestamp), r.working_directory)
                    for r in delta.history
                ],
            )
            self._apply_retention(conn)

    def _apply_retention(self, conn: sqlite3.Connection) -> None:
        cutoff = time.time() - self.history_retention_days * 86400
        conn.execute("DELETE FROM command_history WHERE timestamp < ?", (cutoff,))
        conn.execute(
            "DELETE FROM command_history WHERE id NOT IN "
            "(SELECT id FROM command_history ORDER BY id DESC LIMIT ?)",
            (self.max_history_rows,),
        )

    def flush(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.execute("PRAGMA wal_checkpoint(PASSIVE)")
            except sqlite3.Error as e:
                raise _storage_error("checkpoint", e) from e

    def clear(self) -> None:
        with self._lock:
            conn = self._connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                for table in _TABLES:
                    conn.execute(f"DELETE FROM {table}")
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise _storage_error("clear", e) from e
        logger.info(f"Cleared learned data in {self.path}")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
