# shellcue/learning/state.py
"""
Plain records shared by the learning components and the storage layer.

A LearnedState is used both for a full snapshot of the store and for the
increments (delta) a session has recorded but not yet committed.  Counts in a
delta are additive; timestamps merge by min (first seen) and max (last used).
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Tuple


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch(value: datetime) -> float:
    return value.timestamp()


def from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass
class CountStat:
    """Occurrence count with first/last seen timestamps."""
    count: int
    first_seen: datetime
    last_used: datetime

    def merge(self, other: "CountStat") -> None:
        self.count += other.count
        self.first_seen = min(self.first_seen, other.first_seen)
        self.last_used = max(self.last_used, other.last_used)

    def copy(self) -> "CountStat":
        return CountStat(self.count, self.first_seen, self.last_used)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "first_seen": self.first_seen.isoformat(),
            "last_used": self.last_used.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CountStat":
        return cls(
            count=int(data["count"]),
            first_seen=datetime.fromisoformat(data["first_seen"]),
            last_used=datetime.fromisoformat(data["last_used"]),
        )


@dataclass
class ArgumentRow(CountStat):
    """CountStat for a command argument, remembering whether it is a flag."""
    is_flag: bool = False

    def copy(self) -> "ArgumentRow":
        return ArgumentRow(self.count, self.first_seen, self.last_used, self.is_flag)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["is_flag"] = self.is_flag
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArgumentRow":
        base = CountStat.from_dict(data)
        return cls(base.count, base.first_seen, base.last_used, bool(data.get("is_flag", False)))


@dataclass
class TimedStat(CountStat):
    """CountStat that also accumulates a duration in seconds."""
    total_seconds: float = 0.0

    def merge(self, other: "TimedStat") -> None:
        super().merge(other)
        self.total_seconds += other.total_seconds

    def copy(self) -> "TimedStat":
        return TimedStat(self.count, self.first_seen, self.last_used, self.total_seconds)

    @property
    def average_seconds(self) -> float:
        return self.total_seconds / self.count if self.count > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["total_seconds"] = self.total_seconds
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimedStat":
        base = CountStat.from_dict(data)
        return cls(base.count, base.first_seen, base.last_used, float(data.get("total_seconds", 0.0)))


@dataclass(frozen=True)
class ExecutionRecord:
    """An executed command line.  Never mutated once recorded."""
    command: str
    full_line: str
    args: Tuple[str, ...]
    success: bool
    timestamp: datetime
    working_directory: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "full_line": self.full_line,
            "args": list(self.args),
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            "working_directory": self.working_directory,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionRecord":
        return cls(
            command=data["command"],
            full_line=data.get("full_line", data["command"]),
            args=tuple(data.get("args", ())),
            success=bool(data.get("success", True)),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            working_directory=data.get("working_directory"),
        )


def _merge_table(target: Dict, source: Dict) -> None:
    for key, stat in source.items():
        existing = target.get(key)
        if existing is None:
            target[key] = stat.copy()
        else:
            existing.merge(stat)


def _subtract_table(target: Dict, source: Dict) -> None:
    for key, stat in source.items():
        existing = target.get(key)
        if existing is None:
            continue
        existing.count -= stat.count
        if isinstance(existing, TimedStat):
            existing.total_seconds -= stat.total_seconds
        if existing.count <= 0:
            del target[key]


def _pack_key(key) -> str:
    return "\x1f".join(key) if isinstance(key, tuple) else key


def _unpack_key(key: str, width: int):
    if width == 1:
        return key
    return tuple(key.split("\x1f"))


@dataclass
class LearnedState:
    """
    Everything shellcue learns, in table form.

    Keys:
        commands: verb
        arguments: (verb, argument)
        co_occurrences: (verb, argument, other_argument) -> count
        parameter_values: (verb, flag, value)
        sequences: (previous_key, next_key)
        transitions: (from_key, to_key)
        workflows: tuple of step keys
    """
    commands: Dict[str, CountStat] = field(default_factory=dict)
    arguments: Dict[Tuple[str, str], ArgumentRow] = field(default_factory=dict)
    co_occurrences: Dict[Tuple[str, str, str], int] = field(default_factory=dict)
    parameter_values: Dict[Tuple[str, str, str], CountStat] = field(default_factory=dict)
    history: List[ExecutionRecord] = field(default_factory=list)
    sequences: Dict[Tuple[str, str], CountStat] = field(default_factory=dict)
    transitions: Dict[Tuple[str, str], TimedStat] = field(default_factory=dict)
    workflows: Dict[Tuple[str, ...], TimedStat] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (
            self.commands or self.arguments or self.co_occurrences or self.parameter_values
            or self.history or self.sequences or self.transitions or self.workflows
        )

    def merge(self, other: "LearnedState") -> None:
        """Add another state's counts into this one."""
        _merge_table(self.commands, other.commands)
        _merge_table(self.arguments, other.arguments)
        _merge_table(self.parameter_values, other.parameter_values)
        _merge_table(self.sequences, other.sequences)
        _merge_table(self.transitions, other.transitions)
        _merge_table(self.workflows, other.workflows)
        for key, count in other.co_occurrences.items():
            self.co_occurrences[key] = self.co_occurrences.get(key, 0) + count
        self.history.extend(other.history)

    def subtract(self, other: "LearnedState") -> None:
        """Remove counts that were acknowledged as persisted."""
        _subtract_table(self.commands, other.commands)
        _subtract_table(self.arguments, other.arguments)
        _subtract_table(self.parameter_values, other.parameter_values)
        _subtract_table(self.sequences, other.sequences)
        _subtract_table(self.transitions, other.transitions)
        _subtract_table(self.workflows, other.workflows)
        for key, count in other.co_occurrences.items():
            remaining = self.co_occurrences.get(key, 0) - count
            if remaining > 0:
                self.co_occurrences[key] = remaining
            else:
                self.co_occurrences.pop(key, None)
        persisted = set(other.history)
        self.history = [record for record in self.history if record not in persisted]

    def copy(self) -> "LearnedState":
        snapshot = LearnedState()
        snapshot.merge(self)
        return snapshot

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON export layout."""
        return {
            "commands": {k: v.to_dict() for k, v in self.commands.items()},
            "arguments": {_pack_key(k): v.to_dict() for k, v in self.arguments.items()},
            "co_occurrences": {_pack_key(k): v for k, v in self.co_occurrences.items()},
            "parameter_values": {_pack_key(k): v.to_dict() for k, v in self.parameter_values.items()},
            "history": [record.to_dict() for record in self.history],
            "sequences": {_pack_key(k): v.to_dict() for k, v in self.sequences.items()},
            "transitions": {_pack_key(k): v.to_dict() for k, v in self.transitions.items()},
            "workflows": {_pack_key(k): v.to_dict() for k, v in self.workflows.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnedState":
        return cls(
            commands={k: CountStat.from_dict(v) for k, v in data.get("commands", {}).items()},
            arguments={
                _unpack_key(k, 2): ArgumentRow.from_dict(v) for k, v in data.get("arguments", {}).items()
            },
            co_occurrences={
                _unpack_key(k, 3): int(v) for k, v in data.get("co_occurrences", {}).items()
            },
            parameter_values={
                _unpack_key(k, 3): CountStat.from_dict(v) for k, v in data.get("parameter_values", {}).items()
            },
            history=[ExecutionRecord.from_dict(item) for item in data.get("history", [])],
            sequences={
                _unpack_key(k, 2): CountStat.from_dict(v) for k, v in data.get("sequences", {}).items()
            },
            transitions={
                _unpack_key(k, 2): TimedStat.from_dict(v) for k, v in data.get("transitions", {}).items()
            },
            workflows={
                tuple(k.split("\x1f")): TimedStat.from_dict(v) for k, v in data.get("workflows", {}).items()
            },
        )
