# shellcue/learning/graph.py
"""
Usage graph: which arguments, flags and parameter values follow which commands.

Every recorded command line updates per-command argument statistics
(occurrence count, recency, co-occurrence) in memory.  The increments since
the last successful flush are tracked separately as a delta so that several
shell sessions can merge their counts additively into one store.
"""
import math
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from shellcue.constants import (
    DEFAULT_MAX_COMMANDS, DEFAULT_MAX_ARGUMENTS_PER_COMMAND, DEFAULT_DECAY_DAYS,
    NAVIGATION_VERBS, MULTI_PART_COMMANDS,
)
from shellcue.learning.parser import ParsedCommand, TokenKind, is_flag_syntax
from shellcue.learning.state import ArgumentRow, CountStat, LearnedState, utc_now
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)

_SECONDS_PER_DAY = 86400.0


def recency_score(last_used: datetime, now: datetime, decay_days: float = DEFAULT_DECAY_DAYS) -> float:
    """
    Exponential recency decay in [0, 1].

    1.0 for "now", about 0.37 after decay_days, about 0.14 after twice that.
    """
    age_days = (now - last_used).total_seconds() / _SECONDS_PER_DAY
    if age_days <= 0:
        return 1.0
    return max(0.0, min(1.0, math.exp(-age_days / decay_days)))


@dataclass
class ArgumentStats:
    """Usage statistics of one argument token for one command."""
    argument: str
    occurrence_count: int
    first_seen: datetime
    last_used: datetime
    is_flag: bool = False
    co_occurrences: Dict[str, int] = field(default_factory=dict)

    def recency_score(self, now: Optional[datetime] = None, decay_days: float = DEFAULT_DECAY_DAYS) -> float:
        return recency_score(self.last_used, now or utc_now(), decay_days)

    def top_co_occurrence(self) -> Optional[Tuple[str, int]]:
        """The argument most often seen together with this one."""
        if not self.co_occurrences:
            return None
        return min(self.co_occurrences.items(), key=lambda item: (-item[1], item[0]))

    def snapshot(self) -> "ArgumentStats":
        return ArgumentStats(
            argument=self.argument,
            occurrence_count=self.occurrence_count,
            first_seen=self.first_seen,
            last_used=self.last_used,
            is_flag=self.is_flag,
            co_occurrences=dict(self.co_occurrences),
        )

    def _touch(self, count: int, first_seen: datetime, last_used: datetime) -> None:
        self.occurrence_count += count
        self.first_seen = min(self.first_seen, first_seen)
        # last_used only moves forward
        self.last_used = max(self.last_used, last_used)


@dataclass
class CommandKnowledge:
    """Everything learned about one command (or multi-word command path)."""
    command: str
    total_usage_count: int
    first_seen: datetime
    last_used: datetime
    arguments: Dict[str, ArgumentStats] = field(default_factory=dict)
    parameter_values: Dict[str, Dict[str, ArgumentStats]] = field(default_factory=dict)

    def snapshot(self) -> "CommandKnowledge":
        return CommandKnowledge(
            command=self.command,
            total_usage_count=self.total_usage_count,
            first_seen=self.first_seen,
            last_used=self.last_used,
            arguments={k: v.snapshot() for k, v in self.arguments.items()},
            parameter_values={
                flag: {k: v.snapshot() for k, v in values.items()}
                for flag, values in self.parameter_values.items()
            },
        )


@dataclass
class GraphStatistics:
    """Aggregates over the usage graph."""
    total_commands: int = 0
    total_arguments: int = 0
    total_usage_count: int = 0
    max_commands: int = 0
    max_arguments_per_command: int = 0
    most_used_command: Optional[str] = None
    most_used_command_count: int = 0


def _ranked(items: Iterable[ArgumentStats]) -> List[Tuple[str, ArgumentStats]]:
    ordered = sorted(items, key=lambda s: (-s.occurrence_count, -s.last_used.timestamp(), s.argument))
    return [(stats.argument, stats.snapshot()) for stats in ordered]


class UsageGraph:
    """Thread-safe store of per-command argument statistics."""

    def __init__(
        self,
        max_commands: int = DEFAULT_MAX_COMMANDS,
        max_arguments_per_command: int = DEFAULT_MAX_ARGUMENTS_PER_COMMAND,
        decay_days: float = DEFAULT_DECAY_DAYS,
        navigation_verbs: Optional[Iterable[str]] = None,
        multi_part_commands: Optional[Iterable[str]] = None,
    ):
        self.max_commands = max_commands
        self.max_arguments_per_command = max_arguments_per_command
        self.decay_days = decay_days
        self.navigation_verbs = frozenset(navigation_verbs if navigation_verbs is not None else NAVIGATION_VERBS)
        self.multi_part_commands = frozenset(
            multi_part_commands if multi_part_commands is not None else MULTI_PART_COMMANDS
        )
        self._commands: Dict[str, CommandKnowledge] = {}
        self._delta = LearnedState()
        self._lock = threading.RLock()

    # Recording

    def record_usage(
        self,
        verb: str,
        args: Sequence[str],
        working_directory: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """
        Record one execution of a command with its raw arguments.

        Args:
            verb: The command name
            args: The command arguments
            working_directory: Used to normalize navigation targets
            timestamp: When the command ran (defaults to now)
        """
        if not verb or not verb.strip():
            return
        args = [arg for arg in (args or ()) if arg and arg.strip()]
        if verb in self.navigation_verbs and working_directory:
            args = [normalize_path(arg, working_directory) for arg in args]
        with self._lock:
            self._record(verb, args, [], timestamp or utc_now())

    def record_parsed_usage(
        self,
        parsed: ParsedCommand,
        working_directory: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """
        Record a parsed command line.

        Parameter values are kept per (command, flag) rather than as plain
        arguments.  Multi-part commands also learn under their 'verb sub'
        path, e.g. 'git commit -m x' teaches both 'git' and 'git commit'.
        """
        if parsed.is_empty:
            return
        now = timestamp or utc_now()
        verb = parsed.verb

        args = [t.text for t in parsed.tokens if t.kind != TokenKind.PARAMETER_VALUE and t.text.strip()]
        values = [(flag, value) for flag, value in parsed.parameter_values() if value.strip()]
        if verb in self.navigation_verbs and working_directory:
            args = [normalize_path(arg, working_directory) for arg in args]

        subcommand = None
        if verb in self.multi_part_commands:
            subcommand = next((t.text for t in parsed.tokens if t.kind == TokenKind.POSITIONAL), None)

        with self._lock:
            self._record(verb, args, values, now)
            if subcommand and subcommand in args:
                path_args = list(args)
                path_args.remove(subcommand)
                self._record(f"{verb} {subcommand}", path_args, values, now)

    def _record(self, verb: str, args: List[str], values: List[Tuple[str, str]], now: datetime) -> None:
        # Caller holds the lock
        knowledge = self._commands.get(verb)
        if knowledge is None:
            knowledge = CommandKnowledge(command=verb, total_usage_count=0, first_seen=now, last_used=now)
            self._commands[verb] = knowledge
        knowledge.total_usage_count += 1
        knowledge.last_used = max(knowledge.last_used, now)
        self._add_delta(self._delta.commands, verb, CountStat(1, now, now))

        unique_args = list(dict.fromkeys(args))
        for arg in unique_args:
            stats = knowledge.arguments.get(arg)
            if stats is None:
                stats = ArgumentStats(arg, 0, now, now, is_flag=is_flag_syntax(arg))
                knowledge.arguments[arg] = stats
            stats._touch(1, now, now)
            self._add_delta(self._delta.arguments, (verb, arg), ArgumentRow(1, now, now, stats.is_flag))

            for other in unique_args:
                if other == arg:
                    continue
                stats.co_occurrences[other] = stats.co_occurrences.get(other, 0) + 1
                key = (verb, arg, other)
                self._delta.co_occurrences[key] = self._delta.co_occurrences.get(key, 0) + 1

        for flag, value in values:
            flag_values = knowledge.parameter_values.setdefault(flag, {})
            stats = flag_values.get(value)
            if stats is None:
                stats = ArgumentStats(value, 0, now, now, is_flag=False)
                flag_values[value] = stats
            stats._touch(1, now, now)
            self._add_delta(self._delta.parameter_values, (verb, flag, value), CountStat(1, now, now))

        self._enforce_argument_limits(knowledge)
        self._enforce_command_limit()

    @staticmethod
    def _add_delta(table: Dict, key, stat: CountStat) -> None:
        existing = table.get(key)
        if existing is None:
            table[key] = stat
        else:
            existing.merge(stat)

    def _enforce_argument_limits(self, knowledge: CommandKnowledge) -> None:
        limit = self.max_arguments_per_command
        _evict_lru(knowledge.arguments, limit)
        for values in knowledge.parameter_values.values():
            _evict_lru(values, limit)

    def _enforce_command_limit(self) -> None:
        excess = len(self._commands) - self.max_commands
        if excess <= 0:
            return
        oldest = sorted(self._commands.values(), key=lambda k: (k.last_used, k.total_usage_count))[:excess]
        for knowledge in oldest:
            del self._commands[knowledge.command]
        logger.debug(f"Evicted {excess} least recently used command(s)")

    # Queries

    def has_command(self, verb: str) -> bool:
        with self._lock:
            return verb in self._commands

    def get_command(self, verb: str) -> Optional[CommandKnowledge]:
        with self._lock:
            knowledge = self._commands.get(verb)
            return knowledge.snapshot() if knowledge else None

    def get_tracked_commands(self) -> List[str]:
        with self._lock:
            return list(self._commands)

    def get_argument_stats(self, verb: str) -> List[Tuple[str, ArgumentStats]]:
        """Argument statistics for a command, most used first."""
        with self._lock:
            knowledge = self._commands.get(verb)
            if knowledge is None:
                return []
            return _ranked(knowledge.arguments.values())

    def get_parameter_values(
        self, verb: str, flag: str, max_results: Optional[int] = None
    ) -> List[Tuple[str, ArgumentStats]]:
        """Values learned after a flag of a command, most used first."""
        with self._lock:
            knowledge = self._commands.get(verb)
            if knowledge is None or flag not in knowledge.parameter_values:
                return []
            ranked = _ranked(knowledge.parameter_values[flag].values())
        return ranked if max_results is None else ranked[:max(0, max_results)]

    def get_statistics(self) -> GraphStatistics:
        with self._lock:
            stats = GraphStatistics(
                total_commands=len(self._commands),
                max_commands=self.max_commands,
                max_arguments_per_command=self.max_arguments_per_command,
            )
            if not self._commands:
                return stats
            stats.total_arguments = sum(len(k.arguments) for k in self._commands.values())
            stats.total_usage_count = sum(k.total_usage_count for k in self._commands.values())
            most_used = min(self._commands.values(), key=lambda k: (-k.total_usage_count, k.command))
            stats.most_used_command = most_used.command
            stats.most_used_command_count = most_used.total_usage_count
            return stats

    def clear(self) -> None:
        """Forget everything, including unflushed increments."""
        with self._lock:
            self._commands.clear()
            self._delta = LearnedState()

    # Persistence hooks

    def collect_delta(self) -> LearnedState:
        """Increments recorded since the last acknowledged flush."""
        with self._lock:
            return self._delta.copy()

    def mark_persisted(self, delta: LearnedState) -> None:
        with self._lock:
            self._delta.subtract(delta)

    def has_pending_changes(self) -> bool:
        with self._lock:
            return not self._delta.is_empty()

    def load_state(self, state: LearnedState) -> None:
        """
        Replace in-memory counts with stored counts plus unflushed increments.
        """
        combined = LearnedState(
            commands={k: v.copy() for k, v in state.commands.items()},
            arguments={k: v.copy() for k, v in state.arguments.items()},
            co_occurrences=dict(state.co_occurrences),
            parameter_values={k: v.copy() for k, v in state.parameter_values.items()},
        )
        with self._lock:
            combined.merge(self._delta)
            self._commands = _build_commands(combined)
            for knowledge in self._commands.values():
                self._enforce_argument_limits(knowledge)
            self._enforce_command_limit()
        logger.debug(f"Usage graph loaded with {len(self._commands)} commands")

    def to_state(self) -> LearnedState:
        """Full in-memory contents as a LearnedState."""
        state = LearnedState()
        with self._lock:
            for verb, knowledge in self._commands.items():
                state.commands[verb] = CountStat(knowledge.total_usage_count, knowledge.first_seen, knowledge.last_used)
                for arg, stats in knowledge.arguments.items():
                    state.arguments[(verb, arg)] = ArgumentRow(
                        stats.occurrence_count, stats.first_seen, stats.last_used, stats.is_flag
                    )
                    for other, count in stats.co_occurrences.items():
                        state.co_occurrences[(verb, arg, other)] = count
                for flag, values in knowledge.parameter_values.items():
                    for value, stats in values.items():
                        state.parameter_values[(verb, flag, value)] = CountStat(
                            stats.occurrence_count, stats.first_seen, stats.last_used
                        )
        return state


def _evict_lru(table: Dict[str, ArgumentStats], limit: int) -> None:
    excess = len(table) - limit
    if excess <= 0:
        return
    oldest = sorted(table.values(), key=lambda s: (s.last_used, s.occurrence_count))[:excess]
    for stats in oldest:
        del table[stats.argument]


def _build_commands(state: LearnedState) -> Dict[str, CommandKnowledge]:
    commands: Dict[str, CommandKnowledge] = {}

    def knowledge_for(verb: str, when: datetime) -> CommandKnowledge:
        knowledge = commands.get(verb)
        if knowledge is None:
            knowledge = CommandKnowledge(command=verb, total_usage_count=0, first_seen=when, last_used=when)
            commands[verb] = knowledge
        return knowledge

    for verb, row in state.commands.items():
        knowledge = knowledge_for(verb, row.first_seen)
        knowledge.total_usage_count = row.count
        knowledge.first_seen = row.first_seen
        knowledge.last_used = row.last_used

    for (verb, arg), row in state.arguments.items():
        knowledge = knowledge_for(verb, row.first_seen)
        knowledge.arguments[arg] = ArgumentStats(arg, row.count, row.first_seen, row.last_used, row.is_flag)

    for (verb, arg, other), count in state.co_occurrences.items():
        knowledge = commands.get(verb)
        if knowledge is None or arg not in knowledge.arguments:
            continue
        knowledge.arguments[arg].co_occurrences[other] = count

    for (verb, flag, value), row in state.parameter_values.items():
        knowledge = knowledge_for(verb, row.first_seen)
        knowledge.parameter_values.setdefault(flag, {})[value] = ArgumentStats(
            value, row.count, row.first_seen, row.last_used, is_flag=False
        )

    return commands


def normalize_path(path: str, working_directory: str) -> str:
    """
    Resolve a navigation target to an absolute path.

    Flags, '-' (previous directory) and unresolvable input are returned as-is.
    """
    if not path or path == "-" or is_flag_syntax(path):
        return path
    try:
        expanded = os.path.expanduser(path)
        if not os.path.isabs(expanded):
            expanded = os.path.join(working_directory, expanded)
        return os.path.normpath(expanded)
    except (TypeError, ValueError):
        return path
