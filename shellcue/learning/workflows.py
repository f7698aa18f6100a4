# shellcue/learning/workflows.py
"""
Workflow learning from command timing.

Two commands executed within max_time_delta of each other are treated as
steps of the same workflow.  The learner keeps per-transition timing
statistics and, when a run of related commands ends, stores the run as a
learned multi-step workflow.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from shellcue.constants import DEFAULT_DECAY_DAYS
from shellcue.learning.graph import recency_score
from shellcue.learning.state import LearnedState, TimedStat, utc_now
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)

# Used when a transition has no timing data yet
DEFAULT_TIMING_SECONDS = 60.0
MAX_TRANSITIONS_PER_COMMAND = 20


@dataclass
class WorkflowSuggestion:
    """A predicted next command with its confidence."""
    command: str
    confidence: float
    source: str = "workflow"
    reason: Optional[str] = None


@dataclass
class Workflow:
    """A learned multi-step workflow."""
    steps: Tuple[str, ...]
    occurrences: int
    total_duration: float
    first_seen: datetime
    last_seen: datetime

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.occurrences if self.occurrences else 0.0


def transition_confidence(stat: TimedStat, now: datetime, decay_days: float = DEFAULT_DECAY_DAYS) -> float:
    """0.7 * frequency saturation (20 uses = full) + 0.3 * recency."""
    base = min(1.0, stat.count / 20.0)
    return 0.7 * base + 0.3 * recency_score(stat.last_used, now, decay_days)


def timing_multiplier(elapsed_seconds: float, average_seconds: float) -> float:
    """Boost when the elapsed time matches the usual gap, dampen when far beyond it."""
    if average_seconds <= 0:
        average_seconds = DEFAULT_TIMING_SECONDS
    ratio = elapsed_seconds / average_seconds
    if ratio < 1.5:
        return 1.5
    if ratio < 5:
        return 1.2
    if ratio < 30:
        return 1.0
    return 0.8


class WorkflowLearner:
    """Learns timed command transitions and multi-step workflows."""

    def __init__(
        self,
        min_frequency: int = 5,
        max_time_delta: timedelta = timedelta(minutes=15),
        min_confidence: float = 0.6,
        max_steps: int = 5,
        min_occurrences: int = 2,
        decay_days: float = DEFAULT_DECAY_DAYS,
    ):
        if min_frequency < 1:
            raise ValueError("min_frequency must be at least 1")
        if max_time_delta.total_seconds() <= 0:
            raise ValueError("max_time_delta must be positive")
        if not 0.0 <= min_confidence <= 1.0:
            raise ValueError("min_confidence must be between 0 and 1")
        if max_steps < 2:
            raise ValueError("max_steps must be at least 2")

        self.min_frequency = min_frequency
        self.max_time_delta = max_time_delta
        self.min_confidence = min_confidence
        self.max_steps = max_steps
        self.min_occurrences = min_occurrences
        self.decay_days = decay_days

        self._transitions: Dict[str, Dict[str, TimedStat]] = {}
        self._workflows: Dict[Tuple[str, ...], TimedStat] = {}
        self._delta = LearnedState()
        self._run: List[str] = []
        self._run_started: Optional[datetime] = None
        self._last_key: Optional[str] = None
        self._last_time: Optional[datetime] = None
        self._lock = threading.RLock()

    def observe(self, key: str, timestamp: Optional[datetime] = None) -> None:
        """Feed the next executed command key with its execution time."""
        if not key:
            return
        now = timestamp or utc_now()
        with self._lock:
            related = (
                self._last_time is not None
                and timedelta(0) <= now - self._last_time <= self.max_time_delta
            )
            if related:
                self.record_transition(self._last_key, key, now - self._last_time, now)
                # Repeating the same command does not add a step
                if self._run[-1:] != [key]:
                    if len(self._run) >= self.max_steps:
                        self._close_run(self._last_time)
                        self._run_started = now
                    self._run.append(key)
            else:
                self._close_run(self._last_time)
                self._run = [key]
                self._run_started = now

            self._last_key = key
            self._last_time = now

    def record_transition(
        self, from_key: str, to_key: str, time_delta: timedelta, timestamp: Optional[datetime] = None
    ) -> None:
        """Record that to_key followed from_key after time_delta."""
        if not from_key or not to_key or from_key == to_key:
            return
        if time_delta > self.max_time_delta:
            return
        now = timestamp or utc_now()
        stat = TimedStat(1, now, now, max(0.0, time_delta.total_seconds()))
        with self._lock:
            transitions = self._transitions.setdefault(from_key, {})
            if to_key in transitions:
                transitions[to_key].merge(stat)
            else:
                transitions[to_key] = stat.copy()
            _add(self._delta.transitions, (from_key, to_key), stat)
            _trim_transitions(transitions)

    def _close_run(self, ended: Optional[datetime]) -> None:
        # Caller holds the lock
        steps = tuple(self._run)
        if len(set(steps)) >= 2 and self._run_started is not None and ended is not None:
            duration = max(0.0, (ended - self._run_started).total_seconds())
            stat = TimedStat(1, self._run_started, ended, duration)
            _add(self._workflows, steps, stat.copy())
            _add(self._delta.workflows, steps, stat)
            logger.debug(f"Learned workflow occurrence: {' > '.join(steps)}")
        self._run = []
        self._run_started = None

    def predict_next(
        self,
        key: str,
        time_since_last: Optional[timedelta] = None,
        max_results: int = 5,
        now: Optional[datetime] = None,
    ) -> List[WorkflowSuggestion]:
        """
        Predict the command that usually follows key.

        Args:
            key: The last executed command key
            time_since_last: Elapsed time since it ran, enables timing weighting
            max_results: Maximum number of suggestions
            now: Reference time for recency

        Returns:
            Suggestions above min_confidence, best first
        """
        if not key:
            return []
        now = now or utc_now()
        with self._lock:
            transitions = {k: v.copy() for k, v in self._transitions.get(key, {}).items()}

        suggestions = []
        for to_key, stat in transitions.items():
            if stat.count < self.min_frequency:
                continue
            confidence = transition_confidence(stat, now, self.decay_days)
            if time_since_last is not None:
                confidence *= timing_multiplier(time_since_last.total_seconds(), stat.average_seconds)
            if confidence < self.min_confidence:
                continue
            suggestions.append(WorkflowSuggestion(
                command=to_key,
                confidence=confidence,
                reason=f"used {stat.count}x after '{key}' (avg {stat.average_seconds:.0f}s apart)",
            ))

        suggestions.sort(key=lambda s: (-s.confidence, s.command))
        return suggestions[:max(0, max_results)]

    def continue_workflow(
        self, recent_keys: Sequence[str], max_results: int = 3, now: Optional[datetime] = None
    ) -> List[WorkflowSuggestion]:
        """
        Propose the next step of a learned workflow whose steps end with recent_keys.

        Args:
            recent_keys: Recent command keys, oldest first
        """
        recent = [key for key in recent_keys if key]
        if not recent:
            return []
        now = now or utc_now()
        with self._lock:
            workflows = [(steps, stat.copy()) for steps, stat in self._workflows.items()]

        best: Dict[str, WorkflowSuggestion] = {}
        for steps, stat in workflows:
            if stat.count < self.min_occurrences:
                continue
            for i in range(1, len(steps)):
                matched = _matched_prefix(steps[:i], recent)
                if matched == 0:
                    continue
                following = steps[i]
                if following == recent[-1]:
                    continue
                quality = matched / i
                frequency = min(1.0, stat.count / 10.0)
                confidence = quality * (0.7 * frequency + 0.3 * recency_score(stat.last_used, now, self.decay_days))
                current = best.get(following)
                if current is None or confidence > current.confidence:
                    best[following] = WorkflowSuggestion(
                        command=following,
                        confidence=confidence,
                        reason=f"step {i + 1} of {' > '.join(steps)} (seen {stat.count}x)",
                    )

        ranked = sorted(best.values(), key=lambda s: (-s.confidence, s.command))
        return ranked[:max(0, max_results)]

    def get_transitions(self) -> Dict[str, Dict[str, TimedStat]]:
        with self._lock:
            return {k: {n: s.copy() for n, s in v.items()} for k, v in self._transitions.items()}

    def get_workflows(self) -> List[Workflow]:
        """Learned workflows, most frequent first."""
        with self._lock:
            items = list(self._workflows.items())
        workflows = [
            Workflow(steps, stat.count, stat.total_seconds, stat.first_seen, stat.last_used)
            for steps, stat in items
        ]
        workflows.sort(key=lambda w: (-w.occurrences, w.steps))
        return workflows

    def clear(self) -> None:
        with self._lock:
            self._transitions.clear()
            self._workflows.clear()
            self._delta = LearnedState()
            self._run = []
            self._run_started = None
            self._last_key = None
            self._last_time = None

    # Persistence hooks

    def collect_delta(self) -> LearnedState:
        with self._lock:
            return self._delta.copy()

    def mark_persisted(self, delta: LearnedState) -> None:
        with self._lock:
            self._delta.subtract(delta)

    def load_state(self, state: LearnedState) -> None:
        combined = LearnedState(
            transitions={k: v.copy() for k, v in state.transitions.items()},
            workflows={k: v.copy() for k, v in state.workflows.items()},
        )
        with self._lock:
            combined.merge(self._delta)
            transitions: Dict[str, Dict[str, TimedStat]] = {}
            for (from_key, to_key), stat in combined.transitions.items():
                transitions.setdefault(from_key, {})[to_key] = stat
            for table in transitions.values():
                _trim_transitions(table)
            self._transitions = transitions
            self._workflows = combined.workflows
        logger.debug(
            f"Workflow model loaded with {len(combined.transitions)} transitions "
            f"and {len(combined.workflows)} workflows"
        )

    @property
    def last_key(self) -> Optional[str]:
        return self._last_key

    @property
    def last_time(self) -> Optional[datetime]:
        return self._last_time


def _add(table: Dict, key, stat: TimedStat) -> None:
    existing = table.get(key)
    if existing is None:
        table[key] = stat
    else:
        existing.merge(stat)


def _trim_transitions(transitions: Dict[str, TimedStat]) -> None:
    if len(transitions) <= MAX_TRANSITIONS_PER_COMMAND:
        return
    keep = sorted(transitions.items(), key=lambda item: (-item[1].count, -item[1].last_used.timestamp()))
    for to_key, _ in keep[MAX_TRANSITIONS_PER_COMMAND:]:
        del transitions[to_key]


def _matched_prefix(prefix: Sequence[str], recent: Sequence[str]) -> int:
    """Length of the longest tail of recent that equals a tail of prefix."""
    longest = min(len(prefix), len(recent))
    for length in range(longest, 0, -1):
        if list(prefix[-length:]) == list(recent[-length:]):
            return length
    return 0
