# shellcue/learning/sequences.py
"""
N-gram next-command prediction over command keys.
"""
import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from shellcue.constants import DEFAULT_DECAY_DAYS
from shellcue.learning.graph import recency_score
from shellcue.learning.state import CountStat, LearnedState, utc_now
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)

TRIGRAM_SEPARATOR = " && "


class SequencePredictor:
    """
    Learns which command key tends to follow the previous one (bigrams) or
    the previous two (trigrams) and ranks likely next commands.
    """

    def __init__(self, ngram_order: int = 2, min_frequency: int = 3, decay_days: float = DEFAULT_DECAY_DAYS):
        if ngram_order not in (2, 3):
            raise ValueError("ngram_order must be 2 (bigrams) or 3 (trigrams)")
        if min_frequency < 1:
            raise ValueError("min_frequency must be at least 1")
        self.ngram_order = ngram_order
        self.min_frequency = min_frequency
        self.decay_days = decay_days
        self._table: Dict[str, Dict[str, CountStat]] = {}
        self._delta = LearnedState()
        self._recent = deque(maxlen=ngram_order - 1)
        self._lock = threading.RLock()

    def _window_key(self, keys: Sequence[str]) -> Optional[str]:
        width = self.ngram_order - 1
        if len(keys) < width:
            return None
        return TRIGRAM_SEPARATOR.join(keys[-width:])

    def observe(self, key: str, timestamp: Optional[datetime] = None) -> None:
        """Feed the next executed command key."""
        if not key:
            return
        with self._lock:
            previous = self._window_key(list(self._recent))
            if previous is not None:
                self._count(previous, key, timestamp or utc_now())
            self._recent.append(key)

    def record_sequence(self, keys: Sequence[str], timestamp: Optional[datetime] = None) -> None:
        """Record every n-gram of an ordered (oldest first) sequence of keys."""
        keys = [key for key in keys if key]
        now = timestamp or utc_now()
        width = self.ngram_order - 1
        with self._lock:
            for i in range(width, len(keys)):
                self._count(TRIGRAM_SEPARATOR.join(keys[i - width:i]), keys[i], now)

    def _count(self, previous: str, following: str, now: datetime) -> None:
        stat = CountStat(1, now, now)
        nexts = self._table.setdefault(previous, {})
        if following in nexts:
            nexts[following].merge(stat)
        else:
            nexts[following] = stat.copy()

        existing = self._delta.sequences.get((previous, following))
        if existing is None:
            self._delta.sequences[(previous, following)] = stat
        else:
            existing.merge(stat)

    def predict_next(
        self, recent_keys: Sequence[str], max_results: Optional[int] = None, now: Optional[datetime] = None
    ) -> List[Tuple[str, float]]:
        """
        Rank likely next command keys.

        Args:
            recent_keys: Recent command keys, oldest first
            max_results: Optional cap on the number of predictions
            now: Reference time for recency

        Returns:
            (key, score) pairs, best first; score = 0.7 * probability + 0.3 * recency
        """
        previous = self._window_key(list(recent_keys or ()))
        if previous is None:
            return []
        now = now or utc_now()
        with self._lock:
            nexts = {k: v.copy() for k, v in self._table.get(previous, {}).items()}
        total = sum(stat.count for stat in nexts.values())
        if total == 0:
            return []

        predictions = []
        for following, stat in nexts.items():
            if stat.count < self.min_frequency:
                continue
            probability = stat.count / total
            score = 0.7 * probability + 0.3 * recency_score(stat.last_used, now, self.decay_days)
            predictions.append((following, score))

        predictions.sort(key=lambda item: (-item[1], item[0]))
        return predictions if max_results is None else predictions[:max(0, max_results)]

    def get_transitions(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {prev: {k: v.count for k, v in nexts.items()} for prev, nexts in self._table.items()}

    def clear(self) -> None:
        with self._lock:
            self._table.clear()
            self._recent.clear()
            self._delta = LearnedState()

    # Persistence hooks

    def collect_delta(self) -> LearnedState:
        with self._lock:
            return self._delta.copy()

    def mark_persisted(self, delta: LearnedState) -> None:
        with self._lock:
            self._delta.subtract(delta)

    def load_state(self, state: LearnedState) -> None:
        combined = LearnedState(sequences={k: v.copy() for k, v in state.sequences.items()})
        with self._lock:
            combined.merge(self._delta)
            table: Dict[str, Dict[str, CountStat]] = {}
            for (previous, following), stat in combined.sequences.items():
                table.setdefault(previous, {})[following] = stat
            self._table = table
        logger.debug(f"Sequence model loaded with {len(combined.sequences)} transitions")
