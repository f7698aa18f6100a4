# shellcue/prediction/directories.py
"""
Directory match engine for smart directory jumps.

Candidates come from the well-known shortcuts (~ and ..), learned navigation
targets (cd, pushd, ...) and a depth-limited walk below the current directory.
Each candidate is scored by how well its final path component matches the
query, weighted by frecency.
"""
import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from shellcue.constants import (
    NAVIGATION_VERBS, DIRECTORY_BLOCKLIST, DEFAULT_DECAY_DAYS,
    DIRECTORY_FREQUENCY_WEIGHT, DIRECTORY_RECENCY_WEIGHT, DIRECTORY_DISTANCE_WEIGHT,
    DIRECTORY_MAX_DEPTH, DIRECTORY_SCAN_LIMIT,
)
from shellcue.exceptions import ConfigurationError
from shellcue.learning.graph import UsageGraph, recency_score
from shellcue.learning.state import utc_now
from shellcue.prediction.models import DirectorySuggestion
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)

_SEPARATORS = ("/", "\\")


def final_component(path: str) -> str:
    """Last path component; one trailing separator of either style is ignored."""
    if path and path[-1] in _SEPARATORS:
        path = path[:-1]
    cut = max(path.rfind("/"), path.rfind("\\"))
    return path[cut + 1:]


def calculate_match_score(
    path: str, query: str, frecency: float = 0.0, case_sensitive: bool = True
) -> float:
    """
    Score how well a candidate directory matches the query.

    Args:
        path: Candidate directory path
        query: What the user typed
        frecency: Learned frequency/recency weight in [0, 1]
        case_sensitive: Compare names case-sensitively

    Returns:
        1.0 for an exact final-component match, 0.0 when the final component
        does not contain the query, otherwise a value strictly between 0 and 1
        that grows with overlap, prefix position and frecency.
    """
    name = final_component(path or "")
    wanted = final_component(query or "")
    if not case_sensitive:
        name, wanted = name.lower(), wanted.lower()

    if name == wanted:
        return 1.0
    index = name.find(wanted)
    if index < 0:
        return 0.0

    # wanted is a strict substring, so overlap < 1
    overlap = len(wanted) / len(name)
    position = 1.0 - index / len(name)
    frecency = max(0.0, min(1.0, frecency))
    score = 0.05 + 0.45 * overlap + 0.2 * position + 0.25 * frecency
    return max(0.01, min(0.99, score))


def distance_score(path: str, current_directory: Optional[str]) -> float:
    """Proximity of path to the current directory (1.0 same, 0.1 unrelated)."""
    if not current_directory:
        return 0.1
    target = os.path.normpath(os.path.abspath(path))
    current = os.path.normpath(os.path.abspath(current_directory))

    if target == current:
        return 1.0
    parent = os.path.dirname(current)
    if target == parent:
        return 0.9
    if target.startswith(current.rstrip(os.sep) + os.sep):
        depth = len(os.path.relpath(target, current).split(os.sep))
        return max(0.5, 0.85 - depth * 0.1)
    if os.path.dirname(target) == parent:
        return 0.7

    try:
        common = os.path.commonpath([target, current])
    except ValueError:
        # Different drives
        return 0.1
    common_depth = _depth(common)
    if common_depth > 0:
        max_depth = max(_depth(target), _depth(current))
        return max(0.1, 0.6 - (max_depth - common_depth) * 0.05)
    return 0.1


def _depth(path: str) -> int:
    return len([part for part in path.split(os.sep) if part])


def _match_type(path: str, query: str, case_sensitive: bool) -> str:
    name, wanted = final_component(path), final_component(query)
    if not case_sensitive:
        name, wanted = name.lower(), wanted.lower()
    if name == wanted:
        return "exact"
    if name.startswith(wanted):
        return "prefix"
    return "partial"


class DirectoryMatchEngine:
    """Ranks directories for a jump query using learned navigation data."""

    def __init__(
        self,
        usage_graph: UsageGraph,
        navigation_verbs: Optional[Iterable[str]] = None,
        blocklist: Optional[Iterable[str]] = None,
        decay_days: float = DEFAULT_DECAY_DAYS,
        case_sensitive: bool = True,
        max_depth: int = DIRECTORY_MAX_DEPTH,
    ):
        if usage_graph is None:
            raise ConfigurationError("DirectoryMatchEngine requires a usage graph")
        if max_depth < 1:
            raise ConfigurationError("max_depth must be at least 1")
        self._graph = usage_graph
        self.navigation_verbs = list(navigation_verbs if navigation_verbs is not None else NAVIGATION_VERBS)
        self.blocklist = frozenset(blocklist if blocklist is not None else DIRECTORY_BLOCKLIST)
        self.decay_days = decay_days
        self.case_sensitive = case_sensitive
        self.max_depth = max_depth

    def learned_directories(self) -> Dict[str, Tuple[int, datetime]]:
        """Learned navigation targets merged across navigation verbs: path -> (count, last_used)."""
        merged: Dict[str, Tuple[int, datetime]] = {}
        for verb in self.navigation_verbs:
            for path, stats in self._graph.get_argument_stats(verb):
                if stats.is_flag:
                    continue
                key = os.path.normpath(path) if path not in (".", "-") else path
                count, last_used = merged.get(key, (0, stats.last_used))
                merged[key] = (count + stats.occurrence_count, max(last_used, stats.last_used))
        return merged

    def frecency(
        self,
        path: str,
        current_directory: Optional[str] = None,
        now: Optional[datetime] = None,
        learned: Optional[Dict[str, Tuple[int, datetime]]] = None,
    ) -> float:
        """0.5 * frequency + 0.3 * recency + 0.2 * distance, in [0, 1]."""
        learned = learned if learned is not None else self.learned_directories()
        now = now or utc_now()
        frequency = recency = 0.0
        entry = learned.get(os.path.normpath(path))
        if entry is not None:
            max_count = max(count for count, _ in learned.values()) or 1
            frequency = entry[0] / max_count
            recency = recency_score(entry[1], now, self.decay_days)
        distance = distance_score(path, current_directory) if current_directory else 0.0
        return (
            DIRECTORY_FREQUENCY_WEIGHT * frequency
            + DIRECTORY_RECENCY_WEIGHT * recency
            + DIRECTORY_DISTANCE_WEIGHT * distance
        )

    def calculate_match_score(self, path: str, query: str, current_directory: Optional[str] = None) -> float:
        """Match score including the learned frecency of path."""
        return calculate_match_score(
            path, query, self.frecency(path, current_directory), self.case_sensitive
        )

    def _blocked(self, path: str, query: str) -> bool:
        parts = [part for part in path.replace("\\", "/").split("/") if part]
        return any(part in self.blocklist and part not in query for part in parts)

    def get_suggestions(
        self,
        query: Optional[str],
        current_directory: Optional[str] = None,
        max_results: int = 20,
        now: Optional[datetime] = None,
    ) -> List[DirectorySuggestion]:
        """
        Rank jump targets for a query.

        Args:
            query: Partial directory name (empty lists the best learned targets)
            current_directory: Working directory (defaults to the process cwd)
            max_results: Maximum number of suggestions
            now: Reference time for recency

        Returns:
            Suggestions ordered by score, best first; matching shortcuts lead
        """
        if max_results <= 0:
            return []
        query = query or ""
        current_directory = current_directory or os.getcwd()
        current = os.path.normpath(os.path.abspath(current_directory))
        now = now or utc_now()
        learned = self.learned_directories()

        candidates: Dict[str, DirectorySuggestion] = {}
        shortcuts = self._shortcuts(query, current)

        for path, (count, last_used) in learned.items():
            if path in (".", "-") or not os.path.isabs(path):
                continue
            if path == current or not os.path.isdir(path) or self._blocked(path, query):
                continue
            self._consider(candidates, path, query, current, now, learned, count, last_used)

        # An empty query lists only the children of the current directory
        depth = self.max_depth if query else 1
        for path in self._walk(current, query, depth):
            if path in candidates:
                continue
            self._consider(candidates, path, query, current, now, learned, 0, None)

        for shortcut in shortcuts:
            candidates.pop(shortcut.display_path, None)
        ranked = sorted(candidates.values(), key=lambda s: (-s.score, -s.usage_count, s.display_path))
        return (shortcuts + ranked)[:max_results]

    def _shortcuts(self, query: str, current: str) -> List[DirectorySuggestion]:
        """~ and .. when the query is a prefix of them; never for absolute queries."""
        if os.path.isabs(query) or query.startswith("\\"):
            return []
        shortcuts = []
        home = os.path.normpath(os.path.expanduser("~"))
        if "~".startswith(query) and home != current and os.path.isdir(home):
            shortcuts.append(DirectorySuggestion(
                path="~", display_path=home, score=1.0, match_type="shortcut",
            ))
        parent = os.path.dirname(current)
        if "..".startswith(query) and parent != current and os.path.isdir(parent):
            shortcuts.append(DirectorySuggestion(
                path="..", display_path=parent, score=1.0, match_type="shortcut",
            ))
        return shortcuts

    def _walk(self, current: str, query: str, depth: int) -> List[str]:
        """
        Directories up to depth levels below current, shallowest first.

        Blocked directories are neither returned nor entered, and symlinked
        directories are returned without being entered.
        """
        found: List[str] = []
        level = [current]
        for _ in range(depth):
            following = []
            for directory in level:
                for path, is_link in self._child_directories(directory):
                    if self._blocked(path, query):
                        continue
                    found.append(path)
                    if len(found) >= DIRECTORY_SCAN_LIMIT:
                        logger.debug(f"Directory walk below {current} stopped at {len(found)} entries")
                        return found
                    if not is_link:
                        following.append(path)
            level = following
        return found

    def _consider(self, candidates, path, query, current, now, learned, count, last_used) -> None:
        if query:
            score = calculate_match_score(
                path, query, self.frecency(path, current, now, learned), self.case_sensitive
            )
            if score <= 0.0:
                return
            match_type = _match_type(path, query, self.case_sensitive)
        else:
            score = self.frecency(path, current, now, learned)
            match_type = "frecency"

        candidates[path] = DirectorySuggestion(
            path=_relative_if_inside(path, current),
            display_path=path,
            score=score,
            usage_count=count,
            last_used=last_used,
            match_type=match_type,
        )

    @staticmethod
    def _child_directories(directory: str) -> List[Tuple[str, bool]]:
        """(path, is_symlink) for each subdirectory, sorted by path."""
        try:
            with os.scandir(directory) as entries:
                return sorted(
                    (entry.path, entry.is_symlink())
                    for entry in entries
                    if entry.is_dir(follow_symlinks=True)
                )
        except OSError as e:
            logger.debug(f"Cannot list {directory}: {e}")
            return []


def _relative_if_inside(path: str, current: str) -> str:
    if path.startswith(current.rstrip(os.sep) + os.sep):
        return os.path.relpath(path, current)
    return path
