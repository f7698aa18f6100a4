# shellcue/prediction/predictor.py
"""
Generic predictor: ranks learned arguments for whatever command is being typed.

Works for any command, including ones shellcue knows nothing specific about.
Scoring combines normalized frequency, exponential recency decay and the
advisory context boost:

    base  = 0.6 * count / max_count + 0.4 * exp(-age_days / decay_days)
    score = base + boost * (1 - base)
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from shellcue.constants import (
    FREQUENCY_WEIGHT, RECENCY_WEIGHT, CONTEXT_SUGGESTION_SCORE, DEFAULT_DECAY_DAYS,
)
from shellcue.context.analyzer import CommandContext, ContextAnalyzer, split_key
from shellcue.exceptions import ConfigurationError
from shellcue.learning.graph import ArgumentStats, UsageGraph, recency_score
from shellcue.learning.history import CommandHistory
from shellcue.learning.parser import (
    CommandParser, FlagRegistry, TokenKind, is_flag_syntax, split_command_line, value_flag_scopes,
)
from shellcue.learning.state import utc_now
from shellcue.prediction.models import Suggestion, SuggestionSource
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PredictorStatistics:
    """What the predictor has learned so far."""
    total_commands_tracked: int = 0
    unique_commands_learned: int = 0
    total_arguments_learned: int = 0
    success_rate: float = 0.0
    most_common_command: Optional[str] = None
    most_common_command_count: int = 0


@dataclass
class _LineState:
    verb: str
    complete: List[str]
    prefix: str
    trailing_space: bool


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def apply_boost(base: float, boost: float) -> float:
    """Move a score toward 1.0 by the boost fraction."""
    return clamp(base + clamp(boost) * (1.0 - base))


def describe_age(seconds: float) -> Optional[str]:
    if seconds < 3600:
        return "just now"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    if seconds < 7 * 86400:
        return f"{int(seconds // 86400)}d ago"
    return None


def _rank_key(suggestion: Suggestion, count: int) -> Tuple[float, int, str]:
    return (-suggestion.score, -count, suggestion.text)


class GenericPredictor:
    """Orchestrates parsing, context analysis, graph lookup and ranking."""

    def __init__(
        self,
        history: CommandHistory,
        usage_graph: UsageGraph,
        context_analyzer: ContextAnalyzer,
        registry: Optional[FlagRegistry] = None,
        decay_days: Optional[float] = None,
    ):
        if history is None:
            raise ConfigurationError("GenericPredictor requires a command history")
        if usage_graph is None:
            raise ConfigurationError("GenericPredictor requires a usage graph")
        if context_analyzer is None:
            raise ConfigurationError("GenericPredictor requires a context analyzer")

        self._history = history
        self._graph = usage_graph
        self._analyzer = context_analyzer
        self.registry = registry if registry is not None else context_analyzer.parser.registry
        self._parser = CommandParser(self.registry, context_analyzer.parser.multi_part_commands)
        self.decay_days = decay_days or usage_graph.decay_days or DEFAULT_DECAY_DAYS

    def get_suggestions(
        self, partial_line: Optional[str], max_results: int = 10, now: Optional[datetime] = None
    ) -> List[Suggestion]:
        """
        Rank suggestions for a partially typed command line.

        Args:
            partial_line: The command line as typed so far
            max_results: Maximum number of suggestions
            now: Reference time for recency (defaults to now)

        Returns:
            Suggestions ordered by score, then occurrence count, then text
        """
        if not partial_line or not partial_line.strip() or max_results <= 0:
            return []

        line = self._split(partial_line)
        now = now or utc_now()
        command = self._resolve_command(line)

        value_flag = self._value_flag(line)
        if value_flag is not None:
            return self._parameter_value_suggestions(command, line, value_flag, max_results)

        if not self._graph.has_command(command):
            logger.debug(f"No learned data for '{command}'")
            return []

        context = self._analyzer.analyze_context(self._history, line.verb, now)
        ranked = self._learned_suggestions(command, line, context, now)
        if not line.complete and command == line.verb:
            ranked.extend(self._context_suggestions(line, context, {s.text for s, _ in ranked}))

        ranked.sort(key=lambda item: _rank_key(*item))
        return [suggestion for suggestion, _ in ranked[:max_results]]

    def _split(self, partial_line: str) -> _LineState:
        words = split_command_line(partial_line)
        trailing = partial_line[-1].isspace()
        if trailing or len(words) == 1:
            return _LineState(words[0], words[1:], "", trailing)
        return _LineState(words[0], words[1:-1], words[-1], trailing)

    def _resolve_command(self, line: _LineState) -> str:
        """Longest learned command path, e.g. 'git commit' when the user typed 'git commit '."""
        if line.verb not in self._parser.multi_part_commands:
            return line.verb
        tokens = self._parser.tag_tokens(line.complete, line.verb)
        sub = next((t.text for t in tokens if t.kind == TokenKind.POSITIONAL), None)
        if sub:
            path = f"{line.verb} {sub}"
            if self._graph.has_command(path):
                return path
        return line.verb

    def _value_flag(self, line: _LineState) -> Optional[str]:
        if not line.complete:
            return None
        last = line.complete[-1]
        tokens = self._parser.tag_tokens(line.complete, line.verb)
        sub = next((t.text for t in tokens if t.kind == TokenKind.POSITIONAL), None)
        if not self.registry.requires_value(last, *value_flag_scopes(line.verb, sub)):
            return None
        if line.trailing_space or not is_flag_syntax(line.prefix):
            return last
        return None

    def _parameter_value_suggestions(
        self, command: str, line: _LineState, flag: str, max_results: int
    ) -> List[Suggestion]:
        values = self._graph.get_parameter_values(command, flag)
        if not values and command != line.verb:
            values = self._graph.get_parameter_values(line.verb, flag)
        if line.prefix:
            values = [(value, stats) for value, stats in values if value.startswith(line.prefix)]
        if not values:
            return []

        max_count = max(stats.occurrence_count for _, stats in values) or 1
        ranked = [
            (
                Suggestion(
                    text=value,
                    score=clamp(stats.occurrence_count / max_count),
                    description=f"used {stats.occurrence_count}x with {flag}",
                    is_flag=False,
                    source=SuggestionSource.PARAMETER_VALUE,
                ),
                stats.occurrence_count,
            )
            for value, stats in values
        ]
        ranked.sort(key=lambda item: _rank_key(*item))
        return [suggestion for suggestion, _ in ranked[:max_results]]

    def _learned_suggestions(
        self, command: str, line: _LineState, context: CommandContext, now: datetime
    ) -> List[Tuple[Suggestion, int]]:
        typed = set(line.complete)
        candidates = [
            stats for token, stats in self._graph.get_argument_stats(command)
            if token not in typed and token.startswith(line.prefix)
        ]
        if not candidates:
            return []

        max_count = max(stats.occurrence_count for stats in candidates) or 1
        ranked = []
        for stats in candidates:
            frequency = stats.occurrence_count / max_count
            recency = recency_score(stats.last_used, now, self.decay_days)
            base = FREQUENCY_WEIGHT * frequency + RECENCY_WEIGHT * recency
            score = apply_boost(base, context.boost_for(stats.argument))
            ranked.append((
                Suggestion(
                    text=stats.argument,
                    score=score,
                    description=self._describe(stats, now),
                    is_flag=stats.is_flag,
                    source=SuggestionSource.LEARNED,
                ),
                stats.occurrence_count,
            ))
        return ranked

    def _context_suggestions(
        self, line: _LineState, context: CommandContext, existing: set
    ) -> List[Tuple[Suggestion, int]]:
        """Subcommands of expected next commands that were never learned for this verb."""
        added = []
        for hint in context.suggested_next:
            verb, sub = split_key(hint.command)
            if verb != line.verb or not sub or " " in sub:
                continue
            if sub in existing or not sub.startswith(line.prefix):
                continue
            if hint.source == "context":
                score, source, description = CONTEXT_SUGGESTION_SCORE, SuggestionSource.CONTEXT, "common next step"
            else:
                score = clamp(0.5 + 0.4 * hint.confidence)
                source = SuggestionSource.SEQUENCE
                description = f"usually next ({hint.source})"
            added.append((Suggestion(sub, score, description, is_flag_syntax(sub), source), 0))
            existing.add(sub)
        return added

    @staticmethod
    def _describe(stats: ArgumentStats, now: datetime) -> str:
        parts = [f"used {stats.occurrence_count}x"]
        age = describe_age((now - stats.last_used).total_seconds())
        if age:
            parts.append(age)
        top = stats.top_co_occurrence()
        if top and top[1] >= 2:
            parts.append(f"often with {top[0]}")
        return ", ".join(parts)

    def get_next_command_suggestions(
        self, max_results: int = 5, now: Optional[datetime] = None
    ) -> List[Suggestion]:
        """Whole commands likely to be typed next, for an empty prompt."""
        if max_results <= 0:
            return []
        context = self._analyzer.analyze_context(self._history, "", now or utc_now())
        suggestions = []
        for hint in context.suggested_next:
            if hint.source == "context":
                score, source = CONTEXT_SUGGESTION_SCORE * hint.confidence, SuggestionSource.CONTEXT
            else:
                score, source = clamp(0.5 + 0.4 * hint.confidence), SuggestionSource.SEQUENCE
            suggestions.append(Suggestion(hint.command, clamp(score), f"next step ({hint.source})", False, source))
        suggestions.sort(key=lambda s: (-s.score, s.text))
        return suggestions[:max_results]

    def get_statistics(self) -> PredictorStatistics:
        history_stats = self._history.get_statistics()
        graph_stats = self._graph.get_statistics()
        most_common = history_stats.most_common_command or graph_stats.most_used_command
        return PredictorStatistics(
            total_commands_tracked=history_stats.total_commands,
            unique_commands_learned=graph_stats.total_commands,
            total_arguments_learned=graph_stats.total_arguments,
            success_rate=history_stats.success_rate,
            most_common_command=most_common,
            most_common_command_count=max(
                history_stats.most_common_command_count, graph_stats.most_used_command_count
            ),
        )
