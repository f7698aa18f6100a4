# shellcue/context/analyzer.py
"""
Context analysis over recent command history.

Produces advisory boosts for argument tokens that fit what the user has just
been doing (e.g. 'commit' right after 'git add').  The analyzer never filters
candidates, it only raises scores.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from shellcue.constants import (
    KNOWN_SEQUENCES, FOLLOW_UP_TOKENS, BUILD_FOLLOW_UP_TOKENS,
    WORKFLOW_BOOST, RECENT_ARGUMENT_BOOST, RECENT_CONTEXT_WINDOW, RECENT_ARGUMENT_WINDOW,
)
from shellcue.learning.history import CommandHistory
from shellcue.learning.parser import CommandParser
from shellcue.learning.sequences import SequencePredictor
from shellcue.learning.state import utc_now
from shellcue.learning.workflows import WorkflowLearner
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class NextCommandHint:
    """A command expected to come next, and why."""
    command: str
    source: str          # "context", "sequence" or "workflow"
    confidence: float = 1.0


@dataclass
class CommandContext:
    """Signal extracted from recent history."""
    recent_commands: List[str] = field(default_factory=list)
    current_directory: Optional[str] = None
    detected_sequences: List[str] = field(default_factory=list)
    suggested_next: List[NextCommandHint] = field(default_factory=list)
    argument_boosts: Dict[str, float] = field(default_factory=dict)

    def boost_for(self, token: str) -> float:
        return self.argument_boosts.get(token, 0.0)

    def add_boost(self, token: str, boost: float) -> None:
        # Strongest signal wins
        if boost > self.argument_boosts.get(token, 0.0):
            self.argument_boosts[token] = min(1.0, boost)

    def add_hint(self, hint: NextCommandHint) -> None:
        for existing in self.suggested_next:
            if existing.command == hint.command:
                if hint.confidence > existing.confidence:
                    existing.confidence = hint.confidence
                    existing.source = hint.source
                return
        self.suggested_next.append(hint)


def split_key(key: str):
    """'git commit' -> ('git', 'commit'); 'ls' -> ('ls', None)."""
    verb, _, rest = key.partition(" ")
    return verb, (rest or None)


class ContextAnalyzer:
    """Derives expected next commands and argument boosts from history."""

    def __init__(
        self,
        parser: Optional[CommandParser] = None,
        sequence_predictor: Optional[SequencePredictor] = None,
        workflow_learner: Optional[WorkflowLearner] = None,
        window: int = RECENT_CONTEXT_WINDOW,
    ):
        self.parser = parser or CommandParser()
        self.sequence_predictor = sequence_predictor
        self.workflow_learner = workflow_learner
        self.window = window

    def analyze_context(
        self, history: CommandHistory, current_verb: str, now: Optional[datetime] = None
    ) -> CommandContext:
        """
        Analyze recent history for the command being typed.

        Args:
            history: The command history
            current_verb: Verb of the command line being typed
            now: Reference time for timing-sensitive predictions

        Returns:
            The command context (empty when there is no history)
        """
        context = CommandContext()
        recent = history.get_recent(self.window)
        if not recent:
            return context

        now = now or utc_now()
        context.recent_commands = [self.parser.command_key_for_line(r.full_line) for r in recent]
        context.current_directory = recent[0].working_directory

        self._detect_sequences(context)
        self._suggest_next_commands(context, recent[0].timestamp, now)
        self._apply_recent_arguments(context, recent[:RECENT_ARGUMENT_WINDOW], current_verb)
        self._apply_follow_up_tokens(context, current_verb)
        self._apply_expected_subcommands(context, current_verb)
        return context

    def _detect_sequences(self, context: CommandContext) -> None:
        keys = context.recent_commands
        # keys are newest first
        for newer, older in zip(keys, keys[1:]):
            if newer in KNOWN_SEQUENCES.get(older, ()):
                context.detected_sequences.append(f"{older} -> {newer}")

    def _suggest_next_commands(self, context: CommandContext, last_time: datetime, now: datetime) -> None:
        last_key = context.recent_commands[0]
        for following in KNOWN_SEQUENCES.get(last_key, ()):
            context.add_hint(NextCommandHint(following, "context", 1.0))

        oldest_first = list(reversed(context.recent_commands))

        if self.sequence_predictor is not None:
            for following, score in self.sequence_predictor.predict_next(oldest_first, max_results=5, now=now):
                context.add_hint(NextCommandHint(following, "sequence", min(1.0, score)))

        if self.workflow_learner is not None:
            elapsed = now - last_time
            for suggestion in self.workflow_learner.predict_next(last_key, elapsed, now=now):
                context.add_hint(NextCommandHint(suggestion.command, "workflow", min(1.0, suggestion.confidence)))
            for suggestion in self.workflow_learner.continue_workflow(oldest_first, now=now):
                context.add_hint(NextCommandHint(suggestion.command, "workflow", min(1.0, suggestion.confidence)))

    def _apply_recent_arguments(self, context: CommandContext, recent, current_verb: str) -> None:
        for record in recent:
            if record.command != current_verb:
                continue
            for arg in record.args:
                if arg and arg.strip():
                    context.add_boost(arg, RECENT_ARGUMENT_BOOST)

    def _apply_follow_up_tokens(self, context: CommandContext, current_verb: str) -> None:
        for key in context.recent_commands:
            verb, sub = split_key(key)
            if verb == current_verb:
                for token in FOLLOW_UP_TOKENS.get(key, ()):
                    context.add_boost(token, WORKFLOW_BOOST)
            if sub == "build" or verb == "build":
                for token in BUILD_FOLLOW_UP_TOKENS:
                    context.add_boost(token, RECENT_ARGUMENT_BOOST * 2)

    def _apply_expected_subcommands(self, context: CommandContext, current_verb: str) -> None:
        for hint in context.suggested_next:
            verb, sub = split_key(hint.command)
            if verb != current_verb or not sub or " " in sub:
                continue
            # Known follow-ups and learned workflow steps get the full boost
            boost = WORKFLOW_BOOST * hint.confidence if hint.source == "sequence" else WORKFLOW_BOOST
            context.add_boost(sub, boost)
