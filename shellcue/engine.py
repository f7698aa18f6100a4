# shellcue/engine.py
"""
The shellcue engine: wires the learning, prediction and persistence
components together behind the two calls a shell host makes.

    record_command(...)   after each executed command (feedback)
    get_suggestions(...)  on each keystroke or completion request
"""
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from shellcue.config import AppConfig, config_manager
from shellcue.context.analyzer import ContextAnalyzer
from shellcue.learning.graph import UsageGraph
from shellcue.learning.history import CommandHistory
from shellcue.learning.parser import CommandParser, FlagRegistry
from shellcue.learning.sequences import SequencePredictor
from shellcue.learning.state import utc_now
from shellcue.learning.workflows import WorkflowLearner
from shellcue.prediction.directories import DirectoryMatchEngine
from shellcue.prediction.models import DirectorySuggestion, Suggestion
from shellcue.prediction.predictor import GenericPredictor, PredictorStatistics
from shellcue.storage.base import StorageBackend
from shellcue.storage.manager import PersistenceManager
from shellcue.storage.memory import InMemoryBackend
from shellcue.storage.sqlite import SQLiteBackend
from shellcue.utils.logging import get_logger

logger = get_logger(__name__)


def create_backend(config: AppConfig) -> StorageBackend:
    """Storage backend selected by the persistence configuration."""
    persistence = config.persistence
    if not persistence.enabled:
        return InMemoryBackend(max_history_rows=persistence.max_history_rows)
    return SQLiteBackend(
        Path(os.path.expanduser(persistence.database_path)),
        busy_timeout_ms=persistence.busy_timeout_ms,
        max_history_rows=persistence.max_history_rows,
        history_retention_days=persistence.history_retention_days,
        history_load_limit=config.learning.history_size,
    )


class ShellCueEngine:
    """Learning and suggestion entry points for one shell session."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        backend: Optional[StorageBackend] = None,
        start_background: bool = True,
    ):
        self.config = config or config_manager.config
        learning = self.config.learning

        self.registry = FlagRegistry(learning.value_flags, learning.scoped_value_flags)
        self.parser = CommandParser(self.registry, learning.multi_part_commands)
        self.history = CommandHistory(max_size=learning.history_size)
        self.graph = UsageGraph(
            max_commands=learning.max_commands,
            max_arguments_per_command=learning.max_arguments_per_command,
            decay_days=learning.decay_days,
            navigation_verbs=self.config.directories.navigation_verbs,
            multi_part_commands=learning.multi_part_commands,
        )
        self.sequences = SequencePredictor(
            ngram_order=self.config.sequences.ngram_order,
            min_frequency=self.config.sequences.min_frequency,
            decay_days=learning.decay_days,
        )
        workflows = self.config.workflows
        self.workflows = WorkflowLearner(
            min_frequency=workflows.min_frequency,
            max_time_delta=timedelta(minutes=workflows.max_time_delta_minutes),
            min_confidence=workflows.min_confidence,
            max_steps=workflows.max_steps,
            min_occurrences=workflows.min_occurrences,
            decay_days=learning.decay_days,
        )
        self.analyzer = ContextAnalyzer(
            self.parser, self.sequences, self.workflows, window=self.config.prediction.context_window
        )
        self.predictor = GenericPredictor(self.history, self.graph, self.analyzer, registry=self.registry)
        self.directories = DirectoryMatchEngine(
            self.graph,
            navigation_verbs=self.config.directories.navigation_verbs,
            blocklist=self.config.directories.blocklist,
            decay_days=learning.decay_days,
            case_sensitive=self.config.directories.case_sensitive,
            max_depth=self.config.directories.max_depth,
        )
        self.persistence = PersistenceManager(
            backend if backend is not None else create_backend(self.config),
            self.graph,
            self.history,
            self.sequences,
            self.workflows,
            auto_save_interval=self.config.persistence.auto_save_interval,
            flush_after_commands=self.config.persistence.flush_after_commands,
            max_retries=self.config.persistence.max_write_retries,
        )

        self.persistence.load()
        if start_background:
            self.persistence.start()

    # Feedback

    def record_command(
        self,
        command: str,
        full_line: Optional[str] = None,
        args: Optional[Sequence[str]] = None,
        success: bool = True,
        working_directory: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """
        Learn from an executed command.

        Every command lands in history; only successful ones teach the usage
        graph and the sequence/workflow models.
        """
        if not self.config.learning.enabled:
            return
        line = full_line or " ".join([command, *(args or ())])
        parsed = self.parser.parse(line)
        if parsed.is_empty:
            return
        if args is None:
            args = parsed.args
        when = timestamp or utc_now()

        self.history.add(command or parsed.verb, line, args, success, working_directory, when)
        if success:
            self.graph.record_parsed_usage(parsed, working_directory, when)
            key = self.parser.command_key(parsed)
            self.sequences.observe(key, when)
            self.workflows.observe(key, when)
        self.persistence.notify_recorded()

    # Suggestions

    def get_suggestions(
        self, partial_line: str, max_results: Optional[int] = None, now: Optional[datetime] = None
    ) -> List[Suggestion]:
        """Ranked suggestions for the command line being typed.  Never raises."""
        limit = self.config.prediction.max_results if max_results is None else max_results
        try:
            return self.predictor.get_suggestions(partial_line, limit, now)
        except Exception as e:
            logger.exception(f"Suggestion lookup failed for {partial_line!r}: {e}")
            return []

    def predict_next_commands(self, max_results: int = 5, now: Optional[datetime] = None) -> List[Suggestion]:
        """Likely next commands for an empty prompt."""
        try:
            return self.predictor.get_next_command_suggestions(max_results, now)
        except Exception as e:
            logger.exception(f"Next-command prediction failed: {e}")
            return []

    def get_directory_suggestions(
        self, query: str, current_directory: Optional[str] = None, max_results: Optional[int] = None
    ) -> List[DirectorySuggestion]:
        limit = self.config.directories.max_results if max_results is None else max_results
        try:
            return self.directories.get_suggestions(query, current_directory, limit)
        except Exception as e:
            logger.exception(f"Directory lookup failed for {query!r}: {e}")
            return []

    def get_statistics(self) -> PredictorStatistics:
        return self.predictor.get_statistics()

    def get_summary(self) -> Dict[str, Any]:
        stats = self.get_statistics()
        return {
            "total_commands_tracked": stats.total_commands_tracked,
            "unique_commands_learned": stats.unique_commands_learned,
            "total_arguments_learned": stats.total_arguments_learned,
            "success_rate": stats.success_rate,
            "most_common_command": stats.most_common_command,
            "learned_workflows": len(self.workflows.get_workflows()),
        }

    # Management

    def flush(self) -> bool:
        return self.persistence.flush()

    def export_data(self, path: Union[str, Path]) -> Path:
        return self.persistence.export_data(path)

    def import_data(self, path: Union[str, Path], merge: bool = True):
        return self.persistence.import_data(path, merge)

    def clear(self) -> None:
        self.persistence.clear()

    def close(self) -> None:
        """Stop background flushing and write what is pending."""
        self.persistence.stop(flush=True)
        self.persistence.backend.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


_engine: Optional[ShellCueEngine] = None


def get_engine() -> ShellCueEngine:
    """Process-wide engine built from the global configuration."""
    global _engine
    if _engine is None:
        _engine = ShellCueEngine()
    return _engine
