# tests/conftest.py
"""
Common test fixtures for shellcue.
"""
from datetime import datetime, timedelta, timezone

import pytest

from shellcue.config import AppConfig
from shellcue.context.analyzer import ContextAnalyzer
from shellcue.engine import ShellCueEngine
from shellcue.learning.graph import UsageGraph
from shellcue.learning.history import CommandHistory
from shellcue.learning.parser import CommandParser, FlagRegistry
from shellcue.learning.sequences import SequencePredictor
from shellcue.learning.workflows import WorkflowLearner
from shellcue.prediction.predictor import GenericPredictor
from shellcue.storage.memory import InMemoryBackend


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """A controllable clock handing out aware UTC datetimes."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """A fixed clock starting at NOW."""
    return FixedClock()


@pytest.fixture
def registry():
    """Flag registry with the default value-requiring flags."""
    return FlagRegistry.with_defaults()


@pytest.fixture
def parser(registry):
    return CommandParser(registry)


@pytest.fixture
def graph():
    return UsageGraph()


@pytest.fixture
def history():
    return CommandHistory(max_size=100)


@pytest.fixture
def sequences():
    return SequencePredictor(ngram_order=2, min_frequency=3)


@pytest.fixture
def workflows():
    return WorkflowLearner()


@pytest.fixture
def analyzer(parser, sequences, workflows):
    return ContextAnalyzer(parser, sequences, workflows)


@pytest.fixture
def predictor(history, graph, analyzer, registry):
    """A predictor wired to fresh in-memory components."""
    return GenericPredictor(history, graph, analyzer, registry=registry)


@pytest.fixture
def learn(parser, graph, history):
    """Record a command line into history and the usage graph, like the engine does."""
    def _learn(line: str, when: datetime = NOW, success: bool = True, cwd: str = None):
        parsed = parser.parse(line)
        history.add(parsed.verb, line, parsed.args, success, cwd, when)
        if success:
            graph.record_parsed_usage(parsed, cwd, when)
        return parsed
    return _learn


@pytest.fixture
def app_config(tmp_path):
    """Configuration pointing persistence at a temporary database."""
    config = AppConfig()
    config.persistence.database_path = str(tmp_path / "learned.db")
    # Fixed-clock records must outlive age-based retention
    config.persistence.history_retention_days = 36500
    return config


@pytest.fixture
def memory_engine(app_config):
    """Engine on an in-memory backend without the background flusher."""
    engine = ShellCueEngine(app_config, backend=InMemoryBackend(), start_background=False)
    yield engine
    engine.close()


@pytest.fixture
def sqlite_engine(app_config):
    """Engine on a temporary SQLite database without the background flusher."""
    engine = ShellCueEngine(app_config, start_background=False)
    yield engine
    engine.close()
