# shellcue/learning/__init__.py
"""
Learning components: parser, usage graph, history, sequence and workflow models.
"""
from shellcue.learning.parser import (
    CommandParser, FlagRegistry, ParsedCommand, Token, TokenKind, split_command_line,
)
from shellcue.learning.state import ExecutionRecord, LearnedState
from shellcue.learning.history import CommandHistory, HistoryStatistics
from shellcue.learning.graph import UsageGraph, ArgumentStats, CommandKnowledge, GraphStatistics
from shellcue.learning.sequences import SequencePredictor
from shellcue.learning.workflows import WorkflowLearner, WorkflowSuggestion, Workflow

__all__ = [
    "CommandParser", "FlagRegistry", "ParsedCommand", "Token", "TokenKind", "split_command_line",
    "ExecutionRecord", "LearnedState",
    "CommandHistory", "HistoryStatistics",
    "UsageGraph", "ArgumentStats", "CommandKnowledge", "GraphStatistics",
    "SequencePredictor",
    "WorkflowLearner", "WorkflowSuggestion", "Workflow",
]
