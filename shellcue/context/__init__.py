# shellcue/context/__init__.py
"""
Context analysis for workflow-aware suggestions.
"""
from shellcue.context.analyzer import ContextAnalyzer, CommandContext, NextCommandHint

__all__ = ["ContextAnalyzer", "CommandContext", "NextCommandHint"]
