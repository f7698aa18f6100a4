# shellcue/cli/__init__.py
"""
Command-line interface for shellcue.
"""
from shellcue.cli.main import app

__all__ = ["app"]
