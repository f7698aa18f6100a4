# shellcue/__init__.py
"""
shellcue: adaptive command-line prediction engine.

Learns which arguments, flags and parameter values follow which commands
from the user's shell history and ranks suggestions for a partially typed
command line.
"""
from loguru import logger

__version__ = '0.1.0'

# Stay quiet when embedded in a shell host until setup_logging() is called
logger.disable("shellcue")
